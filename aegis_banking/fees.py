"""
Fee Policy Module

Flat per-transfer fees by transfer type.
"""

from typing import Optional

from .classification import TransferType
from .config import AegisConfig, get_config
from .currency import Money


class FeePolicy:
    """Fixed fee for external transfers, nothing for local ones"""

    def __init__(self, config: Optional[AegisConfig] = None):
        self.config = config or get_config()
        self.external_fee = Money.of(self.config.external_transfer_fee)

    def fee_for(self, transfer_type: TransferType) -> Money:
        if transfer_type == TransferType.EXTERNAL:
            return self.external_fee
        return Money.zero()
