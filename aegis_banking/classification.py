"""
Transfer Classification Module

Decides whether a destination IBAN belongs to the sender, to another local
customer, or to nobody known to this bank.
"""

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .accounts import AccountManager


class TransferType(Enum):
    """Kinds of transfer, by where the money goes"""
    EXTERNAL = "EXTERNAL"            # Destination not held by this bank
    INTERNAL = "INTERNAL"            # Another customer's local account
    INTER_ACCOUNT = "INTER_ACCOUNT"  # Between accounts of the same customer

    @property
    def credits_destination(self) -> bool:
        """Whether settlement credits a local destination account"""
        return self != TransferType.EXTERNAL


class TransferClassifier:
    """Classifies transfers by resolving the destination IBAN"""

    def __init__(self, account_manager: 'AccountManager'):
        self.account_manager = account_manager

    def classify(self, to_iban: str, sender_id: str) -> TransferType:
        destination = self.account_manager.get_account_by_iban(to_iban)
        if destination is None:
            return TransferType.EXTERNAL
        if destination.customer_id == sender_id:
            return TransferType.INTER_ACCOUNT
        return TransferType.INTERNAL
