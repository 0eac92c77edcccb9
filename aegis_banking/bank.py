"""
Bank Module

Composition root: wires every component over one shared storage backend.
"""

from typing import Optional

from .accounts import AccountManager
from .audit import AuditTrail
from .classification import TransferClassifier
from .config import AegisConfig, get_config
from .currency import Currency
from .fees import FeePolicy
from .loans import LoanManager
from .logging_config import get_logger, setup_logging
from .storage import StorageInterface, create_storage
from .transfers import TransferEngine


class Bank:
    """Banking core with all components initialized"""

    def __init__(self, storage: Optional[StorageInterface] = None,
                 config: Optional[AegisConfig] = None,
                 configure_logging: bool = True):
        self.config = config or get_config()
        if configure_logging:
            setup_logging(
                self.config.log_level,
                log_format=self.config.log_format,
                log_file=self.config.log_file
            )
        self.currency = Currency[self.config.currency]
        self.storage = storage or create_storage(self.config.database_url)
        self.logger = get_logger("aegis.bank")

        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.account_manager = AccountManager(self.storage, self.audit_trail, self.config)
        self.classifier = TransferClassifier(self.account_manager)
        self.fee_policy = FeePolicy(self.config)
        self.transfer_engine = TransferEngine(
            self.storage, self.account_manager, self.classifier,
            self.fee_policy, self.audit_trail
        )
        self.loan_manager = LoanManager(
            self.storage, self.account_manager, self.audit_trail, self.config
        )

        self.logger.debug("Banking core initialized on %s in %s",
                          type(self.storage).__name__, self.currency.code)

    def close(self) -> None:
        self.storage.close()
