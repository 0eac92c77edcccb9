"""
Account Management Module

Account store and provisioning: creates accounts with unique IBAN-like
identifiers, drives the account lifecycle (approval, freeze, cancellation)
and owns the balance mutation primitives. Every balance read-modify-write
holds the per-account lock of the account being changed.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
from enum import Enum
from contextlib import contextmanager
import random
import threading
import uuid

from .currency import Money
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .config import AegisConfig, get_config
from .errors import (
    InsufficientFundsError, NotFoundError, ResourceExhaustedError,
    UniqueConstraintError, ValidationError
)
from .lifecycle import StateMachine, Transition
from .logging_config import get_logger, log_action


class AccountClass(Enum):
    """Banking product classes"""
    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"
    LOAN = "LOAN"


class AccountStatus(Enum):
    """Account lifecycle states"""
    PENDING = "PENDING"      # Awaiting staff approval
    ACTIVE = "ACTIVE"        # Normal operation
    FROZEN = "FROZEN"        # Temporarily suspended
    CANCELLED = "CANCELLED"  # Permanently closed


ACCOUNT_LIFECYCLE = StateMachine("account", {
    "approve": Transition.of({AccountStatus.PENDING}, AccountStatus.ACTIVE),
    "reject": Transition.of({AccountStatus.PENDING}, None),
    "freeze": Transition.of({AccountStatus.ACTIVE}, AccountStatus.FROZEN),
    "unfreeze": Transition.of({AccountStatus.FROZEN}, AccountStatus.ACTIVE),
    "cancel": Transition.of(
        {AccountStatus.PENDING, AccountStatus.ACTIVE, AccountStatus.FROZEN},
        AccountStatus.CANCELLED
    ),
})


@dataclass
class Account(StorageRecord):
    """Customer account holding a single-currency balance"""
    customer_id: str
    account_class: AccountClass
    iban: str
    balance: Money
    status: AccountStatus = AccountStatus.PENDING
    label: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    @property
    def is_loan_account(self) -> bool:
        return self.account_class == AccountClass.LOAN

    def can_withdraw(self, amount: Money) -> bool:
        """Check if the account may be debited by ``amount``"""
        return self.is_active and self.balance >= amount


class IbanGenerator:
    """
    Samples IBAN-like candidates: country code, two check digits, bank code
    and a sixteen digit account number. Uniqueness is checked by the caller.
    """

    def __init__(self, country_code: str = "GR", bank_code: str = "1234",
                 rng: Optional[random.Random] = None):
        self.country_code = country_code
        self.bank_code = bank_code
        self._rng = rng or random.SystemRandom()

    def __call__(self) -> str:
        check_digits = self._rng.randrange(100)
        account_number = self._rng.randrange(10 ** 16)
        return f"{self.country_code}{check_digits:02d}{self.bank_code}{account_number:016d}"


class AccountLocks:
    """Registry of per-account re-entrant mutexes"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def _lock_for(self, account_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[account_id] = lock
            return lock

    @contextmanager
    def hold(self, *account_ids: Optional[str]):
        """Acquire the locks of all given accounts in sorted id order"""
        acquired = []
        try:
            for account_id in sorted({a for a in account_ids if a}):
                lock = self._lock_for(account_id)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def discard(self, account_id: str) -> None:
        """Drop the mutex of a deleted account"""
        with self._guard:
            self._locks.pop(account_id, None)


class AccountManager:
    """
    Manages account provisioning, lifecycle and balances
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        config: Optional[AegisConfig] = None,
        iban_generator: Optional[Callable[[], str]] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.config = config or get_config()
        self.accounts_table = "accounts"
        self.transfers_table = "transfers"
        self.logger = get_logger("aegis.accounts")
        self.locks = AccountLocks()

        self._generate_iban = iban_generator or IbanGenerator(
            self.config.iban_country_code, self.config.iban_bank_code
        )
        self.storage.add_unique_constraint(self.accounts_table, "iban")

    # Provisioning

    def create_account(
        self,
        customer_id: str,
        account_class: AccountClass,
        label: Optional[str] = None,
        staff_initiated: bool = False
    ) -> Account:
        """
        Create a new account with a unique IBAN and a zero balance

        Args:
            customer_id: ID of account owner
            account_class: CHECKING, SAVINGS or LOAN
            label: Optional display label
            staff_initiated: Staff-created accounts start ACTIVE, self-service ones PENDING

        Returns:
            Created Account object

        Raises:
            ValidationError: If owner or class is missing
            ResourceExhaustedError: If no free IBAN was found within the retry cap
        """
        if not customer_id:
            raise ValidationError("Account owner is required")
        if not isinstance(account_class, AccountClass):
            raise ValidationError("Account class is required")

        now = datetime.now(timezone.utc)

        with self.storage.atomic():
            account = Account(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                customer_id=customer_id,
                account_class=account_class,
                iban=self._allocate_iban(),
                balance=Money.zero(),
                status=AccountStatus.ACTIVE if staff_initiated else AccountStatus.PENDING,
                label=label
            )
            self._save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_CREATED,
                entity_type="account",
                entity_id=account.id,
                metadata={
                    "iban": account.iban,
                    "customer_id": customer_id,
                    "account_class": account_class.value,
                    "status": account.status.value,
                    "staff_initiated": staff_initiated
                }
            )

        log_action(
            self.logger, "info", f"Account created: {account.iban}",
            user_id=customer_id, action="create_account", resource=f"account:{account.id}",
            extra={"account_class": account_class.value, "status": account.status.value}
        )
        return account

    def _allocate_iban(self) -> str:
        """Sample candidates until one is free, up to the configured cap"""
        attempts = self.config.iban_max_attempts
        for _ in range(attempts):
            candidate = self._generate_iban()
            if not self.exists_by_iban(candidate):
                return candidate
            self.logger.debug("IBAN collision on %s, resampling", candidate)
        raise ResourceExhaustedError(f"Could not allocate a unique IBAN after {attempts} attempts")

    # Queries

    def get_account(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        account_dict = self.storage.load(self.accounts_table, account_id)
        if account_dict:
            return self._account_from_dict(account_dict)
        return None

    def require_account(self, account_id: str) -> Account:
        """Get account by ID or raise NotFoundError"""
        account = self.get_account(account_id)
        if not account:
            raise NotFoundError(f"Account {account_id} not found")
        return account

    def get_account_by_iban(self, iban: str) -> Optional[Account]:
        """Get account by IBAN"""
        accounts = self.storage.find(self.accounts_table, {"iban": iban})
        if accounts:
            return self._account_from_dict(accounts[0])
        return None

    def exists_by_iban(self, iban: str) -> bool:
        return bool(self.storage.find(self.accounts_table, {"iban": iban}))

    def get_customer_accounts(self, customer_id: str) -> List[Account]:
        """Get all accounts for a customer"""
        accounts_data = self.storage.find(self.accounts_table, {"customer_id": customer_id})
        return [self._account_from_dict(data) for data in accounts_data]

    def get_pending_accounts(self) -> List[Account]:
        accounts_data = self.storage.find(self.accounts_table, {"status": AccountStatus.PENDING.value})
        return [self._account_from_dict(data) for data in accounts_data]

    def get_all_accounts(self) -> List[Account]:
        return [self._account_from_dict(data) for data in self.storage.load_all(self.accounts_table)]

    def is_owned_by(self, account_id: str, customer_id: str) -> bool:
        account = self.get_account(account_id)
        return account is not None and account.customer_id == customer_id

    def can_withdraw(self, account_id: str, amount: Money) -> bool:
        """True iff the account exists, is ACTIVE and holds at least ``amount``"""
        account = self.get_account(account_id)
        return account is not None and account.can_withdraw(amount)

    # Lifecycle

    def approve(self, account_id: str) -> Account:
        """Approve a PENDING account"""
        return self._change_status(account_id, "approve", AuditEventType.ACCOUNT_APPROVED)

    def reject(self, account_id: str) -> None:
        """Reject a PENDING account; the record is deleted"""
        with self.locks.hold(account_id), self.storage.atomic():
            account = self.require_account(account_id)
            ACCOUNT_LIFECYCLE.apply("reject", account.status, entity_id=account_id)
            self.storage.delete(self.accounts_table, account_id)
            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_REJECTED,
                entity_type="account",
                entity_id=account_id,
                metadata={"iban": account.iban, "customer_id": account.customer_id}
            )
        self.forget_lock(account_id)

        log_action(self.logger, "info", f"Account rejected: {account.iban}",
                   action="reject_account", resource=f"account:{account_id}")

    def freeze(self, account_id: str) -> Account:
        """Freeze an ACTIVE account"""
        return self._change_status(account_id, "freeze", AuditEventType.ACCOUNT_FROZEN)

    def unfreeze(self, account_id: str) -> Account:
        """Unfreeze a FROZEN account"""
        return self._change_status(account_id, "unfreeze", AuditEventType.ACCOUNT_UNFROZEN)

    def cancel(self, account_id: str) -> Account:
        """
        Cancel an account. Pending transfers from it are left as they are;
        they fail at settlement because the source is no longer ACTIVE.
        """
        return self._change_status(account_id, "cancel", AuditEventType.ACCOUNT_CANCELLED)

    def _change_status(self, account_id: str, event: str, audit_type: AuditEventType) -> Account:
        with self.locks.hold(account_id), self.storage.atomic():
            account = self.require_account(account_id)
            old_status = account.status
            account.status = ACCOUNT_LIFECYCLE.apply(event, old_status, entity_id=account_id)
            account.updated_at = datetime.now(timezone.utc)
            self._save_account(account)

            self.audit_trail.log_event(
                event_type=audit_type,
                entity_type="account",
                entity_id=account.id,
                metadata={"old_status": old_status.value, "new_status": account.status.value}
            )

        log_action(
            self.logger, "info", f"Account {event}: {account.iban}",
            action=f"{event}_account", resource=f"account:{account_id}",
            extra={"old_status": old_status.value, "new_status": account.status.value}
        )
        return account

    def update_label(self, account_id: str, label: Optional[str]) -> Account:
        with self.locks.hold(account_id), self.storage.atomic():
            account = self.require_account(account_id)
            account.label = label
            account.updated_at = datetime.now(timezone.utc)
            self._save_account(account)
            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_UPDATED,
                entity_type="account",
                entity_id=account_id,
                metadata={"label": label}
            )
        return account

    # Balances

    @contextmanager
    def lock_accounts(self, *account_ids: Optional[str]):
        """Hold the locks of the given accounts; acquire before opening a unit of work"""
        with self.locks.hold(*account_ids):
            yield

    def debit(self, account_id: str, amount: Money, check_funds: bool = True) -> Account:
        """
        Subtract ``amount`` from the account balance

        Raises:
            NotFoundError: If the account does not exist
            InsufficientFundsError: If ``check_funds`` and the account is not
                ACTIVE or cannot cover the amount
        """
        with self.locks.hold(account_id), self.storage.atomic():
            account = self.require_account(account_id)
            if check_funds and not account.can_withdraw(amount):
                raise InsufficientFundsError(
                    f"Insufficient funds or account not active: balance "
                    f"{account.balance.to_string()}, status {account.status.value}, "
                    f"requested {amount.to_string()}"
                )
            account.balance = account.balance - amount
            account.updated_at = datetime.now(timezone.utc)
            self._save_account(account)
        return account

    def credit(self, account_id: str, amount: Money) -> Account:
        """Add ``amount`` to the account balance"""
        with self.locks.hold(account_id), self.storage.atomic():
            account = self.require_account(account_id)
            account.balance = account.balance + amount
            account.updated_at = datetime.now(timezone.utc)
            self._save_account(account)
        return account

    def set_balance(self, account_id: str, balance: Money) -> Account:
        """Administrative balance adjustment"""
        balance = Money.of(balance)
        if balance.is_negative():
            raise ValidationError("Balance cannot be negative")

        with self.locks.hold(account_id), self.storage.atomic():
            account = self.require_account(account_id)
            old_balance = account.balance
            account.balance = balance
            account.updated_at = datetime.now(timezone.utc)
            self._save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.BALANCE_ADJUSTED,
                entity_type="account",
                entity_id=account_id,
                metadata={
                    "old_balance": old_balance.to_string(),
                    "new_balance": balance.to_string()
                }
            )

        log_action(
            self.logger, "info", f"Balance adjusted: {account.iban}",
            action="set_balance", resource=f"account:{account_id}",
            extra={"old_balance": str(old_balance.amount), "new_balance": str(balance.amount)}
        )
        return account

    # Deletion

    def delete_account(self, account_id: str) -> bool:
        """Delete the account record only"""
        with self.locks.hold(account_id), self.storage.atomic():
            deleted = self.storage.delete(self.accounts_table, account_id)
            if deleted:
                self.audit_trail.log_event(
                    event_type=AuditEventType.ACCOUNT_DELETED,
                    entity_type="account",
                    entity_id=account_id,
                    metadata={"cascade": False}
                )
        if deleted:
            self.forget_lock(account_id)
        return deleted

    def delete_account_permanently(self, account_id: str) -> int:
        """
        Delete the account together with its outgoing transfers.
        Incoming transfers reference the IBAN, not the account, and are kept.

        Returns:
            Number of transfers removed
        """
        with self.locks.hold(account_id), self.storage.atomic():
            self.require_account(account_id)
            outgoing = self.storage.find(self.transfers_table, {"from_account_id": account_id})
            for transfer in outgoing:
                self.storage.delete(self.transfers_table, transfer["id"])
            self.storage.delete(self.accounts_table, account_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_DELETED,
                entity_type="account",
                entity_id=account_id,
                metadata={"cascade": True, "transfers_removed": len(outgoing)}
            )
        self.forget_lock(account_id)
        return len(outgoing)

    def forget_lock(self, account_id: str) -> None:
        """
        Prune the lock entry of a deleted account. Skipped while an enclosing
        unit of work is still open, since it may yet restore the account.
        """
        if not self.storage.in_transaction:
            self.locks.discard(account_id)

    # Persistence helpers

    def _save_account(self, account: Account) -> None:
        try:
            self.storage.save(self.accounts_table, account.id, self._account_to_dict(account))
        except UniqueConstraintError:
            self.logger.error("IBAN %s already assigned, refusing to save account %s",
                              account.iban, account.id)
            raise

    def _account_to_dict(self, account: Account) -> Dict:
        """Convert Account to dictionary for storage"""
        return {
            'id': account.id,
            'created_at': account.created_at.isoformat(),
            'updated_at': account.updated_at.isoformat(),
            'customer_id': account.customer_id,
            'account_class': account.account_class.value,
            'iban': account.iban,
            'balance': str(account.balance.amount),
            'status': account.status.value,
            'label': account.label
        }

    def _account_from_dict(self, data: Dict) -> Account:
        """Convert dictionary to Account"""
        return Account(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            customer_id=data['customer_id'],
            account_class=AccountClass(data['account_class']),
            iban=data['iban'],
            balance=Money(Decimal(data['balance'])),
            status=AccountStatus(data['status']),
            label=data.get('label')
        )
