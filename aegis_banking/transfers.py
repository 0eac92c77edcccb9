"""
Transfer Processing Module

Transfer lifecycle: creation with classification, fee and funds check;
settlement that moves money under the account locks; reversal of settled
transfers; cancellation, update and deletion of pending ones.
"""

from decimal import Decimal
from datetime import date, datetime, timedelta, timezone
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union
from enum import Enum
import uuid

from .currency import Money
from .storage import StorageInterface, StorageRecord, created_between
from .audit import AuditTrail, AuditEventType
from .accounts import Account, AccountManager
from .classification import TransferClassifier, TransferType
from .fees import FeePolicy
from .errors import (
    AuthorizationError, InsufficientFundsError, NotFoundError, ValidationError
)
from .lifecycle import StateMachine, Transition
from .logging_config import get_logger, log_action


REVERSED_MARKER = " [REVERSED]"


class TransferStatus(Enum):
    """States of a transfer"""
    PENDING = "PENDING"        # Created, funds not yet moved
    COMPLETED = "COMPLETED"    # Settled
    FAILED = "FAILED"          # Settlement failed
    CANCELLED = "CANCELLED"    # Cancelled while pending, or reversed after settlement


TRANSFER_LIFECYCLE = StateMachine("transfer", {
    "complete": Transition.of({TransferStatus.PENDING}, TransferStatus.COMPLETED),
    "fail": Transition.of({TransferStatus.PENDING}, TransferStatus.FAILED),
    "cancel": Transition.of({TransferStatus.PENDING}, TransferStatus.CANCELLED),
    "reverse": Transition.of({TransferStatus.COMPLETED}, TransferStatus.CANCELLED),
    "update": Transition.of({TransferStatus.PENDING}, TransferStatus.PENDING),
    "delete": Transition.of({TransferStatus.PENDING}, None),
    "staff_delete": Transition.of(
        {TransferStatus.PENDING, TransferStatus.FAILED, TransferStatus.CANCELLED}, None
    ),
})


@dataclass
class Transfer(StorageRecord):
    """
    Money movement from a local account to an IBAN.

    The destination is a weak reference resolved at settlement time; the
    fee is charged to the source on top of ``amount``.
    """
    from_account_id: str
    to_iban: str
    amount: Money
    fee: Money
    total_amount: Money
    transfer_type: TransferType
    status: TransferStatus = TransferStatus.PENDING
    description: Optional[str] = None
    category: Optional[str] = None
    reference: Optional[str] = None
    error_message: Optional[str] = None
    processed_at: Optional[datetime] = None
    reversed_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.amount.is_positive():
            raise ValidationError("Transfer amount must be positive")
        if self.fee.is_negative():
            raise ValidationError("Transfer fee cannot be negative")

    @property
    def is_pending(self) -> bool:
        return self.status == TransferStatus.PENDING

    @property
    def is_completed(self) -> bool:
        return self.status == TransferStatus.COMPLETED

    @property
    def is_reversed(self) -> bool:
        return self.reversed_at is not None


class TransferEngine:
    """
    Creates, settles and reverses transfers

    Lock order is always account locks first, then the storage unit of work.
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        classifier: TransferClassifier,
        fee_policy: FeePolicy,
        audit_trail: AuditTrail
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.classifier = classifier
        self.fee_policy = fee_policy
        self.audit_trail = audit_trail
        self.table_name = "transfers"
        self.logger = get_logger("aegis.transfers")

    def create_transfer(
        self,
        from_account_id: str,
        to_iban: str,
        amount: Union[Money, Decimal, str],
        description: Optional[str],
        category: Optional[str],
        requester_id: Optional[str],
        reference: Optional[str] = None
    ) -> Transfer:
        """
        Create a PENDING transfer after classification, fee and funds check

        Args:
            from_account_id: Source account
            to_iban: Destination IBAN, local or not
            amount: Amount the destination receives
            description: Free text
            category: Free text category
            requester_id: Customer creating the transfer; None for staff
            reference: Optional external reference

        Returns:
            Persisted Transfer

        Raises:
            NotFoundError: Unknown source account
            AuthorizationError: Source not owned by requester
            ValidationError: Malformed or non-positive amount, or empty IBAN
            InsufficientFundsError: Source cannot cover amount plus fee
        """
        source = self.account_manager.require_account(from_account_id)
        self._check_owner(source, requester_id)

        amount = Money.of(amount)
        if not amount.is_positive():
            raise ValidationError("Transfer amount must be positive")
        to_iban = self._clean_iban(to_iban)

        transfer_type = self.classifier.classify(to_iban, source.customer_id)
        fee = self.fee_policy.fee_for(transfer_type)
        total = amount + fee

        if not source.can_withdraw(total):
            raise InsufficientFundsError(
                f"Insufficient funds: available {source.balance.to_string()}, "
                f"requested {total.to_string()}"
            )

        now = datetime.now(timezone.utc)
        transfer = Transfer(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            from_account_id=from_account_id,
            to_iban=to_iban,
            amount=amount,
            fee=fee,
            total_amount=total,
            transfer_type=transfer_type,
            description=description,
            category=category,
            reference=reference
        )
        self._persist_new(transfer, requester_id)
        return transfer

    def create_inter_account_transfer(
        self,
        from_account_id: str,
        to_account_id: str,
        amount: Union[Money, Decimal, str],
        description: Optional[str],
        category: Optional[str],
        requester_id: Optional[str]
    ) -> Transfer:
        """Fee-free PENDING transfer between two accounts of the same customer"""
        source = self.account_manager.require_account(from_account_id)
        destination = self.account_manager.require_account(to_account_id)
        if source.id == destination.id:
            raise ValidationError("Source and destination must be different accounts")
        self._check_owner(source, requester_id)
        self._check_owner(destination, requester_id)
        if source.customer_id != destination.customer_id:
            raise ValidationError("Inter-account transfers require accounts of the same customer")

        amount = Money.of(amount)
        if not amount.is_positive():
            raise ValidationError("Transfer amount must be positive")
        if not source.can_withdraw(amount):
            raise InsufficientFundsError(
                f"Insufficient funds: available {source.balance.to_string()}, "
                f"requested {amount.to_string()}"
            )

        now = datetime.now(timezone.utc)
        transfer = Transfer(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            from_account_id=source.id,
            to_iban=destination.iban,
            amount=amount,
            fee=Money.zero(),
            total_amount=amount,
            transfer_type=TransferType.INTER_ACCOUNT,
            description=description or "Transfer between own accounts",
            category=category
        )
        self._persist_new(transfer, requester_id)
        return transfer

    def _persist_new(self, transfer: Transfer, requester_id: Optional[str]) -> None:
        with self.storage.atomic():
            self._save_transfer(transfer)
            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSFER_CREATED,
                entity_type="transfer",
                entity_id=transfer.id,
                metadata={
                    "from_account_id": transfer.from_account_id,
                    "to_iban": transfer.to_iban,
                    "amount": transfer.amount.to_string(),
                    "fee": transfer.fee.to_string(),
                    "transfer_type": transfer.transfer_type.value
                },
                user_id=requester_id
            )

        log_action(
            self.logger, "info", f"Transfer created: {transfer.total_amount.to_string()} to {transfer.to_iban}",
            user_id=requester_id, action="create_transfer", resource=f"transfer:{transfer.id}",
            extra={"transfer_type": transfer.transfer_type.value, "fee": str(transfer.fee.amount)}
        )

    def settle(self, transfer_id: str, requester_id: Optional[str] = None) -> Transfer:
        """
        Move the money of a PENDING transfer

        The source is debited amount plus fee and, for local destinations, the
        destination is credited the amount. Status and funds are checked under
        the account locks inside the same unit of work that moves the money.
        On failure all balance changes are rolled back, the transfer is marked
        FAILED with the error message and the error is re-raised.

        Raises:
            NotFoundError: Unknown transfer
            AuthorizationError: Source not owned by requester
            InvalidStateError: Transfer is not PENDING
            InsufficientFundsError: Source inactive or short of funds
        """
        transfer = self._require_transfer(transfer_id)
        if requester_id is not None:
            self._check_owner(self.account_manager.require_account(transfer.from_account_id), requester_id)

        failure = None
        while True:
            destination_id = self._resolve_destination_id(transfer)
            with self.account_manager.lock_accounts(transfer.from_account_id, destination_id):
                with self.storage.atomic():
                    transfer = self._require_transfer(transfer_id)
                    TRANSFER_LIFECYCLE.apply("complete", transfer.status, entity_id=transfer_id)
                    if self._resolve_destination_id(transfer) != destination_id:
                        # Destination edited before the locks were taken
                        continue

                    try:
                        with self.storage.atomic():
                            self._apply_settlement(transfer, destination_id, requester_id)
                    except Exception as e:
                        self._fail_transfer(transfer_id, str(e), requester_id)
                        failure = e
                break

        # Raised after the unit of work so the FAILED status is committed
        if failure is not None:
            raise failure

        log_action(
            self.logger, "info", f"Transfer settled: {transfer.total_amount.to_string()} to {transfer.to_iban}",
            user_id=requester_id, action="settle_transfer", resource=f"transfer:{transfer_id}"
        )
        return transfer

    def _apply_settlement(self, transfer: Transfer, destination_id: Optional[str],
                          requester_id: Optional[str]) -> None:
        self.account_manager.debit(transfer.from_account_id, transfer.total_amount)

        credited = None
        if transfer.transfer_type.credits_destination:
            if destination_id and self.account_manager.get_account(destination_id):
                self.account_manager.credit(destination_id, transfer.amount)
                credited = transfer.amount.to_string()
            else:
                log_action(
                    self.logger, "warning",
                    f"Destination {transfer.to_iban} no longer resolves, credit skipped",
                    action="settle_transfer", resource=f"transfer:{transfer.id}"
                )

        transfer.status = TransferStatus.COMPLETED
        transfer.processed_at = datetime.now(timezone.utc)
        transfer.updated_at = transfer.processed_at
        self._save_transfer(transfer)

        self.audit_trail.log_event(
            event_type=AuditEventType.TRANSFER_COMPLETED,
            entity_type="transfer",
            entity_id=transfer.id,
            metadata={
                "debited": transfer.total_amount.to_string(),
                "credited": credited,
                "processed_at": transfer.processed_at.isoformat()
            },
            user_id=requester_id
        )

    def _fail_transfer(self, transfer_id: str, error_message: str,
                       requester_id: Optional[str]) -> None:
        """Mark transfer as failed"""
        with self.storage.atomic():
            transfer = self._require_transfer(transfer_id)
            transfer.status = TRANSFER_LIFECYCLE.apply("fail", transfer.status, entity_id=transfer_id)
            transfer.error_message = error_message
            transfer.processed_at = datetime.now(timezone.utc)
            transfer.updated_at = transfer.processed_at
            self._save_transfer(transfer)

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSFER_FAILED,
                entity_type="transfer",
                entity_id=transfer_id,
                metadata={
                    "error_message": error_message,
                    "failed_at": transfer.processed_at.isoformat()
                },
                user_id=requester_id
            )

        log_action(
            self.logger, "warning", f"Transfer failed: {error_message}",
            user_id=requester_id, action="settle_transfer", resource=f"transfer:{transfer_id}"
        )

    def reverse(self, transfer_id: str, reason: Optional[str] = None) -> Transfer:
        """
        Undo a COMPLETED transfer

        The source gets the full total back, fee included. A local destination
        is debited the amount without a funds check, so its balance may go
        negative.
        """
        transfer = self._require_transfer(transfer_id)
        destination_id = self._resolve_destination_id(transfer)

        with self.account_manager.lock_accounts(transfer.from_account_id, destination_id):
            with self.storage.atomic():
                transfer = self._require_transfer(transfer_id)
                new_status = TRANSFER_LIFECYCLE.apply("reverse", transfer.status, entity_id=transfer_id)

                self.account_manager.credit(transfer.from_account_id, transfer.total_amount)
                if transfer.transfer_type.credits_destination:
                    if destination_id and self.account_manager.get_account(destination_id):
                        self.account_manager.debit(destination_id, transfer.amount, check_funds=False)
                    else:
                        log_action(
                            self.logger, "warning",
                            f"Destination {transfer.to_iban} no longer resolves, debit skipped",
                            action="reverse_transfer", resource=f"transfer:{transfer_id}"
                        )

                transfer.status = new_status
                transfer.reversed_at = datetime.now(timezone.utc)
                transfer.updated_at = transfer.reversed_at
                transfer.description = (transfer.description or "") + REVERSED_MARKER
                self._save_transfer(transfer)

                self.audit_trail.log_event(
                    event_type=AuditEventType.TRANSFER_REVERSED,
                    entity_type="transfer",
                    entity_id=transfer_id,
                    metadata={
                        "reason": reason,
                        "refunded": transfer.total_amount.to_string(),
                        "reversed_at": transfer.reversed_at.isoformat()
                    }
                )

        log_action(
            self.logger, "info", f"Transfer reversed: {transfer.total_amount.to_string()}",
            action="reverse_transfer", resource=f"transfer:{transfer_id}",
            extra={"reason": reason} if reason else None
        )
        return transfer

    def cancel_pending(self, transfer_id: str, requester_id: Optional[str] = None) -> Transfer:
        """Cancel a PENDING transfer; no balance effect"""
        transfer = self._require_transfer(transfer_id)

        with self.account_manager.lock_accounts(transfer.from_account_id), self.storage.atomic():
            transfer = self._require_transfer(transfer_id)
            if requester_id is not None:
                self._check_owner(self.account_manager.require_account(transfer.from_account_id), requester_id)
            transfer.status = TRANSFER_LIFECYCLE.apply("cancel", transfer.status, entity_id=transfer_id)
            transfer.updated_at = datetime.now(timezone.utc)
            self._save_transfer(transfer)

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSFER_CANCELLED,
                entity_type="transfer",
                entity_id=transfer_id,
                metadata={},
                user_id=requester_id
            )

        log_action(self.logger, "info", "Transfer cancelled", user_id=requester_id,
                   action="cancel_transfer", resource=f"transfer:{transfer_id}")
        return transfer

    def update_transfer(
        self,
        transfer_id: str,
        requester_id: Optional[str],
        amount: Optional[Union[Money, Decimal, str]] = None,
        description: Optional[str] = None,
        category: Optional[str] = None,
        to_iban: Optional[str] = None
    ) -> Transfer:
        """
        Edit a PENDING transfer

        A new amount or destination recomputes the fee and total and re-runs
        the funds check against the new total.
        """
        transfer = self._require_transfer(transfer_id)

        with self.account_manager.lock_accounts(transfer.from_account_id), self.storage.atomic():
            transfer = self._require_transfer(transfer_id)
            TRANSFER_LIFECYCLE.apply("update", transfer.status, entity_id=transfer_id)
            source = self.account_manager.require_account(transfer.from_account_id)
            self._check_owner(source, requester_id)

            changes = {}
            reprice = False

            if to_iban is not None:
                to_iban = self._clean_iban(to_iban)
                if to_iban != transfer.to_iban:
                    transfer.to_iban = to_iban
                    transfer.transfer_type = self.classifier.classify(to_iban, source.customer_id)
                    transfer.fee = self.fee_policy.fee_for(transfer.transfer_type)
                    changes["to_iban"] = to_iban
                    reprice = True

            if amount is not None:
                amount = Money.of(amount)
                if not amount.is_positive():
                    raise ValidationError("Transfer amount must be positive")
                if amount != transfer.amount:
                    transfer.amount = amount
                    changes["amount"] = amount.to_string()
                    reprice = True

            if reprice:
                transfer.total_amount = transfer.amount + transfer.fee
                if not source.can_withdraw(transfer.total_amount):
                    raise InsufficientFundsError(
                        f"Insufficient funds: available {source.balance.to_string()}, "
                        f"requested {transfer.total_amount.to_string()}"
                    )

            if description is not None:
                transfer.description = description
                changes["description"] = description
            if category is not None:
                transfer.category = category
                changes["category"] = category

            transfer.updated_at = datetime.now(timezone.utc)
            self._save_transfer(transfer)

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSFER_UPDATED,
                entity_type="transfer",
                entity_id=transfer_id,
                metadata=changes,
                user_id=requester_id
            )

        return transfer

    def delete_transfer(self, transfer_id: str, requester_id: Optional[str] = None) -> None:
        """
        Remove a transfer record. Owners may only delete PENDING transfers;
        staff may delete anything that has not been settled.
        """
        transfer = self._require_transfer(transfer_id)

        with self.account_manager.lock_accounts(transfer.from_account_id), self.storage.atomic():
            transfer = self._require_transfer(transfer_id)
            if requester_id is None:
                TRANSFER_LIFECYCLE.apply("staff_delete", transfer.status, entity_id=transfer_id)
            else:
                self._check_owner(self.account_manager.require_account(transfer.from_account_id), requester_id)
                TRANSFER_LIFECYCLE.apply("delete", transfer.status, entity_id=transfer_id)

            self.storage.delete(self.table_name, transfer_id)
            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSFER_DELETED,
                entity_type="transfer",
                entity_id=transfer_id,
                metadata={"status": transfer.status.value},
                user_id=requester_id
            )

        log_action(self.logger, "info", "Transfer deleted", user_id=requester_id,
                   action="delete_transfer", resource=f"transfer:{transfer_id}")

    # Queries

    def get_transfer(self, transfer_id: str) -> Optional[Transfer]:
        """Get transfer by ID"""
        transfer_dict = self.storage.load(self.table_name, transfer_id)
        if transfer_dict:
            return self._transfer_from_dict(transfer_dict)
        return None

    def get_account_transfers(self, account_id: str) -> List[Transfer]:
        """
        Outgoing transfers of the account plus transfers addressed to its IBAN,
        newest first
        """
        records = {t['id']: t for t in self.storage.find(self.table_name, {'from_account_id': account_id})}
        account = self.account_manager.get_account(account_id)
        if account:
            for t in self.storage.find(self.table_name, {'to_iban': account.iban}):
                records.setdefault(t['id'], t)

        transfers = [self._transfer_from_dict(data) for data in records.values()]
        transfers.sort(key=lambda t: t.created_at, reverse=True)
        return transfers

    def get_customer_transfers(self, customer_id: str) -> List[Transfer]:
        """Transfers touching any account of the customer, newest first"""
        seen = {}
        for account in self.account_manager.get_customer_accounts(customer_id):
            for transfer in self.get_account_transfers(account.id):
                seen.setdefault(transfer.id, transfer)
        return sorted(seen.values(), key=lambda t: t.created_at, reverse=True)

    def get_transfers_by_status(self, status: TransferStatus) -> List[Transfer]:
        transfers_data = self.storage.find(self.table_name, {'status': status.value})
        return [self._transfer_from_dict(data) for data in transfers_data]

    def get_recent_transfers(self, days: int = 30) -> List[Transfer]:
        """Transfers created within the last ``days`` days, newest first"""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        transfers = [
            self._transfer_from_dict(data)
            for data in self.storage.load_all(self.table_name)
        ]
        recent = [t for t in transfers if t.created_at >= cutoff]
        recent.sort(key=lambda t: t.created_at, reverse=True)
        return recent

    def get_statement_transfers(self, account_id: str, start_date: date,
                                end_date: date) -> List[Transfer]:
        """
        Transfers of an account created between the two dates, both inclusive,
        oldest first. This is the list handed to statement rendering.
        """
        if start_date > end_date:
            raise ValidationError("Statement start date is after end date")
        self.account_manager.require_account(account_id)

        transfers = [
            t for t in self.get_account_transfers(account_id)
            if start_date <= t.created_at.date() <= end_date
        ]
        transfers.sort(key=lambda t: t.created_at)
        return transfers

    # Search. ``customer_id`` restricts results to transfers sent from the
    # customer's accounts; None searches every transfer.

    def get_transfers_by_type(self, transfer_type: TransferType,
                              customer_id: Optional[str] = None) -> List[Transfer]:
        return self._search(lambda t: t.transfer_type == transfer_type, customer_id)

    def get_transfers_by_date_range(self, start: Union[date, datetime], end: Union[date, datetime],
                                    customer_id: Optional[str] = None) -> List[Transfer]:
        """Transfers created between ``start`` and ``end``, both inclusive"""
        lower, upper = created_between(start, end)
        return self._search(lambda t: lower <= t.created_at <= upper, customer_id)

    def get_transfers_by_amount_range(
        self,
        min_amount: Union[Money, Decimal, str],
        max_amount: Union[Money, Decimal, str],
        customer_id: Optional[str] = None
    ) -> List[Transfer]:
        """Transfers whose amount, fee excluded, lies within the bounds inclusive"""
        low, high = Money.of(min_amount), Money.of(max_amount)
        if low > high:
            raise ValidationError("Minimum amount is above maximum amount")
        return self._search(lambda t: low <= t.amount <= high, customer_id)

    def get_transfers_by_category(self, category: str,
                                  customer_id: Optional[str] = None) -> List[Transfer]:
        return self._search(lambda t: t.category == category, customer_id)

    def _search(self, predicate: Callable[[Transfer], bool],
                customer_id: Optional[str]) -> List[Transfer]:
        if customer_id is None:
            records = self.storage.load_all(self.table_name)
        else:
            records = []
            for account in self.account_manager.get_customer_accounts(customer_id):
                records.extend(self.storage.find(self.table_name, {'from_account_id': account.id}))

        transfers = [t for t in map(self._transfer_from_dict, records) if predicate(t)]
        transfers.sort(key=lambda t: t.created_at, reverse=True)
        return transfers

    # Helpers

    def _require_transfer(self, transfer_id: str) -> Transfer:
        transfer = self.get_transfer(transfer_id)
        if not transfer:
            raise NotFoundError(f"Transfer {transfer_id} not found")
        return transfer

    def _resolve_destination_id(self, transfer: Transfer) -> Optional[str]:
        if not transfer.transfer_type.credits_destination:
            return None
        destination = self.account_manager.get_account_by_iban(transfer.to_iban)
        return destination.id if destination else None

    @staticmethod
    def _check_owner(account: Account, requester_id: Optional[str]) -> None:
        if requester_id is not None and account.customer_id != requester_id:
            raise AuthorizationError(f"Account {account.id} does not belong to {requester_id}")

    @staticmethod
    def _clean_iban(to_iban: Optional[str]) -> str:
        if not to_iban or not to_iban.strip():
            raise ValidationError("Destination IBAN is required")
        return to_iban.strip()

    def _save_transfer(self, transfer: Transfer) -> None:
        """Save transfer to storage"""
        self.storage.save(self.table_name, transfer.id, self._transfer_to_dict(transfer))

    def _transfer_to_dict(self, transfer: Transfer) -> Dict:
        """Convert Transfer to dictionary for storage"""
        return {
            'id': transfer.id,
            'created_at': transfer.created_at.isoformat(),
            'updated_at': transfer.updated_at.isoformat(),
            'from_account_id': transfer.from_account_id,
            'to_iban': transfer.to_iban,
            'amount': str(transfer.amount.amount),
            'fee': str(transfer.fee.amount),
            'total_amount': str(transfer.total_amount.amount),
            'transfer_type': transfer.transfer_type.value,
            'status': transfer.status.value,
            'description': transfer.description,
            'category': transfer.category,
            'reference': transfer.reference,
            'error_message': transfer.error_message,
            'processed_at': transfer.processed_at.isoformat() if transfer.processed_at else None,
            'reversed_at': transfer.reversed_at.isoformat() if transfer.reversed_at else None
        }

    def _transfer_from_dict(self, data: Dict) -> Transfer:
        """Convert dictionary to Transfer"""
        processed_at = None
        if data.get('processed_at'):
            processed_at = datetime.fromisoformat(data['processed_at'])

        reversed_at = None
        if data.get('reversed_at'):
            reversed_at = datetime.fromisoformat(data['reversed_at'])

        return Transfer(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            from_account_id=data['from_account_id'],
            to_iban=data['to_iban'],
            amount=Money(Decimal(data['amount'])),
            fee=Money(Decimal(data['fee'])),
            total_amount=Money(Decimal(data['total_amount'])),
            transfer_type=TransferType(data['transfer_type']),
            status=TransferStatus(data['status']),
            description=data.get('description'),
            category=data.get('category'),
            reference=data.get('reference'),
            error_message=data.get('error_message'),
            processed_at=processed_at,
            reversed_at=reversed_at
        )
