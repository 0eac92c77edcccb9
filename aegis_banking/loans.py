"""
Loan Management Module

Loan requests, staff decisions and administrative overrides. Approving a
loan materializes it as an ACTIVE LOAN account funded with the principal.
"""

from decimal import Decimal
from datetime import date, datetime, timezone
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union
from enum import Enum
import uuid

from .currency import Money, to_decimal
from .storage import StorageInterface, StorageRecord, created_between
from .audit import AuditTrail, AuditEventType
from .accounts import Account, AccountClass, AccountManager
from .amortization import AmortizationEntry, amortization_schedule, amortized_payment
from .config import AegisConfig, get_config
from .errors import AuthorizationError, NotFoundError, ValidationError
from .lifecycle import StateMachine, Transition
from .logging_config import get_logger, log_action


class LoanStatus(Enum):
    """Loan lifecycle states"""
    PENDING = "PENDING"        # Requested, awaiting decision
    APPROVED = "APPROVED"      # Approved, account materialized
    REJECTED = "REJECTED"      # Declined by staff or withdrawn by borrower
    ACTIVE = "ACTIVE"          # Being repaid
    PAID = "PAID"              # Fully repaid
    CANCELLED = "CANCELLED"    # Cancelled by staff


ALL_LOAN_STATUSES = frozenset(LoanStatus)

LOAN_LIFECYCLE = StateMachine("loan", {
    # Staff may correct an earlier decision
    "approve": Transition.of(ALL_LOAN_STATUSES, LoanStatus.APPROVED),
    "reject": Transition.of(ALL_LOAN_STATUSES, LoanStatus.REJECTED),
    "cancel": Transition.of(ALL_LOAN_STATUSES - {LoanStatus.CANCELLED}, LoanStatus.CANCELLED),
    "withdraw": Transition.of({LoanStatus.PENDING}, LoanStatus.REJECTED),
    "delete": Transition.of(ALL_LOAN_STATUSES - {LoanStatus.ACTIVE, LoanStatus.PAID}, None),
    "override": Transition.of(ALL_LOAN_STATUSES, *ALL_LOAN_STATUSES),
})

DECISION_EVENTS = {
    LoanStatus.APPROVED: "approve",
    LoanStatus.REJECTED: "reject",
}

# Status changes that only an administrative override can produce
OVERRIDE_ONLY_STATUSES = frozenset({LoanStatus.ACTIVE, LoanStatus.PAID})

DEFAULT_CANCEL_NOTES = "Cancelled by admin"
WITHDRAW_NOTES = "Cancelled by user"
LABEL_PURPOSE_LENGTH = 20


@dataclass
class Loan(StorageRecord):
    """Loan request and its current terms"""
    customer_id: str
    principal: Money
    interest_rate: Decimal       # Annual rate as a fraction, 0.05 = 5%
    term_months: int
    monthly_payment: Money
    status: LoanStatus = LoanStatus.PENDING
    purpose: Optional[str] = None
    admin_notes: Optional[str] = None
    account_id: Optional[str] = None  # Materialized LOAN account

    @property
    def total_repayment(self) -> Money:
        return self.monthly_payment * Decimal(self.term_months)


def loan_account_label(loan: Loan) -> str:
    """Display label of the account a loan materializes into"""
    purpose = (loan.purpose or "").strip()
    if not purpose:
        return f"Personal Loan #{loan.id}"
    capitalized = purpose[:1].upper() + purpose[1:].lower()
    return f"{capitalized[:LABEL_PURPOSE_LENGTH]} Loan"


class LoanManager:
    """
    Manages loan requests, decisions and loan account materialization
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        audit_trail: AuditTrail,
        config: Optional[AegisConfig] = None
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.audit_trail = audit_trail
        self.config = config or get_config()
        self.table_name = "loans"
        self.logger = get_logger("aegis.loans")

    def request_loan(
        self,
        customer_id: str,
        principal: Union[Money, Decimal, str],
        interest_rate: Union[Decimal, str],
        term_months: int,
        purpose: Optional[str] = None
    ) -> Loan:
        """
        Record a PENDING loan request with a provisional monthly payment

        Raises:
            ValidationError: If principal, rate or term are outside the configured limits
        """
        if not customer_id:
            raise ValidationError("Borrower is required")

        principal, interest_rate = self._validate_terms(principal, interest_rate, term_months)

        now = datetime.now(timezone.utc)
        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            customer_id=customer_id,
            principal=principal,
            interest_rate=interest_rate,
            term_months=term_months,
            monthly_payment=amortized_payment(principal, interest_rate, term_months),
            purpose=purpose
        )

        with self.storage.atomic():
            self._save_loan(loan)
            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_REQUESTED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "principal": principal.to_string(),
                    "interest_rate": str(interest_rate),
                    "term_months": term_months,
                    "monthly_payment": loan.monthly_payment.to_string()
                },
                user_id=customer_id
            )

        log_action(
            self.logger, "info", f"Loan requested: {principal.to_string()} over {term_months} months",
            user_id=customer_id, action="request_loan", resource=f"loan:{loan.id}"
        )
        return loan

    def _validate_terms(self, principal, interest_rate, term_months):
        principal = Money.of(principal)
        interest_rate = to_decimal(interest_rate, "interest rate")

        if not principal.is_positive():
            raise ValidationError("Principal must be positive")
        if principal.amount > self.config.max_loan_principal:
            raise ValidationError(
                f"Principal exceeds maximum of {Money.of(self.config.max_loan_principal).to_string()}"
            )
        if interest_rate < 0 or interest_rate > self.config.max_loan_interest_rate:
            raise ValidationError(
                f"Interest rate must be between 0 and {self.config.max_loan_interest_rate}"
            )
        if not isinstance(term_months, int) or term_months < 1 or term_months > self.config.max_loan_term_months:
            raise ValidationError(
                f"Term must be between 1 and {self.config.max_loan_term_months} months"
            )
        return principal, interest_rate

    def decide(self, loan_id: str, new_status: LoanStatus, notes: Optional[str] = None) -> Loan:
        """
        Staff decision on a loan

        Approval recomputes the monthly payment and materializes the loan
        account. A failed materialization is logged; the decision stands.

        Raises:
            ValidationError: If ``new_status`` is not APPROVED or REJECTED
            NotFoundError: Unknown loan
        """
        event = DECISION_EVENTS.get(new_status)
        if event is None:
            raise ValidationError("Decision must be APPROVED or REJECTED")

        with self.storage.atomic():
            loan = self._require_loan(loan_id)
            old_status = loan.status
            loan.status = LOAN_LIFECYCLE.apply(event, old_status, entity_id=loan_id)
            if notes is not None:
                loan.admin_notes = notes
            if new_status == LoanStatus.APPROVED:
                loan.monthly_payment = amortized_payment(loan.principal, loan.interest_rate, loan.term_months)
            loan.updated_at = datetime.now(timezone.utc)
            self._save_loan(loan)

            self.audit_trail.log_event(
                event_type=(AuditEventType.LOAN_APPROVED if new_status == LoanStatus.APPROVED
                            else AuditEventType.LOAN_REJECTED),
                entity_type="loan",
                entity_id=loan_id,
                metadata={
                    "old_status": old_status.value,
                    "new_status": loan.status.value,
                    "notes": notes
                }
            )

        log_action(
            self.logger, "info", f"Loan decision: {loan.status.value}",
            action=f"{event}_loan", resource=f"loan:{loan_id}",
            extra={"old_status": old_status.value, "new_status": loan.status.value}
        )

        if new_status == LoanStatus.APPROVED:
            self._materialize(loan)
        return loan

    def _materialize(self, loan: Loan) -> Optional[Account]:
        """Create the funded LOAN account for an approved loan, at most once"""
        if loan.account_id:
            existing = self.account_manager.get_account(loan.account_id)
            if existing:
                return existing

        try:
            with self.storage.atomic():
                account = self.account_manager.create_account(
                    loan.customer_id,
                    AccountClass.LOAN,
                    label=loan_account_label(loan),
                    staff_initiated=True
                )
                # Nobody else can see the new account yet, so taking its lock
                # inside this unit of work cannot invert the lock order
                account = self.account_manager.set_balance(account.id, loan.principal)

                loan.account_id = account.id
                loan.updated_at = datetime.now(timezone.utc)
                self._save_loan(loan)

                self.audit_trail.log_event(
                    event_type=AuditEventType.LOAN_ACCOUNT_MATERIALIZED,
                    entity_type="loan",
                    entity_id=loan.id,
                    metadata={"account_id": account.id, "iban": account.iban,
                              "balance": account.balance.to_string()}
                )
        except Exception:
            loan.account_id = None
            log_action(
                self.logger, "error", f"Failed to create loan account for loan {loan.id}",
                user_id=loan.customer_id, action="materialize_loan", resource=f"loan:{loan.id}",
                exc_info=True
            )
            return None

        log_action(
            self.logger, "info", f"Loan account created: {account.iban}",
            user_id=loan.customer_id, action="materialize_loan", resource=f"loan:{loan.id}",
            extra={"account_id": account.id}
        )
        return account

    def cancel(self, loan_id: str, reason: Optional[str] = None) -> Loan:
        """Cancel a loan; any materialized account is left untouched"""
        return self._simple_transition(loan_id, "cancel", reason or DEFAULT_CANCEL_NOTES,
                                       AuditEventType.LOAN_CANCELLED)

    def withdraw_request(self, loan_id: str, customer_id: str) -> Loan:
        """Borrower withdraws their own PENDING request"""
        loan = self._require_loan(loan_id)
        if loan.customer_id != customer_id:
            raise AuthorizationError(f"Loan {loan_id} does not belong to {customer_id}")
        return self._simple_transition(loan_id, "withdraw", WITHDRAW_NOTES,
                                       AuditEventType.LOAN_REJECTED, user_id=customer_id)

    def _simple_transition(self, loan_id: str, event: str, notes: str,
                           audit_type: AuditEventType, user_id: Optional[str] = None) -> Loan:
        with self.storage.atomic():
            loan = self._require_loan(loan_id)
            old_status = loan.status
            loan.status = LOAN_LIFECYCLE.apply(event, old_status, entity_id=loan_id)
            loan.admin_notes = notes
            loan.updated_at = datetime.now(timezone.utc)
            self._save_loan(loan)

            self.audit_trail.log_event(
                event_type=audit_type,
                entity_type="loan",
                entity_id=loan_id,
                metadata={"old_status": old_status.value, "new_status": loan.status.value,
                          "notes": notes},
                user_id=user_id
            )

        log_action(self.logger, "info", f"Loan {event}: {notes}", user_id=user_id,
                   action=f"{event}_loan", resource=f"loan:{loan_id}")
        return loan

    def admin_update(
        self,
        loan_id: str,
        status: Optional[LoanStatus] = None,
        principal: Optional[Union[Money, Decimal, str]] = None,
        interest_rate: Optional[Union[Decimal, str]] = None,
        term_months: Optional[int] = None,
        admin_notes: Optional[str] = None
    ) -> Loan:
        """
        Administrative override of status and terms

        Any status may be set from any status. The monthly payment is
        recomputed whenever a term changes.
        """
        with self.storage.atomic():
            loan = self._require_loan(loan_id)
            old_status = loan.status
            changes = {}

            if principal is not None:
                loan.principal = Money.of(principal)
                changes["principal"] = loan.principal.to_string()
            if interest_rate is not None:
                loan.interest_rate = to_decimal(interest_rate, "interest rate")
                changes["interest_rate"] = str(loan.interest_rate)
            if term_months is not None:
                loan.term_months = term_months
                changes["term_months"] = term_months
            if changes:
                loan.monthly_payment = amortized_payment(loan.principal, loan.interest_rate, loan.term_months)
                changes["monthly_payment"] = loan.monthly_payment.to_string()

            if status is not None and status != old_status:
                loan.status = LOAN_LIFECYCLE.apply("override", old_status, status, entity_id=loan_id)
                changes["status"] = status.value
                if status in OVERRIDE_ONLY_STATUSES or old_status in OVERRIDE_ONLY_STATUSES:
                    log_action(
                        self.logger, "warning",
                        f"Administrative loan status change {old_status.value} -> {status.value}",
                        action="admin_update_loan", resource=f"loan:{loan_id}"
                    )
            if admin_notes is not None:
                loan.admin_notes = admin_notes
                changes["admin_notes"] = admin_notes

            loan.updated_at = datetime.now(timezone.utc)
            self._save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_UPDATED,
                entity_type="loan",
                entity_id=loan_id,
                metadata=changes
            )

        return loan

    def delete_loan(self, loan_id: str, requester_id: Optional[str] = None) -> None:
        """
        Delete a loan that is not ACTIVE or PAID

        Borrowers may delete only their own loans. Staff deletion also removes
        the materialized loan account when it can be found.
        """
        loan = self._require_loan(loan_id)
        if requester_id is not None and loan.customer_id != requester_id:
            raise AuthorizationError(f"Loan {loan_id} does not belong to {requester_id}")

        account_id = self._find_loan_account_id(loan) if requester_id is None else None

        with self.account_manager.lock_accounts(account_id), self.storage.atomic():
            loan = self._require_loan(loan_id)
            LOAN_LIFECYCLE.apply("delete", loan.status, entity_id=loan_id)

            if account_id:
                self.account_manager.delete_account(account_id)
            self.storage.delete(self.table_name, loan_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_DELETED,
                entity_type="loan",
                entity_id=loan_id,
                metadata={"status": loan.status.value, "account_id": account_id},
                user_id=requester_id
            )
        if account_id:
            self.account_manager.forget_lock(account_id)

        log_action(self.logger, "info", "Loan deleted", user_id=requester_id,
                   action="delete_loan", resource=f"loan:{loan_id}")

    def _find_loan_account_id(self, loan: Loan) -> Optional[str]:
        if loan.account_id and self.account_manager.get_account(loan.account_id):
            return loan.account_id
        marker = f"#{loan.id}"
        for account in self.account_manager.get_customer_accounts(loan.customer_id):
            if account.is_loan_account and account.label and marker in account.label:
                return account.id
        return None

    # Queries

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan by ID"""
        loan_dict = self.storage.load(self.table_name, loan_id)
        if loan_dict:
            return self._loan_from_dict(loan_dict)
        return None

    def get_customer_loans(self, customer_id: str) -> List[Loan]:
        """Get all loans for a customer"""
        loans_data = self.storage.find(self.table_name, {'customer_id': customer_id})
        return [self._loan_from_dict(data) for data in loans_data]

    def get_loans_by_status(self, status: LoanStatus) -> List[Loan]:
        loans_data = self.storage.find(self.table_name, {'status': status.value})
        return [self._loan_from_dict(data) for data in loans_data]

    def count_by_status(self, status: LoanStatus) -> int:
        return len(self.storage.find(self.table_name, {'status': status.value}))

    def total_principal_by_status(self, status: LoanStatus) -> Money:
        total = Money.zero()
        for loan in self.get_loans_by_status(status):
            total = total + loan.principal
        return total

    def get_loans_by_amount_range(
        self,
        min_principal: Union[Money, Decimal, str],
        max_principal: Union[Money, Decimal, str],
        customer_id: Optional[str] = None
    ) -> List[Loan]:
        """Loans whose principal lies within the bounds inclusive, newest first"""
        low, high = Money.of(min_principal), Money.of(max_principal)
        if low > high:
            raise ValidationError("Minimum principal is above maximum principal")
        return self._search(lambda loan: low <= loan.principal <= high, customer_id)

    def get_loans_by_date_range(self, start: Union[date, datetime], end: Union[date, datetime],
                                customer_id: Optional[str] = None) -> List[Loan]:
        lower, upper = created_between(start, end)
        return self._search(lambda loan: lower <= loan.created_at <= upper, customer_id)

    def get_loans_by_purpose(self, text: str, customer_id: Optional[str] = None) -> List[Loan]:
        """Loans whose purpose contains ``text``, ignoring case"""
        needle = (text or "").strip().lower()
        if not needle:
            raise ValidationError("Search text is required")
        return self._search(lambda loan: needle in (loan.purpose or "").lower(), customer_id)

    def _search(self, predicate: Callable[[Loan], bool],
                customer_id: Optional[str]) -> List[Loan]:
        if customer_id is None:
            records = self.storage.load_all(self.table_name)
        else:
            records = self.storage.find(self.table_name, {'customer_id': customer_id})
        loans = [loan for loan in map(self._loan_from_dict, records) if predicate(loan)]
        loans.sort(key=lambda loan: loan.created_at, reverse=True)
        return loans

    def get_amortization_schedule(self, loan_id: str) -> List[AmortizationEntry]:
        """Repayment schedule for the loan's current terms"""
        loan = self._require_loan(loan_id)
        return amortization_schedule(loan.principal, loan.interest_rate, loan.term_months)

    # Persistence helpers

    def _require_loan(self, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id)
        if not loan:
            raise NotFoundError(f"Loan {loan_id} not found")
        return loan

    def _save_loan(self, loan: Loan) -> None:
        self.storage.save(self.table_name, loan.id, self._loan_to_dict(loan))

    def _loan_to_dict(self, loan: Loan) -> Dict:
        """Convert Loan to dictionary for storage"""
        return {
            'id': loan.id,
            'created_at': loan.created_at.isoformat(),
            'updated_at': loan.updated_at.isoformat(),
            'customer_id': loan.customer_id,
            'principal': str(loan.principal.amount),
            'interest_rate': str(loan.interest_rate),
            'term_months': loan.term_months,
            'monthly_payment': str(loan.monthly_payment.amount),
            'status': loan.status.value,
            'purpose': loan.purpose,
            'admin_notes': loan.admin_notes,
            'account_id': loan.account_id
        }

    def _loan_from_dict(self, data: Dict) -> Loan:
        """Convert dictionary to Loan"""
        return Loan(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            customer_id=data['customer_id'],
            principal=Money(Decimal(data['principal'])),
            interest_rate=Decimal(data['interest_rate']),
            term_months=int(data['term_months']),
            monthly_payment=Money(Decimal(data['monthly_payment'])),
            status=LoanStatus(data['status']),
            purpose=data.get('purpose'),
            admin_notes=data.get('admin_notes'),
            account_id=data.get('account_id')
        )
