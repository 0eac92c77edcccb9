"""
Test suite for accounts module

Provisioning, IBAN allocation, lifecycle transitions, balance primitives
and deletion.
"""

import itertools
import random
import re

import pytest
from decimal import Decimal

from aegis_banking.accounts import (
    AccountClass, AccountManager, AccountStatus, IbanGenerator
)
from aegis_banking.audit import AuditEventType, AuditTrail
from aegis_banking.config import AegisConfig
from aegis_banking.currency import Money
from aegis_banking.errors import (
    InsufficientFundsError, InvalidStateError, NotFoundError,
    ResourceExhaustedError, ValidationError
)
from aegis_banking.storage import InMemoryStorage


IBAN_PATTERN = re.compile(r"^GR\d{2}1234\d{16}$")


class TestIbanGenerator:

    def test_format(self):
        generator = IbanGenerator(rng=random.Random(42))
        for _ in range(20):
            assert IBAN_PATTERN.match(generator())

    def test_configurable_codes(self):
        generator = IbanGenerator(country_code="CY", bank_code="0099", rng=random.Random(1))
        iban = generator()
        assert iban.startswith("CY")
        assert iban[4:8] == "0099"
        assert len(iban) == 24


class TestAccountManager:
    """Test account provisioning and lifecycle"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.config = AegisConfig()
        self.account_manager = AccountManager(self.storage, self.audit_trail, self.config)

    def _active_account(self, customer_id="CUST001", balance="0.00"):
        account = self.account_manager.create_account(customer_id, AccountClass.CHECKING, staff_initiated=True)
        if Decimal(balance):
            account = self.account_manager.set_balance(account.id, Money.of(balance))
        return account

    def test_self_service_account_starts_pending(self):
        account = self.account_manager.create_account("CUST001", AccountClass.SAVINGS, label="Savings")

        assert account.status == AccountStatus.PENDING
        assert account.balance == Money.zero()
        assert account.label == "Savings"
        assert IBAN_PATTERN.match(account.iban)
        assert self.account_manager.get_account(account.id) == account

    def test_staff_account_starts_active(self):
        account = self.account_manager.create_account("CUST001", AccountClass.CHECKING, staff_initiated=True)
        assert account.status == AccountStatus.ACTIVE

    def test_create_requires_owner_and_class(self):
        with pytest.raises(ValidationError, match="owner"):
            self.account_manager.create_account("", AccountClass.CHECKING)
        with pytest.raises(ValidationError, match="class"):
            self.account_manager.create_account("CUST001", None)

    def test_iban_collision_resamples(self):
        ibans = iter(["GR001234" + "0" * 16, "GR001234" + "0" * 16, "GR001234" + "0" * 15 + "1"])
        manager = AccountManager(self.storage, self.audit_trail, self.config,
                                 iban_generator=lambda: next(ibans))

        first = manager.create_account("CUST001", AccountClass.CHECKING)
        second = manager.create_account("CUST002", AccountClass.CHECKING)

        assert first.iban != second.iban
        assert second.iban.endswith("1")

    def test_iban_allocation_is_capped(self):
        taken = "GR001234" + "0" * 16
        manager = AccountManager(self.storage, self.audit_trail, self.config,
                                 iban_generator=itertools.repeat(taken).__next__)
        manager.create_account("CUST001", AccountClass.CHECKING)

        with pytest.raises(ResourceExhaustedError):
            manager.create_account("CUST002", AccountClass.CHECKING)
        assert len(manager.get_all_accounts()) == 1

    def test_lookup_by_iban(self):
        account = self._active_account()

        assert self.account_manager.get_account_by_iban(account.iban).id == account.id
        assert self.account_manager.exists_by_iban(account.iban)
        assert self.account_manager.get_account_by_iban("GR99000000") is None
        assert not self.account_manager.exists_by_iban("GR99000000")

    def test_customer_and_pending_queries(self):
        pending = self.account_manager.create_account("CUST001", AccountClass.CHECKING)
        active = self._active_account("CUST001")
        self._active_account("CUST002")

        assert {a.id for a in self.account_manager.get_customer_accounts("CUST001")} == {pending.id, active.id}
        assert [a.id for a in self.account_manager.get_pending_accounts()] == [pending.id]
        assert len(self.account_manager.get_all_accounts()) == 3
        assert self.account_manager.is_owned_by(active.id, "CUST001")
        assert not self.account_manager.is_owned_by(active.id, "CUST002")
        assert not self.account_manager.is_owned_by("missing", "CUST001")

    def test_approve(self):
        account = self.account_manager.create_account("CUST001", AccountClass.CHECKING)
        approved = self.account_manager.approve(account.id)

        assert approved.status == AccountStatus.ACTIVE
        with pytest.raises(InvalidStateError):
            self.account_manager.approve(account.id)

    def test_reject_deletes_pending_account(self):
        account = self.account_manager.create_account("CUST001", AccountClass.CHECKING)
        self.account_manager.reject(account.id)

        assert self.account_manager.get_account(account.id) is None
        events = self.audit_trail.get_events_by_type(AuditEventType.ACCOUNT_REJECTED)
        assert len(events) == 1

    def test_reject_active_account_fails(self):
        account = self._active_account()
        with pytest.raises(InvalidStateError):
            self.account_manager.reject(account.id)
        assert self.account_manager.get_account(account.id) is not None

    def test_freeze_and_unfreeze(self):
        account = self._active_account()

        assert self.account_manager.freeze(account.id).status == AccountStatus.FROZEN
        with pytest.raises(InvalidStateError):
            self.account_manager.freeze(account.id)

        assert self.account_manager.unfreeze(account.id).status == AccountStatus.ACTIVE
        with pytest.raises(InvalidStateError):
            self.account_manager.unfreeze(account.id)

    def test_freeze_pending_account_fails(self):
        account = self.account_manager.create_account("CUST001", AccountClass.CHECKING)
        with pytest.raises(InvalidStateError):
            self.account_manager.freeze(account.id)

    def test_cancel(self):
        account = self._active_account()
        assert self.account_manager.cancel(account.id).status == AccountStatus.CANCELLED
        with pytest.raises(InvalidStateError):
            self.account_manager.cancel(account.id)

    def test_unknown_account(self):
        with pytest.raises(NotFoundError):
            self.account_manager.approve("missing")
        assert self.account_manager.get_account("missing") is None

    def test_can_withdraw(self):
        account = self._active_account(balance="100.00")

        assert self.account_manager.can_withdraw(account.id, Money.of("100.00"))
        assert not self.account_manager.can_withdraw(account.id, Money.of("100.01"))
        assert not self.account_manager.can_withdraw("missing", Money.of("1.00"))

        self.account_manager.freeze(account.id)
        assert not self.account_manager.can_withdraw(account.id, Money.of("1.00"))

    def test_debit_and_credit(self):
        account = self._active_account(balance="100.00")

        self.account_manager.debit(account.id, Money.of("30.25"))
        self.account_manager.credit(account.id, Money.of("0.25"))

        assert self.account_manager.get_account(account.id).balance == Money.of("70.00")

    def test_debit_checks_funds(self):
        account = self._active_account(balance="10.00")

        with pytest.raises(InsufficientFundsError):
            self.account_manager.debit(account.id, Money.of("10.01"))
        assert self.account_manager.get_account(account.id).balance == Money.of("10.00")

    def test_unchecked_debit_may_go_negative(self):
        account = self._active_account(balance="10.00")
        self.account_manager.debit(account.id, Money.of("15.00"), check_funds=False)
        assert self.account_manager.get_account(account.id).balance == Money.of("-5.00")

    def test_set_balance(self):
        account = self._active_account()
        updated = self.account_manager.set_balance(account.id, Money.of("5000.00"))

        assert updated.balance == Money.of("5000.00")
        events = self.audit_trail.get_events_by_type(AuditEventType.BALANCE_ADJUSTED)
        assert events[-1].metadata["new_balance"] == "EUR 5,000.00"

    def test_set_negative_balance_rejected(self):
        account = self._active_account()
        with pytest.raises(ValidationError, match="negative"):
            self.account_manager.set_balance(account.id, Money.of("-1.00"))

    def test_update_label(self):
        account = self._active_account()
        assert self.account_manager.update_label(account.id, "Holidays").label == "Holidays"

    def test_delete_account(self):
        account = self._active_account()
        assert self.account_manager.delete_account(account.id)
        assert not self.account_manager.delete_account(account.id)

    def test_deletion_prunes_account_locks(self):
        kept = self._active_account()
        deleted = self._active_account("CUST002")
        cascaded = self._active_account("CUST003")
        rejected = self.account_manager.create_account("CUST004", AccountClass.CHECKING)
        for account in (kept, deleted, cascaded, rejected):
            with self.account_manager.lock_accounts(account.id):
                pass

        self.account_manager.delete_account(deleted.id)
        self.account_manager.delete_account_permanently(cascaded.id)
        self.account_manager.reject(rejected.id)

        assert set(self.account_manager.locks._locks) == {kept.id}

    def test_deletion_inside_open_unit_of_work_keeps_lock(self):
        account = self._active_account()
        with self.storage.atomic():
            self.account_manager.delete_account(account.id)
            assert account.id in self.account_manager.locks._locks

    def test_delete_account_permanently_cascades_outgoing_transfers(self):
        account = self._active_account()
        other = self._active_account("CUST002")
        self.storage.save("transfers", "T1", {"id": "T1", "from_account_id": account.id, "to_iban": other.iban})
        self.storage.save("transfers", "T2", {"id": "T2", "from_account_id": other.id, "to_iban": account.iban})

        removed = self.account_manager.delete_account_permanently(account.id)

        assert removed == 1
        assert self.account_manager.get_account(account.id) is None
        assert not self.storage.exists("transfers", "T1")
        assert self.storage.exists("transfers", "T2")

    def test_lifecycle_is_audited(self):
        account = self.account_manager.create_account("CUST001", AccountClass.CHECKING)
        self.account_manager.approve(account.id)
        self.account_manager.freeze(account.id)

        events = self.audit_trail.get_events_for_entity("account", account.id)
        assert [e.event_type for e in events] == [
            AuditEventType.ACCOUNT_CREATED,
            AuditEventType.ACCOUNT_APPROVED,
            AuditEventType.ACCOUNT_FROZEN,
        ]
