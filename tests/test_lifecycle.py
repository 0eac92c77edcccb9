"""
Tests for the declared lifecycle tables
"""

import pytest

from aegis_banking.accounts import ACCOUNT_LIFECYCLE, AccountStatus
from aegis_banking.errors import InvalidStateError
from aegis_banking.loans import LOAN_LIFECYCLE, LoanStatus
from aegis_banking.transfers import TRANSFER_LIFECYCLE, TransferStatus


class TestAccountLifecycle:

    def test_approve_only_from_pending(self):
        assert ACCOUNT_LIFECYCLE.apply("approve", AccountStatus.PENDING) == AccountStatus.ACTIVE
        with pytest.raises(InvalidStateError, match="Cannot approve account"):
            ACCOUNT_LIFECYCLE.apply("approve", AccountStatus.ACTIVE)

    def test_freeze_and_unfreeze(self):
        assert ACCOUNT_LIFECYCLE.apply("freeze", AccountStatus.ACTIVE) == AccountStatus.FROZEN
        assert ACCOUNT_LIFECYCLE.apply("unfreeze", AccountStatus.FROZEN) == AccountStatus.ACTIVE
        assert not ACCOUNT_LIFECYCLE.can_apply("freeze", AccountStatus.FROZEN)
        assert not ACCOUNT_LIFECYCLE.can_apply("unfreeze", AccountStatus.ACTIVE)

    def test_cancel_from_any_open_status(self):
        for status in (AccountStatus.PENDING, AccountStatus.ACTIVE, AccountStatus.FROZEN):
            assert ACCOUNT_LIFECYCLE.apply("cancel", status) == AccountStatus.CANCELLED
        with pytest.raises(InvalidStateError):
            ACCOUNT_LIFECYCLE.apply("cancel", AccountStatus.CANCELLED)

    def test_reject_removes(self):
        assert ACCOUNT_LIFECYCLE.apply("reject", AccountStatus.PENDING) is None

    def test_unknown_event(self):
        with pytest.raises(InvalidStateError, match="Unknown account event"):
            ACCOUNT_LIFECYCLE.apply("close", AccountStatus.ACTIVE)


class TestTransferLifecycle:

    def test_pending_exits(self):
        assert TRANSFER_LIFECYCLE.apply("complete", TransferStatus.PENDING) == TransferStatus.COMPLETED
        assert TRANSFER_LIFECYCLE.apply("fail", TransferStatus.PENDING) == TransferStatus.FAILED
        assert TRANSFER_LIFECYCLE.apply("cancel", TransferStatus.PENDING) == TransferStatus.CANCELLED

    def test_reversal_only_from_completed(self):
        assert TRANSFER_LIFECYCLE.apply("reverse", TransferStatus.COMPLETED) == TransferStatus.CANCELLED
        for status in (TransferStatus.PENDING, TransferStatus.FAILED, TransferStatus.CANCELLED):
            assert not TRANSFER_LIFECYCLE.can_apply("reverse", status)

    def test_terminal_states(self):
        for status in (TransferStatus.FAILED, TransferStatus.CANCELLED):
            for event in ("complete", "fail", "cancel", "update"):
                assert not TRANSFER_LIFECYCLE.can_apply(event, status)

    def test_error_message_names_entity_and_status(self):
        with pytest.raises(InvalidStateError) as excinfo:
            TRANSFER_LIFECYCLE.apply("complete", TransferStatus.COMPLETED, entity_id="T1")
        assert "transfer T1" in str(excinfo.value)
        assert "COMPLETED" in str(excinfo.value)

    def test_staff_delete_excludes_completed(self):
        assert not TRANSFER_LIFECYCLE.can_apply("staff_delete", TransferStatus.COMPLETED)
        assert TRANSFER_LIFECYCLE.can_apply("staff_delete", TransferStatus.FAILED)
        assert not TRANSFER_LIFECYCLE.can_apply("delete", TransferStatus.FAILED)


class TestLoanLifecycle:

    def test_decisions_from_any_status(self):
        for status in LoanStatus:
            assert LOAN_LIFECYCLE.apply("approve", status) == LoanStatus.APPROVED
            assert LOAN_LIFECYCLE.apply("reject", status) == LoanStatus.REJECTED

    def test_cancel_not_twice(self):
        assert LOAN_LIFECYCLE.apply("cancel", LoanStatus.ACTIVE) == LoanStatus.CANCELLED
        with pytest.raises(InvalidStateError):
            LOAN_LIFECYCLE.apply("cancel", LoanStatus.CANCELLED)

    def test_withdraw_only_pending(self):
        assert LOAN_LIFECYCLE.apply("withdraw", LoanStatus.PENDING) == LoanStatus.REJECTED
        assert not LOAN_LIFECYCLE.can_apply("withdraw", LoanStatus.APPROVED)

    def test_override_requires_target(self):
        with pytest.raises(InvalidStateError, match="explicit target"):
            LOAN_LIFECYCLE.apply("override", LoanStatus.PENDING)
        assert LOAN_LIFECYCLE.apply("override", LoanStatus.ACTIVE, LoanStatus.PAID) == LoanStatus.PAID

    def test_delete_blocked_for_active_and_paid(self):
        assert not LOAN_LIFECYCLE.can_apply("delete", LoanStatus.ACTIVE)
        assert not LOAN_LIFECYCLE.can_apply("delete", LoanStatus.PAID)
        assert LOAN_LIFECYCLE.can_apply("delete", LoanStatus.REJECTED)
