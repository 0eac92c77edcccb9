"""
Tests for transfer classification and fee policy
"""

from decimal import Decimal

from aegis_banking.accounts import AccountClass, AccountManager
from aegis_banking.audit import AuditTrail
from aegis_banking.classification import TransferClassifier, TransferType
from aegis_banking.config import AegisConfig
from aegis_banking.currency import Money
from aegis_banking.fees import FeePolicy
from aegis_banking.storage import InMemoryStorage


class TestTransferClassifier:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.account_manager = AccountManager(self.storage, AuditTrail(self.storage), AegisConfig())
        self.classifier = TransferClassifier(self.account_manager)

        self.alice_checking = self.account_manager.create_account("ALICE", AccountClass.CHECKING, staff_initiated=True)
        self.alice_savings = self.account_manager.create_account("ALICE", AccountClass.SAVINGS, staff_initiated=True)
        self.bob_checking = self.account_manager.create_account("BOB", AccountClass.CHECKING, staff_initiated=True)

    def test_own_account_is_inter_account(self):
        assert self.classifier.classify(self.alice_savings.iban, "ALICE") == TransferType.INTER_ACCOUNT

    def test_other_local_customer_is_internal(self):
        assert self.classifier.classify(self.bob_checking.iban, "ALICE") == TransferType.INTERNAL

    def test_unknown_iban_is_external(self):
        assert self.classifier.classify("DE89370400440532013000", "ALICE") == TransferType.EXTERNAL

    def test_pending_destination_still_local(self):
        pending = self.account_manager.create_account("BOB", AccountClass.SAVINGS)
        assert self.classifier.classify(pending.iban, "ALICE") == TransferType.INTERNAL

    def test_classification_is_deterministic(self):
        results = {self.classifier.classify(self.bob_checking.iban, "ALICE") for _ in range(5)}
        assert results == {TransferType.INTERNAL}

    def test_only_external_skips_destination_credit(self):
        assert not TransferType.EXTERNAL.credits_destination
        assert TransferType.INTERNAL.credits_destination
        assert TransferType.INTER_ACCOUNT.credits_destination


class TestFeePolicy:

    def test_default_fees(self):
        policy = FeePolicy(AegisConfig())

        assert policy.fee_for(TransferType.EXTERNAL) == Money.of("0.50")
        assert policy.fee_for(TransferType.INTERNAL) == Money.zero()
        assert policy.fee_for(TransferType.INTER_ACCOUNT) == Money.zero()

    def test_configured_external_fee(self):
        policy = FeePolicy(AegisConfig(external_transfer_fee=Decimal("1.25")))
        assert policy.fee_for(TransferType.EXTERNAL) == Money.of("1.25")
