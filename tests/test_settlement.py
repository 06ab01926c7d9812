"""
tests/test_settlement.py

SettlementEngine: preconditions, proportional amounts, partial fills,
soft-fail and atomic settlement.
"""

import threading

import pytest
from eth_utils import to_checksum_address

from orderseal.config import ExchangeConfig
from orderseal.core.codec import fingerprint, token_pair_hash
from orderseal.core.crypto import MakerKeyManager
from orderseal.core.exceptions import (
    InsufficientBalance,
    InsufficientBalanceOrAllowance,
    InsufficientRemaining,
    InvalidFillAmount,
    InvalidOrder,
    InvalidSignature,
    JournalError,
    OrderExpired,
    SettlementError,
    TakerMismatch,
)
from orderseal.core.models import EventType, SignedOrder
from orderseal.core.codec import sign_order
from orderseal.ledger.tokens import TokenLedger
from orderseal.settlement.engine import SettlementEngine

from tests.helpers.order_factory import (
    EXCHANGE,
    FEE_RECIPIENT,
    FEE_TOKEN,
    NOW,
    OTHER_EXCHANGE,
    OTHER_TAKER,
    PROXY,
    TAKER,
    TOKEN_A,
    TOKEN_B,
    RefusingJournal,
    fixed_clock,
    fund,
    make_order,
    make_signed,
)


def balances(ledger, maker):
    """Snapshot of every balance a default order can touch."""
    return {
        (token, owner): ledger.balance_of(token, owner)
        for token in (TOKEN_A, TOKEN_B, FEE_TOKEN)
        for owner in (maker, TAKER, FEE_RECIPIENT)
    }


# ─────────────────────────────────────────────────────────────
# Proportional amounts
# ─────────────────────────────────────────────────────────────

class TestProportionalFill:

    def test_half_fill_of_even_order(self, engine, funded, maker_key):
        signed = make_signed(maker_key)
        result = engine.fill(signed, TAKER, 50)

        assert result.filled_taker_amount == 50
        assert result.filled_maker_amount == 50
        assert result.paid_maker_fee == 5
        assert result.paid_taker_fee == 10

        maker = maker_key.address
        assert funded.balance_of(TOKEN_A, maker) == 950
        assert funded.balance_of(TOKEN_A, TAKER) == 50
        assert funded.balance_of(TOKEN_B, TAKER) == 950
        assert funded.balance_of(TOKEN_B, maker) == 50
        assert funded.balance_of(FEE_TOKEN, maker) == 995
        assert funded.balance_of(FEE_TOKEN, TAKER) == 990
        assert funded.balance_of(FEE_TOKEN, FEE_RECIPIENT) == 15

    def test_two_to_one_ratio(self, engine, funded, maker_key):
        signed = make_signed(maker_key, maker_token_amount=200, taker_token_amount=100)
        result = engine.fill(signed, TAKER, 50)

        assert result.filled_maker_amount == 100
        # Fees scale with the maker-side ratio: 100 / 200.
        assert result.paid_maker_fee == 5
        assert result.paid_taker_fee == 10

    def test_amounts_round_down(self, engine, funded, maker_key):
        signed = make_signed(maker_key, maker_token_amount=100, taker_token_amount=30)
        result = engine.fill(signed, TAKER, 7)

        assert result.filled_maker_amount == 700 // 30
        assert result.paid_maker_fee == 10 * (700 // 30) // 100
        assert result.paid_taker_fee == 20 * (700 // 30) // 100

    def test_no_fee_recipient_pays_no_fees(self, engine, ledger, maker_key):
        fund(ledger, TOKEN_A, maker_key.address, 100)
        fund(ledger, TOKEN_B, TAKER, 100)
        signed = make_signed(maker_key, fee_recipient=None)

        result = engine.fill(signed, TAKER, 100)

        assert (result.paid_maker_fee, result.paid_taker_fee) == (0, 0)
        assert result.event.fee_recipient is None
        assert ledger.balance_of(FEE_TOKEN, maker_key.address) == 0

    def test_full_fill_pays_full_fees(self, engine, funded, maker_key):
        result = engine.fill(make_signed(maker_key), TAKER, 100)
        assert (result.paid_maker_fee, result.paid_taker_fee) == (10, 20)


# ─────────────────────────────────────────────────────────────
# Partial fills and the fill ledger
# ─────────────────────────────────────────────────────────────

class TestPartialFills:

    def test_request_beyond_remaining_is_clamped(self, engine, funded, maker_key, journal):
        signed = make_signed(maker_key)
        engine.fill(signed, TAKER, 40)

        result = engine.fill(signed, TAKER, 100)

        assert result.filled_taker_amount == 60
        assert journal.events[-1].filled_taker_amount == 60
        assert engine.remaining_amount(signed.order) == 0

    def test_fully_filled_order_is_a_quiet_no_op(self, engine, funded, maker_key, journal):
        signed = make_signed(maker_key)
        engine.fill(signed, TAKER, 100)
        before = balances(funded, maker_key.address)

        result = engine.fill(signed, TAKER, 100, strict=False)

        assert result.is_empty
        assert result.event is None
        assert len(journal) == 1
        assert balances(funded, maker_key.address) == before

    def test_zero_request_moves_nothing(self, engine, funded, maker_key, journal):
        result = engine.fill(make_signed(maker_key), TAKER, 0)
        assert result.is_empty
        assert len(journal) == 0

    def test_cumulative_fill_is_monotonic_and_bounded(self, engine, funded, maker_key):
        signed = make_signed(maker_key)
        order_hash = fingerprint(signed.order)
        seen = []
        for _ in range(5):
            engine.fill(signed, TAKER, 30)
            seen.append(engine.filled_amount(order_hash))

        assert seen == [30, 60, 90, 100, 100]

    def test_filled_amount_of_unknown_order_is_zero(self, engine):
        assert engine.filled_amount("0x" + "00" * 32) == 0

    def test_fill_event_fields(self, engine, funded, maker_key, journal):
        signed = make_signed(maker_key)
        engine.fill(signed, TAKER, 50)

        [event] = journal.of_type(EventType.FILL)
        assert event.maker == maker_key.address
        assert event.taker == to_checksum_address(TAKER)
        assert event.fee_recipient == to_checksum_address(FEE_RECIPIENT)
        assert event.tokens == token_pair_hash(TOKEN_A, TOKEN_B)
        assert event.order_hash == fingerprint(signed.order)
        assert event.to_dict()["filled_maker_amount"] == "50"

    def test_concurrent_fills_never_overfill(self, engine, funded, maker_key):
        signed = make_signed(maker_key)
        errors = []

        def fill_many():
            try:
                for _ in range(20):
                    engine.fill(signed, TAKER, 1)
            except Exception as e:
                errors.append(str(e))

        threads = [threading.Thread(target=fill_many) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert engine.filled_amount(fingerprint(signed.order)) == 100
        assert funded.balance_of(TOKEN_A, TAKER) == 100


# ─────────────────────────────────────────────────────────────
# Preconditions
# ─────────────────────────────────────────────────────────────

class TestPreconditions:

    def test_expired_order_rejected(self, engine, funded, maker_key):
        with pytest.raises(OrderExpired):
            engine.fill(make_signed(maker_key, expiration=NOW - 1), TAKER, 10)

    def test_order_expiring_now_is_still_fillable(self, engine, funded, maker_key):
        assert engine.fill(make_signed(maker_key, expiration=NOW), TAKER, 10).filled_taker_amount == 10

    def test_reserved_taker_enforced(self, engine, funded, maker_key):
        signed = make_signed(maker_key, taker=TAKER)
        fund(funded, TOKEN_B, OTHER_TAKER, 100)
        fund(funded, FEE_TOKEN, OTHER_TAKER, 100)

        with pytest.raises(TakerMismatch):
            engine.fill(signed, OTHER_TAKER, 10)
        assert engine.fill(signed, TAKER, 10).filled_taker_amount == 10

    def test_signature_from_non_maker_rejected(self, engine, funded, maker_key):
        order = make_order(maker_key.address)
        forged = SignedOrder(order=order, signature=sign_order(order, MakerKeyManager.generate()))
        with pytest.raises(InvalidSignature):
            engine.fill(forged, TAKER, 10)

    def test_expiry_checked_before_signature(self, engine, funded, maker_key):
        order = make_order(maker_key.address, expiration=NOW - 1)
        forged = SignedOrder(order=order, signature=sign_order(order, MakerKeyManager.generate()))
        with pytest.raises(OrderExpired):
            engine.fill(forged, TAKER, 10)

    def test_taker_checked_before_signature(self, engine, funded, maker_key):
        order = make_order(maker_key.address, taker=TAKER)
        forged = SignedOrder(order=order, signature=sign_order(order, MakerKeyManager.generate()))
        with pytest.raises(TakerMismatch):
            engine.fill(forged, OTHER_TAKER, 10)

    def test_zero_amount_order_rejected(self, engine, funded, maker_key):
        with pytest.raises(InvalidOrder):
            engine.fill(make_signed(maker_key, taker_token_amount=0), TAKER, 10)

    def test_foreign_exchange_rejected(self, engine, funded, maker_key):
        with pytest.raises(InvalidOrder):
            engine.fill(make_signed(maker_key, exchange_address=OTHER_EXCHANGE), TAKER, 10)

    def test_negative_request_rejected(self, engine, funded, maker_key):
        with pytest.raises(InvalidFillAmount):
            engine.fill(make_signed(maker_key), TAKER, -1)

    def test_errors_share_a_base(self):
        assert issubclass(InsufficientBalanceOrAllowance, SettlementError)
        assert issubclass(TakerMismatch, SettlementError)


# ─────────────────────────────────────────────────────────────
# Insufficient funds: strict and soft-fail
# ─────────────────────────────────────────────────────────────

class TestInsufficientFunds:

    def test_soft_fail_on_low_balance_changes_nothing(self, engine, funded, maker_key, journal):
        funded.set_balance(TOKEN_B, TAKER, 10)
        signed = make_signed(maker_key)
        before = balances(funded, maker_key.address)

        result = engine.fill(signed, TAKER, 50, strict=False)

        assert result.is_empty
        assert len(journal) == 0
        assert engine.filled_amount(fingerprint(signed.order)) == 0
        assert balances(funded, maker_key.address) == before

    def test_soft_fail_on_low_allowance(self, engine, funded, maker_key):
        funded.approve(TOKEN_A, maker_key.address, PROXY, 10)
        result = engine.fill(make_signed(maker_key), TAKER, 50, strict=False)
        assert result.is_empty

    def test_strict_fill_raises_and_changes_nothing(self, engine, funded, maker_key, journal):
        funded.set_balance(FEE_TOKEN, TAKER, 0)
        signed = make_signed(maker_key)
        before = balances(funded, maker_key.address)

        with pytest.raises(InsufficientBalanceOrAllowance) as exc_info:
            engine.fill(signed, TAKER, 50)

        assert exc_info.value.details["token"] == to_checksum_address(FEE_TOKEN)
        assert balances(funded, maker_key.address) == before
        assert engine.filled_amount(fingerprint(signed.order)) == 0
        assert len(journal) == 0

    def test_maker_token_as_fee_token_needs_combined_amount(self, ledger, journal, maker_key):
        engine = SettlementEngine(
            ledger,
            ExchangeConfig(exchange_address=EXCHANGE, proxy_address=PROXY, fee_token=TOKEN_A),
            journal=journal,
            clock=fixed_clock(),
        )
        fund(ledger, TOKEN_A, maker_key.address, 54)
        fund(ledger, TOKEN_B, TAKER, 100)
        fund(ledger, TOKEN_A, TAKER, 100)
        signed = make_signed(maker_key)

        # 50 maker tokens plus a 5 token maker fee, all in TOKEN_A.
        assert engine.fill(signed, TAKER, 50, strict=False).is_empty

        fund(ledger, TOKEN_A, maker_key.address, 55)
        result = engine.fill(signed, TAKER, 50, strict=False)
        assert result.filled_maker_amount == 50
        assert ledger.balance_of(TOKEN_A, maker_key.address) == 0


# ─────────────────────────────────────────────────────────────
# Fill or kill
# ─────────────────────────────────────────────────────────────

class TestFillOrKill:

    def test_exact_amount_fills(self, engine, funded, maker_key):
        result = engine.fill_or_kill(make_signed(maker_key), TAKER, 100)
        assert result.filled_taker_amount == 100

    def test_amount_above_remaining_rejected(self, engine, funded, maker_key, journal):
        signed = make_signed(maker_key)
        engine.fill(signed, TAKER, 40)

        with pytest.raises(InsufficientRemaining):
            engine.fill_or_kill(signed, TAKER, 70)
        assert len(journal) == 1
        assert engine.fill_or_kill(signed, TAKER, 60).filled_taker_amount == 60

    def test_is_always_strict(self, engine, funded, maker_key):
        funded.set_balance(TOKEN_B, TAKER, 0)
        with pytest.raises(InsufficientBalanceOrAllowance):
            engine.fill_or_kill(make_signed(maker_key), TAKER, 10)


# ─────────────────────────────────────────────────────────────
# Failures during settlement
# ─────────────────────────────────────────────────────────────

class FailingThirdTransferLedger(TokenLedger):
    """Passes every transferability check, then fails the third pull."""

    def __init__(self):
        super().__init__()
        self.pulls = 0

    def is_transferable(self, token, owner, spender, amount):
        return True

    def transfer_from(self, token, spender, owner, recipient, amount):
        self.pulls += 1
        if self.pulls == 3:
            raise InsufficientBalance(
                "Balance too low for transfer", {"token": token, "owner": owner, "amount": amount}
            )
        super().transfer_from(token, spender, owner, recipient, amount)


class TestSettlementFailures:

    @pytest.fixture
    def failing_ledger(self, maker_key):
        ledger = FailingThirdTransferLedger()
        fund(ledger, TOKEN_A, maker_key.address, 1000)
        fund(ledger, FEE_TOKEN, maker_key.address, 1000)
        fund(ledger, TOKEN_B, TAKER, 1000)
        fund(ledger, FEE_TOKEN, TAKER, 1000)
        return ledger

    @pytest.fixture
    def failing_engine(self, failing_ledger, exchange_config, journal):
        return SettlementEngine(failing_ledger, exchange_config, journal=journal, clock=fixed_clock())

    def test_strict_fill_rolls_back_partial_transfers(
        self, failing_engine, failing_ledger, maker_key, journal,
    ):
        signed = make_signed(maker_key)
        before = balances(failing_ledger, maker_key.address)

        with pytest.raises(InsufficientBalanceOrAllowance) as exc_info:
            failing_engine.fill(signed, TAKER, 50)

        assert isinstance(exc_info.value.__cause__, InsufficientBalance)
        assert exc_info.value.details["order_hash"] == fingerprint(signed.order)
        assert balances(failing_ledger, maker_key.address) == before
        assert failing_engine.filled_amount(fingerprint(signed.order)) == 0
        assert len(journal) == 0

    def test_soft_fill_returns_empty_result(
        self, failing_engine, failing_ledger, maker_key, journal,
    ):
        signed = make_signed(maker_key)
        before = balances(failing_ledger, maker_key.address)

        result = failing_engine.fill(signed, TAKER, 50, strict=False)

        assert result.is_empty
        assert balances(failing_ledger, maker_key.address) == before
        assert failing_engine.filled_amount(fingerprint(signed.order)) == 0
        assert len(journal) == 0

    def test_journal_failure_rolls_back_fill(self, ledger, funded, exchange_config, maker_key):
        journal = RefusingJournal(EventType.FILL)
        engine = SettlementEngine(ledger, exchange_config, journal=journal, clock=fixed_clock())
        signed = make_signed(maker_key)
        before = balances(ledger, maker_key.address)

        with pytest.raises(JournalError):
            engine.fill(signed, TAKER, 50)

        assert balances(ledger, maker_key.address) == before
        assert engine.filled_amount(fingerprint(signed.order)) == 0
        assert len(journal) == 0

    def test_journal_failure_keeps_earlier_fills(self, ledger, funded, exchange_config, maker_key):
        journal = RefusingJournal(EventType.SALE_FINISHED)
        engine = SettlementEngine(ledger, exchange_config, journal=journal, clock=fixed_clock())
        signed = make_signed(maker_key)
        engine.fill(signed, TAKER, 30)

        journal.refused_type = EventType.FILL
        with pytest.raises(JournalError):
            engine.fill(signed, TAKER, 20)

        assert engine.filled_amount(fingerprint(signed.order)) == 30
        assert ledger.balance_of(TOKEN_B, maker_key.address) == 30
        assert len(journal) == 1
