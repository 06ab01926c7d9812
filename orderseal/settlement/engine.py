"""
Settlement engine: fills signed orders against the token ledger.
"""

import logging
import threading
from collections import OrderedDict
from typing import Dict, Optional, Tuple

from orderseal.config import ExchangeConfig
from orderseal.core import codec
from orderseal.core.exceptions import (
    InsufficientBalanceOrAllowance,
    InsufficientRemaining,
    InvalidFillAmount,
    InvalidOrder,
    InvalidSignature,
    OrderExpired,
    TakerMismatch,
    TransferError,
)
from orderseal.core.models import (
    FillEvent,
    FillResult,
    Order,
    Signature,
    SignedOrder,
    normalize_address,
)
from orderseal.core.time import Clock, unix_now
from orderseal.journal.journal import EventJournal, MemoryJournal
from orderseal.ledger.tokens import TokenLedger

logger = logging.getLogger(__name__)


class SettlementEngine:
    """
    Settles signed orders, one fill at a time.

    Owns the fill ledger (order_hash → cumulative filled taker amount).
    Each fill moves up to four transfers through the ledger inside one
    atomic scope, pulling funds as `proxy_address`:

        maker → taker           filled maker amount of maker_token
        taker → maker           filled taker amount of taker_token
        maker → fee_recipient   paid maker fee in fee_token
        taker → fee_recipient   paid taker fee in fee_token

    Both fees scale with the maker-side ratio (filled maker amount over
    maker_token_amount). Orders without a fee recipient pay no fees.

    The fill ledger update joins the same scope, and the Fill event is
    emitted only when the outermost scope commits. A journal failure rolls
    the fill back.

    Every public operation runs under `lock`, a re-entrant lock that callers
    composing several engine calls into one unit (the sale controller) hold
    around the whole unit.
    """

    def __init__(
        self,
        ledger:  TokenLedger,
        config:  ExchangeConfig,
        journal: Optional[EventJournal] = None,
        clock:   Clock = unix_now,
    ):
        self.ledger = ledger
        self.exchange_address = config.exchange_address
        self.proxy_address = config.proxy_address
        self.fee_token = config.fee_token
        self.journal = journal if journal is not None else MemoryJournal()
        self._clock = clock
        self.lock = threading.RLock()
        self._filled: Dict[str, int] = {}

    # ── Views ─────────────────────────────────────────────────

    @staticmethod
    def order_fingerprint(order: Order) -> str:
        return codec.fingerprint(order)

    @staticmethod
    def is_valid_signature(signer: str, order_hash: str, signature: Signature) -> bool:
        return codec.verify_signature(order_hash, signature, signer)

    def filled_amount(self, order_hash: str) -> int:
        """Cumulative taker amount filled against `order_hash` (0 if never filled)."""
        with self.lock:
            return self._filled.get(order_hash, 0)

    def remaining_amount(self, order: Order) -> int:
        with self.lock:
            return order.taker_token_amount - self.filled_amount(codec.fingerprint(order))

    # ── Fills ─────────────────────────────────────────────────

    def fill(
        self,
        signed_order:           SignedOrder,
        taker_address:          str,
        requested_taker_amount: int,
        strict:                 bool = True,
    ) -> FillResult:
        """
        Fill up to `requested_taker_amount` of the order's remaining taker amount.

        Raises, in this order: InvalidOrder / InvalidFillAmount, OrderExpired,
        TakerMismatch, InvalidSignature.

        If a transfer cannot be covered, strict fills raise
        InsufficientBalanceOrAllowance and non-strict fills return an empty
        result. Either way nothing changes and no event is emitted.
        """
        with self.lock:
            order = signed_order.order
            taker_address = normalize_address(taker_address, "taker_address")
            order_hash = self._check_preconditions(
                signed_order, taker_address, requested_taker_amount
            )

            remaining = order.taker_token_amount - self._filled.get(order_hash, 0)
            filled_taker_amount = min(requested_taker_amount, remaining)
            if filled_taker_amount == 0:
                logger.info("Nothing to fill for order %s (remaining=%d)", order_hash, remaining)
                return FillResult(order_hash=order_hash)

            filled_maker_amount, paid_maker_fee, paid_taker_fee = self._compute_amounts(
                order, filled_taker_amount
            )
            logger.debug(
                "Order %s: taker=%d maker=%d maker_fee=%d taker_fee=%d",
                order_hash, filled_taker_amount, filled_maker_amount,
                paid_maker_fee, paid_taker_fee,
            )

            requirements = self._transfer_requirements(
                order, taker_address, filled_maker_amount, filled_taker_amount,
                paid_maker_fee, paid_taker_fee,
            )
            shortfall = self._find_shortfall(requirements)
            if shortfall is not None:
                return self._reject_transfer(order_hash, shortfall, strict)

            event = FillEvent(
                maker=order.maker,
                taker=taker_address,
                fee_recipient=order.fee_recipient,
                maker_token=order.maker_token,
                taker_token=order.taker_token,
                filled_maker_amount=filled_maker_amount,
                filled_taker_amount=filled_taker_amount,
                paid_maker_fee=paid_maker_fee,
                paid_taker_fee=paid_taker_fee,
                tokens=codec.token_pair_hash(order.maker_token, order.taker_token),
                order_hash=order_hash,
            )
            try:
                with self.ledger.atomic():
                    self._settle(
                        order, taker_address, filled_maker_amount, filled_taker_amount,
                        paid_maker_fee, paid_taker_fee,
                    )
                    self._record_fill(order_hash, filled_taker_amount)
                    self.ledger.on_commit(lambda: self.journal.emit(event))
            except TransferError as exc:
                return self._reject_transfer(order_hash, exc.details, strict, cause=exc)

            logger.info(
                "Filled %d/%d of order %s for taker %s",
                self._filled[order_hash], order.taker_token_amount, order_hash, taker_address,
            )

            return FillResult(
                order_hash=order_hash,
                filled_taker_amount=filled_taker_amount,
                filled_maker_amount=filled_maker_amount,
                paid_maker_fee=paid_maker_fee,
                paid_taker_fee=paid_taker_fee,
                event=event,
            )

    def fill_or_kill(self, signed_order: SignedOrder, taker_address: str, amount: int) -> FillResult:
        """
        Strict fill of exactly `amount`.
        Raises InsufficientRemaining if less than `amount` is left.
        """
        with self.lock:
            order_hash = codec.fingerprint(signed_order.order)
            remaining = signed_order.order.taker_token_amount - self._filled.get(order_hash, 0)
            if amount > remaining:
                raise InsufficientRemaining(
                    "Fill-or-kill amount exceeds what remains of the order",
                    {"order_hash": order_hash, "requested": amount, "remaining": remaining},
                )
            return self.fill(signed_order, taker_address, amount, strict=True)

    # ── Internal ──────────────────────────────────────────────

    def _check_preconditions(
        self,
        signed_order: SignedOrder,
        taker_address: str,
        requested_taker_amount: int,
    ) -> str:
        order = signed_order.order

        if order.maker_token_amount == 0 or order.taker_token_amount == 0:
            raise InvalidOrder(
                "Order amounts must be positive",
                {"maker_token_amount": order.maker_token_amount,
                 "taker_token_amount": order.taker_token_amount},
            )
        if order.exchange_address != self.exchange_address:
            raise InvalidOrder(
                "Order was made for a different exchange",
                {"order_exchange": order.exchange_address, "exchange": self.exchange_address},
            )
        if requested_taker_amount < 0:
            raise InvalidFillAmount(
                "Requested fill amount cannot be negative",
                {"requested": requested_taker_amount},
            )

        now = self._clock()
        if now > order.expiration:
            raise OrderExpired(
                "Order has expired",
                {"expiration": order.expiration, "now": now},
            )

        if order.taker is not None and order.taker != taker_address:
            raise TakerMismatch(
                "Order is reserved for another taker",
                {"taker": order.taker, "caller": taker_address},
            )

        order_hash = codec.fingerprint(order)
        if not codec.verify_signature(order_hash, signed_order.signature, order.maker):
            raise InvalidSignature(
                "Signature does not match order maker",
                {"order_hash": order_hash, "maker": order.maker},
            )
        return order_hash

    @staticmethod
    def _compute_amounts(order: Order, filled_taker_amount: int) -> Tuple[int, int, int]:
        filled_maker_amount = (
            filled_taker_amount * order.maker_token_amount // order.taker_token_amount
        )
        if order.fee_recipient is None:
            return filled_maker_amount, 0, 0
        paid_maker_fee = order.maker_fee * filled_maker_amount // order.maker_token_amount
        paid_taker_fee = order.taker_fee * filled_maker_amount // order.maker_token_amount
        return filled_maker_amount, paid_maker_fee, paid_taker_fee

    def _transfer_requirements(
        self,
        order: Order,
        taker_address: str,
        filled_maker_amount: int,
        filled_taker_amount: int,
        paid_maker_fee: int,
        paid_taker_fee: int,
    ) -> "OrderedDict[Tuple[str, str], int]":
        """
        Total each party must be able to pay per token.
        A maker whose maker_token is the fee token must cover both amounts.
        """
        required: "OrderedDict[Tuple[str, str], int]" = OrderedDict()

        def need(token: str, owner: str, amount: int) -> None:
            if amount:
                required[(token, owner)] = required.get((token, owner), 0) + amount

        need(order.maker_token, order.maker, filled_maker_amount)
        need(order.taker_token, taker_address, filled_taker_amount)
        need(self.fee_token, order.maker, paid_maker_fee)
        need(self.fee_token, taker_address, paid_taker_fee)
        return required

    def _find_shortfall(self, requirements) -> Optional[dict]:
        for (token, owner), amount in requirements.items():
            if not self.ledger.is_transferable(token, owner, self.proxy_address, amount):
                return {
                    "token": token,
                    "owner": owner,
                    "required": amount,
                    "balance": self.ledger.balance_of(token, owner),
                    "allowance": self.ledger.allowance(token, owner, self.proxy_address),
                }
        return None

    def _settle(
        self,
        order: Order,
        taker_address: str,
        filled_maker_amount: int,
        filled_taker_amount: int,
        paid_maker_fee: int,
        paid_taker_fee: int,
    ) -> None:
        self.ledger.transfer_from(
            order.maker_token, self.proxy_address, order.maker, taker_address,
            filled_maker_amount,
        )
        self.ledger.transfer_from(
            order.taker_token, self.proxy_address, taker_address, order.maker,
            filled_taker_amount,
        )
        if order.fee_recipient is not None:
            if paid_maker_fee > 0:
                self.ledger.transfer_from(
                    self.fee_token, self.proxy_address, order.maker,
                    order.fee_recipient, paid_maker_fee,
                )
            if paid_taker_fee > 0:
                self.ledger.transfer_from(
                    self.fee_token, self.proxy_address, taker_address,
                    order.fee_recipient, paid_taker_fee,
                )

    def _record_fill(self, order_hash: str, filled_taker_amount: int) -> None:
        previous = self._filled.get(order_hash, 0)
        self._filled[order_hash] = previous + filled_taker_amount

        def undo() -> None:
            if previous:
                self._filled[order_hash] = previous
            else:
                self._filled.pop(order_hash, None)

        self.ledger.on_rollback(undo)

    @staticmethod
    def _reject_transfer(
        order_hash: str,
        details: dict,
        strict: bool,
        cause: Optional[Exception] = None,
    ) -> FillResult:
        if strict:
            raise InsufficientBalanceOrAllowance(
                "Insufficient balance or allowance to settle order",
                dict(details, order_hash=order_hash),
            ) from cause
        logger.warning(
            "Soft-failed fill of order %s: insufficient balance or allowance (%s)",
            order_hash, details,
        )
        return FillResult(order_hash=order_hash)
