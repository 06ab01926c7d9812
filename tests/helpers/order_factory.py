"""
tests/helpers/order_factory.py

Fixed addresses and small builders shared by the settlement, sale and CLI
tests. Maker addresses come from freshly generated keys; everything else
is a constant so expected balances read plainly in assertions.
"""

from orderseal.core.codec import sign_order
from orderseal.core.crypto import MakerKeyManager
from orderseal.core.exceptions import JournalError
from orderseal.core.models import Order, SignedOrder
from orderseal.journal.journal import MemoryJournal
from orderseal.ledger.tokens import TokenLedger

EXCHANGE       = "0x" + "e0" * 20
OTHER_EXCHANGE = "0x" + "e1" * 20
PROXY          = "0x" + "a0" * 20
FEE_TOKEN      = "0x" + "fe" * 20
TOKEN_A        = "0x" + "0a" * 20
TOKEN_B        = "0x" + "0b" * 20
FEE_RECIPIENT  = "0x" + "fa" * 20
TAKER          = "0x" + "7a" * 20
OTHER_TAKER    = "0x" + "7b" * 20

NOW = 1_700_000_000
FAR_FUTURE = NOW + 86_400


def fixed_clock(now: int = NOW):
    return lambda: now


def make_order(maker: str, **overrides) -> Order:
    """A 100-for-100 TOKEN_A/TOKEN_B order with fees, open to any taker."""
    fields = dict(
        exchange_address=   EXCHANGE,
        maker=              maker,
        taker=              None,
        maker_token=        TOKEN_A,
        taker_token=        TOKEN_B,
        fee_recipient=      FEE_RECIPIENT,
        maker_token_amount= 100,
        taker_token_amount= 100,
        maker_fee=          10,
        taker_fee=          20,
        expiration=         FAR_FUTURE,
        salt=               42,
    )
    fields.update(overrides)
    return Order(**fields)


def make_signed(key: MakerKeyManager, **overrides) -> SignedOrder:
    order = make_order(key.address, **overrides)
    return SignedOrder(order=order, signature=sign_order(order, key))


def fund(ledger: TokenLedger, token: str, owner: str, amount: int, spender: str = PROXY) -> None:
    """Give `owner` `amount` of `token` and approve `spender` for all of it."""
    ledger.set_balance(token, owner, amount)
    ledger.approve(token, owner, spender, amount)


class RefusingJournal(MemoryJournal):
    """Records events like MemoryJournal but raises JournalError for one event type."""

    def __init__(self, refused_type: str) -> None:
        super().__init__()
        self.refused_type = refused_type

    def emit(self, event) -> None:
        if event.event_type == self.refused_type:
            raise JournalError("Journal write failed", {"event_type": event.event_type})
        super().emit(event)
