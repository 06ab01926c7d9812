"""
orderseal: Basic Usage Example

Demonstrates:
- Signing an order as a maker
- Partial fills with proportional fees
- A capped sale selling protocol tokens for native currency
- A signed, hash-chained event journal
"""

import tempfile
from pathlib import Path

from orderseal.config import ExchangeConfig, SaleConfig
from orderseal.core.codec import sign_order
from orderseal.core.crypto import Ed25519KeyManager, MakerKeyManager
from orderseal.core.models import Order, SignedOrder
from orderseal.journal.journal import FileJournal, verify_journal_file
from orderseal.ledger.tokens import NATIVE, TokenLedger
from orderseal.sale.controller import CappedSaleController
from orderseal.settlement.engine import SettlementEngine

EXCHANGE      = "0x" + "e0" * 20
PROXY         = "0x" + "a0" * 20
FEE_TOKEN     = "0x" + "fe" * 20
TOKEN_A       = "0x" + "0a" * 20
TOKEN_B       = "0x" + "0b" * 20
RELAYER       = "0x" + "fa" * 20
TAKER         = "0x" + "7a" * 20
OWNER         = "0x" + "0e" * 20
SALE          = "0x" + "5a" * 20
WRAPPED       = "0x" + "3e" * 20
CONTRIBUTOR   = "0x" + "c1" * 20


def fund(ledger, token, owner, amount):
    ledger.set_balance(token, owner, amount)
    ledger.approve(token, owner, PROXY, amount)


def main():
    print("=" * 60)
    print("orderseal: Basic Usage Example")
    print("=" * 60)

    workdir = Path(tempfile.mkdtemp(prefix="orderseal-"))
    journal_key = Ed25519KeyManager.generate()
    journal = FileJournal(workdir / "journal.jsonl", journal_key)

    ledger = TokenLedger()
    engine = SettlementEngine(
        ledger,
        ExchangeConfig(exchange_address=EXCHANGE, proxy_address=PROXY, fee_token=FEE_TOKEN),
        journal=journal,
    )

    # 1. Maker signs an order: 200 A for 100 B, fees paid to a relayer
    maker = MakerKeyManager.generate()
    order = Order(
        exchange_address=EXCHANGE, maker=maker.address, taker=None,
        maker_token=TOKEN_A, taker_token=TOKEN_B, fee_recipient=RELAYER,
        maker_token_amount=200, taker_token_amount=100,
        maker_fee=10, taker_fee=20, expiration=4_000_000_000, salt=1,
    )
    signed = SignedOrder(order=order, signature=sign_order(order, maker))
    print(f"\nOrder {engine.order_fingerprint(order)} signed by {maker.address}")

    fund(ledger, TOKEN_A, maker.address, 1000)
    fund(ledger, FEE_TOKEN, maker.address, 1000)
    fund(ledger, TOKEN_B, TAKER, 1000)
    fund(ledger, FEE_TOKEN, TAKER, 1000)

    # 2. Two partial fills; the second is clamped to what remains
    for request in (50, 80):
        result = engine.fill(signed, TAKER, request)
        print(
            f"  requested {request:>3}  filled {result.filled_taker_amount:>3} B"
            f" for {result.filled_maker_amount:>3} A"
            f"  fees {result.paid_maker_fee}/{result.paid_taker_fee}"
        )
    print(f"  remaining: {engine.remaining_amount(order)}")

    # 3. Capped sale of protocol tokens
    sale_maker = MakerKeyManager.generate()
    sale_order = Order(
        exchange_address=EXCHANGE, maker=sale_maker.address, taker=SALE,
        maker_token=TOKEN_A, taker_token=WRAPPED, fee_recipient=None,
        maker_token_amount=1000, taker_token_amount=100,
        maker_fee=0, taker_fee=0, expiration=4_000_000_000, salt=2,
    )
    fund(ledger, TOKEN_A, sale_maker.address, 1000)

    sale = CappedSaleController(
        engine,
        SaleConfig(
            owner=OWNER, sale_address=SALE, protocol_token=TOKEN_A,
            wrapped_native_token=WRAPPED, cap_per_address=10,
        ),
    )
    sale.init(OWNER, SignedOrder(order=sale_order, signature=sign_order(sale_order, sale_maker)))
    sale.change_registration_status(OWNER, CONTRIBUTOR, True)
    ledger.set_balance(NATIVE, CONTRIBUTOR, 25)

    contribution = sale.contribute(CONTRIBUTOR, 12)
    print(
        f"\nContributed 12: accepted {contribution.accepted}, refunded {contribution.refunded},"
        f" received {contribution.tokens_received} protocol tokens"
    )

    # 4. Verify the journal with only the public key
    report = verify_journal_file(journal.path, journal_key.public_key_hex)
    print(f"\nJournal {journal.path}: {report.total_entries} entries, valid={report.is_valid}")
    print(f"  by type: {report.by_type}")


if __name__ == "__main__":
    main()
