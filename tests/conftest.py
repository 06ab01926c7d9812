import pytest

from orderseal.config import ExchangeConfig
from orderseal.core.crypto import MakerKeyManager
from orderseal.journal.journal import MemoryJournal
from orderseal.ledger.tokens import TokenLedger
from orderseal.settlement.engine import SettlementEngine

from tests.helpers.order_factory import (
    EXCHANGE,
    FEE_TOKEN,
    PROXY,
    TAKER,
    TOKEN_A,
    TOKEN_B,
    fixed_clock,
    fund,
)


@pytest.fixture
def maker_key():
    """A fresh secp256k1 maker key for each test."""
    return MakerKeyManager.generate()


@pytest.fixture
def ledger():
    return TokenLedger()


@pytest.fixture
def journal():
    return MemoryJournal()


@pytest.fixture
def exchange_config():
    return ExchangeConfig(exchange_address=EXCHANGE, proxy_address=PROXY, fee_token=FEE_TOKEN)


@pytest.fixture
def engine(ledger, exchange_config, journal):
    return SettlementEngine(ledger, exchange_config, journal=journal, clock=fixed_clock())


@pytest.fixture
def funded(ledger, maker_key):
    """Maker holds 1000 A and 1000 fee tokens, taker 1000 B and 1000 fee tokens."""
    fund(ledger, TOKEN_A, maker_key.address, 1000)
    fund(ledger, FEE_TOKEN, maker_key.address, 1000)
    fund(ledger, TOKEN_B, TAKER, 1000)
    fund(ledger, FEE_TOKEN, TAKER, 1000)
    return ledger
