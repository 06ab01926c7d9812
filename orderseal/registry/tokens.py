"""
Token metadata registry.

Owner-gated store of TokenMetadata keyed by address, with unique name and
symbol indexes. Callers use resolve_token_address() to turn a symbol or
name into the address they put in an order; the settlement core never
reads it.
"""

import logging
from dataclasses import replace
from typing import Dict, List, Optional

from orderseal.core.exceptions import RegistryError
from orderseal.core.models import TokenMetadata, normalize_address
from orderseal.core.ownership import Ownable

logger = logging.getLogger(__name__)

_NULL_ADDRESS = "0x" + "00" * 20


class TokenRegistry(Ownable):

    def __init__(self, owner: str):
        super().__init__(owner)
        self._tokens: Dict[str, TokenMetadata] = {}
        self._by_name: Dict[str, str] = {}
        self._by_symbol: Dict[str, str] = {}
        self._order: List[str] = []

    # ── Reads ─────────────────────────────────────────────────

    def get_token_metadata(self, address: str) -> Optional[TokenMetadata]:
        return self._tokens.get(normalize_address(address))

    def get_token_by_name(self, name: str) -> Optional[TokenMetadata]:
        address = self._by_name.get(name)
        return self._tokens[address] if address else None

    def get_token_by_symbol(self, symbol: str) -> Optional[TokenMetadata]:
        address = self._by_symbol.get(symbol)
        return self._tokens[address] if address else None

    def get_token_addresses(self) -> List[str]:
        return list(self._order)

    def resolve_token_address(self, symbol_or_name: str) -> Optional[str]:
        """Symbol first, then name. None if neither is registered."""
        return self._by_symbol.get(symbol_or_name) or self._by_name.get(symbol_or_name)

    # ── Owner-gated writes ────────────────────────────────────

    def add_token(self, caller: str, token: TokenMetadata) -> None:
        self._only_owner(caller, "add_token")
        if token.address == _NULL_ADDRESS:
            raise RegistryError("Cannot register the null address")
        if token.address in self._tokens:
            raise RegistryError("Token address already registered", {"address": token.address})
        self._require_free_name(token.name)
        self._require_free_symbol(token.symbol)

        self._tokens[token.address] = token
        self._by_name[token.name] = token.address
        self._by_symbol[token.symbol] = token.address
        self._order.append(token.address)
        logger.info("TokenAdded %s (%s, %s)", token.address, token.symbol, token.name)

    def remove_token(self, caller: str, address: str) -> None:
        self._only_owner(caller, "remove_token")
        token = self._require_token(address)
        del self._tokens[token.address]
        del self._by_name[token.name]
        del self._by_symbol[token.symbol]
        self._order.remove(token.address)
        logger.info("TokenRemoved %s (%s)", token.address, token.symbol)

    def set_token_name(self, caller: str, address: str, name: str) -> None:
        self._only_owner(caller, "set_token_name")
        token = self._require_token(address)
        if name == token.name:
            return
        self._require_free_name(name)
        del self._by_name[token.name]
        self._by_name[name] = token.address
        self._tokens[token.address] = replace(token, name=name)
        logger.info("TokenNameChanged %s %r -> %r", token.address, token.name, name)

    def set_token_symbol(self, caller: str, address: str, symbol: str) -> None:
        self._only_owner(caller, "set_token_symbol")
        token = self._require_token(address)
        if symbol == token.symbol:
            return
        self._require_free_symbol(symbol)
        del self._by_symbol[token.symbol]
        self._by_symbol[symbol] = token.address
        self._tokens[token.address] = replace(token, symbol=symbol)
        logger.info("TokenSymbolChanged %s %r -> %r", token.address, token.symbol, symbol)

    def set_token_url(self, caller: str, address: str, url: str) -> None:
        self._only_owner(caller, "set_token_url")
        token = self._require_token(address)
        self._tokens[token.address] = replace(token, url=url)

    # ── Internal ──────────────────────────────────────────────

    def _require_token(self, address: str) -> TokenMetadata:
        token = self.get_token_metadata(address)
        if token is None:
            raise RegistryError("Token is not registered", {"address": address})
        return token

    def _require_free_name(self, name: str) -> None:
        if not name:
            raise RegistryError("Token name cannot be empty")
        if name in self._by_name:
            raise RegistryError("Token name already registered", {"name": name})

    def _require_free_symbol(self, symbol: str) -> None:
        if not symbol:
            raise RegistryError("Token symbol cannot be empty")
        if symbol in self._by_symbol:
            raise RegistryError("Token symbol already registered", {"symbol": symbol})
