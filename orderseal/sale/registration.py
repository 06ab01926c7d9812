"""
Registration allow-list for the capped sale.
"""

import logging
from typing import Dict, Iterable

from orderseal.core.models import normalize_address
from orderseal.core.ownership import Ownable

logger = logging.getLogger(__name__)


class RegistrationRegistry(Ownable):
    """Owner-controlled address → bool map. Unknown addresses are unregistered."""

    def __init__(self, owner: str):
        super().__init__(owner)
        self._registered: Dict[str, bool] = {}

    def is_registered(self, address: str) -> bool:
        return self._registered.get(normalize_address(address), False)

    def change_registration_status(self, caller: str, address: str, is_registered: bool) -> None:
        self._only_owner(caller, "change_registration_status")
        address = normalize_address(address)
        self._registered[address] = bool(is_registered)
        logger.info("Registration of %s set to %s", address, bool(is_registered))

    def change_registration_statuses(
        self,
        caller: str,
        addresses: Iterable[str],
        is_registered: bool,
    ) -> None:
        self._only_owner(caller, "change_registration_statuses")
        normalized = [normalize_address(a) for a in addresses]
        for address in normalized:
            self._registered[address] = bool(is_registered)
        logger.info("Registration of %d addresses set to %s", len(normalized), bool(is_registered))
