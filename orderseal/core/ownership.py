"""
Owner gating shared by the sale controller, the registration allow-list and
the token registry.
"""

import logging

from eth_utils import is_address, to_checksum_address

from orderseal.core.exceptions import Unauthorized
from orderseal.core.models import normalize_address

logger = logging.getLogger(__name__)


class Ownable:
    """
    Holds one owner address. Mutators call `_only_owner(caller, action)` first.
    """

    def __init__(self, owner: str):
        self._owner = normalize_address(owner, "owner")

    @property
    def owner(self) -> str:
        return self._owner

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._only_owner(caller, "transfer_ownership")
        new_owner = normalize_address(new_owner, "new_owner")
        logger.info("Ownership of %s moved %s -> %s", type(self).__name__, self._owner, new_owner)
        self._owner = new_owner

    def _only_owner(self, caller: str, action: str) -> None:
        if not is_address(caller) or to_checksum_address(caller) != self._owner:
            raise Unauthorized(
                f"{action} is restricted to the owner",
                {"caller": caller, "owner": self._owner},
            )
