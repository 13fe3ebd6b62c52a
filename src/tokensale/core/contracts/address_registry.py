"""
Owner-gated key -> address directory.

Sales read the administrator, fee receiver and eligibility signer from here
and refresh them only on an explicit ``sync_protocol_addresses`` call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..sale_exceptions import NotCalledByOwner
from .token import normalize_address

logger = logging.getLogger(__name__)

SALE_ADMIN = "sale_admin"
FEE_RECEIVER = "fee_receiver"
ELIGIBILITY_SIGNER = "eligibility_signer"
VESTING_FACTORY = "vesting_factory"

WELL_KNOWN_KEYS = (SALE_ADMIN, FEE_RECEIVER, ELIGIBILITY_SIGNER, VESTING_FACTORY)


@dataclass
class RegistryEvent:
    key: str
    old_value: str
    new_value: str


@dataclass
class AddressRegistry:
    """
    Directory of protocol addresses.

    ``eligibility_signer`` holds the signer's public key hex rather than an
    address, since that is what signature verification needs.
    """

    owner: str
    entries: dict[str, str] = field(default_factory=dict)
    events: list[RegistryEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.owner = normalize_address(self.owner)

    def set_address(self, caller: str, key: str, value: str) -> None:
        if normalize_address(caller) != self.owner:
            logger.warning(
                "Registry update rejected",
                extra={"event": "registry.unauthorized", "key": key, "caller": caller},
            )
            raise NotCalledByOwner(details={"key": key, "caller": caller})

        new_value = value if key == ELIGIBILITY_SIGNER else normalize_address(value)
        old_value = self.entries.get(key, "")
        self.entries[key] = new_value
        self.events.append(RegistryEvent(key, old_value, new_value))

        logger.info(
            "Registry updated",
            extra={"event": "registry.updated", "key": key, "value": new_value[:18]},
        )

    def get_address(self, key: str) -> str:
        return self.entries.get(key, "")

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        if normalize_address(caller) != self.owner:
            raise NotCalledByOwner(details={"caller": caller})
        self.owner = normalize_address(new_owner)
