"""
eatguard Identity Credentials

In-process stand-in for the external identity registry that the emergency
route consults. Statuses are plain integer classes granted per holder.
"""

from typing import Dict, Iterable, Set

from .contract import Contract, Ownable, operation

# Status classes allow-listed by default for the credential route.
VERIFIED_ACCOUNT = 0
VERIFIED_PARTNER_APP = 1

DEFAULT_ALLOWED_STATUSES = (VERIFIED_ACCOUNT, VERIFIED_PARTNER_APP)


class IdentityRegistry(Ownable, Contract):
    """Owner-administered (holder, status class) records."""

    STORAGE = ("statuses",)

    def __init__(self, chain, address: str, owner: str):
        super().__init__(chain, address)
        self.owner = owner
        self.statuses: Dict[str, Set[int]] = {}

    @operation("grantStatus(address,uint256)")
    def grant_status(self, holder, status):
        self._only_owner()
        self.statuses.setdefault(holder, set()).add(status)

    @operation("revokeStatus(address,uint256)")
    def revoke_status(self, holder, status):
        self._only_owner()
        held = self.statuses.get(holder)
        if held:
            held.discard(status)
            if not held:
                del self.statuses[holder]

    @operation("hasStatus(address,uint256)", returns=("bool",))
    def has_status(self, holder, status):
        return status in self.statuses.get(holder, ())

    def has_any_status(self, holder: str, statuses: Iterable[int]) -> bool:
        held = self.statuses.get(holder, ())
        return any(status in held for status in statuses)
