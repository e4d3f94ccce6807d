"""
eatguard Dual-Path Authorization Policy

Two routes to the exit operations (decrease, collect, burn) and to
ownership transfers, selected by the owner-controlled emergency flag:

    flag clear  -> token route: reachable only inside an authorized batch
    flag set    -> credential route: direct call by an allow-listed holder

Exactly one route is open for any operation at any time. Plain transfers
are additionally open whenever both parties hold an allow-listed status.
"""

import logging
from typing import List

from .contract import operation
from .credentials import DEFAULT_ALLOWED_STATUSES, IdentityRegistry
from .errors import Revert
from .logging_config import audit_log
from .multicall import ONLY_SELF_MULTICALL

logger = logging.getLogger(__name__)

EMERGENCY_MODE_ACTIVE = "emergency mode active"
MISSING_ALLOWED_STATUS = "missing allowed identity status"


class DualPathPolicy:
    """
    Mixin for an EATMulticall + Ownable contract.

    Call `_init_policy` from the contract constructor.
    """

    STORAGE = ("emergency_mode", "allowed_statuses")

    def _init_policy(self, identity: IdentityRegistry, allowed_statuses=DEFAULT_ALLOWED_STATUSES) -> None:
        self.identity = identity
        self.emergency_mode = False
        self.allowed_statuses: List[int] = list(allowed_statuses)

    # ============================================================
    # Owner controls
    # ============================================================

    @operation("setEmergencyMode(bool)")
    def set_emergency_mode(self, enabled):
        self._only_owner()
        self.emergency_mode = enabled
        audit_log.emergency_mode_changed(self.address, self.msg.sender, enabled)

    @operation("emergencyMode()", returns=("bool",))
    def get_emergency_mode(self):
        return self.emergency_mode

    @operation("setAllowedStatuses(uint256[])")
    def set_allowed_statuses(self, statuses):
        self._only_owner()
        self.allowed_statuses = list(statuses)

    @operation("allowedStatuses()", returns=("uint256[]",))
    def get_allowed_statuses(self):
        return list(self.allowed_statuses)

    def has_allowed_status(self, holder: str) -> bool:
        return self.identity.has_any_status(holder, self.allowed_statuses)

    # ============================================================
    # Route checks
    # ============================================================

    def _require_exit_route(self, operation_name: str) -> None:
        """
        Decrease/collect/burn: batch-only while the flag is clear, direct
        credential-holder call while it is set.
        """
        if self.emergency_mode:
            if self._in_self_multicall():
                raise Revert(EMERGENCY_MODE_ACTIVE)
            if not self.has_allowed_status(self.msg.sender):
                raise Revert(MISSING_ALLOWED_STATUS)
            audit_log.credential_route_used(self.address, self.msg.sender, operation_name)
        elif not self._in_self_multicall():
            raise Revert(ONLY_SELF_MULTICALL)

    def _require_token_route(self) -> None:
        """Mint/increase: batch-only, and closed while the flag is set."""
        if self.emergency_mode:
            raise Revert(EMERGENCY_MODE_ACTIVE)
        if not self._in_self_multicall():
            raise Revert(ONLY_SELF_MULTICALL)

    def _require_gated_transfer_open(self) -> None:
        if self.emergency_mode:
            raise Revert(EMERGENCY_MODE_ACTIVE)

    def _require_transfer_route(self, from_address: str, to_address: str) -> None:
        """Plain transfers: open in emergency mode or between two credential holders."""
        if self.emergency_mode:
            return
        if self.has_allowed_status(from_address) and self.has_allowed_status(to_address):
            return
        raise Revert(MISSING_ALLOWED_STATUS)
