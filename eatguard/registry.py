"""
eatguard Issuer Registry

Two-tier trust hierarchy: a root authority, a rotatable intermediate
authority, and the set of issuers whose signatures are trusted.

The registry is a versioned configuration object handed to the verifier
by reference. Verification always reads the current active set, so
deactivating an issuer kills every token it already signed.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from .encoding import ZERO_ADDRESS, normalize_address
from .errors import Revert, ValidationError
from .logging_config import audit_log

logger = logging.getLogger(__name__)

UNAUTHORIZED = "unauthorized"


@dataclass(frozen=True)
class RegistrySnapshot:
    """Immutable view of a registry at one version."""
    root_authority: str
    intermediate_authority: str
    active_issuers: FrozenSet[str]
    version: int

    def is_active(self, address: str) -> bool:
        return address in self.active_issuers


class IssuerRegistry:
    """
    Root -> intermediate -> active issuers.

    Only the root authority rotates the intermediate. Either authority may
    mutate the active set; the intermediate acts as root for bootstrap.
    Mutations are all-or-nothing and idempotent.
    """

    def __init__(
        self,
        root_authority: str,
        intermediate_authority: str = ZERO_ADDRESS,
        active_issuers: Iterable[str] = (),
        version: int = 0
    ):
        self._lock = threading.RLock()
        self._root = normalize_address(root_authority, "rootAuthority")
        self._intermediate = normalize_address(intermediate_authority, "intermediateAuthority")
        self._active = {normalize_address(a, "activeIssuers") for a in active_issuers}
        self._version = version

    @property
    def root_authority(self) -> str:
        return self._root

    @property
    def intermediate_authority(self) -> str:
        with self._lock:
            return self._intermediate

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def active_issuers(self) -> List[str]:
        with self._lock:
            return sorted(self._active)

    def is_active(self, address: str) -> bool:
        with self._lock:
            return address in self._active

    # ============================================================
    # Administration
    # ============================================================

    def rotate_intermediate(self, caller: str, new_intermediate: str) -> None:
        """
        Replace the intermediate authority.

        Raises:
            Revert: "unauthorized" unless `caller` is the root authority
        """
        caller = normalize_address(caller, "caller")
        new_intermediate = normalize_address(new_intermediate, "intermediateAuthority")
        with self._lock:
            if caller != self._root:
                raise Revert(UNAUTHORIZED)
            self._intermediate = new_intermediate
            self._version += 1
            version = self._version
        audit_log.registry_changed("rotate_intermediate", caller, [new_intermediate], version)

    def activate_issuers(self, caller: str, addresses: Iterable[str]) -> None:
        """
        Trust signatures from `addresses`. Already-active addresses are a no-op.

        Raises:
            Revert: "unauthorized" unless `caller` is root or intermediate
        """
        caller = normalize_address(caller, "caller")
        normalized = [normalize_address(a, "issuers") for a in addresses]
        with self._lock:
            self._require_admin(caller)
            self._active.update(normalized)
            self._version += 1
            version = self._version
        audit_log.registry_changed("activate_issuers", caller, normalized, version)

    def deactivate_issuers(self, caller: str, addresses: Iterable[str]) -> None:
        """
        Stop trusting signatures from `addresses`, including tokens already issued.

        Raises:
            Revert: "unauthorized" unless `caller` is root or intermediate
        """
        caller = normalize_address(caller, "caller")
        normalized = [normalize_address(a, "issuers") for a in addresses]
        with self._lock:
            self._require_admin(caller)
            self._active.difference_update(normalized)
            self._version += 1
            version = self._version
        audit_log.registry_changed("deactivate_issuers", caller, normalized, version)

    def _require_admin(self, caller: str) -> None:
        if caller == self._root:
            return
        if self._intermediate != ZERO_ADDRESS and caller == self._intermediate:
            return
        raise Revert(UNAUTHORIZED)

    # ============================================================
    # Snapshots
    # ============================================================

    def snapshot(self) -> RegistrySnapshot:
        with self._lock:
            return RegistrySnapshot(
                root_authority=self._root,
                intermediate_authority=self._intermediate,
                active_issuers=frozenset(self._active),
                version=self._version,
            )

    def restore(self, snapshot: RegistrySnapshot) -> None:
        """Roll the registry back to `snapshot` in place."""
        with self._lock:
            self._root = snapshot.root_authority
            self._intermediate = snapshot.intermediate_authority
            self._active = set(snapshot.active_issuers)
            self._version = snapshot.version
        logger.debug("Issuer registry restored to version %d", snapshot.version)

    # ============================================================
    # Serialization
    # ============================================================

    def to_dict(self) -> Dict[str, Any]:
        snap = self.snapshot()
        return {
            "rootAuthority": snap.root_authority,
            "intermediateAuthority": snap.intermediate_authority,
            "activeIssuers": sorted(snap.active_issuers),
            "version": snap.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IssuerRegistry':
        if "rootAuthority" not in data:
            raise ValidationError("rootAuthority", "missing field")
        return cls(
            root_authority=data["rootAuthority"],
            intermediate_authority=data.get("intermediateAuthority") or ZERO_ADDRESS,
            active_issuers=data.get("activeIssuers", []),
            version=int(data.get("version", 0)),
        )


def bootstrap_registry(root_authority: str, issuers: Optional[Iterable[str]] = None) -> IssuerRegistry:
    """
    Minimal test/dev configuration: the root acts as its own intermediate
    and activates `issuers` (default: itself).
    """
    registry = IssuerRegistry(root_authority)
    registry.rotate_intermediate(registry.root_authority, registry.root_authority)
    registry.activate_issuers(registry.root_authority, issuers or [registry.root_authority])
    return registry
