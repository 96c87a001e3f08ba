"""
Client cache version.

API clients keep their own local caches and compare against this version;
bumping it after a reset or a full flush makes every client refetch.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from shared.logging import get_logger

MAX_HISTORY = 20


@dataclass
class VersionReset:
    version: int
    reset_at: datetime
    reset_by: Optional[str] = None
    reason: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "reset_at": self.reset_at.isoformat(),
            "reset_by": self.reset_by,
            "reason": self.reason,
        }


@dataclass
class CacheVersion:
    version: int = 1
    reset_at: Optional[datetime] = None
    reset_by: Optional[str] = None
    history: List[VersionReset] = field(default_factory=list)


class CacheVersionStore:
    """Process-local holder of the client cache version and its reset history."""

    def __init__(self, max_history: int = MAX_HISTORY):
        self.max_history = max_history
        self._state = CacheVersion()
        self.logger = get_logger("storefront.cache.version")

    def current(self) -> Dict[str, Any]:
        return {
            "version": self._state.version,
            "reset_at": self._state.reset_at.isoformat() if self._state.reset_at else None,
        }

    def bump(self, reset_by: Optional[str] = None, reason: Optional[str] = None) -> CacheVersion:
        """Increment the version and record the reset, newest first."""
        state = self._state
        state.version += 1
        state.reset_at = datetime.now(timezone.utc)
        state.reset_by = reset_by

        state.history.insert(0, VersionReset(state.version, state.reset_at, reset_by, reason))
        del state.history[self.max_history:]

        self.logger.info("Client cache version bumped", version=state.version, reset_by=reset_by, reason=reason)
        return state

    def history(self) -> Dict[str, Any]:
        return {
            "current_version": self._state.version,
            "last_reset_at": self._state.reset_at.isoformat() if self._state.reset_at else None,
            "history": [entry.as_dict() for entry in self._state.history],
        }
