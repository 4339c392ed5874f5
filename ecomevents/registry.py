"""Subscription registry: patterns a consumer asked for, with confirmation state."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ecomevents.matcher import matches, validate_pattern
from ecomevents.observability import get_logger
from ecomevents.protocol import (
    ERROR_ALREADY_SUBSCRIBED,
    ERROR_INVALID_PATTERN,
    ERROR_NOT_SUBSCRIBED,
    ERROR_UNKNOWN_SUBSCRIPTION,
)


@dataclass
class SubscriptionEntry:
    """One subscription. active turns True only once the session confirms it."""
    pattern: str
    description: str
    active: bool = False


class SubscriptionRegistry:
    """Subscriptions keyed by pattern, kept in registration order."""

    def __init__(self) -> None:
        self._entries: Dict[str, SubscriptionEntry] = {}
        self._logger = get_logger("ecomevents.registry")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, pattern: object) -> bool:
        return pattern in self._entries

    def get(self, pattern: str) -> Optional[SubscriptionEntry]:
        return self._entries.get(pattern)

    def register(self, pattern: str, description: str) -> Tuple[Optional[SubscriptionEntry], Optional[str]]:
        """
        Add an inactive entry.
        Returns (entry, None) on success, (None, ALREADY_SUBSCRIBED) if the
        pattern is present (the existing entry is left as is), or
        (None, INVALID_PATTERN) for a malformed pattern.
        """
        reason = validate_pattern(pattern)
        if reason is not None:
            self._logger.warning("invalid_pattern", extra={"pattern": pattern, "reason": reason})
            return None, ERROR_INVALID_PATTERN
        if pattern in self._entries:
            return None, ERROR_ALREADY_SUBSCRIBED
        entry = SubscriptionEntry(pattern=pattern, description=description)
        self._entries[pattern] = entry
        return entry, None

    def confirm(self, pattern: str) -> bool:
        """Mark active. Unknown patterns are reported and ignored."""
        entry = self._entries.get(pattern)
        if entry is None:
            self._logger.warning("confirm_ignored", extra={"pattern": pattern, "error": ERROR_UNKNOWN_SUBSCRIPTION})
            return False
        entry.active = True
        return True

    def fail(self, pattern: str) -> bool:
        """Mark inactive. Unknown patterns are reported and ignored."""
        entry = self._entries.get(pattern)
        if entry is None:
            self._logger.warning("fail_ignored", extra={"pattern": pattern, "error": ERROR_UNKNOWN_SUBSCRIPTION})
            return False
        entry.active = False
        return True

    def unregister(self, pattern: str) -> Tuple[Optional[SubscriptionEntry], Optional[str]]:
        """
        Remove an active entry.
        Returns (entry, None) on success or (None, NOT_SUBSCRIBED) if the
        pattern is missing or was never confirmed; the registry is unchanged then.
        """
        entry = self._entries.get(pattern)
        if entry is None or not entry.active:
            return None, ERROR_NOT_SUBSCRIBED
        del self._entries[pattern]
        entry.active = False
        return entry, None

    def unregister_all(self) -> List[SubscriptionEntry]:
        """Unregister every active entry; returns what was removed."""
        removed = []
        for pattern in [p for p, e in self._entries.items() if e.active]:
            entry, _ = self.unregister(pattern)
            if entry is not None:
                removed.append(entry)
        return removed

    def active_patterns(self) -> List[str]:
        return [p for p, e in self._entries.items() if e.active]

    def discard(self, pattern: str) -> bool:
        """Remove an entry whatever its state (the request never reached the session)."""
        return self._entries.pop(pattern, None) is not None

    def clear(self) -> None:
        """Forget everything (session went away)."""
        self._entries.clear()

    def matching_entries(self, topic: str) -> List[SubscriptionEntry]:
        """Entries whose pattern selects topic, active or not, in registration order."""
        return [e for e in self._entries.values() if matches(topic, e.pattern)]

    def snapshot(self) -> List[Tuple[str, str, bool]]:
        """(pattern, description, active) for status reports."""
        return [(e.pattern, e.description, e.active) for e in self._entries.values()]
