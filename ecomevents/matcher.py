"""Hierarchical topic matching with single-level (*) and multi-level (>) wildcards."""

from typing import List, Optional

SEPARATOR = "/"
SINGLE_WILDCARD = "*"
MULTI_WILDCARD = ">"

_WILDCARDS = (SINGLE_WILDCARD, MULTI_WILDCARD)


def split(path: str) -> List[str]:
    """Split a topic or pattern into segments. The empty string has no segments."""
    if path == "":
        return []
    return path.split(SEPARATOR)


def validate_pattern(pattern: str) -> Optional[str]:
    """Return a reason string if pattern is not a valid subscription, else None."""
    if not isinstance(pattern, str):
        return "pattern must be a string"
    segments = split(pattern)
    last = len(segments) - 1
    for i, segment in enumerate(segments):
        if segment == "":
            return f"empty segment at position {i}"
        if segment == MULTI_WILDCARD:
            if i != last:
                return f"{MULTI_WILDCARD!r} is only allowed as the last segment"
            continue
        if segment == SINGLE_WILDCARD:
            continue
        if SINGLE_WILDCARD in segment or MULTI_WILDCARD in segment:
            return f"wildcard must be a whole segment, got {segment!r}"
    return None


def validate_topic(topic: str) -> Optional[str]:
    """Return a reason string if topic cannot be published to, else None."""
    if not isinstance(topic, str) or topic == "":
        return "topic is required"
    for i, segment in enumerate(split(topic)):
        if segment == "":
            return f"empty segment at position {i}"
        if any(w in segment for w in _WILDCARDS):
            return f"wildcards are not allowed in a published topic ({segment!r})"
    return None


def matches(topic: str, pattern: str) -> bool:
    """
    True if the concrete topic is selected by the subscription pattern.

    Segments are compared in lock-step. '*' consumes exactly one segment,
    a trailing '>' consumes the rest of the topic including nothing at all,
    so 'a/>' matches 'a', 'a/b' and 'a/b/c'. Otherwise both sides must run
    out at the same position.
    """
    topic_segments = split(topic)
    pattern_segments = split(pattern)
    position = 0
    for segment in pattern_segments:
        if segment == MULTI_WILDCARD:
            return True
        if position >= len(topic_segments):
            return False
        if segment != SINGLE_WILDCARD and segment != topic_segments[position]:
            return False
        position += 1
    return position == len(topic_segments)
