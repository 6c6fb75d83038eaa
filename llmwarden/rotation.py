"""
Rotation and refresh intervals.

Durations on LLMAccess.spec.rotation.interval and on the provider's apiKey
rotation use the short form ``<n>d``, ``<n>h`` or ``<n>m``. Precedence for
the effective interval is always: LLMAccess override, then provider, then
the fallback (no rotation for the reconciler, 1h for ESO refresh).
"""

from __future__ import annotations

import logging
import re
from datetime import timedelta

from llmwarden.api.models import LLMAccess, LLMProvider

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL = "1h"

_DURATION_RE = re.compile(r"([0-9]+)([dhm])")

_UNITS = {
    "d": timedelta(days=1),
    "h": timedelta(hours=1),
    "m": timedelta(minutes=1),
}


class DurationError(ValueError):
    """Raised for a duration string outside the ``<n>[dhm]`` form."""


def parse_duration(value: str) -> timedelta:
    """Parse ``"7d"``, ``"24h"`` or ``"30m"`` into a timedelta.

    Raises:
        DurationError: empty string, non-numeric prefix, missing or unknown
            unit, or a zero amount.
    """
    if not value:
        raise DurationError("empty duration string")
    match = _DURATION_RE.fullmatch(value)
    if match is None:
        raise DurationError(f"invalid duration {value!r}: expected <n>d, <n>h or <n>m")
    amount = int(match.group(1))
    if amount <= 0:
        raise DurationError(f"invalid duration {value!r}: amount must be positive")
    return amount * _UNITS[match.group(2)]


def format_refresh_interval(interval: timedelta) -> str:
    """Render a timedelta in ESO's Go-duration vocabulary (h, m, s)."""
    seconds = int(interval.total_seconds())
    if seconds % 3600 == 0:
        return f"{seconds // 3600}h"
    if seconds % 60 == 0:
        return f"{seconds // 60}m"
    return f"{seconds}s"


def effective_rotation_interval(access: LLMAccess, provider: LLMProvider) -> timedelta:
    """Rotation period used to schedule the next reconcile.

    Returns ``timedelta(0)`` when neither side asks for rotation.
    """
    override = access.rotation_override
    if override:
        try:
            return parse_duration(override)
        except DurationError as e:
            logger.warning(
                "Ignoring rotation override on %s/%s: %s", access.namespace, access.name, e
            )

    rotation = provider.rotation
    if rotation is not None and rotation.enabled and rotation.interval:
        try:
            return parse_duration(rotation.interval)
        except DurationError as e:
            logger.warning("Ignoring rotation interval on provider %s: %s", provider.name, e)

    return timedelta(0)


def effective_refresh_interval(access: LLMAccess, provider_interval: str | None) -> str:
    """Refresh interval handed to ESO for the ExternalSecret."""
    override = access.rotation_override
    if override:
        try:
            return format_refresh_interval(parse_duration(override))
        except DurationError as e:
            logger.warning(
                "Ignoring rotation override on %s/%s: %s", access.namespace, access.name, e
            )
    if provider_interval:
        return provider_interval
    return DEFAULT_REFRESH_INTERVAL
