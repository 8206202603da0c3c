"""Pick one concrete printer from the devices CUPS reports."""
from __future__ import annotations

import logging
from typing import NamedTuple, Optional, Sequence

from print_dispatch.models import RegistryState

logger = logging.getLogger(__name__)

GENERIC_PROFILE_NAMES = ("default", "generic")


class Resolution(NamedTuple):
    device_name: str
    options: dict[str, str]
    rule: str  # "default", "exact" or "fallback"


def resolve(available: Sequence[str], state: RegistryState) -> Optional[Resolution]:
    """Choose a device and its option map, or None when no device is reported.

    Rules, first match wins:
      1. the registry default, if CUPS reports it and it has a profile
      2. the first reported device (in CUPS order) that has a profile
      3. the first reported device with the ``default``/``generic`` options
    """
    logger.info("Available printers: %s", list(available))
    logger.info("Configured printers: %s", [p.name for p in state.profiles])

    default_name = state.default_device_name
    if default_name and default_name in available:
        profile = state.get_profile(default_name)
        if profile is not None:
            logger.info("Using default printer: %s", default_name)
            return Resolution(default_name, dict(profile.options), "default")

    for name in available:
        profile = state.get_profile(name)
        if profile is not None:
            logger.info("Found exact match for printer: %s", name)
            return Resolution(name, dict(profile.options), "exact")

    if available:
        first = available[0]
        generic = next(
            (p for p in state.profiles if p.name in GENERIC_PROFILE_NAMES), None
        )
        logger.info(
            "No configured printers found. Using first available: %s (generic options: %s)",
            first, generic.name if generic else "none",
        )
        return Resolution(first, dict(generic.options) if generic else {}, "fallback")

    logger.error("No printers available on the system")
    return None
