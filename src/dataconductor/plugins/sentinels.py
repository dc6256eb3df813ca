"""Shared sentinel values for the plugin system.

Distinguishes "path not found" from "value is explicitly null" when
resolving field paths in item data. Destinations insert NULL for both,
but expressions and debug tooling need to tell them apart.

Example usage:
    from dataconductor.plugins.sentinels import MISSING

    value = get_path(item, "customer.email")
    if value is MISSING:
        # Path did not resolve
        ...
"""

from typing import Final


class MissingSentinel:
    """Sentinel class to distinguish missing fields from None values.

    This is a singleton - use the MISSING instance, not the class directly.
    Comparison should always use `is` identity, never equality.
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return "<MISSING>"

    def __bool__(self) -> bool:
        return False


MISSING: Final[MissingSentinel] = MissingSentinel()
"""Singleton sentinel indicating a path did not resolve.

Use identity comparison: `if value is MISSING:`
"""
