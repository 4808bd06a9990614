"""
Range-to-bucket policy for historical series queries.

Maps the external range tokens accepted by the history endpoint to a lookback
window and an aggregation bucket width. The RANGE_CONFIG table is fixed:

| token          | lookback | bucket |
|----------------|----------|--------|
| 1h,6h,12h,24h  | token    | 1 hour |
| 7d             | 7 days   | 6 hours|
| 30d            | 30 days  | 1 day  |
| 1y / 365d      | 365 days | 30 days|

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta

from energy_monitor.src.errors import InvalidRange


@dataclass(frozen=True)
class RangeWindow:
    """Lookback and bucket width for one range token.

    Attributes:
        lookback: How far back from now the query reaches.
        bucket_width: Width of each aggregation window.
    """

    lookback: timedelta
    bucket_width: timedelta

    @property
    def max_buckets(self) -> int:
        """Upper bound on the number of non-empty buckets in the lookback."""
        return math.ceil(self.lookback / self.bucket_width)


_HOUR = timedelta(hours=1)

RANGE_CONFIG: dict[str, RangeWindow] = {
    "1h": RangeWindow(lookback=timedelta(hours=1), bucket_width=_HOUR),
    "6h": RangeWindow(lookback=timedelta(hours=6), bucket_width=_HOUR),
    "12h": RangeWindow(lookback=timedelta(hours=12), bucket_width=_HOUR),
    "24h": RangeWindow(lookback=timedelta(hours=24), bucket_width=_HOUR),
    "7d": RangeWindow(lookback=timedelta(days=7), bucket_width=timedelta(hours=6)),
    "30d": RangeWindow(lookback=timedelta(days=30), bucket_width=timedelta(days=1)),
    "1y": RangeWindow(lookback=timedelta(days=365), bucket_width=timedelta(days=30)),
    "365d": RangeWindow(lookback=timedelta(days=365), bucket_width=timedelta(days=30)),
}

VALID_RANGES: list[str] = list(RANGE_CONFIG)

DEFAULT_RANGE = "24h"


def resolve_range(token: str) -> RangeWindow:
    """Return the RangeWindow for a range token.

    Args:
        token: One of :data:`VALID_RANGES`.

    Returns:
        RangeWindow: Lookback and bucket width.

    Raises:
        InvalidRange: If the token is not supported.
    """
    try:
        return RANGE_CONFIG[token]
    except KeyError:
        raise InvalidRange(token, VALID_RANGES) from None


def flux_duration(delta: timedelta) -> str:
    """Render a timedelta as a Flux duration literal in whole seconds."""
    return f"{int(delta.total_seconds())}s"
