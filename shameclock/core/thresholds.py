from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence

from shameclock.config.settings import DEFAULT_INTERVALS, DEFAULT_THRESHOLDS, TIER_ORDER
from shameclock.core.models import Tier, TierMatch


def tier_table_from_config(
    thresholds: Optional[Dict[str, float]] = None,
    intervals: Optional[Dict[str, float]] = None,
) -> List[Tier]:
    """
    Builds an ascending tier table from ``{tier: min_elapsed_ms}`` and
    ``{tier: interval_ms}`` maps. Tiers whose boundary is missing, infinite
    or has no interval are left out.
    """
    thresholds = DEFAULT_THRESHOLDS if thresholds is None else thresholds
    intervals = DEFAULT_INTERVALS if intervals is None else intervals

    table: List[Tier] = []
    for name in TIER_ORDER:
        boundary = thresholds.get(name)
        interval = intervals.get(name)
        if boundary is None or interval is None:
            continue
        try:
            boundary = float(boundary)
            interval = float(interval)
        except (TypeError, ValueError):
            continue
        if math.isinf(boundary) or math.isnan(boundary) or interval < 0:
            continue
        table.append(Tier(name=name, min_elapsed=int(boundary), interval=int(interval)))

    table.sort(key=lambda t: t.min_elapsed)
    return table


def evaluate_tier(elapsed: int, table: Sequence[Tier]) -> Optional[TierMatch]:
    """
    Highest tier whose ``min_elapsed`` has been reached, so a user who skips
    straight past a low tier gets the higher tier's repeat interval.
    ``None`` below the lowest boundary.
    """
    ordered = sorted(table, key=lambda t: t.min_elapsed)
    for rank in range(len(ordered) - 1, -1, -1):
        tier = ordered[rank]
        if tier.min_elapsed <= elapsed:
            return TierMatch(tier=tier.name, interval=tier.interval, rank=rank)
    return None
