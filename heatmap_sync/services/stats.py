"""
stats.py — Activity bucket counts for the current cluster point set.

Buckets (boundaries matter; the map legend uses the same ones):

  high    count > 50
  medium  30 <= count <= 50
  low     count < 30

Every point falls in exactly one bucket, so
high + medium + low == len(points), and total_count == sum(count).
"""

from __future__ import annotations

from collections.abc import Iterable

from heatmap_sync.models.heatmap import ActivityLevel, ActivityStats, ClusterPoint

HIGH_ACTIVITY_THRESHOLD = 50     # strictly greater → high
MEDIUM_ACTIVITY_THRESHOLD = 30   # greater or equal → at least medium


def classify_activity(count: int) -> ActivityLevel:
    if count > HIGH_ACTIVITY_THRESHOLD:
        return ActivityLevel.HIGH
    if count >= MEDIUM_ACTIVITY_THRESHOLD:
        return ActivityLevel.MEDIUM
    return ActivityLevel.LOW


def calculate_stats(points: Iterable[ClusterPoint]) -> ActivityStats:
    total = 0
    buckets = {level: 0 for level in ActivityLevel}
    for point in points:
        total += point.count
        buckets[classify_activity(point.count)] += 1

    return ActivityStats(
        total_count=total,
        high_activity_count=buckets[ActivityLevel.HIGH],
        medium_activity_count=buckets[ActivityLevel.MEDIUM],
        low_activity_count=buckets[ActivityLevel.LOW],
    )
