"""
test_stats.py — Activity buckets over cluster points.

Run:
    pytest tests/test_stats.py -v
"""

import pytest

from conftest import make_points
from heatmap_sync.models.heatmap import ActivityLevel, ActivityStats, ClusterPoint
from heatmap_sync.services.stats import calculate_stats, classify_activity


class TestClassifyActivity:

    @pytest.mark.parametrize(
        "count,level",
        [
            (0, ActivityLevel.LOW),
            (29, ActivityLevel.LOW),
            (30, ActivityLevel.MEDIUM),
            (50, ActivityLevel.MEDIUM),
            (51, ActivityLevel.HIGH),
            (10_000, ActivityLevel.HIGH),
        ],
    )
    def test_bucket_boundaries(self, count, level):
        assert classify_activity(count) is level


class TestCalculateStats:

    def test_mixed_point_set(self):
        stats = calculate_stats(make_points(60, 40, 10))
        assert stats == ActivityStats(
            total_count=110,
            high_activity_count=1,
            medium_activity_count=1,
            low_activity_count=1,
        )

    def test_fifty_counts_as_medium_not_high(self):
        stats = calculate_stats(make_points(50))
        assert stats.high_activity_count == 0
        assert stats.medium_activity_count == 1

    def test_empty_point_set_is_all_zero(self):
        assert calculate_stats([]) == ActivityStats.empty()

    def test_every_point_in_exactly_one_bucket(self):
        points = make_points(0, 1, 29, 30, 31, 49, 50, 51, 99, 500)
        stats = calculate_stats(points)
        assert (
            stats.high_activity_count
            + stats.medium_activity_count
            + stats.low_activity_count
        ) == len(points)
        assert stats.total_count == sum(p.count for p in points)

    def test_accepts_points_parsed_from_backend_names(self):
        point = ClusterPoint.model_validate({"latitud": 19.4, "longitud": -99.1, "count": 75})
        assert calculate_stats([point]).high_activity_count == 1
