"""
Unit tests for aggregation and palette assembly.
"""

import pytest

from extract_colors import Cluster, aggregate, assemble


class TestAggregate:
    """Test cluster -> Color."""

    def test_rounds_half_up(self):
        cluster = Cluster(channel_sums=(3, 1, 0), population=2, order=0)
        color = aggregate(cluster, total_population=4)
        # Means 1.5, 0.5, 0.0
        assert color.rgb == (2, 1, 0)

    def test_rounds_to_nearest(self):
        cluster = Cluster(channel_sums=(10, 11, 765), population=3, order=0)
        # Means 3.33, 3.67, 255.0
        assert aggregate(cluster, 3).rgb == (3, 4, 255)

    def test_proportion(self):
        cluster = Cluster(channel_sums=(255, 0, 0), population=1, order=0)
        assert aggregate(cluster, 4).proportion == 0.25

    def test_hsl_matches_rgb(self):
        cluster = Cluster(channel_sums=(0, 0, 510), population=2, order=0)
        color = aggregate(cluster, 2)
        assert color.rgb == (0, 0, 255)
        assert color.hsl[0] == pytest.approx(240.0)
        assert color.hsl[2] == pytest.approx(0.5)

    @pytest.mark.parametrize("total", [0, -3])
    def test_rejects_non_positive_total(self, total):
        cluster = Cluster(channel_sums=(1, 1, 1), population=1, order=0)
        with pytest.raises(ValueError):
            aggregate(cluster, total)


class TestAssemble:
    """Test palette ordering."""

    def test_sorted_by_descending_proportion(self):
        clusters = [
            Cluster(channel_sums=(0, 0, 0), population=1, order=0),
            Cluster(channel_sums=(300, 0, 0), population=3, order=1),
            Cluster(channel_sums=(0, 400, 0), population=2, order=2),
        ]
        palette = assemble(clusters, 6)
        assert [c.proportion for c in palette] == [0.5, pytest.approx(1 / 3), pytest.approx(1 / 6)]
        assert [c.rgb for c in palette] == [(100, 0, 0), (0, 200, 0), (0, 0, 0)]

    def test_ties_keep_creation_order(self):
        clusters = [
            Cluster(channel_sums=(0, 0, 9), population=1, order=7),
            Cluster(channel_sums=(0, 9, 0), population=1, order=3),
            Cluster(channel_sums=(9, 0, 0), population=1, order=5),
        ]
        palette = assemble(clusters, 3)
        assert [c.rgb for c in palette] == [(0, 9, 0), (9, 0, 0), (0, 0, 9)]

    def test_proportions_sum_to_one(self):
        clusters = [
            Cluster(channel_sums=(0, 0, 0), population=n, order=i)
            for i, n in enumerate([5, 3, 11, 1])
        ]
        palette = assemble(clusters, 20)
        assert sum(c.proportion for c in palette) == pytest.approx(1.0)

    def test_empty(self):
        assert assemble([], 1) == []
