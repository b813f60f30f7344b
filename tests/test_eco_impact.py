"""Unit tests for eco-impact computation."""

import pytest

from ecoride.domain.eco_impact import EcoStats, compute_eco_impact


def test_seven_and_a_half_km():
    impact = compute_eco_impact(7.5)
    assert impact.fuel_saved == 0.50
    assert impact.co2_saved == 1.16
    assert impact.trees_equivalent == 0.0533


def test_zero_distance():
    impact = compute_eco_impact(0)
    assert (impact.co2_saved, impact.trees_equivalent, impact.fuel_saved) == (0, 0, 0)


def test_is_idempotent():
    assert compute_eco_impact(12.34) == compute_eco_impact(12.34)


@pytest.mark.parametrize("distance", [1, 3.3, 15, 42.195])
def test_trees_follow_stored_co2(distance):
    impact = compute_eco_impact(distance)
    assert impact.trees_equivalent == pytest.approx(impact.co2_saved / 21.77, abs=5e-5)


def test_empty_stats_are_zero():
    stats = EcoStats()
    assert stats.total_rides == 0
    assert stats.total_co2_saved == 0.0
    assert stats.total_trees_equivalent == 0.0
