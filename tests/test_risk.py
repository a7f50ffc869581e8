"""Tests for composite risk scoring."""

import pytest

from cosmic_watch.risk import (
    calculate_risk_score,
    enrich_asteroid,
    filter_by_risk_level,
    get_risk_level,
    matches_risk_level,
    select_close_approach,
)

from conftest import critical_asteroid, high_asteroid, make_asteroid


class TestCalculateRiskScore:

    def test_minimum_profile_scores_ten(self):
        asteroid = make_asteroid(hazardous=False, diameter_km=0.2, velocity_kmh="25000", miss_km=str(384400 * 20))
        assert calculate_risk_score(asteroid) == 10
        assert get_risk_level(10) == "low"

    def test_maximum_profile_is_capped_at_hundred(self):
        asteroid = critical_asteroid("1")
        assert calculate_risk_score(asteroid) == 100
        assert get_risk_level(100) == "critical"

    def test_diameter_is_averaged(self):
        asteroid = make_asteroid(diameter_km=0.0)
        asteroid["estimated_diameter"]["kilometers"] = {
            "estimated_diameter_min": 0.8,
            "estimated_diameter_max": 1.4,
        }
        # avg 1.1 km -> +30
        assert calculate_risk_score(asteroid) == 30 + 3 + 2

    def test_missing_diameter_counts_as_smallest_bucket(self):
        asteroid = make_asteroid()
        del asteroid["estimated_diameter"]
        assert calculate_risk_score(asteroid) == 10

    def test_prefers_earth_approach(self):
        asteroid = make_asteroid(orbiting_body="Mars", velocity_kmh="200000", miss_km="1000")
        asteroid["close_approach_data"].append({
            "relative_velocity": {"kilometers_per_hour": "1000"},
            "miss_distance": {"kilometers": str(384400 * 50)},
            "orbiting_body": "EARTH",
        })
        assert calculate_risk_score(asteroid) == 10

    def test_falls_back_to_first_approach(self):
        asteroid = make_asteroid(orbiting_body="Venus", velocity_kmh="60000", miss_km="100000")
        assert calculate_risk_score(asteroid) == 5 + 15 + 15

    def test_empty_approaches_use_defaults(self):
        asteroid = make_asteroid(hazardous=True)
        asteroid["close_approach_data"] = []
        # velocity 0 -> +3, distance infinite -> +2
        assert calculate_risk_score(asteroid) == 30 + 5 + 3 + 2

    def test_unparseable_numbers_use_defaults(self):
        asteroid = make_asteroid(velocity_kmh="fast", miss_km=None)
        assert calculate_risk_score(asteroid) == 10

    def test_missing_approach_key_raises(self):
        asteroid = make_asteroid()
        del asteroid["close_approach_data"]
        with pytest.raises(KeyError):
            calculate_risk_score(asteroid)


class TestMonotonicity:

    @pytest.mark.parametrize("diameters", [[0.1, 0.3, 0.7, 1.5]])
    def test_size(self, diameters):
        scores = [calculate_risk_score(make_asteroid(diameter_km=d)) for d in diameters]
        assert scores == sorted(scores)
        assert scores == [10, 15, 25, 35]

    def test_velocity(self):
        speeds = ["1000", "30000", "60000", "120000"]
        scores = [calculate_risk_score(make_asteroid(velocity_kmh=v)) for v in speeds]
        assert scores == sorted(scores)
        assert scores == [10, 15, 22, 32]

    def test_proximity(self):
        distances = [str(384400 * 30), str(384400 * 10), str(384400 * 2), "1000"]
        scores = [calculate_risk_score(make_asteroid(miss_km=d)) for d in distances]
        assert scores == sorted(scores)
        assert scores == [10, 13, 18, 23]

    def test_hazard_flag(self):
        assert calculate_risk_score(make_asteroid(hazardous=True)) == calculate_risk_score(make_asteroid()) + 30


class TestRiskLevel:

    @pytest.mark.parametrize(
        "score,level",
        [
            (100, "critical"),
            (70, "critical"),
            (69, "high"),
            (50, "high"),
            (49, "medium"),
            (30, "medium"),
            (29, "low"),
            (0, "low"),
        ],
    )
    def test_boundaries_are_closed_below(self, score, level):
        assert get_risk_level(score) == level


class TestEnrichAsteroid:

    def test_attaches_analysis_without_mutating_input(self):
        asteroid = high_asteroid("7")
        enriched = enrich_asteroid(asteroid)

        assert enriched["risk_analysis"] == {"score": 53, "level": "high"}
        assert "risk_analysis" not in asteroid
        assert enriched["id"] == "7"

    def test_malformed_record_gets_safe_default(self):
        asteroid = make_asteroid()
        del asteroid["close_approach_data"]

        enriched = enrich_asteroid(asteroid)

        assert enriched["risk_analysis"] == {"score": 0, "level": "low"}
        assert {k: v for k, v in enriched.items() if k != "risk_analysis"} == asteroid

    def test_malformed_record_does_not_affect_batch(self):
        broken = make_asteroid("broken")
        broken["close_approach_data"] = None
        batch = [critical_asteroid("a"), broken, make_asteroid("c")]

        levels = [enrich_asteroid(a)["risk_analysis"]["level"] for a in batch]

        assert levels == ["critical", "low", "low"]

    def test_non_dict_passes_through(self):
        assert enrich_asteroid(None) is None
        assert enrich_asteroid("3542519") == "3542519"


class TestRiskFilter:

    def test_high_includes_critical(self):
        enriched = [enrich_asteroid(a) for a in (critical_asteroid("1"), high_asteroid("2"), make_asteroid("3"))]

        assert [a["id"] for a in filter_by_risk_level(enriched, "high")] == ["1", "2"]
        assert [a["id"] for a in filter_by_risk_level(enriched, "low")] == ["3"]

    def test_no_filter_keeps_everything(self):
        enriched = [enrich_asteroid(make_asteroid(str(i))) for i in range(3)]
        assert filter_by_risk_level(enriched, None) == enriched

    def test_matching_is_case_insensitive(self):
        assert matches_risk_level(enrich_asteroid(make_asteroid()), "LOW")

    def test_select_close_approach_none_for_empty(self):
        assert select_close_approach([]) is None
