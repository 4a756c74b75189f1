"""Tests for the safety ranker."""

from factories import make_player, make_snapshot, standard_roster

from tactiq.services.safety_rank import rank


def _ids(candidates):
    return [c.player_id for c in candidates]


class TestRankOrdering:
    """Scores and ordering of role-eligible candidates."""

    def test_bowlers_sorted_by_score(self):
        """Fresher, better-recovered bowlers rank first."""
        ranking = rank(make_snapshot(standard_roster()), "P1")
        assert _ids(ranking.bowler_candidates) == ["P2", "P4", "P3"]
        assert [c.score for c in ranking.bowler_candidates] == [12.2, 8.25, 2.7]

    def test_batters_sorted_by_score(self):
        ranking = rank(make_snapshot(standard_roster()), "P1")
        assert _ids(ranking.batter_candidates) == ["P5", "P4", "P6"]
        assert [c.score for c in ranking.batter_candidates] == [10.03, 7.98, 1.88]

    def test_bench_is_deduplicated_union(self):
        ranking = rank(make_snapshot(standard_roster()), "P1")
        assert _ids(ranking.bench_options) == ["P2", "P5", "P4"]

    def test_ties_keep_roster_order(self):
        players = [
            make_player("P1", role="Fast Bowler"),
            make_player("B", role="Seam Bowler", fatigue=3),
            make_player("A", role="Seam Bowler", fatigue=3),
            make_player("C", role="Seam Bowler", fatigue=3),
        ]
        ranking = rank(make_snapshot(players), "P1")
        assert _ids(ranking.bowler_candidates) == ["B", "A", "C"]

    def test_limit_is_respected_with_minimum_of_one(self):
        snapshot = make_snapshot(standard_roster())
        assert len(rank(snapshot, "P1", limit=1).bowler_candidates) == 1
        assert len(rank(snapshot, "P1", limit=0).bowler_candidates) == 1

    def test_high_intensity_penalises_bowling_workload(self):
        players = [
            make_player("P1"),
            make_player("P2", role="Pace Bowler", fatigue=2, workload_7d=24, overs=2),
        ]
        medium = rank(make_snapshot(players, intensity="medium"), "P1").bowler_candidates[0].score
        high = rank(make_snapshot(players, intensity="high"), "P1").bowler_candidates[0].score
        assert high < medium


class TestRankDefaults:
    """Incomplete data never breaks ranking."""

    def test_missing_fields_use_moderate_defaults(self):
        players = [make_player("P1"), make_player("P2", role="All-Rounder")]
        ranking = rank(make_snapshot(players), "P1")
        bowler = ranking.bowler_candidates[0]
        batter = ranking.batter_candidates[0]
        assert bowler.score == 5.25
        assert batter.score == 5.03
        assert bowler.reason == "Fatigue 5.0/10, injury UNKNOWN, recovery 45."

    def test_empty_roster_returns_empty_lists(self):
        ranking = rank(make_snapshot([], active=None), None)
        assert ranking.bowler_candidates == ()
        assert ranking.batter_candidates == ()
        assert ranking.bench_options == ()


class TestRankEligibility:
    """Role filtering and active-player exclusion."""

    def test_active_player_never_ranked(self):
        players = standard_roster(fatigue=0, injury="LOW", sleep=9, recovery_score=90)
        players[0] = make_player("P1", "Active Pacer", "Fast Bowler / Batter", fatigue=0, injury="LOW")
        ranking = rank(make_snapshot(players), "P1")
        for candidates in (ranking.bowler_candidates, ranking.batter_candidates, ranking.bench_options):
            assert "P1" not in _ids(candidates)

    def test_defaults_to_snapshot_active_player(self):
        ranking = rank(make_snapshot(standard_roster(), active="P2"))
        assert "P2" not in _ids(ranking.bowler_candidates)
        assert "P1" in _ids(ranking.bowler_candidates)

    def test_pure_batters_are_not_bowling_candidates(self):
        ranking = rank(make_snapshot(standard_roster()), "P1")
        assert "P5" not in _ids(ranking.bowler_candidates)
        assert "P2" not in _ids(ranking.batter_candidates)

    def test_no_fallback_to_ineligible_players(self):
        players = [make_player("P1", role="Fast Bowler"), make_player("P2", role="Batter")]
        ranking = rank(make_snapshot(players), "P1")
        assert ranking.bowler_candidates == ()
        assert _ids(ranking.batter_candidates) == ["P2"]

    def test_rank_is_deterministic(self):
        snapshot = make_snapshot(standard_roster(fatigue=6))
        assert rank(snapshot, "P1") == rank(snapshot, "P1")
