import datetime

import pytest

from badminton.exceptions import InvalidResult
from badminton.models import MatchResult, OppositionRecord, PartnershipRecord, PlayerStatistics
from badminton.stats import apply_outcome, update_statistics

WHEN = datetime.datetime(2024, 5, 1, 20, 30)


def result(winner=1):
    return MatchResult(21, 15, winner, WHEN) if winner == 1 else MatchResult(15, 21, winner, WHEN)


def test_first_match_creates_records():
    update = update_statistics(result(), ("a", "b"), ("c", "d"))
    assert set(update.players) == {"a", "b", "c", "d"}
    assert update.players["a"] == PlayerStatistics("a", 1, 1, 0, 1, 1)
    assert update.players["c"] == PlayerStatistics("c", 1, 0, 1, -1, 0)
    assert {(p.player_a, p.player_b) for p in update.partnerships} == {("a", "b"), ("c", "d")}
    assert len(update.oppositions) == 4
    assert all(o.times_opposed == 1 and o.last_opposed == WHEN for o in update.oppositions)


def test_streaks_extend_and_reset():
    stats = PlayerStatistics("a")
    for won in (True, True, True):
        stats = apply_outcome(stats, won)
    assert stats.current_streak == 3
    assert stats.longest_win_streak == 3
    stats = apply_outcome(stats, False)
    assert stats.current_streak == -1
    assert stats.longest_win_streak == 3
    stats = apply_outcome(stats, False)
    assert stats.current_streak == -2
    stats = apply_outcome(stats, True)
    assert stats.current_streak == 1
    assert (stats.total_matches, stats.wins, stats.losses) == (6, 4, 2)


def test_win_rate_fraction():
    assert PlayerStatistics("a").win_rate == 0.0
    assert PlayerStatistics("a", total_matches=4, wins=3, losses=1).win_rate == pytest.approx(0.75)


def test_existing_pair_counters_increment():
    partnerships = {("a", "b"): PartnershipRecord("a", "b", 2, datetime.datetime(2024, 1, 1))}
    oppositions = {("a", "c"): OppositionRecord("a", "c", 5)}
    update = update_statistics(result(2), ("b", "a"), ("c", "d"), {}, partnerships, oppositions)
    ab = next(p for p in update.partnerships if p.key == ("a", "b"))
    assert ab.times_partnered == 3
    assert ab.last_partnered == WHEN
    ac = next(o for o in update.oppositions if o.key == ("a", "c"))
    assert ac.times_opposed == 6
    assert update.players["d"].wins == 1
    # inputs untouched
    assert partnerships[("a", "b")].times_partnered == 2


def test_losing_player_longest_streak_kept():
    stats = {"c": PlayerStatistics("c", 5, 4, 1, 2, 4)}
    update = update_statistics(result(1), ("a", "b"), ("c", "d"), stats)
    assert update.players["c"].current_streak == -1
    assert update.players["c"].longest_win_streak == 4


@pytest.mark.parametrize(
    "team1,team2",
    [(("a", "b"), ("b", "c")), (("a",), ("b", "c")), (("a", "a"), ("c", "d"))],
)
def test_invalid_teams_rejected(team1, team2):
    with pytest.raises(InvalidResult):
        update_statistics(result(), team1, team2)


def test_invalid_winner_rejected():
    with pytest.raises(InvalidResult):
        update_statistics(MatchResult(21, 15, 3, WHEN), ("a", "b"), ("c", "d"))
