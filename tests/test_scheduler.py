import datetime
import itertools
from collections import Counter

import pytest

from badminton.exceptions import InsufficientPlayers, InvalidConfiguration
from badminton.fairness import FairnessScorer, PairLedger
from badminton.models import HistoryEntry, Player, SchedulerSettings
from badminton.scheduler import (
    assign_bench_courts,
    improve_quartets,
    schedule,
    schedule_to_dict,
    seed_quartets,
)


def make_players(ratings):
    return [Player(pid, pid.upper(), level=level) for pid, level in ratings.items()]


def club(count, base=1500, step=37):
    return make_players({f"p{i:02d}": base + ((i * step) % 400) for i in range(count)})


def partnerships_of(rounds):
    pairs = []
    for r in rounds:
        for m in r.matches:
            pairs.append(m.team1)
            pairs.append(m.team2)
    return pairs


def test_basic_match_shape():
    rounds = schedule(club(8), courts=2, rounds_per_court=1)
    assert len(rounds) == 1
    r = rounds[0]
    assert r.number == 1
    assert [m.court for m in r.matches] == [1, 2]
    assert r.benched == []
    seen = [pid for m in r.matches for pid in m.player_ids]
    assert len(seen) == len(set(seen)) == 8
    for m in r.matches:
        assert list(m.team1) == sorted(m.team1)
        assert list(m.team2) == sorted(m.team2)


def test_courts_capped_by_players():
    rounds = schedule(club(9), courts=5, rounds_per_court=2)
    for r in rounds:
        assert len(r.matches) == 2
        assert len(r.benched) == 1


def test_every_eligible_player_plays_or_sits():
    players = club(11)
    rounds = schedule(players, courts=2, rounds_per_court=4)
    ids = {p.player_id for p in players}
    for r in rounds:
        playing = {pid for m in r.matches for pid in m.player_ids}
        assert playing.isdisjoint(r.benched)
        assert playing | set(r.benched) == ids


def test_bench_fairness_over_generation():
    players = club(10)
    rounds = schedule(players, courts=2, rounds_per_court=6)
    counts = Counter(pid for r in rounds for pid in r.benched)
    per_player = [counts.get(p.player_id, 0) for p in players]
    assert max(per_player) - min(per_player) <= 1


def test_paused_and_inactive_players_never_scheduled():
    players = club(8) + [
        Player("zz_paused", "P", paused=True),
        Player("zz_gone", "G", active=False),
    ]
    rounds = schedule(players, courts=2, rounds_per_court=3)
    for r in rounds:
        for m in r.matches:
            assert "zz_paused" not in m.player_ids
            assert "zz_gone" not in m.player_ids
        assert "zz_paused" not in r.benched


def test_four_equal_players_rotate_partners():
    players = make_players({"a": 1500, "b": 1500, "c": 1500, "d": 1500})
    rounds = schedule(players, courts=1, rounds_per_court=3)
    pairs = partnerships_of(rounds)
    assert len(pairs) == 6
    assert len(set(pairs)) == 6
    assert rounds[0].matches[0].team1 == ("a", "d")
    assert rounds[0].matches[0].team2 == ("b", "c")


def test_history_steers_away_from_repeat_partners():
    players = make_players({"a": 1500, "b": 1500, "c": 1500, "d": 1500})
    history = [HistoryEntry("a", "d", 5), HistoryEntry("b", "c", 5)]
    match = schedule(players, 1, 1, history)[0].matches[0]
    assert {match.team1, match.team2} == {("a", "c"), ("b", "d")}


def test_quartet_split_balances_levels():
    players = make_players({"a": 2000, "b": 1900, "c": 1100, "d": 1000})
    match = schedule(players, 1, 1)[0].matches[0]
    assert {match.team1, match.team2} == {("a", "d"), ("b", "c")}


def test_strong_players_not_stacked():
    players = make_players({"a": 2400, "b": 2300, "c": 1000, "d": 1000})
    match = schedule(players, 1, 1)[0].matches[0]
    assert ("a", "b") not in (match.team1, match.team2)


def test_schedule_is_deterministic():
    players = club(10)
    history = [HistoryEntry("p01", "p02", 3, datetime.datetime(2024, 4, 1))]
    first = schedule_to_dict(schedule(players, 2, 4, history))
    second = schedule_to_dict(schedule(list(reversed(players)), 2, 4, history))
    assert first == second


def test_inputs_are_not_modified():
    players = club(6)
    history = [HistoryEntry("p01", "p02", 3)]
    snapshot = (list(players), list(history))
    schedule(players, 1, 3, history)
    assert (players, history) == snapshot


def test_first_round_offsets_numbering():
    rounds = schedule(club(4), 1, 2, first_round=5)
    assert [r.number for r in rounds] == [5, 6]
    assert all(m.round == r.number for r in rounds for m in r.matches)


def test_unknown_history_players_ignored():
    players = club(4)
    history = [HistoryEntry("p00", "ghost", 10)]
    assert schedule(players, 1, 1, history)


@pytest.mark.parametrize("courts,rounds", [(0, 1), (1, 0), (-1, 2), (1.5, 1), (True, 1)])
def test_invalid_configuration(courts, rounds):
    with pytest.raises(InvalidConfiguration):
        schedule(club(8), courts, rounds)


def test_not_enough_players():
    with pytest.raises(InsufficientPlayers):
        schedule(club(3), 1, 1)


def test_bench_courts_match_closest_level():
    players = make_players(
        {"a": 2000, "b": 2000, "c": 2000, "d": 2000, "e": 1000, "f": 1000, "g": 1000, "h": 1000, "i": 1950}
    )
    r = schedule(players, 2, 1)[0]
    assert r.benched == ["i"]
    strong_court = next(m.court for m in r.matches if "a" in m.player_ids)
    assert r.bench_courts == {"i": strong_court}


def test_assign_bench_courts_without_matches():
    assert assign_bench_courts(["a"], [], {"a": 1500}) == {}


def test_seed_then_improve_reaches_balance():
    ratings = {"a": 2000, "b": 1000, "c": 1000, "d": 1000, "e": 2000, "f": 1000, "g": 1000, "h": 1000}
    scorer = FairnessScorer(ratings, PairLedger(), PairLedger())
    quartets = [["a", "b", "c", "d"], ["e", "f", "g", "h"]]

    def total():
        return sum(scorer.match_cost((q[0], q[1]), (q[2], q[3])) for q in quartets)

    assert total() == 2000
    attempts = improve_quartets(quartets, scorer, 1000)
    assert attempts > 0
    assert total() == 0
    assert sorted(itertools.chain(*quartets)) == sorted(ratings)


def test_swap_budget_zero_keeps_seed():
    ratings = {"a": 2000, "b": 1000, "c": 1000, "d": 1000, "e": 2000, "f": 1000, "g": 1000, "h": 1000}
    scorer = FairnessScorer(ratings, PairLedger(), PairLedger())
    quartets = [["a", "b", "c", "d"], ["e", "f", "g", "h"]]
    assert improve_quartets(quartets, scorer, 0) == 0
    assert quartets == [["a", "b", "c", "d"], ["e", "f", "g", "h"]]


def test_seed_groups_by_rating():
    ratings = {"a": 1000, "b": 2000, "c": 1100, "d": 1900, "e": 1200, "f": 1800, "g": 1300, "h": 1700}
    scorer = FairnessScorer(ratings, PairLedger(), PairLedger())
    quartets = seed_quartets(ratings, scorer)
    assert sorted(quartets[0]) == ["b", "d", "f", "h"]
    assert sorted(quartets[1]) == ["a", "c", "e", "g"]


def test_custom_settings_respected():
    players = make_players({"a": 1500, "b": 1500, "c": 1500, "d": 1500})
    history = [HistoryEntry("a", "d", 5), HistoryEntry("b", "c", 5)]
    settings = SchedulerSettings(alpha=0, beta=0)
    match = schedule(players, 1, 1, history, settings=settings)[0].matches[0]
    # without penalties the first split of the quartet is kept
    assert match.team1 == ("a", "d")


def test_schedule_to_dict_shape():
    data = schedule_to_dict(schedule(club(5), 1, 1))
    assert data[0]["round"] == 1
    assert data[0]["matches"][0]["court"] == 1
    assert len(data[0]["benched"]) == 1
    assert set(data[0]["bench_courts"].values()) == {1}


def test_gendered_players_split_into_mixed_teams():
    players = [
        Player("a", "A", gender="M"),
        Player("b", "B", gender="F"),
        Player("c", "C", gender="F"),
        Player("d", "D", gender="M"),
    ]
    match = schedule(players, 1, 1)[0].matches[0]
    assert {match.team1, match.team2} == {("a", "c"), ("b", "d")}

    plain = schedule(players, 1, 1, settings=SchedulerSettings(mixed_bonus=0))[0].matches[0]
    assert plain.team1 == ("a", "d")


def test_history_with_naive_and_aware_timestamps():
    players = make_players({"a": 1500, "b": 1500, "c": 1500, "d": 1500})
    utc = datetime.timezone.utc
    history = [
        HistoryEntry("a", "d", 1, datetime.datetime(2024, 4, 1, 18, 0)),
        HistoryEntry("b", "c", 1, datetime.datetime(2024, 4, 2, 18, 0, tzinfo=utc)),
    ]
    rounds = schedule(players, 1, 1, history, as_of=datetime.datetime(2024, 4, 3, tzinfo=utc))
    match = rounds[0].matches[0]
    assert {match.team1, match.team2} == {("a", "c"), ("b", "d")}


def test_eight_equal_players_on_two_courts():
    players = make_players({f"p{i}": 1500 for i in range(8)})
    rounds = schedule(players, courts=2, rounds_per_court=1)
    assert len(rounds) == 1
    assert len(rounds[0].matches) == 2
    assert rounds[0].benched == []
    seen = [pid for m in rounds[0].matches for pid in m.player_ids]
    assert sorted(seen) == sorted(p.player_id for p in players)
    scorer = FairnessScorer({p.player_id: 1500.0 for p in players}, PairLedger(), PairLedger())
    for m in rounds[0].matches:
        assert scorer.level_imbalance(m.team1, m.team2) == 0
