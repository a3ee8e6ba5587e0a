import datetime

import pytest

from badminton.fairness import FairnessScorer, PairLedger, generation_cost, repetition_penalty
from badminton.models import HistoryEntry, Round, SchedulerSettings, ScheduledMatch

NOW = datetime.datetime(2024, 5, 1, 19, 0)
EQUAL = {"a": 1500.0, "b": 1500.0, "c": 1500.0, "d": 1500.0}


def scorer_for(ratings, partnerships=(), oppositions=(), settings=None, as_of=None):
    return FairnessScorer(
        ratings,
        PairLedger(partnerships),
        PairLedger(oppositions),
        settings or SchedulerSettings(),
        as_of,
    )


def test_level_imbalance_uses_team_sums():
    scorer = scorer_for({"a": 2000, "b": 1000, "c": 1600, "d": 1500})
    assert scorer.level_imbalance(("a", "b"), ("c", "d")) == 100
    assert scorer.match_cost(("a", "b"), ("c", "d")) == 100


def test_balanced_new_pairs_cost_nothing():
    assert scorer_for(EQUAL).match_cost(("a", "b"), ("c", "d")) == 0


def test_repetition_penalty_is_convex():
    settings = SchedulerSettings()
    assert repetition_penalty(0, None, settings) == 0
    assert repetition_penalty(1, None, settings) == 1
    assert repetition_penalty(2, None, settings) == 4
    assert repetition_penalty(3, None, settings) == 9


def test_recency_boost_decays_with_half_life():
    settings = SchedulerSettings(recency_weight=1.0, recency_half_life_days=14.0)
    assert repetition_penalty(1, 0.0, settings) == pytest.approx(2.0)
    assert repetition_penalty(1, 14.0, settings) == pytest.approx(1.5)
    assert repetition_penalty(2, 28.0, settings) == pytest.approx(4 * 1.25)
    assert repetition_penalty(1, 3650.0, settings) == pytest.approx(1.0)


def test_partnership_penalty_weighted_by_alpha():
    history = [HistoryEntry("a", "b", 2)]
    scorer = scorer_for(EQUAL, partnerships=history, settings=SchedulerSettings(alpha=10, beta=0))
    assert scorer.match_cost(("a", "b"), ("c", "d")) == pytest.approx(40)
    assert scorer.match_cost(("a", "c"), ("b", "d")) == 0


def test_opposition_penalty_covers_all_cross_pairs():
    history = [HistoryEntry("a", "c", 1), HistoryEntry("b", "d", 1), HistoryEntry("a", "b", 5)]
    scorer = scorer_for(EQUAL, oppositions=history, settings=SchedulerSettings(alpha=0, beta=3))
    # a-b are partners here, so their opposition count does not apply
    assert scorer.match_cost(("a", "b"), ("c", "d")) == pytest.approx(6)


def test_ledger_merges_duplicate_entries():
    ledger = PairLedger(
        [
            HistoryEntry("b", "a", 1, datetime.datetime(2024, 1, 1)),
            HistoryEntry("a", "b", 2, datetime.datetime(2024, 3, 1)),
        ]
    )
    assert ledger.count("a", "b") == 3
    assert ledger.latest() == datetime.datetime(2024, 3, 1)


def test_recent_partnership_costs_more_than_old_one():
    recent = [HistoryEntry("a", "b", 1, NOW - datetime.timedelta(days=1))]
    old = [HistoryEntry("a", "b", 1, NOW - datetime.timedelta(days=90))]
    recent_cost = scorer_for(EQUAL, partnerships=recent, as_of=NOW).match_cost(("a", "b"), ("c", "d"))
    old_cost = scorer_for(EQUAL, partnerships=old, as_of=NOW).match_cost(("a", "b"), ("c", "d"))
    assert recent_cost > old_cost > 0


def test_history_without_timestamp_gets_no_boost():
    scorer = scorer_for(EQUAL, partnerships=[HistoryEntry("a", "b", 1)], as_of=NOW)
    assert scorer.partnership_penalty("a", "b") == pytest.approx(1.0)


def test_as_of_defaults_to_latest_history_timestamp():
    stamp = datetime.datetime(2024, 2, 1)
    scorer = scorer_for(EQUAL, partnerships=[HistoryEntry("a", "b", 1, stamp)])
    assert scorer.as_of == stamp
    assert scorer.partnership_penalty("a", "b") == pytest.approx(2.0)


def test_recorded_match_counts_as_just_played():
    scorer = scorer_for(EQUAL)
    scorer.record_match(("a", "b"), ("c", "d"))
    assert scorer.partnerships.count("a", "b") == 1
    assert scorer.oppositions.count("a", "d") == 1
    assert scorer.partnership_penalty("a", "b") == pytest.approx(2.0)
    # a-b partnered and c-d partnered, each cross pair opposed once
    assert scorer.match_cost(("a", "b"), ("c", "d")) == pytest.approx(20 * 4 + 20 * 8)


def test_breakdown_adds_up_to_match_cost():
    scorer = scorer_for(
        {"a": 1700, "b": 1500, "c": 1400, "d": 1500},
        partnerships=[HistoryEntry("a", "b", 1)],
        oppositions=[HistoryEntry("a", "c", 2)],
    )
    parts = scorer.breakdown(("a", "b"), ("c", "d"))
    assert sum(parts.values()) == pytest.approx(scorer.match_cost(("a", "b"), ("c", "d")))
    assert parts["level_imbalance"] == 300


def test_round_and_generation_cost():
    scorer = scorer_for({"a": 1600, "b": 1500, "c": 1500, "d": 1500})
    match = ScheduledMatch(round=1, court=1, team1=("a", "b"), team2=("c", "d"))
    assert scorer.round_cost([match]) == 100
    assert scorer.round_cost([(("a", "b"), ("c", "d"))]) == 100
    assert generation_cost(scorer, [Round(1, [match]), Round(2, [match])]) == 200


def test_mixed_match_earns_bonus():
    genders = {"a": "M", "b": "F", "c": "F", "d": "M"}
    scorer = FairnessScorer(EQUAL, PairLedger(), PairLedger(), SchedulerSettings(), NOW, genders)
    assert scorer.is_mixed(("a", "b"))
    assert not scorer.is_mixed(("a", "d"))
    assert scorer.match_cost(("a", "b"), ("c", "d")) == -50
    # one mixed team is not a mixed match
    assert scorer.match_cost(("a", "d"), ("b", "c")) == 0
    parts = scorer.breakdown(("a", "b"), ("c", "d"))
    assert parts["mixed"] == -50
    assert sum(parts.values()) == scorer.match_cost(("a", "b"), ("c", "d"))


def test_unknown_gender_is_not_mixed():
    scorer = FairnessScorer(EQUAL, PairLedger(), PairLedger(), genders={"a": "M", "b": None, "c": "f", "d": "F"})
    assert not scorer.is_mixed(("a", "b"))
    assert not scorer.is_mixed(("c", "d"))
    assert scorer.mixed_bonus(("a", "b"), ("c", "d")) == 0


def test_naive_and_aware_timestamps_mix():
    aware = datetime.datetime(2024, 5, 1, 21, 0, tzinfo=datetime.timezone(datetime.timedelta(hours=2)))
    scorer = scorer_for(
        EQUAL,
        partnerships=[HistoryEntry("a", "b", 1, datetime.datetime(2024, 4, 17, 19, 0)), HistoryEntry("a", "b", 0, aware)],
        as_of=NOW.replace(tzinfo=datetime.timezone.utc),
    )
    assert scorer.partnerships.elapsed_days("a", "b", scorer.as_of) == 0
    assert scorer.partnership_penalty("a", "b") == pytest.approx(2)
