from __future__ import annotations

import datetime
import logging
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

from .bench import BenchRotationTracker
from .exceptions import InvalidConfiguration
from .fairness import FairnessScorer, PairLedger
from .models import HistoryEntry, Player, Round, SchedulerSettings, ScheduledMatch
from .roster import filter_history, normalize_roster

logger = logging.getLogger(__name__)

# minimum cost decrease for a swap to count as an improvement
EPSILON = 1e-9

# Team splits of a rating-sorted quartet [a, b, c, d], tried in this order:
# ad|bc, ac|bd, ab|cd.
QUARTET_SPLITS = ((0, 3, 1, 2), (0, 2, 1, 3), (0, 1, 2, 3))

# Slot swaps inside one quartet that move a player to the other team.
CROSS_TEAM_SWAPS = ((0, 2), (0, 3), (1, 2), (1, 3))


def _validate_positive_int(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidConfiguration(f"{name} must be an integer of at least 1, got {value!r}")


def _teams(quartet: Sequence[str]) -> Tuple[Tuple[str, str], Tuple[str, str]]:
    return (quartet[0], quartet[1]), (quartet[2], quartet[3])


def _quartet_cost(scorer: FairnessScorer, quartet: Sequence[str]) -> float:
    return scorer.match_cost(*_teams(quartet))


def seed_quartets(selected: Iterable[str], scorer: FairnessScorer) -> List[List[str]]:
    """Group players of close rating into quartets and split each into teams.

    Each quartet is stored as ``[team1_a, team1_b, team2_a, team2_b]``.
    """
    ratings = scorer.ratings
    ordered = sorted(selected, key=lambda pid: (-ratings[pid], pid))
    quartets = []
    for start in range(0, len(ordered) - 3, 4):
        group = ordered[start:start + 4]
        best_cost = None
        best = None
        for split in QUARTET_SPLITS:
            candidate = [group[i] for i in split]
            cost = _quartet_cost(scorer, candidate)
            if best_cost is None or cost < best_cost - EPSILON:
                best_cost = cost
                best = candidate
        quartets.append(best)
    return quartets


def _candidate_swaps(count: int) -> Iterator[Tuple[int, int, int, int]]:
    """Yield ``(quartet_i, slot_i, quartet_j, slot_j)`` in a fixed order."""
    for i in range(count):
        for j in range(i + 1, count):
            for si in range(4):
                for sj in range(4):
                    yield i, si, j, sj
    for i in range(count):
        for si, sj in CROSS_TEAM_SWAPS:
            yield i, si, i, sj


def improve_quartets(
    quartets: List[List[str]],
    scorer: FairnessScorer,
    max_attempts: int,
) -> int:
    """Hill-climb ``quartets`` in place with first-improvement player swaps.

    A swap is kept only when it strictly lowers the summed cost of the
    round. The search ends when a full scan finds nothing better or after
    ``max_attempts`` evaluated swaps. Returns the number of swaps evaluated.
    """
    costs = [_quartet_cost(scorer, q) for q in quartets]
    attempts = 0
    improved = True
    while improved:
        improved = False
        for i, si, j, sj in _candidate_swaps(len(quartets)):
            if attempts >= max_attempts:
                return attempts
            attempts += 1
            if i == j:
                trial = list(quartets[i])
                trial[si], trial[sj] = trial[sj], trial[si]
                new_cost = _quartet_cost(scorer, trial)
                if new_cost < costs[i] - EPSILON:
                    quartets[i] = trial
                    costs[i] = new_cost
                    improved = True
                    break
                continue
            trial_i = list(quartets[i])
            trial_j = list(quartets[j])
            trial_i[si], trial_j[sj] = trial_j[sj], trial_i[si]
            new_i = _quartet_cost(scorer, trial_i)
            new_j = _quartet_cost(scorer, trial_j)
            if new_i + new_j < costs[i] + costs[j] - EPSILON:
                quartets[i], quartets[j] = trial_i, trial_j
                costs[i], costs[j] = new_i, new_j
                improved = True
                break
    return attempts


def assign_bench_courts(benched: Iterable[str], matches: Sequence[ScheduledMatch], ratings: Dict[str, float]) -> Dict[str, int]:
    """Attach each benched player to the court closest to their level."""
    assignment: Dict[str, int] = {}
    if not matches:
        return assignment
    averages = [
        (m.court, sum(ratings[pid] for pid in m.player_ids) / 4)
        for m in matches
    ]
    for pid in sorted(benched):
        court, _ = min(averages, key=lambda c: (abs(c[1] - ratings[pid]), c[0]))
        assignment[pid] = court
    return assignment


def schedule(
    players: Iterable[Player],
    courts: int,
    rounds_per_court: int,
    partnership_history: Iterable[HistoryEntry] = (),
    opposition_history: Iterable[HistoryEntry] = (),
    *,
    as_of: datetime.datetime | None = None,
    settings: SchedulerSettings | None = None,
    first_round: int = 1,
) -> List[Round]:
    """Generate balanced doubles rounds for the attending players.

    Rounds are produced in order because pairings chosen in one round add
    to the repetition penalties of every later round. ``first_round`` only
    shifts the numbering, e.g. when a schedule continues after rounds that
    already have results. The inputs are never modified and identical
    inputs always give the same schedule.
    """
    _validate_positive_int("courts", courts)
    _validate_positive_int("rounds_per_court", rounds_per_court)
    _validate_positive_int("first_round", first_round)
    settings = settings or SchedulerSettings()

    roster = normalize_roster(players)
    roster_ids = [p.player_id for p in roster]
    ratings = {p.player_id: float(p.level) for p in roster}
    genders = {p.player_id: p.gender for p in roster}

    scorer = FairnessScorer(
        ratings,
        PairLedger(filter_history(partnership_history, roster_ids)),
        PairLedger(filter_history(opposition_history, roster_ids)),
        settings,
        as_of,
        genders,
    )
    tracker = BenchRotationTracker(roster_ids)
    matches_per_round = min(courts, len(roster) // 4)

    rounds: List[Round] = []
    for offset in range(rounds_per_court):
        number = first_round + offset
        playing, benched = tracker.select(4 * matches_per_round)
        quartets = seed_quartets(playing, scorer)
        attempts = improve_quartets(quartets, scorer, settings.max_swap_attempts)

        matches = []
        for court, quartet in enumerate(quartets, start=1):
            team1, team2 = _teams(quartet)
            matches.append(
                ScheduledMatch(
                    round=number,
                    court=court,
                    team1=tuple(sorted(team1)),
                    team2=tuple(sorted(team2)),
                )
            )
        logger.debug(
            "Round %d: %d matches, %d benched, cost %.2f after %d swap attempts",
            number,
            len(matches),
            len(benched),
            scorer.round_cost(matches),
            attempts,
        )
        for m in matches:
            scorer.record_match(m.team1, m.team2)
        tracker.advance(number, playing, benched)
        rounds.append(
            Round(
                number=number,
                matches=matches,
                benched=sorted(benched),
                bench_courts=assign_bench_courts(benched, matches, ratings),
            )
        )

    logger.info(
        "Scheduled %d rounds for %d players on %d courts",
        len(rounds),
        len(roster),
        matches_per_round,
    )
    return rounds


def schedule_to_dict(rounds: Sequence[Round]) -> list[dict]:
    """Plain representation of a schedule for JSON output."""
    return [
        {
            "round": r.number,
            "matches": [
                {"court": m.court, "team1": list(m.team1), "team2": list(m.team2)}
                for m in r.matches
            ],
            "benched": list(r.benched),
            "bench_courts": dict(r.bench_courts),
        }
        for r in rounds
    ]
