"""Fairness cost of doubles matches.

The cost of a match is the absolute difference of the two team rating sums
plus weighted penalties for repeating partnerships and oppositions. A
repetition penalty grows with the square of how often the pair has already
met and is boosted when the last meeting is recent; pairs formed earlier in
the same scheduling call count as having just met. A match where both
teams pair two genders earns a configurable mixed doubles bonus.
"""

from __future__ import annotations

import datetime
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

from .models import HistoryEntry, SchedulerSettings, ScheduledMatch, pair_key, to_naive_utc

Team = Tuple[str, str]


class PairLedger:
    """Historical and same-call meeting counts keyed by canonical pair."""

    def __init__(self, entries: Iterable[HistoryEntry] = ()):
        self.history: Dict[Tuple[str, str], int] = {}
        self.last: Dict[Tuple[str, str], datetime.datetime] = {}
        self.session: Dict[Tuple[str, str], int] = {}
        for entry in entries:
            key = entry.key
            self.history[key] = self.history.get(key, 0) + max(0, entry.times)
            last = to_naive_utc(entry.last)
            if last is not None:
                prev = self.last.get(key)
                if prev is None or last > prev:
                    self.last[key] = last

    def count(self, a: str, b: str) -> int:
        key = pair_key(a, b)
        return self.history.get(key, 0) + self.session.get(key, 0)

    def add(self, a: str, b: str) -> None:
        key = pair_key(a, b)
        self.session[key] = self.session.get(key, 0) + 1

    def elapsed_days(self, a: str, b: str, as_of: datetime.datetime | None) -> Optional[float]:
        """Days since the pair last met, ``None`` when unknown."""
        key = pair_key(a, b)
        if self.session.get(key):
            return 0.0
        last = self.last.get(key)
        if last is None or as_of is None:
            return None
        return max(0.0, (as_of - last).total_seconds() / 86400.0)

    def latest(self) -> datetime.datetime | None:
        return max(self.last.values()) if self.last else None


def repetition_penalty(count: int, elapsed_days: Optional[float], settings: SchedulerSettings) -> float:
    """Convex penalty for a pair that already met ``count`` times."""
    if count <= 0:
        return 0.0
    boost = 0.0
    if elapsed_days is not None:
        boost = settings.recency_weight * 0.5 ** (elapsed_days / settings.recency_half_life_days)
    return count * count * (1.0 + boost)


class FairnessScorer:
    def __init__(
        self,
        ratings: Mapping[str, float],
        partnerships: PairLedger,
        oppositions: PairLedger,
        settings: SchedulerSettings | None = None,
        as_of: datetime.datetime | None = None,
        genders: Mapping[str, Optional[str]] | None = None,
    ):
        self.ratings = ratings
        self.genders = genders or {}
        self.partnerships = partnerships
        self.oppositions = oppositions
        self.settings = settings or SchedulerSettings()
        if as_of is None:
            stamps = [t for t in (partnerships.latest(), oppositions.latest()) if t is not None]
            as_of = max(stamps) if stamps else None
        self.as_of = to_naive_utc(as_of)

    def level_imbalance(self, team1: Team, team2: Team) -> float:
        r = self.ratings
        return abs((r[team1[0]] + r[team1[1]]) - (r[team2[0]] + r[team2[1]]))

    def is_mixed(self, team: Team) -> bool:
        first = self.genders.get(team[0])
        second = self.genders.get(team[1])
        return bool(first and second and first.upper() != second.upper())

    def mixed_bonus(self, team1: Team, team2: Team) -> float:
        """Reward for a mixed doubles match, where both teams pair two genders."""
        if self.is_mixed(team1) and self.is_mixed(team2):
            return self.settings.mixed_bonus
        return 0.0

    def partnership_penalty(self, a: str, b: str) -> float:
        ledger = self.partnerships
        return repetition_penalty(ledger.count(a, b), ledger.elapsed_days(a, b, self.as_of), self.settings)

    def opposition_penalty(self, a: str, b: str) -> float:
        ledger = self.oppositions
        return repetition_penalty(ledger.count(a, b), ledger.elapsed_days(a, b, self.as_of), self.settings)

    def match_cost(self, team1: Team, team2: Team) -> float:
        s = self.settings
        cost = self.level_imbalance(team1, team2)
        cost += s.alpha * self.partnership_penalty(*team1)
        cost += s.alpha * self.partnership_penalty(*team2)
        for a in team1:
            for b in team2:
                cost += s.beta * self.opposition_penalty(a, b)
        return cost - self.mixed_bonus(team1, team2)

    def round_cost(self, matches: Sequence[ScheduledMatch | Tuple[Team, Team]]) -> float:
        total = 0.0
        for m in matches:
            if isinstance(m, ScheduledMatch):
                total += self.match_cost(m.team1, m.team2)
            else:
                total += self.match_cost(m[0], m[1])
        return total

    def breakdown(self, team1: Team, team2: Team) -> dict[str, float]:
        """Return the parts of :meth:`match_cost` for display."""
        partnership = self.partnership_penalty(*team1) + self.partnership_penalty(*team2)
        opposition = sum(self.opposition_penalty(a, b) for a in team1 for b in team2)
        return {
            "level_imbalance": self.level_imbalance(team1, team2),
            "partnership": self.settings.alpha * partnership,
            "opposition": self.settings.beta * opposition,
            "mixed": -self.mixed_bonus(team1, team2),
        }

    def record_match(self, team1: Team, team2: Team) -> None:
        """Count the pairings of ``team1`` vs ``team2`` towards later rounds."""
        self.partnerships.add(*team1)
        self.partnerships.add(*team2)
        for a in team1:
            for b in team2:
                self.oppositions.add(a, b)


def generation_cost(scorer: FairnessScorer, rounds) -> float:
    """Sum of round costs evaluated against the scorer's current ledgers."""
    return sum(scorer.round_cost(r.matches) for r in rounds)
