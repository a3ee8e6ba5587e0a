from __future__ import annotations

from typing import Dict, Iterable, List, Tuple


class BenchRotationTracker:
    """Decide who sits out each round of one scheduling call.

    Players benched most often get a court first; among equals the one who
    has waited longest since their last round plays, then the lower id. The
    players left over are therefore always the least benched ones, which
    keeps bench counts within one of each other.
    """

    def __init__(self, player_ids: Iterable[str]):
        self.bench_count: Dict[str, int] = {}
        self.last_played_round: Dict[str, int] = {}
        for pid in player_ids:
            self.bench_count[pid] = 0
            self.last_played_round[pid] = 0

    def _priority(self, pid: str) -> Tuple[int, int, str]:
        return (-self.bench_count[pid], self.last_played_round[pid], pid)

    def select(self, playing_slots: int) -> Tuple[List[str], List[str]]:
        """Return ``(playing, benched)`` for the next round."""
        if playing_slots < 0:
            raise ValueError("playing_slots must not be negative")
        ordered = sorted(self.bench_count, key=self._priority)
        return ordered[:playing_slots], ordered[playing_slots:]

    def advance(self, round_number: int, playing: Iterable[str], benched: Iterable[str]) -> None:
        for pid in benched:
            self.bench_count[pid] += 1
        for pid in playing:
            self.last_played_round[pid] = round_number

    def spread(self) -> int:
        """Difference between the most and least benched player."""
        counts = list(self.bench_count.values())
        return max(counts) - min(counts) if counts else 0
