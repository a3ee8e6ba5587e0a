from .. import storage
from ..models import PlayerStatistics
from .exceptions import ServiceError

SORT_KEYS = {
    "level": lambda p, s: p.level,
    "wins": lambda p, s: s.wins,
    "win_rate": lambda p, s: s.win_rate,
    "matches": lambda p, s: s.total_matches,
}


def get_rankings(sort_by: str = "level", active_only: bool = False) -> list[dict[str, object]]:
    """Rank players by level, wins, win rate or matches played.

    Ties keep id order. Results are cached until the next write.
    """
    if sort_by not in SORT_KEYS:
        raise ServiceError(f"Unknown sort key '{sort_by}'", 400)
    cached = storage.cached_rankings(sort_by, active_only)
    if cached is not None:
        return cached

    stats = storage.list_statistics()
    key = SORT_KEYS[sort_by]
    rows = []
    for p in storage.list_players(active_only=active_only):
        s = stats.get(p.player_id) or PlayerStatistics(p.player_id)
        rows.append((key(p, s), p, s))
    rows.sort(key=lambda r: r[0], reverse=True)

    result = []
    for rank, (_, p, s) in enumerate(rows, start=1):
        result.append(
            {
                "rank": rank,
                "player_id": p.player_id,
                "name": p.name,
                "level": p.level,
                "active": p.active,
                "total_matches": s.total_matches,
                "wins": s.wins,
                "losses": s.losses,
                "win_rate": s.win_rate,
                "current_streak": s.current_streak,
                "longest_win_streak": s.longest_win_streak,
            }
        )
    storage.store_rankings(sort_by, active_only, result)
    return result


def club_overview() -> dict[str, object]:
    """Aggregate figures shown on the statistics page."""
    players = storage.list_players()
    stats = storage.list_statistics()
    levels = [p.level for p in players]
    total_matches = sum(s.total_matches for s in stats.values()) / 4
    return {
        "player_count": len(players),
        "active_player_count": sum(1 for p in players if p.active),
        "level_range": [min(levels) if levels else 0, max(levels) if levels else 0],
        "average_level": sum(levels) / len(levels) if levels else 0,
        "total_matches": int(total_matches),
    }
