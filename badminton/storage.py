import datetime
import json
import logging
import pickle
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Generator, Iterable, List
from urllib.parse import urlparse

import psycopg2
import psycopg2.extras
import redis

from .config import (
    DB_FILE,
    get_database_url,
    get_redis_url,
    get_cache_ttl,
)
from .models import (
    HistoryEntry,
    MatchResult,
    OppositionRecord,
    PartnershipRecord,
    Player,
    PlayerStatistics,
    Round,
    ScheduledMatch,
    Training,
    COMPLETED,
    PENDING,
    pair_key,
)

logger = logging.getLogger(__name__)

# ``DB_FILE`` is imported from ``badminton.config`` so tests can monkeypatch it.
DATABASE_URL = get_database_url()
IS_PG = DATABASE_URL.startswith("postgres")

# Optional Redis cache
REDIS_URL = get_redis_url()
CACHE_TTL = get_cache_ttl()
_redis = redis.from_url(REDIS_URL) if REDIS_URL else None

CACHE_PREFIX = "badminton"


class _PgCursor:
    def __init__(self, cursor):
        self._c = cursor

    def execute(self, query, params=None):
        q = query.replace("?", "%s")
        self._c.execute(q, params or [])
        return self

    def executemany(self, query, seq):
        q = query.replace("?", "%s")
        self._c.executemany(q, seq)
        return self

    def fetchone(self):
        return self._c.fetchone()

    def fetchall(self):
        return self._c.fetchall()

    def __iter__(self):
        return iter(self._c)

    def __getattr__(self, name):
        return getattr(self._c, name)


class _PgConnection:
    def __init__(self, conn):
        self._conn = conn

    def cursor(self, *a, **kw):
        return _PgCursor(self._conn.cursor(*a, **kw))

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()

    def __getattr__(self, name):
        return getattr(self._conn, name)


# --- cache -----------------------------------------------------------------

def _load_cache(key: str):
    if not _redis:
        return None
    try:
        data = _redis.get(f"{CACHE_PREFIX}:{key}")
    except redis.RedisError as e:
        logger.warning("Redis read failed for %s: %s", key, e)
        return None
    if data is None:
        return None
    return pickle.loads(data)


def _save_cache(key: str, value: object) -> None:
    if not _redis:
        return
    try:
        _redis.setex(f"{CACHE_PREFIX}:{key}", CACHE_TTL, pickle.dumps(value))
    except redis.RedisError as e:
        logger.warning("Redis write failed for %s: %s", key, e)


def invalidate_cache() -> None:
    """Drop cached query results after a write."""
    if not _redis:
        return
    try:
        keys = list(_redis.scan_iter(f"{CACHE_PREFIX}:rankings:*"))
        if keys:
            _redis.delete(*keys)
    except redis.RedisError as e:
        logger.warning("Redis invalidation failed: %s", e)


def cached_rankings(sort_by: str, active_only: bool):
    return _load_cache(f"rankings:{sort_by}:{int(active_only)}")


def store_rankings(sort_by: str, active_only: bool, rows: list) -> None:
    _save_cache(f"rankings:{sort_by}:{int(active_only)}", rows)


# --- connections -------------------------------------------------------------

def _connect():
    """Return a DB connection based on ``DATABASE_URL``."""
    if IS_PG:
        conn = psycopg2.connect(DATABASE_URL, cursor_factory=psycopg2.extras.RealDictCursor)
        wrapped = _PgConnection(conn)
        _init_schema(wrapped)
        return wrapped
    path = DB_FILE
    if DATABASE_URL.startswith("sqlite://"):
        path = Path(urlparse(DATABASE_URL).path)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    _init_schema(conn)
    return conn


@contextmanager
def transaction() -> Generator[object, None, None]:
    """Context manager yielding a connection with an active transaction."""
    conn = _connect()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
    invalidate_cache()


def _finish(conn, close: bool) -> None:
    if close:
        conn.commit()
        conn.close()
        invalidate_cache()


def _init_schema(conn) -> None:
    id_column = "SERIAL PRIMARY KEY" if IS_PG else "INTEGER PRIMARY KEY AUTOINCREMENT"
    cur = conn.cursor()
    cur.execute(
        """CREATE TABLE IF NOT EXISTS players (
        player_id TEXT PRIMARY KEY,
        name TEXT,
        level REAL,
        active INTEGER DEFAULT 1,
        gender TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS player_statistics (
        player_id TEXT PRIMARY KEY,
        total_matches INTEGER DEFAULT 0,
        wins INTEGER DEFAULT 0,
        losses INTEGER DEFAULT 0,
        win_rate REAL DEFAULT 0,
        current_streak INTEGER DEFAULT 0,
        longest_win_streak INTEGER DEFAULT 0
    )"""
    )
    for table in ("partnerships", "oppositions"):
        cur.execute(
            f"""CREATE TABLE IF NOT EXISTS {table} (
            player_a TEXT,
            player_b TEXT,
            times INTEGER DEFAULT 0,
            last TEXT,
            PRIMARY KEY (player_a, player_b)
        )"""
        )
    cur.execute(
        f"""CREATE TABLE IF NOT EXISTS trainings (
        training_id {id_column},
        name TEXT,
        date TEXT,
        courts INTEGER,
        matches_per_court INTEGER,
        status TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS training_players (
        training_id INTEGER,
        player_id TEXT,
        paused INTEGER DEFAULT 0,
        PRIMARY KEY (training_id, player_id)
    )"""
    )
    cur.execute(
        f"""CREATE TABLE IF NOT EXISTS matches (
        match_id {id_column},
        training_id INTEGER,
        round INTEGER,
        court INTEGER,
        team1_a TEXT,
        team1_b TEXT,
        team2_a TEXT,
        team2_b TEXT,
        status TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS match_results (
        match_id INTEGER PRIMARY KEY,
        team1_score INTEGER,
        team2_score INTEGER,
        winning_team INTEGER,
        level_change TEXT,
        recorded_at TEXT
    )"""
    )
    cur.execute(
        """CREATE TABLE IF NOT EXISTS bench_entries (
        training_id INTEGER,
        round INTEGER,
        player_id TEXT,
        court INTEGER,
        PRIMARY KEY (training_id, round, player_id)
    )"""
    )
    conn.commit()


def _ts(value: datetime.datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_ts(value: str | None) -> datetime.datetime | None:
    return datetime.datetime.fromisoformat(value) if value else None


# --- players -----------------------------------------------------------------

def _player_from_row(row) -> Player:
    return Player(
        player_id=row["player_id"],
        name=row["name"],
        level=row["level"],
        active=bool(row["active"]),
        gender=row["gender"],
    )


def create_player(player: Player, conn: sqlite3.Connection | None = None) -> None:
    """Insert a new player."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    cur.execute(
        "INSERT INTO players(player_id, name, level, active, gender) VALUES (?,?,?,?,?)",
        (player.player_id, player.name, player.level, int(player.active), player.gender),
    )
    _finish(conn, close)


def update_player_record(player: Player, conn: sqlite3.Connection | None = None) -> None:
    """Update a player's name, level and active flag."""
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    cur.execute(
        "UPDATE players SET name = ?, level = ?, active = ?, gender = ? WHERE player_id = ?",
        (player.name, player.level, int(player.active), player.gender, player.player_id),
    )
    _finish(conn, close)


def set_player_level(player_id: str, level: float, conn: sqlite3.Connection | None = None) -> None:
    close = conn is None
    if conn is None:
        conn = _connect()
    conn.cursor().execute("UPDATE players SET level = ? WHERE player_id = ?", (level, player_id))
    _finish(conn, close)


def get_player(player_id: str, conn: sqlite3.Connection | None = None) -> Player | None:
    close = conn is None
    if conn is None:
        conn = _connect()
    row = conn.cursor().execute("SELECT * FROM players WHERE player_id = ?", (player_id,)).fetchone()
    if close:
        conn.close()
    return _player_from_row(row) if row else None


def list_players(active_only: bool = False) -> List[Player]:
    conn = _connect()
    query = "SELECT * FROM players"
    if active_only:
        query += " WHERE active = 1"
    rows = conn.cursor().execute(query + " ORDER BY player_id").fetchall()
    conn.close()
    return [_player_from_row(r) for r in rows]


# --- statistics and pair history ---------------------------------------------

def _stats_from_row(row) -> PlayerStatistics:
    return PlayerStatistics(
        player_id=row["player_id"],
        total_matches=row["total_matches"],
        wins=row["wins"],
        losses=row["losses"],
        current_streak=row["current_streak"],
        longest_win_streak=row["longest_win_streak"],
    )


def get_statistics(player_ids: Iterable[str], conn: sqlite3.Connection | None = None) -> Dict[str, PlayerStatistics]:
    ids = list(player_ids)
    if not ids:
        return {}
    close = conn is None
    if conn is None:
        conn = _connect()
    marks = ",".join("?" for _ in ids)
    rows = conn.cursor().execute(
        f"SELECT * FROM player_statistics WHERE player_id IN ({marks})", ids
    ).fetchall()
    if close:
        conn.close()
    return {r["player_id"]: _stats_from_row(r) for r in rows}


def list_statistics() -> Dict[str, PlayerStatistics]:
    conn = _connect()
    rows = conn.cursor().execute("SELECT * FROM player_statistics").fetchall()
    conn.close()
    return {r["player_id"]: _stats_from_row(r) for r in rows}


def save_statistics(stats: PlayerStatistics, conn: sqlite3.Connection | None = None) -> None:
    close = conn is None
    if conn is None:
        conn = _connect()
    conn.cursor().execute(
        """
        INSERT INTO player_statistics(
            player_id, total_matches, wins, losses, win_rate,
            current_streak, longest_win_streak
        ) VALUES (?,?,?,?,?,?,?)
        ON CONFLICT (player_id) DO UPDATE SET
            total_matches = excluded.total_matches,
            wins = excluded.wins,
            losses = excluded.losses,
            win_rate = excluded.win_rate,
            current_streak = excluded.current_streak,
            longest_win_streak = excluded.longest_win_streak
        """,
        (
            stats.player_id,
            stats.total_matches,
            stats.wins,
            stats.losses,
            stats.win_rate,
            stats.current_streak,
            stats.longest_win_streak,
        ),
    )
    _finish(conn, close)


def _load_pairs(table: str, player_ids: Iterable[str] | None, conn) -> List[HistoryEntry]:
    rows = conn.cursor().execute(f"SELECT * FROM {table}").fetchall()
    ids = set(player_ids) if player_ids is not None else None
    entries = []
    for r in rows:
        if ids is not None and not (r["player_a"] in ids and r["player_b"] in ids):
            continue
        entries.append(HistoryEntry(r["player_a"], r["player_b"], r["times"], _parse_ts(r["last"])))
    return entries


def load_partnership_history(player_ids: Iterable[str] | None = None, conn=None) -> List[HistoryEntry]:
    """Partnership counters, restricted to pairs within ``player_ids``."""
    close = conn is None
    if conn is None:
        conn = _connect()
    entries = _load_pairs("partnerships", player_ids, conn)
    if close:
        conn.close()
    return entries


def load_opposition_history(player_ids: Iterable[str] | None = None, conn=None) -> List[HistoryEntry]:
    close = conn is None
    if conn is None:
        conn = _connect()
    entries = _load_pairs("oppositions", player_ids, conn)
    if close:
        conn.close()
    return entries


def get_partnerships(player_ids: Iterable[str], conn=None) -> Dict[tuple, PartnershipRecord]:
    return {
        e.key: PartnershipRecord(e.player_a, e.player_b, e.times, e.last)
        for e in load_partnership_history(player_ids, conn)
    }


def get_oppositions(player_ids: Iterable[str], conn=None) -> Dict[tuple, OppositionRecord]:
    return {
        e.key: OppositionRecord(e.player_a, e.player_b, e.times, e.last)
        for e in load_opposition_history(player_ids, conn)
    }


def _save_pair(table: str, a: str, b: str, times: int, last, conn) -> None:
    a, b = pair_key(a, b)
    conn.cursor().execute(
        f"""
        INSERT INTO {table}(player_a, player_b, times, last) VALUES (?,?,?,?)
        ON CONFLICT (player_a, player_b) DO UPDATE SET
            times = excluded.times,
            last = excluded.last
        """,
        (a, b, times, _ts(last)),
    )


def save_partnership(record: PartnershipRecord, conn: sqlite3.Connection | None = None) -> None:
    close = conn is None
    if conn is None:
        conn = _connect()
    _save_pair("partnerships", record.player_a, record.player_b, record.times_partnered, record.last_partnered, conn)
    _finish(conn, close)


def save_opposition(record: OppositionRecord, conn: sqlite3.Connection | None = None) -> None:
    close = conn is None
    if conn is None:
        conn = _connect()
    _save_pair("oppositions", record.player_a, record.player_b, record.times_opposed, record.last_opposed, conn)
    _finish(conn, close)


# --- trainings ---------------------------------------------------------------

def create_training(training: Training, conn: sqlite3.Connection | None = None) -> int:
    """Insert a training and its attendees, returning the new id."""
    close = conn is None
    if conn is None:
        conn = _connect()
    row = conn.cursor().execute(
        """
        INSERT INTO trainings(name, date, courts, matches_per_court, status)
        VALUES (?,?,?,?,?) RETURNING training_id
        """,
        (
            training.name,
            training.date.isoformat(),
            training.courts,
            training.matches_per_court,
            training.status,
        ),
    ).fetchall()[0]
    training_id = row["training_id"]
    for pid, paused in training.attendees.items():
        set_attendee(training_id, pid, paused, conn=conn)
    training.training_id = training_id
    _finish(conn, close)
    return training_id


def get_training(training_id: int, conn: sqlite3.Connection | None = None) -> Training | None:
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    row = cur.execute("SELECT * FROM trainings WHERE training_id = ?", (training_id,)).fetchone()
    training = None
    if row:
        training = Training(
            training_id=row["training_id"],
            name=row["name"],
            date=datetime.date.fromisoformat(row["date"]),
            courts=row["courts"],
            matches_per_court=row["matches_per_court"],
            status=row["status"],
        )
        attendees = cur.execute(
            "SELECT player_id, paused FROM training_players WHERE training_id = ? ORDER BY player_id",
            (training_id,),
        ).fetchall()
        training.attendees = {r["player_id"]: bool(r["paused"]) for r in attendees}
    if close:
        conn.close()
    return training


def set_training_status(training_id: int, status: str, conn: sqlite3.Connection | None = None) -> None:
    close = conn is None
    if conn is None:
        conn = _connect()
    conn.cursor().execute("UPDATE trainings SET status = ? WHERE training_id = ?", (status, training_id))
    _finish(conn, close)


def set_attendee(training_id: int, player_id: str, paused: bool = False, conn: sqlite3.Connection | None = None) -> None:
    """Add a player to a training or change their paused flag."""
    close = conn is None
    if conn is None:
        conn = _connect()
    conn.cursor().execute(
        """
        INSERT INTO training_players(training_id, player_id, paused) VALUES (?,?,?)
        ON CONFLICT (training_id, player_id) DO UPDATE SET paused = excluded.paused
        """,
        (training_id, player_id, int(paused)),
    )
    _finish(conn, close)


# --- matches -----------------------------------------------------------------

def _match_from_row(row) -> ScheduledMatch:
    result = None
    if row["winning_team"] is not None:
        result = MatchResult(
            team1_score=row["team1_score"],
            team2_score=row["team2_score"],
            winning_team=row["winning_team"],
            recorded_at=_parse_ts(row["recorded_at"]),
        )
    return ScheduledMatch(
        round=row["round"],
        court=row["court"],
        team1=(row["team1_a"], row["team1_b"]),
        team2=(row["team2_a"], row["team2_b"]),
        match_id=row["match_id"],
        result=result,
        status=row["status"],
    )


_MATCH_QUERY = """
    SELECT m.*, r.team1_score, r.team2_score, r.winning_team, r.recorded_at
    FROM matches m LEFT JOIN match_results r ON r.match_id = m.match_id
"""


def get_match(match_id: int, conn: sqlite3.Connection | None = None) -> ScheduledMatch | None:
    close = conn is None
    if conn is None:
        conn = _connect()
    row = conn.cursor().execute(_MATCH_QUERY + " WHERE m.match_id = ?", (match_id,)).fetchone()
    if close:
        conn.close()
    return _match_from_row(row) if row else None


def get_match_training_id(match_id: int, conn: sqlite3.Connection | None = None) -> int | None:
    close = conn is None
    if conn is None:
        conn = _connect()
    row = conn.cursor().execute("SELECT training_id FROM matches WHERE match_id = ?", (match_id,)).fetchone()
    if close:
        conn.close()
    return row["training_id"] if row else None


def list_matches(training_id: int, conn: sqlite3.Connection | None = None) -> List[ScheduledMatch]:
    close = conn is None
    if conn is None:
        conn = _connect()
    rows = conn.cursor().execute(
        _MATCH_QUERY + " WHERE m.training_id = ? ORDER BY m.round, m.court, m.match_id",
        (training_id,),
    ).fetchall()
    if close:
        conn.close()
    return [_match_from_row(r) for r in rows]


def list_bench_entries(training_id: int, conn: sqlite3.Connection | None = None) -> Dict[int, Dict[str, int | None]]:
    """Return ``{round: {player_id: court}}`` for a training."""
    close = conn is None
    if conn is None:
        conn = _connect()
    rows = conn.cursor().execute(
        "SELECT round, player_id, court FROM bench_entries WHERE training_id = ? ORDER BY round, player_id",
        (training_id,),
    ).fetchall()
    if close:
        conn.close()
    bench: Dict[int, Dict[str, int | None]] = {}
    for r in rows:
        bench.setdefault(r["round"], {})[r["player_id"]] = r["court"]
    return bench


def create_match(training_id: int, match: ScheduledMatch, conn: sqlite3.Connection | None = None) -> int:
    close = conn is None
    if conn is None:
        conn = _connect()
    row = conn.cursor().execute(
        """
        INSERT INTO matches(training_id, round, court, team1_a, team1_b, team2_a, team2_b, status)
        VALUES (?,?,?,?,?,?,?,?) RETURNING match_id
        """,
        (training_id, match.round, match.court, *match.team1, *match.team2, match.status),
    ).fetchall()[0]
    match.match_id = row["match_id"]
    _finish(conn, close)
    return match.match_id


def update_match_players(match: ScheduledMatch, conn: sqlite3.Connection | None = None) -> bool:
    """Store new teams for a match; returns False when the match already has a result."""
    close = conn is None
    if conn is None:
        conn = _connect()
    updated = conn.cursor().execute(
        """
        UPDATE matches SET team1_a = ?, team1_b = ?, team2_a = ?, team2_b = ?
        WHERE match_id = ? AND match_id NOT IN (SELECT match_id FROM match_results)
        """,
        (*match.team1, *match.team2, match.match_id),
    ).rowcount
    _finish(conn, close)
    return updated > 0


def move_bench_entries(
    training_id: int,
    round_number: int,
    benched: Dict[str, int | None],
    playing: Iterable[str],
    conn,
) -> None:
    """Bench the players in ``benched`` for one round and unbench ``playing``."""
    cur = conn.cursor()
    for pid in playing:
        cur.execute(
            "DELETE FROM bench_entries WHERE training_id = ? AND round = ? AND player_id = ?",
            (training_id, round_number, pid),
        )
    for pid, court in benched.items():
        cur.execute(
            """
            INSERT INTO bench_entries(training_id, round, player_id, court) VALUES (?,?,?,?)
            ON CONFLICT (training_id, round, player_id) DO UPDATE SET court = excluded.court
            """,
            (training_id, round_number, pid, court),
        )


def replace_unresolved_matches(training_id: int, rounds: List[Round], conn) -> int:
    """Swap the unresolved part of a training's schedule for ``rounds``.

    Matches that carry a result are left alone. Must run inside
    :func:`transaction` so the old and new generations are never visible
    together. Returns the number of deleted matches.
    """
    cur = conn.cursor()
    first_new = min((r.number for r in rounds), default=None)
    deleted = cur.execute(
        """
        DELETE FROM matches WHERE training_id = ?
        AND match_id NOT IN (SELECT match_id FROM match_results)
        """,
        (training_id,),
    ).rowcount
    # bench rows of replaced rounds and of rounds that lost all their matches
    cur.execute(
        """
        DELETE FROM bench_entries WHERE training_id = ?
        AND (round >= ? OR round NOT IN (SELECT round FROM matches WHERE training_id = ?))
        """,
        (training_id, first_new if first_new is not None else 2 ** 31 - 1, training_id),
    )
    for r in rounds:
        for m in r.matches:
            create_match(training_id, m, conn=conn)
        for pid in r.benched:
            cur.execute(
                "INSERT INTO bench_entries(training_id, round, player_id, court) VALUES (?,?,?,?)",
                (training_id, r.number, pid, r.bench_courts.get(pid)),
            )
    return deleted


def save_match_result(
    match_id: int,
    result: MatchResult,
    level_change: Dict[str, float],
    conn: sqlite3.Connection | None = None,
) -> None:
    close = conn is None
    if conn is None:
        conn = _connect()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO match_results(match_id, team1_score, team2_score, winning_team, level_change, recorded_at)
        VALUES (?,?,?,?,?,?)
        """,
        (
            match_id,
            result.team1_score,
            result.team2_score,
            result.winning_team,
            json.dumps(level_change),
            _ts(result.recorded_at),
        ),
    )
    cur.execute("UPDATE matches SET status = ? WHERE match_id = ?", (COMPLETED, match_id))
    _finish(conn, close)


def count_unresolved_matches(training_id: int, conn: sqlite3.Connection | None = None) -> int:
    close = conn is None
    if conn is None:
        conn = _connect()
    row = conn.cursor().execute(
        "SELECT COUNT(*) AS n FROM matches WHERE training_id = ? AND status = ?",
        (training_id, PENDING),
    ).fetchone()
    if close:
        conn.close()
    return row["n"]
