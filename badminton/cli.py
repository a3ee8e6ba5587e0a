import argparse
import datetime
import json
import logging
import sys

from .config import get_k_factor, get_log_level, get_scheduler_settings
from .exceptions import SchedulingError
from .models import DEFAULT_LEVEL, HistoryEntry, Player, to_naive_utc
from .rating import record_result
from .scheduler import schedule, schedule_to_dict

logger = logging.getLogger(__name__)


def _parse_ts(value):
    return to_naive_utc(datetime.datetime.fromisoformat(value)) if value else None


def load_roster(path: str):
    """Read players and pair history from a JSON file.

    The file holds either a list of players or an object with ``players``,
    ``partnership_history`` and ``opposition_history`` keys. Players need an
    ``id``; ``name``, ``rating``, ``gender``, ``active`` and ``paused``
    are optional.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, list):
        data = {"players": data}
    players = [
        Player(
            player_id=str(p["id"]),
            name=p.get("name", str(p["id"])),
            level=float(p.get("rating", DEFAULT_LEVEL)),
            active=bool(p.get("active", True)),
            paused=bool(p.get("paused", False)),
            gender=p.get("gender"),
        )
        for p in data.get("players", [])
    ]

    def history(key, count_key, last_key):
        return [
            HistoryEntry(
                str(h["player_a"]),
                str(h["player_b"]),
                int(h.get(count_key, h.get("times", 0))),
                _parse_ts(h.get(last_key) or h.get("last")),
            )
            for h in data.get(key, [])
        ]

    return (
        players,
        history("partnership_history", "times_partnered", "last_partnered"),
        history("opposition_history", "times_opposed", "last_opposed"),
    )


def cmd_schedule(args) -> int:
    players, partnerships, oppositions = load_roster(args.roster)
    rounds = schedule(
        players,
        args.courts,
        args.rounds,
        partnerships,
        oppositions,
        settings=get_scheduler_settings(),
    )
    print(json.dumps(schedule_to_dict(rounds), indent=2 if args.pretty else None))
    return 0


def cmd_record(args) -> int:
    change = record_result(
        [args.team1_a, args.team1_b],
        [args.team2_a, args.team2_b],
        args.team1_score,
        args.team2_score,
        k_factor=args.k_factor if args.k_factor is not None else get_k_factor(),
    )
    print(
        f"Team {change.winning_team} won. "
        f"Team 1: {change.team1_new_ratings[0]:.0f}, {change.team1_new_ratings[1]:.0f} ({change.team1_change:+}); "
        f"Team 2: {change.team2_new_ratings[0]:.0f}, {change.team2_new_ratings[1]:.0f} ({change.team2_change:+})"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Badminton doubles scheduler')
    sub = parser.add_subparsers(dest='cmd')

    sched = sub.add_parser('schedule', help='generate rounds for a roster file')
    sched.add_argument('roster')
    sched.add_argument('--courts', type=int, default=1)
    sched.add_argument('--rounds', type=int, default=1)
    sched.add_argument('--pretty', action='store_true')

    rec = sub.add_parser('record', help='compute new ratings for a doubles result')
    rec.add_argument('team1_a', type=float)
    rec.add_argument('team1_b', type=float)
    rec.add_argument('team2_a', type=float)
    rec.add_argument('team2_b', type=float)
    rec.add_argument('team1_score', type=int)
    rec.add_argument('team2_score', type=int)
    rec.add_argument('--k-factor', type=float)
    return parser


def main(argv=None) -> int:
    logging.basicConfig(level=get_log_level(), stream=sys.stderr)
    parser = build_parser()
    args = parser.parse_args(argv)
    commands = {'schedule': cmd_schedule, 'record': cmd_record}
    if args.cmd not in commands:
        parser.print_help()
        return 1
    try:
        return commands[args.cmd](args)
    except SchedulingError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == '__main__':
    sys.exit(main())
