import logging

import pytest

from badminton.exceptions import InsufficientPlayers, InvalidConfiguration, SchedulingError
from badminton.models import HistoryEntry, Player
from badminton.roster import filter_history, normalize_roster


def make_players(*ids, **kwargs):
    return [Player(pid, pid.upper(), **kwargs) for pid in ids]


def test_normalize_roster_sorts_by_id():
    roster = normalize_roster(make_players("d", "b", "a", "c"))
    assert [p.player_id for p in roster] == ["a", "b", "c", "d"]


def test_normalize_roster_drops_inactive_and_paused():
    players = make_players("a", "b", "c", "d") + [
        Player("e", "E", active=False),
        Player("f", "F", paused=True),
    ]
    roster = normalize_roster(players)
    assert [p.player_id for p in roster] == ["a", "b", "c", "d"]


def test_normalize_roster_requires_four_eligible():
    players = make_players("a", "b", "c") + [Player("d", "D", paused=True)]
    with pytest.raises(InsufficientPlayers) as exc:
        normalize_roster(players)
    assert exc.value.count == 3
    assert "got 3" in str(exc.value)


def test_normalize_roster_rejects_duplicates():
    with pytest.raises(InvalidConfiguration):
        normalize_roster(make_players("a", "b", "c", "d", "a"))


def test_scheduling_errors_share_base():
    assert issubclass(InsufficientPlayers, SchedulingError)
    assert issubclass(SchedulingError, ValueError)


def test_filter_history_drops_unknown_players(caplog):
    entries = [
        HistoryEntry("a", "b", 2),
        HistoryEntry("a", "zed", 7),
    ]
    with caplog.at_level(logging.DEBUG, logger="badminton.roster"):
        kept = filter_history(entries, ["a", "b", "c", "d"])
    assert kept == [HistoryEntry("a", "b", 2)]
    assert "zed" in caplog.text
