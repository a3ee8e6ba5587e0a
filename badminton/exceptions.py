class SchedulingError(ValueError):
    """Base class for errors raised by the scheduling and rating core."""


class InsufficientPlayers(SchedulingError):
    def __init__(self, count: int):
        super().__init__(f"Need at least 4 players to generate matches, got {count}")
        self.count = count


class InvalidConfiguration(SchedulingError):
    pass


class InvalidResult(SchedulingError):
    pass


class UnknownPlayerReference(SchedulingError):
    """A history record mentions a player outside the current roster.

    Never raised to callers; the offending record is dropped and logged.
    """

    def __init__(self, player_a: str, player_b: str):
        super().__init__(f"History entry {player_a}/{player_b} references a player outside the roster")
        self.player_a = player_a
        self.player_b = player_b
