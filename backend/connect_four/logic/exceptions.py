"""Typed domain exceptions for rejected session actions.

Every rule violation raised by the board, a session or the registry is a
subclass of GameRuleError. The session manager catches them at the service
boundary and converts them into an error message for the requester only;
anything else escaping a handler is treated as an internal fault.
"""


class GameRuleError(Exception):
    """Base exception for rejected actions. State is left untouched."""


class InvalidColumnError(GameRuleError):
    """Column index is outside the board."""

    def __init__(self, column: int) -> None:
        self.column = column
        super().__init__(f"column {column} is outside the board")


class ColumnFullError(GameRuleError):
    """Column has no empty cell left."""

    def __init__(self, column: int) -> None:
        self.column = column
        super().__init__(f"column {column} is full")


class NotYourTurnError(GameRuleError):
    """Move attempted by a player who does not hold the turn, or outside play."""


class SessionFullError(GameRuleError):
    """Both seats of the session are taken."""


class AlreadySeatedError(GameRuleError):
    """The identity already holds a seat in the session."""


class NotSeatedError(GameRuleError):
    """The identity holds no seat in the session."""


class NotEnoughPlayersError(GameRuleError):
    """Reset needs two seated players."""


class SessionExistsError(GameRuleError):
    """A session with the requested code is already registered."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"session {code} already exists")
