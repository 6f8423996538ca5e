"""
Pydantic models for session data that crosses component boundaries.

Snapshots and move results are what the session manager turns into outbound
messages; they never carry timer handles or the move history.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from connect_four.logic.enums import Color, MoveOutcome, SessionStatus


class PlayerInfo(BaseModel):
    """A seated player. Identity is the opaque connection id."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    color: Color


class Move(BaseModel):
    model_config = ConfigDict(frozen=True)

    row: int
    col: int
    color: Color


class MoveRecord(Move):
    """History entry: a move plus who made it and when."""

    player_id: str
    timestamp: datetime
    timed_out: bool = False


class SessionSnapshot(BaseModel):
    """Read-only projection of a session for broadcasting."""

    model_config = ConfigDict(frozen=True)

    code: str
    board: list[list[Color | None]]
    players: list[PlayerInfo]
    turn: str | None
    status: SessionStatus
    winner: str | None
    last_move: Move | None
    move_count: int
    move_timeout_seconds: float
    # None while nobody is on the clock (waiting, finished, or no clock configured)
    turn_seconds_remaining: float | None = None


class MoveResult(BaseModel):
    """Outcome of a successful apply_move."""

    model_config = ConfigDict(frozen=True)

    outcome: MoveOutcome
    player_id: str
    move: Move
    snapshot: SessionSnapshot
    timed_out: bool = False

    @property
    def next_turn(self) -> str | None:
        return self.snapshot.turn
