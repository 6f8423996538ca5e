"""One Connect Four match: board, seats, turn pointer, status and move clocks.

All mutating operations are synchronous and must be called while holding
``session.lock``. Move clock expiry acquires the same lock itself, so a
timed-out move is serialized with player moves like any other move attempt.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import structlog

from connect_four.logic.board import Board
from connect_four.logic.enums import SEAT_COLORS, Color, MoveOutcome, SessionStatus
from connect_four.logic.exceptions import (
    AlreadySeatedError,
    NotEnoughPlayersError,
    NotSeatedError,
    NotYourTurnError,
    SessionFullError,
)
from connect_four.logic.timer import DEFAULT_MOVE_TIMEOUT_SECONDS, MoveTimer
from connect_four.logic.types import Move, MoveRecord, MoveResult, PlayerInfo, SessionSnapshot

logger = structlog.get_logger()

MAX_PLAYERS = len(SEAT_COLORS)

# Callback type: (session, fallback move result) -> Awaitable[None]
TimeoutCallback = Callable[["GameSession", MoveResult], Awaitable[None]]


class GameSession:
    """State machine for one match.

    Lifecycle:
    - Created WAITING with no players
    - Second seat taken: board cleared, PLAYING, red to move, red's clock armed
    - Win or full board: FINISHED, clocks cancelled
    - reset(): back to PLAYING with the same players, red to move
    - A player leaving drops the session back to WAITING
    """

    def __init__(
        self,
        code: str,
        *,
        move_timeout_seconds: float = DEFAULT_MOVE_TIMEOUT_SECONDS,
        on_timeout: TimeoutCallback | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.code = code
        self.board = Board()
        self.lock = asyncio.Lock()
        self._players: list[PlayerInfo] = []
        self._status = SessionStatus.WAITING
        self._turn: str | None = None
        self._winner: str | None = None
        self._last_move: Move | None = None
        self._history: list[MoveRecord] = []
        self._timers: dict[str, MoveTimer] = {}  # player_id -> pending move clock
        self._move_timeout_seconds = move_timeout_seconds
        self._on_timeout = on_timeout
        self._rng = rng or random.Random()

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def turn(self) -> str | None:
        return self._turn

    @property
    def winner(self) -> str | None:
        return self._winner

    @property
    def last_move(self) -> Move | None:
        return self._last_move

    @property
    def players(self) -> tuple[PlayerInfo, ...]:
        return tuple(self._players)

    @property
    def history(self) -> tuple[MoveRecord, ...]:
        return tuple(self._history)

    @property
    def move_timeout_seconds(self) -> float:
        return self._move_timeout_seconds

    @property
    def turn_seconds_remaining(self) -> float | None:
        """Time left on the clock of the player holding the turn, or None when no clock runs."""
        if self._turn is None:
            return None
        timer = self._timers.get(self._turn)
        return timer.remaining_seconds if timer is not None else None

    @property
    def is_empty(self) -> bool:
        return not self._players

    def get_player(self, player_id: str) -> PlayerInfo | None:
        return next((p for p in self._players if p.id == player_id), None)

    def is_seated(self, player_id: str) -> bool:
        return self.get_player(player_id) is not None

    def opponent_of(self, player_id: str) -> PlayerInfo | None:
        return next((p for p in self._players if p.id != player_id), None)

    def pending_timeout(self, player_id: str) -> MoveTimer | None:
        return self._timers.get(player_id)

    def seat(self, player_id: str, name: str) -> PlayerInfo:
        """Seat a player; the first seat plays red, the second yellow."""
        if self.is_seated(player_id):
            raise AlreadySeatedError(f"{name} is already seated in session {self.code}")
        if len(self._players) >= MAX_PLAYERS:
            raise SessionFullError(f"session {self.code} is full")
        player = PlayerInfo(id=player_id, name=name, color=SEAT_COLORS[len(self._players)])
        self._players.append(player)
        if len(self._players) == MAX_PLAYERS:
            self._start_match()
        return player

    def apply_move(self, player_id: str, column: int, *, timed_out: bool = False) -> MoveResult:
        """Drop the player's piece into a column and advance the match.

        Raises NotYourTurnError, InvalidColumnError or ColumnFullError with the
        session left unchanged.
        """
        if self._status != SessionStatus.PLAYING or player_id != self._turn:
            raise NotYourTurnError(f"it is not {player_id}'s turn in session {self.code}")
        player = self.get_player(player_id)
        if player is None:  # pragma: no cover - turn always names a seated player
            raise NotSeatedError(f"{player_id} is not seated in session {self.code}")

        row, col = self.board.drop_column(column, player.color)
        self._clear_timer(player_id)

        move = Move(row=row, col=col, color=player.color)
        self._last_move = move
        self._history.append(
            MoveRecord(
                row=row,
                col=col,
                color=player.color,
                player_id=player_id,
                timestamp=datetime.now(UTC),
                timed_out=timed_out,
            ),
        )

        if self.board.check_win(move) is not None:
            outcome = MoveOutcome.WIN
            self._winner = player_id
            self._finish()
        elif self.board.is_full():
            outcome = MoveOutcome.DRAW
            self._finish()
        else:
            outcome = MoveOutcome.CONTINUE
            opponent = self.opponent_of(player_id)
            self._turn = opponent.id if opponent is not None else None
            if self._turn is not None:
                self._start_turn_clock(self._turn)

        if outcome != MoveOutcome.CONTINUE:
            logger.info("session finished", session_code=self.code, outcome=outcome, winner=self._winner)

        return MoveResult(
            outcome=outcome,
            player_id=player_id,
            move=move,
            snapshot=self.snapshot(),
            timed_out=timed_out,
        )

    def arm_timeout(self, player_id: str, on_expire: TimeoutCallback, duration: float) -> None:
        """Schedule the fallback move for a player, replacing any clock already armed for them."""
        self._clear_timer(player_id)
        timer = MoveTimer()
        self._timers[player_id] = timer
        timer.start(duration, lambda: self._expire(player_id, timer, on_expire))

    def unseat(self, player_id: str) -> PlayerInfo:
        """Remove a player and cancel their clock; the match is abandoned if a seat empties."""
        player = self.get_player(player_id)
        if player is None:
            raise NotSeatedError(f"{player_id} is not seated in session {self.code}")
        self._clear_timer(player_id)
        self._players.remove(player)
        # re-seat the survivor so the next match again has red in seat 0
        self._players = [p.model_copy(update={"color": SEAT_COLORS[i]}) for i, p in enumerate(self._players)]
        if len(self._players) < MAX_PLAYERS:
            self._status = SessionStatus.WAITING
            self._turn = None
            self._winner = None
            self.cancel_timers()
        return player

    def reset(self) -> None:
        """Start a fresh match with the same two players."""
        if len(self._players) < MAX_PLAYERS:
            raise NotEnoughPlayersError(f"session {self.code} needs two players to reset")
        self._start_match()

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            code=self.code,
            board=self.board.cells(),
            players=list(self._players),
            turn=self._turn,
            status=self._status,
            winner=self._winner,
            last_move=self._last_move,
            move_count=len(self._history),
            move_timeout_seconds=self._move_timeout_seconds,
            turn_seconds_remaining=self.turn_seconds_remaining,
        )

    def cancel_timers(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

    def _start_match(self) -> None:
        self.cancel_timers()
        self.board.clear()
        self._history.clear()
        self._winner = None
        self._last_move = None
        self._status = SessionStatus.PLAYING
        self._turn = next(p.id for p in self._players if p.color == Color.RED)
        self._start_turn_clock(self._turn)

    def _finish(self) -> None:
        self._status = SessionStatus.FINISHED
        self._turn = None
        self.cancel_timers()

    def _start_turn_clock(self, player_id: str) -> None:
        if self._on_timeout is not None:
            self.arm_timeout(player_id, self._on_timeout, self._move_timeout_seconds)

    def _clear_timer(self, player_id: str) -> None:
        timer = self._timers.pop(player_id, None)
        if timer is not None:
            timer.cancel()

    async def _expire(self, player_id: str, timer: MoveTimer, on_expire: TimeoutCallback) -> None:
        with structlog.contextvars.bound_contextvars(session_code=self.code, player_id=player_id):
            await self._expire_locked(player_id, timer, on_expire)

    async def _expire_locked(self, player_id: str, timer: MoveTimer, on_expire: TimeoutCallback) -> None:
        async with self.lock:
            # a move, reset or leave processed while we waited already replaced this clock
            if self._timers.get(player_id) is not timer:
                return
            del self._timers[player_id]
            if self._status != SessionStatus.PLAYING or self._turn != player_id:
                return
            columns = self.board.valid_columns()
            if not columns:
                logger.error("move clock expired with no legal column")
                return
            column = self._rng.choice(columns)
            logger.info("move clock expired, playing fallback move", column=column)
            result = self.apply_move(player_id, column, timed_out=True)
            await on_expire(self, result)
