from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog

from connect_four.logic.enums import SessionStatus
from connect_four.logic.exceptions import (
    AlreadySeatedError,
    ColumnFullError,
    GameRuleError,
    InvalidColumnError,
    NotEnoughPlayersError,
    NotSeatedError,
    NotYourTurnError,
    SessionExistsError,
    SessionFullError,
)
from connect_four.logic.timer import DEFAULT_MOVE_TIMEOUT_SECONDS
from connect_four.messaging.types import (
    CursorPosition,
    ErrorMessage,
    MoveAppliedMessage,
    PeerCursorMessage,
    PeerLeftMessage,
    PongMessage,
    SessionCreatedMessage,
    SessionErrorCode,
    SessionResetMessage,
    SessionStartedMessage,
)
from connect_four.session.broadcast import broadcast_to_players
from connect_four.session.registry import SessionRegistry

if TYPE_CHECKING:
    import random
    from collections.abc import AsyncIterator
    from typing import Any

    from connect_four.logic.types import MoveResult
    from connect_four.messaging.protocol import ConnectionProtocol
    from connect_four.session.game import GameSession

logger = structlog.get_logger()

_RULE_ERROR_CODES: dict[type[GameRuleError], SessionErrorCode] = {
    SessionExistsError: SessionErrorCode.SESSION_EXISTS,
    SessionFullError: SessionErrorCode.SESSION_FULL,
    AlreadySeatedError: SessionErrorCode.ALREADY_SEATED,
    NotSeatedError: SessionErrorCode.NOT_SEATED,
    NotYourTurnError: SessionErrorCode.NOT_YOUR_TURN,
    InvalidColumnError: SessionErrorCode.INVALID_COLUMN,
    ColumnFullError: SessionErrorCode.COLUMN_FULL,
    NotEnoughPlayersError: SessionErrorCode.NOT_ENOUGH_PLAYERS,
}


class SessionManager:
    """Coordinate client events against the session registry and decide who hears about them.

    Replies to the requester only: session creation, pong, and every rejected
    action. Broadcast to both participants: match start, applied moves
    (including move clock fallbacks) and resets. Cursor relays and departures
    go to the other participant only.
    """

    def __init__(
        self,
        registry: SessionRegistry | None = None,
        *,
        move_timeout_seconds: float = DEFAULT_MOVE_TIMEOUT_SECONDS,
        max_sessions: int | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._registry = registry or SessionRegistry()
        self._move_timeout_seconds = move_timeout_seconds
        self._max_sessions = max_sessions
        self._rng = rng
        self._connections: dict[str, ConnectionProtocol] = {}  # connection_id -> connection

    def register_connection(self, connection: ConnectionProtocol) -> None:
        self._connections[connection.connection_id] = connection

    def unregister_connection(self, connection: ConnectionProtocol) -> None:
        self._connections.pop(connection.connection_id, None)

    def get_session(self, code: str) -> GameSession | None:
        return self._registry.get(code)

    @property
    def session_count(self) -> int:
        return len(self._registry)

    def status_counts(self) -> dict[SessionStatus, int]:
        return self._registry.status_counts()

    async def create_session(self, connection: ConnectionProtocol, code: str, player_name: str) -> None:
        # a taken code is answered with session_exists even when the server is full
        at_capacity = self._max_sessions is not None and len(self._registry) >= self._max_sessions
        if at_capacity and code not in self._registry:
            await self._send_error(connection, SessionErrorCode.SERVER_AT_CAPACITY, "Server at capacity")
            return

        try:
            session = self._registry.create(
                code,
                move_timeout_seconds=self._move_timeout_seconds,
                on_timeout=self._handle_timeout,
                rng=self._rng,
            )
        except SessionExistsError as e:
            await self._send_rule_error(connection, e)
            return

        with structlog.contextvars.bound_contextvars(session_code=session.code):
            async with session.lock:
                player = session.seat(connection.connection_id, player_name)
            logger.info("session created")
            await connection.send_message(SessionCreatedMessage(code=session.code, player=player).model_dump())

    async def join_session(self, connection: ConnectionProtocol, code: str, player_name: str) -> None:
        async with self._locked_session(code) as session:
            if session is None:
                await self._send_not_found(connection, code)
                return
            try:
                session.seat(connection.connection_id, player_name)
            except GameRuleError as e:
                await self._send_rule_error(connection, e)
                return
            logger.info("player joined session")

            if session.status == SessionStatus.PLAYING:
                snapshot = session.snapshot()
                message = SessionStartedMessage(
                    code=snapshot.code,
                    players=snapshot.players,
                    turn=snapshot.turn,
                    board=snapshot.board,
                    status=snapshot.status,
                    move_timeout_seconds=snapshot.move_timeout_seconds,
                    turn_seconds_remaining=snapshot.turn_seconds_remaining,
                )
                await self._broadcast(session, message.model_dump())

    async def make_move(self, connection: ConnectionProtocol, code: str, column: int) -> None:
        player_id = connection.connection_id
        async with self._locked_session(code) as session:
            if session is None:
                await self._send_not_found(connection, code)
                return
            try:
                if not session.is_seated(player_id):
                    raise NotSeatedError(f"you are not seated in session {session.code}")
                result = session.apply_move(player_id, column)
            except GameRuleError as e:
                await self._send_rule_error(connection, e)
                return
            await self._broadcast_move(session, result)

    async def relay_cursor(self, connection: ConnectionProtocol, code: str, position: CursorPosition) -> None:
        """Forward a pointer position to the opponent. Nothing is stored."""
        player_id = connection.connection_id
        session = self._registry.get(code)
        if session is None:
            await self._send_not_found(connection, code)
            return
        if not session.is_seated(player_id):
            await self._send_error(connection, SessionErrorCode.NOT_SEATED, "You are not seated in this session")
            return
        message = PeerCursorMessage(code=session.code, position=position).model_dump()
        await broadcast_to_players(self._connections, session.players, message, exclude_player_id=player_id)

    async def reset_session(self, connection: ConnectionProtocol, code: str) -> None:
        async with self._locked_session(code) as session:
            if session is None:
                await self._send_not_found(connection, code)
                return
            try:
                if not session.is_seated(connection.connection_id):
                    raise NotSeatedError(f"you are not seated in session {session.code}")
                session.reset()
            except GameRuleError as e:
                await self._send_rule_error(connection, e)
                return
            logger.info("session reset")
            await self._broadcast(session, SessionResetMessage(snapshot=session.snapshot()).model_dump())

    async def handle_ping(self, connection: ConnectionProtocol) -> None:
        await connection.send_message(PongMessage().model_dump())

    async def leave_all_sessions(self, connection: ConnectionProtocol) -> None:
        """Unseat a departing connection everywhere it sits, removing sessions left empty."""
        player_id = connection.connection_id
        for session in self._registry.sessions_for_player(player_id):
            with structlog.contextvars.bound_contextvars(session_code=session.code):
                await self._leave_session(session, player_id)

    async def _leave_session(self, session: GameSession, player_id: str) -> None:
        async with session.lock:
            if not session.is_seated(player_id):
                return
            player = session.unseat(player_id)
            logger.info("player left session")
            if session.is_empty:
                self._remove_session(session)
            else:
                message = PeerLeftMessage(player_name=player.name, snapshot=session.snapshot())
                await self._broadcast(session, message.model_dump())

    def cancel_all_pending_timeouts(self) -> None:
        """Cancel every armed move clock (called on server shutdown)."""
        for session in self._registry.sessions():
            session.cancel_timers()

    async def _handle_timeout(self, session: GameSession, result: MoveResult) -> None:
        # runs inside the move clock task while it holds the session lock
        logger.info("fallback move applied", session_code=session.code, player_id=result.player_id)
        await self._broadcast_move(session, result)

    async def _broadcast_move(self, session: GameSession, result: MoveResult) -> None:
        snapshot = result.snapshot
        next_player = session.get_player(snapshot.turn) if snapshot.turn is not None else None
        message = MoveAppliedMessage(
            code=snapshot.code,
            board=snapshot.board,
            move=result.move,
            player_id=result.player_id,
            next_turn=snapshot.turn,
            next_color=next_player.color if next_player is not None else None,
            status=snapshot.status,
            winner=snapshot.winner,
            move_timeout_seconds=snapshot.move_timeout_seconds,
            turn_seconds_remaining=snapshot.turn_seconds_remaining,
            timed_out=result.timed_out,
        )
        await self._broadcast(session, message.model_dump())

    async def _broadcast(self, session: GameSession, message: dict[str, Any]) -> None:
        await broadcast_to_players(self._connections, session.players, message)

    def _remove_session(self, session: GameSession) -> None:
        session.cancel_timers()
        # a fresh session may already have reused the code
        if self._registry.get(session.code) is session:
            self._registry.remove(session.code)
            logger.info("session is empty, removed")

    @contextlib.asynccontextmanager
    async def _locked_session(self, code: str) -> AsyncIterator[GameSession | None]:
        """Acquire a session's lock, yielding None if it is missing or was removed while we waited."""
        session = self._registry.get(code)
        if session is None:
            yield None
            return
        with structlog.contextvars.bound_contextvars(session_code=session.code):
            async with session.lock:
                yield session if self._registry.get(code) is session else None

    async def _send_not_found(self, connection: ConnectionProtocol, code: str) -> None:
        await self._send_error(connection, SessionErrorCode.SESSION_NOT_FOUND, f"Session {code} not found")

    async def _send_rule_error(self, connection: ConnectionProtocol, error: GameRuleError) -> None:
        code = _RULE_ERROR_CODES.get(type(error), SessionErrorCode.INVALID_MESSAGE)
        await self._send_error(connection, code, str(error))

    async def _send_error(self, connection: ConnectionProtocol, code: SessionErrorCode, message: str) -> None:
        logger.warning("session error sent to client", error_code=code.value, error_message=message)
        await connection.send_message(ErrorMessage(code=code, message=message).model_dump())
