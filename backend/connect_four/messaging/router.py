from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from connect_four.messaging.types import (
    CreateSessionMessage,
    CursorMoveMessage,
    ErrorMessage,
    JoinSessionMessage,
    MakeMoveMessage,
    PingMessage,
    ResetSessionMessage,
    SessionErrorCode,
    parse_client_message,
)

if TYPE_CHECKING:
    from connect_four.messaging.protocol import ConnectionProtocol
    from connect_four.session.manager import SessionManager

logger = logging.getLogger(__name__)


class MessageRouter:
    """
    Routes decoded client messages to the session manager.

    Holds no state of its own and never touches a real socket, so it can be
    driven directly with MockConnection in tests.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e)
            await connection.send_message(
                ErrorMessage(code=SessionErrorCode.INVALID_MESSAGE, message=str(e)).model_dump(),
            )
            return

        try:
            await self._dispatch(connection, message)
        except Exception:
            # a fault inside one session must not take the connection or other sessions down
            logger.exception("fatal error handling %s from %s", message.type, connection.connection_id)
            await connection.send_message(
                ErrorMessage(code=SessionErrorCode.INTERNAL_ERROR, message="Internal server error").model_dump(),
            )

    async def _dispatch(self, connection: ConnectionProtocol, message: Any) -> None:  # noqa: ANN401
        manager = self._session_manager
        if isinstance(message, CreateSessionMessage):
            await manager.create_session(connection, message.code, message.player_name)
        elif isinstance(message, JoinSessionMessage):
            await manager.join_session(connection, message.code, message.player_name)
        elif isinstance(message, MakeMoveMessage):
            await manager.make_move(connection, message.code, message.column)
        elif isinstance(message, CursorMoveMessage):
            await manager.relay_cursor(connection, message.code, message.position)
        elif isinstance(message, ResetSessionMessage):
            await manager.reset_session(connection, message.code)
        elif isinstance(message, PingMessage):
            await manager.handle_ping(connection)

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        self._session_manager.register_connection(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        try:
            await self._session_manager.leave_all_sessions(connection)
        finally:
            self._session_manager.unregister_connection(connection)
