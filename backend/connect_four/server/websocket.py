from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from connect_four.messaging.encoder import DecodeError, decode
from connect_four.messaging.protocol import ConnectionProtocol
from connect_four.messaging.types import ErrorMessage, SessionErrorCode
from connect_four.server.rate_limit import TokenBucket

logger = structlog.get_logger()

if TYPE_CHECKING:
    from connect_four.messaging.router import MessageRouter

# Cursor relays fire on every pointer move; 30/sec sustained covers a busy
# client, the burst absorbs a quick sweep across the board.
RATE_LIMIT_RATE = 30.0
RATE_LIMIT_BURST = 60

# Disconnect after this many consecutive decode errors
MAX_DECODE_ERRORS = 5

CLOSE_TOO_MANY_DECODE_ERRORS = 4004


class WebSocketConnection(ConnectionProtocol):
    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._connection_id = connection_id or str(uuid4())

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._websocket.send_bytes(data)
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def receive_bytes(self) -> bytes:
        try:
            return await self._websocket.receive_bytes()
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


class FrameGuard:
    """Admission control for one connection's inbound frames.

    Counts consecutive undecodable frames and throttles decoded ones through a
    token bucket. Malformed frames are counted even while the bucket is empty.
    """

    def __init__(self) -> None:
        self._bucket = TokenBucket(rate=RATE_LIMIT_RATE, burst=RATE_LIMIT_BURST)
        self.decode_errors = 0

    @property
    def exhausted(self) -> bool:
        return self.decode_errors >= MAX_DECODE_ERRORS

    def admit(self, raw: bytes) -> tuple[dict[str, Any] | None, ErrorMessage | None]:
        """Return the decoded frame, or the error to answer instead."""
        try:
            data = decode(raw)
        except DecodeError as e:
            self.decode_errors += 1
            logger.warning("decode error", error=str(e), strikes=self.decode_errors)
            return None, ErrorMessage(code=SessionErrorCode.INVALID_MESSAGE, message=str(e))
        self.decode_errors = 0
        if not self._bucket.consume():
            return None, ErrorMessage(code=SessionErrorCode.RATE_LIMITED, message="Too many messages")
        return data, None


async def websocket_endpoint(websocket: WebSocket, router: MessageRouter) -> None:
    await websocket.accept()

    connection = WebSocketConnection(websocket)
    structlog.contextvars.bind_contextvars(connection_id=connection.connection_id)
    logger.info("websocket connected")
    await router.handle_connect(connection)
    guard = FrameGuard()

    try:
        while True:
            data, error = guard.admit(await connection.receive_bytes())
            if error is not None:
                await connection.send_message(error.model_dump())
                if guard.exhausted:
                    logger.info("too many decode errors, disconnecting")
                    await connection.close(code=CLOSE_TOO_MANY_DECODE_ERRORS, reason="too_many_decode_errors")
                    return
                continue
            await router.handle_message(connection, data)
    except (WebSocketDisconnect, RuntimeError, ConnectionError):  # fmt: skip
        pass
    finally:
        logger.info("websocket disconnected")
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()
