"""Transport-agnostic client connection used by the session manager."""

from abc import ABC, abstractmethod
from typing import Any

from connect_four.messaging.encoder import decode, encode


class ConnectionProtocol(ABC):
    """
    One connected client.

    The connection id doubles as the player identity inside sessions. Session
    logic only ever talks to this interface, so it can be exercised with
    MockConnection instead of a real WebSocket.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str: ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None: ...

    @abstractmethod
    async def receive_bytes(self) -> bytes: ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    async def send_message(self, data: dict[str, Any]) -> None:
        await self.send_bytes(encode(data))

    async def receive_message(self) -> dict[str, Any]:
        return decode(await self.receive_bytes())
