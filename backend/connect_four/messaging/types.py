from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from connect_four.logic.enums import Color, SessionStatus
from connect_four.logic.types import Move, PlayerInfo, SessionSnapshot

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F

_CODE_FIELD = Field(min_length=1, max_length=50, pattern=r"^[a-zA-Z0-9_-]+$")


class ClientMessageType(StrEnum):
    CREATE_SESSION = "createSession"
    JOIN_SESSION = "joinSession"
    MAKE_MOVE = "makeMove"
    CURSOR_MOVE = "cursorMove"
    RESET_SESSION = "resetSession"
    PING = "ping"


class SessionMessageType(StrEnum):
    SESSION_CREATED = "sessionCreated"
    SESSION_STARTED = "sessionStarted"
    MOVE_APPLIED = "moveApplied"
    PEER_CURSOR = "peerCursor"
    SESSION_RESET = "sessionReset"
    PEER_LEFT = "peerLeft"
    ERROR = "error"
    PONG = "pong"


class SessionErrorCode(StrEnum):
    SESSION_EXISTS = "session_exists"
    SESSION_NOT_FOUND = "session_not_found"
    SESSION_FULL = "session_full"
    ALREADY_SEATED = "already_seated"
    NOT_SEATED = "not_seated"
    NOT_YOUR_TURN = "not_your_turn"
    INVALID_COLUMN = "invalid_column"
    COLUMN_FULL = "column_full"
    NOT_ENOUGH_PLAYERS = "not_enough_players"
    SERVER_AT_CAPACITY = "server_at_capacity"
    INVALID_MESSAGE = "invalid_message"
    RATE_LIMITED = "rate_limited"
    INTERNAL_ERROR = "internal_error"


class CursorPosition(BaseModel):
    """Pointer position over the opponent's board, in client pixels."""

    x: float = Field(allow_inf_nan=False)
    y: float = Field(allow_inf_nan=False)


class CreateSessionMessage(BaseModel):
    type: Literal[ClientMessageType.CREATE_SESSION] = ClientMessageType.CREATE_SESSION
    code: str = _CODE_FIELD
    player_name: str = Field(min_length=1, max_length=50)

    @field_validator("player_name")
    @classmethod
    def _validate_player_name(cls, v: str) -> str:
        return _reject_control_characters(v)


class JoinSessionMessage(BaseModel):
    type: Literal[ClientMessageType.JOIN_SESSION] = ClientMessageType.JOIN_SESSION
    code: str = _CODE_FIELD
    player_name: str = Field(min_length=1, max_length=50)

    @field_validator("player_name")
    @classmethod
    def _validate_player_name(cls, v: str) -> str:
        return _reject_control_characters(v)


class MakeMoveMessage(BaseModel):
    type: Literal[ClientMessageType.MAKE_MOVE] = ClientMessageType.MAKE_MOVE
    code: str = _CODE_FIELD
    column: int = Field(strict=True)


class CursorMoveMessage(BaseModel):
    type: Literal[ClientMessageType.CURSOR_MOVE] = ClientMessageType.CURSOR_MOVE
    code: str = _CODE_FIELD
    position: CursorPosition


class ResetSessionMessage(BaseModel):
    type: Literal[ClientMessageType.RESET_SESSION] = ClientMessageType.RESET_SESSION
    code: str = _CODE_FIELD


class PingMessage(BaseModel):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


ClientMessage = Annotated[
    CreateSessionMessage
    | JoinSessionMessage
    | MakeMoveMessage
    | CursorMoveMessage
    | ResetSessionMessage
    | PingMessage,
    Field(discriminator="type"),
]


class SessionCreatedMessage(BaseModel):
    type: Literal[SessionMessageType.SESSION_CREATED] = SessionMessageType.SESSION_CREATED
    code: str
    player: PlayerInfo


class SessionStartedMessage(BaseModel):
    type: Literal[SessionMessageType.SESSION_STARTED] = SessionMessageType.SESSION_STARTED
    code: str
    players: list[PlayerInfo]
    turn: str | None
    board: list[list[Color | None]]
    status: SessionStatus
    move_timeout_seconds: float
    turn_seconds_remaining: float | None


class MoveAppliedMessage(BaseModel):
    """Broadcast to both participants after every applied move, including clock fallbacks."""

    type: Literal[SessionMessageType.MOVE_APPLIED] = SessionMessageType.MOVE_APPLIED
    code: str
    board: list[list[Color | None]]
    move: Move
    player_id: str
    next_turn: str | None
    next_color: Color | None
    status: SessionStatus
    winner: str | None
    move_timeout_seconds: float
    turn_seconds_remaining: float | None
    timed_out: bool = False


class PeerCursorMessage(BaseModel):
    type: Literal[SessionMessageType.PEER_CURSOR] = SessionMessageType.PEER_CURSOR
    code: str
    position: CursorPosition


class SessionResetMessage(BaseModel):
    type: Literal[SessionMessageType.SESSION_RESET] = SessionMessageType.SESSION_RESET
    snapshot: SessionSnapshot


class PeerLeftMessage(BaseModel):
    type: Literal[SessionMessageType.PEER_LEFT] = SessionMessageType.PEER_LEFT
    player_name: str
    snapshot: SessionSnapshot


class ErrorMessage(BaseModel):
    type: Literal[SessionMessageType.ERROR] = SessionMessageType.ERROR
    code: SessionErrorCode
    message: str


class PongMessage(BaseModel):
    type: Literal[SessionMessageType.PONG] = SessionMessageType.PONG


def _reject_control_characters(v: str) -> str:
    if any((ord(c) < _SPACE_ORD) or ord(c) == _DEL_ORD for c in v):
        raise ValueError("player_name must not contain control characters")
    if not v.strip():
        raise ValueError("player_name must not be blank")
    return v.strip()


_client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a decoded frame into a typed client message."""
    return _client_message_adapter.validate_python(data)
