from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, Any

from connect_four.logic.enums import SessionStatus
from connect_four.logic.exceptions import SessionExistsError
from connect_four.session.game import GameSession

if TYPE_CHECKING:
    from collections.abc import Iterator


def normalize_code(code: str) -> str:
    """Session codes are shared by hand and compared case-insensitively."""
    return code.strip().upper()


class SessionRegistry:
    """In-memory map of live sessions keyed by session code.

    No method awaits, so each call is atomic on the event loop and lookups for
    one session never wait on another session's lock. Sessions are only added
    and removed explicitly by the session manager.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, GameSession] = {}  # code -> GameSession

    def create(self, code: str, **session_kwargs: Any) -> GameSession:  # noqa: ANN401
        """Register a new empty session. Raise SessionExistsError if the code is taken."""
        code = normalize_code(code)
        if code in self._sessions:
            raise SessionExistsError(code)
        session = GameSession(code, **session_kwargs)
        self._sessions[code] = session
        return session

    def get(self, code: str) -> GameSession | None:
        return self._sessions.get(normalize_code(code))

    def remove(self, code: str) -> GameSession | None:
        """Drop a session from the registry and return it, if it was registered."""
        return self._sessions.pop(normalize_code(code), None)

    def sessions(self) -> Iterator[GameSession]:
        # snapshot so callers may remove sessions while iterating
        return iter(list(self._sessions.values()))

    def sessions_for_player(self, player_id: str) -> list[GameSession]:
        return [s for s in self._sessions.values() if s.is_seated(player_id)]

    def status_counts(self) -> dict[SessionStatus, int]:
        counts = Counter(s.status for s in self._sessions.values())
        return {status: counts.get(status, 0) for status in SessionStatus}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, code: str) -> bool:
        return normalize_code(code) in self._sessions
