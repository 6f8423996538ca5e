"""
String enum definitions for Connect Four game concepts.
"""

from enum import StrEnum


class Color(StrEnum):
    """Marker color held by an occupied board cell."""

    RED = "red"
    YELLOW = "yellow"


class SessionStatus(StrEnum):
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class MoveOutcome(StrEnum):
    """Result of a successfully applied move."""

    CONTINUE = "continue"
    WIN = "win"
    DRAW = "draw"


# seat index -> color; seat 0 (first joined) always plays red
SEAT_COLORS = (Color.RED, Color.YELLOW)
