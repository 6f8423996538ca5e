"""
Connect Four board: a 6x7 grid of cells filled bottom-up by gravity.

Row 0 is the top of the board, row ROWS - 1 the bottom. Pieces are only ever
placed through drop_column, so a column filled at the top is filled throughout.
"""

from connect_four.logic.enums import Color
from connect_four.logic.exceptions import ColumnFullError, InvalidColumnError
from connect_four.logic.types import Move

ROWS = 6
COLUMNS = 7
WIN_LENGTH = 4

# (row step, column step): horizontal, vertical, diagonal down-right, diagonal down-left
DIRECTIONS = ((0, 1), (1, 0), (1, 1), (1, -1))

Cell = Color | None


def is_valid_position(row: int, col: int) -> bool:
    return 0 <= row < ROWS and 0 <= col < COLUMNS


class Board:
    def __init__(self) -> None:
        self._cells: list[list[Cell]] = [[None] * COLUMNS for _ in range(ROWS)]

    def __getitem__(self, position: tuple[int, int]) -> Cell:
        row, col = position
        return self._cells[row][col]

    def is_valid_position(self, row: int, col: int) -> bool:
        return is_valid_position(row, col)

    def drop_column(self, col: int, color: Color) -> tuple[int, int]:
        """Place a piece in the lowest empty row of a column and return where it landed.

        Raises InvalidColumnError or ColumnFullError without touching the board.
        """
        if not 0 <= col < COLUMNS:
            raise InvalidColumnError(col)
        for row in range(ROWS - 1, -1, -1):
            if self._cells[row][col] is None:
                self._cells[row][col] = color
                return row, col
        raise ColumnFullError(col)

    def run_length(self, row: int, col: int, d_row: int, d_col: int) -> int:
        """Count the same-color run through (row, col) along one direction, the cell included."""
        color = self._cells[row][col]
        if color is None:
            return 0
        count = 1
        for sign in (1, -1):
            r, c = row + sign * d_row, col + sign * d_col
            while is_valid_position(r, c) and self._cells[r][c] == color:
                count += 1
                r, c = r + sign * d_row, c + sign * d_col
        return count

    def check_win(self, last_move: Move) -> Color | None:
        """Return the mover's color if last_move completes four in a row.

        Only lines through the most recent move are inspected.
        """
        row, col, color = last_move.row, last_move.col, last_move.color
        if not is_valid_position(row, col) or self._cells[row][col] != color:
            return None
        for d_row, d_col in DIRECTIONS:
            if self.run_length(row, col, d_row, d_col) >= WIN_LENGTH:
                return color
        return None

    def is_full(self) -> bool:
        return all(cell is not None for cell in self._cells[0])

    def valid_columns(self) -> list[int]:
        return [col for col in range(COLUMNS) if self._cells[0][col] is None]

    def occupied_count(self) -> int:
        return sum(cell is not None for row in self._cells for cell in row)

    def clear(self) -> None:
        for row in self._cells:
            row[:] = [None] * COLUMNS

    def cells(self) -> list[list[Cell]]:
        """Return a copy of the grid, top row first."""
        return [list(row) for row in self._cells]
