from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple
import logging
import random

GRID_SIZE = 5
NUM_CELLS = GRID_SIZE * GRID_SIZE
CORNERS = frozenset({0, GRID_SIZE - 1, NUM_CELLS - GRID_SIZE, NUM_CELLS - 1})
MAX_PLACEMENT_ATTEMPTS = 100
HEADER = "Generated Pattern:"

logger = logging.getLogger("minepattern")


class InvalidArgument(ValueError):
    pass


class Cell(str, Enum):
    MINE = "mine"
    SAFE = "safe"
    UNKNOWN = "unknown"


GLYPHS = {
    Cell.MINE: "💣",
    Cell.SAFE: "💎",
    Cell.UNKNOWN: "❌",
}


@dataclass(frozen=True)
class MinePlacement:
    positions: frozenset
    requested: int
    attempts: int

    @property
    def complete(self) -> bool:
        return len(self.positions) == self.requested


def index(row: int, col: int, width: int = GRID_SIZE) -> int:
    return row * width + col


def coords(idx: int, width: int = GRID_SIZE) -> Tuple[int, int]:
    return divmod(idx, width)


def neighbor_positions(pos: int, width: int = GRID_SIZE, size: int = NUM_CELLS) -> List[int]:
    """Up, down, left and right as index offsets, kept only when inside the board.

    Left and right are plain +/-1 offsets, so the last cell of a row and the
    first cell of the next row count as neighbours.
    """
    return [n for n in (pos - width, pos + width, pos - 1, pos + 1) if 0 <= n < size]


def _rng(rng: Optional[random.Random]) -> random.Random:
    # fresh OS-seeded generator per call
    return rng if rng is not None else random.Random()


def draw_positions(count: int, domain_size: int, rng: Optional[random.Random] = None) -> frozenset:
    """Draw ``count`` distinct integers from ``[0, domain_size)``.

    Duplicates are rejected and redrawn, so the call terminates only because
    ``count <= domain_size`` is checked up front.
    """
    if count < 0 or domain_size < 0:
        raise InvalidArgument("negative_count_or_domain")
    if count > domain_size:
        raise InvalidArgument("count_exceeds_domain")
    r = _rng(rng)
    numbers: set[int] = set()
    while len(numbers) < count:
        numbers.add(r.randrange(domain_size))
    return frozenset(numbers)


def safe_cell_count(mine_count: int) -> int:
    if mine_count < 4:
        return 4
    if mine_count <= 6:
        return 3
    return 2


def plan_safe_cells(mine_count: int, rng: Optional[random.Random] = None) -> frozenset:
    count = safe_cell_count(mine_count)
    logger.info(f"[minepattern] generating {count} safe positions for {mine_count} mines")
    return draw_positions(count, NUM_CELLS, rng)


def _can_place(pos: int, placed: set[int]) -> bool:
    if pos in CORNERS or pos in placed:
        return False
    return not any(n in placed for n in neighbor_positions(pos))


def place_mines(
    mine_count: int,
    rng: Optional[random.Random] = None,
    max_attempts: int = MAX_PLACEMENT_ATTEMPTS,
) -> MinePlacement:
    """Best-effort placement of ``mine_count`` mines on the 5x5 grid.

    Corners are never used and no two mines are neighbours. Each attempt
    draws a single candidate; after ``max_attempts`` draws the placement is
    returned as is, possibly short of ``mine_count``.
    """
    if mine_count < 0:
        raise InvalidArgument("invalid mine count")
    r = _rng(rng)
    placed: set[int] = set()
    attempts = 0
    while len(placed) < mine_count and attempts < max_attempts:
        pos = r.randrange(NUM_CELLS)
        if _can_place(pos, placed):
            placed.add(pos)
        attempts += 1
    placement = MinePlacement(frozenset(placed), mine_count, attempts)
    if not placement.complete:
        logger.warning(
            f"[minepattern] placement short requested={mine_count} "
            f"placed={len(placed)} attempts={attempts}"
        )
    else:
        logger.info(f"[minepattern] placed {mine_count} mines in {attempts} attempts")
    return placement


def render_grid(placement: MinePlacement | Iterable[int], safe_set: Iterable[int]) -> List[List[Cell]]:
    mines = set(placement.positions if isinstance(placement, MinePlacement) else placement)
    grid: List[List[Cell]] = [[Cell.UNKNOWN] * GRID_SIZE for _ in range(GRID_SIZE)]
    for pos in mines:
        r, c = coords(pos)
        grid[r][c] = Cell.MINE
    for pos in safe_set:
        if pos in mines:
            continue
        r, c = coords(pos)
        grid[r][c] = Cell.SAFE
    return grid


def format_grid(grid: List[List[Cell]]) -> str:
    body = "\n".join("".join(GLYPHS[cell] for cell in row) for row in grid)
    return f"{HEADER}\n{body}"


def generate_pattern(mine_count: int, rng: Optional[random.Random] = None) -> Tuple[MinePlacement, frozenset, List[List[Cell]]]:
    r = _rng(rng)
    placement = place_mines(mine_count, r)
    safe = plan_safe_cells(mine_count, r)
    return placement, safe, render_grid(placement, safe)
