"""Per-user conversation flow: mine count, then identifier, then a grid.

Handlers take the state store explicitly and return the reply text; the
caller is responsible for delivering it.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional
import logging
import random

from .grid_engine import format_grid, generate_pattern

MIN_MINES = 1
MAX_MINES = 24
IDENTIFIER_LENGTH = 10

WELCOME = "Welcome to the Mine Pattern Bot! Use /predict <number_of_mines> (1-24) to begin."
MINE_COUNT_INVALID = "Please specify a valid number of mines (1-24)."
MINE_COUNT_OUT_OF_RANGE = "Please enter a number between 1 and 24."
IDENTIFIER_PROMPT = "Please enter your identifier (must be exactly 10 characters):"
IDENTIFIER_INVALID = "Invalid identifier. It must be exactly 10 characters long."
GUIDANCE = "Please start a new pattern by using /predict <number_of_mines>."

logger = logging.getLogger("minepattern")


class ValidationError(ValueError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(code)
        self.code = code
        self.message = message


class ConversationState(str, Enum):
    IDLE = "idle"
    AWAITING_IDENTIFIER = "awaiting_identifier"


def parse_mine_count(args_text: Optional[str]) -> int:
    args = (args_text or "").split()
    if not args:
        raise ValidationError("mine_count_missing", MINE_COUNT_INVALID)
    try:
        mine_count = int(args[0])
    except ValueError:
        raise ValidationError("mine_count_not_numeric", MINE_COUNT_INVALID)
    if mine_count < MIN_MINES or mine_count > MAX_MINES:
        raise ValidationError("mine_count_out_of_range", MINE_COUNT_OUT_OF_RANGE)
    return mine_count


def validate_identifier(text: Optional[str]) -> str:
    identifier = (text or "").strip()
    if len(identifier) != IDENTIFIER_LENGTH:
        raise ValidationError("identifier_wrong_length", IDENTIFIER_INVALID)
    return identifier


def current_state(store, user_id: str) -> ConversationState:
    if store.get_pending_mine_count(user_id) is None:
        return ConversationState.IDLE
    return ConversationState.AWAITING_IDENTIFIER


def handle_start(store, user_id: str) -> str:
    return WELCOME


def handle_mine_count_command(store, user_id: str, args_text: Optional[str]) -> str:
    try:
        mine_count = parse_mine_count(args_text)
    except ValidationError as e:
        logger.info(f"[minepattern] mine count rejected user_id={user_id} code={e.code}")
        return e.message
    store.set_pending_mine_count(user_id, mine_count)
    logger.info(f"[minepattern] mine count stored user_id={user_id} mine_count={mine_count}")
    return IDENTIFIER_PROMPT


def handle_text_input(
    store,
    user_id: str,
    text: Optional[str],
    rng: Optional[random.Random] = None,
) -> str:
    """Consume an identifier for a pending mine count and emit the grid.

    A wrong-length identifier keeps the pending count so the user can retry.
    The pending count is cleared only after the grid has been built.
    """
    logger.info(f"[minepattern] text input received user_id={user_id}")
    mine_count = store.get_pending_mine_count(user_id)
    if mine_count is None:
        return GUIDANCE
    try:
        validate_identifier(text)
    except ValidationError as e:
        logger.info(f"[minepattern] identifier rejected user_id={user_id} code={e.code}")
        return e.message
    logger.info(f"[minepattern] identifier received user_id={user_id}")
    placement, _safe, grid = generate_pattern(mine_count, rng)
    reply = format_grid(grid)
    store.clear_pending(user_id, emitted=True)
    logger.info(
        f"[minepattern] pattern emitted user_id={user_id} mine_count={mine_count} "
        f"mines_placed={len(placement.positions)} complete={int(placement.complete)}"
    )
    return reply
