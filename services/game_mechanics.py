"""XP and level mechanics.

XP lives within a level: it is always in [0, XP_PER_LEVEL). Gains roll over
into as many levels as they cover; losses only floor the XP at 0, so a
penalty can never cost the user a level.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from config import XP_EVENTS, XP_PER_LEVEL
from logger import logger


@dataclass(frozen=True)
class XpChangeResult:
    new_xp: int
    new_level: int
    levelled_up: bool

    def to_dict(self) -> dict:
        return asdict(self)


def calculate_xp_and_level(current_xp: int, current_level: int, xp_change: int) -> XpChangeResult:
    """
    Calculate the new XP and level for a user.

    Args:
        current_xp: XP within the current level
        current_level: Current level (>= 1)
        xp_change: Amount to add; may be negative

    Returns:
        XpChangeResult with the new XP, new level and whether a level was gained
    """
    new_xp = current_xp + xp_change
    new_level = current_level
    levelled_up = False

    # XP doesn't go below zero for the current level
    if new_xp < 0:
        new_xp = 0

    while new_xp >= XP_PER_LEVEL:
        new_level += 1
        new_xp -= XP_PER_LEVEL
        levelled_up = True

    return XpChangeResult(new_xp=new_xp, new_level=new_level, levelled_up=levelled_up)


def apply_xp_in_transaction(tx, xp_change: int, reason: str = "") -> XpChangeResult:
    """Compute and stage an XP change on an open profile transaction."""
    profile = tx.read()
    result = calculate_xp_and_level(profile.get("xp") or 0, profile.get("level") or 1, xp_change)
    tx.update(xp=result.new_xp, level=result.new_level)
    tx.record_xp_event(reason, xp_change, result.new_xp, result.new_level)
    return result


def apply_xp_change(db, user_id: str, xp_change: int, reason: str = "") -> XpChangeResult:
    """
    Apply an XP change to a user's profile atomically.

    Raises:
        ProfileNotFound: the profile does not exist
        TransactionConflictExhausted: concurrent writers won every retry
    """
    result = db.run_transaction(
        user_id, lambda tx: apply_xp_in_transaction(tx, xp_change, reason)
    )
    logger.info(
        f"XP {xp_change:+d} for {user_id} ({reason or 'unspecified'}): "
        f"level {result.new_level}, {result.new_xp}/{XP_PER_LEVEL} XP"
    )
    if result.levelled_up:
        logger.info(f"User {user_id} levelled up to {result.new_level}")
    return result


def award_event(db, user_id: str, event: str) -> XpChangeResult:
    """Apply one of the named XP_EVENTS (e.g. 'LOG_MEAL')."""
    return apply_xp_change(db, user_id, XP_EVENTS[event], reason=event)


def xp_progress(profile: dict) -> dict:
    """XP summary used by the dashboard progress bar."""
    xp = profile.get("xp") or 0
    return {
        "xp": xp,
        "level": profile.get("level") or 1,
        "xp_per_level": XP_PER_LEVEL,
        "progress_pct": round((xp / XP_PER_LEVEL) * 100, 1),
    }
