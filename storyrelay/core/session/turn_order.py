"""Turn ownership: round-robin advance and disconnect skip share one scan."""

import logging
from typing import Callable, Optional, Sequence

from .models import PlayerEntry

logger = logging.getLogger(__name__)

PlayerPredicate = Callable[[PlayerEntry], bool]


def next_eligible_player(
    roster: Sequence[PlayerEntry],
    current_index: int,
    is_eligible: PlayerPredicate,
) -> Optional[int]:
    """Scan the roster after ``current_index`` and return the first eligible index.

    Slots are visited at ``(current + 1) % N, (current + 2) % N, ...`` and the
    scan wraps at most once, so the current slot itself is checked last.
    Returns None when no slot qualifies.
    """
    player_count = len(roster)
    if player_count == 0:
        return None

    by_index = {p.player_index: p for p in roster}
    for step in range(1, player_count + 1):
        candidate = (current_index + step) % player_count
        player = by_index.get(candidate)
        if player is None:
            logger.warning("Roster has no player at index %d", candidate)
            continue
        if is_eligible(player):
            return candidate
    return None


def advance_round_robin(roster: Sequence[PlayerEntry], current_index: int) -> int:
    """Index owning the turn after a successful action: ``(i + 1) mod N``.

    Connectivity is deliberately not consulted here; the next submission's
    connectivity check is what triggers a skip.
    """
    nxt = next_eligible_player(roster, current_index, lambda player: True)
    if nxt is None:
        return current_index
    return nxt


def next_connected_player(
    roster: Sequence[PlayerEntry],
    current_index: int,
    is_connected: Callable[[str], bool],
) -> Optional[int]:
    """First active, connected player strictly after ``current_index``."""
    return next_eligible_player(
        roster,
        current_index,
        lambda player: player.is_active and is_connected(player.user_id),
    )
