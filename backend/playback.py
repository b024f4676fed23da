"""
Watch-screen playback state.

A small reducer over PlayerState: every viewer feeds it player events
(play, seek, buffering, time updates) and server syncs, and reads back
what the player should be doing. The server only persists `is_playing`
and `current_time`; everything else here is local to a viewer.
"""

from dataclasses import dataclass, replace
from typing import Optional

DEFAULT_SEEK_STEP = 10


@dataclass(frozen=True)
class PlayerState:
    time: float = 0.0
    is_complete: bool = False
    is_playing: bool = False
    is_open: bool = False
    is_initialized: bool = False
    is_buffering: bool = False
    is_season_selection_open: bool = False


def initial_state(party: dict) -> PlayerState:
    """Player state for a viewer joining a party (paused at the party's time)."""
    return PlayerState(time=float(party.get("current_time", 0)))


def reduce(state: PlayerState, action: dict) -> PlayerState:
    """
    Apply an action to the player state.

    Actions are dicts: {"type": ..., "payload": {...}}. Unknown action
    types leave the state unchanged.
    """
    kind = action["type"]
    payload = action.get("payload") or {}

    if kind == "init":
        return replace(state, is_initialized=True)

    if kind == "controls:open":
        return replace(state, is_open=True)

    if kind == "controls:close":
        return replace(state, is_open=False)

    if kind == "controls:seek":
        return replace(state, time=float(payload["time"]))

    if kind == "controls:play":
        if not state.is_playing and state.is_complete:
            # Replay from the start once the video has ended
            return replace(state, is_playing=True, is_complete=False, time=0.0)
        return replace(state, is_playing=not state.is_playing)

    if kind == "sync":
        return replace(
            state,
            is_playing=bool(payload["is_playing"]),
            time=float(payload["time"]),
            is_complete=False,
        )

    if kind == "video-complete":
        return replace(state, is_playing=False, is_complete=True)

    if kind == "time-update":
        return replace(state, time=float(payload["time"]))

    if kind == "buffer":
        return replace(state, is_buffering=bool(payload["is_buffering"]))

    if kind == "change-video":
        return replace(state, is_initialized=False, is_buffering=False)

    if kind == "season-selection:toggle":
        return replace(state, is_season_selection_open=bool(payload["is_season_selection_open"]))

    return state


def sync_payload(state: PlayerState) -> dict:
    """Body for PUT /api/parties/{id}/state."""
    return {"is_playing": state.is_playing, "current_time": state.time}


def seek_forward(time: float, duration: float, step: float = DEFAULT_SEEK_STEP) -> float:
    return min(time + step, duration)


def seek_backward(time: float, step: float = DEFAULT_SEEK_STEP) -> float:
    return max(time - step, 0)


def to_readable_time(seconds: float, max_unit: Optional[str] = None) -> str:
    """
    Format seconds as mm:ss, or hh:mm:ss.

    max_unit forces the widest unit ('hh' or 'mm'); by default hours are
    shown only when needed.
    """
    total = max(int(seconds), 0)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)

    if max_unit is None:
        max_unit = "hh" if hours else "mm"

    if max_unit == "hh":
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"

    return f"{hours * 60 + minutes:02d}:{secs:02d}"
