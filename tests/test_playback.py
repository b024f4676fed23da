import pytest

from backend import playback
from backend.playback import PlayerState, reduce


def act(state, kind, **payload):
    return reduce(state, {"type": kind, "payload": payload})


def test_initial_state_starts_paused_at_party_time():
    state = playback.initial_state({"current_time": 42.5, "is_playing": True})

    assert state.time == 42.5
    assert state.is_playing is False
    assert state.is_initialized is False


def test_init_and_controls():
    state = act(PlayerState(), "init")
    assert state.is_initialized

    state = act(state, "controls:open")
    assert state.is_open
    state = act(state, "controls:close")
    assert not state.is_open


def test_play_toggles():
    state = act(PlayerState(time=10), "controls:play")
    assert state.is_playing

    state = act(state, "controls:play")
    assert not state.is_playing
    assert state.time == 10


def test_seek_and_time_update():
    state = act(PlayerState(), "controls:seek", time=300)
    assert state.time == 300

    state = act(state, "time-update", time=301.25)
    assert state.time == 301.25


def test_sync_overrides_local_playback():
    state = PlayerState(time=10, is_playing=False, is_open=True)
    state = act(state, "sync", time=99, is_playing=True)

    assert state.time == 99
    assert state.is_playing
    # Untouched fields survive
    assert state.is_open


def test_video_complete_then_play_restarts():
    state = act(PlayerState(time=6832, is_playing=True), "video-complete")
    assert not state.is_playing
    assert state.is_complete

    state = act(state, "controls:play")
    assert state.is_playing
    assert state.time == 0
    assert not state.is_complete


def test_buffer():
    state = act(PlayerState(), "buffer", is_buffering=True)
    assert state.is_buffering

    state = act(state, "buffer", is_buffering=False)
    assert not state.is_buffering


def test_change_video_resets_player():
    state = PlayerState(is_initialized=True, is_buffering=True, is_playing=True, time=50)
    state = act(state, "change-video")

    assert not state.is_initialized
    assert not state.is_buffering
    assert state.is_playing
    assert state.time == 50


def test_season_selection_toggle():
    state = act(PlayerState(), "season-selection:toggle", is_season_selection_open=True)
    assert state.is_season_selection_open

    state = act(state, "season-selection:toggle", is_season_selection_open=False)
    assert not state.is_season_selection_open


def test_unknown_action_returns_same_state():
    state = PlayerState(time=3)
    assert reduce(state, {"type": "volume:change"}) is state


def test_reduce_does_not_mutate():
    state = PlayerState()
    act(state, "controls:play")
    assert state.is_playing is False


def test_sync_payload():
    assert playback.sync_payload(PlayerState(time=12.5, is_playing=True)) == {
        "is_playing": True, "current_time": 12.5
    }


def test_seek_helpers_clamp():
    assert playback.seek_forward(100, duration=1000) == 110
    assert playback.seek_forward(995, duration=1000) == 1000
    assert playback.seek_backward(100) == 90
    assert playback.seek_backward(4) == 0
    assert playback.seek_backward(100, step=30) == 70


@pytest.mark.parametrize("seconds, max_unit, expected", [
    (0, None, "00:00"),
    (65, None, "01:05"),
    (6832, None, "01:53:52"),
    (65, "hh", "00:01:05"),
    (3725, "mm", "62:05"),
    (-3, None, "00:00"),
])
def test_to_readable_time(seconds, max_unit, expected):
    assert playback.to_readable_time(seconds, max_unit) == expected
