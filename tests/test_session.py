import asyncio

import pytest

from backend.errors import LoadError
from backend.loop_window import LoopWindow
from backend.playback_clock import ClockState
from backend.session import Session, LoopBookmark


def run_with_session(engine, scenario, media=b"30"):
    """Load a track into a fresh session, run scenario(session), dispose."""
    async def main():
        session = Session(engine)
        session.clock.poll_interval = 0.002
        await session.load(media, name="song.wav")
        try:
            result = scenario(session)
            if asyncio.iscoroutine(result):
                await result
        finally:
            session.dispose()
    asyncio.run(main())


def record(session, event):
    calls = []
    session.on(event, lambda *args: calls.append(args))
    return calls


def handle_of(engine):
    return engine.decoded[-1]


# =============================================================================
# LOADING
# =============================================================================

def test_load_emits_and_resets(engine):
    async def main():
        session = Session(engine)
        loaded = record(session, 'song_loaded')
        states = record(session, 'state_change')

        assert await session.load(b"30", name="a.wav")
        assert loaded == [("a.wav", 30.0)]
        assert (ClockState.READY,) in states

        session.set_loop_points(1.0, 2.0)
        session.add_bookmark()
        windows = record(session, 'loop_points_changed')

        assert await session.load(b"40", name="b.wav")
        assert session.window is None
        assert session.bookmarks == []
        assert windows[-1] == (None,)
        assert session.duration == 40.0
        session.dispose()

    asyncio.run(main())


def test_load_failure_emits_and_raises(engine):
    async def main():
        session = Session(engine)
        failures = record(session, 'load_failed')
        with pytest.raises(LoadError):
            await session.load(b"garbage", name="bad.mp3")
        assert len(failures) == 1
        assert "bad.mp3" in failures[0][0]
        assert session.state is ClockState.EMPTY
        session.dispose()

    asyncio.run(main())


def test_failed_load_drops_previous_track_state(engine):
    async def main():
        session = Session(engine)
        await session.load(b"30", name="good.wav")
        session.set_loop_points(10.0, 12.0)
        session.set_looping(True)
        session.add_bookmark()
        bookmark_events = record(session, 'bookmarks_changed')

        with pytest.raises(LoadError):
            await session.load(b"garbage", name="bad.mp3")

        assert session.duration == 0.0
        assert session.window is None
        assert not session.is_looping
        assert session.bookmarks == []
        assert session.selected_bookmark_id is None
        assert bookmark_events == [([],)]
        assert session.snapshot()['window'] is None
        session.dispose()

    asyncio.run(main())


def test_window_is_cleared_while_loading(engine):
    async def main():
        session = Session(engine)
        await session.load(b"30", name="good.wav")
        session.set_loop_points(10.0, 12.0)
        session.set_looping(True)

        pending = asyncio.ensure_future(session.load(b"40@0.05", name="next.wav"))
        await asyncio.sleep(0)
        assert session.state is ClockState.LOADING
        assert session.window is None
        assert not session.is_looping

        assert await pending
        assert session.duration == 40.0
        session.dispose()

    asyncio.run(main())


# =============================================================================
# TRANSPORT
# =============================================================================

def test_toggle_play_pause(engine):
    def scenario(session):
        assert session.toggle_play_pause()
        assert session.state is ClockState.PLAYING
        assert session.toggle_play_pause()
        assert session.state is ClockState.PAUSED

    run_with_session(engine, scenario)


def test_seek_steps_clamp(engine):
    def scenario(session):
        session.seek(27.0)
        session.seek_forward(5.0)
        assert session.current_time == 30.0
        session.seek_backward(50.0)
        assert session.current_time == 0.0
        session.seek_forward()
        assert session.current_time == 5.0

    run_with_session(engine, scenario)


def test_rate_change_emits(engine):
    def scenario(session):
        rates = record(session, 'rate_changed')
        assert session.set_playback_rate(0.5)
        assert session.set_playback_rate(-2) is False
        assert rates == [(0.5,)]
        assert handle_of(engine).rate == 0.5

    run_with_session(engine, scenario)


# =============================================================================
# LOOP EDITING
# =============================================================================

def test_rejected_edit_keeps_window_and_is_silent(engine):
    def scenario(session):
        assert session.set_loop_points(5.0, 10.0)
        windows = record(session, 'loop_points_changed')

        assert session.set_loop_points(10.0, 5.0) is False
        assert session.set_loop_points(25.0, 31.0) is False
        assert session.set_loop_end(4.0) is False
        assert session.extend_loop_start(6.0) is False

        assert session.window == LoopWindow(5.0, 10.0)
        assert windows == []

    run_with_session(engine, scenario)


def test_edits_need_an_existing_window(engine):
    def scenario(session):
        assert session.set_loop_start(3.0) is False
        assert session.move_loop(1) is False
        assert session.scale_loop(2.0) is False
        assert session.window is None

    run_with_session(engine, scenario)


def test_text_entry(engine):
    def scenario(session):
        session.set_loop_points(1.0, 20.0)
        assert session.set_loop_start_text("0:05.5")
        assert session.set_loop_end_text("12")
        assert session.window == LoopWindow(5.5, 12.0)

        assert session.set_loop_start_text("five") is False
        assert session.set_loop_end_text("") is False
        assert session.window == LoopWindow(5.5, 12.0)

    run_with_session(engine, scenario)


def test_set_points_at_playhead(engine):
    def scenario(session):
        session.seek(4.0)
        assert session.set_loop_start_at_current()
        # Missing B falls back to the track end
        assert session.window == LoopWindow(4.0, 30.0)

        session.seek(9.0)
        assert session.set_loop_end_at_current()
        assert session.window == LoopWindow(4.0, 9.0)

        session.clear_loop()
        session.seek(7.0)
        assert session.set_loop_end_at_current()
        # Missing A falls back to the track start
        assert session.window == LoopWindow(0.0, 7.0)

    run_with_session(engine, scenario)


def test_move_scale_extend(engine):
    def scenario(session):
        session.set_loop_points(0.0, 10.0)
        assert session.move_loop(1)
        assert session.window == LoopWindow(10.0, 20.0)
        assert session.scale_loop(0.5)
        assert session.window == LoopWindow(10.0, 15.0)
        assert session.extend_loop_end(1.0)
        assert session.extend_loop_start(-2.0)
        assert session.window == LoopWindow(8.0, 16.0)

    run_with_session(engine, scenario)


def test_looping_wires_window_into_engine(engine):
    def scenario(session):
        looping = record(session, 'looping_changed')
        session.set_loop_points(2.0, 4.0)
        handle = handle_of(engine)
        assert handle.loop[0] is False

        session.toggle_looping()
        assert session.is_looping
        assert handle.loop == (True, 2.0, 4.0)

        # Edits while looping are pushed straight through
        session.move_loop(1)
        assert handle.loop == (True, 4.0, 6.0)

        session.set_looping(True)
        session.toggle_looping()
        assert handle.loop[0] is False
        assert looping == [(True,), (False,)]

    run_with_session(engine, scenario)


def test_clear_loop_stops_looping(engine):
    def scenario(session):
        session.set_loop_points(2.0, 4.0)
        session.set_looping(True)
        session.clear_loop()
        assert session.window is None
        assert not session.is_looping
        assert handle_of(engine).loop[0] is False

    run_with_session(engine, scenario)


# =============================================================================
# QUANTIZATION
# =============================================================================

def test_enabling_quantize_snaps_once(engine):
    def scenario(session):
        session.set_loop_points(10.0, 12.3)
        assert session.set_quantize_enabled(True) is False

        assert session.set_bpm(120)
        # Tempo alone does not move the window
        assert session.window == LoopWindow(10.0, 12.3)

        assert session.set_quantize_enabled(True)
        assert session.window.end == pytest.approx(12.5)

    run_with_session(engine, scenario)


def test_bpm_change_requantizes_while_enabled(engine):
    def scenario(session):
        session.set_loop_points(10.0, 12.3)
        session.set_bpm(120)
        session.set_quantize_enabled(True)

        assert session.set_bpm(60)
        assert session.window.start == 10.0
        # 2.5 beats at the new tempo rounds up to 3
        assert session.window.end == pytest.approx(13.0)

    run_with_session(engine, scenario)


def test_window_edits_are_not_requantized(engine):
    def scenario(session):
        session.set_loop_points(10.0, 12.0)
        session.set_bpm(120)
        session.set_quantize_enabled(True)

        session.extend_loop_end(0.1)
        assert session.window.end == pytest.approx(12.1)

        assert session.quantize_now()
        assert session.window.end == pytest.approx(12.0)

    run_with_session(engine, scenario)


def test_bpm_text(engine):
    def scenario(session):
        changes = record(session, 'quantization_changed')
        assert session.set_bpm_text(" 90 ")
        assert session.quantization.bpm == 90
        assert session.set_bpm_text("0") is False
        assert session.set_bpm_text("abc") is False
        assert session.quantization.bpm == 90

        session.set_quantize_enabled(True)
        assert session.set_bpm_text("")
        assert session.quantization.bpm is None
        assert not session.quantization.enabled
        assert len(changes) == 3

    run_with_session(engine, scenario)


def test_quantize_now_without_bpm_is_rejected(engine):
    def scenario(session):
        session.set_loop_points(1.0, 2.3)
        assert session.quantize_now() is False
        assert session.window == LoopWindow(1.0, 2.3)

    run_with_session(engine, scenario)


# =============================================================================
# BOOKMARKS
# =============================================================================

def test_add_bookmark_needs_window(engine):
    def scenario(session):
        assert session.add_bookmark() is None
        session.set_loop_points(1.0, 2.0)
        bookmark = session.add_bookmark()
        assert bookmark.name == "Loop 1"
        assert session.selected_bookmark_id == bookmark.id
        assert session.add_bookmark(name="Chorus", annotation="watch the bend").name == "Chorus"
        assert len(session.bookmarks) == 2

    run_with_session(engine, scenario)


def test_load_bookmark_restores_window_rate_and_loops(engine):
    def scenario(session):
        session.set_loop_points(3.0, 6.0)
        session.set_playback_rate(0.75)
        bookmark = session.add_bookmark(name="Solo")

        session.set_loop_points(10.0, 11.0)
        session.set_playback_rate(1.0)

        assert session.load_bookmark(bookmark.id)
        assert session.window == LoopWindow(3.0, 6.0)
        assert session.playback.playback_rate == 0.75
        assert session.is_looping
        assert handle_of(engine).loop == (True, 3.0, 6.0)

        assert session.load_bookmark("missing") is False

    run_with_session(engine, scenario)


def test_rename_and_delete_bookmark(engine):
    def scenario(session):
        changes = record(session, 'bookmarks_changed')
        session.set_loop_points(1.0, 2.0)
        bookmark = session.add_bookmark()

        assert session.rename_bookmark(bookmark.id, "  Intro ")
        assert bookmark.name == "Intro"
        assert session.rename_bookmark(bookmark.id, "   ") is False

        assert session.delete_bookmark(bookmark.id)
        assert session.bookmarks == []
        assert session.selected_bookmark_id is None
        assert session.delete_bookmark(bookmark.id) is False
        assert len(changes) == 3

    run_with_session(engine, scenario)


def test_export_import_bookmarks(engine):
    def scenario(session):
        session.set_loop_points(1.0, 2.0)
        session.add_bookmark(name="A")
        exported = session.export_bookmarks()

        added = session.import_bookmarks(exported + [
            {'name': "no start"},
            {'start': "x", 'end': 2},
            {'start': 40.0, 'end': 50.0},
        ])
        assert added == 1
        assert [b.name for b in session.bookmarks] == ["A", "A"]

    run_with_session(engine, scenario)


def test_bookmark_dict_defaults():
    bookmark = LoopBookmark.from_dict({'start': 1, 'end': 2})
    assert bookmark.name == "Loop"
    assert bookmark.playback_rate is None
    assert bookmark.annotation == ""
    assert bookmark.window == LoopWindow(1.0, 2.0)


def test_bookmark_window_is_clamped_on_load(engine):
    def scenario(session):
        session.import_bookmarks([{'start': 25.0, 'end': 45.0, 'name': "long"}])
        assert session.load_bookmark(session.bookmarks[0].id)
        assert session.window == LoopWindow(25.0, 30.0)

    run_with_session(engine, scenario)


# =============================================================================
# SHARE LINKS / SNAPSHOT
# =============================================================================

def test_share_link_round_trip(engine):
    links = []

    def make_link(session):
        session.set_loop_points(1.5, 3.25)
        session.set_playback_rate(0.75)
        session.add_bookmark(name="Riff")
        links.append(session.share_link("https://example.com/player", include_bookmark=True))

    def apply_link(session):
        assert session.apply_share_link(links[0])
        assert session.window == LoopWindow(1.5, 3.25)
        assert session.playback.playback_rate == 0.75
        assert session.is_looping
        assert [b.name for b in session.bookmarks] == ["Riff"]

    run_with_session(engine, make_link)
    run_with_session(engine, apply_link)


def test_share_link_outside_track_is_not_applied(engine):
    def scenario(session):
        assert session.apply_share_link("https://example.com/?start=40&end=50") is False
        assert session.window is None
        assert not session.is_looping

    run_with_session(engine, scenario)


def test_snapshot(engine):
    def scenario(session):
        session.set_loop_points(1.0, 2.0)
        session.set_bpm(100)
        snap = session.snapshot()
        assert snap['window'] == LoopWindow(1.0, 2.0)
        assert snap['quantization'] == {'bpm': 100, 'enabled': False}
        assert snap['playback']['playback_rate'] == 1.0
        assert snap['looping'] is False
        assert snap['duration'] == 30.0

    run_with_session(engine, scenario)


# =============================================================================
# EVENTS / LIFECYCLE
# =============================================================================

def test_callback_errors_are_contained(engine):
    def scenario(session):
        def broken(*args):
            raise RuntimeError("boom")

        session.on('loop_points_changed', broken)
        seen = record(session, 'loop_points_changed')
        assert session.set_loop_points(1.0, 2.0)
        assert seen == [(LoopWindow(1.0, 2.0),)]

        session.off('loop_points_changed', broken)
        session.on('not_an_event', broken)

    run_with_session(engine, scenario)


def test_time_updates_reach_subscriber(engine):
    async def scenario(session):
        seen = []
        sub = session.on_time(seen.append)
        handle_of(engine).position = 2.5
        await asyncio.sleep(0.02)
        sub.cancel()
        assert seen[-1] == 2.5

    run_with_session(engine, scenario)


def test_dispose_releases_engine(engine):
    async def main():
        session = Session(engine)
        await session.load(b"30")
        session.dispose()
        assert session.state is ClockState.DISPOSED
        assert handle_of(engine).released
        assert session.play() is False

    asyncio.run(main())
