from __future__ import annotations

import asyncio

import pytest

from pianola.model import Action
from pianola.player_server import PlayerService
from pianola.scheduler import UnrecognizedActionKind
from pianola.sinks import VirtualSink

from helpers import make_decoded, note


async def _start(sink, volume=1.0):
    svc = PlayerService(sink, volume=volume)
    task = asyncio.create_task(svc.run())
    await svc.wait_started()
    return svc, task


@pytest.mark.asyncio
async def test_plays_file_to_end():
    sink = VirtualSink()
    svc, task = await _start(sink, volume=0.5)
    try:
        state = await svc.load_file(make_decoded([note("C4", 0.0, 0.05, 0.8), note("E4", 0.02, 0.05, 0.6)]))
        assert state["total"] == 4
        await asyncio.wait_for(svc.wait_finished(), timeout=2.0)
        assert [e[0] for e in sink.events] == ["press", "press", "release", "release"]
        assert [e[3] for e in sink.of_type("press")] == [0.4, 0.3]
        assert svc.get_state()["pressedNotes"] == []
        assert svc.get_metrics()["actions_fired"] == 4
    finally:
        await svc.stop()
        await task


@pytest.mark.asyncio
async def test_pause_holds_schedule_until_resume():
    sink = VirtualSink()
    svc, task = await _start(sink)
    try:
        await svc.load_file(make_decoded([note("C4", 0.0, 0.02), note("D4", 0.15, 0.02)]))
        await asyncio.sleep(0.05)
        await svc.set_paused(True)
        await asyncio.sleep(0.3)
        assert [e[1] for e in sink.of_type("press")] == ["C4"]
        state = await svc.set_paused(False)
        assert state["paused"] is False
        await asyncio.wait_for(svc.wait_finished(), timeout=2.0)
        assert [e[1] for e in sink.of_type("press")] == ["C4", "D4"]
    finally:
        await svc.stop()
        await task


@pytest.mark.asyncio
async def test_seek_out_of_range_is_reported_to_caller():
    sink = VirtualSink()
    svc, task = await _start(sink)
    try:
        await svc.load_file(make_decoded([note("C4", 0.0, 5.0)]), paused=True)
        with pytest.raises(IndexError):
            await svc.seek(10)
        state = await svc.seek(1)
        assert state["cursor"] == 1
    finally:
        await svc.stop()
        await task


@pytest.mark.asyncio
async def test_stop_releases_held_notes():
    sink = VirtualSink()
    svc, task = await _start(sink)
    await svc.load_file(make_decoded([note("C4", 0.0, 5.0)], pedal=[(0.0, 1.0)]))
    await asyncio.sleep(0.05)
    await svc.stop()
    await task
    assert sink.of_type("release") == [("release", "C4", 60, 0.0)]
    assert len(sink.of_type("pedal_up")) == 1


@pytest.mark.asyncio
async def test_dispatch_failure_propagates_from_run(monkeypatch):
    monkeypatch.setattr("pianola.transport.derive", lambda decoded: (Action(time=0.0, kind=9),))
    sink = VirtualSink()
    svc, task = await _start(sink)
    await svc.load_file(None)
    with pytest.raises(UnrecognizedActionKind):
        await asyncio.wait_for(task, timeout=2.0)
