import unittest
from dataclasses import replace

from pianola import context as ctxmod
from pianola.actions import derive
from pianola.clock import ManualClock
from pianola.model import Action, ActionKind, NoteEvent
from pianola.scheduler import INERT, UnrecognizedActionKind, step
from pianola.sinks import VirtualSink

from helpers import chord_with_pedal, make_decoded, note, scale


class Driver:
    """Re-arms step() on every replacement, the way a transport caller does."""

    def __init__(self, ctx, sink, clock):
        self.ctx = ctx
        self.sink = sink
        self.clock = clock
        self.visited = []
        self.handle = step(ctx, sink, clock, self.set_context)

    def set_context(self, nxt):
        self.visited.append(self.ctx.cursor)
        self.ctx = nxt
        self.handle = step(nxt, self.sink, self.clock, self.set_context)


class TestScheduler(unittest.TestCase):
    def test_inert_when_empty_or_out_of_range(self):
        clock = ManualClock()
        sink = VirtualSink()
        empty = ctxmod.create_context((), now=0.0)
        self.assertIs(step(empty, sink, clock, lambda c: None), INERT)
        actions = derive(scale(n=2))
        parked = replace(ctxmod.create_context(actions, now=0.0), cursor=-1)
        done = replace(parked, cursor=len(actions))
        self.assertIs(step(parked, sink, clock, lambda c: None), INERT)
        self.assertIs(step(done, sink, clock, lambda c: None), INERT)
        INERT.cancel()
        self.assertEqual(clock.pending(), 0)

    def test_one_action_per_timer(self):
        clock = ManualClock()
        sink = VirtualSink()
        received = []
        ctx = ctxmod.create_context(derive(chord_with_pedal()), now=0.0)
        step(ctx, sink, clock, received.append)
        clock.advance(5.0)
        self.assertEqual(len(received), 1)
        self.assertEqual(received[0].cursor, 1)
        self.assertTrue(received[0].sustain_active)
        self.assertEqual(sink.events, [("pedal_down", None, -1, 0.0)])

    def test_delay_waits_for_action_time(self):
        clock = ManualClock(start=10.0)
        sink = VirtualSink()
        ctx = ctxmod.create_context(derive(make_decoded([note("C4", 0.5, 0.5)])), now=10.0)
        received = []
        step(ctx, sink, clock, received.append)
        self.assertEqual(clock.next_due(), 10.5)
        clock.advance(0.49)
        self.assertEqual(received, [])
        clock.advance(0.02)
        self.assertEqual(len(received), 1)

    def test_negative_delay_fires_immediately(self):
        clock = ManualClock(start=50.0)
        sink = VirtualSink()
        # Origin far in the past: the action is overdue
        ctx = ctxmod.create_context(derive(make_decoded([note("C4", 1.0, 0.5)])), now=0.0)
        received = []
        step(ctx, sink, clock, received.append)
        self.assertEqual(clock.next_due(), 50.0)
        clock.advance(0.0)
        self.assertEqual(len(received), 1)

    def test_full_run_visits_every_action_in_order(self):
        clock = ManualClock()
        sink = VirtualSink()
        decoded = make_decoded(
            [note("C4", 0.0, 1.0), note("E4", 0.0, 1.0), note("G4", 0.5, 1.0), note("C5", 1.5, 0.5)],
            pedal=[(0.0, 1.0), (1.0, 0.0), (1.2, 1.0), (2.0, 0.0)],
        )
        actions = derive(decoded)
        d = Driver(ctxmod.create_context(actions, now=0.0), sink, clock)
        clock.advance(10.0)
        self.assertEqual(d.visited, list(range(len(actions))))
        self.assertEqual(d.ctx.cursor, len(actions))
        self.assertEqual(d.ctx.pressed_notes, frozenset())
        self.assertFalse(d.ctx.sustain_active)
        self.assertEqual(len(sink.of_type("press")), 4)
        self.assertEqual(len(sink.of_type("release")), 4)

    def test_pressed_notes_track_dispatch(self):
        clock = ManualClock()
        sink = VirtualSink()
        d = Driver(ctxmod.create_context(derive(chord_with_pedal()), now=0.0), sink, clock)
        clock.advance(0.5)
        self.assertEqual(d.ctx.pressed_notes, frozenset({"C4", "E4"}))
        self.assertTrue(d.ctx.sustain_active)
        self.assertEqual(sink.of_type("press"), [("press", "C4", 60, 0.8), ("press", "E4", 64, 0.6)])

    def test_release_of_absent_pitch_calls_sink_once(self):
        clock = ManualClock()
        sink = VirtualSink()
        action = Action(time=0.0, kind=ActionKind.RELEASE_KEY, notes=(NoteEvent("D4", 62, 0.5),))
        ctx = replace(ctxmod.create_context((action,), now=0.0), pressed_notes=frozenset({"C4"}))
        received = []
        step(ctx, sink, clock, received.append)
        clock.advance(0.0)
        self.assertEqual(sink.events, [("release", "D4", 62, 0.0)])
        self.assertEqual(received[0].pressed_notes, frozenset({"C4"}))

    def test_retrigger_keeps_single_entry(self):
        clock = ManualClock()
        sink = VirtualSink()
        decoded = make_decoded([note("C4", 0.0, 2.0), note("C4", 0.5, 0.5)])
        d = Driver(ctxmod.create_context(derive(decoded), now=0.0), sink, clock)
        clock.advance(0.75)
        self.assertEqual(len(sink.of_type("press")), 2)
        self.assertEqual(d.ctx.pressed_notes, frozenset({"C4"}))

    def test_cancel_prevents_firing_and_is_idempotent(self):
        clock = ManualClock()
        sink = VirtualSink()
        received = []
        h = step(ctxmod.create_context(derive(scale()), now=0.0), sink, clock, received.append)
        h.cancel()
        h.cancel()
        clock.advance(5.0)
        self.assertEqual(received, [])
        self.assertEqual(sink.events, [])

    def test_cancel_after_fire_is_noop(self):
        clock = ManualClock()
        received = []
        h = step(ctxmod.create_context(derive(scale()), now=0.0), VirtualSink(), clock, received.append)
        clock.advance(0.0)
        h.cancel()
        self.assertEqual(len(received), 1)

    def test_unrecognized_kind_is_fatal(self):
        clock = ManualClock()
        bogus = Action(time=0.0, kind=7, notes=())
        ctx = ctxmod.create_context((bogus,), now=0.0)
        step(ctx, VirtualSink(), clock, lambda c: None)
        with self.assertRaises(UnrecognizedActionKind):
            clock.advance(0.0)


if __name__ == "__main__":
    unittest.main()
