from __future__ import annotations

from dataclasses import replace
from typing import Callable, Protocol

from pianola.clock import Clock, TimerHandle
from pianola.context import PlaybackContext
from pianola.model import ActionKind


class UnrecognizedActionKind(Exception):
    """Derivation and dispatch disagree about the set of action kinds."""


class Sinks(Protocol):
    def press_key(self, pitch_name: str, midi_number: int, velocity: float) -> None:  # pragma: no cover - interface
        ...

    def release_key(self, pitch_name: str, midi_number: int) -> None:  # pragma: no cover - interface
        ...

    def press_pedal(self) -> None:  # pragma: no cover - interface
        ...

    def release_pedal(self) -> None:  # pragma: no cover - interface
        ...


class _InertHandle:
    def cancel(self) -> None:
        pass


INERT = _InertHandle()


def fire(ctx: PlaybackContext, sinks: Sinks) -> PlaybackContext:
    """Dispatch the action under the cursor and return the successor context."""
    action = ctx.actions[ctx.cursor]
    pressed = set(ctx.pressed_notes)
    sustain = ctx.sustain_active
    if action.kind == ActionKind.PRESS_KEY:
        for n in action.notes:
            pressed.add(n.pitch_name)
            sinks.press_key(n.pitch_name, n.midi_number, n.velocity)
    elif action.kind == ActionKind.RELEASE_KEY:
        for n in action.notes:
            pressed.discard(n.pitch_name)
            sinks.release_key(n.pitch_name, n.midi_number)
    elif action.kind == ActionKind.PRESS_SUSTAIN_PEDAL:
        sustain = True
        sinks.press_pedal()
    elif action.kind == ActionKind.RELEASE_SUSTAIN_PEDAL:
        sustain = False
        sinks.release_pedal()
    else:
        raise UnrecognizedActionKind(f"unrecognized action kind: {action.kind!r}")
    return replace(ctx, pressed_notes=frozenset(pressed), sustain_active=sustain, cursor=ctx.cursor + 1)


def step(
    ctx: PlaybackContext,
    sinks: Sinks,
    clock: Clock,
    set_context: Callable[[PlaybackContext], None],
) -> TimerHandle:
    """Arm one timer for the action under the cursor.

    When it fires, the action is dispatched and the successor context is
    handed to set_context; the caller re-invokes step to continue. The
    returned handle must be cancelled before re-arming under a new context.
    """
    if not ctx.actions or not (0 <= ctx.cursor < len(ctx.actions)):
        return INERT
    action = ctx.actions[ctx.cursor]
    delay = action.time - (clock.now() - ctx.origin)

    def _on_timer():
        set_context(fire(ctx, sinks))

    # Late timers (suspended process, seek lead) fire immediately
    return clock.call_later(max(delay, 0.0), _on_timer)
