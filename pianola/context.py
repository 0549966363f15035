from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, FrozenSet, Optional, Tuple

from pianola.model import Action
from pianola.pitch import name_to_midi


# Lead applied on seek so the target action's delay is never rounded negative
SEEK_LEAD_SECONDS = 0.1

PARKED = -1


@dataclass(frozen=True)
class PlaybackContext:
    """Immutable snapshot of scheduler state.

    - cursor: index of the next unfired action, or PARKED (-1) when nothing is pending.
    - origin: clock reading that defines time zero of the current run.
    - paused_at: clock reading when the current pause began (None while running).
    """

    actions: Tuple[Action, ...] = ()
    pressed_notes: FrozenSet[str] = frozenset()
    sustain_active: bool = False
    cursor: int = 0
    origin: float = 0.0
    paused: bool = False
    paused_at: Optional[float] = None


def create_context(actions: Tuple[Action, ...], now: float, paused: bool = False) -> PlaybackContext:
    return PlaybackContext(
        actions=tuple(actions),
        cursor=0,
        origin=float(now),
        paused=bool(paused),
        paused_at=float(now) if paused else None,
    )


def elapsed(ctx: PlaybackContext, now: float) -> float:
    """Playback time consumed so far; frozen while paused."""
    if ctx.paused and ctx.paused_at is not None:
        return ctx.paused_at - ctx.origin
    return now - ctx.origin


def is_finished(ctx: PlaybackContext) -> bool:
    return ctx.cursor >= len(ctx.actions)


def pause(ctx: PlaybackContext, now: float) -> PlaybackContext:
    if ctx.paused:
        return ctx
    return replace(ctx, paused=True, paused_at=float(now))


def resume(ctx: PlaybackContext, now: float) -> PlaybackContext:
    if not ctx.paused:
        return ctx
    consumed = elapsed(ctx, now)
    return replace(ctx, paused=False, paused_at=None, origin=float(now) - consumed)


def seek(ctx: PlaybackContext, index: int, now: float) -> PlaybackContext:
    """Move the cursor to `index` so that action fires right away.

    Callers must clear() first; jumping skips the releases for whatever
    is held at the old position.
    """
    if not (0 <= index < len(ctx.actions)):
        raise IndexError(f"seek index {index} out of range 0..{len(ctx.actions) - 1}")
    origin = float(now) - ctx.actions[index].time - SEEK_LEAD_SECONDS
    return replace(
        ctx,
        origin=origin,
        cursor=int(index),
        paused_at=float(now) if ctx.paused else None,
    )


def clear(
    ctx: PlaybackContext,
    now: float,
    release_key: Callable[[str, int], None],
    release_pedal: Callable[[], None],
) -> PlaybackContext:
    """Release everything held and park the cursor."""
    for name in sorted(ctx.pressed_notes):
        release_key(name, name_to_midi(name))
    if ctx.sustain_active:
        release_pedal()
    return replace(
        ctx,
        pressed_notes=frozenset(),
        sustain_active=False,
        cursor=PARKED,
        origin=float(now),
        paused_at=float(now) if ctx.paused else None,
    )
