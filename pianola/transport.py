from __future__ import annotations

from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

from pianola import context as ctxmod
from pianola.actions import derive
from pianola.clock import Clock, TimerHandle
from pianola.context import PlaybackContext
from pianola.model import ActionKind, DecodedMidi
from pianola.scheduler import INERT, step
from pianola.sinks import CoreSink, VolumeScaledSink, clamp_volume


def _quantile(samples: List[float], q: float) -> float:
    """Linearly interpolated quantile of lateness samples; 0.0 when there are none."""
    if not samples:
        return 0.0
    ordered = sorted(samples)
    pos = (len(ordered) - 1) * q
    lo = int(pos)
    hi = min(lo + 1, len(ordered) - 1)
    frac = pos - lo
    return ordered[lo] + (ordered[hi] - ordered[lo]) * frac


class Transport:
    """Owns the current playback context and its single pending timer.

    - Every context replacement cancels the pending timer before re-arming.
    - Commands (load, pause/resume, seek, volume, stop) run between timer firings.
    - Held notes and the pedal are released before any cursor jump.
    """

    def __init__(
        self,
        sink: CoreSink,
        clock: Clock,
        volume: float = 1.0,
        on_change: Optional[Callable[["Transport"], None]] = None,
    ) -> None:
        self.sink = sink
        self.clock = clock
        self.on_change = on_change
        self._bound = VolumeScaledSink(sink, volume)
        self._context = ctxmod.create_context((), clock.now())
        self._handle: TimerHandle = INERT
        self._armed_at = clock.now()
        # Lateness of fired actions vs their scheduled instant
        self._lateness_ms: Deque[float] = deque(maxlen=512)
        self.metrics: Dict[str, int] = {
            "actions_fired": 0,
            "keys_pressed": 0,
            "keys_released": 0,
            "pedal_changes": 0,
            "seeks": 0,
        }

    @property
    def context(self) -> PlaybackContext:
        return self._context

    @property
    def volume(self) -> float:
        return self._bound.volume

    @property
    def finished(self) -> bool:
        return ctxmod.is_finished(self._context)

    # --- Public control ---
    def load(self, decoded: Optional[DecodedMidi], paused: bool = False) -> None:
        self._cancel()
        # Previous file may still hold keys/pedal
        self._context = self._clear(self._context)
        self._replace(ctxmod.create_context(derive(decoded), self.clock.now(), paused=paused))

    def set_paused(self, paused: bool) -> None:
        self._cancel()
        if paused:
            self._replace(ctxmod.pause(self._context, self.clock.now()))
        else:
            self._replace(ctxmod.resume(self._context, self.clock.now()))

    def seek(self, index: int) -> None:
        index = int(index)
        if not (0 <= index < len(self._context.actions)):
            raise IndexError(f"seek index {index} out of range 0..{len(self._context.actions) - 1}")
        self._cancel()
        cleared = self._clear(self._context)
        self.metrics["seeks"] += 1
        self._replace(ctxmod.seek(cleared, index, self.clock.now()))

    def set_volume(self, volume: float) -> None:
        self._cancel()
        self._bound = VolumeScaledSink(self.sink, clamp_volume(volume))
        self._replace(self._context)

    def stop(self) -> None:
        self._cancel()
        self._replace(self._clear(self._context))

    def state(self) -> Dict[str, Any]:
        c = self._context
        return {
            "paused": c.paused,
            "cursor": c.cursor,
            "total": len(c.actions),
            "pressedNotes": sorted(c.pressed_notes),
            "sustain": c.sustain_active,
            "volume": self.volume,
            "elapsed": round(ctxmod.elapsed(c, self.clock.now()), 4),
            "finished": ctxmod.is_finished(c),
        }

    def get_metrics(self) -> Dict[str, Any]:
        samples = list(self._lateness_ms)
        out: Dict[str, Any] = dict(self.metrics)
        out["latenessMsP95"] = round(_quantile(samples, 0.95), 3)
        out["latenessMsP99"] = round(_quantile(samples, 0.99), 3)
        return out

    # --- Internals ---
    def _cancel(self) -> None:
        self._handle.cancel()
        self._handle = INERT

    def _clear(self, c: PlaybackContext) -> PlaybackContext:
        return ctxmod.clear(c, self.clock.now(), self._bound.release_key, self._bound.release_pedal)

    def _replace(self, c: PlaybackContext) -> None:
        self._context = c
        if not c.paused:
            self._armed_at = self.clock.now()
            self._handle = step(c, self._bound, self.clock, self._advance)
        if self.on_change is not None:
            self.on_change(self)

    def _advance(self, nxt: PlaybackContext) -> None:
        prev = self._context
        action = prev.actions[prev.cursor]
        # Overdue arms (seek lead, resume catch-up) count from when they were armed
        due = max(prev.origin + action.time, self._armed_at)
        late = self.clock.now() - due
        self._lateness_ms.append(max(0.0, late) * 1000.0)
        self.metrics["actions_fired"] += 1
        if action.kind == ActionKind.PRESS_KEY:
            self.metrics["keys_pressed"] += len(action.notes)
        elif action.kind == ActionKind.RELEASE_KEY:
            self.metrics["keys_released"] += len(action.notes)
        else:
            self.metrics["pedal_changes"] += 1
        # The fired timer is spent
        self._handle = INERT
        self._replace(nxt)
