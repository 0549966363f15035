from __future__ import annotations

from typing import List, Optional, Tuple

from pianola.model import SUSTAIN_CONTROLLER


class CoreSink:
    """Abstract Sound Engine interface driven by the scheduler."""

    def press_key(self, pitch_name: str, midi_number: int, velocity: float) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def release_key(self, pitch_name: str, midi_number: int) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def press_pedal(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def release_pedal(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def panic(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class VirtualSink(CoreSink):
    """A minimal sink capturing events for tests and demos.

    Records tuples like (type, name, midi, velocity). Types: 'press',
    'release', 'pedal_down', 'pedal_up', 'panic'.
    """

    def __init__(self) -> None:
        self.events: List[Tuple[str, Optional[str], int, float]] = []

    def press_key(self, pitch_name: str, midi_number: int, velocity: float) -> None:
        self.events.append(("press", pitch_name, int(midi_number), float(velocity)))

    def release_key(self, pitch_name: str, midi_number: int) -> None:
        self.events.append(("release", pitch_name, int(midi_number), 0.0))

    def press_pedal(self) -> None:
        self.events.append(("pedal_down", None, -1, 0.0))

    def release_pedal(self) -> None:
        self.events.append(("pedal_up", None, -1, 0.0))

    def panic(self) -> None:
        self.events.append(("panic", None, -1, 0.0))

    def of_type(self, kind: str) -> List[Tuple[str, Optional[str], int, float]]:
        return [e for e in self.events if e[0] == kind]


def clamp_volume(volume: float) -> float:
    return max(0.0, min(1.0, float(volume)))


class VolumeScaledSink(CoreSink):
    """Binds a volume multiplier in front of another sink.

    The scheduler never sees volume; press velocities are scaled here.
    """

    def __init__(self, inner: CoreSink, volume: float = 1.0):
        self.inner = inner
        self.volume = clamp_volume(volume)

    def press_key(self, pitch_name: str, midi_number: int, velocity: float) -> None:
        self.inner.press_key(pitch_name, midi_number, float(velocity) * self.volume)

    def release_key(self, pitch_name: str, midi_number: int) -> None:
        self.inner.release_key(pitch_name, midi_number)

    def press_pedal(self) -> None:
        self.inner.press_pedal()

    def release_pedal(self) -> None:
        self.inner.release_pedal()

    def panic(self) -> None:
        self.inner.panic()


def velocity_to_midi(velocity: float) -> int:
    return max(0, min(127, int(round(float(velocity) * 127))))


class MidoSink(CoreSink):
    def __init__(self, out_port, channel: int = 0):
        self.out = out_port
        self.channel = int(channel)

    def press_key(self, pitch_name: str, midi_number: int, velocity: float) -> None:
        import mido

        self.out.send(mido.Message("note_on", note=int(midi_number), velocity=velocity_to_midi(velocity), channel=self.channel))

    def release_key(self, pitch_name: str, midi_number: int) -> None:
        import mido

        self.out.send(mido.Message("note_off", note=int(midi_number), velocity=0, channel=self.channel))

    def press_pedal(self) -> None:
        import mido

        self.out.send(mido.Message("control_change", control=SUSTAIN_CONTROLLER, value=127, channel=self.channel))

    def release_pedal(self) -> None:
        import mido

        self.out.send(mido.Message("control_change", control=SUSTAIN_CONTROLLER, value=0, channel=self.channel))

    def panic(self) -> None:
        import mido

        # Sustain off, then All Sound Off (120) and All Notes Off (123)
        self.out.send(mido.Message("control_change", control=SUSTAIN_CONTROLLER, value=0, channel=self.channel))
        self.out.send(mido.Message("control_change", control=120, value=0, channel=self.channel))
        self.out.send(mido.Message("control_change", control=123, value=0, channel=self.channel))


def open_mido_output(name_filter: Optional[str] = None):
    """Open a Mido output port with safe fallbacks.

    - If the system MIDI stack is inaccessible, return a dummy object exposing
      `.send()`.
    - If a specific port is requested but not found, also fall back to dummy
      rather than crashing in headless environments.
    """
    def _dummy_out():
        class _DummyOut:
            def send(self, *_args, **_kwargs):
                pass

            def close(self):
                pass
        return _DummyOut()

    import mido

    try:
        names = mido.get_output_names()
    except Exception as e:
        # Accessing system MIDI may raise in sandboxed environments
        print(f"[midi] cannot list outputs ({e}); using dummy output", flush=True)
        return _dummy_out()
    if name_filter:
        names = [n for n in names if name_filter in n]
    if not names:
        print(f"[midi] no output matching {name_filter!r}; using dummy output", flush=True)
        return _dummy_out()
    try:
        port = mido.open_output(names[0])
    except Exception as e:
        print(f"[midi] could not open {names[0]!r} ({e}); using dummy output", flush=True)
        return _dummy_out()
    print(f"[midi] output: {names[0]}", flush=True)
    return port
