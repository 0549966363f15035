from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional, Tuple


SUSTAIN_CONTROLLER = 64


class ActionKind(IntEnum):
    """Kinds of scheduled actions. The value doubles as the tie-break priority:
    at identical timestamps releases resolve before presses.
    """

    RELEASE_SUSTAIN_PEDAL = 0
    PRESS_SUSTAIN_PEDAL = 1
    RELEASE_KEY = 2
    PRESS_KEY = 3


@dataclass(frozen=True)
class NoteEvent:
    pitch_name: str
    midi_number: int
    velocity: float


@dataclass(frozen=True)
class Action:
    time: float
    kind: ActionKind
    notes: Tuple[NoteEvent, ...] = ()

    @property
    def sort_key(self) -> Tuple[float, int]:
        return (self.time, int(self.kind))


# --- Decoded MIDI source (produced by pianola.decode) ---


@dataclass(frozen=True)
class DecodedNote:
    onset: float
    duration: float
    pitch_name: str
    midi_number: int
    velocity: float
    # Exact release time when the source knows it (tick-derived files)
    end: Optional[float] = None

    @property
    def offset(self) -> float:
        if self.end is not None:
            return self.end
        return self.onset + self.duration


@dataclass(frozen=True)
class ControlChange:
    time: float
    value: float


@dataclass
class DecodedTrack:
    name: str = ""
    notes: List[DecodedNote] = field(default_factory=list)
    # controller number -> events in file order
    control_changes: Dict[int, List[ControlChange]] = field(default_factory=dict)


@dataclass
class DecodedMidi:
    tracks: List[DecodedTrack] = field(default_factory=list)
    name: str = ""
