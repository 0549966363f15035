from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from pianola.model import (
    Action,
    ActionKind,
    DecodedMidi,
    DecodedNote,
    NoteEvent,
    SUSTAIN_CONTROLLER,
)


# Grouping resolution; onset + duration sums differ from the true time by a few ULPs
TIME_DIGITS = 9


def _key(t: float) -> float:
    return round(float(t), TIME_DIGITS)


def _to_event(note: DecodedNote) -> NoteEvent:
    return NoteEvent(pitch_name=note.pitch_name, midi_number=int(note.midi_number), velocity=float(note.velocity))


def _group(notes: Iterable[DecodedNote], time_of, kind: ActionKind) -> List[Action]:
    # Times equal to TIME_DIGITS decimals group together; first-seen order is kept within a group
    by_time: Dict[float, List[NoteEvent]] = {}
    for n in notes:
        by_time.setdefault(_key(time_of(n)), []).append(_to_event(n))
    return [Action(time=t, kind=kind, notes=tuple(evs)) for t, evs in by_time.items()]


def derive(decoded: Optional[DecodedMidi]) -> Tuple[Action, ...]:
    """Turn a decoded file into the time-ordered action list.

    Simultaneous onsets become one PRESS_KEY action and simultaneous offsets
    one RELEASE_KEY action; sustain controller events become pedal actions.
    Ordering is (time, kind priority). Missing input yields an empty list.
    """
    if decoded is None or not decoded.tracks:
        return ()

    notes = [n for tr in decoded.tracks for n in tr.notes]
    presses = _group(notes, lambda n: n.onset, ActionKind.PRESS_KEY)
    releases = _group(notes, lambda n: n.offset, ActionKind.RELEASE_KEY)

    pedals: List[Action] = []
    for tr in decoded.tracks:
        for cc in tr.control_changes.get(SUSTAIN_CONTROLLER) or []:
            kind = ActionKind.RELEASE_SUSTAIN_PEDAL if cc.value == 0 else ActionKind.PRESS_SUSTAIN_PEDAL
            pedals.append(Action(time=_key(cc.time), kind=kind))

    return tuple(sorted(presses + releases + pedals, key=lambda a: a.sort_key))
