from __future__ import annotations

import bisect
import json
from collections import defaultdict, deque
from pathlib import Path
from typing import Any, Deque, Dict, List, Tuple

import mido

from pianola.model import ControlChange, DecodedMidi, DecodedNote, DecodedTrack
from pianola.pitch import midi_to_name
from pianola.validator import ValidationError, validate_decoded


DEFAULT_TEMPO = 500_000  # 120 bpm


def decode_json(doc: Dict[str, Any]) -> DecodedMidi:
    """Build the decoded model from the JSON layout of a browser MIDI decoder.

    Controller values are taken as given (0..1 there); only zero vs non-zero
    matters for the sustain pedal.
    """
    errors = validate_decoded(doc)
    if errors:
        raise ValidationError(errors)
    tracks: List[DecodedTrack] = []
    for tr in doc.get("tracks") or []:
        notes = [
            DecodedNote(
                onset=float(n["time"]),
                duration=float(n["duration"]),
                pitch_name=n.get("name") or midi_to_name(n["midi"]),
                midi_number=int(n["midi"]),
                velocity=float(n["velocity"]),
            )
            for n in tr.get("notes", [])
        ]
        ccs = {
            int(k): [ControlChange(time=float(e["time"]), value=float(e["value"])) for e in evs]
            for k, evs in (tr.get("controlChanges") or {}).items()
        }
        tracks.append(DecodedTrack(name=str(tr.get("name", "")), notes=notes, control_changes=ccs))
    header = doc.get("header") if isinstance(doc.get("header"), dict) else {}
    return DecodedMidi(tracks=tracks, name=str(header.get("name", "")))


class _TickMap:
    """Absolute MIDI ticks -> seconds using the tempo changes of every track."""

    def __init__(self, mid: mido.MidiFile):
        self.ticks_per_beat = mid.ticks_per_beat or 480
        changes: List[Tuple[int, int]] = []
        for track in mid.tracks:
            abs_tick = 0
            for msg in track:
                abs_tick += msg.time
                if msg.type == "set_tempo":
                    changes.append((abs_tick, msg.tempo))
        changes.sort(key=lambda c: c[0])
        # (tick, seconds at tick, tempo from tick on)
        self._segments: List[Tuple[int, float, int]] = [(0, 0.0, DEFAULT_TEMPO)]
        for tick, tempo in changes:
            last_tick, last_sec, last_tempo = self._segments[-1]
            if tick == last_tick:
                self._segments[-1] = (tick, last_sec, tempo)
                continue
            sec = last_sec + mido.tick2second(tick - last_tick, self.ticks_per_beat, last_tempo)
            self._segments.append((tick, sec, tempo))
        self._ticks = [s[0] for s in self._segments]

    def seconds(self, tick: int) -> float:
        i = bisect.bisect_right(self._ticks, tick) - 1
        seg_tick, seg_sec, tempo = self._segments[max(0, i)]
        return seg_sec + mido.tick2second(tick - seg_tick, self.ticks_per_beat, tempo)


def decode_midi_file(path: str) -> DecodedMidi:
    try:
        mid = mido.MidiFile(path)
    except (OSError, EOFError, ValueError, KeyError) as e:
        raise IOError(f"Could not read MIDI file {path}: {e}") from e

    tmap = _TickMap(mid)
    tracks: List[DecodedTrack] = []
    for i, track in enumerate(mid.tracks):
        name = f"Track {i}"
        notes: List[Tuple[int, DecodedNote]] = []
        ccs: Dict[int, List[ControlChange]] = defaultdict(list)
        # (channel, note) -> FIFO of (onset tick, velocity)
        open_notes: Dict[Tuple[int, int], Deque[Tuple[int, int]]] = defaultdict(deque)
        abs_tick = 0

        def _close(key: Tuple[int, int], end_tick: int) -> None:
            on_tick, vel = open_notes[key].popleft()
            start = tmap.seconds(on_tick)
            end = tmap.seconds(end_tick)
            notes.append((on_tick, DecodedNote(
                onset=start,
                duration=end - start,
                pitch_name=midi_to_name(key[1]),
                midi_number=key[1],
                velocity=vel / 127.0,
                end=end,
            )))

        for msg in track:
            abs_tick += msg.time
            if msg.type == "track_name":
                name = msg.name
            elif msg.type == "note_on" and msg.velocity > 0:
                open_notes[(msg.channel, msg.note)].append((abs_tick, msg.velocity))
            elif msg.type == "note_off" or (msg.type == "note_on" and msg.velocity == 0):
                key = (msg.channel, msg.note)
                if open_notes[key]:
                    _close(key, abs_tick)
            elif msg.type == "control_change":
                ccs[msg.control].append(ControlChange(time=tmap.seconds(abs_tick), value=msg.value / 127.0))
        # Close dangling notes at the end of the track
        for key, pending in list(open_notes.items()):
            while pending:
                _close(key, abs_tick)

        notes.sort(key=lambda p: p[0])
        tracks.append(DecodedTrack(name=name, notes=[n for _, n in notes], control_changes=dict(ccs)))
    return DecodedMidi(tracks=tracks, name=Path(path).stem)


def load_decoded(path: str) -> DecodedMidi:
    if Path(path).suffix.lower() == ".json":
        with open(path, "r", encoding="utf-8") as f:
            return decode_json(json.load(f))
    return decode_midi_file(path)
