from pianola.model import ControlChange, DecodedMidi, DecodedNote, DecodedTrack
from pianola.pitch import name_to_midi


def note(name, onset, duration, velocity=0.8):
    return DecodedNote(onset=onset, duration=duration, pitch_name=name, midi_number=name_to_midi(name), velocity=velocity)


def make_decoded(notes, pedal=None):
    """Single-track file; pedal is a list of (time, value) sustain events."""
    ccs = {64: [ControlChange(t, v) for t, v in pedal]} if pedal else {}
    return DecodedMidi(tracks=[DecodedTrack(name="Piano", notes=list(notes), control_changes=ccs)])


def chord_with_pedal():
    # C4+E4 at t=0 for 1s, sustain down at 0 and up at 1
    return make_decoded(
        [note("C4", 0.0, 1.0, 0.8), note("E4", 0.0, 1.0, 0.6)],
        pedal=[(0.0, 1.0), (1.0, 0.0)],
    )


def scale(n=4, step=0.5, length=0.25):
    names = ["C4", "D4", "E4", "F4", "G4", "A4", "B4", "C5"]
    return make_decoded([note(names[i % len(names)], i * step, length) for i in range(n)])
