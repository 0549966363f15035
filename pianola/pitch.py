from __future__ import annotations


_SEMITONES = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}
_SHARP_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]


def name_to_midi(name: str) -> int:
    """Parse a pitch name like 'C4', 'G#3' or 'Bb-1' into a MIDI number.

    Assumes C4 = 60 (so C-1 = 0). Raises ValueError for anything unparsable
    or outside 0..127.
    """
    if not isinstance(name, str) or len(name.strip()) < 2:
        raise ValueError(f"invalid pitch name: {name!r}")
    s = name.strip()
    letter = s[0].upper()
    if letter not in _SEMITONES:
        raise ValueError(f"invalid pitch letter in {name!r}")
    i = 1
    accidental = 0
    while i < len(s) and s[i] in ("#", "b"):
        accidental += 1 if s[i] == "#" else -1
        i += 1
    try:
        octave = int(s[i:])
    except ValueError:
        raise ValueError(f"invalid octave in {name!r}") from None
    midi = 12 * (octave + 1) + _SEMITONES[letter] + accidental
    if not (0 <= midi <= 127):
        raise ValueError(f"pitch {name!r} outside MIDI range")
    return midi


def midi_to_name(midi: int) -> str:
    m = int(midi)
    if not (0 <= m <= 127):
        raise ValueError(f"MIDI number {midi} outside 0..127")
    return f"{_SHARP_NAMES[m % 12]}{(m // 12) - 1}"
