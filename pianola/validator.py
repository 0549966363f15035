from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, List

from pianola.pitch import name_to_midi


class ValidationError(Exception):
    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = list(errors)


def _err(errors: List[str], path: str, msg: str) -> None:
    errors.append(f"{path}: {msg}")


def _check_name(errors: List[str], path: str, name: Any, midi: Any) -> None:
    # Cleanup rebuilds MIDI numbers from names, so the two must agree
    if not isinstance(name, str):
        _err(errors, path, "must be a string if present")
        return
    try:
        parsed = name_to_midi(name)
    except ValueError:
        _err(errors, path, "pitch name like 'C4' or 'F#3' required")
        return
    if isinstance(midi, int) and parsed != midi:
        _err(errors, path, f"names MIDI {parsed} but midi is {midi}")


def _is_num(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def validate_decoded(doc: Dict[str, Any]) -> List[str]:
    """Validate a decoded MIDI JSON document.

    Returns a list of human-readable errors with JSON-pointer-like paths.
    Missing or empty `tracks` is not an error: such a file simply plays nothing.
    """
    errors: List[str] = []
    if not isinstance(doc, dict):
        _err(errors, "", "document must be an object")
        return errors

    tracks = doc.get("tracks")
    if tracks is None:
        return errors
    if not isinstance(tracks, list):
        _err(errors, "/tracks", "must be an array if present")
        return errors

    for ti, tr in enumerate(tracks):
        tpath = f"/tracks/{ti}"
        if not isinstance(tr, dict):
            _err(errors, tpath, "must be object")
            continue
        notes = tr.get("notes", [])
        if not isinstance(notes, list):
            _err(errors, f"{tpath}/notes", "must be an array if present")
            notes = []
        for ni, n in enumerate(notes):
            npath = f"{tpath}/notes/{ni}"
            if not isinstance(n, dict):
                _err(errors, npath, "must be object")
                continue
            midi = n.get("midi")
            if not isinstance(midi, int) or isinstance(midi, bool) or not (0 <= midi <= 127):
                _err(errors, f"{npath}/midi", "integer 0..127 required")
            if "name" in n:
                _check_name(errors, f"{npath}/name", n["name"], midi)
            t = n.get("time")
            if not _is_num(t) or t < 0:
                _err(errors, f"{npath}/time", "number ≥0 required")
            if not _is_num(n.get("duration")):
                _err(errors, f"{npath}/duration", "number required")
            vel = n.get("velocity")
            if not _is_num(vel) or not (0.0 <= vel <= 1.0):
                _err(errors, f"{npath}/velocity", "number 0..1 required")

        ccs = tr.get("controlChanges", {})
        if not isinstance(ccs, dict):
            _err(errors, f"{tpath}/controlChanges", "must be an object keyed by controller number")
            continue
        for key, events in ccs.items():
            cpath = f"{tpath}/controlChanges/{key}"
            try:
                num = int(key)
            except (TypeError, ValueError):
                _err(errors, cpath, "key must be a controller number")
                continue
            if not (0 <= num <= 127):
                _err(errors, cpath, "controller number 0..127 required")
            if not isinstance(events, list):
                _err(errors, cpath, "must be array")
                continue
            for ei, ev in enumerate(events):
                epath = f"{cpath}/{ei}"
                if not isinstance(ev, dict):
                    _err(errors, epath, "must be object")
                    continue
                if not _is_num(ev.get("time")) or ev.get("time") < 0:
                    _err(errors, f"{epath}/time", "number ≥0 required")
                if not _is_num(ev.get("value")):
                    _err(errors, f"{epath}/value", "number required")
    return errors


def main():
    ap = argparse.ArgumentParser(description="Validate a decoded MIDI JSON document")
    ap.add_argument("path")
    args = ap.parse_args()
    with open(args.path, "r", encoding="utf-8") as f:
        doc = json.load(f)
    errors = validate_decoded(doc)
    for e in errors:
        print(e)
    sys.exit(1 if errors else 0)


if __name__ == "__main__":
    main()
