from __future__ import annotations

import argparse

from pianola.sinks import MidoSink, open_mido_output


def main():
    ap = argparse.ArgumentParser(description="Release sustain and silence all notes on a MIDI port")
    ap.add_argument("--port", required=True, help="Substring to match MIDI port")
    ap.add_argument("--channel", type=int, default=0, help="MIDI channel (0-15)")
    args = ap.parse_args()
    out = open_mido_output(args.port)
    MidoSink(out, channel=args.channel).panic()
    print("panic sent (CC64/120/123)")


if __name__ == "__main__":
    main()
