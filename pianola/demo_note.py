from pianola.actions import derive
from pianola.clock import ManualClock
from pianola.model import ControlChange, DecodedMidi, DecodedNote, DecodedTrack
from pianola.sinks import VirtualSink
from pianola.transport import Transport


def main():
    # C4 + E4 held for one second under the sustain pedal
    decoded = DecodedMidi(tracks=[
        DecodedTrack(
            name="Piano",
            notes=[
                DecodedNote(onset=0.0, duration=1.0, pitch_name="C4", midi_number=60, velocity=0.8),
                DecodedNote(onset=0.0, duration=1.0, pitch_name="E4", midi_number=64, velocity=0.6),
            ],
            control_changes={64: [ControlChange(0.0, 1.0), ControlChange(1.0, 0.0)]},
        )
    ])
    print("actions:")
    for a in derive(decoded):
        print(f"  {a.time:.3f} {a.kind.name} {[n.pitch_name for n in a.notes]}")

    sink = VirtualSink()
    clock = ManualClock()
    tr = Transport(sink, clock, volume=0.5)
    tr.load(decoded)
    clock.advance(2.0)
    print("events:")
    for e in sink.events:
        print(f"  {e}")


if __name__ == "__main__":
    main()
