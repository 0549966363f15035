import unittest

import mido

from pianola.sinks import MidoSink, VirtualSink, VolumeScaledSink, clamp_volume, open_mido_output


class FakePort:
    def __init__(self):
        self.sent = []

    def send(self, msg):
        self.sent.append(msg)


class TestMidoSink(unittest.TestCase):
    def test_keys_and_pedal(self):
        port = FakePort()
        sink = MidoSink(port, channel=2)
        sink.press_key("C4", 60, 0.5)
        sink.release_key("C4", 60)
        sink.press_pedal()
        sink.release_pedal()
        self.assertEqual(port.sent[0], mido.Message("note_on", note=60, velocity=64, channel=2))
        self.assertEqual(port.sent[1], mido.Message("note_off", note=60, velocity=0, channel=2))
        self.assertEqual(port.sent[2], mido.Message("control_change", control=64, value=127, channel=2))
        self.assertEqual(port.sent[3], mido.Message("control_change", control=64, value=0, channel=2))

    def test_velocity_clamped(self):
        port = FakePort()
        sink = MidoSink(port)
        sink.press_key("C4", 60, 1.7)
        sink.press_key("C4", 60, -0.2)
        self.assertEqual([m.velocity for m in port.sent], [127, 0])

    def test_panic(self):
        port = FakePort()
        MidoSink(port).panic()
        self.assertEqual([(m.control, m.value) for m in port.sent], [(64, 0), (120, 0), (123, 0)])


class TestVolumeScaledSink(unittest.TestCase):
    def test_scales_presses_only(self):
        inner = VirtualSink()
        s = VolumeScaledSink(inner, 0.5)
        s.press_key("A4", 69, 0.5)
        s.release_key("A4", 69)
        s.press_pedal()
        s.release_pedal()
        s.panic()
        self.assertEqual(inner.events[0], ("press", "A4", 69, 0.25))
        self.assertEqual([e[0] for e in inner.events], ["press", "release", "pedal_down", "pedal_up", "panic"])

    def test_clamp(self):
        self.assertEqual(clamp_volume(1.5), 1.0)
        self.assertEqual(clamp_volume(-0.1), 0.0)
        self.assertEqual(clamp_volume(0.3), 0.3)
        self.assertEqual(VolumeScaledSink(VirtualSink(), 4).volume, 1.0)


class TestOpenOutput(unittest.TestCase):
    def test_falls_back_to_dummy_when_listing_fails(self):
        orig = mido.get_output_names

        def boom():
            raise OSError("no MIDI stack")

        mido.get_output_names = boom
        try:
            out = open_mido_output(None)
        finally:
            mido.get_output_names = orig
        out.send(mido.Message("note_on", note=60))

    def test_falls_back_to_dummy_when_filter_misses(self):
        orig = mido.get_output_names
        mido.get_output_names = lambda: ["Some Synth"]
        try:
            out = open_mido_output("Piano")
        finally:
            mido.get_output_names = orig
        self.assertEqual(type(out).__name__, "_DummyOut")
        out.send(mido.Message("note_off", note=60))


if __name__ == "__main__":
    unittest.main()
