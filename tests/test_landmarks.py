from flower_client.gesture import GestureSample
from flower_client.landmarks import LandmarkSource, MediaPipeGate
from flower_client.latest import LatestValue


class FlakyHands:
    def __init__(self, fail):
        self.fail = fail

    def process(self, frame):
        if self.fail:
            raise RuntimeError("graph error")
        return "results"


def test_gate_reports_problematic_stream():
    gate = MediaPipeGate(max_consecutive_failures=3)
    hands = FlakyHands(fail=True)

    for _ in range(2):
        assert gate.process(hands, None) == (False, None)
    assert not gate.is_stream_problematic()

    gate.process(hands, None)
    assert gate.is_stream_problematic()

    hands.fail = False
    assert gate.process(hands, None) == (True, "results")
    assert not gate.is_stream_problematic()

    stats = gate.get_stats()
    assert stats["failures"] == 3
    assert stats["successes"] == 1
    assert stats["consecutive_failures"] == 0


def test_source_stats_without_camera():
    cell = LatestValue(GestureSample.idle())
    source = LandmarkSource(cell)
    source.gate.max_consecutive_failures = 1
    source.gate.process(FlakyHands(fail=True), None)

    stats = source.get_stats()
    assert stats["running"] is False
    assert stats["samples"] == 0
    assert stats["stream_problematic"] is True
    assert stats["mediapipe"]["failures"] == 1
