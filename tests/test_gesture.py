from types import SimpleNamespace

import pytest

from flower_client.gesture import (
    GestureSample,
    count_extended_fingers,
    extract_gesture,
    first_hand,
    pinch_distance,
)


@pytest.mark.parametrize("dist", [0.0, 0.005, 0.01, 0.02])
def test_pinch_below_range_is_zero(hand, dist):
    assert pinch_distance(hand(pinch_dist=dist)) == 0.0


@pytest.mark.parametrize("dist", [0.18, 0.2, 0.3, 0.5])
def test_pinch_above_range_is_one(hand, dist):
    assert pinch_distance(hand(pinch_dist=dist)) == pytest.approx(1.0)


def test_pinch_midpoint(hand):
    assert pinch_distance(hand(pinch_dist=0.10)) == pytest.approx(0.5)


def test_pinch_uses_both_axes(hand):
    lm = hand(pinch_dist=0.0)
    lm[8].y = lm[4].y + 0.10
    assert pinch_distance(lm) == pytest.approx(0.5)


def test_no_fingers_extended(hand):
    assert count_extended_fingers(hand()) == 0


def test_two_fingers(hand):
    assert count_extended_fingers(hand(fingers=(0, 1))) == 2


def test_open_hand_counts_thumb(hand):
    assert count_extended_fingers(hand(fingers=(0, 1, 2, 3), thumb_open=True)) == 5


def test_thumb_alone(hand):
    assert count_extended_fingers(hand(thumb_open=True)) == 1


def test_no_hand_is_idle():
    assert extract_gesture(None) == GestureSample(0.0, 0)


def test_incomplete_landmarks_are_idle(hand):
    assert extract_gesture(hand()[:10]) == GestureSample.idle()


def test_extract_gesture(hand):
    sample = extract_gesture(hand(pinch_dist=0.18, fingers=(0, 1, 2)))
    assert sample.pinch == pytest.approx(1.0)
    assert sample.fingers == 3


def test_first_hand():
    lm = [SimpleNamespace(x=0.0, y=0.0)] * 21
    results = SimpleNamespace(multi_hand_landmarks=[SimpleNamespace(landmark=lm)])
    assert first_hand(results) is lm
    assert first_hand(SimpleNamespace(multi_hand_landmarks=None)) is None
    assert first_hand(None) is None
