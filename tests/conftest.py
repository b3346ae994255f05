from types import SimpleNamespace

import pytest

from flower_client.gesture import (
    FINGER_TIPS_PIPS,
    INDEX_TIP,
    NUM_LANDMARKS,
    THUMB_MCP,
    THUMB_TIP,
)


def make_hand(pinch_dist=0.10, fingers=(), thumb_open=False):
    """
    Build 21 upright-hand landmarks.

    Args:
        pinch_dist: Horizontal thumb tip to index tip distance
        fingers: Indices 0..3 (index..pinky) of extended fingers
        thumb_open: Put the thumb tip far from the thumb MCP
    """
    lm = [SimpleNamespace(x=0.5, y=0.6, z=0.0) for _ in range(NUM_LANDMARKS)]

    for i, (tip, pip) in enumerate(FINGER_TIPS_PIPS):
        lm[tip].y = 0.3
        lm[pip].y = 0.5 if i in fingers else 0.2

    lm[THUMB_TIP].x = 0.4
    lm[THUMB_TIP].y = 0.3
    lm[THUMB_MCP].x = 0.3 if thumb_open else 0.4
    lm[INDEX_TIP].x = 0.4 + pinch_dist
    return lm


@pytest.fixture
def hand():
    return make_hand
