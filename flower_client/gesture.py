"""
Gesture extraction from MediaPipe hand landmarks.

Reduces a single hand's 21 landmarks to a pinch amount and an
extended-finger count. No temporal filtering happens here.
"""

import math
from dataclasses import dataclass
from typing import Any, Optional, Sequence

# ============================================================================
# MediaPipe Landmark Indices
# ============================================================================

WRIST = 0
THUMB_CMC, THUMB_MCP, THUMB_IP, THUMB_TIP = 1, 2, 3, 4
INDEX_MCP, INDEX_PIP, INDEX_DIP, INDEX_TIP = 5, 6, 7, 8
MIDDLE_MCP, MIDDLE_PIP, MIDDLE_DIP, MIDDLE_TIP = 9, 10, 11, 12
RING_MCP, RING_PIP, RING_DIP, RING_TIP = 13, 14, 15, 16
PINKY_MCP, PINKY_PIP, PINKY_DIP, PINKY_TIP = 17, 18, 19, 20

NUM_LANDMARKS = 21

# (tip, pip) pairs of the four non-thumb fingers
FINGER_TIPS_PIPS = (
    (INDEX_TIP, INDEX_PIP),
    (MIDDLE_TIP, MIDDLE_PIP),
    (RING_TIP, RING_PIP),
    (PINKY_TIP, PINKY_PIP),
)

# Typical raw thumb-index distance range in normalized image coordinates
PINCH_MIN_DIST = 0.02
PINCH_MAX_DIST = 0.18

THUMB_OPEN_DX = 0.05


# ============================================================================
# Utility Functions
# ============================================================================

def clamp(v: float, lo: float, hi: float) -> float:
    """Clamp value between lo and hi."""
    return max(lo, min(hi, v))


def remap(x: float, a0: float, a1: float, b0: float, b1: float) -> float:
    """Linearly remap x from [a0, a1] to [b0, b1] (no clamping)."""
    return b0 + (x - a0) * (b1 - b0) / (a1 - a0)


# ============================================================================
# Gesture Sample
# ============================================================================

@dataclass(frozen=True)
class GestureSample:
    """
    Per-frame gesture signals.

    Attributes:
        pinch: Thumb-index distance remapped to 0..1
        fingers: Number of extended fingers, 0..5
    """
    pinch: float = 0.0
    fingers: int = 0

    @classmethod
    def idle(cls) -> 'GestureSample':
        """Sample used when no hand is detected."""
        return cls(0.0, 0)


# ============================================================================
# Hand Geometry Functions
# ============================================================================

def pinch_distance(lm: Sequence[Any]) -> float:
    """
    Normalized pinch amount from thumb tip to index tip.

    The raw distance is remapped from [0.02, 0.18] to [0, 1] and clamped.
    """
    thumb = lm[THUMB_TIP]
    index = lm[INDEX_TIP]
    d = math.hypot(thumb.x - index.x, thumb.y - index.y)
    return clamp(remap(d, PINCH_MIN_DIST, PINCH_MAX_DIST, 0.0, 1.0), 0.0, 1.0)


def count_extended_fingers(lm: Sequence[Any]) -> int:
    """
    Count extended fingers assuming an upright hand.

    A finger is extended when its tip is above (smaller y than) its PIP
    joint. The thumb is extended when its tip is horizontally far from
    the thumb MCP.
    """
    count = sum(1 for tip, pip in FINGER_TIPS_PIPS if lm[tip].y < lm[pip].y)
    if abs(lm[THUMB_TIP].x - lm[THUMB_MCP].x) > THUMB_OPEN_DX:
        count += 1
    return int(clamp(count, 0, 5))


def extract_gesture(lm: Optional[Sequence[Any]]) -> GestureSample:
    """
    Reduce a landmark set to a GestureSample.

    No hand, or an incomplete landmark set, yields the idle sample.
    """
    if lm is None or len(lm) < NUM_LANDMARKS:
        return GestureSample.idle()
    return GestureSample(
        pinch=pinch_distance(lm),
        fingers=count_extended_fingers(lm),
    )


# ============================================================================
# Hand Detection Helper
# ============================================================================

def first_hand(results) -> Optional[Sequence[Any]]:
    """
    Extract the first hand's landmark list from MediaPipe results.

    Args:
        results: MediaPipe hands processing results

    Returns:
        The landmark list, or None if no hand was detected
    """
    if results is None:
        return None
    hands = getattr(results, "multi_hand_landmarks", None)
    if not hands:
        return None
    return hands[0].landmark
