"""
Flower rendering with OpenCV.

Every function draws onto a BGR numpy canvas in place. Apart from the
pixels, the only side effect is particle advancement in DISPERSE.
"""

import math
from typing import Iterable, Tuple

import cv2
import numpy as np

from .lifecycle import FlowerSession, Particle, Phase

BACKGROUND = 10
FONT = cv2.FONT_HERSHEY_SIMPLEX


def lerp(a: float, b: float, t: float) -> float:
    """Linear interpolation between a and b."""
    return a + (b - a) * t


def ease_out_cubic(x: float) -> float:
    return 1.0 - (1.0 - x) ** 3


def _pt(x: float, y: float) -> Tuple[int, int]:
    return int(round(x)), int(round(y))


def _center(canvas: np.ndarray) -> Tuple[float, float]:
    h, w = canvas.shape[:2]
    return w / 2.0, h / 2.0


def new_canvas(width: int, height: int) -> np.ndarray:
    """Blank background canvas."""
    return np.full((height, width, 3), BACKGROUND, dtype=np.uint8)


# ============================================================================
# Layers
# ============================================================================

def draw_molecular_nest(canvas: np.ndarray, theta: float) -> None:
    """Background layer: concentric rings of orbiting nodes with sparse links."""
    cx, cy = _center(canvas)
    nodes = canvas.copy()
    links = canvas.copy()

    for r in range(4):
        rad = 60 + r * 55
        n = 10 + r * 6
        shade = 180 - r * 25
        size = 4 + r * 1.2
        for i in range(n):
            a = theta * 0.4 + (i * 2 * math.pi) / n + r * 0.3
            x = cx + rad * math.cos(a)
            y = cy + rad * math.sin(a)
            cv2.circle(nodes, _pt(x, y), max(1, int(size / 2)), (220, shade, shade), -1, cv2.LINE_AA)

            if i % 3 == 0:
                a2 = a + 0.25 + 0.1 * math.sin(theta * 1.5 + r)
                x2 = cx + (rad + 25) * math.cos(a2)
                y2 = cy + (rad + 25) * math.sin(a2)
                cv2.line(links, _pt(x, y), _pt(x2, y2), (200, 130, 120), 1, cv2.LINE_AA)

    cv2.addWeighted(links, 70 / 255.0, canvas, 1 - 70 / 255.0, 0, dst=canvas)
    cv2.addWeighted(nodes, 150 / 255.0, canvas, 1 - 150 / 255.0, 0, dst=canvas)


def draw_seed(canvas: np.ndarray, pinch: float) -> None:
    cx, cy = _center(canvas)
    diameter = 20 + 40 * pinch
    cv2.circle(canvas, _pt(cx, cy), int(diameter / 2), (40, 200, 230), -1, cv2.LINE_AA)


def draw_growing_flower(canvas: np.ndarray, pinch: float, t: float) -> None:
    """Eight swaying petals whose radius grows with the pinch amount."""
    cx, cy = _center(canvas)
    petals = 8
    radius = lerp(30, 140, ease_out_cubic(pinch))
    for i in range(petals):
        a = (i * 2 * math.pi) / petals + 0.3 * math.sin(t * 1.5)
        px = cx + radius * math.cos(a)
        py = cy + radius * math.sin(a)
        green = int(np.clip(140 + 50 * math.sin(t + i), 0, 255))
        cv2.ellipse(canvas, _pt(px, py), (20, 45), 0, 0, 360, (180, green, 255), -1, cv2.LINE_AA)

    # core
    core = lerp(30, 55, pinch)
    cv2.circle(canvas, _pt(cx, cy), int(core / 2), (120, 220, 255), -1, cv2.LINE_AA)


def draw_bloom(canvas: np.ndarray, t: float) -> None:
    """Full bloom, pulsing with time."""
    draw_growing_flower(canvas, 1.0, t)


def draw_disperse(canvas: np.ndarray, particles: Iterable[Particle], t: float) -> int:
    """
    Advance and draw dispersal particles.

    Returns:
        Number of particles still visible
    """
    visible = 0
    for pa in particles:
        pa.advance()
        k = pa.opacity(t)
        if k > 0:
            alpha = 200 / 255.0 * k
            v = int(BACKGROUND + (255 - BACKGROUND) * alpha)
            cv2.circle(canvas, _pt(pa.x, pa.y), max(1, int((3 + 2 * k) / 2)), (v, v, v), -1, cv2.LINE_AA)
            visible += 1
    return visible


def draw_hud(canvas: np.ndarray, session: FlowerSession, status: str = "") -> None:
    text = f"pinch:{session.pinch_smooth:.2f}  fingers:{session.fingers}  phase:{int(session.phase)}"
    cv2.putText(canvas, text, (12, 20), FONT, 0.5, (255, 255, 255), 1, cv2.LINE_AA)
    if status:
        cv2.putText(canvas, status, (12, 40), FONT, 0.45, (160, 160, 160), 1, cv2.LINE_AA)


# ============================================================================
# Frame
# ============================================================================

def render_frame(
    canvas: np.ndarray,
    session: FlowerSession,
    hud: bool = True,
    status: str = "",
) -> np.ndarray:
    """
    Draw one frame of the session onto canvas.

    Args:
        canvas: BGR image, overwritten
        session: Flower state to draw
        hud: Draw the debug line
        status: Extra HUD line (e.g. bridge connection state)

    Returns:
        The canvas
    """
    canvas[:] = BACKGROUND
    draw_molecular_nest(canvas, session.frame_count * 0.002)

    phase = session.phase
    if phase == Phase.SEED:
        draw_seed(canvas, session.pinch_smooth)
    elif phase == Phase.GROW:
        draw_growing_flower(canvas, session.pinch_smooth, session.phase_time)
    elif phase == Phase.BLOOM:
        draw_bloom(canvas, session.phase_time)
    elif phase == Phase.DISPERSE:
        draw_disperse(canvas, session.particles, session.phase_time)

    if hud:
        draw_hud(canvas, session, status)
    return canvas
