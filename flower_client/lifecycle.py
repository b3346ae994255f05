"""
Flower Lifecycle - gesture-driven phase state machine.

SEED -> GROW -> BLOOM -> DISPERSE -> SEED, driven by the smoothed pinch
amount, the extended-finger count and the time spent in the current
phase. All mutable state lives on a FlowerSession so that several
independent visuals can run side by side.
"""

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional

import numpy as np

from .gesture import GestureSample
from .message import OscEvent, transition_events

logger = logging.getLogger(__name__)


class Phase(IntEnum):
    """Lifecycle phase; the value is the id sent on /viz/phase."""
    SEED = 0
    GROW = 1
    BLOOM = 2
    DISPERSE = 3


@dataclass
class LifecycleConfig:
    """Thresholds of the phase state machine."""
    pinch_alpha: float = 0.25       # EMA factor for the pinch amount
    grow_pinch: float = 0.15        # SEED -> GROW when smoothed pinch rises above
    release_pinch: float = 0.12     # GROW -> BLOOM when smoothed pinch falls below
    bloom_fingers: int = 2          # GROW -> BLOOM on this many extended fingers
    disperse_fingers: int = 5       # BLOOM -> DISPERSE on this many extended fingers
    disperse_seconds: float = 2.0   # DISPERSE -> SEED after this long
    particle_count: int = 180
    particle_life: tuple = (1.2, 2.0)
    particle_speed: float = 2.0     # per-axis velocity range is [-speed, speed]


# ============================================================================
# Particles
# ============================================================================

@dataclass
class Particle:
    """A dispersal particle (canvas pixels, pixels per frame, seconds)."""
    x: float
    y: float
    vx: float
    vy: float
    life: float

    def advance(self) -> None:
        self.x += self.vx
        self.y += self.vy

    def opacity(self, t: float) -> float:
        """Opacity after t seconds in DISPERSE."""
        return max(0.0, 1.0 - t / self.life)


def make_particles(
    n: int,
    origin: tuple,
    rng: np.random.Generator,
    life: tuple = (1.2, 2.0),
    speed: float = 2.0,
) -> List[Particle]:
    """Spawn a batch of n particles at origin with random velocity and life."""
    ox, oy = origin
    vel = rng.uniform(-speed, speed, size=(n, 2))
    lives = rng.uniform(life[0], life[1], size=n)
    return [
        Particle(float(ox), float(oy), float(vx), float(vy), float(lf))
        for (vx, vy), lf in zip(vel, lives)
    ]


# ============================================================================
# Transitions
# ============================================================================

@dataclass
class PhaseTransition:
    """One phase change and the OSC events it emits."""
    previous: Phase
    current: Phase
    pinch: float
    fingers: int
    events: List[OscEvent] = field(default_factory=list)


class FlowerSession:
    """
    State of one flower visual.

    Manages:
    - Smoothed pinch (EMA) and latest finger count
    - Current phase, phase timer and has-grown flag
    - The particle batch while in DISPERSE
    """

    def __init__(
        self,
        config: Optional[LifecycleConfig] = None,
        origin: tuple = (0.0, 0.0),
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize session.

        Args:
            config: State machine thresholds
            origin: Canvas point particles are spawned from
            rng: Random source for particles
        """
        self.config = config or LifecycleConfig()
        self.origin = origin
        self.rng = rng if rng is not None else np.random.default_rng()
        self.reset()

    def reset(self) -> None:
        """Return to SEED with all state cleared."""
        self.phase = Phase.SEED
        self.phase_time = 0.0
        self.has_grown = False
        self.pinch_smooth = 0.0
        self.fingers = 0
        self.particles: List[Particle] = []
        self.frame_count = 0
        self.elapsed = 0.0

    def update(self, sample: GestureSample, dt: float) -> Optional[PhaseTransition]:
        """
        Advance one frame.

        Updates the smoothed pinch and the phase timer, then evaluates
        the transition out of the current phase. At most one transition
        fires per frame.

        Args:
            sample: Latest gesture sample
            dt: Frame delta time in seconds

        Returns:
            The transition that fired, or None
        """
        cfg = self.config
        self.pinch_smooth += (sample.pinch - self.pinch_smooth) * cfg.pinch_alpha
        self.fingers = sample.fingers
        self.phase_time += dt
        self.elapsed += dt
        self.frame_count += 1

        target = self._next_phase()
        if target is None:
            return None
        return self._goto(target)

    def _next_phase(self) -> Optional[Phase]:
        cfg = self.config
        if self.phase == Phase.SEED:
            if self.pinch_smooth > cfg.grow_pinch:
                return Phase.GROW
        elif self.phase == Phase.GROW:
            released = self.has_grown and self.pinch_smooth < cfg.release_pinch
            if released or self.fingers >= cfg.bloom_fingers:
                return Phase.BLOOM
        elif self.phase == Phase.BLOOM:
            if self.fingers >= cfg.disperse_fingers:
                return Phase.DISPERSE
        elif self.phase == Phase.DISPERSE:
            if self.phase_time > cfg.disperse_seconds:
                return Phase.SEED
        return None

    def _goto(self, phase: Phase) -> PhaseTransition:
        previous = self.phase
        self.phase = phase
        self.phase_time = 0.0

        if phase == Phase.GROW:
            self.has_grown = True
        elif phase == Phase.SEED:
            self.has_grown = False

        if phase == Phase.DISPERSE:
            cfg = self.config
            self.particles = make_particles(
                cfg.particle_count,
                self.origin,
                self.rng,
                life=cfg.particle_life,
                speed=cfg.particle_speed,
            )
        else:
            self.particles = []

        logger.info(
            f"Phase {previous.name} -> {phase.name} "
            f"(pinch={self.pinch_smooth:.2f}, fingers={self.fingers})"
        )
        return PhaseTransition(
            previous=previous,
            current=phase,
            pinch=self.pinch_smooth,
            fingers=self.fingers,
            events=transition_events(self.pinch_smooth, self.fingers, int(phase)),
        )
