"""Angular schedule for the five phases of a wheel spin.

Angles are radians measured clockwise from 3 o'clock, the same convention
Pillow uses for ``pieslice``. The pointer is fixed at 12 o'clock.
"""

from __future__ import annotations

import enum
import math
import random
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

TAU = 2 * math.pi
POINTER_ANGLE = 3 * math.pi / 2

DEFAULT_MIN_TURNS = 6
DEFAULT_MAX_TURNS = 10
DEFAULT_CELEBRATE_SPEED = 0.02
# Peak-speed fraction used for the high-speed wobble.
WOBBLE_AMPLITUDE = 0.04


class AnimationPhase(enum.Enum):
    ACCELERATE = "accelerate"
    HIGH_SPEED_SPIN = "high_speed_spin"
    DECELERATE = "decelerate"
    WINNER_HOLD = "winner_hold"
    CELEBRATE = "celebrate"

    @property
    def highlights_winner(self) -> bool:
        return self in (AnimationPhase.WINNER_HOLD, AnimationPhase.CELEBRATE)


@dataclass(frozen=True, slots=True)
class PhaseFrames:
    accelerate: int = 25
    high_speed_spin: int = 75
    decelerate: int = 50
    winner_hold: int = 10
    celebrate: int = 40

    def __post_init__(self) -> None:
        for phase, count in self.items():
            if count < 0:
                raise ValueError(f"{phase.value} frame count must not be negative")
        if self.decelerate < 1:
            raise ValueError("decelerate needs at least one frame to land on the target")

    def items(self) -> Iterator[Tuple[AnimationPhase, int]]:
        yield AnimationPhase.ACCELERATE, self.accelerate
        yield AnimationPhase.HIGH_SPEED_SPIN, self.high_speed_spin
        yield AnimationPhase.DECELERATE, self.decelerate
        yield AnimationPhase.WINNER_HOLD, self.winner_hold
        yield AnimationPhase.CELEBRATE, self.celebrate

    @property
    def total(self) -> int:
        return sum(count for _, count in self.items())


def normalize_angle(angle: float) -> float:
    return angle % TAU


def ease_in_cubic(t: float) -> float:
    return t * t * t


def ease_out_cubic(t: float) -> float:
    return 1 - (1 - t) ** 3


def compute_target_angle(
    midpoint: float,
    rng: Optional[random.Random] = None,
    *,
    min_turns: int = DEFAULT_MIN_TURNS,
    max_turns: int = DEFAULT_MAX_TURNS,
) -> float:
    """Total rotation that parks ``midpoint`` under the pointer after some full turns."""
    if min_turns < 1 or max_turns < min_turns:
        raise ValueError("turn range must satisfy 1 <= min_turns <= max_turns")
    rng = rng if rng is not None else random.Random()
    align = normalize_angle(POINTER_ANGLE - midpoint)
    return align + rng.randint(min_turns, max_turns) * TAU


class RotationScheduler:
    """Maps a frame index to the wheel's cumulative rotation."""

    def __init__(
        self,
        phases: PhaseFrames,
        target_angle: float,
        *,
        celebrate_speed: float = DEFAULT_CELEBRATE_SPEED,
    ) -> None:
        if target_angle <= 0:
            raise ValueError("target_angle must be positive")
        self.phases = phases
        self.target_angle = target_angle
        self.celebrate_speed = celebrate_speed

        accel = phases.accelerate
        spin = phases.high_speed_spin
        # Decelerate's last frame sits exactly at t == 1.
        self._decel_span = max(phases.decelerate - 1, 1)

        # Ease-in covers v*A/4, the steady spin v*S and the ease-out v*(D-1)/3.
        # Choosing v this way makes the velocity continuous at every boundary.
        distance_units = accel / 4 + spin + self._decel_span / 3
        self.peak_speed = target_angle / distance_units
        self._accel_end = self.peak_speed * accel / 4
        self._spin_end = self._accel_end + self.peak_speed * spin

    @property
    def frame_count(self) -> int:
        return self.phases.total

    @property
    def last_decelerate_frame(self) -> int:
        return self.phases.accelerate + self.phases.high_speed_spin + self.phases.decelerate - 1

    def phase_for_frame(self, frame_index: int) -> Tuple[AnimationPhase, int]:
        if frame_index < 0 or frame_index >= self.frame_count:
            raise ValueError(
                f"frame {frame_index} is outside the animation (0..{self.frame_count - 1})"
            )
        remaining = frame_index
        for phase, count in self.phases.items():
            if remaining < count:
                return phase, remaining
            remaining -= count
        raise AssertionError("phase table is exhaustive")

    def phase_progress(self, frame_index: int) -> float:
        phase, local = self.phase_for_frame(frame_index)
        count = dict(self.phases.items())[phase]
        return local / max(count - 1, 1)

    def rotation_angle(self, frame_index: int) -> float:
        phase, local = self.phase_for_frame(frame_index)

        if phase is AnimationPhase.ACCELERATE:
            t = local / self.phases.accelerate
            return self.peak_speed * self.phases.accelerate * (t ** 4) / 4

        if phase is AnimationPhase.HIGH_SPEED_SPIN:
            span = self.phases.high_speed_spin
            wobble = (
                WOBBLE_AMPLITUDE
                * self.peak_speed
                * span
                / (2 * math.pi)
                * math.sin(math.pi * local / span) ** 2
            )
            return self._accel_end + self.peak_speed * local + wobble

        if phase is AnimationPhase.DECELERATE:
            if self.phases.decelerate == 1:
                return self.target_angle
            t = min(local / self._decel_span, 1.0)
            return self._spin_end + (self.target_angle - self._spin_end) * ease_out_cubic(t)

        if phase is AnimationPhase.WINNER_HOLD:
            return self.target_angle

        return self.target_angle + self.celebrate_speed * (local + 1)

    def angles(self) -> Iterator[float]:
        for frame_index in range(self.frame_count):
            yield self.rotation_angle(frame_index)
