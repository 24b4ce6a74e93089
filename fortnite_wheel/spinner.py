"""Spin orchestration: settings, winner, frames, encoding.

One call to :meth:`WheelSpinner.generate_spin` owns everything it creates
(segments, renderer, frames); nothing is shared between spins, so several
spins may run side by side in worker threads.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from PIL import Image

from .encoder import (
    DEFAULT_TIERS,
    DISCORD_UPLOAD_LIMIT,
    RenderSettings,
    RenderTier,
    SizeBudgetedEncoder,
    select_render_settings,
)
from .entries import (
    ParticipantSource,
    WeightedSegment,
    as_participant_list,
    build_segments,
    find_segment,
    select_winner,
)
from .errors import GenerationTimedOut, NoParticipantsError, RenderFrameError, WheelError
from .models import Participant
from .palette import FixedPalette
from .renderer import FrameRenderer
from .rotation import (
    DEFAULT_MAX_TURNS,
    DEFAULT_MIN_TURNS,
    TAU,
    AnimationPhase,
    RotationScheduler,
    compute_target_angle,
)

log = logging.getLogger(__name__)

PREVIEW_MIN_FRAMES = 60
PREVIEW_MAX_FRAMES = 80


class SpinState(enum.Enum):
    IDLE = "idle"
    SETTINGS_CHOSEN = "settings_chosen"
    WINNER_DRAWN = "winner_drawn"
    FRAMES_RENDERED = "frames_rendered"
    ENCODED = "encoded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Winner:
    participant: Participant
    target_angle: float

    @property
    def user_id(self) -> str:
        return self.participant.user_id

    @property
    def display_name(self) -> str:
        return self.participant.display_name


@dataclass(slots=True)
class SpinOutcome:
    """Result of one spin; ``image`` is ``None`` only for failed spins."""
    winner: Optional[Winner] = None
    image: Optional[bytes] = None
    image_format: Optional[str] = None
    settings: Optional[RenderSettings] = None
    frames_rendered: int = 0
    frames_dropped: int = 0
    state: SpinState = SpinState.IDLE

    @property
    def byte_length(self) -> int:
        return len(self.image) if self.image else 0

    @property
    def filename(self) -> str:
        return f"wheel_spin.{self.image_format or 'bin'}"

    def require_winner(self) -> Winner:
        if self.winner is None:
            raise WheelError("This spin has no winner.")
        return self.winner

    def advance(self, state: SpinState) -> None:
        log.debug("Spin state %s -> %s", self.state.value, state.value)
        self.state = state


class WheelSpinner:
    """Turns a participant snapshot into a winner and a wheel image."""

    def __init__(
        self,
        encoder: Optional[SizeBudgetedEncoder] = None,
        *,
        rng: Optional[random.Random] = None,
        tiers: Sequence[RenderTier] = DEFAULT_TIERS,
        min_turns: int = DEFAULT_MIN_TURNS,
        max_turns: int = DEFAULT_MAX_TURNS,
        font_path: Optional[str] = None,
    ) -> None:
        self.encoder = encoder or SizeBudgetedEncoder(DISCORD_UPLOAD_LIMIT)
        self.rng = rng or random.Random()
        self.tiers = tuple(tiers)
        self.min_turns = min_turns
        self.max_turns = max_turns
        self.font_path = font_path

    @classmethod
    def from_config(cls, wheel_config, *, rng: Optional[random.Random] = None) -> "WheelSpinner":
        return cls(
            SizeBudgetedEncoder(wheel_config.max_bytes),
            rng=rng,
            min_turns=wheel_config.min_turns,
            max_turns=wheel_config.max_turns,
            font_path=wheel_config.font_path,
        )

    # --- shared setup ---------------------------------------------------

    def _prepare(
        self, ordered: List[Participant], quality: Optional[str], outcome: SpinOutcome
    ) -> Tuple[RenderSettings, FixedPalette, List[WeightedSegment]]:
        settings = select_render_settings(
            len(ordered), quality=quality, tiers=self.tiers, font_path=self.font_path
        )
        outcome.settings = settings
        outcome.advance(SpinState.SETTINGS_CHOSEN)
        palette = FixedPalette.build(settings.segment_colors)
        return settings, palette, build_segments(ordered, palette)

    def _draw_winner(
        self, ordered: List[Participant], segments: Sequence[WeightedSegment]
    ) -> Winner:
        participant = select_winner(ordered, self.rng)
        segment = find_segment(segments, participant.user_id)
        if segment is None or segment.angular_width <= 0:
            # Uniform fallback over a wheel without entries; nothing to aim at.
            return Winner(participant=participant, target_angle=0.0)
        target = compute_target_angle(
            segment.midpoint, self.rng, min_turns=self.min_turns, max_turns=self.max_turns
        )
        return Winner(participant=participant, target_angle=target)

    # --- public entry points --------------------------------------------

    def generate_spin(
        self,
        participants: ParticipantSource,
        giveaway_name: str,
        *,
        skip_animation: bool = False,
        quality: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> SpinOutcome:
        """Draw a winner and render the full animated spin as a GIF."""
        ordered = as_participant_list(participants)
        if not ordered:
            raise NoParticipantsError()
        if skip_animation:
            return self.instant_result(ordered, giveaway_name, quality=quality)

        started = time.monotonic()
        outcome = SpinOutcome()
        settings, palette, segments = self._prepare(ordered, quality, outcome)
        winner = self._draw_winner(ordered, segments)
        outcome.winner = winner
        outcome.advance(SpinState.WINNER_DRAWN)
        if not segments:
            log.warning(
                "Giveaway %r has no entries; returning a static result instead of an animation.",
                giveaway_name,
            )
            return self._static_outcome(outcome, settings, palette, segments, giveaway_name)

        scheduler = RotationScheduler(
            settings.phases, winner.target_angle, celebrate_speed=settings.celebrate_speed
        )
        renderer = FrameRenderer(settings, palette, giveaway_name)
        frames: List[Image.Image] = []
        for index in range(scheduler.frame_count):
            if cancel is not None and cancel.is_set():
                outcome.advance(SpinState.FAILED)
                raise GenerationTimedOut(time.monotonic() - started)
            phase, local = scheduler.phase_for_frame(index)
            try:
                frames.append(
                    renderer.render(
                        segments,
                        scheduler.rotation_angle(index),
                        highlight=winner.participant if phase.highlights_winner else None,
                        phase=phase,
                        phase_index=local,
                    )
                )
            except (OSError, ValueError, TypeError) as exc:
                # A cosmetic frame is dropped; the rest of the animation stands.
                outcome.frames_dropped += 1
                error = RenderFrameError(f"frame {index} ({phase.value}): {exc}", frame_index=index)
                log.warning("Dropping frame: %s", error, exc_info=exc)

        outcome.frames_rendered = len(frames)
        if not frames:
            outcome.advance(SpinState.FAILED)
            raise RenderFrameError("Every frame failed to render; no animation produced.")
        outcome.advance(SpinState.FRAMES_RENDERED)

        try:
            outcome.image = self.encoder.encode(frames, settings)
        except Exception:
            outcome.advance(SpinState.FAILED)
            raise
        outcome.image_format = "gif"
        outcome.advance(SpinState.ENCODED)
        log.info(
            "Spin for %r: winner %s (%s) in %.2fs, %d frame(s), %d dropped.",
            giveaway_name,
            winner.display_name,
            winner.user_id,
            time.monotonic() - started,
            outcome.frames_rendered,
            outcome.frames_dropped,
        )
        return outcome

    def instant_result(
        self,
        participants: ParticipantSource,
        giveaway_name: str,
        *,
        quality: Optional[str] = None,
    ) -> SpinOutcome:
        """Pick a winner and render a single PNG of the wheel at rest."""
        ordered = as_participant_list(participants)
        if not ordered:
            raise NoParticipantsError()
        outcome = SpinOutcome()
        settings, palette, segments = self._prepare(ordered, quality, outcome)
        outcome.winner = self._draw_winner(ordered, segments)
        outcome.advance(SpinState.WINNER_DRAWN)
        return self._static_outcome(outcome, settings, palette, segments, giveaway_name)

    def _static_outcome(
        self,
        outcome: SpinOutcome,
        settings: RenderSettings,
        palette: FixedPalette,
        segments: Sequence[WeightedSegment],
        giveaway_name: str,
    ) -> SpinOutcome:
        winner = outcome.require_winner()
        renderer = FrameRenderer(settings, palette, giveaway_name)
        frame = renderer.render(
            segments,
            winner.target_angle % TAU,
            highlight=winner.participant,
            phase=AnimationPhase.WINNER_HOLD,
        )
        outcome.frames_rendered = 1
        outcome.advance(SpinState.FRAMES_RENDERED)
        outcome.image = renderer.to_png(frame)
        outcome.image_format = "png"
        outcome.advance(SpinState.ENCODED)
        log.info(
            "Instant result for %r: winner %s (%s).",
            giveaway_name,
            winner.display_name,
            winner.user_id,
        )
        return outcome

    def render_preview(
        self,
        participants: ParticipantSource,
        giveaway_name: str,
        *,
        quality: Optional[str] = None,
    ) -> SpinOutcome:
        """Slow looping wheel with no winner, for showing the current odds."""
        ordered = as_participant_list(participants)
        outcome = SpinOutcome()
        settings, palette, segments = self._prepare(ordered, quality, outcome)
        # Previews turn slowly, so fewer frames at a longer delay.
        settings = dataclasses.replace(settings, frame_delay=max(80, settings.frame_delay + 40))
        outcome.settings = settings
        renderer = FrameRenderer(settings, palette, giveaway_name)

        if not segments:
            frames = [renderer.render_empty()]
        else:
            count = min(PREVIEW_MAX_FRAMES, max(PREVIEW_MIN_FRAMES, len(ordered) * 2))
            frames = [renderer.render(segments, TAU * i / count) for i in range(count)]
        outcome.frames_rendered = len(frames)
        outcome.advance(SpinState.FRAMES_RENDERED)
        outcome.image = self.encoder.encode(frames, settings)
        outcome.image_format = "gif"
        outcome.advance(SpinState.ENCODED)
        return outcome


async def spin_with_timeout(
    spinner: WheelSpinner,
    participants: ParticipantSource,
    giveaway_name: str,
    *,
    timeout: float,
    skip_animation: bool = False,
    quality: Optional[str] = None,
) -> SpinOutcome:
    """Run a spin in a worker thread and give up after ``timeout`` seconds.

    On timeout the worker is told to stop at its next frame and whatever it
    produced is discarded.
    """
    cancel = threading.Event()
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(
                spinner.generate_spin,
                participants,
                giveaway_name,
                skip_animation=skip_animation,
                quality=quality,
                cancel=cancel,
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        cancel.set()
        log.warning("Wheel generation for %r timed out after %.1fs.", giveaway_name, timeout)
        raise GenerationTimedOut(timeout) from exc
