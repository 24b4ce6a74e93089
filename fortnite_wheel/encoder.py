"""Render settings selection and the size-bounded GIF encoder.

The true size of an animation is only known once every frame is encoded, so
size control happens up front: the participant count selects a tier (canvas,
frame counts, colour count) that is known to stay well inside the upload
limit. After encoding the measured size is checked once more and an
oversized result is rejected rather than retried.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from PIL import Image

from .errors import PayloadTooLargeError, RenderFrameError
from .rotation import DEFAULT_CELEBRATE_SPEED, PhaseFrames

log = logging.getLogger(__name__)

DISCORD_UPLOAD_LIMIT = 10 * 1024 * 1024


@dataclass(frozen=True, slots=True)
class RenderTier:
    tier: int
    max_participants: Optional[int]
    canvas_size: int
    frame_delay: int
    phases: PhaseFrames
    segment_colors: int
    entry_label_limit: int
    particle_count: int


DEFAULT_TIERS: Tuple[RenderTier, ...] = (
    RenderTier(
        tier=1,
        max_participants=15,
        canvas_size=500,
        frame_delay=40,
        phases=PhaseFrames(25, 75, 50, 10, 40),
        segment_colors=25,
        entry_label_limit=15,
        particle_count=24,
    ),
    RenderTier(
        tier=2,
        max_participants=30,
        canvas_size=450,
        frame_delay=50,
        phases=PhaseFrames(20, 60, 45, 10, 30),
        segment_colors=16,
        entry_label_limit=25,
        particle_count=18,
    ),
    RenderTier(
        tier=3,
        max_participants=None,
        canvas_size=400,
        frame_delay=60,
        phases=PhaseFrames(15, 45, 40, 8, 24),
        segment_colors=12,
        entry_label_limit=0,
        particle_count=12,
    ),
)

QUALITY_PRESETS: Dict[str, int] = {"high": 1, "balanced": 2, "compact": 3}


@dataclass(frozen=True, slots=True)
class RenderSettings:
    """Everything the renderer needs, fixed for the whole spin."""
    tier: int
    canvas_size: int
    wheel_radius: int
    hub_radius: int
    frame_delay: int
    segment_colors: int
    phases: PhaseFrames
    show_entry_counts: bool
    particle_count: int
    min_font_size: int = 10
    text_outline_width: int = 2
    celebrate_speed: float = DEFAULT_CELEBRATE_SPEED
    font_path: Optional[str] = None

    @property
    def center(self) -> Tuple[int, int]:
        return self.canvas_size // 2, self.canvas_size // 2

    @property
    def frame_count(self) -> int:
        return self.phases.total

    @property
    def base_font_size(self) -> int:
        return max(self.min_font_size + 2, round(self.canvas_size / 24))


def tier_for(
    participant_count: int,
    *,
    quality: Optional[str] = None,
    tiers: Sequence[RenderTier] = DEFAULT_TIERS,
) -> RenderTier:
    if quality is not None:
        try:
            wanted = QUALITY_PRESETS[quality.lower()]
        except KeyError as exc:
            raise ValueError(
                f"Unknown quality {quality!r}; expected one of {', '.join(QUALITY_PRESETS)}."
            ) from exc
        for tier in tiers:
            if tier.tier == wanted:
                return tier
    for tier in tiers:
        if tier.max_participants is None or participant_count <= tier.max_participants:
            return tier
    return tiers[-1]


def select_render_settings(
    participant_count: int,
    *,
    quality: Optional[str] = None,
    tiers: Sequence[RenderTier] = DEFAULT_TIERS,
    font_path: Optional[str] = None,
) -> RenderSettings:
    """Pick the render settings for a spin before any frame is drawn."""
    tier = tier_for(participant_count, quality=quality, tiers=tiers)
    canvas = tier.canvas_size
    wheel_radius = int(min(220, canvas * 0.46 - 10))
    hub_radius = int(max(45, min(wheel_radius * 0.30, 65)))
    settings = RenderSettings(
        tier=tier.tier,
        canvas_size=canvas,
        wheel_radius=wheel_radius,
        hub_radius=hub_radius,
        frame_delay=tier.frame_delay,
        segment_colors=tier.segment_colors,
        phases=tier.phases,
        show_entry_counts=participant_count <= tier.entry_label_limit,
        particle_count=tier.particle_count,
        font_path=font_path,
    )
    log.debug(
        "Selected tier %d for %d participant(s): %dpx, %d frames, %dms delay.",
        settings.tier,
        participant_count,
        settings.canvas_size,
        settings.frame_count,
        settings.frame_delay,
    )
    return settings


class SizeBudgetedEncoder:
    """Encodes palette frames into a looping GIF under a hard byte ceiling."""

    def __init__(self, max_bytes: int = DISCORD_UPLOAD_LIMIT) -> None:
        if max_bytes <= 0:
            raise ValueError("max_bytes must be greater than zero")
        self.max_bytes = max_bytes

    def encode(self, frames: Sequence[Image.Image], settings: RenderSettings) -> bytes:
        if not frames:
            raise RenderFrameError("No frames survived rendering; nothing to encode.")
        buffer = io.BytesIO()
        first, *rest = frames
        # Every frame carries the same palette, so the GIF gets one global
        # colour table. The optimize pass would prune it per frame.
        first.save(
            buffer,
            format="GIF",
            save_all=True,
            append_images=rest,
            duration=settings.frame_delay,
            loop=0,
            disposal=1,
            optimize=False,
        )
        data = buffer.getvalue()
        self.check_size(len(data))
        log.info(
            "Encoded %d frame(s) into %.2fMB (tier %d, ceiling %.2fMB).",
            len(frames),
            len(data) / 1024 / 1024,
            settings.tier,
            self.max_bytes / 1024 / 1024,
        )
        return data

    def check_size(self, size: int) -> None:
        if size > self.max_bytes:
            raise PayloadTooLargeError(size, self.max_bytes)
