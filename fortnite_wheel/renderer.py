"""Draws single wheel frames onto palette surfaces.

Every frame starts from :meth:`FrameRenderer.begin_frame`, which hands out a
brand-new surface and drawing context, so nothing (fill, stroke width, font)
can leak from one frame into the next. All inks are palette indices and text
is rasterised without anti-aliasing, which keeps each frame inside the fixed
palette.
"""

from __future__ import annotations

import functools
import io
import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

from PIL import Image, ImageDraw, ImageFont

from .encoder import RenderSettings
from .entries import WeightedSegment, segment_at_angle
from .models import Participant
from .palette import FixedPalette
from .rotation import POINTER_ANGLE, TAU, AnimationPhase, normalize_angle

log = logging.getLogger(__name__)

FontType = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]

DEFAULT_FONT_CANDIDATES: Tuple[str, ...] = (
    "DejaVuSans-Bold.ttf",
    "Poppins-Bold.ttf",
    "arialbd.ttf",
    "Arial Bold.ttf",
)
# Below these segment widths (radians) the label, then the entry count, is dropped.
MIN_LABEL_ANGLE = 0.15
MIN_ENTRY_LABEL_ANGLE = 0.25
MAX_NAME_LENGTH = 18
HUB_MAX_LINES = 3
ELLIPSIS = "..."
SEGMENT_BORDER_WIDTH = 2
HIGHLIGHT_BORDER_WIDTH = 5


@functools.lru_cache(maxsize=64)
def load_font(size: int, font_path: Optional[str] = None) -> FontType:
    candidates = ((font_path,) if font_path else ()) + DEFAULT_FONT_CANDIDATES
    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    log.debug("No TrueType font found; using Pillow's bundled font at %dpx.", size)
    return ImageFont.load_default(size=size)


def text_size(font: FontType, text: str, stroke_width: int = 0) -> Tuple[int, int]:
    left, top, right, bottom = font.getbbox(text, stroke_width=stroke_width)
    return int(math.ceil(right - left)), int(math.ceil(bottom - top))


def truncate_to_width(
    text: str, font: FontType, max_width: float, *, force_ellipsis: bool = False
) -> str:
    if not force_ellipsis and text_size(font, text)[0] <= max_width:
        return text
    truncated = text
    while truncated and text_size(font, truncated + ELLIPSIS)[0] > max_width:
        truncated = truncated[:-1]
    return truncated.rstrip() + ELLIPSIS


def wrap_text(
    text: str, font: FontType, max_width: float, max_lines: int = HUB_MAX_LINES
) -> List[str]:
    """Greedy word wrap; single words wider than the box are cut with an ellipsis."""
    words = text.split()
    if not words:
        return []
    lines: List[str] = []
    current = ""
    for word in words:
        word = truncate_to_width(word, font, max_width)
        candidate = f"{current} {word}" if current else word
        if not current or text_size(font, candidate)[0] <= max_width:
            current = candidate
        else:
            lines.append(current)
            current = word
    lines.append(current)
    if len(lines) > max_lines:
        lines = lines[:max_lines]
        lines[-1] = truncate_to_width(lines[-1], font, max_width, force_ellipsis=True)
    return lines


def shorten_name(name: str, limit: int = MAX_NAME_LENGTH) -> str:
    name = " ".join(name.split())
    if len(name) <= limit:
        return name
    return name[: limit - 1].rstrip() + ELLIPSIS


@dataclass(slots=True)
class LabelMasks:
    """Pre-rasterised 1-bit label, rotated per frame."""
    fill: Image.Image
    outline: Image.Image
    font_size: int
    with_entries: bool


class FrameRenderer:
    """Draws wheel frames for one spin; owns its label cache exclusively."""

    def __init__(
        self,
        settings: RenderSettings,
        palette: FixedPalette,
        giveaway_name: str,
    ) -> None:
        self.settings = settings
        self.palette = palette
        self.giveaway_name = giveaway_name or "Giveaway"
        self._labels: Dict[Tuple[str, float, float], Optional[LabelMasks]] = {}
        self._hub_lines, self._hub_font = self._layout_hub()

    # --- frame lifecycle -------------------------------------------------

    def begin_frame(self) -> Tuple[Image.Image, ImageDraw.ImageDraw]:
        size = self.settings.canvas_size
        surface = self.palette.new_surface((size, size), "background")
        draw = ImageDraw.Draw(surface)
        draw.fontmode = "1"
        return surface, draw

    def render(
        self,
        segments: Sequence[WeightedSegment],
        rotation: float,
        *,
        highlight: Optional[Participant] = None,
        phase: Optional[AnimationPhase] = None,
        phase_index: int = 0,
    ) -> Image.Image:
        surface, draw = self.begin_frame()
        self._draw_segments(draw, segments, rotation, highlight)
        self._draw_labels(surface, segments, rotation)
        self._draw_pointer(draw, segments, rotation)
        self._draw_hub(draw)
        if highlight is not None:
            if phase is AnimationPhase.CELEBRATE:
                self._draw_particles(draw, phase_index)
            self._draw_banner(draw, highlight)
        return surface

    def render_empty(self) -> Image.Image:
        """Placeholder wheel for giveaways that nobody has bought into yet."""
        surface, draw = self.begin_frame()
        cx, cy = self.settings.center
        radius = self.settings.wheel_radius
        draw.ellipse(
            (cx - radius, cy - radius, cx + radius, cy + radius),
            fill=self.palette.index("background"),
            outline=self.palette.index("hub_border"),
            width=3,
        )
        self._draw_pointer(draw, (), 0.0)
        self._draw_hub(draw)
        title_font = load_font(max(18, self.settings.canvas_size // 20), self.settings.font_path)
        hint_font = load_font(max(12, self.settings.canvas_size // 20 - 4), self.settings.font_path)
        offset = self.settings.hub_radius + 30
        self._draw_centered(draw, (cx, cy - offset - 24), "No Participants", title_font, outline=True)
        self._draw_centered(
            draw, (cx, cy - offset + 4), "Add purchases to populate wheel", hint_font, outline=True
        )
        return surface

    @staticmethod
    def to_png(frame: Image.Image) -> bytes:
        buffer = io.BytesIO()
        frame.save(buffer, format="PNG")
        return buffer.getvalue()

    # --- wheel -------------------------------------------------------------

    def _bbox(self, radius: float) -> Tuple[float, float, float, float]:
        cx, cy = self.settings.center
        return cx - radius, cy - radius, cx + radius, cy + radius

    def _draw_segments(
        self,
        draw: ImageDraw.ImageDraw,
        segments: Sequence[WeightedSegment],
        rotation: float,
        highlight: Optional[Participant],
    ) -> None:
        bbox = self._bbox(self.settings.wheel_radius)
        border = self.palette.index("segment_border")
        winner: Optional[WeightedSegment] = None
        for segment in segments:
            if segment.angular_width <= 0:
                continue
            if highlight is not None and segment.participant.user_id == highlight.user_id:
                winner = segment
            if segment.angular_width >= TAU - 1e-9:
                draw.ellipse(bbox, fill=segment.color, outline=border, width=SEGMENT_BORDER_WIDTH)
                continue
            start, end = self._screen_degrees(segment, rotation)
            draw.pieslice(bbox, start, end, fill=segment.color, outline=border, width=SEGMENT_BORDER_WIDTH)

        if winner is not None:
            # Only the geometry changes for the winner; its fill stays the same.
            marker = self.palette.index("highlight")
            if winner.angular_width >= TAU - 1e-9:
                draw.ellipse(bbox, outline=marker, width=HIGHLIGHT_BORDER_WIDTH)
            else:
                start, end = self._screen_degrees(winner, rotation)
                draw.pieslice(bbox, start, end, outline=marker, width=HIGHLIGHT_BORDER_WIDTH)

    @staticmethod
    def _screen_degrees(segment: WeightedSegment, rotation: float) -> Tuple[float, float]:
        start = math.degrees(normalize_angle(segment.start_angle + rotation))
        return start, start + math.degrees(segment.angular_width)

    # --- labels ------------------------------------------------------------

    def _draw_labels(
        self, surface: Image.Image, segments: Sequence[WeightedSegment], rotation: float
    ) -> None:
        text_index = self.palette.index("text")
        outline_index = self.palette.index("text_outline")
        cx, cy = self.settings.center
        text_radius = (self.settings.hub_radius + self.settings.wheel_radius) / 2 + 4
        for segment in segments:
            masks = self._label_for(segment)
            if masks is None:
                continue
            angle = normalize_angle(segment.midpoint + rotation)
            degrees = -math.degrees(angle)
            if math.pi / 2 < angle < 3 * math.pi / 2:
                # Keep text upright on the left half of the wheel.
                degrees += 180
            x = cx + math.cos(angle) * text_radius
            y = cy + math.sin(angle) * text_radius
            for mask, ink in ((masks.outline, outline_index), (masks.fill, text_index)):
                rotated = mask.rotate(degrees, resample=Image.NEAREST, expand=True)
                box = (int(round(x - rotated.width / 2)), int(round(y - rotated.height / 2)))
                surface.paste(ink, box + (box[0] + rotated.width, box[1] + rotated.height), rotated)

    def _label_for(self, segment: WeightedSegment) -> Optional[LabelMasks]:
        key = (segment.participant.user_id, segment.start_angle, segment.end_angle)
        if key not in self._labels:
            self._labels[key] = self._layout_label(segment)
        return self._labels[key]

    def _layout_label(self, segment: WeightedSegment) -> Optional[LabelMasks]:
        width = segment.angular_width
        if width <= MIN_LABEL_ANGLE:
            return None
        settings = self.settings
        name = shorten_name(segment.participant.display_name)
        radial_room = (settings.wheel_radius - settings.hub_radius) * 0.85
        text_radius = (settings.hub_radius + settings.wheel_radius) / 2
        arc_room = width * text_radius * 0.8

        variants: List[Optional[str]] = []
        if settings.show_entry_counts and width > MIN_ENTRY_LABEL_ANGLE:
            entries = segment.participant.entries
            variants.append(f"{entries} {'entry' if entries == 1 else 'entries'}")
        variants.append(None)

        for entries_text in variants:
            size = settings.base_font_size
            while size >= settings.min_font_size:
                masks = self._rasterise_label(name, entries_text, size)
                if masks.fill.width <= radial_room and masks.fill.height <= arc_room:
                    return masks
                # Shrink proportionally to the worst overflow, at least one pixel.
                scale = min(radial_room / masks.fill.width, arc_room / masks.fill.height)
                size = min(size - 1, int(size * scale))
        log.debug("Label for %s omitted; segment too narrow.", segment.participant.user_id)
        return None

    def _rasterise_label(
        self, name: str, entries_text: Optional[str], size: int
    ) -> LabelMasks:
        stroke = self.settings.text_outline_width
        name_font = load_font(size, self.settings.font_path)
        lines: List[Tuple[str, FontType]] = [(name, name_font)]
        if entries_text:
            lines.append(
                (entries_text, load_font(max(self.settings.min_font_size - 1, size - 2), self.settings.font_path))
            )

        measured = [(text, font, font.getbbox(text, stroke_width=stroke)) for text, font in lines]
        gap = 2
        width = max(int(math.ceil(box[2] - box[0])) for _, _, box in measured) + 2
        height = sum(int(math.ceil(box[3] - box[1])) for _, _, box in measured) + gap * (len(measured) - 1) + 2

        fill = Image.new("1", (width, height), 0)
        outline = Image.new("1", (width, height), 0)
        fill_draw = ImageDraw.Draw(fill)
        outline_draw = ImageDraw.Draw(outline)
        y = 1
        for text, font, box in measured:
            line_width = int(math.ceil(box[2] - box[0]))
            origin = ((width - line_width) / 2 - box[0], y - box[1])
            outline_draw.text(origin, text, font=font, fill=255, stroke_width=stroke, stroke_fill=255)
            fill_draw.text(origin, text, font=font, fill=255)
            y += int(math.ceil(box[3] - box[1])) + gap
        return LabelMasks(fill=fill, outline=outline, font_size=size, with_entries=bool(entries_text))

    # --- pointer, hub, winner overlay ------------------------------------

    def pointer_polygon(self) -> List[Tuple[float, float]]:
        cx, cy = self.settings.center
        size = max(15, self.settings.canvas_size / 30)
        tip_y = cy - self.settings.wheel_radius + 10
        base_y = tip_y - size * 1.5
        return [(cx, tip_y), (cx - size, base_y), (cx + size, base_y)]

    def _draw_pointer(
        self, draw: ImageDraw.ImageDraw, segments: Sequence[WeightedSegment], rotation: float
    ) -> None:
        under = segment_at_angle(segments, POINTER_ANGLE - rotation)
        fill = under.color if under is not None else self.palette.index("pointer")
        draw.polygon(
            self.pointer_polygon(),
            fill=fill,
            outline=self.palette.index("pointer_border"),
            width=2,
        )

    def _layout_hub(self) -> Tuple[List[str], FontType]:
        settings = self.settings
        max_width = settings.hub_radius * 1.6
        size = max(11, settings.canvas_size // 25)
        font = load_font(size, settings.font_path)
        lines = wrap_text(self.giveaway_name, font, max_width, max_lines=HUB_MAX_LINES + 1)
        if len(lines) > HUB_MAX_LINES:
            font = load_font(max(9, int(size * 0.85)), settings.font_path)
        lines = wrap_text(self.giveaway_name, font, max_width, max_lines=HUB_MAX_LINES)
        return lines, font

    def _draw_hub(self, draw: ImageDraw.ImageDraw) -> None:
        cx, cy = self.settings.center
        draw.ellipse(
            self._bbox(self.settings.hub_radius),
            fill=self.palette.index("hub_fill"),
            outline=self.palette.index("hub_border"),
            width=3,
        )
        if not self._hub_lines:
            return
        line_height = text_size(self._hub_font, "Ag")[1] + 3
        first_y = cy - line_height * (len(self._hub_lines) - 1) / 2
        for position, line in enumerate(self._hub_lines):
            self._draw_centered(
                draw,
                (cx, first_y + position * line_height),
                line,
                self._hub_font,
                ink="text_dark",
            )

    def _draw_banner(self, draw: ImageDraw.ImageDraw, winner: Participant) -> None:
        size = self.settings.canvas_size
        height = max(36, size // 10)
        top = size - height - 8
        draw.rectangle(
            (20, top, size - 20, top + height),
            fill=self.palette.index("banner"),
            outline=self.palette.index("highlight"),
            width=3,
        )
        font = load_font(max(self.settings.min_font_size + 4, size // 22), self.settings.font_path)
        label = truncate_to_width(
            f"WINNER: {winner.display_name}", font, size - 64
        )
        self._draw_centered(draw, (size / 2, top + height / 2), label, font, ink="banner_text")

    def _draw_particles(self, draw: ImageDraw.ImageDraw, frame_index: int) -> None:
        # Positions depend only on the frame index, never on a random source.
        count = self.settings.particle_count
        if count <= 0:
            return
        cx, cy = self.settings.center
        base_radius = self.settings.wheel_radius + 6
        limit = self.settings.canvas_size / 2 - 4
        for i in range(count):
            angle = TAU * i / count + frame_index * 0.12 * (1 if i % 2 else -1)
            radius = min(base_radius + (i * 7 + frame_index * 3) % 18, limit)
            x = cx + math.cos(angle) * radius
            y = cy + math.sin(angle) * radius
            half = 2 + (i + frame_index) % 3
            ink = self.palette.index("highlight") if i % 3 == 0 else self.palette.segment(i)
            draw.rectangle((x - half, y - half, x + half, y + half), fill=ink)

    def _draw_centered(
        self,
        draw: ImageDraw.ImageDraw,
        center: Tuple[float, float],
        text: str,
        font: FontType,
        *,
        ink: str = "text",
        outline: bool = False,
    ) -> None:
        stroke = self.settings.text_outline_width if outline else 0
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font, stroke_width=stroke)
        origin = (center[0] - (left + right) / 2, center[1] - (top + bottom) / 2)
        if outline:
            draw.text(
                origin,
                text,
                font=font,
                fill=self.palette.index(ink),
                stroke_width=stroke,
                stroke_fill=self.palette.index("text_outline"),
            )
        else:
            draw.text(origin, text, font=font, fill=self.palette.index(ink))
