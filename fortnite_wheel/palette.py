"""Fixed colour palette shared by every frame of a wheel animation.

GIF encoders pick a reduced palette per frame unless told otherwise, and any
drift in a single channel between two frames (anti-aliasing, soft shadows,
"lightened" highlight colours) is enough to make the encoder choose different
entries and the animation flickers. Every colour the renderer is allowed to
use therefore lives in one closed table, snapped to the web-safe cube, and
frames are drawn directly with palette indices.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from PIL import Image

RGB = Tuple[int, int, int]

WEB_SAFE_LEVELS: Tuple[int, ...] = (0x00, 0x33, 0x66, 0x99, 0xCC, 0xFF)

SEGMENT_BASE_COLORS: Tuple[str, ...] = (
    "#E74C3C", "#3498DB", "#2ECC71", "#F39C12", "#9B59B6",
    "#1ABC9C", "#E67E22", "#34495E", "#F1C40F", "#E91E63",
    "#9C27B0", "#673AB7", "#3F51B5", "#2196F3", "#00BCD4",
    "#009688", "#4CAF50", "#8BC34A", "#CDDC39", "#FFC107",
    "#FF9800", "#FF5722", "#795548", "#607D8B", "#FF4081",
)

UI_BASE_COLORS: Dict[str, str] = {
    "background": "#F8F9FA",
    "pointer": "#DC3545",
    "pointer_border": "#FFFFFF",
    "segment_border": "#FFFFFF",
    "hub_fill": "#FFFFFF",
    "hub_border": "#E0E0E0",
    "text": "#000000",
    "text_outline": "#FFFFFF",
    "text_dark": "#333333",
    "highlight": "#FFFF00",
    "banner": "#222222",
    "banner_text": "#FFFFFF",
}


def hex_to_rgb(value: str) -> RGB:
    raw = value.strip().lstrip("#")
    if len(raw) != 6:
        raise ValueError(f"Expected a #RRGGBB colour, got {value!r}")
    return int(raw[0:2], 16), int(raw[2:4], 16), int(raw[4:6], 16)


def to_web_safe(rgb: RGB) -> RGB:
    """Snap each channel to the nearest web-safe level."""
    return tuple(  # type: ignore[return-value]
        min(WEB_SAFE_LEVELS, key=lambda level: abs(level - channel)) for channel in rgb
    )


@dataclass(frozen=True, slots=True)
class FixedPalette:
    """Closed set of colours; renderers only ever see indices into ``colors``."""

    colors: Tuple[RGB, ...]
    intents: Tuple[Tuple[str, int], ...]
    segments: Tuple[int, ...]

    @classmethod
    def build(
        cls,
        segment_colors: int = len(SEGMENT_BASE_COLORS),
        *,
        base_segments: Sequence[str] = SEGMENT_BASE_COLORS,
        base_ui: Mapping[str, str] = UI_BASE_COLORS,
    ) -> "FixedPalette":
        if segment_colors <= 0:
            raise ValueError("segment_colors must be greater than zero")
        segment_colors = min(segment_colors, len(base_segments))

        colors: List[RGB] = []
        intents: List[Tuple[str, int]] = []
        for name, hex_value in base_ui.items():
            intents.append((name, cls._intern(colors, to_web_safe(hex_to_rgb(hex_value)))))

        segments = tuple(
            cls._intern(colors, to_web_safe(hex_to_rgb(hex_value)))
            for hex_value in base_segments[:segment_colors]
        )
        if len(colors) > 256:
            raise ValueError("A GIF palette cannot hold more than 256 colours")
        return cls(colors=tuple(colors), intents=tuple(intents), segments=segments)

    @staticmethod
    def _intern(colors: List[RGB], rgb: RGB) -> int:
        # Identical snapped colours share one entry so the table stays small.
        if rgb in colors:
            return colors.index(rgb)
        colors.append(rgb)
        return len(colors) - 1

    def index(self, intent: str) -> int:
        for name, idx in self.intents:
            if name == intent:
                return idx
        raise KeyError(f"Unknown palette intent: {intent}")

    def segment(self, position: int) -> int:
        return self.segments[position % len(self.segments)]

    def rgb(self, index: int) -> RGB:
        return self.colors[index]

    def snap(self, rgb: RGB) -> int:
        """Return the palette index closest to an arbitrary colour."""
        best_index = 0
        best_distance = None
        for idx, (r, g, b) in enumerate(self.colors):
            distance = (r - rgb[0]) ** 2 + (g - rgb[1]) ** 2 + (b - rgb[2]) ** 2
            if best_distance is None or distance < best_distance:
                best_index = idx
                best_distance = distance
        return best_index

    def flat(self) -> List[int]:
        values: List[int] = []
        for rgb in self.colors:
            values.extend(rgb)
        return values

    def new_surface(self, size: Tuple[int, int], intent: str = "background") -> Image.Image:
        """Create a palette image pre-filled with one of the fixed colours."""
        surface = Image.new("P", size, self.index(intent))
        surface.putpalette(self.flat())
        return surface

    def used_indices(self, frames: Iterable[Image.Image]) -> set[int]:
        used: set[int] = set()
        for frame in frames:
            for _count, idx in frame.getcolors(maxcolors=256) or ():
                used.add(idx)
        return used
