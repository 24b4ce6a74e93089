import pytest

from fortnite_wheel.palette import (
    SEGMENT_BASE_COLORS,
    UI_BASE_COLORS,
    WEB_SAFE_LEVELS,
    FixedPalette,
    hex_to_rgb,
    to_web_safe,
)


class TestWebSafe:
    """Colour snapping."""

    def test_hex_to_rgb(self):
        assert hex_to_rgb("#FF8000") == (255, 128, 0)

    def test_bad_hex(self):
        with pytest.raises(ValueError):
            hex_to_rgb("#FFF")

    def test_snaps_each_channel(self):
        assert to_web_safe((231, 76, 60)) == (255, 51, 51)


class TestFixedPalette:
    """The closed colour table shared by all frames."""

    def test_every_colour_is_web_safe(self):
        palette = FixedPalette.build()
        for rgb in palette.colors:
            assert all(channel in WEB_SAFE_LEVELS for channel in rgb)

    def test_every_intent_resolves(self):
        palette = FixedPalette.build()
        for intent in UI_BASE_COLORS:
            assert 0 <= palette.index(intent) < len(palette.colors)

    def test_unknown_intent(self):
        with pytest.raises(KeyError):
            FixedPalette.build().index("glow")

    def test_segment_count_is_capped(self):
        assert len(FixedPalette.build(12).segments) == 12
        assert len(FixedPalette.build(500).segments) == len(SEGMENT_BASE_COLORS)

    def test_build_is_deterministic(self):
        assert FixedPalette.build(16) == FixedPalette.build(16)

    def test_snap_returns_existing_entry(self):
        palette = FixedPalette.build()
        assert palette.snap(palette.rgb(palette.index("highlight"))) == palette.index("highlight")

    def test_highlight_stands_out_from_every_segment(self):
        palette = FixedPalette.build(len(SEGMENT_BASE_COLORS))
        assert palette.index("highlight") not in palette.segments

    def test_new_surface_is_filled(self):
        palette = FixedPalette.build()
        surface = palette.new_surface((8, 8), "hub_fill")
        assert surface.mode == "P"
        assert surface.getpixel((3, 3)) == palette.index("hub_fill")
        assert palette.used_indices([surface]) == {palette.index("hub_fill")}
