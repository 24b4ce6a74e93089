import io

import pytest
from PIL import Image, ImageDraw

from fortnite_wheel.encoder import (
    DISCORD_UPLOAD_LIMIT,
    SizeBudgetedEncoder,
    select_render_settings,
    tier_for,
)
from fortnite_wheel.errors import PayloadTooLargeError, RenderFrameError
from fortnite_wheel.palette import FixedPalette


def _frames(count=3, size=40):
    palette = FixedPalette.build(12)
    frames = []
    for i in range(count):
        frame = palette.new_surface((size, size))
        ImageDraw.Draw(frame).rectangle((i, i, i + 10, i + 10), fill=palette.segment(i))
        frames.append(frame)
    return frames


class TestTierSelection:
    """Participant count picks the render tier before any frame is drawn."""

    @pytest.mark.parametrize(
        "count,tier", [(1, 1), (15, 1), (16, 2), (30, 2), (31, 3), (40, 3), (500, 3)]
    )
    def test_staircase(self, count, tier):
        assert tier_for(count).tier == tier

    def test_forty_participants_use_the_compact_tier(self):
        settings = select_render_settings(40)
        assert settings.tier == 3
        assert settings.canvas_size == 400
        assert settings.frame_count == 132
        assert settings.segment_colors == 12
        assert settings.show_entry_counts is False

    def test_quality_overrides_count(self):
        assert tier_for(2, quality="compact").tier == 3
        assert tier_for(200, quality="HIGH").tier == 1

    def test_unknown_quality(self):
        with pytest.raises(ValueError):
            tier_for(2, quality="ultra")

    def test_entry_labels_in_middle_tier(self):
        assert select_render_settings(20).show_entry_counts is True
        assert select_render_settings(28).show_entry_counts is False

    def test_geometry_fits_canvas(self):
        for count in (1, 20, 50):
            settings = select_render_settings(count)
            assert settings.wheel_radius * 2 < settings.canvas_size
            assert settings.hub_radius < settings.wheel_radius


class TestSizeBudgetedEncoder:
    """GIF encoding under a byte ceiling."""

    def test_encodes_looping_gif(self):
        data = SizeBudgetedEncoder().encode(_frames(), select_render_settings(3))
        assert data.startswith(b"GIF89a")
        image = Image.open(io.BytesIO(data))
        assert image.n_frames == 3
        assert image.info.get("loop") == 0
        assert image.info.get("duration") == 40

    def test_rejects_oversized_output(self):
        encoder = SizeBudgetedEncoder(max_bytes=10)
        with pytest.raises(PayloadTooLargeError) as excinfo:
            encoder.encode(_frames(), select_render_settings(3))
        assert excinfo.value.ceiling == 10
        assert excinfo.value.size > 10

    def test_no_frames(self):
        with pytest.raises(RenderFrameError):
            SizeBudgetedEncoder().encode([], select_render_settings(3))

    def test_check_size(self):
        encoder = SizeBudgetedEncoder(DISCORD_UPLOAD_LIMIT)
        encoder.check_size(DISCORD_UPLOAD_LIMIT)
        with pytest.raises(PayloadTooLargeError):
            encoder.check_size(DISCORD_UPLOAD_LIMIT + 1)

    def test_invalid_ceiling(self):
        with pytest.raises(ValueError):
            SizeBudgetedEncoder(max_bytes=0)
