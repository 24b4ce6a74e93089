import unittest
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest

from fortnite_wheel.analysis import (
    END_OF_DAY,
    AnalysisError,
    analyze_channel,
    attachment_kinds,
    is_media_message,
    parse_window,
    parse_window_bound,
)
from fortnite_wheel.views import build_analysis_embed, build_time_embed, build_tracking_embed


def message(author_id, name, *, attachments=(), embeds=(), number=0):
    return SimpleNamespace(
        author=SimpleNamespace(id=author_id, name=name),
        attachments=list(attachments),
        embeds=list(embeds),
        jump_url=f"https://discord.com/channels/1/99/{number}",
        created_at=datetime(2025, 8, 25, 12, 0, tzinfo=UTC) + timedelta(minutes=number),
    )


def upload(filename, content_type=None):
    return SimpleNamespace(filename=filename, content_type=content_type)


def embed(**urls):
    parts = {part: SimpleNamespace(url=urls.get(part)) for part in ("image", "video", "thumbnail")}
    return SimpleNamespace(**parts)


class FakeChannel:
    id = 99

    def __init__(self, messages):
        self.messages = messages
        self.history_kwargs = None

    async def history(self, **kwargs):
        self.history_kwargs = kwargs
        for item in self.messages:
            yield item


class TestWindowBounds:
    def test_date_only_starts_at_midnight(self):
        assert parse_window_bound("08/25/2025") == datetime(2025, 8, 25, 0, 0, tzinfo=UTC)

    def test_time_is_case_insensitive(self):
        assert parse_window_bound("08/25/2025", "09:30 pm") == datetime(2025, 8, 25, 21, 30, tzinfo=UTC)

    def test_end_of_day_default(self):
        bound = parse_window_bound("09/05/2025", None, default_time=END_OF_DAY)
        assert bound == datetime(2025, 9, 5, 23, 59, tzinfo=UTC)

    @pytest.mark.parametrize(
        "date_text,time_text",
        [("2025-08-25", None), ("13/01/2025", None), ("08/25/2025", "21:30"), ("08/25/2025", "noon")],
    )
    def test_rejects_other_formats(self, date_text, time_text):
        with pytest.raises(AnalysisError):
            parse_window_bound(date_text, time_text)

    def test_open_window(self):
        assert parse_window() == (None, None)

    def test_end_date_runs_to_end_of_day(self):
        start, end = parse_window("08/25/2025", None, "08/26/2025")
        assert start == datetime(2025, 8, 25, 0, 0, tzinfo=UTC)
        assert end == datetime(2025, 8, 26, 23, 59, tzinfo=UTC)


class TestMediaMessages:
    @pytest.mark.parametrize(
        "item,expected",
        [
            (message(1, "a", attachments=[upload("shot", "image/png")]), True),
            (message(1, "a", attachments=[upload("clip.MOV")]), True),
            (message(1, "a", attachments=[upload("rules.pdf", "application/pdf")]), False),
            (message(1, "a", embeds=[embed(thumbnail="https://cdn.example/t.png")]), True),
            (message(1, "a", embeds=[embed()]), False),
            (message(1, "a"), False),
        ],
    )
    def test_detection(self, item, expected):
        assert is_media_message(item) is expected

    def test_attachment_kinds(self):
        item = message(1, "a", attachments=[upload("a.png", "image/png"), upload("notes.TXT"), upload("blob")])
        assert attachment_kinds(item) == ["image", "txt", "file"]


class TestAnalyzeChannel(unittest.IsolatedAsyncioTestCase):
    async def test_counts_per_author(self):
        channel = FakeChannel(
            [
                message(1, "jonesy", attachments=[upload("a.png", "image/png")]),
                message(2, "ramirez"),
                message(1, "jonesy"),
                message(2, "ramirez", attachments=[upload("b.mp4", "video/mp4")]),
                message(2, "ramirez", attachments=[upload("c.jpg")]),
                message(3, "spitfire"),
            ]
        )
        start = datetime(2025, 8, 25, tzinfo=UTC)
        end = start + timedelta(days=1)
        result = await analyze_channel(channel, start=start, end=end)

        assert channel.history_kwargs == {"limit": None, "after": start, "before": end, "oldest_first": True}
        assert result.total_messages == 6
        assert result.valid_messages == 3
        assert result.invalid_messages == 3
        assert [a.name for a in result.top()] == ["ramirez", "jonesy", "spitfire"]
        assert (result.authors[2].valid, result.authors[2].invalid) == (2, 1)
        assert [a.name for a in result.top(1)] == ["ramirez"]

    async def test_reversed_window(self):
        start = datetime(2025, 8, 25, tzinfo=UTC)
        with self.assertRaises(AnalysisError):
            await analyze_channel(FakeChannel([]), start=start, end=start)

    async def test_summary_embed(self):
        channel = FakeChannel([message(n, f"player{n:02d}") for n in range(12)])
        result = await analyze_channel(channel)
        built = build_analysis_embed("#entries", result)
        assert "**Period:** All time" in built.description
        fields = {field.name: field.value for field in built.fields}
        assert "Total messages scanned: 12" in fields["Statistics"]
        assert len(fields["Participants (top 10)"].splitlines()) == 10

    async def test_tracks_a_single_member(self):
        channel = FakeChannel(
            [
                message(1, "jonesy", attachments=[upload("a.png", "image/png")], number=1),
                message(2, "ramirez", number=2),
                message(1, "jonesy", number=3),
                message(1, "jonesy", attachments=[upload("b.mp4", "video/mp4")], number=4),
            ]
        )
        result = await analyze_channel(channel, author_id=1)

        assert list(result.authors) == [1]
        assert (result.valid_messages, result.invalid_messages) == (2, 1)
        assert [m.url.rsplit("/", 1)[1] for m in result.messages] == ["1", "3", "4"]
        assert [m.kinds for m in result.messages] == [["image"], [], ["video"]]
        assert [m.valid for m in result.messages] == [True, False, True]

    async def test_untracked_scan_keeps_no_messages(self):
        result = await analyze_channel(FakeChannel([message(1, "jonesy", number=1)]))
        assert result.messages == []

    async def test_tracking_embed(self):
        items = [message(7, "jonesy", attachments=[upload("a.png", "image/png")], number=n) for n in range(11)]
        items.append(message(7, "jonesy", number=11))
        result = await analyze_channel(FakeChannel(items), author_id=7)
        built = build_tracking_embed("<@7>", "#entries", result)
        fields = {field.name: field.value for field in built.fields}
        assert "Valid rate: 92%" in fields["Statistics"]
        shown = fields["Messages (first 10)"].splitlines()
        assert len(shown) == 10
        assert shown[0].startswith("1. ✅ [08/25 12:00 PM](https://discord.com/channels/1/99/0)")
        assert shown[0].endswith("(image)")
        assert "do not count" in fields["Recommendation"]

    async def test_tracking_embed_without_messages(self):
        result = await analyze_channel(FakeChannel([message(1, "jonesy")]), author_id=2)
        built = build_tracking_embed("<@2>", "#entries", result)
        fields = {field.name: field.value for field in built.fields}
        assert "Valid rate: 0%" in fields["Statistics"]
        assert "Messages" not in fields
        assert fields["Recommendation"].startswith("No messages")


class TestWorldClock:
    def test_summer_offsets(self):
        built = build_time_embed(datetime(2025, 7, 1, 12, 0, tzinfo=UTC))
        values = [field.value for field in built.fields]
        assert values == [
            "Jul 01, 2025 - 01:00 PM (BST)",
            "Jul 01, 2025 - 08:00 AM (EDT)",
            "Jul 01, 2025 - 05:00 AM (PDT)",
        ]

    def test_winter_offsets(self):
        built = build_time_embed(datetime(2025, 1, 15, 12, 0, tzinfo=UTC))
        assert built.fields[0].value == "Jan 15, 2025 - 12:00 PM (GMT)"
        assert built.fields[2].value == "Jan 15, 2025 - 04:00 AM (PST)"
