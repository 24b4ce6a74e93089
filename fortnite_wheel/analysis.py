from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional, Tuple

log = logging.getLogger(__name__)

DATE_FORMAT = "%m/%d/%Y"
TIME_FORMAT = "%I:%M %p"
START_OF_DAY = "12:00 AM"
END_OF_DAY = "11:59 PM"
MEDIA_EXTENSIONS = (
    ".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp",
    ".mp4", ".mov", ".webm", ".avi", ".mkv",
)


class AnalysisError(RuntimeError):
    """Raised when an analysis window cannot be understood."""


def parse_window_bound(
    date_text: str, time_text: Optional[str] = None, *, default_time: str = START_OF_DAY
) -> datetime:
    """Turn ``MM/DD/YYYY`` plus an optional ``HH:MM AM`` time into a UTC datetime."""
    try:
        day = datetime.strptime(date_text.strip(), DATE_FORMAT)
    except ValueError as exc:
        raise AnalysisError(
            f"Invalid date '{date_text}'. Use MM/DD/YYYY, e.g. 08/25/2025."
        ) from exc
    clock = (time_text or default_time).strip().upper()
    try:
        moment = datetime.strptime(clock, TIME_FORMAT)
    except ValueError as exc:
        raise AnalysisError(
            f"Invalid time '{time_text}'. Use HH:MM AM/PM, e.g. 09:30 PM."
        ) from exc
    return day.replace(hour=moment.hour, minute=moment.minute, tzinfo=UTC)


def parse_window(
    start_date: Optional[str] = None,
    start_time: Optional[str] = None,
    end_date: Optional[str] = None,
    end_time: Optional[str] = None,
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Both bounds of a window; a missing date leaves that side open."""
    start = parse_window_bound(start_date, start_time) if start_date else None
    end = parse_window_bound(end_date, end_time, default_time=END_OF_DAY) if end_date else None
    return start, end


def is_media_message(message: Any) -> bool:
    """True when a message carries an image or a video, as an upload or an embed."""
    for attachment in getattr(message, "attachments", ()) or ():
        content_type = (getattr(attachment, "content_type", None) or "").lower()
        if content_type.startswith(("image/", "video/")):
            return True
        filename = (getattr(attachment, "filename", None) or "").lower()
        if filename.endswith(MEDIA_EXTENSIONS):
            return True
    for embed in getattr(message, "embeds", ()) or ():
        for part in ("image", "video", "thumbnail"):
            if getattr(getattr(embed, part, None), "url", None):
                return True
    return False


def attachment_kinds(message: Any) -> List[str]:
    kinds = []
    for attachment in getattr(message, "attachments", ()) or ():
        content_type = getattr(attachment, "content_type", None)
        if content_type:
            kinds.append(content_type.split("/")[0])
        else:
            suffix = (getattr(attachment, "filename", None) or "").rpartition(".")[2]
            kinds.append(suffix.lower() or "file")
    return kinds


@dataclass(slots=True)
class AuthorActivity:
    user_id: int
    name: str
    valid: int = 0
    invalid: int = 0

    @property
    def total(self) -> int:
        return self.valid + self.invalid


@dataclass(slots=True)
class TrackedMessage:
    url: str
    created_at: Optional[datetime]
    valid: bool
    kinds: List[str]


@dataclass(slots=True)
class ChannelAnalysis:
    start: Optional[datetime]
    end: Optional[datetime]
    authors: Dict[int, AuthorActivity] = field(default_factory=dict)
    # Only filled when a single author is tracked.
    messages: List[TrackedMessage] = field(default_factory=list)

    @property
    def total_messages(self) -> int:
        return sum(author.total for author in self.authors.values())

    @property
    def valid_messages(self) -> int:
        return sum(author.valid for author in self.authors.values())

    @property
    def invalid_messages(self) -> int:
        return self.total_messages - self.valid_messages

    def top(self, limit: int = 10) -> List[AuthorActivity]:
        ranked = sorted(self.authors.values(), key=lambda a: (-a.valid, -a.total, a.name))
        return ranked[:limit]

    def describe_window(self) -> str:
        def fmt(moment: datetime) -> str:
            return moment.strftime(f"{DATE_FORMAT} {TIME_FORMAT}")

        if self.start and self.end:
            return f"{fmt(self.start)} - {fmt(self.end)} UTC"
        if self.start:
            return f"From {fmt(self.start)} UTC"
        if self.end:
            return f"Until {fmt(self.end)} UTC"
        return "All time"


async def analyze_channel(
    channel: Any,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    author_id: Optional[int] = None,
) -> ChannelAnalysis:
    """Count media (valid) and other (invalid) messages per author in a window.

    With ``author_id`` only that member is counted and each of their
    messages is kept in ``messages``.
    """
    if start and end and end <= start:
        raise AnalysisError("The end of the window must be after its start.")
    result = ChannelAnalysis(start=start, end=end)
    async for message in channel.history(limit=None, after=start, before=end, oldest_first=True):
        author = message.author
        if author_id is not None and author.id != author_id:
            continue
        valid = is_media_message(message)
        if author_id is not None:
            result.messages.append(
                TrackedMessage(
                    url=getattr(message, "jump_url", ""),
                    created_at=getattr(message, "created_at", None),
                    valid=valid,
                    kinds=attachment_kinds(message),
                )
            )
        activity = result.authors.get(author.id)
        if activity is None:
            activity = AuthorActivity(user_id=author.id, name=getattr(author, "name", str(author.id)))
            result.authors[author.id] = activity
        if valid:
            activity.valid += 1
        else:
            activity.invalid += 1
    log.info(
        "Analyzed channel %s: %d message(s) from %d author(s), %d with media.",
        getattr(channel, "id", "?"),
        result.total_messages,
        len(result.authors),
        result.valid_messages,
    )
    return result
