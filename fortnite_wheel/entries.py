"""Weighted wheel segments and the weighted lottery that picks a winner."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence, Union

from .errors import NoParticipantsError
from .models import Participant
from .palette import FixedPalette
from .rotation import TAU, normalize_angle

log = logging.getLogger(__name__)

ParticipantSource = Union[Mapping[str, Participant], Iterable[Participant]]


@dataclass(frozen=True, slots=True)
class WeightedSegment:
    """Angular slice of the wheel owned by one participant."""
    participant: Participant
    start_angle: float
    end_angle: float
    color: int

    @property
    def angular_width(self) -> float:
        return self.end_angle - self.start_angle

    @property
    def midpoint(self) -> float:
        return (self.start_angle + self.end_angle) / 2

    @property
    def share(self) -> float:
        return self.angular_width / TAU

    def contains(self, angle: float) -> bool:
        return self.start_angle <= angle < self.end_angle


def as_participant_list(participants: ParticipantSource) -> List[Participant]:
    if isinstance(participants, Mapping):
        return list(participants.values())
    return list(participants)


def total_entries(participants: Sequence[Participant]) -> int:
    return sum(max(p.entries, 0) for p in participants)


def build_segments(
    participants: ParticipantSource, palette: FixedPalette
) -> List[WeightedSegment]:
    """Split the wheel proportionally to entries, keeping the input order.

    Returns an empty list when nobody holds an entry; such a wheel cannot be
    spun. Zero-entry participants keep a zero-width segment so the segment
    list always lines up with the participant list.
    """
    ordered = as_participant_list(participants)
    total = total_entries(ordered)
    if total == 0:
        return []

    segments: List[WeightedSegment] = []
    cumulative = 0
    for position, participant in enumerate(ordered):
        entries = max(participant.entries, 0)
        # Angles come from cumulative sums so the last segment ends at exactly 2*pi.
        start = TAU * cumulative / total
        cumulative += entries
        end = TAU * cumulative / total
        segments.append(
            WeightedSegment(
                participant=participant,
                start_angle=start,
                end_angle=end,
                color=palette.segment(position),
            )
        )
    return segments


def segment_at_angle(
    segments: Sequence[WeightedSegment], angle: float
) -> Optional[WeightedSegment]:
    """Return the segment covering a wheel-space angle."""
    if not segments:
        return None
    normalized = normalize_angle(angle)
    for segment in segments:
        if segment.angular_width > 0 and segment.contains(normalized):
            return segment
    # Only reachable through float rounding right at 2*pi.
    for segment in reversed(segments):
        if segment.angular_width > 0:
            return segment
    return None


def find_segment(
    segments: Sequence[WeightedSegment], user_id: str
) -> Optional[WeightedSegment]:
    for segment in segments:
        if segment.participant.user_id == user_id:
            return segment
    return None


def select_winner(
    participants: ParticipantSource, rng: Optional[random.Random] = None
) -> Participant:
    """Weighted lottery over entries.

    Draws ``r`` uniformly from ``[0, total)`` and walks the participants in
    wheel order, subtracting entries until ``r`` drops to zero or below.
    When nobody holds an entry every participant gets an equal chance; this
    keeps zero-entry giveaways spinnable, and callers that need strict
    entry-only semantics must reject them beforehand.
    """
    ordered = as_participant_list(participants)
    if not ordered:
        raise NoParticipantsError()
    rng = rng if rng is not None else random.Random()

    total = total_entries(ordered)
    if total == 0:
        log.warning(
            "No entries among %d participant(s); falling back to a uniform draw.",
            len(ordered),
        )
        return rng.choice(ordered)

    # Zero-width segments can never be hit.
    weighted = [p for p in ordered if p.entries > 0]
    remaining = rng.random() * total
    for participant in weighted:
        remaining -= participant.entries
        if remaining <= 0:
            return participant
    # Only reachable through float rounding on the last weighted participant.
    return weighted[-1]
