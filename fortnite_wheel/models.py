"""Data models used for giveaway persistence and runtime state."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Dict, Iterable, List, Optional, Sequence


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(slots=True)
class Participant:
    """A user who has bought into a giveaway, with their accumulated entries."""
    user_id: str
    display_name: str
    entries: int = 0
    vbucks_spent: int = 0
    username: Optional[str] = None
    purchase_ids: List[str] = field(default_factory=list)

    def to_payload(self) -> dict:
        """Serialize the participant to a JSON-serialisable structure."""
        return {
            "userId": self.user_id,
            "displayName": self.display_name,
            "entries": self.entries,
            "vbucksSpent": self.vbucks_spent,
            "username": self.username,
            "purchases": list(self.purchase_ids),
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "Participant":
        """Reconstruct a participant, tolerating records written before names were stored."""
        user_id = str(payload["userId"])
        display_name = (
            payload.get("displayName")
            or payload.get("username")
            or f"User {user_id[-4:]}"
        )
        return cls(
            user_id=user_id,
            display_name=str(display_name),
            entries=max(int(payload.get("entries", 0) or 0), 0),
            vbucks_spent=max(int(payload.get("vbucksSpent", 0) or 0), 0),
            username=payload.get("username"),
            purchase_ids=[str(p) for p in payload.get("purchases", [])],
        )


@dataclass(slots=True)
class Giveaway:
    """A V-Bucks giveaway, its participants and the eventual winner."""
    id: str
    name: str
    guild_id: int
    channel_id: int
    created_by: str
    created_at: datetime
    vbucks_per_entry: int = 100
    active: bool = True
    participants: Dict[str, Participant] = field(default_factory=dict)
    winner: Optional[str] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    @property
    def total_entries(self) -> int:
        return sum(p.entries for p in self.participants.values())

    @property
    def total_vbucks(self) -> int:
        return sum(p.vbucks_spent for p in self.participants.values())

    def matches(self, key: str) -> bool:
        """Giveaways are addressed either by ID or by exact name."""
        key = key.strip()
        return self.id == key.upper() or self.name == key

    def snapshot(self) -> Dict[str, Participant]:
        """Return detached copies of the participants for the wheel spinner."""
        return {
            user_id: dataclasses.replace(participant, purchase_ids=list(participant.purchase_ids))
            for user_id, participant in self.participants.items()
        }

    def to_payload(self) -> dict:
        """Serialize the giveaway to a JSON-serialisable structure."""
        return {
            "id": self.id,
            "name": self.name,
            "guildId": self.guild_id,
            "channel": str(self.channel_id),
            "createdBy": self.created_by,
            "createdAt": self.created_at.isoformat(),
            "vbucksPerEntry": self.vbucks_per_entry,
            "active": self.active,
            "participants": {
                user_id: participant.to_payload()
                for user_id, participant in self.participants.items()
            },
            "totalEntries": self.total_entries,
            "winner": self.winner,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "startDate": self.start_date,
            "endDate": self.end_date,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "Giveaway":
        """Reconstruct a Giveaway from serialized payload data."""
        participants_payload = payload.get("participants") or {}
        participants = {
            str(user_id): Participant.from_payload({"userId": user_id, **(data or {})})
            for user_id, data in participants_payload.items()
        }
        created_at = _parse_timestamp(payload.get("createdAt")) or datetime.now(tz=UTC)
        return cls(
            id=str(payload["id"]),
            name=str(payload["name"]),
            guild_id=int(payload.get("guildId", 0) or 0),
            channel_id=int(payload.get("channel", 0) or 0),
            created_by=str(payload.get("createdBy", "")),
            created_at=created_at,
            vbucks_per_entry=int(payload.get("vbucksPerEntry", 100) or 100),
            active=bool(payload.get("active", True)),
            participants=participants,
            winner=payload.get("winner"),
            completed_at=_parse_timestamp(payload.get("completedAt")),
            updated_at=_parse_timestamp(payload.get("updatedAt")),
            start_date=payload.get("startDate"),
            end_date=payload.get("endDate"),
        )


@dataclass(slots=True)
class Purchase:
    """A recorded V-Bucks purchase that earned entries in a giveaway."""
    purchase_id: str
    giveaway_id: str
    user_id: str
    vbucks_spent: int
    entries_earned: int
    added_by: str
    timestamp: datetime
    items: List[str] = field(default_factory=list)

    def to_payload(self) -> dict:
        """Serialize the purchase for storage."""
        return {
            "purchaseId": self.purchase_id,
            "giveawayId": self.giveaway_id,
            "userId": self.user_id,
            "vbucksSpent": self.vbucks_spent,
            "entriesEarned": self.entries_earned,
            "addedBy": self.added_by,
            "timestamp": self.timestamp.isoformat(),
            "items": list(self.items),
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "Purchase":
        """Rehydrate a Purchase from stored JSON data."""
        return cls(
            purchase_id=str(payload["purchaseId"]),
            giveaway_id=str(payload["giveawayId"]),
            user_id=str(payload["userId"]),
            vbucks_spent=int(payload.get("vbucksSpent", 0)),
            entries_earned=int(payload.get("entriesEarned", 0)),
            added_by=str(payload.get("addedBy", "")),
            timestamp=_parse_timestamp(payload.get("timestamp")) or datetime.now(tz=UTC),
            items=[str(item) for item in payload.get("items", [])],
        )


@dataclass(slots=True)
class BotState:
    """Root container for every giveaway and purchase tracked by the bot."""
    giveaways: List[Giveaway] = field(default_factory=list)
    purchases: List[Purchase] = field(default_factory=list)

    def get_giveaway(self, key: str) -> Optional[Giveaway]:
        """Retrieve a giveaway by ID or name."""
        for item in self.giveaways:
            if item.matches(key):
                return item
        return None

    def upsert_giveaway(self, giveaway: Giveaway) -> None:
        """Insert or update a giveaway."""
        for idx, item in enumerate(self.giveaways):
            if item.id == giveaway.id:
                self.giveaways[idx] = giveaway
                return
        self.giveaways.append(giveaway)

    def remove_giveaway(self, giveaway_id: str) -> Optional[Giveaway]:
        """Remove and return a giveaway together with its purchases."""
        for idx, item in enumerate(self.giveaways):
            if item.id == giveaway_id:
                self.purchases = [p for p in self.purchases if p.giveaway_id != giveaway_id]
                return self.giveaways.pop(idx)
        return None

    def list_active(self) -> List[Giveaway]:
        """Return giveaways that are still accepting purchases."""
        return [g for g in self.giveaways if g.active]

    def list_all(self, guild_id: Optional[int] = None) -> Sequence[Giveaway]:
        """Return all giveaways, optionally restricted to one guild."""
        if guild_id is None:
            return tuple(self.giveaways)
        return tuple(g for g in self.giveaways if g.guild_id in (guild_id, 0))

    def add_purchase(self, purchase: Purchase) -> None:
        self.purchases.append(purchase)

    def get_purchase(self, purchase_id: str) -> Optional[Purchase]:
        for item in self.purchases:
            if item.purchase_id == purchase_id.strip().upper():
                return item
        return None

    def remove_purchase(self, purchase_id: str) -> Optional[Purchase]:
        """Delete a purchase by ID."""
        for idx, item in enumerate(self.purchases):
            if item.purchase_id == purchase_id.strip().upper():
                return self.purchases.pop(idx)
        return None

    def purchases_for(self, giveaway_id: str) -> List[Purchase]:
        return [p for p in self.purchases if p.giveaway_id == giveaway_id]

    def existing_ids(self) -> Iterable[str]:
        yield from (g.id for g in self.giveaways)
        yield from (p.purchase_id for p in self.purchases)
