"""Shared builders for the test-suite."""

from __future__ import annotations

from pathlib import Path
from typing import Dict

from fortnite_wheel.config import (
    Config,
    ConsoleConfig,
    GiveawayDefaults,
    LoggingConfig,
    PermissionsConfig,
    StorageConfig,
    WheelConfig,
)
from fortnite_wheel.encoder import RenderTier
from fortnite_wheel.models import Participant
from fortnite_wheel.rotation import PhaseFrames

# One small, fast tier so spins render in milliseconds.
TINY_TIERS = (
    RenderTier(
        tier=1,
        max_participants=None,
        canvas_size=160,
        frame_delay=40,
        phases=PhaseFrames(2, 3, 3, 1, 2),
        segment_colors=12,
        entry_label_limit=10,
        particle_count=6,
    ),
)
TINY_FRAME_COUNT = 11


def make_participants(**entries: int) -> Dict[str, Participant]:
    return {
        user_id: Participant(user_id=user_id, display_name=user_id.upper(), entries=count)
        for user_id, count in entries.items()
    }


class FixedRandom:
    """Stand-in for ``random.Random`` returning fixed draws."""

    def __init__(self, value: float = 0.5, turns: int | None = None) -> None:
        self.value = value
        self.turns = turns

    def random(self) -> float:
        return self.value

    def randint(self, a: int, b: int) -> int:
        return a if self.turns is None else self.turns

    def choice(self, seq):
        return seq[0]


def make_config(data_dir: Path, admin_roles=None) -> Config:
    return Config(
        token="token",
        application_id=1,
        logging=LoggingConfig(),
        storage=StorageConfig(data_dir=data_dir, backup_dir=data_dir / "backups"),
        giveaways=GiveawayDefaults(default_vbucks_per_entry=100, max_vbucks_per_purchase=5000),
        wheel=WheelConfig(timeout_seconds=30),
        console=ConsoleConfig(),
        permissions=PermissionsConfig(admin_roles=list(admin_roles or [])),
    )
