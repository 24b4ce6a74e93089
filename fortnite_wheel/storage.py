"""JSON file persistence for giveaways and purchases."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

from .backup import BackupManager, write_json_atomic
from .models import BotState, Giveaway, Purchase

LOGGER = logging.getLogger(__name__)

GIVEAWAYS_FILE = "giveaways.json"
PURCHASES_FILE = "purchases.json"


class StorageError(RuntimeError):
    """Raised when a data file is unreadable and no backup can replace it."""


class StateStorage:
    """Async wrapper around the JSON data files holding the bot state."""

    def __init__(self, base_dir: Path, backups: Optional[BackupManager] = None) -> None:
        self.base_dir = base_dir
        self.giveaways_path = base_dir / GIVEAWAYS_FILE
        self.purchases_path = base_dir / PURCHASES_FILE
        self.backups = backups
        self._lock = asyncio.Lock()

    async def load(self) -> BotState:
        """Load the bot state, restoring corrupted files from the newest backup."""
        async with self._lock:
            return await asyncio.to_thread(self._read_state)

    async def save(self, state: BotState) -> None:
        """Persist the provided bot state."""
        async with self._lock:
            await asyncio.to_thread(self._write_state, state)

    # --- Internal helpers -------------------------------------------------

    def _read_state(self) -> BotState:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        giveaways_raw = self._read_list(self.giveaways_path)
        purchases_raw = self._read_list(self.purchases_path)
        state = BotState(
            giveaways=[Giveaway.from_payload(item) for item in giveaways_raw],
            purchases=[Purchase.from_payload(item) for item in purchases_raw],
        )
        LOGGER.info(
            "Loaded %d giveaway(s) and %d purchase(s) from %s.",
            len(state.giveaways),
            len(state.purchases),
            self.base_dir,
        )
        return state

    def _read_list(self, path: Path) -> List[dict]:
        if not path.exists():
            LOGGER.debug("Creating %s with default data.", path.name)
            write_json_atomic(path, [])
            return []
        try:
            data: Any = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            LOGGER.warning("Corrupted %s detected (%s); restoring from backup.", path.name, exc)
            data = self._restore(path)
        if isinstance(data, dict):
            # Older files keyed records by ID.
            data = list(data.values())
        if not isinstance(data, list):
            raise StorageError(f"{path.name} must contain a JSON list.")
        return data

    def _restore(self, path: Path) -> Any:
        data = self.backups.latest_for(path.name) if self.backups is not None else None
        if data is None:
            raise StorageError(f"{path.name} is corrupted and no backup of it exists.")
        corrupt_copy = path.with_suffix(path.suffix + ".corrupt")
        path.replace(corrupt_copy)
        write_json_atomic(path, data)
        LOGGER.info("Restored %s from backup; corrupted copy kept as %s.", path.name, corrupt_copy.name)
        return data

    def _write_state(self, state: BotState) -> None:
        write_json_atomic(self.giveaways_path, [g.to_payload() for g in state.giveaways])
        write_json_atomic(self.purchases_path, [p.to_payload() for p in state.purchases])
