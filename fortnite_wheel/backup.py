"""Compressed snapshots of the JSON data files."""

from __future__ import annotations

import gzip
import json
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

LOGGER = logging.getLogger(__name__)

BACKUP_VERSION = "1.0"
DEFAULT_BACKUP_FILES = ("giveaways.json", "purchases.json")
_NAME_PATTERN = re.compile(r"^backup-(?P<kind>[a-z0-9_]+)-(?P<stamp>\d{8}-\d{6}(?:-\d+)?)\.json\.gz$")


class BackupError(RuntimeError):
    """Raised when a backup cannot be read, verified or restored."""


@dataclass(slots=True)
class BackupInfo:
    name: str
    kind: str
    created_at: datetime
    size: int


def _sequence(name: str) -> int:
    match = _NAME_PATTERN.match(name)
    suffix = match.group("stamp")[16:] if match else ""
    return int(suffix) if suffix else 0


class BackupManager:
    """Writes, lists, verifies and restores gzip'd bundles of the data files."""

    def __init__(
        self,
        data_dir: Path,
        backup_dir: Path,
        max_backups: int = 20,
        files: Iterable[str] = DEFAULT_BACKUP_FILES,
    ) -> None:
        self.data_dir = data_dir
        self.backup_dir = backup_dir
        self.max_backups = max_backups
        self.files = tuple(files)

    def _path(self, name: str) -> Path:
        if not _NAME_PATTERN.match(name):
            raise BackupError(f"Not a backup name: {name!r}")
        return self.backup_dir / name

    def _new_name(self, kind: str) -> str:
        kind = re.sub(r"[^a-z0-9_]", "_", kind.lower()) or "manual"
        stamp = datetime.now(tz=UTC).strftime("%Y%m%d-%H%M%S")
        taken = [
            _sequence(path.name)
            for path in self.backup_dir.glob(f"backup-{kind}-{stamp}*.json.gz")
            if _NAME_PATTERN.match(path.name)
        ]
        if not taken:
            return f"backup-{kind}-{stamp}.json.gz"
        # Same second: keep counting up so pruned names are never reused.
        return f"backup-{kind}-{stamp}-{max(taken) + 1}.json.gz"

    def create_backup(self, kind: str = "manual") -> BackupInfo:
        """Bundle every data file into one compressed backup and prune old ones."""
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        bundle: Dict[str, Any] = {
            "metadata": {
                "type": kind,
                "timestamp": datetime.now(tz=UTC).isoformat(),
                "version": BACKUP_VERSION,
                "files": list(self.files),
            },
            "data": {},
        }
        for filename in self.files:
            path = self.data_dir / filename
            if not path.exists():
                LOGGER.warning("File not found for backup: %s", filename)
                bundle["data"][filename] = None
                continue
            try:
                bundle["data"][filename] = json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                # A corrupted file is never allowed to overwrite a good snapshot of it.
                LOGGER.warning("Skipping unreadable %s in backup: %s", filename, exc)
                bundle["data"][filename] = None

        name = self._new_name(kind)
        target = self.backup_dir / name
        target.write_bytes(gzip.compress(json.dumps(bundle, indent=2).encode("utf-8")))
        LOGGER.info("Created %s backup %s (%d bytes).", kind, name, target.stat().st_size)
        self.cleanup_old_backups()
        return self._info(target)

    def _info(self, path: Path) -> BackupInfo:
        match = _NAME_PATTERN.match(path.name)
        if match is None:
            raise BackupError(f"Not a backup name: {path.name!r}")
        stamp = match.group("stamp")[:15]
        created_at = datetime.strptime(stamp, "%Y%m%d-%H%M%S").replace(tzinfo=UTC)
        return BackupInfo(
            name=path.name,
            kind=match.group("kind"),
            created_at=created_at,
            size=path.stat().st_size,
        )

    def list_backups(self) -> List[BackupInfo]:
        """Return every backup, newest first."""
        if not self.backup_dir.exists():
            return []
        infos = [
            self._info(path)
            for path in self.backup_dir.glob("backup-*.json.gz")
            if _NAME_PATTERN.match(path.name)
        ]
        infos.sort(key=lambda info: (info.created_at, _sequence(info.name)), reverse=True)
        return infos

    def read_backup(self, name: str) -> Dict[str, Any]:
        path = self._path(name)
        if not path.exists():
            raise BackupError(f"Backup {name} does not exist.")
        try:
            bundle = json.loads(gzip.decompress(path.read_bytes()).decode("utf-8"))
        except (OSError, EOFError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise BackupError(f"Backup {name} is unreadable: {exc}") from exc
        if not isinstance(bundle, dict) or "metadata" not in bundle or not isinstance(bundle.get("data"), dict):
            raise BackupError(f"Backup {name} has an invalid structure.")
        return bundle

    def verify_backup(self, name: str) -> List[str]:
        """Return the problems found in a backup; an empty list means it is intact."""
        try:
            bundle = self.read_backup(name)
        except BackupError as exc:
            return [str(exc)]
        problems = []
        for filename in self.files:
            if filename not in bundle["data"]:
                problems.append(f"missing {filename}")
            elif bundle["data"][filename] is None:
                problems.append(f"empty {filename}")
        return problems

    def restore_backup(self, name: str) -> List[str]:
        """Write the files held in a backup back into the data directory.

        A safety backup of the current files is taken first. Returns the names of
        the restored files.
        """
        bundle = self.read_backup(name)
        self.create_backup("pre_restore")
        restored = []
        self.data_dir.mkdir(parents=True, exist_ok=True)
        for filename, data in bundle["data"].items():
            if filename not in self.files:
                LOGGER.warning("Ignoring unexpected file %s in backup %s", filename, name)
                continue
            if data is None:
                LOGGER.warning("Skipping null data for %s in backup %s", filename, name)
                continue
            write_json_atomic(self.data_dir / filename, data)
            restored.append(filename)
        LOGGER.info("Restored %s from backup %s.", ", ".join(restored) or "nothing", name)
        return restored

    def cleanup_old_backups(self) -> List[str]:
        removed = []
        for info in self.list_backups()[self.max_backups:]:
            (self.backup_dir / info.name).unlink(missing_ok=True)
            removed.append(info.name)
        if removed:
            LOGGER.info("Removed %d old backup(s).", len(removed))
        return removed

    def latest_for(self, filename: str) -> Optional[Any]:
        """Return the newest readable copy of one data file, or ``None``."""
        for info in self.list_backups():
            try:
                bundle = self.read_backup(info.name)
            except BackupError as exc:
                LOGGER.warning("Skipping backup %s: %s", info.name, exc)
                continue
            data = bundle["data"].get(filename)
            if data is not None:
                LOGGER.info("Found %s in backup %s.", filename, info.name)
                return data
        return None


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON to a sibling temp file and swap it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp_path.replace(path)
