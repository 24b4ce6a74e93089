import gzip
import json
import unittest
from datetime import UTC, datetime
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest

from fortnite_wheel.backup import BackupError, BackupManager, write_json_atomic
from fortnite_wheel.models import BotState, Giveaway, Participant, Purchase
from fortnite_wheel.storage import StateStorage, StorageError


def _state():
    giveaway = Giveaway(
        id="GAWABCDE",
        name="Weekly",
        guild_id=1,
        channel_id=2,
        created_by="9",
        created_at=datetime(2026, 10, 1, tzinfo=UTC),
        vbucks_per_entry=100,
        participants={
            "42": Participant(
                user_id="42", display_name="Jonesy", entries=3, vbucks_spent=300,
                purchase_ids=["PURAAAAA"],
            )
        },
    )
    purchase = Purchase(
        purchase_id="PURAAAAA",
        giveaway_id="GAWABCDE",
        user_id="42",
        vbucks_spent=300,
        entries_earned=3,
        added_by="9",
        timestamp=datetime(2026, 10, 2, tzinfo=UTC),
        items=["Renegade Raider"],
    )
    return BotState(giveaways=[giveaway], purchases=[purchase])


class TestBackupManager:
    """Compressed bundles of the data files."""

    def _manager(self, tmp_path, max_backups=20):
        data_dir = tmp_path / "data"
        write_json_atomic(data_dir / "giveaways.json", [{"id": "GAWABCDE", "name": "Weekly"}])
        write_json_atomic(data_dir / "purchases.json", [])
        return BackupManager(data_dir, tmp_path / "backups", max_backups=max_backups)

    def test_create_and_read(self, tmp_path):
        manager = self._manager(tmp_path)
        info = manager.create_backup("manual")
        assert info.kind == "manual"
        assert info.size > 0
        bundle = manager.read_backup(info.name)
        assert bundle["metadata"]["type"] == "manual"
        assert bundle["metadata"]["files"] == ["giveaways.json", "purchases.json"]
        assert bundle["data"]["giveaways.json"][0]["name"] == "Weekly"
        assert manager.verify_backup(info.name) == []

    def test_missing_file_is_recorded_as_empty(self, tmp_path):
        manager = self._manager(tmp_path)
        (manager.data_dir / "purchases.json").unlink()
        info = manager.create_backup("daily")
        assert manager.verify_backup(info.name) == ["empty purchases.json"]

    def test_list_is_newest_first_and_pruned(self, tmp_path):
        manager = self._manager(tmp_path, max_backups=3)
        names = [manager.create_backup("manual").name for _ in range(5)]
        listed = [info.name for info in manager.list_backups()]
        assert listed == list(reversed(names))[:3]

    def test_corrupt_backup_reports_problems(self, tmp_path):
        manager = self._manager(tmp_path)
        info = manager.create_backup("manual")
        (manager.backup_dir / info.name).write_bytes(b"not gzip at all")
        problems = manager.verify_backup(info.name)
        assert len(problems) == 1
        assert "unreadable" in problems[0]

    def test_rejects_foreign_names(self, tmp_path):
        manager = self._manager(tmp_path)
        with pytest.raises(BackupError):
            manager.read_backup("../giveaways.json")

    def test_restore_takes_safety_backup(self, tmp_path):
        manager = self._manager(tmp_path)
        info = manager.create_backup("manual")
        write_json_atomic(manager.data_dir / "giveaways.json", [])
        restored = manager.restore_backup(info.name)
        assert restored == ["giveaways.json", "purchases.json"]
        data = json.loads((manager.data_dir / "giveaways.json").read_text(encoding="utf-8"))
        assert data[0]["id"] == "GAWABCDE"
        assert any(b.kind == "pre_restore" for b in manager.list_backups())

    def test_latest_for_skips_unreadable(self, tmp_path):
        manager = self._manager(tmp_path)
        good = manager.create_backup("manual")
        bad = manager.create_backup("manual")
        (manager.backup_dir / bad.name).write_bytes(gzip.compress(b"{broken"))
        assert manager.latest_for("giveaways.json")[0]["id"] == "GAWABCDE"
        assert good.name != bad.name


class TestStateStorage(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self._tmp = TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.backups = BackupManager(self.root, self.root / "backups")
        self.storage = StateStorage(self.root, self.backups)

    async def asyncTearDown(self):
        self._tmp.cleanup()

    async def test_missing_files_start_empty(self):
        state = await self.storage.load()
        assert state.giveaways == []
        assert state.purchases == []
        assert json.loads(self.storage.giveaways_path.read_text(encoding="utf-8")) == []

    async def test_round_trip(self):
        await self.storage.save(_state())
        loaded = await self.storage.load()
        giveaway = loaded.get_giveaway("gawabcde")
        assert giveaway is not None
        assert giveaway.participants["42"].display_name == "Jonesy"
        assert giveaway.total_entries == 3
        assert loaded.get_purchase("PURAAAAA").items == ["Renegade Raider"]

    async def test_payload_uses_camel_case(self):
        await self.storage.save(_state())
        raw = json.loads(self.storage.giveaways_path.read_text(encoding="utf-8"))
        assert raw[0]["vbucksPerEntry"] == 100
        assert raw[0]["participants"]["42"]["vbucksSpent"] == 300

    async def test_corrupted_file_restored_from_backup(self):
        await self.storage.save(_state())
        self.backups.create_backup("daily")
        self.storage.giveaways_path.write_text("{ nope", encoding="utf-8")
        loaded = await self.storage.load()
        assert loaded.get_giveaway("GAWABCDE") is not None
        assert (self.root / "giveaways.json.corrupt").exists()

    async def test_undecodable_bytes_restored_from_backup(self):
        await self.storage.save(_state())
        self.backups.create_backup("daily")
        self.storage.giveaways_path.write_bytes(b"[\xff\xfe\x00 broken")
        loaded = await self.storage.load()
        assert loaded.get_giveaway("GAWABCDE") is not None
        assert (self.root / "giveaways.json.corrupt").read_bytes() == b"[\xff\xfe\x00 broken"

    def test_backup_skips_undecodable_file(self):
        write_json_atomic(self.root / "purchases.json", [])
        (self.root / "giveaways.json").write_bytes(b"\xff\xfe")
        info = self.backups.create_backup("manual")
        assert self.backups.read_backup(info.name)["data"]["giveaways.json"] is None

    async def test_corrupted_file_without_backup(self):
        self.storage.giveaways_path.write_text("{ nope", encoding="utf-8")
        with self.assertRaises(StorageError):
            await self.storage.load()

    async def test_keyed_payload_is_accepted(self):
        payload = {"GAWABCDE": _state().giveaways[0].to_payload()}
        write_json_atomic(self.storage.giveaways_path, payload)
        loaded = await self.storage.load()
        assert [g.id for g in loaded.giveaways] == ["GAWABCDE"]
