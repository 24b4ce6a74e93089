import random
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from fortnite_wheel.backup import BackupManager
from fortnite_wheel.console import HELP_LINES, HISTORY_LIMIT, AdminConsole, ConsoleClient
from fortnite_wheel.giveaway_manager import GiveawayManager
from fortnite_wheel.spinner import WheelSpinner
from fortnite_wheel.storage import StateStorage

from helpers import TINY_TIERS, make_config


class TestAdminConsole(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self._tmp = TemporaryDirectory()
        root = Path(self._tmp.name)
        self.backups = BackupManager(root, root / "backups")
        storage = StateStorage(root, self.backups)
        spinner = WheelSpinner(rng=random.Random(1), tiers=TINY_TIERS)
        self.manager = GiveawayManager(None, make_config(root), storage, spinner)
        await self.manager.load()
        self.spins_dir = root / "spins"
        self.console = AdminConsole(self.manager, self.backups, spins_dir=self.spins_dir)
        self.giveaway = await self.manager.create_giveaway(
            "Season Finale", guild_id=1, channel_id=2, created_by="1"
        )

    async def asyncTearDown(self):
        self._tmp.cleanup()

    async def test_help_and_blank_lines(self):
        assert await self.console.execute("help") == HELP_LINES
        assert await self.console.execute("   ") == []

    async def test_unknown_command(self):
        reply = await self.console.execute("launch rocket")
        assert reply[0].startswith("Unknown command 'launch'")

    async def test_unbalanced_quotes(self):
        reply = await self.console.execute('show "Season')
        assert reply[0].startswith("Parse error")

    async def test_list_and_status(self):
        await self.manager.add_purchase(
            self.giveaway.id, user_id="7", display_name="Jonesy", vbucks=500, added_by="1"
        )
        listing = await self.console.execute("list")
        assert self.giveaway.id in listing[0]
        assert "5 entries" in listing[0]
        status = await self.console.execute("status")
        assert "1 active" in status[0]
        assert "500 V-Bucks" in status[1]

    async def test_show_with_quoted_name(self):
        await self.manager.add_purchase(
            self.giveaway.id, user_id="7", display_name="Jonesy", vbucks=300, added_by="1"
        )
        reply = await self.console.execute('show "Season Finale"')
        assert reply[0].startswith("Season Finale")
        assert "Jonesy (7): 3 entries, 100.0%" in reply[1]

    async def test_show_unknown(self):
        assert await self.console.execute("show nothing") == ["Giveaway 'nothing' was not found."]

    async def test_spin_writes_image(self):
        await self.manager.add_purchase(
            self.giveaway.id, user_id="7", display_name="Jonesy", vbucks=300, added_by="1"
        )
        reply = await self.console.execute(f"spin {self.giveaway.id}")
        assert reply[0].startswith("Winner of Season Finale: Jonesy (7)")
        assert (self.spins_dir / f"{self.giveaway.id}.gif").exists()

    async def test_spin_errors_are_reported(self):
        reply = await self.console.execute("spin Season Finale")
        assert reply[0].startswith("Error:")
        assert self.giveaway.winner is None

    async def test_backup(self):
        reply = await self.console.execute("backup")
        assert reply[0].startswith("Backup created: backup-manual-")
        assert len(self.backups.list_backups()) == 1

    async def test_history_is_kept_per_client(self):
        first = self.console.open_client(("127.0.0.1", 5000))
        second = self.console.open_client(("127.0.0.1", 5001))
        await self.console.execute("list", first)
        await self.console.execute('show "Season Finale"', first)
        await self.console.execute("launch rocket", first)
        assert await self.console.execute("history", first) == [
            "  1. list",
            '  2. show "Season Finale"',
        ]
        assert await self.console.execute("history", second) == ["No command history available."]

    async def test_clients_marks_the_caller(self):
        first = self.console.open_client(("127.0.0.1", 5000))
        second = self.console.open_client(("127.0.0.1", 5001))
        await self.console.execute("status", first)
        reply = await self.console.execute("clients", second)
        assert reply[0] == "Connected clients: 2"
        assert reply[1].startswith("  client-1  127.0.0.1:5000  connected ")
        assert reply[1].endswith("  1 command(s)")
        assert reply[2].startswith("* client-2  127.0.0.1:5001")
        self.console.close_client(first)
        assert len(await self.console.execute("clients", second)) == 2

    def test_history_is_bounded(self):
        client = ConsoleClient(client_id="client-1", peer="local")
        for n in range(HISTORY_LIMIT + 5):
            client.remember(f"show {n}")
        assert len(client.history) == HISTORY_LIMIT
        assert client.history[0] == "show 5"
        assert client.command_count == HISTORY_LIMIT + 5
