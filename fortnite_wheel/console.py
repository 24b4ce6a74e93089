"""Line-oriented TCP admin console.

Each connected client sends one command per line and receives plain text
lines back. Only bind it to a trusted interface; it performs no
authentication.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import shlex
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .backup import BackupManager
from .errors import WheelError
from .giveaway_manager import GiveawayError, GiveawayManager
from .models import Giveaway
from .spinner import SpinOutcome

log = logging.getLogger(__name__)

HISTORY_LIMIT = 50

HELP_LINES = [
    "help               show this list",
    "status             giveaway and purchase totals",
    "list               list every giveaway",
    "show <id|name>     participants and odds of one giveaway",
    "spin <id|name>     draw the winner (image saved to disk)",
    "backup             create a manual backup",
    "history            commands sent in this session",
    "clients            connected console sessions",
    "quit               close this session",
]


@dataclass(slots=True)
class ConsoleClient:
    client_id: str
    peer: str
    connected_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    history: List[str] = field(default_factory=list)
    command_count: int = 0

    def remember(self, line: str) -> None:
        self.command_count += 1
        self.history.append(line)
        del self.history[:-HISTORY_LIMIT]


Handler = Callable[[List[str], Optional[ConsoleClient]], Awaitable[List[str]]]


class FileResultSink:
    """Writes spin images to a directory and reports where they went."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.lines: List[str] = []

    async def deliver_result(self, giveaway: Giveaway, outcome: SpinOutcome) -> None:
        winner = outcome.require_winner().participant
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"{giveaway.id}.{outcome.image_format or 'bin'}"
        await asyncio.to_thread(path.write_bytes, outcome.image or b"")
        self.lines = [
            f"Winner of {giveaway.name}: {winner.display_name} ({winner.user_id}) "
            f"with {winner.entries}/{giveaway.total_entries} entries",
            f"Image: {path} ({outcome.byte_length} bytes)",
        ]


class AdminConsole:
    def __init__(
        self,
        manager: GiveawayManager,
        backups: BackupManager,
        *,
        host: str = "127.0.0.1",
        port: int = 8765,
        spins_dir: Path = Path("data") / "spins",
    ) -> None:
        self.manager = manager
        self.backups = backups
        self.host = host
        self.port = port
        self.spins_dir = spins_dir
        self._server: Optional[asyncio.Server] = None
        self._handlers: Dict[str, Handler] = {
            "help": self._help,
            "status": self._status,
            "list": self._list,
            "show": self._show,
            "spin": self._spin,
            "backup": self._backup,
            "history": self._history,
            "clients": self._clients_command,
        }
        self.clients: Dict[str, ConsoleClient] = {}
        self._client_ids = itertools.count(1)

    def open_client(self, peer: Any) -> ConsoleClient:
        if isinstance(peer, tuple):
            peer = ":".join(str(part) for part in peer[:2])
        client = ConsoleClient(client_id=f"client-{next(self._client_ids)}", peer=str(peer))
        self.clients[client.client_id] = client
        return client

    def close_client(self, client: ConsoleClient) -> None:
        self.clients.pop(client.client_id, None)

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle_client, self.host, self.port)
        log.info("Admin console listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        log.info("Admin console stopped.")

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        client = self.open_client(writer.get_extra_info("peername"))
        log.info("Console client connected: %s (%s)", client.client_id, client.peer)
        writer.write(b"Fortnite wheel console. Type 'help' for commands.\n> ")
        await writer.drain()
        try:
            while True:
                raw = await reader.readline()
                if not raw:
                    break
                line = raw.decode("utf-8", errors="replace").strip()
                if line.lower() in ("quit", "exit"):
                    writer.write(b"Bye.\n")
                    await writer.drain()
                    break
                for reply in await self.execute(line, client):
                    writer.write(reply.encode("utf-8") + b"\n")
                writer.write(b"> ")
                await writer.drain()
        except ConnectionError as exc:
            log.info("Console client %s dropped: %s", client.client_id, exc)
        finally:
            self.close_client(client)
            writer.close()
            await writer.wait_closed()
            log.info("Console client disconnected: %s", client.client_id)

    async def execute(self, line: str, client: Optional[ConsoleClient] = None) -> List[str]:
        """Run one console command and return the reply lines."""
        try:
            parts = shlex.split(line)
        except ValueError as exc:
            return [f"Parse error: {exc}"]
        if not parts:
            return []
        command, args = parts[0].lower(), parts[1:]
        handler = self._handlers.get(command)
        if handler is None:
            return [f"Unknown command '{command}'. Type 'help' for commands."]
        if client is not None and command != "history":
            client.remember(line)
        log.debug("Console command: %s %s", command, args)
        try:
            return await handler(args, client)
        except (GiveawayError, WheelError) as exc:
            return [f"Error: {exc}"]

    async def _history(self, args: List[str], client: Optional[ConsoleClient]) -> List[str]:
        if client is None or not client.history:
            return ["No command history available."]
        return [f"{index:>3}. {line}" for index, line in enumerate(client.history, start=1)]

    async def _clients_command(
        self, args: List[str], client: Optional[ConsoleClient]
    ) -> List[str]:
        if not self.clients:
            return ["No console clients connected."]
        lines = [f"Connected clients: {len(self.clients)}"]
        for other in self.clients.values():
            marker = "*" if client is not None and other.client_id == client.client_id else " "
            lines.append(
                f"{marker} {other.client_id}  {other.peer}  "
                f"connected {other.connected_at:%Y-%m-%d %H:%M:%S} UTC  "
                f"{other.command_count} command(s)"
            )
        return lines

    async def _help(self, args: List[str], client: Optional[ConsoleClient]) -> List[str]:
        return list(HELP_LINES)

    async def _status(self, args: List[str], client: Optional[ConsoleClient]) -> List[str]:
        stats = self.manager.stats()
        return [
            f"Giveaways: {stats.total_giveaways} ({stats.active_giveaways} active, "
            f"{stats.completed_giveaways} completed)",
            f"Purchases: {stats.total_purchases} totalling {stats.total_vbucks} V-Bucks",
            f"Entries: {stats.total_entries} across {stats.unique_participants} participant(s)",
        ]

    async def _list(self, args: List[str], client: Optional[ConsoleClient]) -> List[str]:
        giveaways = self.manager.list_giveaways()
        if not giveaways:
            return ["No giveaways have been created yet."]
        return [
            f"{g.id}  {g.name}  {'active' if g.active else 'closed'}  "
            f"{len(g.participants)} participant(s)  {g.total_entries} entries"
            for g in giveaways
        ]

    async def _show(self, args: List[str], client: Optional[ConsoleClient]) -> List[str]:
        if not args:
            return ["Usage: show <id|name>"]
        key = " ".join(args)
        giveaway = self.manager.get_giveaway(key)
        if giveaway is None:
            return [f"Giveaway '{key}' was not found."]
        lines = [
            f"{giveaway.name} ({giveaway.id}), {giveaway.vbucks_per_entry} V-Bucks per entry",
        ]
        if giveaway.winner:
            lines.append(f"Winner: {giveaway.winner}")
        total = giveaway.total_entries or 1
        ranked = sorted(giveaway.participants.values(), key=lambda p: -p.entries)
        for participant in ranked:
            lines.append(
                f"  {participant.display_name} ({participant.user_id}): "
                f"{participant.entries} entries, {participant.entries / total:.1%}"
            )
        if not giveaway.participants:
            lines.append("  No participants yet.")
        return lines

    async def _spin(self, args: List[str], client: Optional[ConsoleClient]) -> List[str]:
        if not args:
            return ["Usage: spin <id|name>"]
        sink = FileResultSink(self.spins_dir)
        await self.manager.spin(" ".join(args), sink=sink)
        return sink.lines

    async def _backup(self, args: List[str], client: Optional[ConsoleClient]) -> List[str]:
        info = await asyncio.to_thread(self.backups.create_backup, "manual")
        return [f"Backup created: {info.name} ({info.size} bytes)"]
