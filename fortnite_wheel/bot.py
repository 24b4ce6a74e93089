from __future__ import annotations

import argparse
import asyncio
import io
import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Optional

import aiohttp
import discord
from discord import app_commands
from discord.ext import commands, tasks

from .analysis import AnalysisError, analyze_channel, parse_window
from .backup import BackupManager
from .config import Config, ConfigError, load_config
from .console import AdminConsole
from .errors import GenerationTimedOut, NoParticipantsError, PayloadTooLargeError, WheelError
from .fortnite_api import FortniteApiClient, FortniteApiError
from .giveaway_manager import GiveawayError, GiveawayManager
from .storage import StateStorage
from .views import (
    InstantResultView,
    InteractionResultSink,
    build_analysis_embed,
    build_creator_code_embed,
    build_help_embed,
    build_time_embed,
    build_tracking_embed,
)

PERMISSION_LOG = logging.getLogger("giveaway.permissions")
ENV_PATH = Path(".env")

QUALITY_CHOICES = [
    app_commands.Choice(name="High (small giveaways)", value="high"),
    app_commands.Choice(name="Balanced", value="balanced"),
    app_commands.Choice(name="Compact (fastest, smallest file)", value="compact"),
]
ITEM_TYPE_CHOICES = [
    app_commands.Choice(name=label, value=label.lower())
    for label in ("Outfit", "Pickaxe", "Emote", "Glider", "Backpack", "Wrap", "Music")
]
RARITY_CHOICES = [
    app_commands.Choice(name=label, value=label.lower())
    for label in ("Common", "Uncommon", "Rare", "Epic", "Legendary")
]
SERIES_CHOICES = [
    app_commands.Choice(name="Marvel", value="marvel"),
    app_commands.Choice(name="DC", value="dc"),
    app_commands.Choice(name="Star Wars", value="star_wars"),
    app_commands.Choice(name="Gaming Legends", value="gaming_legends"),
]
USER_AGENT = "FortniteWheelBot/1.0"


def _load_env_file(path: Path = ENV_PATH) -> None:
    if not path.exists():
        return
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return
    for line in raw.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        key = key.strip()
        if not key:
            continue
        value = value.strip()
        if value and ((value[0] == value[-1]) and value.startswith(("'", '"'))):
            value = value[1:-1]
        os.environ.setdefault(key, value)


def configure_logging(level: str) -> None:
    console_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_dir = Path("logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_dir / "log.txt", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)
    # Pillow's plugin chatter drowns the spin logs at DEBUG.
    logging.getLogger("PIL").setLevel(logging.INFO)


class GiveawayBot(commands.Bot):
    def __init__(self, config: Config, storage: StateStorage, backups: BackupManager) -> None:
        intents = discord.Intents.default()
        intents.message_content = config.analysis.message_content_intent

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            application_id=config.application_id,
        )
        self.config = config
        self.backups = backups
        self.manager = GiveawayManager(self, config, storage)
        self.console: Optional[AdminConsole] = None
        if config.console.enabled:
            self.console = AdminConsole(
                self.manager,
                backups,
                host=config.console.host,
                port=config.console.port,
                spins_dir=config.storage.data_dir / "spins",
            )
        self.http_session: Optional[aiohttp.ClientSession] = None
        self.fortnite_api: Optional[FortniteApiClient] = None

    async def setup_hook(self) -> None:
        await self.manager.load()
        self.http_session = aiohttp.ClientSession(
            headers={"User-Agent": USER_AGENT},
            timeout=aiohttp.ClientTimeout(total=self.config.fortnite_api.timeout_seconds),
        )
        self.fortnite_api = FortniteApiClient(
            self.http_session,
            fnbr_api_key=self.config.fortnite_api.fnbr_api_key,
            fortnite_api_key=self.config.fortnite_api.fortnite_api_key,
        )
        self._daily_backup.start()
        if self.console is not None:
            await self.console.start()
        await self.tree.sync()
        dev_guild_id = self.config.permissions.development_guild_id
        if dev_guild_id:
            guild = discord.Object(dev_guild_id)
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)

    @tasks.loop(hours=24)
    async def _daily_backup(self) -> None:
        try:
            info = await asyncio.to_thread(self.backups.create_backup, "scheduled")
        except OSError as exc:
            logging.getLogger(__name__).error("Scheduled backup failed: %s", exc)
            return
        logging.getLogger(__name__).info("Scheduled backup written: %s", info.name)

    async def close(self) -> None:
        if self.console is not None:
            await self.console.stop()
        self._daily_backup.cancel()
        if self.http_session is not None:
            await self.http_session.close()
        await super().close()

    async def on_ready(self) -> None:
        logging.getLogger(__name__).info(
            "Logged in as %s (%s)", self.user, self.user.id  # type: ignore[union-attr]
        )


async def admin_required(
    interaction: discord.Interaction, manager: GiveawayManager
) -> Optional[str]:
    command_name = getattr(getattr(interaction, "command", None), "name", "unknown")
    user = interaction.user

    guild = interaction.guild
    if guild is None:
        PERMISSION_LOG.debug(
            "Denied command %s for user %s: non-guild context.",
            command_name,
            user.id,
        )
        return "This command can only be used inside a guild."

    member: Optional[discord.Member]
    if isinstance(user, discord.Member):
        member = user
    else:
        member = guild.get_member(user.id)
        if member is None:
            try:
                member = await guild.fetch_member(user.id)
            except (discord.NotFound, discord.Forbidden, discord.HTTPException):
                member = None

    if member is None:
        PERMISSION_LOG.warning(
            "Denied command %s for user %s: unable to resolve guild member.",
            command_name,
            user.id,
        )
        return "You do not have permission to manage giveaways."

    if not manager.is_admin(
        member,
        guild_owner_id=getattr(guild, "owner_id", None),
        base_permissions=getattr(interaction, "permissions", None),
    ):
        PERMISSION_LOG.warning(
            "Denied command %s for user %s: missing giveaway admin rights (roles=%s).",
            command_name,
            member.id,
            [role.id for role in member.roles],
        )
        return "You do not have permission to manage giveaways."

    PERMISSION_LOG.debug(
        "Authorized command %s for user %s.", command_name, member.id
    )
    return None


def build_bot(config_path: Path) -> GiveawayBot:
    _load_env_file()
    config = load_config(config_path)
    configure_logging(config.logging.level)
    backups = BackupManager(
        config.storage.data_dir,
        config.storage.backup_dir,
        config.storage.max_backups,
    )
    storage = StateStorage(config.storage.data_dir, backups)
    return GiveawayBot(config, storage, backups)


def _format_items(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def register_commands(bot: GiveawayBot) -> None:
    manager = bot.manager

    @bot.tree.command(name="creategaw", description="Create a new V-Bucks giveaway.")
    @app_commands.describe(
        name="Unique name for the giveaway.",
        vbucks_per_entry="V-Bucks needed for one entry (defaults to the configured value).",
        channel="Channel that hosts the giveaway (defaults to this channel).",
        start_date="Optional start date shown with the giveaway.",
        end_date="Optional end date shown with the giveaway.",
    )
    async def creategaw(
        interaction: discord.Interaction,
        name: str,
        vbucks_per_entry: Optional[app_commands.Range[int, 1, 100000]] = None,
        channel: Optional[discord.TextChannel] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> None:
        error = await admin_required(interaction, manager)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        target = channel or interaction.channel
        try:
            giveaway = await manager.create_giveaway(
                name,
                guild_id=interaction.guild_id or 0,
                channel_id=getattr(target, "id", 0),
                created_by=str(interaction.user.id),
                vbucks_per_entry=vbucks_per_entry,
                start_date=start_date,
                end_date=end_date,
            )
        except GiveawayError as exc:
            await interaction.followup.send(str(exc), ephemeral=True)
            return
        await interaction.followup.send(
            f"Giveaway **{giveaway.name}** created with ID `{giveaway.id}` "
            f"({giveaway.vbucks_per_entry} V-Bucks per entry).",
            ephemeral=True,
        )

    @bot.tree.command(name="listgaws", description="List the giveaways of this server.")
    @app_commands.describe(active_only="Only show giveaways that still accept purchases.")
    async def listgaws(interaction: discord.Interaction, active_only: bool = False) -> None:
        if not interaction.guild:
            await interaction.response.send_message(
                "This command is guild-only.", ephemeral=True
            )
            return
        await interaction.response.defer(ephemeral=True)
        giveaways = manager.list_giveaways(interaction.guild.id, active_only=active_only)
        if not giveaways:
            await interaction.followup.send(
                "No giveaways have been created yet.", ephemeral=True
            )
            return
        lines = []
        for giveaway in giveaways:
            status = "Active" if giveaway.active else "Closed"
            winner = f" • winner <@{giveaway.winner}>" if giveaway.winner else ""
            lines.append(
                f"- `{giveaway.id}` • **{giveaway.name}** • {status} • "
                f"{len(giveaway.participants)} participant(s) • "
                f"{giveaway.total_entries} entries{winner}"
            )
        await interaction.followup.send("\n".join(lines), ephemeral=True)

    @bot.tree.command(name="editgaw", description="Edit a giveaway.")
    @app_commands.describe(
        giveaway="Giveaway ID or name.",
        name="New name.",
        vbucks_per_entry="New price of one entry; existing purchases are re-rated.",
        active="Open or close the giveaway for purchases.",
        reset_winner="Clear the recorded winner so the wheel can be spun again.",
    )
    async def editgaw(
        interaction: discord.Interaction,
        giveaway: str,
        name: Optional[str] = None,
        vbucks_per_entry: Optional[app_commands.Range[int, 1, 100000]] = None,
        active: Optional[bool] = None,
        reset_winner: bool = False,
    ) -> None:
        error = await admin_required(interaction, manager)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        try:
            updated = await manager.edit_giveaway(
                giveaway,
                name=name,
                vbucks_per_entry=vbucks_per_entry,
                active=active,
                reset_winner=reset_winner,
            )
        except GiveawayError as exc:
            await interaction.followup.send(str(exc), ephemeral=True)
            return
        await interaction.followup.send(
            f"Giveaway `{updated.id}` updated.", ephemeral=True
        )

    @bot.tree.command(name="deletegaw", description="Delete a giveaway and its purchases.")
    @app_commands.describe(giveaway="Giveaway ID or name.")
    async def deletegaw(interaction: discord.Interaction, giveaway: str) -> None:
        error = await admin_required(interaction, manager)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        try:
            deleted, purchase_count = await manager.delete_giveaway(giveaway)
        except GiveawayError as exc:
            await interaction.followup.send(str(exc), ephemeral=True)
            return
        await interaction.followup.send(
            f"Giveaway **{deleted.name}** (`{deleted.id}`) deleted "
            f"together with {purchase_count} purchase(s).",
            ephemeral=True,
        )

    addpurchase = app_commands.Group(
        name="addpurchase", description="Record a purchase for a giveaway."
    )

    @addpurchase.command(name="vbucks", description="Record a purchase by its V-Bucks amount.")
    @app_commands.describe(
        giveaway="Giveaway ID or name.",
        user="Member who made the purchase.",
        vbucks="V-Bucks spent.",
        items="Optional comma-separated list of purchased items.",
    )
    async def addpurchase_vbucks(
        interaction: discord.Interaction,
        giveaway: str,
        user: discord.Member,
        vbucks: app_commands.Range[int, 1, 1000000],
        items: Optional[str] = None,
    ) -> None:
        error = await admin_required(interaction, manager)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        try:
            purchase, participant = await manager.add_purchase(
                giveaway,
                user_id=str(user.id),
                display_name=user.display_name,
                username=user.name,
                vbucks=vbucks,
                added_by=str(interaction.user.id),
                items=_format_items(items),
            )
        except GiveawayError as exc:
            await interaction.followup.send(str(exc), ephemeral=True)
            return
        await interaction.followup.send(
            f"Purchase `{purchase.purchase_id}` recorded: {user.mention} earned "
            f"{purchase.entries_earned} entr{'y' if purchase.entries_earned == 1 else 'ies'} "
            f"({participant.entries} total).",
            ephemeral=True,
        )

    @addpurchase.command(name="item", description="Record a purchase of a shop item at its V-Bucks price.")
    @app_commands.describe(
        giveaway="Giveaway ID or name.",
        user="Member who made the purchase.",
        name="Name of the item, e.g. Renegade Raider.",
        item_type="Narrow the search to one item type.",
        rarity="Narrow the search to one rarity.",
        series="Narrow the search to one series.",
    )
    @app_commands.rename(item_type="type")
    @app_commands.choices(item_type=ITEM_TYPE_CHOICES, rarity=RARITY_CHOICES, series=SERIES_CHOICES)
    async def addpurchase_item(
        interaction: discord.Interaction,
        giveaway: str,
        user: discord.Member,
        name: str,
        item_type: Optional[app_commands.Choice[str]] = None,
        rarity: Optional[app_commands.Choice[str]] = None,
        series: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        error = await admin_required(interaction, manager)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return
        if bot.fortnite_api is None:
            await interaction.response.send_message(
                "Item lookups are not available yet, try again in a moment.", ephemeral=True
            )
            return

        await interaction.response.defer(ephemeral=True)
        try:
            purchase, participant, item = await manager.add_item_purchase(
                giveaway,
                pricer=bot.fortnite_api,
                item_name=name,
                item_type=item_type.value if item_type else None,
                rarity=rarity.value if rarity else None,
                series=series.value if series else None,
                user_id=str(user.id),
                display_name=user.display_name,
                username=user.name,
                added_by=str(interaction.user.id),
            )
        except (GiveawayError, FortniteApiError) as exc:
            await interaction.followup.send(str(exc), ephemeral=True)
            return
        await interaction.followup.send(
            f"Purchase `{purchase.purchase_id}` recorded: {user.mention} bought "
            f"**{item.name}** for {item.price} V-Bucks and earned "
            f"{purchase.entries_earned} entr{'y' if purchase.entries_earned == 1 else 'ies'} "
            f"({participant.entries} total).",
            ephemeral=True,
        )

    bot.tree.add_command(addpurchase)

    @bot.tree.command(name="removepurchase", description="Remove a recorded purchase.")
    @app_commands.describe(purchase_id="Purchase ID (PUR…).")
    async def removepurchase(interaction: discord.Interaction, purchase_id: str) -> None:
        error = await admin_required(interaction, manager)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        try:
            purchase, participant = await manager.remove_purchase(purchase_id)
        except GiveawayError as exc:
            await interaction.followup.send(str(exc), ephemeral=True)
            return
        remaining = participant.entries if participant else 0
        await interaction.followup.send(
            f"Purchase `{purchase.purchase_id}` removed; <@{purchase.user_id}> "
            f"now has {remaining} entries.",
            ephemeral=True,
        )

    @bot.tree.command(name="spin", description="Spin the wheel and draw the winner.")
    @app_commands.describe(
        giveaway="Giveaway ID or name.",
        skip_animation="Post a single image of the result instead of the animation.",
        quality="Force a render quality instead of choosing by participant count.",
    )
    @app_commands.choices(quality=QUALITY_CHOICES)
    async def spin(
        interaction: discord.Interaction,
        giveaway: str,
        skip_animation: bool = False,
        quality: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        error = await admin_required(interaction, manager)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return

        await interaction.response.defer(thinking=True)
        try:
            await manager.spin(
                giveaway,
                skip_animation=skip_animation,
                quality=quality.value if quality else None,
                sink=InteractionResultSink(interaction),
            )
        except NoParticipantsError:
            await interaction.followup.send(
                "Nobody has entered this giveaway yet; add purchases first.", ephemeral=True
            )
        except (PayloadTooLargeError, GenerationTimedOut) as exc:
            target = manager.get_giveaway(giveaway)
            await interaction.followup.send(
                f"⚠️ {exc} The winner has not been drawn.",
                view=InstantResultView(manager, target.id) if target else discord.utils.MISSING,
            )
        except (GiveawayError, WheelError) as exc:
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
        except discord.HTTPException as exc:
            logging.getLogger(__name__).error(
                "Winner of %s was recorded but could not be announced: %s", giveaway, exc
            )

    @bot.tree.command(
        name="showcurrentwheelstate",
        description="Show the wheel with the current entries and odds.",
    )
    @app_commands.describe(giveaway="Giveaway ID or name.")
    async def showcurrentwheelstate(interaction: discord.Interaction, giveaway: str) -> None:
        await interaction.response.defer(thinking=True)
        try:
            target, outcome = await manager.wheel_preview(giveaway)
        except (GiveawayError, WheelError) as exc:
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
            return

        total = target.total_entries or 1
        ranked = sorted(target.participants.values(), key=lambda p: -p.entries)
        odds = "\n".join(
            f"**{p.display_name}**: {p.entries} entries ({p.entries / total:.1%})"
            for p in ranked[:15]
        ) or "No participants yet."
        if len(ranked) > 15:
            odds += f"\n…and {len(ranked) - 15} more."
        embed = discord.Embed(
            title=f"🎡 {target.name}",
            description=odds,
            color=discord.Color.blue() if target.active else discord.Color.dark_gray(),
        )
        embed.add_field(name="Total entries", value=str(target.total_entries), inline=True)
        embed.add_field(name="V-Bucks per entry", value=str(target.vbucks_per_entry), inline=True)
        embed.set_image(url=f"attachment://{outcome.filename}")
        embed.set_footer(text=f"Giveaway ID: {target.id}")
        await interaction.followup.send(
            embed=embed,
            file=discord.File(io.BytesIO(outcome.image or b""), filename=outcome.filename),
        )

    @bot.tree.command(name="stats", description="Show giveaway statistics for this server.")
    async def stats(interaction: discord.Interaction) -> None:
        summary = manager.stats(interaction.guild_id)
        embed = discord.Embed(title="📊 Giveaway statistics", color=discord.Color.blue())
        embed.add_field(
            name="Giveaways",
            value=f"{summary.total_giveaways} ({summary.active_giveaways} active, "
            f"{summary.completed_giveaways} completed)",
            inline=False,
        )
        embed.add_field(name="Purchases", value=str(summary.total_purchases), inline=True)
        embed.add_field(name="V-Bucks tracked", value=str(summary.total_vbucks), inline=True)
        embed.add_field(name="Entries", value=str(summary.total_entries), inline=True)
        embed.add_field(
            name="Participants",
            value=f"{summary.unique_participants} "
            f"(avg {summary.average_entries_per_user:.1f} entries)",
            inline=True,
        )
        if summary.top_spenders:
            embed.add_field(
                name="Top spenders",
                value="\n".join(
                    f"{rank}. <@{user_id}>: {spent} V-Bucks"
                    for rank, (user_id, _name, spent) in enumerate(summary.top_spenders, start=1)
                ),
                inline=False,
            )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @bot.tree.command(name="backup", description="Create or list data backups.")
    @app_commands.describe(list_only="List the existing backups instead of creating one.")
    async def backup(interaction: discord.Interaction, list_only: bool = False) -> None:
        error = await admin_required(interaction, manager)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        if list_only:
            backups = await asyncio.to_thread(bot.backups.list_backups)
            lines = [
                f"- `{info.name}` • {info.kind} • {info.size / 1024:.1f} KB"
                for info in backups[:20]
            ]
            await interaction.followup.send("\n".join(lines) or "No backups yet.", ephemeral=True)
            return
        try:
            info = await asyncio.to_thread(bot.backups.create_backup, "manual")
        except OSError as exc:
            await interaction.followup.send(f"Backup failed: {exc}", ephemeral=True)
            return
        await interaction.followup.send(
            f"Backup `{info.name}` created ({info.size / 1024:.1f} KB).", ephemeral=True
        )

    @bot.tree.command(name="creatorcode", description="Check Fortnite creator code information.")
    @app_commands.describe(code="Creator code to check (without spaces).")
    async def creatorcode(interaction: discord.Interaction, code: str) -> None:
        if bot.fortnite_api is None:
            await interaction.response.send_message(
                "Creator code lookups are not available yet, try again in a moment.",
                ephemeral=True,
            )
            return
        await interaction.response.defer(ephemeral=True)
        code = code.strip()
        try:
            info = await bot.fortnite_api.get_creator_code(code)
        except FortniteApiError as exc:
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
            return
        await interaction.followup.send(embed=build_creator_code_embed(code, info), ephemeral=True)

    @bot.tree.command(
        name="analyze",
        description="Count image/video posts per member in a channel over a date window.",
    )
    @app_commands.describe(
        channel="Channel to scan.",
        start_date="Start date (MM/DD/YYYY, UTC).",
        start_time="Start time (HH:MM AM/PM), defaults to midnight.",
        end_date="End date (MM/DD/YYYY, UTC).",
        end_time="End time (HH:MM AM/PM), defaults to 11:59 PM.",
    )
    async def analyze(
        interaction: discord.Interaction,
        channel: discord.TextChannel,
        start_date: Optional[str] = None,
        start_time: Optional[str] = None,
        end_date: Optional[str] = None,
        end_time: Optional[str] = None,
    ) -> None:
        error = await admin_required(interaction, manager)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        try:
            start, end = parse_window(start_date, start_time, end_date, end_time)
            result = await analyze_channel(channel, start=start, end=end)
        except AnalysisError as exc:
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
            return
        except discord.Forbidden:
            await interaction.followup.send(
                f"❌ I cannot read the message history of {channel.mention}.", ephemeral=True
            )
            return
        embed = build_analysis_embed(channel.mention, result)
        if not bot.intents.message_content:
            embed.set_footer(
                text="Message content intent is off: attachments of most messages are not visible."
            )
        await interaction.followup.send(embed=embed, ephemeral=True)

    @bot.tree.command(
        name="trackmessages",
        description="Check which of one member's messages in a channel carry an image or video.",
    )
    @app_commands.describe(
        member="Member to check.",
        channel="Channel to scan.",
        start_date="Start date (MM/DD/YYYY, UTC).",
        start_time="Start time (HH:MM AM/PM), defaults to midnight.",
        end_date="End date (MM/DD/YYYY, UTC).",
        end_time="End time (HH:MM AM/PM), defaults to 11:59 PM.",
    )
    async def trackmessages(
        interaction: discord.Interaction,
        member: discord.Member,
        channel: discord.TextChannel,
        start_date: Optional[str] = None,
        start_time: Optional[str] = None,
        end_date: Optional[str] = None,
        end_time: Optional[str] = None,
    ) -> None:
        error = await admin_required(interaction, manager)
        if error:
            await interaction.response.send_message(error, ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        try:
            start, end = parse_window(start_date, start_time, end_date, end_time)
            result = await analyze_channel(channel, start=start, end=end, author_id=member.id)
        except AnalysisError as exc:
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
            return
        except discord.Forbidden:
            await interaction.followup.send(
                f"❌ I cannot read the message history of {channel.mention}.", ephemeral=True
            )
            return
        embed = build_tracking_embed(member.mention, channel.mention, result)
        await interaction.followup.send(embed=embed, ephemeral=True)

    @bot.tree.command(name="time", description="Show the current time in London, New York and Los Angeles.")
    async def time_command(interaction: discord.Interaction) -> None:
        await interaction.response.send_message(embed=build_time_embed(datetime.now(UTC)), ephemeral=True)

    @bot.tree.command(name="help", description="List the bot commands or explain one of them.")
    @app_commands.describe(command="Command to explain, e.g. spin or addpurchase item.")
    async def help_command(interaction: discord.Interaction, command: Optional[str] = None) -> None:
        embed = build_help_embed(bot.tree.get_commands(), command)
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def main() -> None:
    parser = argparse.ArgumentParser(description="Fortnite V-Bucks giveaway wheel bot")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config") / "config.yaml",
        help="Path to the bot configuration file.",
    )
    args = parser.parse_args()

    try:
        bot = build_bot(args.config)
    except ConfigError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc

    register_commands(bot)

    async with bot:
        await bot.start(bot.config.token)


if __name__ == "__main__":
    asyncio.run(main())
