from __future__ import annotations

import io
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

import discord
from discord import app_commands

from .analysis import ChannelAnalysis
from .errors import WheelError
from .fortnite_api import CreatorCode
from .giveaway_manager import GiveawayError
from .models import Giveaway
from .spinner import SpinOutcome

log = logging.getLogger(__name__)

ANALYSIS_TOP = 10
TRACKED_SHOWN = 10
WORLD_CLOCKS = (
    ("🇬🇧 London", "Europe/London"),
    ("🇺🇸 New York", "America/New_York"),
    ("🇺🇸 Los Angeles", "America/Los_Angeles"),
)
CLOCK_FORMAT = "%b %d, %Y - %I:%M %p"
HELP_CATEGORIES = {
    "creategaw": "Giveaways",
    "listgaws": "Giveaways",
    "editgaw": "Giveaways",
    "deletegaw": "Giveaways",
    "addpurchase": "Purchases",
    "removepurchase": "Purchases",
    "spin": "Wheel",
    "showcurrentwheelstate": "Wheel",
    "stats": "Tools",
    "backup": "Tools",
    "analyze": "Tools",
    "trackmessages": "Tools",
    "time": "Tools",
    "creatorcode": "Tools",
    "help": "Tools",
}


def build_result_embed(
    giveaway: Giveaway, outcome: SpinOutcome, *, with_image: bool = True
) -> discord.Embed:
    participant = outcome.require_winner().participant
    total = giveaway.total_entries or 1
    embed = discord.Embed(
        title=f"🎉 {giveaway.name} 🎉",
        description=f"Congratulations <@{participant.user_id}>!",
        color=discord.Color.gold(),
    )
    embed.add_field(name="Winner", value=participant.display_name, inline=True)
    embed.add_field(
        name="Entries",
        value=f"{participant.entries} ({participant.entries / total:.1%})",
        inline=True,
    )
    embed.add_field(name="Participants", value=str(len(giveaway.participants)), inline=True)
    if with_image:
        embed.set_image(url=f"attachment://{outcome.filename}")
    embed.set_footer(text=f"Giveaway ID: {giveaway.id}")
    return embed


def _command_usage(command: app_commands.Command) -> str:
    parts = [f"/{command.qualified_name}"]
    for parameter in command.parameters:
        parts.append(f"<{parameter.display_name}>" if parameter.required else f"[{parameter.display_name}]")
    return " ".join(parts)


def _flatten(commands: Iterable[Any]) -> List[app_commands.Command]:
    flat: List[app_commands.Command] = []
    for command in commands:
        if isinstance(command, app_commands.Group):
            flat.extend(_flatten(command.commands))
        elif isinstance(command, app_commands.Command):
            flat.append(command)
    return flat


def build_help_embed(commands: Iterable[Any], command_name: Optional[str] = None) -> discord.Embed:
    """Overview of every slash command, or the options of one of them.

    ``command_name`` matches a command or a group; a group shows all of its
    subcommands.
    """
    available = _flatten(commands)
    if command_name:
        wanted = command_name.strip().lstrip("/").lower()
        matches = [
            c for c in available
            if c.qualified_name.lower() == wanted or c.qualified_name.lower().startswith(f"{wanted} ")
        ]
        if not matches:
            return discord.Embed(
                title="❓ Unknown command",
                description=f"There is no command called `/{wanted}`. Run `/help` for the full list.",
                color=discord.Color.red(),
            )
        embed = discord.Embed(title=f"📖 /{wanted}", color=discord.Color.blue())
        for command in matches:
            options = "\n".join(
                f"`{p.display_name}`{'' if p.required else ' (optional)'}: {p.description}"
                for p in command.parameters
            ) or "No options."
            embed.add_field(
                name=_command_usage(command),
                value=f"{command.description}\n{options}",
                inline=False,
            )
        return embed

    embed = discord.Embed(
        title="🎡 Giveaway bot commands",
        description="Run `/help command:<name>` for the options of one command.",
        color=discord.Color.blue(),
    )
    grouped: Dict[str, List[str]] = {}
    for command in sorted(available, key=lambda c: c.qualified_name):
        category = HELP_CATEGORIES.get(command.qualified_name.split(" ")[0], "Other")
        grouped.setdefault(category, []).append(f"`/{command.qualified_name}`: {command.description}")
    for category in [*dict.fromkeys(HELP_CATEGORIES.values()), "Other"]:
        if category in grouped:
            embed.add_field(name=category, value="\n".join(grouped[category]), inline=False)
    return embed


def build_creator_code_embed(requested: str, info: Optional[CreatorCode]) -> discord.Embed:
    if info is None:
        embed = discord.Embed(
            title="Creator code not found",
            description=f"Creator code **{requested}** was not found.",
            color=discord.Color.red(),
        )
        embed.add_field(
            name="Possible issues",
            value="The code may be misspelled, expired or deactivated.",
            inline=False,
        )
        return embed
    active = info.status.upper() == "ACTIVE"
    embed = discord.Embed(
        title="✅ Creator code found",
        description=f"Information for creator code **{info.code}**",
        color=discord.Color.green() if active else discord.Color.orange(),
    )
    embed.add_field(name="Account", value=info.account_name or "Unknown", inline=True)
    embed.add_field(name="Verified", value="Yes" if info.verified else "No", inline=True)
    embed.add_field(
        name="Status",
        value=f"**{info.status}**" + ("" if active else ": this code may not be usable right now."),
        inline=False,
    )
    return embed


def build_analysis_embed(channel_mention: str, analysis: ChannelAnalysis) -> discord.Embed:
    embed = discord.Embed(
        title="📊 Channel analysis",
        description=f"**Channel:** {channel_mention}\n**Period:** {analysis.describe_window()}",
        color=discord.Color.blue(),
    )
    embed.add_field(
        name="Statistics",
        value=(
            f"Participants: {len(analysis.authors)}\n"
            f"Valid messages (image/video): {analysis.valid_messages}\n"
            f"Invalid messages: {analysis.invalid_messages}\n"
            f"Total messages scanned: {analysis.total_messages}"
        ),
        inline=False,
    )
    top = analysis.top(ANALYSIS_TOP)
    if top:
        embed.add_field(
            name=f"Participants (top {ANALYSIS_TOP})" if len(analysis.authors) > ANALYSIS_TOP else "Participants",
            value="\n".join(
                f"{rank}. **{author.name}**: ✅ {author.valid} | ❌ {author.invalid}"
                for rank, author in enumerate(top, start=1)
            ),
            inline=False,
        )
    return embed


def build_tracking_embed(
    member_mention: str, channel_mention: str, analysis: ChannelAnalysis
) -> discord.Embed:
    """One member's media and text messages in a channel, with jump links."""
    total = analysis.total_messages
    valid = analysis.valid_messages
    rate = round(valid * 100 / total) if total else 0
    embed = discord.Embed(
        title="🔍 Message tracking",
        description=(
            f"**Member:** {member_mention}\n**Channel:** {channel_mention}\n"
            f"**Period:** {analysis.describe_window()}"
        ),
        color=discord.Color.green() if total and valid == total else discord.Color.orange(),
    )
    embed.add_field(
        name="Statistics",
        value=(
            f"Total messages: {total}\n"
            f"Valid messages (image/video): {valid}\n"
            f"Invalid messages: {analysis.invalid_messages}\n"
            f"Valid rate: {rate}%"
        ),
        inline=False,
    )
    if analysis.messages:
        lines = []
        for number, tracked in enumerate(analysis.messages[:TRACKED_SHOWN], start=1):
            when = tracked.created_at.strftime("%m/%d %I:%M %p") if tracked.created_at else "?"
            kinds = ", ".join(tracked.kinds) if tracked.kinds else "text only"
            mark = "✅" if tracked.valid else "❌"
            lines.append(f"{number}. {mark} [{when}]({tracked.url}) ({kinds})")
        embed.add_field(
            name=f"Messages (first {TRACKED_SHOWN})" if len(analysis.messages) > TRACKED_SHOWN else "Messages",
            value="\n".join(lines),
            inline=False,
        )
    if not total:
        advice = "No messages from this member in the selected period."
    elif analysis.invalid_messages:
        advice = "Some messages have no image or video and do not count as entries."
    else:
        advice = "Every message carries an image or a video."
    embed.add_field(name="Recommendation", value=advice, inline=False)
    return embed


def build_time_embed(now: datetime) -> discord.Embed:
    embed = discord.Embed(title="🕐 Current time", color=discord.Color.blue())
    for label, zone in WORLD_CLOCKS:
        local = now.astimezone(ZoneInfo(zone))
        embed.add_field(
            name=label,
            value=f"{local.strftime(CLOCK_FORMAT)} ({local.tzname()})",
            inline=False,
        )
    return embed


class InteractionResultSink:
    """Posts a spin result as a follow-up to an already deferred interaction.

    The winner is already saved when this runs, so a rejected upload falls
    back to a text-only announcement instead of leaving the draw unannounced.
    """

    def __init__(self, interaction: discord.Interaction) -> None:
        self.interaction = interaction

    async def deliver_result(self, giveaway: Giveaway, outcome: SpinOutcome) -> None:
        file = discord.File(io.BytesIO(outcome.image or b""), filename=outcome.filename)
        try:
            await self.interaction.followup.send(
                embed=build_result_embed(giveaway, outcome), file=file
            )
            return
        except discord.HTTPException as exc:
            log.warning(
                "Posting the wheel image for %s failed (%s); announcing the winner without it.",
                giveaway.id,
                exc,
            )
        embed = build_result_embed(giveaway, outcome, with_image=False)
        embed.add_field(
            name="Wheel image", value="Could not be uploaded to Discord.", inline=False
        )
        try:
            await self.interaction.followup.send(embed=embed)
        except discord.HTTPException:
            # The interaction token is gone; the channel is the last place left to post.
            channel = self.interaction.channel
            if not isinstance(channel, discord.abc.Messageable):
                raise
            await channel.send(embed=embed)


class InstantResultView(discord.ui.View):
    """Offered when the animated wheel could not be produced."""

    def __init__(self, manager, giveaway_id: str, *, timeout: float = 300) -> None:
        super().__init__(timeout=timeout)
        self.manager = manager
        self.giveaway_id = giveaway_id

        instant_button = discord.ui.Button(
            label="Show instant result",
            style=discord.ButtonStyle.primary,
            custom_id=f"wheel:instant:{giveaway_id}",
        )
        instant_button.callback = self.instant_callback  # type: ignore[assignment]
        self.add_item(instant_button)

    async def instant_callback(self, interaction: discord.Interaction) -> None:
        if not interaction.guild or not isinstance(interaction.user, discord.Member):
            await interaction.response.send_message("Guild members only.", ephemeral=True)
            return
        if not self.manager.is_admin(
            interaction.user,
            guild_owner_id=getattr(interaction.guild, "owner_id", None),
            base_permissions=getattr(interaction, "permissions", None),
        ):
            await interaction.response.send_message(
                "Only administrators can draw the winner.", ephemeral=True
            )
            return

        await interaction.response.defer(thinking=True)
        self.stop()
        try:
            await self.manager.instant_result(
                self.giveaway_id, sink=InteractionResultSink(interaction)
            )
        except (GiveawayError, WheelError) as exc:
            log.warning("Instant result for %s failed: %s", self.giveaway_id, exc)
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
