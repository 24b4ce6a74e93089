import unittest
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import discord
import pytest
from discord import app_commands

from fortnite_wheel.fortnite_api import CreatorCode
from fortnite_wheel.models import Giveaway
from fortnite_wheel.spinner import WheelSpinner
from fortnite_wheel.views import (
    InteractionResultSink,
    build_creator_code_embed,
    build_help_embed,
    build_result_embed,
)

from helpers import TINY_TIERS, FixedRandom, make_participants


def http_error(status=413, reason="Payload Too Large"):
    return discord.HTTPException(SimpleNamespace(status=status, reason=reason), "upload rejected")


def _result():
    giveaway = Giveaway(
        id="GAWCUP01",
        name="Cup",
        guild_id=1,
        channel_id=2,
        created_by="1",
        created_at=datetime.now(tz=UTC),
        participants=make_participants(a=3, b=1),
    )
    spinner = WheelSpinner(rng=FixedRandom(0.1), tiers=TINY_TIERS)
    return giveaway, spinner.instant_result(giveaway.participants, giveaway.name)


@app_commands.command(name="spin", description="Spin the wheel.")
@app_commands.describe(giveaway="Giveaway ID or name.", skip_animation="Post a still image.")
async def spin_command(interaction: discord.Interaction, giveaway: str, skip_animation: bool = False):
    pass


@app_commands.command(name="stats", description="Show statistics.")
async def stats_command(interaction: discord.Interaction):
    pass


purchases = app_commands.Group(name="addpurchase", description="Record a purchase.")


@purchases.command(name="vbucks", description="Record V-Bucks.")
@app_commands.describe(giveaway="Giveaway ID or name.", vbucks="V-Bucks spent.")
async def purchase_vbucks(interaction: discord.Interaction, giveaway: str, vbucks: int):
    pass


@purchases.command(name="item", description="Record a shop item.")
@app_commands.describe(giveaway="Giveaway ID or name.", name="Item name.")
async def purchase_item(interaction: discord.Interaction, giveaway: str, name: str):
    pass


COMMANDS = [spin_command, stats_command, purchases]


class TestResultEmbed:
    def test_with_and_without_image(self):
        giveaway, outcome = _result()
        embed = build_result_embed(giveaway, outcome)
        assert embed.description == "Congratulations <@a>!"
        assert embed.image.url == f"attachment://{outcome.filename}"
        assert build_result_embed(giveaway, outcome, with_image=False).image.url is None


class TestInteractionResultSink(unittest.IsolatedAsyncioTestCase):
    """The winner is already saved, so a failed upload still gets announced."""

    def _interaction(self, send_effects, channel=None):
        return SimpleNamespace(
            followup=SimpleNamespace(send=AsyncMock(side_effect=send_effects)),
            channel=channel,
        )

    async def test_posts_image_and_embed(self):
        giveaway, outcome = _result()
        interaction = self._interaction([None])
        await InteractionResultSink(interaction).deliver_result(giveaway, outcome)
        kwargs = interaction.followup.send.await_args.kwargs
        assert isinstance(kwargs["file"], discord.File)
        assert kwargs["embed"].image.url == f"attachment://{outcome.filename}"

    async def test_rejected_upload_falls_back_to_text(self):
        giveaway, outcome = _result()
        interaction = self._interaction([http_error(), None])
        with self.assertLogs("fortnite_wheel.views", level="WARNING"):
            await InteractionResultSink(interaction).deliver_result(giveaway, outcome)
        assert interaction.followup.send.await_count == 2
        fallback = interaction.followup.send.await_args_list[1].kwargs
        assert "file" not in fallback
        assert fallback["embed"].image.url is None
        assert fallback["embed"].description == "Congratulations <@a>!"
        assert "Wheel image" in [field.name for field in fallback["embed"].fields]

    async def test_channel_is_the_last_resort(self):
        giveaway, outcome = _result()
        channel = Mock(spec=discord.TextChannel)
        channel.send = AsyncMock()
        interaction = self._interaction([http_error(), http_error(404, "Not Found")], channel)
        await InteractionResultSink(interaction).deliver_result(giveaway, outcome)
        channel.send.assert_awaited_once()
        assert channel.send.await_args.kwargs["embed"].image.url is None

    async def test_gives_up_without_a_channel(self):
        giveaway, outcome = _result()
        interaction = self._interaction([http_error(), http_error(404, "Not Found")])
        with self.assertRaises(discord.HTTPException):
            await InteractionResultSink(interaction).deliver_result(giveaway, outcome)


class TestHelpEmbed:
    def test_overview_groups_commands(self):
        embed = build_help_embed(COMMANDS)
        fields = {field.name: field.value for field in embed.fields}
        assert list(fields) == ["Purchases", "Wheel", "Tools"]
        assert "`/addpurchase item`: Record a shop item." in fields["Purchases"]
        assert "`/addpurchase vbucks`: Record V-Bucks." in fields["Purchases"]
        assert fields["Wheel"] == "`/spin`: Spin the wheel."

    def test_one_command_lists_its_options(self):
        embed = build_help_embed(COMMANDS, "/spin")
        assert embed.title == "📖 /spin"
        (field,) = embed.fields
        assert field.name == "/spin <giveaway> [skip_animation]"
        assert "`skip_animation` (optional): Post a still image." in field.value

    def test_group_shows_every_subcommand(self):
        embed = build_help_embed(COMMANDS, "addpurchase")
        names = [field.name for field in embed.fields]
        assert names == ["/addpurchase vbucks <giveaway> <vbucks>", "/addpurchase item <giveaway> <name>"]

    @pytest.mark.parametrize("name", ["launch", "addpurchase gift", "spi"])
    def test_unknown_command(self, name):
        assert build_help_embed(COMMANDS, name).title == "❓ Unknown command"


class TestCreatorCodeEmbed:
    def test_not_found(self):
        embed = build_creator_code_embed("nobody", None)
        assert embed.title == "Creator code not found"
        assert "**nobody**" in embed.description

    def test_active_code(self):
        info = CreatorCode("ninja", "acc1", "Ninja", "ACTIVE", True)
        embed = build_creator_code_embed("ninja", info)
        fields = {field.name: field.value for field in embed.fields}
        assert fields == {"Account": "Ninja", "Verified": "Yes", "Status": "**ACTIVE**"}

    def test_inactive_code_is_flagged(self):
        info = CreatorCode("old", None, None, "DISABLED", False)
        fields = {f.name: f.value for f in build_creator_code_embed("old", info).fields}
        assert fields["Account"] == "Unknown"
        assert fields["Status"].startswith("**DISABLED**: ")
