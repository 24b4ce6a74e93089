from __future__ import annotations

import asyncio
import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

import discord

from .config import Config
from .fortnite_api import PricedItem
from .models import BotState, Giveaway, Participant, Purchase
from .spinner import SpinOutcome, WheelSpinner, spin_with_timeout
from .storage import StateStorage

log = logging.getLogger(__name__)

ID_ALPHABET = string.ascii_uppercase + string.digits
ID_LENGTH = 5


class GiveawayError(RuntimeError):
    """Base class for giveaway operations that cannot be carried out."""


class GiveawayNotFoundError(GiveawayError):
    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Giveaway '{key}' was not found.")


class GiveawayClosedError(GiveawayError):
    def __init__(self, giveaway: Giveaway) -> None:
        super().__init__(f"Giveaway '{giveaway.name}' ({giveaway.id}) is not active.")


class WinnerAlreadySetError(GiveawayError):
    def __init__(self, giveaway: Giveaway) -> None:
        super().__init__(
            f"Giveaway '{giveaway.name}' already has a winner (<@{giveaway.winner}>)."
        )


class PurchaseTooSmallError(GiveawayError):
    def __init__(self, vbucks: int, per_entry: int) -> None:
        super().__init__(
            f"{vbucks} V-Bucks earns no entries; one entry costs {per_entry} V-Bucks."
        )


class SpinInProgressError(GiveawayError):
    def __init__(self, giveaway: Giveaway) -> None:
        super().__init__(f"Giveaway '{giveaway.name}' is being spun right now.")


class PurchaseNotFoundError(GiveawayError):
    def __init__(self, purchase_id: str) -> None:
        super().__init__(f"Purchase '{purchase_id}' was not found.")


class ItemNotPricedError(GiveawayError):
    def __init__(self, item_name: str) -> None:
        super().__init__(
            f"No priced item matches '{item_name}'. Record the purchase as V-Bucks instead."
        )
        self.item_name = item_name


class ItemPricer(Protocol):
    async def find_priced_item(
        self,
        name: str,
        *,
        item_type: Optional[str] = None,
        rarity: Optional[str] = None,
        series: Optional[str] = None,
    ) -> Optional[PricedItem]:
        ...


class ResultSink(Protocol):
    """Front-end that presents a finished spin to people."""

    async def deliver_result(self, giveaway: Giveaway, outcome: SpinOutcome) -> None:
        ...


@dataclass(slots=True)
class GiveawayStats:
    total_giveaways: int = 0
    active_giveaways: int = 0
    completed_giveaways: int = 0
    total_purchases: int = 0
    total_vbucks: int = 0
    total_entries: int = 0
    unique_participants: int = 0
    top_spenders: List[Tuple[str, str, int]] = field(default_factory=list)

    @property
    def average_entries_per_user(self) -> float:
        if not self.unique_participants:
            return 0.0
        return self.total_entries / self.unique_participants


class GiveawayManager:
    """Coordinates giveaways, purchases, spins and persistence."""

    def __init__(
        self,
        bot: Optional[discord.Client],
        config: Config,
        storage: StateStorage,
        spinner: Optional[WheelSpinner] = None,
    ) -> None:
        self.bot = bot
        self.config = config
        self.storage = storage
        self.spinner = spinner or WheelSpinner.from_config(config.wheel)
        self.state = BotState()
        self._state_lock = asyncio.Lock()
        self._spinning: set[str] = set()

    async def load(self) -> None:
        self.state = await self.storage.load()

    async def save_state(self) -> None:
        await self.storage.save(self.state)

    # --- permissions ------------------------------------------------------

    def is_admin(
        self,
        member: discord.Member,
        *,
        guild_owner_id: Optional[int] = None,
        base_permissions: Optional[discord.Permissions] = None,
        role_ids: Optional[Iterable[int]] = None,
    ) -> bool:
        owner_id = guild_owner_id
        if owner_id is None:
            guild = getattr(member, "guild", None)
            if guild is not None:
                owner_id = getattr(guild, "owner_id", None)
        if owner_id is not None and owner_id == member.id:
            log.debug("Member %s is guild owner; treating as giveaway admin.", member.id)
            return True

        permissions_obj = base_permissions
        if permissions_obj is None:
            permissions_obj = getattr(member, "guild_permissions", None)
        if permissions_obj and (
            permissions_obj.administrator or permissions_obj.manage_guild
        ):
            log.debug(
                "Member %s has administrative permissions; treating as giveaway admin.",
                member.id,
            )
            return True

        effective_role_ids: set[int] = set()
        if role_ids is not None:
            for role_id in role_ids:
                try:
                    effective_role_ids.add(int(role_id))
                except (TypeError, ValueError):
                    continue
        if not effective_role_ids:
            effective_role_ids.update(role.id for role in getattr(member, "roles", ()))

        admin_roles = {int(r) for r in self.config.permissions.admin_roles}
        if not admin_roles:
            log.debug("No giveaway admin roles configured; denying member %s.", member.id)
            return False

        matching_roles = sorted(admin_roles.intersection(effective_role_ids))
        if matching_roles:
            log.debug(
                "Member %s matched giveaway admin role(s) %s.",
                member.id,
                matching_roles,
            )
            return True

        log.debug(
            "Member %s lacks required giveaway admin roles %s (has %s).",
            member.id,
            sorted(admin_roles),
            sorted(effective_role_ids),
        )
        return False

    # --- giveaways --------------------------------------------------------

    def get_giveaway(self, key: str) -> Optional[Giveaway]:
        return self.state.get_giveaway(key)

    def _require_giveaway(self, key: str) -> Giveaway:
        giveaway = self.state.get_giveaway(key)
        if giveaway is None:
            raise GiveawayNotFoundError(key)
        return giveaway

    def _ensure_idle(self, giveaway: Giveaway) -> None:
        # A running spin draws from a snapshot; changes made now would never count.
        if giveaway.id in self._spinning:
            raise SpinInProgressError(giveaway)

    def list_giveaways(
        self, guild_id: Optional[int] = None, *, active_only: bool = False
    ) -> Sequence[Giveaway]:
        giveaways = self.state.list_all(guild_id)
        if active_only:
            return tuple(g for g in giveaways if g.active)
        return giveaways

    async def create_giveaway(
        self,
        name: str,
        *,
        guild_id: int,
        channel_id: int,
        created_by: str,
        vbucks_per_entry: Optional[int] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Giveaway:
        name = " ".join(name.split())
        if not name:
            raise GiveawayError("Giveaway name must not be empty.")
        per_entry = vbucks_per_entry or self.config.giveaways.default_vbucks_per_entry
        if per_entry <= 0:
            raise GiveawayError("V-Bucks per entry must be greater than zero.")

        async with self._state_lock:
            if any(g.name.lower() == name.lower() for g in self.state.giveaways):
                raise GiveawayError(f"A giveaway named '{name}' already exists.")
            giveaway = Giveaway(
                id=self._generate_id("GAW"),
                name=name,
                guild_id=guild_id,
                channel_id=channel_id,
                created_by=created_by,
                created_at=datetime.now(tz=UTC),
                vbucks_per_entry=per_entry,
                start_date=start_date,
                end_date=end_date,
            )
            self.state.upsert_giveaway(giveaway)
            await self.save_state()

        log.info("Created giveaway %s (%s) in guild %s.", giveaway.id, name, guild_id)
        await self._notify_logger(
            f"Giveaway **{name}** (`{giveaway.id}`) created by <@{created_by}>: "
            f"{per_entry} V-Bucks per entry."
        )
        return giveaway

    async def edit_giveaway(
        self,
        key: str,
        *,
        name: Optional[str] = None,
        vbucks_per_entry: Optional[int] = None,
        active: Optional[bool] = None,
        reset_winner: bool = False,
    ) -> Giveaway:
        async with self._state_lock:
            giveaway = self._require_giveaway(key)
            self._ensure_idle(giveaway)
            if name is not None:
                name = " ".join(name.split())
                if not name:
                    raise GiveawayError("Giveaway name must not be empty.")
                clash = next(
                    (
                        g
                        for g in self.state.giveaways
                        if g.id != giveaway.id and g.name.lower() == name.lower()
                    ),
                    None,
                )
                if clash is not None:
                    raise GiveawayError(f"A giveaway named '{name}' already exists.")
                giveaway.name = name
            if vbucks_per_entry is not None and vbucks_per_entry != giveaway.vbucks_per_entry:
                if vbucks_per_entry <= 0:
                    raise GiveawayError("V-Bucks per entry must be greater than zero.")
                giveaway.vbucks_per_entry = vbucks_per_entry
                # Entries follow the price, so every purchase is re-rated.
                for purchase in self.state.purchases_for(giveaway.id):
                    purchase.entries_earned = purchase.vbucks_spent // vbucks_per_entry
                for user_id in list(giveaway.participants):
                    self._recalculate_participant(giveaway, user_id)
            if reset_winner:
                giveaway.winner = None
                giveaway.completed_at = None
                if active is None:
                    giveaway.active = True
            if active is not None:
                giveaway.active = active
            giveaway.updated_at = datetime.now(tz=UTC)
            await self.save_state()
        log.info("Edited giveaway %s.", giveaway.id)
        return giveaway

    async def delete_giveaway(self, key: str) -> Tuple[Giveaway, int]:
        """Delete a giveaway with its purchases; returns it and the purchase count."""
        async with self._state_lock:
            giveaway = self._require_giveaway(key)
            self._ensure_idle(giveaway)
            purchase_count = len(self.state.purchases_for(giveaway.id))
            self.state.remove_giveaway(giveaway.id)
            await self.save_state()
        log.info(
            "Deleted giveaway %s (%s) and %d purchase(s).",
            giveaway.id,
            giveaway.name,
            purchase_count,
        )
        await self._notify_logger(
            f"Giveaway **{giveaway.name}** (`{giveaway.id}`) deleted with {purchase_count} purchase(s)."
        )
        return giveaway, purchase_count

    # --- purchases --------------------------------------------------------

    async def add_purchase(
        self,
        key: str,
        *,
        user_id: str,
        display_name: str,
        vbucks: int,
        added_by: str,
        username: Optional[str] = None,
        items: Optional[List[str]] = None,
    ) -> Tuple[Purchase, Participant]:
        limit = self.config.giveaways.max_vbucks_per_purchase
        if vbucks <= 0:
            raise GiveawayError("V-Bucks amount must be greater than zero.")
        if vbucks > limit:
            raise GiveawayError(f"V-Bucks amount exceeds the {limit} per-purchase limit.")

        async with self._state_lock:
            giveaway = self._require_giveaway(key)
            self._ensure_idle(giveaway)
            if not giveaway.active or giveaway.winner:
                raise GiveawayClosedError(giveaway)
            entries = vbucks // giveaway.vbucks_per_entry
            if entries == 0:
                raise PurchaseTooSmallError(vbucks, giveaway.vbucks_per_entry)

            purchase = Purchase(
                purchase_id=self._generate_id("PUR"),
                giveaway_id=giveaway.id,
                user_id=user_id,
                vbucks_spent=vbucks,
                entries_earned=entries,
                added_by=added_by,
                timestamp=datetime.now(tz=UTC),
                items=list(items or []),
            )
            participant = giveaway.participants.get(user_id)
            if participant is None:
                participant = Participant(user_id=user_id, display_name=display_name)
                giveaway.participants[user_id] = participant
            participant.display_name = display_name or participant.display_name
            participant.username = username or participant.username
            participant.entries += entries
            participant.vbucks_spent += vbucks
            participant.purchase_ids.append(purchase.purchase_id)
            giveaway.updated_at = purchase.timestamp
            self.state.add_purchase(purchase)
            await self.save_state()

        log.info(
            "Purchase %s: %s spent %d V-Bucks in %s for %d entr%s.",
            purchase.purchase_id,
            user_id,
            vbucks,
            giveaway.id,
            entries,
            "y" if entries == 1 else "ies",
        )
        await self._notify_logger(
            f"<@{user_id}> bought {vbucks} V-Bucks in **{giveaway.name}**: "
            f"+{entries} entries ({participant.entries} total)."
        )
        return purchase, participant

    async def add_item_purchase(
        self,
        key: str,
        *,
        pricer: ItemPricer,
        item_name: str,
        user_id: str,
        display_name: str,
        added_by: str,
        username: Optional[str] = None,
        item_type: Optional[str] = None,
        rarity: Optional[str] = None,
        series: Optional[str] = None,
    ) -> Tuple[Purchase, Participant, PricedItem]:
        """Record a purchase worth the current shop price of a cosmetic item."""
        giveaway = self._require_giveaway(key)
        self._ensure_idle(giveaway)
        if not giveaway.active or giveaway.winner:
            raise GiveawayClosedError(giveaway)

        item = await pricer.find_priced_item(
            item_name, item_type=item_type, rarity=rarity, series=series
        )
        if item is None:
            raise ItemNotPricedError(item_name)
        purchase, participant = await self.add_purchase(
            giveaway.id,
            user_id=user_id,
            display_name=display_name,
            vbucks=item.price,
            added_by=added_by,
            username=username,
            items=[item.name],
        )
        return purchase, participant, item

    async def remove_purchase(self, purchase_id: str) -> Tuple[Purchase, Optional[Participant]]:
        """Delete a purchase and recount the buyer's entries from what remains."""
        async with self._state_lock:
            purchase = self.state.get_purchase(purchase_id)
            if purchase is None:
                raise PurchaseNotFoundError(purchase_id)
            giveaway = self.state.get_giveaway(purchase.giveaway_id)
            if giveaway is not None:
                self._ensure_idle(giveaway)
            self.state.remove_purchase(purchase.purchase_id)
            participant = None
            if giveaway is not None:
                participant = self._recalculate_participant(giveaway, purchase.user_id)
                giveaway.updated_at = datetime.now(tz=UTC)
            await self.save_state()
        log.info("Removed purchase %s from %s.", purchase.purchase_id, purchase.giveaway_id)
        return purchase, participant

    def _recalculate_participant(
        self, giveaway: Giveaway, user_id: str
    ) -> Optional[Participant]:
        remaining = [
            p for p in self.state.purchases_for(giveaway.id) if p.user_id == user_id
        ]
        participant = giveaway.participants.get(user_id)
        if participant is None:
            return None
        if not remaining:
            del giveaway.participants[user_id]
            return None
        participant.entries = sum(p.entries_earned for p in remaining)
        participant.vbucks_spent = sum(p.vbucks_spent for p in remaining)
        participant.purchase_ids = [p.purchase_id for p in remaining]
        return participant

    # --- wheel ------------------------------------------------------------

    async def spin(
        self,
        key: str,
        *,
        skip_animation: bool = False,
        quality: Optional[str] = None,
        sink: Optional[ResultSink] = None,
    ) -> Tuple[Giveaway, SpinOutcome]:
        """Draw the winner with the animated wheel and close the giveaway."""
        giveaway, snapshot = await self._begin_spin(key)
        try:
            outcome = await spin_with_timeout(
                self.spinner,
                snapshot,
                giveaway.name,
                timeout=self.config.wheel.timeout_seconds,
                skip_animation=skip_animation,
                quality=quality,
            )
            await self._record_winner(giveaway, outcome)
        finally:
            self._spinning.discard(giveaway.id)
        if sink is not None:
            await sink.deliver_result(giveaway, outcome)
        return giveaway, outcome

    async def instant_result(
        self, key: str, *, sink: Optional[ResultSink] = None
    ) -> Tuple[Giveaway, SpinOutcome]:
        """Draw the winner without animation; the answer is a single image."""
        giveaway, snapshot = await self._begin_spin(key)
        try:
            outcome = await asyncio.to_thread(
                self.spinner.instant_result, snapshot, giveaway.name
            )
            await self._record_winner(giveaway, outcome)
        finally:
            self._spinning.discard(giveaway.id)
        if sink is not None:
            await sink.deliver_result(giveaway, outcome)
        return giveaway, outcome

    async def wheel_preview(
        self, key: str, *, quality: Optional[str] = None
    ) -> Tuple[Giveaway, SpinOutcome]:
        giveaway = self._require_giveaway(key)
        outcome = await asyncio.to_thread(
            self.spinner.render_preview, giveaway.snapshot(), giveaway.name, quality=quality
        )
        return giveaway, outcome

    async def _begin_spin(self, key: str) -> Tuple[Giveaway, Dict[str, Participant]]:
        async with self._state_lock:
            giveaway = self._require_giveaway(key)
            if giveaway.winner:
                raise WinnerAlreadySetError(giveaway)
            self._ensure_idle(giveaway)
            self._spinning.add(giveaway.id)
            return giveaway, giveaway.snapshot()

    async def _record_winner(self, giveaway: Giveaway, outcome: SpinOutcome) -> None:
        participant = outcome.require_winner().participant
        async with self._state_lock:
            giveaway.winner = participant.user_id
            giveaway.active = False
            giveaway.completed_at = datetime.now(tz=UTC)
            giveaway.updated_at = giveaway.completed_at
            await self.save_state()
        log.info(
            "Giveaway %s won by %s (%s) with %d of %d entries.",
            giveaway.id,
            participant.display_name,
            participant.user_id,
            participant.entries,
            giveaway.total_entries,
        )
        await self._notify_logger(
            f"<@{participant.user_id}> won **{giveaway.name}** with "
            f"{participant.entries} of {giveaway.total_entries} entries."
        )

    # --- statistics -------------------------------------------------------

    def stats(self, guild_id: Optional[int] = None, *, top: int = 5) -> GiveawayStats:
        giveaways = self.state.list_all(guild_id)
        ids = {g.id for g in giveaways}
        purchases = [p for p in self.state.purchases if p.giveaway_id in ids]

        spent_by_user: Dict[str, int] = {}
        names: Dict[str, str] = {}
        for giveaway in giveaways:
            for participant in giveaway.participants.values():
                spent_by_user[participant.user_id] = (
                    spent_by_user.get(participant.user_id, 0) + participant.vbucks_spent
                )
                names[participant.user_id] = participant.display_name

        ranked = sorted(spent_by_user.items(), key=lambda item: (-item[1], item[0]))
        return GiveawayStats(
            total_giveaways=len(giveaways),
            active_giveaways=sum(1 for g in giveaways if g.active),
            completed_giveaways=sum(1 for g in giveaways if g.winner),
            total_purchases=len(purchases),
            total_vbucks=sum(p.vbucks_spent for p in purchases),
            total_entries=sum(g.total_entries for g in giveaways),
            unique_participants=len(spent_by_user),
            top_spenders=[(user_id, names[user_id], spent) for user_id, spent in ranked[:top]],
        )

    # --- helpers ----------------------------------------------------------

    async def _notify_logger(self, message: str) -> None:
        channel_id = self.config.logging.logger_channel_id
        if not channel_id or self.bot is None:
            return
        channel = await self._fetch_text_channel(self.bot, channel_id)
        if channel:
            try:
                await channel.send(f"[Giveaway] {message}")
            except discord.HTTPException as exc:
                log.warning("Failed to send log message to %s: %s", channel_id, exc)

    async def _fetch_text_channel(
        self, bot: discord.Client, channel_id: int
    ) -> Optional[discord.TextChannel]:
        channel = bot.get_channel(channel_id)
        if isinstance(channel, discord.TextChannel):
            return channel
        try:
            fetched = await bot.fetch_channel(channel_id)
        except (discord.NotFound, discord.Forbidden, discord.HTTPException):
            return None
        return fetched if isinstance(fetched, discord.TextChannel) else None

    def _generate_id(self, prefix: str) -> str:
        existing = set(self.state.existing_ids())
        while True:
            candidate = prefix + "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))
            if candidate not in existing:
                return candidate
