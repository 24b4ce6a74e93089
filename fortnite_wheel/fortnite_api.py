from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import aiohttp

LOGGER = logging.getLogger(__name__)

FNBR_API_URL = "https://fnbr.co/api"
FORTNITE_API_URL = "https://fortnite-api.com"
SEARCH_LIMIT = 15

CREATOR_CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_PRICE_DIGITS = re.compile(r"\d+")


class FortniteApiError(RuntimeError):
    """Raised when an item or creator code lookup fails."""


class RateLimitedError(FortniteApiError):
    def __init__(self, service: str) -> None:
        super().__init__(f"{service} rate limit exceeded, please try again later.")
        self.service = service


@dataclass(slots=True)
class PricedItem:
    item_id: str
    name: str
    price: int
    price_text: str
    item_type: Optional[str] = None
    rarity: Optional[str] = None


@dataclass(slots=True)
class CreatorCode:
    code: str
    account_id: Optional[str]
    account_name: Optional[str]
    status: str
    verified: bool


def parse_vbucks_price(text: Any) -> Optional[int]:
    """Read a V-Bucks amount from a shop price label such as ``"1,500"``.

    Returns ``None`` for missing prices, ``"N/A"`` and labels without a
    positive number in them.
    """
    if text is None:
        return None
    label = str(text).strip()
    if not label or label.upper() == "N/A":
        return None
    match = _PRICE_DIGITS.search(label.replace(",", ""))
    if match is None:
        return None
    price = int(match.group())
    return price if price > 0 else None


def _normalize(value: Any) -> str:
    return str(value or "").strip().lower().replace("-", "_").replace(" ", "_")


def choose_item(
    items: Iterable[Dict[str, Any]],
    name: str,
    *,
    rarity: Optional[str] = None,
    series: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Pick the best search hit: filters first, then an exact name match."""
    candidates = list(items)
    # fnbr.co reports series skins (Marvel, DC, ...) through the rarity field.
    for wanted in (rarity, series):
        if wanted:
            candidates = [item for item in candidates if _normalize(item.get("rarity")) == _normalize(wanted)]
    if not candidates:
        return None
    wanted_name = name.strip().lower()
    for item in candidates:
        if str(item.get("name", "")).strip().lower() == wanted_name:
            return item
    return candidates[0]


class FortniteApiClient:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        fnbr_api_key: Optional[str] = None,
        fortnite_api_key: Optional[str] = None,
    ) -> None:
        self.session = session
        self.fnbr_api_key = fnbr_api_key
        self.fortnite_api_key = fortnite_api_key

    async def _get_json(
        self,
        service: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Optional[Dict[str, Any]]:
        try:
            async with self.session.get(url, params=params, headers=headers) as response:
                if response.status == 404:
                    return None
                if response.status == 429:
                    LOGGER.warning("%s rate limit exceeded.", service)
                    raise RateLimitedError(service)
                response.raise_for_status()
                payload = await response.json(content_type=None)
        except aiohttp.ClientError as exc:
            LOGGER.error("%s request to %s failed: %s", service, url, exc)
            raise FortniteApiError(f"{service} is unavailable right now.") from exc
        if not isinstance(payload, dict):
            raise FortniteApiError(f"{service} returned an unexpected response.")
        return payload

    async def find_priced_item(
        self,
        name: str,
        *,
        item_type: Optional[str] = None,
        rarity: Optional[str] = None,
        series: Optional[str] = None,
    ) -> Optional[PricedItem]:
        """Look an item up on fnbr.co and return it with its V-Bucks price.

        ``None`` means no matching item, or a match without a shop price.
        """
        if not self.fnbr_api_key:
            raise FortniteApiError("Item pricing is not configured (fortnite_api.fnbr_api_key).")
        params: Dict[str, Any] = {"search": name, "limit": SEARCH_LIMIT}
        if item_type:
            params["type"] = item_type
        payload = await self._get_json(
            "fnbr.co",
            f"{FNBR_API_URL}/images",
            params=params,
            headers={"x-api-key": self.fnbr_api_key},
        )
        if not payload or payload.get("status") != 200:
            LOGGER.debug("No fnbr.co results for %r.", name)
            return None
        item = choose_item(payload.get("data") or [], name, rarity=rarity, series=series)
        if item is None:
            return None
        price = parse_vbucks_price(item.get("price"))
        if price is None:
            LOGGER.debug("No usable price for %r (%r).", item.get("name"), item.get("price"))
            return None
        return PricedItem(
            item_id=str(item.get("id", "")),
            name=str(item.get("name", name)),
            price=price,
            price_text=str(item.get("price")),
            item_type=item.get("type"),
            rarity=item.get("rarity"),
        )

    async def get_creator_code(self, code: str) -> Optional[CreatorCode]:
        if not CREATOR_CODE_PATTERN.match(code):
            raise FortniteApiError(
                "Creator codes may only contain letters, numbers, hyphens and underscores."
            )
        headers = {"Authorization": self.fortnite_api_key} if self.fortnite_api_key else None
        payload = await self._get_json(
            "fortnite-api.com",
            f"{FORTNITE_API_URL}/v1/creatorcode/{code}",
            headers=headers,
        )
        if not payload or payload.get("status") != 200:
            return None
        data = payload.get("data") or {}
        account = data.get("account") or {}
        return CreatorCode(
            code=str(data.get("code", code)),
            account_id=account.get("id"),
            account_name=account.get("name"),
            status=str(data.get("status", "UNKNOWN")),
            verified=bool(data.get("verified", False)),
        )
