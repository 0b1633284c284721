"""Loader for the static promotion calendar."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import tomllib
from pydantic import ValidationError

from vista_coupons.domain.coupons import Promotion


class PromotionCalendarError(ValueError):
    """Raised when the promotion calendar cannot be read or violates its invariants."""


@dataclass(slots=True)
class PromotionCalendar:
    timezone: str
    promotions: list[Promotion]


def _localize(value: Any, zone: ZoneInfo) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=zone)
    return value


def parse_promotion_calendar(data: dict[str, Any], *, default_timezone: str = "UTC") -> PromotionCalendar:
    timezone = str(data.get("timezone") or default_timezone)
    zone = ZoneInfo(timezone)

    entries = data.get("promotions", [])
    if not isinstance(entries, list):
        raise PromotionCalendarError("'promotions' must be an array of tables")

    promotions: list[Promotion] = []
    seen_ids: set[str] = set()
    for index, payload in enumerate(entries):
        if not isinstance(payload, dict):
            raise PromotionCalendarError(f"Promotion #{index} is not a table")
        payload = dict(payload)
        for key in ("start_date", "startDate", "end_date", "endDate"):
            if key in payload:
                payload[key] = _localize(payload[key], zone)
        try:
            promotion = Promotion.model_validate(payload)
        except ValidationError as exc:
            raise PromotionCalendarError(f"Promotion #{index} is invalid: {exc}") from exc

        for coupon in promotion.coupons:
            if coupon.id in seen_ids:
                raise PromotionCalendarError(f"Duplicate coupon id '{coupon.id}' in promotion calendar")
            seen_ids.add(coupon.id)
        promotions.append(promotion)

    return PromotionCalendar(timezone=timezone, promotions=promotions)


def load_promotion_calendar(config_path: Path, *, default_timezone: str = "UTC") -> PromotionCalendar:
    """Load promotions from a TOML calendar file."""

    if not config_path.exists():
        raise FileNotFoundError(f"Promotion calendar not found: {config_path}")
    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise PromotionCalendarError(f"Promotion calendar is not valid TOML: {exc}") from exc
    return parse_promotion_calendar(data, default_timezone=default_timezone)


__all__ = [
    "PromotionCalendar",
    "PromotionCalendarError",
    "load_promotion_calendar",
    "parse_promotion_calendar",
]
