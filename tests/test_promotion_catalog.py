from __future__ import annotations

from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from vista_coupons.domain.coupons import CouponDefinition
from vista_coupons.services.promotions import (
    PromotionCalendarError,
    load_promotion_calendar,
    parse_promotion_calendar,
)

SAMPLE_CALENDAR = Path(__file__).resolve().parents[1] / "config" / "promotions.toml"


def _promotion(**overrides):
    payload = {
        "week": 1,
        "period": "October",
        "start_date": datetime(2026, 10, 1),
        "end_date": datetime(2026, 10, 31, 23, 59, 59),
        "coupons": [
            {
                "id": "C1",
                "name": "Free Cookie",
                "card_title": "Cookie",
                "description": "One free cookie",
            }
        ],
    }
    payload.update(overrides)
    return payload


def test_naive_datetimes_are_localized_to_calendar_timezone() -> None:
    calendar = parse_promotion_calendar({"timezone": "Asia/Bangkok", "promotions": [_promotion()]})

    [promotion] = calendar.promotions
    assert calendar.timezone == "Asia/Bangkok"
    assert promotion.start_date.tzinfo == ZoneInfo("Asia/Bangkok")
    assert promotion.coupons[0].card_title == "Cookie"


def test_default_timezone_applies_when_calendar_has_none() -> None:
    calendar = parse_promotion_calendar({"promotions": [_promotion()]}, default_timezone="Asia/Bangkok")

    assert calendar.timezone == "Asia/Bangkok"


def test_start_after_end_is_rejected() -> None:
    bad = _promotion(start_date=datetime(2026, 11, 1), end_date=datetime(2026, 10, 1))

    with pytest.raises(PromotionCalendarError):
        parse_promotion_calendar({"promotions": [bad]})


def test_duplicate_coupon_ids_are_rejected() -> None:
    with pytest.raises(PromotionCalendarError, match="Duplicate coupon id 'C1'"):
        parse_promotion_calendar({"promotions": [_promotion(week=1), _promotion(week=2)]})


def test_active_day_outside_month_range_is_rejected() -> None:
    promotion = _promotion()
    promotion["coupons"][0]["active_day"] = 32

    with pytest.raises(PromotionCalendarError):
        parse_promotion_calendar({"promotions": [promotion]})


def test_sample_calendar_loads() -> None:
    calendar = load_promotion_calendar(SAMPLE_CALENDAR, default_timezone="UTC")

    assert calendar.timezone == "Asia/Bangkok"
    assert len(calendar.promotions) == 2
    coupons = {coupon.id: coupon for promotion in calendar.promotions for coupon in promotion.coupons}
    assert coupons["oct-member-payday"].active_day == 25
    assert coupons["oct-member-latte"].is_member_only is True
    assert coupons["oct-guest-cookie"].is_member_only is False


def test_missing_calendar_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_promotion_calendar(tmp_path / "missing.toml")


def test_invalid_toml_raises_calendar_error(tmp_path: Path) -> None:
    path = tmp_path / "promotions.toml"
    path.write_text("[[promotions]\nweek = ", encoding="utf-8")

    with pytest.raises(PromotionCalendarError):
        load_promotion_calendar(path)


def test_coupon_accepts_camel_case_and_serializes_camel_case() -> None:
    coupon = CouponDefinition.model_validate(
        {
            "id": "M1",
            "name": "Latte",
            "cardTitle": "Half-price Latte",
            "description": "50% off",
            "isMemberOnly": True,
            "activeDay": 5,
        }
    )

    snapshot = coupon.snapshot()

    assert snapshot["cardTitle"] == "Half-price Latte"
    assert snapshot["isMemberOnly"] is True
    assert snapshot["activeDay"] == 5
    assert "imageUrl" not in snapshot
