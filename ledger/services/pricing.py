"""
Pricing tier calculation

Pure functions: callers pass the clock in. Online registrations are priced by
tier (early bird vs. standard); on-site collection is priced by the
category chosen at the door.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Union
from zoneinfo import ZoneInfo

TIER1 = "tier1"
TIER2 = "tier2"

ONSITE_ORGANISATION = "organisation"
ONSITE_ASSO_MEMBER = "asso_member"
ONSITE_NON_MEMBER = "non_member"
ONSITE_LATE = "late"
ONSITE_TIERS = (ONSITE_ORGANISATION, ONSITE_ASSO_MEMBER, ONSITE_NON_MEMBER, ONSITE_LATE)

DEFAULT_LATE_CUTOFF = "19:00"
DEFAULT_EVENT_TIMEZONE = "Europe/Paris"

TIER_LABELS = {
    TIER1: "Inscription anticipée",
    TIER2: "Inscription standard",
}


def parse_deadline(deadline: Union[str, date, datetime, None]) -> Optional[datetime]:
    """Turn a stored deadline into a datetime, or None when unset or unreadable"""
    if not deadline:
        return None
    if isinstance(deadline, datetime):
        return deadline.replace(tzinfo=None)
    if isinstance(deadline, date):
        return datetime.combine(deadline, time.min)
    try:
        parsed = datetime.fromisoformat(str(deadline).strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def calculate_tier(deadline, cutoff_days: int, now: datetime) -> str:
    """tier1 while ``now`` is strictly before (deadline - cutoff_days)."""
    deadline_at = parse_deadline(deadline)
    if deadline_at is None:
        return TIER2
    cutoff = deadline_at - timedelta(days=cutoff_days)
    return TIER1 if now < cutoff else TIER2


def tier_price(tier: str, price_tier1: int, price_tier2: int) -> int:
    return price_tier1 if tier == TIER1 else price_tier2


def onsite_price(tier: str, prices: Dict[str, int]) -> int:
    """Price in cents for an on-site category; unknown categories pay the member rate"""
    if tier == ONSITE_ORGANISATION:
        return 0
    if tier in (ONSITE_NON_MEMBER, ONSITE_LATE):
        return prices[tier]
    return prices[ONSITE_ASSO_MEMBER]


def parse_cutoff_time(value: Optional[str]) -> time:
    hours, minutes = (value or DEFAULT_LATE_CUTOFF).split(":")
    return time(int(hours), int(minutes))


def to_event_time(now: datetime, event_timezone: str) -> datetime:
    """Wall-clock time at the venue. Naive datetimes are UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(event_timezone)).replace(tzinfo=None)


def is_after_late_cutoff(late_cutoff_time: Optional[str], now: datetime,
                         event_timezone: Optional[str] = None) -> bool:
    """Without ``event_timezone``, ``now`` is already the venue's wall-clock time."""
    if event_timezone:
        now = to_event_time(now, event_timezone)
    return now >= datetime.combine(now.date(), parse_cutoff_time(late_cutoff_time))


def available_onsite_tiers(late_cutoff_time: Optional[str], now: datetime, include_organisation: bool = False,
                           event_timezone: Optional[str] = None) -> List[str]:
    if is_after_late_cutoff(late_cutoff_time, now, event_timezone):
        options = [ONSITE_ASSO_MEMBER, ONSITE_LATE]
    else:
        options = [ONSITE_ASSO_MEMBER, ONSITE_NON_MEMBER]
    if include_organisation:
        options = [ONSITE_ORGANISATION] + options
    return options


def format_cents(amount: int) -> str:
    return f"{amount / 100:.2f} €"


def days_until(deadline, now: datetime) -> Optional[int]:
    deadline_at = parse_deadline(deadline)
    if deadline_at is None:
        return None
    return int((deadline_at - now).total_seconds() // 86400)
