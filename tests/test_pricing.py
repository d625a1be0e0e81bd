"""
Tests for pricing tier calculation
"""

from datetime import datetime, timedelta, timezone

from ledger.services.pricing import (
    ONSITE_ASSO_MEMBER, ONSITE_LATE, ONSITE_NON_MEMBER, ONSITE_ORGANISATION, TIER1, TIER2,
    available_onsite_tiers, calculate_tier, days_until, format_cents, is_after_late_cutoff, onsite_price,
    parse_deadline, tier_price, to_event_time,
)

NOW = datetime(2025, 11, 1, 12, 0)
PRICES = {ONSITE_ASSO_MEMBER: 500, ONSITE_NON_MEMBER: 800, ONSITE_LATE: 1000}


class TestCalculateTier:
    def test_early_bird_well_before_deadline(self):
        assert calculate_tier(NOW + timedelta(days=30), 7, NOW) == TIER1

    def test_standard_inside_cutoff_window(self):
        assert calculate_tier(NOW + timedelta(days=3), 7, NOW) == TIER2

    def test_no_deadline_is_standard(self):
        assert calculate_tier(None, 7, NOW) == TIER2
        assert calculate_tier("", 7, NOW) == TIER2

    def test_exact_cutoff_is_standard(self):
        assert calculate_tier(NOW + timedelta(days=7), 7, NOW) == TIER2

    def test_iso_string_deadline(self):
        assert calculate_tier("2025-12-31", 7, NOW) == TIER1

    def test_unreadable_deadline_is_standard(self):
        assert calculate_tier("next friday", 7, NOW) == TIER2


def test_parse_deadline_drops_timezone():
    parsed = parse_deadline("2025-12-05T18:00:00Z")
    assert parsed == datetime(2025, 12, 5, 18, 0)
    assert parsed.tzinfo is None


def test_tier_price():
    assert tier_price(TIER1, 500, 700) == 500
    assert tier_price(TIER2, 500, 700) == 700


def test_onsite_price():
    assert onsite_price(ONSITE_ORGANISATION, PRICES) == 0
    assert onsite_price(ONSITE_NON_MEMBER, PRICES) == 800
    assert onsite_price(ONSITE_LATE, PRICES) == 1000
    assert onsite_price("unknown", PRICES) == 500


def test_onsite_tiers_switch_at_late_cutoff():
    before = datetime(2025, 12, 5, 18, 59)
    after = datetime(2025, 12, 5, 19, 0)
    assert available_onsite_tiers("19:00", before) == [ONSITE_ASSO_MEMBER, ONSITE_NON_MEMBER]
    assert available_onsite_tiers("19:00", after) == [ONSITE_ASSO_MEMBER, ONSITE_LATE]
    assert available_onsite_tiers("19:00", after, include_organisation=True)[0] == ONSITE_ORGANISATION


class TestVenueClock:
    def test_winter_offset(self):
        assert to_event_time(datetime(2025, 12, 5, 18, 30), "Europe/Paris") == datetime(2025, 12, 5, 19, 30)

    def test_summer_offset(self):
        assert to_event_time(datetime(2025, 7, 1, 17, 0), "Europe/Paris") == datetime(2025, 7, 1, 19, 0)

    def test_aware_input(self):
        aware = datetime(2025, 12, 5, 18, 0, tzinfo=timezone.utc)
        assert to_event_time(aware, "Europe/Paris") == datetime(2025, 12, 5, 19, 0)

    def test_cutoff_in_venue_time(self):
        assert is_after_late_cutoff("19:00", datetime(2025, 12, 5, 18, 30), "Europe/Paris")
        assert not is_after_late_cutoff("19:00", datetime(2025, 12, 5, 17, 59), "Europe/Paris")
        assert is_after_late_cutoff("19:00", datetime(2025, 7, 1, 17, 0), "Europe/Paris")
        assert not is_after_late_cutoff("19:00", datetime(2025, 7, 1, 16, 59), "Europe/Paris")

    def test_late_tier_offered_at_half_past_six_utc_in_winter(self):
        tiers = available_onsite_tiers("19:00", datetime(2025, 12, 5, 18, 30), event_timezone="Europe/Paris")
        assert tiers == [ONSITE_ASSO_MEMBER, ONSITE_LATE]


def test_format_cents():
    assert format_cents(500) == "5.00 €"
    assert format_cents(1250) == "12.50 €"


def test_days_until():
    assert days_until(NOW + timedelta(days=10, hours=5), NOW) == 10
    assert days_until(None, NOW) is None
