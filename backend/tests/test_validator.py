"""
Tests for the six ordered booking rules and the store-failure path.
"""

from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from roombook.core.config import get_settings
from roombook.schemas.booking import BookingProposal
from roombook.services import validator
from roombook.services.validator import check_static_rules, validate_booking

from conftest import add_booking

TODAY = date(2026, 3, 1)


def proposal(room="CSIS-101", day="2026-03-05", start="09:00", end="11:00") -> BookingProposal:
    return BookingProposal(room_id=room, date=day, start_time=start, end_time=end)


@pytest.mark.asyncio
async def test_free_slot_is_valid(db_session):
    result = await validate_booking(db_session, proposal(), today=TODAY)

    assert result.valid is True
    assert result.conflicts == []
    assert result.reasons == []


@pytest.mark.asyncio
async def test_overlap_with_approved_booking(db_session):
    await add_booking(db_session, "BK-AAAAA", "CSIS-101", "2026-03-05", "09:00", "11:00")

    result = await validate_booking(db_session, proposal(start="10:00", end="12:00"), today=TODAY)

    assert result.valid is False
    assert [b.booking_id for b in result.conflicts] == ["BK-AAAAA"]
    assert len(result.reasons) == 1
    assert "BK-AAAAA" in result.reasons[0]
    assert "approved" in result.reasons[0]
    assert "09:00-11:00" in result.reasons[0]


@pytest.mark.asyncio
async def test_touching_slot_is_valid(db_session):
    await add_booking(db_session, "BK-AAAAA", "CSIS-101", "2026-03-05", "09:00", "11:00")

    result = await validate_booking(db_session, proposal(start="11:00", end="13:00"), today=TODAY)

    assert result.valid is True


@pytest.mark.asyncio
async def test_pending_booking_also_blocks(db_session):
    await add_booking(db_session, "BK-PPPPP", "CSIS-101", "2026-03-05", "09:00", "10:00",
                      status="Pending", owner_role="student")

    result = await validate_booking(db_session, proposal(), today=TODAY)

    assert result.valid is False
    assert "pending" in result.reasons[0]
    assert "held by student" in result.reasons[0]


@pytest.mark.asyncio
async def test_rejected_booking_never_conflicts(db_session):
    await add_booking(db_session, "BK-RRRRR", "CSIS-101", "2026-03-05", "09:00", "11:00",
                      status="Rejected")

    result = await validate_booking(db_session, proposal(), today=TODAY)

    assert result.valid is True


@pytest.mark.asyncio
async def test_other_room_or_date_does_not_conflict(db_session):
    await add_booking(db_session, "BK-AAAAA", "CSIS-102", "2026-03-05", "09:00", "11:00")
    await add_booking(db_session, "BK-BBBBB", "CSIS-101", "2026-03-06", "09:00", "11:00")

    result = await validate_booking(db_session, proposal(), today=TODAY)

    assert result.valid is True


@pytest.mark.asyncio
async def test_every_overlapping_booking_is_reported(db_session):
    await add_booking(db_session, "BK-AAAAA", "CSIS-101", "2026-03-05", "08:00", "09:30")
    await add_booking(db_session, "BK-BBBBB", "CSIS-101", "2026-03-05", "10:30", "12:00")
    await add_booking(db_session, "BK-CCCCC", "CSIS-101", "2026-03-05", "12:00", "13:00")

    result = await validate_booking(db_session, proposal(), today=TODAY)

    assert result.valid is False
    assert {b.booking_id for b in result.conflicts} == {"BK-AAAAA", "BK-BBBBB"}
    assert len(result.reasons) == 2


def test_outside_operating_hours():
    result = check_static_rules(proposal(start="23:00", end="23:30"), TODAY, get_settings())

    assert result.valid is False
    assert result.reasons == [
        "Bookings must be within operating hours (07:00 - 22:00). Requested: 23:00-23:30."
    ]


def test_end_exactly_at_closing_is_allowed():
    result = check_static_rules(proposal(start="20:00", end="22:00"), TODAY, get_settings())
    assert result.valid is True


def test_start_before_opening():
    result = check_static_rules(proposal(start="06:30", end="08:00"), TODAY, get_settings())
    assert result.valid is False
    assert "operating hours" in result.reasons[0]


def test_past_date_rejected():
    result = check_static_rules(proposal(day="2026-02-28"), TODAY, get_settings())

    assert result.valid is False
    assert result.reasons == [
        "Cannot book in the past. Requested date: 2026-02-28, today is 2026-03-01."
    ]


def test_today_is_bookable():
    result = check_static_rules(proposal(day="2026-03-01"), TODAY, get_settings())
    assert result.valid is True


@pytest.mark.parametrize("field", ["room_id", "date", "start_time", "end_time"])
def test_missing_field(field):
    data = {"room_id": "CSIS-101", "date": "2026-03-05", "start_time": "09:00", "end_time": "10:00"}
    data[field] = "  "

    result = check_static_rules(BookingProposal(**data), TODAY, get_settings())

    assert result.valid is False
    assert result.reasons == ["Missing required fields: room, date, start time, or end time."]


def test_start_not_before_end():
    result = check_static_rules(proposal(start="11:00", end="11:00"), TODAY, get_settings())
    assert result.reasons == ["Invalid time range: 11:00 is not before 11:00."]


def test_unreadable_time_fails_ordering_rule():
    result = check_static_rules(proposal(start="nine", end="11:00"), TODAY, get_settings())
    assert result.valid is False
    assert result.reasons[0].startswith("Invalid time range:")


def test_malformed_date():
    result = check_static_rules(proposal(day="2026-02-30"), TODAY, get_settings())
    assert result.reasons == ["Invalid date: 2026-02-30 (expected YYYY-MM-DD)."]


def test_duration_limit():
    ok = check_static_rules(proposal(start="08:00", end="12:00"), TODAY, get_settings())
    too_long = check_static_rules(proposal(start="08:00", end="12:30"), TODAY, get_settings())

    assert ok.valid is True
    assert too_long.valid is False
    assert too_long.reasons == [
        "Maximum booking duration is 4 hours. Requested duration: 4.5 hours."
    ]


def test_first_failing_rule_wins():
    """Past date and out-of-hours together: only the past-date reason is reported."""
    result = check_static_rules(proposal(day="2026-01-01", start="23:00", end="23:30"),
                                TODAY, get_settings())

    assert len(result.reasons) == 1
    assert "past" in result.reasons[0]


@pytest.mark.asyncio
async def test_static_failure_skips_store(db_session, monkeypatch):
    async def fail_query(*args, **kwargs):
        raise AssertionError("store must not be queried")

    monkeypatch.setattr(validator, "query_bookings", fail_query)

    result = await validate_booking(db_session, proposal(start="23:00", end="23:30"), today=TODAY)
    assert result.valid is False


@pytest.mark.asyncio
async def test_store_failure_is_invalid(db_session, monkeypatch):
    async def broken_query(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    monkeypatch.setattr(validator, "query_bookings", broken_query)

    result = await validate_booking(db_session, proposal(), today=TODAY)

    assert result.valid is False
    assert result.infrastructure_error is True
    assert result.conflicts == []
    assert result.reasons[0].startswith(
        "Could not verify room availability due to a database error:"
    )


@pytest.mark.asyncio
async def test_injected_clock(db_session):
    result = await validate_booking(db_session, proposal(day="2026-03-05"),
                                    clock=lambda: date(2026, 3, 6))
    assert result.valid is False
    assert "past" in result.reasons[0]
