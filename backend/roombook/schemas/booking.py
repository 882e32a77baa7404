"""
Pydantic schemas for booking-related request/response validation.

Proposals are deliberately loose: every field is an optional string so that
malformed input reaches the validator and comes back as a reason list
instead of a 422.
"""

import datetime as dt
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_serializer

from roombook.core.timeutils import format_hhmm


class BookingProposal(BaseModel):
    room_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("room_id", "room_number", "room")
    )
    date: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("date", "start_date")
    )
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    model_config = {"coerce_numbers_to_str": True, "populate_by_name": True}


class CancellationRequest(BaseModel):
    room_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("room_id", "room_number", "room")
    )
    date: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("date", "start_date")
    )

    model_config = {"coerce_numbers_to_str": True, "populate_by_name": True}


class BookingSnapshot(BaseModel):
    """Possibly partial booking record, as carried by UPDATE/DELETE events."""

    booking_id: str
    room_id: Optional[str] = None
    date: Optional[dt.date] = None
    start_time: Optional[dt.time] = None
    end_time: Optional[dt.time] = None
    status: Optional[str] = None
    owner_role: Optional[str] = None
    created_at: Optional[dt.datetime] = None

    model_config = {"from_attributes": True}

    @field_serializer("start_time", "end_time")
    def _hhmm(self, value: Optional[dt.time]) -> Optional[str]:
        return format_hhmm(value) if value is not None else None


class BookingResponse(BookingSnapshot):
    room_id: str
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    status: str
    owner_role: str


class BookingRejection(BaseModel):
    message: str
    reasons: list[str]
    conflicts: list[BookingResponse] = []


class StatusChangeResponse(BaseModel):
    message: str
    booking_id: str
    status: str


class CancelResponse(BaseModel):
    message: str
    deleted: list[BookingResponse]


class BookingChangeEvent(BaseModel):
    eventType: Literal["INSERT", "UPDATE", "DELETE"]
    new: Optional[dict] = None
    old: Optional[dict] = None
