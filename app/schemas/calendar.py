from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CalendarEventCreate(BaseModel):
    """Schedule a video call with a previous match; times are parsed by the service"""

    participant_id: UUID
    title: str = Field("Video call", min_length=1, max_length=200)
    start_time: Any
    end_time: Any


class CalendarEventUpdate(BaseModel):
    """Organizer edits; changing either time resets both confirmations"""

    title: str | None = Field(None, min_length=1, max_length=200)
    start_time: Any = None
    end_time: Any = None


class CalendarEventResponse(BaseModel):
    id: UUID
    organizer_id: UUID
    participant_id: UUID
    title: str
    start_time: datetime
    end_time: datetime
    status: str
    video_link: str
    confirmed_by: list[UUID]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
