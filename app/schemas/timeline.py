from datetime import datetime
from enum import Enum

from app.schemas.common import CamelModel


class Audience(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"


class TimelineEvent(CamelModel):
    id: str
    type: str
    title: str
    description: str | None = None
    date: str
    time: str | None = None
    performed_by: str | None = None
    performed_by_id: str | None = None
    line_color: str | None = None


class ContractTimelineEvent(CamelModel):
    id: str
    type: str
    title: str
    description: str | None = None
    created_at: datetime
    performed_by: str | None = None
    performed_by_id: str | None = None


class ContractTimeline(CamelModel):
    current_status: str | None = None
    events: list[ContractTimelineEvent]
