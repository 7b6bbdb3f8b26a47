"""
Academic Sessions Schemas
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class SessionInfo(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    label: str
    start_year: int
    start_date: datetime
    end_date: datetime


class SessionListResponse(BaseModel):
    current: SessionInfo
    sessions: list[str]
