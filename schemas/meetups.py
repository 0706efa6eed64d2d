from datetime import datetime

from pydantic import Field

from schemas.common import CamelModel


class MeetupCreateRequest(CamelModel):
    title: str = Field(min_length=1, max_length=120)
    description: str = Field(min_length=1, max_length=2000)
    time: datetime
    location: str = Field(min_length=1, max_length=200)
