from typing import Literal, Optional

from pydantic import Field, StrictBool

from schemas.common import CamelModel


class LocationUpdateRequest(CamelModel):
    # range checks happen in the handler so bad coordinates answer 400
    latitude: float
    longitude: float
    city: Optional[str] = Field(default=None, min_length=2, max_length=50)
    is_available: StrictBool = True


class AvailabilityRequest(CamelModel):
    is_available: StrictBool


class MapInviteRequest(CamelModel):
    to_user_id: str = Field(min_length=1)
    message: Optional[str] = Field(default=None, max_length=500)
    coffee_shop_id: Optional[str] = None
    coffee_shop_name: Optional[str] = None
    proposed_time: Optional[str] = None


class InviteReplyRequest(CamelModel):
    response: Literal["accept", "decline"]
