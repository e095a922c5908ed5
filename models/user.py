from enum import Enum
from pydantic import BaseModel
from typing import Optional


class Role(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


class UserOut(BaseModel):
    """User record as read from the identity store."""

    id: str
    username: Optional[str] = None
    email: Optional[str] = None
    role: Role = Role.BUYER
    is_blocked: bool = False
    is_mobile_verified: bool = False
    profile_picture_url: Optional[str] = None
    mobile_number: Optional[str] = None

    class Config:
        from_attributes = True
