from pydantic import BaseModel
from typing import Optional


class ListingOut(BaseModel):
    """Listing record as read from the listing store."""

    id: str
    seller_id: str
    title: str
    asking_price: Optional[float] = None
    ad_image_url: Optional[str] = None
    is_available: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    class Config:
        from_attributes = True
