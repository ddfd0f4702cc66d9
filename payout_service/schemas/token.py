# payout_service/schemas/token.py
from pydantic import BaseModel, Field
from typing import Optional


class TokenPayload(BaseModel):
    sub: str  # standard subject claim (user ID)
    org_id: Optional[str] = Field(default=None, alias="orgId")
    is_platform_admin: bool = Field(default=False, alias="isPlatformAdmin")
    exp: int

    model_config = {
        "populate_by_name": True,
        "from_attributes": True,
    }
