from pydantic import BaseModel, Field


class AffiliateClickPayload(BaseModel):
    affiliate_code: str = Field(..., min_length=1, max_length=50)
