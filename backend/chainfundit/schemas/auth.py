from typing import Optional
from pydantic import BaseModel

class MeResponse(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    role: str
    account_verified: bool
    international_account_verified: bool
