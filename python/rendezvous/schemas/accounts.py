"""Account-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AccountOut(BaseModel):
    """Public view of an account. Never includes the credential digest."""

    id: UUID
    username: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MeOut(BaseModel):
    """Identity of the authenticated viewer."""

    account_id: UUID
    username: str
