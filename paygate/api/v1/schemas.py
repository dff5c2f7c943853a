"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from typing import List, Optional


class ConfirmMicroDepositsRequest(BaseModel):
    """Request body for POST /v1/depositories/{depository_id}/micro-deposits/confirm"""

    amounts: List[str] = Field(default_factory=list, description='Guessed amounts, e.g. "USD 0.12"')


class InitiateMicroDepositsResponse(BaseModel):
    """Response for POST /v1/depositories/{depository_id}/micro-deposits (empty unless degraded)"""

    warning: Optional[str] = None


class MicroDepositSchema(BaseModel):
    """Micro-deposit as shown on the admin server"""

    amount: str
