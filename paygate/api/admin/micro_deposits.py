"""GET /depositories/{depository_id}/micro-deposits - admin listing of micro-deposits

Mounted only on the admin app. Exposing it on the public port would let
anyone verify a depository without seeing the deposits.
"""

import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request

from paygate.api.dependencies import get_micro_deposit_repository, get_request_id
from paygate.api.v1.schemas import MicroDepositSchema
from paygate.domain.exceptions import PersistenceError
from paygate.infrastructure.database.repositories import MicroDepositRepository

router = APIRouter()


@router.get("/depositories/{depository_id}/micro-deposits", response_model=List[MicroDepositSchema])
def get_micro_deposits(
    depository_id: str,
    request: Request,
    repo: MicroDepositRepository = Depends(get_micro_deposit_repository),
):
    try:
        micro_deposits = repo.get_micro_deposits(depository_id)
    except PersistenceError as e:
        logging.error(f"admin: {e}", extra={"request_id": get_request_id(request)})
        raise HTTPException(status_code=500, detail="problem reading micro-deposits")

    return [MicroDepositSchema(amount=str(md.amount)) for md in micro_deposits]
