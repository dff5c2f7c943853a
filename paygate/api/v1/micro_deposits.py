"""POST /v1/depositories/{depository_id}/micro-deposits[/confirm] - micro-deposit verification"""

import time
import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from paygate.api.dependencies import get_micro_deposit_service, get_request_id, get_user_id
from paygate.api.v1.schemas import ConfirmMicroDepositsRequest, InitiateMicroDepositsResponse
from paygate.domain.exceptions import (
    DepositoryNotFoundError,
    GuessValidationError,
    InvalidDepositoryStatusError,
    MicroDepositMismatchError,
    MicroDepositsExistError,
    UpstreamError,
)
from paygate.domain.verification import MicroDepositService
from paygate.infrastructure.observability.logging import log_confirmation, log_micro_deposits_initiated
from paygate.infrastructure.observability.metrics import record_confirmation, record_initiation

router = APIRouter()


@router.post(
    "/depositories/{depository_id}/micro-deposits",
    status_code=201,
    response_model=InitiateMicroDepositsResponse,
    response_model_exclude_none=True,
)
async def initiate_micro_deposits(
    depository_id: str,
    request: Request,
    user_id: str = Depends(get_user_id),
    service: MicroDepositService = Depends(get_micro_deposit_service),
):
    """
    Send micro-deposits to a depository so the user can prove they own it.

    Returns 201 with an empty body, or with a warning when the deposits went
    out but the ledger could not be updated.
    """
    start_time = time.time()
    request_id = get_request_id(request)
    log_extra = {"request_id": request_id, "user_id": user_id}

    try:
        result = await service.initiate(request_id, user_id, depository_id)

    except DepositoryNotFoundError as e:
        logging.warning(f"Micro-deposits: {e}", extra=log_extra)
        raise HTTPException(status_code=404, detail="depository not found")

    except (InvalidDepositoryStatusError, MicroDepositsExistError) as e:
        record_initiation("rejected")
        logging.warning(f"Micro-deposits: {e}", extra=log_extra)
        raise HTTPException(status_code=409, detail="micro-deposits cannot be initiated for this depository")

    except UpstreamError as e:
        record_initiation("failed")
        logging.error(f"Upstream error submitting micro-deposits: {e}", extra=log_extra)
        raise HTTPException(status_code=502, detail="upstream service failure")

    except Exception as e:
        record_initiation("failed")
        logging.error(f"Unexpected error initiating micro-deposits: {e}", extra=log_extra)
        raise HTTPException(status_code=500, detail="Internal server error")

    duration_ms = (time.time() - start_time) * 1000
    record_initiation("degraded" if result.ledger_error else "initiated")
    log_micro_deposits_initiated(
        request_id, user_id, depository_id, len(result.micro_deposits), result.ledger_error, duration_ms
    )

    if result.ledger_error:
        return InitiateMicroDepositsResponse(warning="micro-deposits sent but ledger posting failed")
    return InitiateMicroDepositsResponse()


@router.post("/depositories/{depository_id}/micro-deposits/confirm")
def confirm_micro_deposits(
    depository_id: str,
    request_body: ConfirmMicroDepositsRequest,
    request: Request,
    user_id: str = Depends(get_user_id),
    service: MicroDepositService = Depends(get_micro_deposit_service),
):
    """
    Verify a depository by echoing back its micro-deposit amounts.

    Errors never say how many micro-deposits exist.
    """
    request_id = get_request_id(request)
    log_extra = {"request_id": request_id, "user_id": user_id}

    try:
        service.confirm(user_id, depository_id, request_body.amounts)

    except DepositoryNotFoundError as e:
        logging.warning(f"Confirm micro-deposits: {e}", extra=log_extra)
        raise HTTPException(status_code=404, detail="depository not found")

    except InvalidDepositoryStatusError as e:
        logging.warning(f"Confirm micro-deposits: {e}", extra=log_extra)
        raise HTTPException(status_code=409, detail="depository is not awaiting verification")

    except GuessValidationError as e:
        record_confirmation("invalid")
        log_confirmation(request_id, user_id, depository_id, "invalid")
        raise HTTPException(status_code=400, detail=str(e))

    except MicroDepositMismatchError:
        record_confirmation("mismatch")
        log_confirmation(request_id, user_id, depository_id, "mismatch")
        raise HTTPException(status_code=400, detail="incorrect micro-deposit amounts")

    except Exception as e:
        logging.error(f"Unexpected error confirming micro-deposits: {e}", extra=log_extra)
        raise HTTPException(status_code=500, detail="Internal server error")

    record_confirmation("verified")
    log_confirmation(request_id, user_id, depository_id, "verified")
    return {}
