"""Dependency injection for FastAPI endpoints"""

from functools import lru_cache
from typing import Optional
from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from paygate.config import settings
from paygate.domain.ledger_posting import LedgerPoster
from paygate.domain.models import AccountType
from paygate.domain.odfi import ODFIAccount
from paygate.domain.verification import MicroDepositService
from paygate.infrastructure.clients.accounts import AccountsClient
from paygate.infrastructure.clients.ach import ACHClient
from paygate.infrastructure.database.repositories import DepositoryRepository, EventRepository, MicroDepositRepository
from paygate.infrastructure.database.session import get_db


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_user_id(x_user_id: str = Header(..., min_length=1)) -> str:
    """Caller identity, set by the auth proxy in front of this service"""
    return x_user_id


def get_ach_client() -> ACHClient:
    """Provide ACH file service client instance"""
    return ACHClient()


def get_accounts_client() -> Optional[AccountsClient]:
    """Provide Accounts client, or None when ledger integration is disabled"""
    return AccountsClient() if settings.accounts_enabled else None


@lru_cache
def get_odfi_account() -> ODFIAccount:
    """Process-wide ODFI account so its resolved ledger ID is shared by all requests"""
    return ODFIAccount(
        AccountsClient() if settings.accounts_enabled else None,
        account_number=settings.odfi_account_number,
        routing_number=settings.odfi_routing_number,
        account_type=AccountType(settings.odfi_account_type),
    )


def get_micro_deposit_repository(db: Session = Depends(get_db)) -> MicroDepositRepository:
    return MicroDepositRepository(db)


def get_micro_deposit_service(
    db: Session = Depends(get_db),
    ach_client: ACHClient = Depends(get_ach_client),
    accounts_client: Optional[AccountsClient] = Depends(get_accounts_client),
    odfi_account: ODFIAccount = Depends(get_odfi_account),
) -> MicroDepositService:
    ledger_poster = LedgerPoster(accounts_client, odfi_account) if accounts_client is not None else None
    return MicroDepositService(
        depository_repo=DepositoryRepository(db),
        micro_deposit_repo=MicroDepositRepository(db),
        event_repo=EventRepository(db),
        ach_client=ach_client,
        odfi_account=odfi_account,
        ledger_poster=ledger_poster,
    )
