"""ODFI (operator) account used as the counterparty for micro-deposits"""

import asyncio
import logging
from typing import Optional, Protocol, Tuple

from paygate.config import settings
from paygate.domain.exceptions import ODFIResolutionError, UpstreamError
from paygate.domain.models import (
    AccountType,
    Depository,
    DepositoryStatus,
    HolderType,
    LedgerAccount,
    Originator,
)

ODFI_ID = "odfi"


class AccountSearcher(Protocol):
    async def search_accounts(self, request_id: str, user_id: str, depository: Depository) -> Optional[LedgerAccount]:
        ...


class ODFIAccount:
    """
    The depository account micro-deposits are debited from.

    The ledger account ID is looked up once and kept for the life of the
    instance. The lookup and the cache write happen under one lock, so
    concurrent callers wait for the first lookup instead of repeating it.
    """

    def __init__(
        self,
        accounts_client: Optional[AccountSearcher],
        account_number: str,
        routing_number: str,
        account_type: AccountType,
    ):
        self.accounts_client = accounts_client
        self.account_number = account_number
        self.routing_number = routing_number
        self.account_type = account_type

        self._lock = asyncio.Lock()
        self._account_id: Optional[str] = None

    async def get_id(self, request_id: str, user_id: str) -> str:
        """
        Raises:
            ODFIResolutionError: Lookup failed or found no account; the next call tries again
        """
        async with self._lock:
            if self._account_id:
                return self._account_id
            if self.accounts_client is None:
                raise ODFIResolutionError("ODFIAccount: no accounts client configured")

            _, depository = self.metadata()
            try:
                account = await self.accounts_client.search_accounts(request_id, user_id, depository)
            except UpstreamError as e:
                raise ODFIResolutionError(f"ODFIAccount: problem getting accountID: {e}") from e
            if account is None or not account.id:
                raise ODFIResolutionError("ODFIAccount: no ledger account found")

            self._account_id = account.id
            logging.info(f"Resolved ODFI ledger account={account.id}", extra={"request_id": request_id})
            return self._account_id

    def metadata(self) -> Tuple[Originator, Depository]:
        """Originator and depository that address micro-deposit files from the ODFI"""
        originator = Originator(
            id=ODFI_ID,
            default_depository=ODFI_ID,
            identification=settings.odfi_identification,
            metadata="Paygate micro-deposits",
        )
        depository = Depository(
            id=ODFI_ID,
            user_id=ODFI_ID,
            bank_name=settings.odfi_bank_name,
            holder=settings.odfi_holder,
            holder_type=HolderType.BUSINESS,
            account_type=self.account_type,
            routing_number=self.routing_number,
            account_number=self.account_number,
            status=DepositoryStatus.VERIFIED,
        )
        return originator, depository
