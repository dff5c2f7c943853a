"""Accounts (ledger) service HTTP client"""

import httpx
from typing import Any, Dict, List, Optional
from paygate.config import settings
from paygate.domain.exceptions import LedgerServiceError
from paygate.domain.models import Depository, LedgerAccount, LedgerTransaction, TransactionLine
from paygate.infrastructure.observability.metrics import ledger_latency_histogram


class AccountsClient:
    """Client for searching ledger accounts and posting transactions"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.accounts_endpoint
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def _request(self, method: str, path: str, request_id: str, user_id: str, **kwargs: Any) -> httpx.Response:
        headers = {"X-Request-ID": request_id, "X-User-ID": user_id}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                with ledger_latency_histogram.time():
                    return await client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
            except httpx.TimeoutException as e:
                raise LedgerServiceError(f"Accounts service timeout after {self.timeout}s") from e
            except httpx.RequestError as e:
                raise LedgerServiceError(f"Accounts service unreachable: {e}") from e

    async def search_accounts(self, request_id: str, user_id: str, depository: Depository) -> Optional[LedgerAccount]:
        """
        Find the ledger account backing a depository.

        Returns:
            The account, or None when the ledger has no such account

        Raises:
            LedgerServiceError: On timeout, HTTP errors, or invalid response
        """
        response = await self._request(
            "GET",
            "/accounts/search",
            request_id,
            user_id,
            params={
                "number": depository.account_number,
                "routingNumber": depository.routing_number,
                "type": depository.account_type.value,
            },
        )
        if response.status_code == 404:
            return None
        try:
            response.raise_for_status()
            data: Dict[str, Any] = response.json()
            if not data.get("id"):
                return None
            return LedgerAccount(
                id=data["id"],
                account_number=data.get("accountNumber", ""),
                routing_number=data.get("routingNumber", ""),
                type=data.get("type", ""),
            )
        except httpx.HTTPStatusError as e:
            raise LedgerServiceError(f"Accounts service error: {e.response.status_code}") from e
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise LedgerServiceError(f"Invalid account data from accounts service: {e}") from e

    async def post_transaction(self, request_id: str, user_id: str, lines: List[TransactionLine]) -> LedgerTransaction:
        """
        Post one double-entry transaction.

        Raises:
            LedgerServiceError: On timeout, HTTP errors, or invalid response
        """
        response = await self._request(
            "POST",
            "/accounts/transactions",
            request_id,
            user_id,
            json={
                "lines": [
                    {"accountId": line.account_id, "purpose": line.purpose, "amount": line.amount}
                    for line in lines
                ]
            },
        )
        try:
            response.raise_for_status()
            data = response.json()
            return LedgerTransaction(id=data["id"], lines=lines)
        except httpx.HTTPStatusError as e:
            raise LedgerServiceError(f"Accounts service error: {e.response.status_code}") from e
        except (KeyError, ValueError, TypeError) as e:
            raise LedgerServiceError(f"Invalid transaction data from accounts service: {e}") from e
