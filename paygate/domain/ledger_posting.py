"""Mirror micro-deposits into the Accounts ledger as double-entry transactions"""

import logging
from typing import List, Optional, Protocol

from paygate.domain.exceptions import LedgerPostingError, LedgerServiceError, UpstreamError
from paygate.domain.models import Amount, Depository, LedgerAccount, LedgerTransaction, TransactionLine
from paygate.domain.odfi import ODFIAccount
from paygate.infrastructure.observability.metrics import ledger_post_failures_counter

MAX_POST_ATTEMPTS = 3


class LedgerClient(Protocol):
    async def search_accounts(self, request_id: str, user_id: str, depository: Depository) -> Optional[LedgerAccount]:
        ...

    async def post_transaction(self, request_id: str, user_id: str, lines: List[TransactionLine]) -> LedgerTransaction:
        ...


class LedgerPoster:
    """Posts micro-deposit transactions between a depository and the ODFI account"""

    def __init__(self, client: LedgerClient, odfi_account: ODFIAccount, max_attempts: int = MAX_POST_ATTEMPTS):
        self.client = client
        self.odfi_account = odfi_account
        self.max_attempts = max_attempts

    async def post_transaction(self, request_id: str, user_id: str, lines: List[TransactionLine]) -> LedgerTransaction:
        """
        Post one transaction, retrying immediately on any failure.

        Raises:
            LedgerPostingError: Every attempt failed (chained from the last error)
        """
        attempt = 0
        while True:
            try:
                transaction = await self.client.post_transaction(request_id, user_id, lines)
                logging.info(
                    f"Created ledger transaction={transaction.id} for user={user_id}",
                    extra={"request_id": request_id},
                )
                return transaction

            except UpstreamError as e:
                attempt += 1
                ledger_post_failures_counter.inc()

                if attempt >= self.max_attempts:
                    raise LedgerPostingError(
                        f"error creating transaction for user={user_id} after {attempt} attempts: {e}"
                    ) from e

    async def post_micro_deposits(
        self,
        request_id: str,
        user_id: str,
        depository: Depository,
        amounts: List[Amount],
        total: Amount,
    ) -> List[LedgerTransaction]:
        """
        Credit each micro-deposit to the depository's account (debiting the
        ODFI), then debit the total back. Stops at the first failed post;
        transactions already posted stay posted.

        Raises:
            LedgerServiceError: The depository has no ledger account
            ODFIResolutionError: The ODFI account can't be resolved
            LedgerPostingError: A transaction failed every attempt
        """
        if len(amounts) != 2:
            raise ValueError(f"expected 2 micro-deposit amounts, got {len(amounts)}")

        account = await self.client.search_accounts(request_id, user_id, depository)
        if account is None:
            raise LedgerServiceError(f"no ledger account for user={user_id} depository={depository.id}")
        odfi_account_id = await self.odfi_account.get_id(request_id, user_id)

        transactions = []
        for amount in amounts:
            lines = [
                TransactionLine(account_id=account.id, purpose="ACHCredit", amount=amount.cents),
                TransactionLine(account_id=odfi_account_id, purpose="ACHDebit", amount=amount.cents),
            ]
            transactions.append(await self.post_transaction(request_id, user_id, lines))

        # Withdraw the micro-deposits
        lines = [
            TransactionLine(account_id=account.id, purpose="ACHDebit", amount=total.cents),
            TransactionLine(account_id=odfi_account_id, purpose="ACHCredit", amount=total.cents),
        ]
        transactions.append(await self.post_transaction(request_id, user_id, lines))
        return transactions
