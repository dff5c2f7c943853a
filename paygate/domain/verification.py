"""Micro-deposit verification: initiate deposits to a depository, confirm the user saw them"""

import logging
from typing import List, Optional, Protocol

from paygate.domain.ach import ACHFile, add_micro_deposit_reversal, construct_ach_file
from paygate.domain.amounts import generate_micro_deposit_amounts, parse_amounts, valid_amounts
from paygate.domain.exceptions import (
    ACHServiceError,
    DepositoryNotFoundError,
    GuessValidationError,
    InvalidDepositoryStatusError,
    MicroDepositsExistError,
    UpstreamError,
)
from paygate.domain.ledger_posting import LedgerPoster
from paygate.domain.models import (
    Amount,
    Depository,
    DepositoryStatus,
    InitiationResult,
    MicroDeposit,
    Receiver,
    TransferRequest,
    TransferType,
)
from paygate.domain.odfi import ODFIAccount
from paygate.infrastructure.database.repositories import DepositoryRepository, EventRepository, MicroDepositRepository
from paygate.infrastructure.observability.metrics import ach_file_failures_counter
from paygate.utils.ids import new_id

# NACHA requires this company entry description on micro-deposit entries
MICRO_DEPOSIT_DESCRIPTION = "ACCTVERIFY"


class FileService(Protocol):
    async def create_file(self, idempotency_key: str, file: ACHFile) -> str:
        ...

    async def validate_file(self, file_id: str) -> None:
        ...

    async def get_file(self, file_id: str) -> ACHFile:
        ...


class MicroDepositService:
    """
    Orchestrates micro-deposit verification of a depository.

    Flow (initiate):
    1. Check the depository belongs to the user, is unverified and has no micro-deposits
    2. Generate two random amounts and their sum
    3. For each amount build an ACH file (plus reversal), submit and validate it, write an event
    4. Persist the three micro-deposits
    5. Mirror them in the ledger when it's configured (failures are reported, not rolled back)
    """

    def __init__(
        self,
        depository_repo: DepositoryRepository,
        micro_deposit_repo: MicroDepositRepository,
        event_repo: EventRepository,
        ach_client: FileService,
        odfi_account: ODFIAccount,
        ledger_poster: Optional[LedgerPoster] = None,
    ):
        self.depository_repo = depository_repo
        self.micro_deposit_repo = micro_deposit_repo
        self.event_repo = event_repo
        self.ach_client = ach_client
        self.odfi_account = odfi_account
        self.ledger_poster = ledger_poster

    def _get_unverified_depository(self, depository_id: str, user_id: str) -> Depository:
        depository = self.depository_repo.get_user_depository(depository_id, user_id)
        if depository is None:
            raise DepositoryNotFoundError(f"depository={depository_id} not found")
        if depository.status != DepositoryStatus.UNVERIFIED:
            raise InvalidDepositoryStatusError(f"depository={depository_id} in status {depository.status.value}")
        return depository

    async def initiate(self, request_id: str, user_id: str, depository_id: str) -> InitiationResult:
        """
        Raises:
            DepositoryNotFoundError, InvalidDepositoryStatusError, MicroDepositsExistError,
            UpstreamError (ACH service), ACHFileError, PersistenceError
        """
        depository = self._get_unverified_depository(depository_id, user_id)
        if self.micro_deposit_repo.get_micro_deposits_for_user(depository_id, user_id):
            raise MicroDepositsExistError(f"micro-deposits already initiated for depository={depository_id}")

        amounts, total = generate_micro_deposit_amounts()
        micro_deposits = await self.submit_micro_deposits(request_id, user_id, amounts, total, depository)
        logging.info(
            f"Submitted {len(micro_deposits)} micro-deposits for depository={depository_id}",
            extra={"request_id": request_id, "user_id": user_id},
        )

        self.micro_deposit_repo.initiate_micro_deposits(depository_id, user_id, micro_deposits)
        result = InitiationResult(micro_deposits=micro_deposits)

        if self.ledger_poster is not None:
            try:
                result.ledger_transactions = await self.ledger_poster.post_micro_deposits(
                    request_id, user_id, depository, amounts, total
                )
            except UpstreamError as e:
                # Files are out and rows are stored; the ledger needs reconciling out of band
                result.ledger_error = str(e)
                logging.error(
                    f"Ledger posting failed for depository={depository_id}: {e}",
                    extra={"request_id": request_id, "user_id": user_id},
                )
        return result

    async def submit_micro_deposits(
        self,
        request_id: str,
        user_id: str,
        amounts: List[Amount],
        total: Amount,
        depository: Depository,
    ) -> List[MicroDeposit]:
        """
        Create and submit one ACH file per amount: the two amounts are pushed
        to the depository, the total is pulled back. Each file carries a
        reversal entry for its own amount.
        """
        odfi_originator, odfi_depository = self.odfi_account.metadata()

        micro_deposits = []
        for i, amount in enumerate([*amounts, total]):
            # The Receiver is a stand-in for the depository being verified
            receiver = Receiver(id=f"{new_id()}-micro-deposit-verify", metadata=depository.holder)
            transfer = TransferRequest(
                type=TransferType.PUSH if i < len(amounts) else TransferType.PULL,
                amount=amount,
                originator=odfi_originator.id,
                originator_depository=odfi_depository.id,
                receiver=receiver.id,
                receiver_depository=depository.id,
                description=MICRO_DEPOSIT_DESCRIPTION,
            )

            idempotency_key = new_id()
            file = construct_ach_file(idempotency_key, transfer, receiver, depository, odfi_originator, odfi_depository)
            add_micro_deposit_reversal(file)

            try:
                file_id = await self.ach_client.create_file(idempotency_key, file)
                await self.check_ach_file(file_id, file)
            except ACHServiceError:
                ach_file_failures_counter.inc()
                logging.error(
                    f"Problem submitting ACH file for depository={depository.id}",
                    extra={"request_id": request_id, "user_id": user_id},
                )
                raise
            logging.info(
                f"Created ACH file={file_id} depository={depository.id}",
                extra={"request_id": request_id, "user_id": user_id},
            )

            self.event_repo.write_transfer_event(user_id, transfer)
            micro_deposits.append(MicroDeposit(amount=amount, file_id=file_id))

        return micro_deposits

    async def check_ach_file(self, file_id: str, submitted: ACHFile) -> None:
        """Validate the stored file and read it back to make sure nothing was dropped"""
        await self.ach_client.validate_file(file_id)
        stored = await self.ach_client.get_file(file_id)

        expected = [len(b.entry_details) for b in submitted.batches]
        actual = [len(b.entry_details) for b in stored.batches]
        if actual != expected:
            raise ACHServiceError(f"ACH file={file_id} read back with entries {actual}, expected {expected}")

    def confirm(self, user_id: str, depository_id: str, raw_amounts: List[str]) -> None:
        """
        Check the user's guessed amounts and mark the depository verified.

        Guesses that don't parse are dropped; if none are left the request is invalid.

        Raises:
            DepositoryNotFoundError, InvalidDepositoryStatusError, GuessValidationError,
            MicroDepositMismatchError, PersistenceError
        """
        self._get_unverified_depository(depository_id, user_id)

        parsed = parse_amounts(raw_amounts)
        guesses = valid_amounts(parsed)
        if not guesses:
            raise GuessValidationError("invalid amounts, found none")
        dropped = len(parsed) - len(guesses)
        if dropped:
            logging.info(f"Dropped {dropped} unparseable micro-deposit guesses", extra={"user_id": user_id})

        self.micro_deposit_repo.confirm_micro_deposits(depository_id, user_id, guesses)
        self.depository_repo.update_status(depository_id, user_id, DepositoryStatus.VERIFIED)
