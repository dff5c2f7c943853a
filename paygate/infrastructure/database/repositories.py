"""Data access layer for depositories, micro-deposits and transfer events"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from paygate.domain.amounts import parse_amounts
from paygate.domain.exceptions import (
    DepositoryNotFoundError,
    GuessValidationError,
    MicroDepositMismatchError,
    MicroDepositsExistError,
    PersistenceError,
)
from paygate.domain.models import (
    AccountType,
    Amount,
    Depository,
    DepositoryStatus,
    HolderType,
    MicroDeposit,
    TransferRequest,
    UploadableMicroDeposit,
)
from paygate.infrastructure.database.models import DepositoryRecord, EventRecord, MicroDepositRecord
from paygate.utils.date_utils import start_of_day, utc_now
from paygate.utils.ids import new_id

MICRO_DEPOSITS_PER_INITIATION = 3


class DepositoryRepository:
    """Repository for depositories (read + status changes only)"""

    def __init__(self, db: Session):
        self.db = db

    def get_user_depository(self, depository_id: str, user_id: str) -> Optional[Depository]:
        """Fetch a depository if it exists, isn't deleted and belongs to the user"""
        try:
            row = (
                self.db.query(DepositoryRecord)
                .filter(
                    DepositoryRecord.depository_id == depository_id,
                    DepositoryRecord.user_id == user_id,
                    DepositoryRecord.deleted_at.is_(None),
                )
                .first()
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"reading depository={depository_id}: {e}") from e

        if row is None:
            return None
        try:
            return Depository(
                id=row.depository_id,
                user_id=row.user_id,
                bank_name=row.bank_name,
                holder=row.holder,
                holder_type=HolderType(row.holder_type),
                account_type=AccountType(row.account_type),
                routing_number=row.routing_number,
                account_number=row.account_number,
                status=DepositoryStatus(row.status),
            )
        except ValueError as e:
            raise PersistenceError(f"depository={depository_id} has invalid data: {e}") from e

    def update_status(self, depository_id: str, user_id: str, status: DepositoryStatus) -> None:
        try:
            updated = (
                self.db.query(DepositoryRecord)
                .filter(
                    DepositoryRecord.depository_id == depository_id,
                    DepositoryRecord.user_id == user_id,
                    DepositoryRecord.deleted_at.is_(None),
                )
                .update({"status": status.value, "last_updated_at": utc_now()}, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"updating depository={depository_id} status: {e}") from e

        if updated == 0:
            raise DepositoryNotFoundError(f"depository={depository_id} not found")


class EventRepository:
    """Repository for the transfer audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def write_transfer_event(self, user_id: str, transfer: TransferRequest) -> EventRecord:
        event = EventRecord(
            event_id=new_id(),
            user_id=user_id,
            topic=f"{transfer.type.value} transfer to {transfer.receiver}",
            message=f"{transfer.description} for {transfer.amount}",
            type="TransferEvent",
            created_at=utc_now(),
        )
        try:
            self.db.add(event)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"writing transfer event for user={user_id}: {e}") from e
        return event


def _accumulate_micro_deposits(rows) -> List[MicroDeposit]:
    """Convert (amount, file_id) rows, dropping any whose amount no longer parses"""
    micro_deposits = []
    for row, parsed in zip(rows, parse_amounts(row.amount for row in rows)):
        if not parsed.ok:
            logging.warning(f"Skipping micro-deposit file={row.file_id}: {parsed.error}")
            continue
        micro_deposits.append(MicroDeposit(amount=parsed.amount, file_id=row.file_id))
    return micro_deposits


class MicroDepositRepository:
    """Repository for micro-deposits: once-only initiation, confirmation and merge tracking"""

    def __init__(self, db: Session):
        self.db = db

    def get_micro_deposits_for_user(self, depository_id: str, user_id: str) -> List[MicroDeposit]:
        """Non-deleted micro-deposits for a user's depository"""
        try:
            rows = (
                self.db.query(MicroDepositRecord.amount, MicroDepositRecord.file_id)
                .filter(
                    MicroDepositRecord.depository_id == depository_id,
                    MicroDepositRecord.user_id == user_id,
                    MicroDepositRecord.deleted_at.is_(None),
                )
                .all()
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"reading micro-deposits for depository={depository_id}: {e}") from e
        return _accumulate_micro_deposits(rows)

    def get_micro_deposits(self, depository_id: str) -> List[MicroDeposit]:
        """
        Every micro-deposit recorded for a depository, for the admin server.

        Rows with an amount that doesn't parse are left out rather than failing the listing.
        """
        try:
            rows = (
                self.db.query(MicroDepositRecord.amount, MicroDepositRecord.file_id)
                .filter(MicroDepositRecord.depository_id == depository_id)
                .all()
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"admin: reading micro-deposits for depository={depository_id}: {e}") from e
        return _accumulate_micro_deposits(rows)

    def initiate_micro_deposits(
        self,
        depository_id: str,
        user_id: str,
        micro_deposits: List[MicroDeposit],
        now: datetime | None = None,
    ) -> None:
        """
        Save micro-deposits in one transaction. Nothing is written when the
        depository already has (non-deleted) micro-deposits.

        Raises:
            ValueError: Not exactly three micro-deposits (two amounts and their total)
            MicroDepositsExistError: Micro-deposits were already initiated
            PersistenceError: Insert failed; the transaction is rolled back
        """
        if len(micro_deposits) != MICRO_DEPOSITS_PER_INITIATION:
            raise ValueError(
                f"expected {MICRO_DEPOSITS_PER_INITIATION} micro-deposits, got {len(micro_deposits)}"
            )
        if self.get_micro_deposits_for_user(depository_id, user_id):
            raise MicroDepositsExistError(f"micro-deposits already initiated for depository={depository_id}")

        # Each row gets its own instant so created_at ordering is total for the merge cursor
        now = now or utc_now()
        try:
            for i, md in enumerate(micro_deposits):
                self.db.add(
                    MicroDepositRecord(
                        depository_id=depository_id,
                        user_id=user_id,
                        amount=str(md.amount),
                        file_id=md.file_id,
                        created_at=now + timedelta(microseconds=i),
                    )
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"initiating micro-deposits for depository={depository_id}: {e}") from e

    def confirm_micro_deposits(self, depository_id: str, user_id: str, guesses: List[Amount]) -> None:
        """
        Compare guesses against the stored micro-deposits.

        Every stored amount must be matched by its own guess: a guess is used
        at most once, so duplicated guesses can't stand in for different deposits.

        Raises:
            GuessValidationError: No micro-deposits, or the guess count differs
            MicroDepositMismatchError: Amounts don't match
        """
        micro_deposits = self.get_micro_deposits_for_user(depository_id, user_id)

        # Only the guess count is reported, the stored count would be an info leak
        if not micro_deposits or len(guesses) != len(micro_deposits):
            raise GuessValidationError(f"incorrect amount of guesses, got {len(guesses)}")

        if Counter(md.amount for md in micro_deposits) != Counter(guesses):
            raise MicroDepositMismatchError("incorrect micro-deposit guesses")

    def get_micro_deposit_cursor(self, batch_size: int, now: datetime | None = None) -> "MicroDepositCursor":
        """Cursor over unmerged micro-deposits beginning at the start of the current (UTC) day"""
        return MicroDepositCursor(self.db, batch_size, newer_than=start_of_day(now or utc_now()))

    def mark_micro_deposit_as_merged(self, filename: str, deposit: UploadableMicroDeposit) -> int:
        """
        Record the merged file a micro-deposit went out in.

        Only rows without a merged filename are updated, so repeating the call
        (or racing another sweep) changes nothing.

        Returns:
            Number of rows updated (0 or 1)
        """
        try:
            updated = (
                self.db.query(MicroDepositRecord)
                .filter(
                    MicroDepositRecord.depository_id == deposit.depository_id,
                    MicroDepositRecord.file_id == deposit.file_id,
                    MicroDepositRecord.amount == str(deposit.amount),
                    or_(MicroDepositRecord.merged_filename.is_(None), MicroDepositRecord.merged_filename == ""),
                    MicroDepositRecord.deleted_at.is_(None),
                )
                .update({"merged_filename": filename}, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"marking micro-deposit file={deposit.file_id} merged into {filename}: {e}") from e
        return updated


class MicroDepositCursor:
    """
    Reads unmerged micro-deposits in created_at order, one batch at a time.

    ``newer_than`` only lives in memory: it starts at the day's first instant
    and moves to the newest created_at of each batch read. A new cursor
    starts over and can return rows that another sweep has yet to mark merged;
    the merged_filename guard in ``mark_micro_deposit_as_merged`` keeps that safe.
    """

    def __init__(self, db: Session, batch_size: int, newer_than: datetime):
        self.db = db
        self.batch_size = batch_size
        self.newer_than = newer_than

    def next(self) -> List[UploadableMicroDeposit]:
        """
        Next batch of unmerged micro-deposits, empty once the day is exhausted.

        Rows whose amount no longer parses are logged and passed over; the
        watermark still moves past them so they don't block later batches.
        """
        while True:
            rows = self._read_rows()
            if not rows:
                return []

            batch = []
            for row in rows:
                try:
                    amount = Amount.from_string(row.amount)
                except ValueError as e:
                    logging.warning(f"Skipping micro-deposit file={row.file_id} in merge cursor: {e}")
                    continue
                batch.append(
                    UploadableMicroDeposit(
                        depository_id=row.depository_id,
                        user_id=row.user_id,
                        amount=amount,
                        file_id=row.file_id,
                        created_at=row.created_at,
                    )
                )

            self.newer_than = max(self.newer_than, *(row.created_at for row in rows))
            if batch:
                return batch

    def _read_rows(self) -> List[MicroDepositRecord]:
        try:
            return (
                self.db.query(MicroDepositRecord)
                .filter(
                    MicroDepositRecord.deleted_at.is_(None),
                    or_(MicroDepositRecord.merged_filename.is_(None), MicroDepositRecord.merged_filename == ""),
                    MicroDepositRecord.created_at > self.newer_than,
                )
                .order_by(MicroDepositRecord.created_at.asc())
                .limit(self.batch_size)
                .all()
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"micro-deposit cursor: {e}") from e
