"""Unit tests for the micro-deposit merge sweep"""

from datetime import timedelta
from sqlalchemy.orm import Session

from paygate.domain.exceptions import MergeError
from paygate.domain.merging import merge_micro_deposits
from paygate.domain.models import Amount, MicroDeposit, UploadableMicroDeposit
from paygate.infrastructure.database.models import MicroDepositRecord
from paygate.infrastructure.database.repositories import MicroDepositRepository
from paygate.utils.date_utils import utc_now


class RecordingMerger:
    def __init__(self, fail_file_ids=(), error=MergeError):
        self.fail_file_ids = set(fail_file_ids)
        self.error = error
        self.seen = []

    def merge_micro_deposit(self, deposit: UploadableMicroDeposit) -> str:
        self.seen.append(deposit.file_id)
        if deposit.file_id in self.fail_file_ids:
            raise self.error(f"unable to merge file={deposit.file_id}")
        return f"merged-{deposit.depository_id}.ach"


def seed(repo: MicroDepositRepository):
    """Three depositories with a full set of three micro-deposits each"""
    start = utc_now()
    for n in range(3):
        repo.initiate_micro_deposits(
            f"dep-{n}",
            "user-1",
            [
                MicroDeposit(amount=Amount(cents=10 + n), file_id=f"file-{n}-a"),
                MicroDeposit(amount=Amount(cents=20 + n), file_id=f"file-{n}-b"),
                MicroDeposit(amount=Amount(cents=30 + 2 * n), file_id=f"file-{n}-c"),
            ],
            now=start + timedelta(milliseconds=n),
        )


def test_sweep_merges_every_row(db: Session, micro_deposit_repo: MicroDepositRepository):
    seed(micro_deposit_repo)
    merger = RecordingMerger()

    summary = merge_micro_deposits(micro_deposit_repo, merger, batch_size=4)

    assert (summary.merged, summary.skipped, summary.failed) == (9, 0, 0)
    assert len(merger.seen) == 9
    rows = db.query(MicroDepositRecord).all()
    for row in rows:
        db.refresh(row)
    assert {r.merged_filename for r in rows} == {"merged-dep-0.ach", "merged-dep-1.ach", "merged-dep-2.ach"}


def test_second_sweep_finds_nothing(micro_deposit_repo: MicroDepositRepository):
    seed(micro_deposit_repo)
    merge_micro_deposits(micro_deposit_repo, RecordingMerger())  # configured batch size

    merger = RecordingMerger()
    summary = merge_micro_deposits(micro_deposit_repo, merger, batch_size=10)

    assert (summary.merged, summary.skipped, summary.failed) == (0, 0, 0)
    assert merger.seen == []


def test_failed_row_does_not_stop_sweep(db: Session, micro_deposit_repo: MicroDepositRepository):
    seed(micro_deposit_repo)
    merger = RecordingMerger(fail_file_ids={"file-1-a"})

    summary = merge_micro_deposits(micro_deposit_repo, merger, batch_size=2)

    assert (summary.merged, summary.failed) == (8, 1)
    unmerged = db.query(MicroDepositRecord).filter(MicroDepositRecord.merged_filename.is_(None)).all()
    assert [r.file_id for r in unmerged] == ["file-1-a"]

    # The failed row is picked up again by the next sweep
    retry = merge_micro_deposits(micro_deposit_repo, RecordingMerger(), batch_size=2)
    assert retry.merged == 1


def test_unexpected_merger_error_is_counted(micro_deposit_repo: MicroDepositRepository):
    seed(micro_deposit_repo)
    merger = RecordingMerger(fail_file_ids={"file-0-b"}, error=OSError)

    summary = merge_micro_deposits(micro_deposit_repo, merger, batch_size=3)

    assert (summary.merged, summary.failed) == (8, 1)
    assert len(merger.seen) == 9


def test_unparseable_row_is_passed_over(db: Session, micro_deposit_repo: MicroDepositRepository):
    seed(micro_deposit_repo)
    db.query(MicroDepositRecord).filter(MicroDepositRecord.file_id == "file-0-a").update({"amount": "garbage"})
    db.commit()
    merger = RecordingMerger()

    summary = merge_micro_deposits(micro_deposit_repo, merger, batch_size=1)

    assert summary.merged == 8
    assert "file-0-a" not in merger.seen


def test_row_marked_elsewhere_is_skipped(micro_deposit_repo: MicroDepositRepository):
    seed(micro_deposit_repo)

    class RacingMerger(RecordingMerger):
        def merge_micro_deposit(self, deposit):
            filename = super().merge_micro_deposit(deposit)
            # Another worker marks the row between our read and our update
            micro_deposit_repo.mark_micro_deposit_as_merged("other-worker.ach", deposit)
            return filename

    summary = merge_micro_deposits(micro_deposit_repo, RacingMerger(), batch_size=10)

    assert (summary.merged, summary.skipped) == (0, 9)
