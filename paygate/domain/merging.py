"""Sweep unmerged micro-deposits into outbound ACH files"""

import logging
from dataclasses import dataclass
from typing import Protocol

from paygate.config import settings
from paygate.domain.models import UploadableMicroDeposit
from paygate.infrastructure.database.repositories import MicroDepositRepository
from paygate.infrastructure.observability.metrics import merge_mark_counter


class FileMerger(Protocol):
    def merge_micro_deposit(self, deposit: UploadableMicroDeposit) -> str:
        """Merge the deposit's ACH file into an outbound file and return that file's name"""
        ...


@dataclass
class MergeSummary:
    merged: int = 0
    skipped: int = 0  # another sweep marked the row first
    failed: int = 0


def merge_micro_deposits(
    repo: MicroDepositRepository, merger: FileMerger, batch_size: int | None = None
) -> MergeSummary:
    """
    Run one sweep over today's unmerged micro-deposits.

    Safe to run from several workers at once: a row that another worker
    already marked is counted as skipped. A failure on one row is logged and
    the sweep moves on to the next.
    """
    summary = MergeSummary()
    cursor = repo.get_micro_deposit_cursor(batch_size or settings.micro_deposit_merge_batch_size)

    while True:
        batch = cursor.next()
        if not batch:
            break

        for deposit in batch:
            try:
                filename = merger.merge_micro_deposit(deposit)
                updated = repo.mark_micro_deposit_as_merged(filename, deposit)
            except Exception as e:
                # A failed row never stops the sweep
                summary.failed += 1
                merge_mark_counter.labels(outcome="failed").inc()
                logging.error(f"Merging micro-deposit file={deposit.file_id} failed: {e}")
                continue

            if updated:
                summary.merged += 1
                merge_mark_counter.labels(outcome="merged").inc()
            else:
                summary.skipped += 1
                merge_mark_counter.labels(outcome="skipped").inc()

    logging.info(
        "Micro-deposit merge sweep finished",
        extra={"step": "merge_sweep", "merged": summary.merged, "skipped": summary.skipped, "failed": summary.failed},
    )
    return summary
