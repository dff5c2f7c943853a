"""ACH file construction for micro-deposit transfers.

Only the single batch / single entry shape needed for verification deposits
is built here. Field names serialize to the JSON the ACH file service
accepts (``model_dump(by_alias=True)``).
"""

import re
from datetime import datetime
from enum import IntEnum
from typing import Dict, Iterable, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field

from paygate.domain.exceptions import ACHFileError
from paygate.domain.models import AccountType, Depository, Originator, Receiver, TransferRequest, TransferType
from paygate.utils.date_utils import add_business_days, utc_now
from paygate.utils.ids import new_id


class ServiceClassCode(IntEnum):
    MIXED_DEBITS_AND_CREDITS = 200
    CREDITS_ONLY = 220
    DEBITS_ONLY = 225


class TransactionCode(IntEnum):
    CHECKING_CREDIT = 22
    CHECKING_DEBIT = 27
    SAVINGS_CREDIT = 32
    SAVINGS_DEBIT = 37


DEBIT_CODES = {TransactionCode.CHECKING_DEBIT, TransactionCode.SAVINGS_DEBIT}
CREDIT_CODES = {TransactionCode.CHECKING_CREDIT, TransactionCode.SAVINGS_CREDIT}

SUPPORTED_SEC_CODES = {"PPD"}


def _reversal_table(pairs: Iterable[Tuple[TransactionCode, TransactionCode]]) -> Dict[int, int]:
    """Build a two-way debit <-> credit table, rejecting pairs that are not the same account type"""
    table: Dict[int, int] = {}
    for debit, credit in pairs:
        # NACHA pairs a debit with its credit on the same account type 5 codes apart
        if debit not in DEBIT_CODES or credit not in CREDIT_CODES or debit - credit != 5:
            raise ValueError(f"{debit!r} and {credit!r} are not a debit/credit pair")
        table[int(debit)] = int(credit)
        table[int(credit)] = int(debit)
    return table


REVERSAL_CODES = _reversal_table(
    [
        (TransactionCode.CHECKING_DEBIT, TransactionCode.CHECKING_CREDIT),
        (TransactionCode.SAVINGS_DEBIT, TransactionCode.SAVINGS_CREDIT),
    ]
)

_TRANSACTION_CODES = {
    (TransferType.PUSH, AccountType.CHECKING): TransactionCode.CHECKING_CREDIT,
    (TransferType.PULL, AccountType.CHECKING): TransactionCode.CHECKING_DEBIT,
    (TransferType.PUSH, AccountType.SAVINGS): TransactionCode.SAVINGS_CREDIT,
    (TransferType.PULL, AccountType.SAVINGS): TransactionCode.SAVINGS_DEBIT,
}


class _ACHRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class FileHeader(_ACHRecord):
    immediate_origin: str = Field(alias="immediateOrigin")
    immediate_destination: str = Field(alias="immediateDestination")
    immediate_origin_name: str = Field(default="", alias="immediateOriginName")
    immediate_destination_name: str = Field(default="", alias="immediateDestinationName")
    file_creation_date: str = Field(alias="fileCreationDate")  # YYMMDD
    file_creation_time: str = Field(alias="fileCreationTime")  # HHMM
    file_id_modifier: str = Field(default="A", alias="fileIDModifier")


class BatchHeader(_ACHRecord):
    id: str = ""
    service_class_code: int = Field(alias="serviceClassCode")
    company_name: str = Field(alias="companyName")
    company_identification: str = Field(alias="companyIdentification")
    standard_entry_class_code: str = Field(alias="standardEntryClassCode")
    company_entry_description: str = Field(alias="companyEntryDescription")
    effective_entry_date: str = Field(alias="effectiveEntryDate")
    odfi_identification: str = Field(alias="ODFIIdentification")
    batch_number: int = Field(default=1, alias="batchNumber")


class EntryDetail(_ACHRecord):
    id: str = ""
    transaction_code: int = Field(alias="transactionCode")
    rdfi_identification: str = Field(alias="RDFIIdentification")
    check_digit: str = Field(alias="checkDigit")
    dfi_account_number: str = Field(alias="DFIAccountNumber")
    amount: int  # cents
    identification_number: str = Field(default="", alias="identificationNumber")
    individual_name: str = Field(alias="individualName")
    discretionary_data: str = Field(default="", alias="discretionaryData")
    addenda_record_indicator: int = Field(default=0, alias="addendaRecordIndicator")
    trace_number: str = Field(alias="traceNumber")

    @property
    def is_debit(self) -> bool:
        return self.transaction_code in DEBIT_CODES

    @property
    def is_credit(self) -> bool:
        return self.transaction_code in CREDIT_CODES


class BatchControl(_ACHRecord):
    service_class_code: int = Field(alias="serviceClassCode")
    entry_addenda_count: int = Field(alias="entryAddendaCount")
    entry_hash: int = Field(alias="entryHash")
    total_debit: int = Field(alias="totalDebit")
    total_credit: int = Field(alias="totalCredit")
    company_identification: str = Field(alias="companyIdentification")
    odfi_identification: str = Field(alias="ODFIIdentification")
    batch_number: int = Field(alias="batchNumber")


class Batch(_ACHRecord):
    batch_header: BatchHeader = Field(alias="batchHeader")
    entry_details: List[EntryDetail] = Field(default_factory=list, alias="entryDetails")
    batch_control: Optional[BatchControl] = Field(default=None, alias="batchControl")

    def add_entry(self, entry: EntryDetail) -> None:
        self.entry_details.append(entry)

    def create(self) -> None:
        """Recompute the batch control record from the entries"""
        if not self.entry_details:
            raise ACHFileError("batch has no entries")

        total_debit = sum(e.amount for e in self.entry_details if e.is_debit)
        total_credit = sum(e.amount for e in self.entry_details if e.is_credit)
        code = self.batch_header.service_class_code
        if code == ServiceClassCode.CREDITS_ONLY and total_debit > 0:
            raise ACHFileError("credits only batch contains debit entries")
        if code == ServiceClassCode.DEBITS_ONLY and total_credit > 0:
            raise ACHFileError("debits only batch contains credit entries")

        self.batch_control = BatchControl(
            service_class_code=code,
            entry_addenda_count=len(self.entry_details),
            entry_hash=entry_hash(self.entry_details),
            total_debit=total_debit,
            total_credit=total_credit,
            company_identification=self.batch_header.company_identification,
            odfi_identification=self.batch_header.odfi_identification,
            batch_number=self.batch_header.batch_number,
        )


class FileControl(_ACHRecord):
    batch_count: int = Field(alias="batchCount")
    block_count: int = Field(alias="blockCount")
    entry_addenda_count: int = Field(alias="entryAddendaCount")
    entry_hash: int = Field(alias="entryHash")
    total_debit: int = Field(alias="totalDebit")
    total_credit: int = Field(alias="totalCredit")


class ACHFile(_ACHRecord):
    id: str = ""
    file_header: FileHeader = Field(alias="fileHeader")
    batches: List[Batch] = Field(default_factory=list)
    file_control: Optional[FileControl] = Field(default=None, alias="fileControl")

    def create(self) -> None:
        """Recompute every batch control and the file control"""
        for batch in self.batches:
            batch.create()

        entries = [e for b in self.batches for e in b.entry_details]
        # header + control per file and per batch, plus one line per entry
        lines = 2 + 2 * len(self.batches) + len(entries)
        self.file_control = FileControl(
            batch_count=len(self.batches),
            block_count=-(-lines // 10),
            entry_addenda_count=len(entries),
            entry_hash=entry_hash(entries),
            total_debit=sum(b.batch_control.total_debit for b in self.batches),
            total_credit=sum(b.batch_control.total_credit for b in self.batches),
        )

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def entry_hash(entries: Iterable[EntryDetail]) -> int:
    """Sum of RDFI routing prefixes, truncated to 10 digits"""
    return sum(int(e.rdfi_identification) for e in entries) % 10**10


def _check_routing_number(routing_number: str, who: str) -> None:
    if len(routing_number) != 9 or not routing_number.isdigit():
        raise ACHFileError(f"invalid {who} routing number {routing_number!r}")


def construct_ach_file(
    idempotency_key: str,
    transfer: TransferRequest,
    receiver: Receiver,
    receiver_dep: Depository,
    originator: Originator,
    originator_dep: Depository,
    now: datetime | None = None,
) -> ACHFile:
    """
    Build a one batch, one entry ACH file moving ``transfer.amount`` between
    the originator's and receiver's depositories.

    Push transfers credit the receiver, pull transfers debit them. The
    transaction code is picked by the receiver's account type.

    Raises:
        ACHFileError: On invalid routing numbers, amounts or unsupported SEC codes
    """
    if transfer.standard_entry_class_code not in SUPPORTED_SEC_CODES:
        raise ACHFileError(f"unsupported standard entry class code {transfer.standard_entry_class_code}")
    if transfer.amount.cents <= 0:
        raise ACHFileError(f"transfer amount must be positive, got {transfer.amount}")
    _check_routing_number(originator_dep.routing_number, "originator")
    _check_routing_number(receiver_dep.routing_number, "receiver")

    try:
        transaction_code = _TRANSACTION_CODES[(transfer.type, receiver_dep.account_type)]
    except KeyError:
        raise ACHFileError(f"no transaction code for {transfer.type} to {receiver_dep.account_type}")

    now = now or utc_now()
    odfi_identification = originator_dep.routing_number[:8]
    service_class_code = (
        ServiceClassCode.CREDITS_ONLY if transfer.type == TransferType.PUSH else ServiceClassCode.DEBITS_ONLY
    )

    file = ACHFile(
        id=idempotency_key,
        file_header=FileHeader(
            immediate_origin=originator_dep.routing_number,
            immediate_destination=receiver_dep.routing_number,
            immediate_origin_name=originator_dep.bank_name[:23],
            immediate_destination_name=receiver_dep.bank_name[:23],
            file_creation_date=now.strftime("%y%m%d"),
            file_creation_time=now.strftime("%H%M"),
        ),
    )
    batch = Batch(
        batch_header=BatchHeader(
            id=idempotency_key,
            service_class_code=int(service_class_code),
            company_name=originator_dep.holder[:16],
            company_identification=originator.identification,
            standard_entry_class_code=transfer.standard_entry_class_code,
            company_entry_description=transfer.description[:10],
            effective_entry_date=add_business_days(now.date(), 1).strftime("%y%m%d"),
            odfi_identification=odfi_identification,
        )
    )
    batch.add_entry(
        EntryDetail(
            id=new_id()[:8],
            transaction_code=int(transaction_code),
            rdfi_identification=receiver_dep.routing_number[:8],
            check_digit=receiver_dep.routing_number[8],
            dfi_account_number=receiver_dep.account_number,
            amount=transfer.amount.cents,
            identification_number=receiver.id[:15],
            individual_name=receiver.metadata[:22],
            trace_number=f"{odfi_identification}{1:07d}",
        )
    )
    file.batches.append(batch)
    file.create()
    return file


def _next_trace_number(trace_number: str) -> str:
    if not re.fullmatch(r"[0-9]+", trace_number):
        return trace_number
    return str(int(trace_number) + 1).zfill(len(trace_number))


def add_micro_deposit_reversal(file: Optional[ACHFile]) -> None:
    """
    Append an entry to ``file`` that undoes its single entry, so the same
    file both deposits and withdraws the micro-deposit amount.

    Files that aren't exactly one batch with one entry are left untouched.

    Raises:
        ACHFileError: If the entry's transaction code has no reversal pair
    """
    if file is None or len(file.batches) != 1 or len(file.batches[0].entry_details) != 1:
        return

    batch = file.batches[0]
    entry = batch.entry_details[0]
    if entry.transaction_code not in REVERSAL_CODES:
        raise ACHFileError(f"no reversal for transaction code {entry.transaction_code}")

    # The batch now carries a debit and a credit
    batch.batch_header.service_class_code = int(ServiceClassCode.MIXED_DEBITS_AND_CREDITS)

    reversal = entry.model_copy(
        update={
            "id": new_id()[:8],
            "transaction_code": REVERSAL_CODES[entry.transaction_code],
            "trace_number": _next_trace_number(entry.trace_number),
        }
    )
    batch.add_entry(reversal)
    file.create()
