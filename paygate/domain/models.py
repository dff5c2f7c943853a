"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

# Largest accepted amount is below 10**13 dollars
MAX_AMOUNT_DIGITS = 12


class AccountType(str, Enum):
    CHECKING = "checking"
    SAVINGS = "savings"


class HolderType(str, Enum):
    INDIVIDUAL = "individual"
    BUSINESS = "business"


class DepositoryStatus(str, Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    REJECTED = "rejected"


class TransferType(str, Enum):
    PUSH = "push"  # credit the receiver
    PULL = "pull"  # debit the receiver


@dataclass(frozen=True)
class Amount:
    """Currency amount held as integer cents"""

    cents: int
    symbol: str = "USD"

    def __str__(self) -> str:
        sign = "-" if self.cents < 0 else ""
        whole, frac = divmod(abs(self.cents), 100)
        return f"{self.symbol} {sign}{whole}.{frac:02d}"

    def __add__(self, other: "Amount") -> "Amount":
        if self.symbol != other.symbol:
            raise ValueError(f"cannot add {other.symbol} to {self.symbol}")
        return Amount(cents=self.cents + other.cents, symbol=self.symbol)

    @classmethod
    def from_string(cls, value: str) -> "Amount":
        """
        Parse "USD 0.12" (or a bare "0.12", assumed USD).

        Raises:
            ValueError: On anything that is not a currency amount with at most two decimals
        """
        parts = value.strip().split()
        if len(parts) == 1:
            symbol, number = "USD", parts[0]
        elif len(parts) == 2:
            symbol, number = parts[0].upper(), parts[1]
        else:
            raise ValueError(f"invalid amount {value!r}")
        if len(symbol) != 3 or not symbol.isalpha():
            raise ValueError(f"invalid currency symbol in {value!r}")

        try:
            decimal = Decimal(number)
        except InvalidOperation as e:
            raise ValueError(f"invalid amount {value!r}") from e
        if not decimal.is_finite() or decimal.as_tuple().exponent < -2:
            raise ValueError(f"invalid amount {value!r}")
        if decimal.adjusted() > MAX_AMOUNT_DIGITS:
            raise ValueError(f"amount out of range {value!r}")

        return cls(cents=int(decimal * 100), symbol=symbol)


@dataclass
class Depository:
    """Bank account owned by a user, verified through micro-deposits"""

    id: str
    user_id: str
    bank_name: str
    holder: str
    holder_type: HolderType
    account_type: AccountType
    routing_number: str
    account_number: str
    status: DepositoryStatus


@dataclass
class Originator:
    """Party originating a transfer (the ODFI for micro-deposits)"""

    id: str
    default_depository: str
    identification: str
    metadata: str


@dataclass
class Receiver:
    """Party receiving a transfer"""

    id: str
    metadata: str
    status: str = "verified"


@dataclass
class TransferRequest:
    """Ephemeral transfer used to build one ACH file"""

    type: TransferType
    amount: Amount
    originator: str
    originator_depository: str
    receiver: str
    receiver_depository: str
    description: str
    standard_entry_class_code: str = "PPD"


@dataclass
class MicroDeposit:
    """One submitted micro-deposit amount and the ACH file carrying it"""

    amount: Amount
    file_id: str


@dataclass
class UploadableMicroDeposit:
    """Micro-deposit row awaiting merge into an outbound file"""

    depository_id: str
    user_id: str
    amount: Amount
    file_id: str
    created_at: datetime


@dataclass
class LedgerAccount:
    """Account in the Accounts (ledger) service"""

    id: str
    account_number: str = ""
    routing_number: str = ""
    type: str = ""


@dataclass
class TransactionLine:
    """One leg of a double-entry ledger transaction"""

    account_id: str
    purpose: str  # "ACHCredit" | "ACHDebit"
    amount: int  # cents


@dataclass
class LedgerTransaction:
    """Transaction accepted by the ledger"""

    id: str
    lines: list = field(default_factory=list)


@dataclass
class InitiationResult:
    """Outcome of micro-deposit initiation"""

    micro_deposits: list
    ledger_transactions: list = field(default_factory=list)
    ledger_error: Optional[str] = None
