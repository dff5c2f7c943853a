"""Pytest fixtures for testing"""

import pytest
from typing import Dict, Generator, List, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from paygate.api.dependencies import get_accounts_client, get_ach_client, get_odfi_account
from paygate.api.main import create_admin_app, create_app
from paygate.domain.ach import ACHFile
from paygate.domain.exceptions import ACHServiceError, LedgerServiceError
from paygate.domain.models import (
    AccountType,
    Depository,
    DepositoryStatus,
    HolderType,
    LedgerAccount,
    LedgerTransaction,
    TransactionLine,
)
from paygate.domain.odfi import ODFIAccount
from paygate.infrastructure.database.models import Base, DepositoryRecord
from paygate.infrastructure.database.repositories import DepositoryRepository, EventRepository, MicroDepositRepository
from paygate.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ODFI_ACCOUNT_NUMBER = "123"
ODFI_ROUTING_NUMBER = "121042882"
DEPOSITORY_ACCOUNT_NUMBER = "987654321"
DEPOSITORY_ROUTING_NUMBER = "231380104"


class FakeACHService:
    """In-memory ACH file service; files round-trip through their JSON form"""

    def __init__(self, fail_on_create: int | None = None, drop_reversals: bool = False):
        self.files: Dict[str, dict] = {}
        self.idempotency_keys: List[str] = []
        self.fail_on_create = fail_on_create  # 1-based submission that fails
        self.drop_reversals = drop_reversals

    async def create_file(self, idempotency_key: str, file: ACHFile) -> str:
        self.idempotency_keys.append(idempotency_key)
        if self.fail_on_create == len(self.idempotency_keys):
            raise ACHServiceError("ACH service error: 500")
        file_id = f"file-{len(self.idempotency_keys)}"
        self.files[file_id] = file.to_json()
        return file_id

    async def validate_file(self, file_id: str) -> None:
        if file_id not in self.files:
            raise ACHServiceError(f"ACH service error: 404")

    async def get_file(self, file_id: str) -> ACHFile:
        file = ACHFile.model_validate(self.files[file_id])
        if self.drop_reversals:
            for batch in file.batches:
                batch.entry_details = batch.entry_details[:1]
        return file


class FakeLedger:
    """In-memory Accounts service with an optional number of failing posts"""

    def __init__(self, post_failures: int = 0, accounts: Optional[Dict[str, str]] = None):
        self.accounts = accounts if accounts is not None else {
            ODFI_ACCOUNT_NUMBER: "odfi-ledger-account",
            DEPOSITORY_ACCOUNT_NUMBER: "user-ledger-account",
        }
        self.post_failures = post_failures
        self.search_calls = 0
        self.post_calls = 0
        self.posted: List[LedgerTransaction] = []

    async def search_accounts(self, request_id: str, user_id: str, depository: Depository) -> Optional[LedgerAccount]:
        self.search_calls += 1
        account_id = self.accounts.get(depository.account_number)
        return LedgerAccount(id=account_id) if account_id else None

    async def post_transaction(self, request_id: str, user_id: str, lines: List[TransactionLine]) -> LedgerTransaction:
        self.post_calls += 1
        if self.post_failures > 0:
            self.post_failures -= 1
            raise LedgerServiceError("Accounts service error: 503")
        transaction = LedgerTransaction(id=f"tx-{len(self.posted) + 1}", lines=lines)
        self.posted.append(transaction)
        return transaction


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def depository_record(db: Session) -> DepositoryRecord:
    """Unverified checking account owned by user-1"""
    record = DepositoryRecord(
        depository_id="dep-1",
        user_id="user-1",
        bank_name="Community Bank",
        holder="Jane Doe",
        holder_type="individual",
        account_type="checking",
        routing_number=DEPOSITORY_ROUTING_NUMBER,
        account_number=DEPOSITORY_ACCOUNT_NUMBER,
        status="unverified",
    )
    db.add(record)
    db.commit()
    return record


@pytest.fixture
def depository() -> Depository:
    return Depository(
        id="dep-1",
        user_id="user-1",
        bank_name="Community Bank",
        holder="Jane Doe",
        holder_type=HolderType.INDIVIDUAL,
        account_type=AccountType.CHECKING,
        routing_number=DEPOSITORY_ROUTING_NUMBER,
        account_number=DEPOSITORY_ACCOUNT_NUMBER,
        status=DepositoryStatus.UNVERIFIED,
    )


@pytest.fixture
def ach_service() -> FakeACHService:
    return FakeACHService()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def odfi_account(ledger: FakeLedger) -> ODFIAccount:
    return ODFIAccount(ledger, ODFI_ACCOUNT_NUMBER, ODFI_ROUTING_NUMBER, AccountType.CHECKING)


@pytest.fixture
def micro_deposit_repo(db: Session) -> MicroDepositRepository:
    return MicroDepositRepository(db)


@pytest.fixture
def depository_repo(db: Session) -> DepositoryRepository:
    return DepositoryRepository(db)


@pytest.fixture
def event_repo(db: Session) -> EventRepository:
    return EventRepository(db)


@pytest.fixture
def client(db: Session, ach_service: FakeACHService, ledger: FakeLedger, odfi_account: ODFIAccount) -> TestClient:
    """Create FastAPI test client with test database and fake upstream services"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ach_client] = lambda: ach_service
    app.dependency_overrides[get_accounts_client] = lambda: ledger
    app.dependency_overrides[get_odfi_account] = lambda: odfi_account
    return TestClient(app)


@pytest.fixture
def admin_client(db: Session) -> TestClient:
    """Admin server test client"""
    app = create_admin_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)
