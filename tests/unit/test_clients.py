"""Unit tests for the ACH and Accounts HTTP clients"""

import json
import httpx
import pytest
from datetime import datetime

from paygate.domain.ach import ACHFile, add_micro_deposit_reversal, construct_ach_file
from paygate.domain.exceptions import ACHServiceError, LedgerServiceError
from paygate.domain.models import Amount, Depository, Receiver, TransactionLine, TransferRequest, TransferType
from paygate.domain.odfi import ODFIAccount
from paygate.infrastructure.clients.accounts import AccountsClient
from paygate.infrastructure.clients.ach import ACHClient

ACH_URL = "http://ach.test"
ACCOUNTS_URL = "http://accounts.test"


def sample_file(depository: Depository, odfi_account: ODFIAccount) -> ACHFile:
    originator, odfi_depository = odfi_account.metadata()
    receiver = Receiver(id="r-1", metadata=depository.holder)
    transfer = TransferRequest(
        type=TransferType.PUSH,
        amount=Amount(cents=12),
        originator=originator.id,
        originator_depository=odfi_depository.id,
        receiver=receiver.id,
        receiver_depository=depository.id,
        description="ACCTVERIFY",
    )
    file = construct_ach_file(
        "idem-1", transfer, receiver, depository, originator, odfi_depository, now=datetime(2024, 3, 4, 9, 0)
    )
    add_micro_deposit_reversal(file)
    return file


def ach_client(handler) -> ACHClient:
    return ACHClient(base_url=ACH_URL, timeout=1.0, transport=httpx.MockTransport(handler))


def accounts_client(handler) -> AccountsClient:
    return AccountsClient(base_url=ACCOUNTS_URL, timeout=1.0, transport=httpx.MockTransport(handler))


async def test_create_file_sends_idempotency_key(depository, odfi_account):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.headers["X-Idempotency-Key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "file-123", "error": None})

    file = sample_file(depository, odfi_account)
    file_id = await ach_client(handler).create_file("idem-1", file)

    assert file_id == "file-123"
    assert seen["path"] == "/files/create"
    assert seen["key"] == "idem-1"
    assert seen["body"]["id"] == "idem-1"
    assert len(seen["body"]["batches"][0]["entryDetails"]) == 2


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"id": "file-1", "error": "invalid routing number"}),
        httpx.Response(200, json={"error": None}),
        httpx.Response(500, json={"error": "boom"}),
        httpx.Response(200, text="not json"),
    ],
)
async def test_create_file_failures(depository, odfi_account, response):
    client = ach_client(lambda request: response)

    with pytest.raises(ACHServiceError):
        await client.create_file("idem-1", sample_file(depository, odfi_account))


async def test_create_file_unreachable(depository, odfi_account):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ACHServiceError, match="unreachable"):
        await ach_client(handler).create_file("idem-1", sample_file(depository, odfi_account))


async def test_validate_and_get_file(depository, odfi_account):
    stored = sample_file(depository, odfi_account).to_json()

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/files/file-1/validate":
            return httpx.Response(200, json={"error": None})
        if request.url.path == "/files/file-1":
            return httpx.Response(200, json=stored)
        return httpx.Response(404, json={"error": "not found"})

    client = ach_client(handler)
    await client.validate_file("file-1")
    file = await client.get_file("file-1")

    assert file.to_json() == stored
    with pytest.raises(ACHServiceError):
        await client.validate_file("file-2")


async def test_validate_file_reports_errors():
    client = ach_client(lambda request: httpx.Response(200, json={"error": "batch control mismatch"}))

    with pytest.raises(ACHServiceError, match="batch control mismatch"):
        await client.validate_file("file-1")


async def test_search_accounts(depository):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        seen["headers"] = request.headers
        return httpx.Response(200, json={"id": "acct-1", "accountNumber": depository.account_number})

    account = await accounts_client(handler).search_accounts("req-1", "user-1", depository)

    assert account.id == "acct-1"
    assert seen["params"] == {
        "number": depository.account_number,
        "routingNumber": depository.routing_number,
        "type": "checking",
    }
    assert seen["headers"]["X-Request-ID"] == "req-1"
    assert seen["headers"]["X-User-ID"] == "user-1"


@pytest.mark.parametrize("response", [httpx.Response(404), httpx.Response(200, json={})])
async def test_search_accounts_not_found(depository, response):
    assert await accounts_client(lambda request: response).search_accounts("req-1", "user-1", depository) is None


async def test_search_accounts_server_error(depository):
    client = accounts_client(lambda request: httpx.Response(503))

    with pytest.raises(LedgerServiceError, match="503"):
        await client.search_accounts("req-1", "user-1", depository)


async def test_post_transaction():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "tx-9"})

    lines = [
        TransactionLine(account_id="user-acct", purpose="ACHCredit", amount=12),
        TransactionLine(account_id="odfi-acct", purpose="ACHDebit", amount=12),
    ]
    transaction = await accounts_client(handler).post_transaction("req-1", "user-1", lines)

    assert transaction.id == "tx-9"
    assert transaction.lines == lines
    assert seen["path"] == "/accounts/transactions"
    assert seen["body"] == {
        "lines": [
            {"accountId": "user-acct", "purpose": "ACHCredit", "amount": 12},
            {"accountId": "odfi-acct", "purpose": "ACHDebit", "amount": 12},
        ]
    }


async def test_post_transaction_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(LedgerServiceError, match="timeout"):
        await accounts_client(handler).post_transaction("req-1", "user-1", [])
