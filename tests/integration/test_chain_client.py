"""Tests for the TronGrid client and deposit polling"""

from decimal import Decimal
from unittest.mock import MagicMock

import httpx
import pytest
from sqlalchemy.orm import Session

from invest_ledger.domain.exceptions import ChainAPIError
from invest_ledger.infrastructure.clients import chain
from invest_ledger.infrastructure.clients.chain import TronGridClient, poll_chain_deposits
from invest_ledger.infrastructure.observability.logging import LogThrottle
from invest_ledger.services.wallets import get_or_generate_addresses, get_wallet_view

TRACKED = "TTrackedPlatformAddress0000000001"
SENDER = "TSenderAddress000000000000000001"


def transfer(tx_hash: str, to: str = TRACKED, value: str = "15000000", frm: str = SENDER) -> dict:
    return {
        "transaction_id": tx_hash,
        "from": frm,
        "to": to,
        "value": value,
        "token_info": {"symbol": "USDT", "decimals": 6},
        "block_timestamp": 1740830400000,
        "type": "Transfer",
    }


def client_returning(status_code: int, payload: dict, address: str = TRACKED) -> TronGridClient:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == f"/v1/accounts/{address}/transactions/trc20"
        assert request.url.params["only_confirmed"] == "true"
        return httpx.Response(status_code, json=payload)

    return TronGridClient(
        address=address,
        base_url="https://trongrid.test",
        transport=httpx.MockTransport(handler),
    )


async def test_parses_incoming_transfers_and_drops_outgoing():
    client = client_returning(
        200,
        {"data": [transfer("in-1"), transfer("out-1", to=SENDER, frm=TRACKED)], "success": True},
    )

    transfers = await client.fetch_incoming_transfers()

    assert [t.tx_hash for t in transfers] == ["in-1"]
    assert transfers[0].amount == Decimal("15")
    assert transfers[0].network == "tron"
    assert transfers[0].timestamp.year == 2025


async def test_server_error_becomes_chain_api_error():
    client = client_returning(500, {"error": "boom"})

    with pytest.raises(ChainAPIError):
        await client.fetch_incoming_transfers()


async def test_malformed_transfer_becomes_chain_api_error():
    client = client_returning(200, {"data": [{"to": TRACKED, "value": "1"}]})

    with pytest.raises(ChainAPIError):
        await client.fetch_incoming_transfers()


async def test_failed_poll_warns_once_per_interval(db: Session, monkeypatch):
    client = client_returning(503, {})
    fake_logger = MagicMock()
    monkeypatch.setattr(chain, "logger", fake_logger)
    throttle = LogThrottle(interval_seconds=300)

    first = await poll_chain_deposits(db, client, throttle)
    second = await poll_chain_deposits(db, client, throttle)

    assert first.failed and second.failed
    assert fake_logger.warning.call_count == 1


async def test_poll_credits_matching_wallet_once(db: Session):
    address = get_or_generate_addresses(db, "investor_1")["USDT"]
    client = client_returning(
        200,
        {"data": [transfer("in-1", to=address), transfer("in-2", to=address, value="2500000")]},
        address=address,
    )

    first = await poll_chain_deposits(db, client, LogThrottle())
    second = await poll_chain_deposits(db, client, LogThrottle())

    assert (first.seen, first.credited, first.duplicates) == (2, 2, 0)
    assert (second.credited, second.duplicates) == (0, 2)
    usdt = next(b for b in get_wallet_view(db, "investor_1").balances if b.currency == "USDT")
    assert usdt.balance == Decimal("17.5")


async def test_poll_records_transfers_to_unassigned_address(db: Session):
    client = client_returning(200, {"data": [transfer("in-1")]})

    result = await poll_chain_deposits(db, client, LogThrottle())

    assert result.unmatched == 1
    assert result.credited == 0
