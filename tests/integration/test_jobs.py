"""Tests for the scheduled job entry points"""

from unittest.mock import MagicMock

import httpx
import pytest
from sqlalchemy.orm import sessionmaker

from invest_ledger import jobs
from invest_ledger.config import settings
from invest_ledger.infrastructure.clients import chain
from invest_ledger.infrastructure.clients.chain import TronGridClient
from invest_ledger.infrastructure.observability.logging import LogThrottle


@pytest.fixture
def job_sessions(session_factory: sessionmaker, monkeypatch) -> sessionmaker:
    monkeypatch.setattr(jobs, "SessionLocal", session_factory)
    return session_factory


def unavailable_client() -> TronGridClient:
    return TronGridClient(
        address="TTrackedPlatformAddress0000000001",
        base_url="https://trongrid.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(503, json={})),
    )


def test_chain_poll_outage_warns_once_with_shared_throttle(job_sessions, monkeypatch):
    fake_logger = MagicMock()
    monkeypatch.setattr(chain, "logger", fake_logger)
    throttle = LogThrottle(interval_seconds=300)
    client = unavailable_client()

    first = jobs.run_chain_poll(client, throttle)
    second = jobs.run_chain_poll(client, throttle)

    assert first.failed and second.failed
    assert fake_logger.warning.call_count == 1


def test_chain_poll_without_throttle_warns_every_time(job_sessions, monkeypatch):
    fake_logger = MagicMock()
    monkeypatch.setattr(chain, "logger", fake_logger)
    client = unavailable_client()

    jobs.run_chain_poll(client)
    jobs.run_chain_poll(client)

    assert fake_logger.warning.call_count == 2


def test_chain_poll_skips_without_deposit_address(job_sessions, monkeypatch):
    monkeypatch.setattr(settings, "tron_deposit_address", "")

    result = jobs.run_chain_poll()

    assert not result.failed
    assert result.seen == 0


def test_daily_job_accrues_active_investments(job_sessions, seed_investment):
    seed_investment("investor_1", started_days_ago=3)

    summary = jobs.run_daily_job()

    assert summary["created"] == 1
    assert summary["failures"] == 0
