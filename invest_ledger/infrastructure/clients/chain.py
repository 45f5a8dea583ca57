"""TronGrid HTTP client and deposit polling for TRC20 USDT transfers"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from invest_ledger.config import settings
from invest_ledger.domain.exceptions import ChainAPIError
from invest_ledger.infrastructure.database.repositories import ChainDepositRepository
from invest_ledger.infrastructure.observability.logging import LogThrottle
from invest_ledger.infrastructure.observability.metrics import chain_poll_failure_counter
from invest_ledger.services.wallets import credit_chain_deposit

logger = logging.getLogger(__name__)

TRON_NETWORK = "tron"
TRC20_USDT_DECIMALS = 6


@dataclass
class ChainTransfer:
    """Incoming token transfer as reported by a chain scanning API"""

    tx_hash: str
    network: str
    from_address: str
    to_address: str
    amount: Decimal
    timestamp: datetime
    currency: str = "USDT"


@dataclass
class PollResult:
    seen: int = 0
    credited: int = 0
    duplicates: int = 0
    unmatched: int = 0
    failed: bool = False


def _parse_transfer(item: Dict[str, Any]) -> ChainTransfer:
    decimals = int((item.get("token_info") or {}).get("decimals", TRC20_USDT_DECIMALS))
    raw_value = Decimal(str(item["value"]))
    return ChainTransfer(
        tx_hash=item["transaction_id"],
        network=TRON_NETWORK,
        from_address=item.get("from") or "unknown",
        to_address=item["to"],
        amount=raw_value.scaleb(-decimals),
        timestamp=datetime.fromtimestamp(int(item["block_timestamp"]) / 1000, tz=timezone.utc),
    )


class TronGridClient:
    """Client for the TronGrid account TRC20 transfer API"""

    def __init__(
        self,
        address: str | None = None,
        base_url: str | None = None,
        contract: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.address = address or settings.tron_deposit_address
        self.base_url = base_url or settings.tron_api_base
        self.contract = contract or settings.tron_usdt_contract
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def fetch_incoming_transfers(self, limit: int = 50) -> List[ChainTransfer]:
        """
        Fetch recent confirmed USDT transfers into the tracked address.

        Outgoing transfers are dropped.

        Raises:
            ChainAPIError: On timeout, HTTP errors, or invalid response
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(
                    f"{self.base_url}/v1/accounts/{self.address}/transactions/trc20",
                    params={
                        "limit": limit,
                        "only_confirmed": "true",
                        "contract_address": self.contract,
                    },
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
                payload = response.json()

                items = payload.get("data", [])
                if not isinstance(items, list):
                    raise ChainAPIError("Invalid TronGrid response: data is not a list")

                return [
                    _parse_transfer(item)
                    for item in items
                    if (item.get("to") or "").lower() == self.address.lower()
                ]

            except httpx.TimeoutException as e:
                raise ChainAPIError(f"TronGrid timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise ChainAPIError(f"TronGrid error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise ChainAPIError(f"TronGrid unreachable: {e}") from e
            except (AttributeError, KeyError, ValueError, TypeError, InvalidOperation) as e:
                raise ChainAPIError(f"Invalid transfer data from TronGrid: {e}") from e


async def poll_chain_deposits(
    db: Session,
    client: TronGridClient,
    throttle: Optional[LogThrottle] = None,
) -> PollResult:
    """
    Feed new incoming transfers into deposit crediting.

    API failures are counted and logged at most once per throttle interval,
    then the poll ends quietly so the next scheduled run can try again.
    """
    throttle = throttle or LogThrottle()
    result = PollResult()

    try:
        transfers = await client.fetch_incoming_transfers()
    except ChainAPIError as e:
        chain_poll_failure_counter.labels(network=TRON_NETWORK).inc()
        throttle.warning(logger, f"chain.{TRON_NETWORK}", f"Chain tracking unavailable: {e}")
        result.failed = True
        return result

    result.seen = len(transfers)
    known = ChainDepositRepository(db).known_hashes([t.tx_hash for t in transfers])

    for transfer in transfers:
        if transfer.tx_hash in known:
            result.duplicates += 1
            continue
        credit = credit_chain_deposit(
            db,
            tx_hash=transfer.tx_hash,
            amount=transfer.amount,
            from_address=transfer.from_address,
            to_address=transfer.to_address,
            timestamp=transfer.timestamp,
            network=transfer.network,
            currency=transfer.currency,
        )
        if credit.duplicate:
            result.duplicates += 1
        elif credit.credited:
            result.credited += 1
        else:
            result.unmatched += 1

    return result
