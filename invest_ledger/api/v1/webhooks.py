"""POST /v1/webhooks/chain-deposits - Incoming transfers from the chain tracker"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from invest_ledger.api.dependencies import get_request_id
from invest_ledger.api.v1.schemas import ChainDepositEvent, DepositCreditResponse
from invest_ledger.config import settings
from invest_ledger.infrastructure.database.session import get_db
from invest_ledger.services.wallets import credit_chain_deposit

router = APIRouter()


def verify_webhook_secret(x_webhook_secret: Optional[str] = Header(None)) -> None:
    expected = settings.chain_webhook_secret
    if expected and not hmac.compare_digest(x_webhook_secret or "", expected):
        raise HTTPException(status_code=401, detail="Invalid webhook secret")


@router.post(
    "/webhooks/chain-deposits",
    response_model=DepositCreditResponse,
    dependencies=[Depends(verify_webhook_secret)],
)
def receive_chain_deposit(
    event: ChainDepositEvent,
    db: Session = Depends(get_db),
    request_id: str = Depends(get_request_id),
):
    """
    Credit a detected on-chain deposit.

    Redelivery of the same transaction hash is acknowledged without crediting
    again.
    """
    credit = credit_chain_deposit(
        db,
        tx_hash=event.tx_hash,
        amount=event.amount,
        from_address=event.from_address,
        to_address=event.to_address,
        timestamp=event.timestamp,
        network=event.network,
        currency=event.currency,
    )
    logging.info(
        "Chain deposit webhook handled",
        extra={"request_id": request_id, "tx_hash": event.tx_hash, "credited": credit.credited},
    )
    return DepositCreditResponse(
        tx_hash=credit.tx_hash,
        credited=credit.credited,
        duplicate=credit.duplicate,
        user_id=credit.user_id,
        transaction_id=str(credit.transaction_id) if credit.transaction_id else None,
        amount=credit.amount,
    )
