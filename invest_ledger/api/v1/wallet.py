"""Wallet endpoints: balances, deposit addresses, deposits and wallet withdrawals"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from invest_ledger.api.dependencies import get_address_provider, get_principal
from invest_ledger.api.v1.schemas import (
    AddressesResponse,
    BalanceSchema,
    DepositRequestBody,
    DepositRequestResponse,
    WalletResponse,
    WalletWithdrawalBody,
    WithdrawalResponse,
)
from invest_ledger.domain.models import Principal
from invest_ledger.infrastructure.database.session import get_db
from invest_ledger.services import wallets, withdrawals
from invest_ledger.services.wallets import AddressProvider

router = APIRouter()


@router.get("/wallet", response_model=WalletResponse)
def get_wallet(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Balances and lifetime totals per supported currency"""
    view = wallets.get_wallet_view(db, principal.user_id)
    return WalletResponse(
        user_id=view.user_id,
        balances=[
            BalanceSchema(
                currency=b.currency,
                balance=b.balance,
                total_deposited=b.total_deposited,
                total_withdrawn=b.total_withdrawn,
            )
            for b in view.balances
        ],
        addresses=view.addresses,
    )


@router.get("/wallet/addresses", response_model=AddressesResponse)
def get_addresses(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
    provider: AddressProvider = Depends(get_address_provider),
):
    addresses = wallets.get_or_generate_addresses(db, principal.user_id, provider)
    return AddressesResponse(user_id=principal.user_id, addresses=addresses)


@router.post("/wallet/deposits", response_model=DepositRequestResponse, status_code=201)
def create_deposit(
    body: DepositRequestBody,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
    provider: AddressProvider = Depends(get_address_provider),
):
    """Announce a deposit; the balance moves once the chain tracker reports it"""
    deposit = wallets.request_deposit(db, principal.user_id, body.amount, body.currency, body.tx_hash, provider)
    return DepositRequestResponse(
        transaction_id=str(deposit.transaction_id),
        reference=deposit.reference,
        amount=deposit.amount,
        currency=deposit.currency,
        address=deposit.address,
        status=deposit.status.value,
    )


@router.post("/wallet/withdrawals", response_model=WithdrawalResponse, status_code=201)
def create_wallet_withdrawal(
    body: WalletWithdrawalBody,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    receipt = withdrawals.request_wallet_withdrawal(db, principal.user_id, body.amount, body.currency, body.address)
    return WithdrawalResponse(
        transaction_id=str(receipt.transaction_id),
        reference=receipt.reference,
        amount=receipt.amount,
        currency=receipt.currency,
        status=receipt.status.value,
        message=receipt.message,
    )
