"""Transaction history"""

import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from invest_ledger.domain.exceptions import NotFoundError, ValidationError
from invest_ledger.domain.models import TransactionStatus, TransactionType
from invest_ledger.infrastructure.database.models import Transaction
from invest_ledger.infrastructure.database.repositories import TransactionRepository


def list_transactions(
    db: Session,
    user_id: str,
    transaction_type: Optional[str] = None,
    status: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Transaction], int]:
    if transaction_type and transaction_type not in {t.value for t in TransactionType}:
        raise ValidationError(f"Unknown transaction type: {transaction_type}")
    if status and status not in {s.value for s in TransactionStatus}:
        raise ValidationError(f"Unknown transaction status: {status}")
    if start and end and start > end:
        raise ValidationError("Start date must be on or before end date")
    return TransactionRepository(db).list(
        user_id=user_id,
        transaction_type=transaction_type,
        status=status,
        start=start,
        end=end,
        page=page,
        limit=limit,
    )


def get_transaction(db: Session, user_id: str, transaction_id: uuid.UUID) -> Transaction:
    transaction = TransactionRepository(db).get_for_user(user_id, transaction_id)
    if transaction is None:
        raise NotFoundError("Transaction", transaction_id)
    return transaction
