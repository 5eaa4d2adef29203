"""Points ledger models, the immutable trail of every balance movement."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class TransactionType(str, Enum):
    INITIAL_CREDIT = "INITIAL_CREDIT"
    WAGER_PLACED = "WAGER_PLACED"
    WAGER_WON = "WAGER_WON"
    WAGER_PUSH = "WAGER_PUSH"
    WAGER_REFUND = "WAGER_REFUND"
    BALANCE_RESET = "BALANCE_RESET"


class PointsTransactionInDB(BaseModel):
    user_id: str
    type: TransactionType
    amount: int  # positive = credit, negative = debit
    balance_after: int
    reference_type: Optional[str] = None  # "wager" | None
    reference_id: Optional[str] = None
    description: str
    created_at: datetime


class TransactionResponse(BaseModel):
    """Transaction data returned to the client."""
    id: str
    type: TransactionType
    amount: int
    balance_after: int
    reference_id: Optional[str] = None
    description: str
    created_at: datetime
