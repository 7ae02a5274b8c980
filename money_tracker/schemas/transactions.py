from typing import Literal, Optional
from pydantic import BaseModel, Field

TransactionType = Literal["income", "expense"]


class TransactionBase(BaseModel):
    type: TransactionType
    amount: int = Field(gt=0)
    title: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[str] = None


class TransactionPayload(TransactionBase):
    """Body sent to the API for add/update; transaction_id only on update."""
    user_id: int
    transaction_id: Optional[int] = None


class Transaction(TransactionBase):
    id: int
    user_id: int
    created_at: Optional[str] = None
    unsynced: bool = False          # client only: created/changed while offline
