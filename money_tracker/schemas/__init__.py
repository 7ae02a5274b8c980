from .transactions import (
    TransactionType,
    TransactionBase,
    TransactionPayload,
    Transaction,
)

from .api import (
    ApiResponse,
    LoginResponse,
)

__all__ = [
    "TransactionType",
    "TransactionBase",
    "TransactionPayload",
    "Transaction",
    "ApiResponse",
    "LoginResponse",
]
