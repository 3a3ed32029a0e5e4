"""Transactional resources for service runs."""

from service_flow.io.transactions import (
    SqlAlchemyTransactionProvider,
    Transaction,
    TransactionProvider,
)

__all__ = [
    "SqlAlchemyTransactionProvider",
    "Transaction",
    "TransactionProvider",
]
