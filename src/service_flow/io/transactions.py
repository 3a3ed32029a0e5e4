"""
Transactional resources used by service runs.

A service with ``use_transactions`` enabled and a ``transaction_provider``
configured calls ``provider.begin()`` before its steps run and closes the
returned transaction with ``commit()`` or ``rollback()`` afterwards.
Chained services reuse the parent's provider, so the provider decides how
nesting works.
"""

from typing import Any, Union

from sqlalchemy.engine import Connection
from sqlalchemy.orm import Session
from typing_extensions import Protocol, runtime_checkable

from service_flow.utils.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class Transaction(Protocol):
    """An open unit of work."""

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...


@runtime_checkable
class TransactionProvider(Protocol):
    """Opens transactions for service runs."""

    def begin(self) -> Transaction:
        ...


class SqlAlchemyTransactionProvider:
    """
    TransactionProvider backed by a SQLAlchemy Connection or Session.

    The outermost ``begin()`` opens a real transaction; calls made while a
    transaction is already open (chained services) open a SAVEPOINT with
    ``begin_nested()``, so a child's rollback only discards its own work.

    Args:
        bind: An open ``sqlalchemy.engine.Connection`` or ``sqlalchemy.orm.Session``

    Example:
        >>> engine = create_engine("sqlite:///:memory:")
        >>> with engine.connect() as conn:
        ...     provider = SqlAlchemyTransactionProvider(conn)
        ...     CreateOrder.with_({"transaction_provider": provider}).run(order_id=7)
    """

    def __init__(self, bind: Union[Connection, Session]):
        self.bind = bind

    def begin(self) -> Any:
        if self.bind.in_transaction():
            logger.debug("service.transaction.savepoint")
            return self.bind.begin_nested()
        return self.bind.begin()
