"""Unit tests for the SQLAlchemy transaction provider."""

import pytest

from service_flow.io.transactions import (
    SqlAlchemyTransactionProvider,
    Transaction,
    TransactionProvider,
)


class FakeBind:
    def __init__(self, in_transaction: bool):
        self._in_transaction = in_transaction
        self.calls = []

    def in_transaction(self) -> bool:
        return self._in_transaction

    def begin(self):
        self.calls.append("begin")
        return "outer"

    def begin_nested(self):
        self.calls.append("begin_nested")
        return "savepoint"


@pytest.mark.unit
def test_outermost_begin_opens_transaction():
    bind = FakeBind(in_transaction=False)

    assert SqlAlchemyTransactionProvider(bind).begin() == "outer"
    assert bind.calls == ["begin"]


@pytest.mark.unit
def test_begin_inside_open_transaction_uses_savepoint():
    bind = FakeBind(in_transaction=True)

    assert SqlAlchemyTransactionProvider(bind).begin() == "savepoint"
    assert bind.calls == ["begin_nested"]


@pytest.mark.unit
def test_provider_satisfies_protocol(provider):
    assert isinstance(SqlAlchemyTransactionProvider(FakeBind(False)), TransactionProvider)
    assert isinstance(provider, TransactionProvider)
    assert isinstance(provider.begin(), Transaction)
