"""Deferred runs created by ``Service.with_``."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Type

if TYPE_CHECKING:
    from service_flow.services.base import Service


class ServiceChain:
    """
    A service class bound to a parent service and/or config overrides.

    Args:
        service_cls: Service class to run
        parent: Chaining parent; shares context arguments and the
            transaction provider, and receives copied messages
        overrides: Config options applied on top of the class configuration
    """

    def __init__(
        self,
        service_cls: Type["Service"],
        parent: Optional["Service"] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ):
        self.service_cls = service_cls
        self.parent = parent
        self.overrides: Dict[str, Any] = dict(overrides or {})

    def run(self, **kwargs: Any) -> "Service":
        return self.service_cls._execute(kwargs, parent=self.parent, overrides=self.overrides)

    def run_strict(self, **kwargs: Any) -> "Service":
        overrides = {**self.overrides, "raise_on_error": True}
        return self.service_cls._execute(kwargs, parent=self.parent, overrides=overrides)

    def __repr__(self) -> str:
        parent = type(self.parent).__qualname__ if self.parent is not None else None
        return (
            f"ServiceChain({self.service_cls.__qualname__}, parent={parent}, "
            f"overrides={self.overrides!r})"
        )
