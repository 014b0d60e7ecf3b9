"""Ordered stack of compensating actions for multi-step operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Tuple

LOG = logging.getLogger(__name__)


@dataclass
class _RevertStep:
    fn: Callable[..., Any]
    args: Tuple[Any, ...]
    description: str


class Reverter:
    """Collect undo steps while an operation progresses.

    Steps run in reverse order of registration when :meth:`fail` is called.
    Used as a context manager, the steps run if the block raises and
    :meth:`success` was not called first::

        with Reverter() as revert:
            client.logical_router_add(name)
            revert.add(client.logical_router_delete, name)
            ...
            revert.success()
    """

    def __init__(self) -> None:
        self._steps: List[_RevertStep] = []

    def add(self, fn: Callable[..., Any], *args: Any) -> None:
        self._steps.append(_RevertStep(fn, args, getattr(fn, "__name__", repr(fn))))

    def success(self) -> None:
        self._steps.clear()

    def fail(self) -> None:
        while self._steps:
            step = self._steps.pop()
            try:
                LOG.debug("Reverting: %s", step.description)
                step.fn(*step.args)
            except Exception as err:
                LOG.warning("Revert step %s failed: %s", step.description, err)

    def __enter__(self) -> "Reverter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        # Runs pending steps on both exception and early return.
        self.fail()
