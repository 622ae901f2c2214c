"""Base classes for scan pipeline steps."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

In = TypeVar("In")
Out = TypeVar("Out")

logger = logging.getLogger(__name__)


class StepValidationError(Exception):
    """Raised when a step's output fails validation.

    ``details`` always names the failing step under ``"step"`` once the
    error has left ``MechanicalStep.run``.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.details: dict[str, Any] = details or {}

    @property
    def step(self) -> str | None:
        return self.details.get("step")


class Step(ABC, Generic[In, Out]):
    """Base class for a typed pipeline step.

    Each step transforms an input of type In to an output of type Out.
    Subclasses must implement _execute and optionally _validate_output.
    """

    name: str = "step"

    @abstractmethod
    async def run(self, input: In) -> Out:
        """Execute the step and return the result."""
        ...

    def _validate_output(self, output: Out) -> None:
        """Check the step output. Raises StepValidationError on failure."""
        pass


class MechanicalStep(Step[In, Out]):
    """A step that reads compiled classes or reshapes records.

    Validation failures are raised at once, with no retry.
    """

    @abstractmethod
    async def _execute(self, input: In) -> Out:
        ...

    async def run(self, input: In) -> Out:
        started = time.perf_counter()
        output = await self._execute(input)
        try:
            self._validate_output(output)
        except StepValidationError as e:
            e.details.setdefault("step", self.name)
            logger.error("Step %s produced invalid output: %s", self.name, e)
            raise
        logger.debug("Step %s finished in %.3fs", self.name, time.perf_counter() - started)
        return output
