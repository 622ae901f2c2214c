"""Pipeline steps for the scan engine."""

from __future__ import annotations

from authreport.commands.scan.steps.base import (
    MechanicalStep as MechanicalStep,
    Step as Step,
    StepValidationError as StepValidationError,
)

__all__ = [
    "MechanicalStep",
    "Step",
    "StepValidationError",
]
