"""
Error taxonomy for the Step Functions compiler.

Compilation errors carry the entity (state machine, binding or resource)
they were raised for, so the CLI can report which part of the service
document violated which rule.
"""

from typing import Optional


class StepFunctionsCompilerError(Exception):
    """Base class for every error raised by the compiler."""

    def __init__(self, message: str, entity: Optional[str] = None):
        self.message = message
        self.entity = entity
        super().__init__(f"{entity}: {message}" if entity else message)


class DefinitionError(StepFunctionsCompilerError):
    """Malformed or structurally invalid state machine or event input."""


class UnresolvedReferenceError(StepFunctionsCompilerError):
    """A placeholder or cross-resource reference that cannot be resolved."""


class NamingError(StepFunctionsCompilerError):
    """Invalid input for a logical identifier."""


class CollisionError(StepFunctionsCompilerError):
    """Two resources claim the same logical identifier."""


class TransportError(StepFunctionsCompilerError):
    """An AWS API call made by the execution client failed.

    Never retried inside the compiler; the caller decides.
    """
