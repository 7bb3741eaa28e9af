from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List

from stepfunctions_compiler.data_schema.service_config import ServiceConfig
from stepfunctions_compiler.errors import StepFunctionsCompilerError

from .naming import NamingResolver
from .template import CompiledTemplate


@dataclass
class RoleReference:
    """Execution role chosen for one state machine."""

    arn: Any
    logical_id: str = ""

    @property
    def external(self) -> bool:
        return not self.logical_id


@dataclass
class CompilationContext:
    # Read-only inputs
    service_config: ServiceConfig
    naming: NamingResolver

    # Shared output accumulator
    template: CompiledTemplate = field(default_factory=CompiledTemplate)

    # Cross-phase state
    role_references: Dict[str, RoleReference] = field(default_factory=dict)
    http_endpoints: List[Any] = field(default_factory=list)

    # Non-fatal per-binding failures
    errors: List[StepFunctionsCompilerError] = field(default_factory=list)

    def add_error(self, error: StepFunctionsCompilerError) -> None:
        self.errors.append(error)


class CompilationPhase(ABC):
    name: str

    @abstractmethod
    def run(self, context: CompilationContext) -> None:
        """
        Must:
        - read from context
        - write only through context.template
        - NEVER call other phases
        """
        pass
