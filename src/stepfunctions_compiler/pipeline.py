"""
Compilation pipeline.

Runs the compiler phases in their fixed dependency order over one shared
CompiledTemplate:

1. IAM roles, state machines, activities, alarms, notifications
2. the HTTP chain, only when at least one valid ``http`` binding exists
3. schedule and event-bus triggers

Each phase holds the template's writer slot while it runs. A fatal error
raised by a phase aborts the run; per-binding errors are collected into the
CompilationResult.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase
from stepfunctions_compiler.compiler.naming import NamingResolver
from stepfunctions_compiler.compiler.template import CompiledTemplate, NamingContext
from stepfunctions_compiler.data_schema.service_config import ServiceConfig
from stepfunctions_compiler.errors import StepFunctionsCompilerError
from stepfunctions_compiler.phases import (
    ActivitiesCompiler,
    AlarmCompiler,
    EventBusCompiler,
    IamRoleSynthesizer,
    NotificationCompiler,
    ScheduleCompiler,
    StateMachineCompiler,
)
from stepfunctions_compiler.phases.http import HTTP_CHAIN, HttpEndpoint, HttpValidator

logger = logging.getLogger(__name__)


@dataclass
class CompilationResult:
    """
    Outcome of one compilation run.

    Attributes:
        template (CompiledTemplate): The compiled resources and outputs
        errors (List[StepFunctionsCompilerError]): Bindings that were skipped
        http_endpoints (List[HttpEndpoint]): Endpoints that made it into the API
    """

    template: CompiledTemplate
    errors: List[StepFunctionsCompilerError] = field(default_factory=list)
    http_endpoints: List[HttpEndpoint] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_json(self, indent: int = 2) -> str:
        return self.template.to_json(indent=indent)


class CompilationPipeline:
    """
    Ordered compiler phases bound to one service configuration.

    Attributes:
        service_config (ServiceConfig): Configuration being compiled
        naming (NamingResolver): Resolver shared by every phase
    """

    CORE_PHASES = (
        IamRoleSynthesizer,
        StateMachineCompiler,
        ActivitiesCompiler,
        AlarmCompiler,
        NotificationCompiler,
    )
    TRIGGER_PHASES = (
        ScheduleCompiler,
        EventBusCompiler,
    )

    def __init__(self, service_config: ServiceConfig, naming_context: Optional[NamingContext] = None):
        self.service_config = service_config
        self.naming = NamingResolver.for_service(service_config, naming_context)

    def run(self) -> CompilationResult:
        """
        Compile the service.

        Returns:
            CompilationResult: The template plus the per-binding errors

        Raises:
            StepFunctionsCompilerError: The first fatal error; no template is returned
        """
        context = CompilationContext(service_config=self.service_config, naming=self.naming)

        self._run_phases(context, [phase() for phase in self.CORE_PHASES])
        self._run_http(context)
        self._run_phases(context, [phase() for phase in self.TRIGGER_PHASES])

        logger.info(
            "Compiled %s: %d resource(s), %d skipped binding(s)",
            self.naming.stack_name(), len(context.template.resources), len(context.errors),
        )
        return CompilationResult(
            template=context.template,
            errors=list(context.errors),
            http_endpoints=list(context.http_endpoints),
        )

    def _run_http(self, context: CompilationContext) -> None:
        first_error = len(context.errors)
        self._run_phases(context, [HttpValidator()])
        if context.http_endpoints:
            self._run_phases(context, [phase() for phase in HTTP_CHAIN])
        elif first_error == len(context.errors):
            logger.debug("No http bindings, skipping the API Gateway resources")

        http_errors = context.errors[first_error:]
        if http_errors:
            logger.warning(
                "%d http binding(s) were skipped:\n%s",
                len(http_errors), "\n".join(f"  - {error}" for error in http_errors),
            )

    @staticmethod
    def _run_phases(context: CompilationContext, phases: Sequence[CompilationPhase]) -> None:
        for phase in phases:
            logger.debug("Running phase %s", phase.name)
            with context.template.writer(phase.name):
                phase.run(context)


def compile_service(service_config: ServiceConfig, naming_context: Optional[NamingContext] = None) -> CompilationResult:
    """Compile a service configuration with a fresh pipeline."""
    return CompilationPipeline(service_config, naming_context).run()
