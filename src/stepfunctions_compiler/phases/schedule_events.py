"""
Schedule Compiler

Compiles ``schedule`` event bindings into EventBridge rules
(``method: eventBus``, the default) or EventBridge Scheduler schedules
(``method: scheduler``). A binding with several rates produces one trigger
per rate. Invalid bindings are recorded on the context and skipped; their
siblings are still compiled.
"""

import logging
import re
from typing import Any, Dict, List

from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase
from stepfunctions_compiler.compiler.naming import ResourceKind
from stepfunctions_compiler.data_schema.service_config import ScheduleBinding
from stepfunctions_compiler.errors import DefinitionError, StepFunctionsCompilerError

from .targets import ensure_invoke_role, rule_state, target_input

logger = logging.getLogger(__name__)

SCHEDULE_METHODS = ("eventBus", "scheduler")
RULE_EXPRESSION = re.compile(r"^(rate|cron)\(.+\)$")
SCHEDULER_EXPRESSION = re.compile(r"^(rate|cron|at)\(.+\)$")


class ScheduleCompiler(CompilationPhase):
    """Emits the scheduled triggers of every state machine."""

    name = "schedule_events"

    def run(self, context: CompilationContext) -> None:
        failed = 0
        for state_machine in context.service_config.state_machines.values():
            trigger_index = 0
            for binding in state_machine.bindings_of(ScheduleBinding):
                try:
                    rates = self.validate(context, binding)
                except StepFunctionsCompilerError as e:
                    context.add_error(e)
                    failed += 1
                    continue
                for rate in rates:
                    trigger_index += 1
                    self.compile_trigger(context, binding, rate, trigger_index)
        if failed:
            logger.warning("%d schedule binding(s) were skipped because of errors", failed)

    def validate(self, context: CompilationContext, binding: ScheduleBinding) -> List[str]:
        """
        Check one schedule binding before anything is emitted for it.

        Args:
            context: Compilation context
            binding: The schedule binding

        Returns:
            List[str]: The schedule expressions of the binding

        Raises:
            DefinitionError: On a missing or malformed rate, an unknown method,
                mutually exclusive input options or a dangling state machine
        """
        entity = f"{binding.state_machine_name} schedule #{binding.index}"
        if binding.state_machine_name not in context.service_config.state_machines:
            raise DefinitionError(f"references undeclared state machine '{binding.state_machine_name}'", entity)

        config = self._config(binding)
        rates = config.get("rate")
        if not rates:
            raise DefinitionError("'rate' is required", entity)
        if not isinstance(rates, list):
            rates = [rates]

        method = config.get("method", "eventBus")
        if method not in SCHEDULE_METHODS:
            raise DefinitionError(f"method must be one of {', '.join(SCHEDULE_METHODS)}", entity)

        pattern = SCHEDULER_EXPRESSION if method == "scheduler" else RULE_EXPRESSION
        for rate in rates:
            if not isinstance(rate, str) or not pattern.match(rate.strip()):
                raise DefinitionError(f"invalid schedule expression {rate!r}", entity)

        if method == "scheduler" and (config.get("inputPath") or config.get("inputTransformer")):
            raise DefinitionError("inputPath and inputTransformer are not supported by the scheduler", entity)
        target_input(config, entity)
        return [rate.strip() for rate in rates]

    def compile_trigger(self, context: CompilationContext, binding: ScheduleBinding, rate: str, index: int) -> str:
        """Emit the rule or schedule for one expression of a binding, returning its logical id."""
        config = self._config(binding)
        naming = context.naming
        name = binding.state_machine_name
        state_machine_id = naming.resolve_name(name, ResourceKind.STATE_MACHINE)
        entity = f"{name} schedule #{binding.index}"

        if config.get("method") == "scheduler":
            role_arn = ensure_invoke_role(
                context, naming.resolve_name(name, ResourceKind.SCHEDULER_ROLE), "scheduler.amazonaws.com",
                f"{naming.policy_name()}-{name}-scheduler", state_machine_id, config.get("role"),
            )
            logical_id = naming.resolve_name(name, ResourceKind.SCHEDULER_SCHEDULE, index)
            target: Dict[str, Any] = {"Arn": {"Ref": state_machine_id}, "RoleArn": role_arn}
            target.update(target_input(config, entity))
            properties: Dict[str, Any] = {
                "ScheduleExpression": rate,
                "State": rule_state(config),
                "FlexibleTimeWindow": {"Mode": "OFF"},
                "Target": target,
            }
            if config.get("timezone"):
                properties["ScheduleExpressionTimezone"] = config["timezone"]
            resource_type = "AWS::Scheduler::Schedule"
        else:
            role_arn = ensure_invoke_role(
                context, naming.resolve_name(name, ResourceKind.SCHEDULE_ROLE), "events.amazonaws.com",
                f"{naming.policy_name()}-{name}-schedule", state_machine_id, config.get("role"),
            )
            logical_id = naming.resolve_name(name, ResourceKind.SCHEDULE_RULE, index)
            target = {"Arn": {"Ref": state_machine_id}, "Id": f"{name}Schedule{index}", "RoleArn": role_arn}
            target.update(target_input(config, entity))
            properties = {
                "ScheduleExpression": rate,
                "State": rule_state(config),
                "Targets": [target],
            }
            resource_type = "AWS::Events::Rule"

        if config.get("name"):
            properties["Name"] = config["name"]
        if config.get("description"):
            properties["Description"] = config["description"]

        context.template.add_resource(logical_id, {"Type": resource_type, "Properties": properties})
        return logical_id

    @staticmethod
    def _config(binding: ScheduleBinding) -> Dict[str, Any]:
        if isinstance(binding.config, str):
            return {"rate": binding.config}
        if isinstance(binding.config, dict):
            return binding.config
        raise DefinitionError(
            "schedule must be an expression or a mapping", f"{binding.state_machine_name} schedule #{binding.index}"
        )
