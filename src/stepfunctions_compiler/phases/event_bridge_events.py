"""
Event-bus Compiler

Compiles ``eventBridge`` / ``cloudwatchEvent`` bindings into pattern-matched
EventBridge rules that start the owning state machine.
"""

import copy
import logging
from typing import Any, Dict

from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase
from stepfunctions_compiler.compiler.naming import ResourceKind
from stepfunctions_compiler.data_schema.service_config import EventBusBinding
from stepfunctions_compiler.errors import DefinitionError, StepFunctionsCompilerError

from .targets import ensure_invoke_role, rule_state, target_input

logger = logging.getLogger(__name__)

# retryPolicy key -> Targets[].RetryPolicy key
RETRY_POLICY_KEYS = {
    "maximumEventAge": "MaximumEventAgeInSeconds",
    "maximumRetryAttempts": "MaximumRetryAttempts",
}


class EventBusCompiler(CompilationPhase):
    """Emits one EventBridge rule per event-bus binding."""

    name = "event_bridge_events"

    def run(self, context: CompilationContext) -> None:
        failed = 0
        for binding in context.service_config.all_bindings(EventBusBinding):
            try:
                properties = self.build_rule(context, binding)
            except StepFunctionsCompilerError as e:
                context.add_error(e)
                failed += 1
                continue
            self.emit(context, binding, properties)
        if failed:
            logger.warning("%d event bus binding(s) were skipped because of errors", failed)

    def build_rule(self, context: CompilationContext, binding: EventBusBinding) -> Dict[str, Any]:
        """
        Validate a binding and build its rule properties without touching the template.

        Raises:
            DefinitionError: On a missing pattern, mutually exclusive inputs,
                a malformed retry policy or a dangling state machine
        """
        name = binding.state_machine_name
        entity = f"{name} {binding.source_key} #{binding.index}"
        if name not in context.service_config.state_machines:
            raise DefinitionError(f"references undeclared state machine '{name}'", entity)

        config = binding.config
        if not isinstance(config, dict):
            raise DefinitionError("event binding must be a mapping", entity)
        pattern = config.get("event")
        if not isinstance(pattern, dict) or not pattern:
            raise DefinitionError("'event' pattern is required and must be a mapping", entity)

        target: Dict[str, Any] = {"Arn": {"Ref": context.naming.resolve_name(name, ResourceKind.STATE_MACHINE)}}
        target.update(target_input(config, entity))

        if config.get("deadLetterConfig"):
            target["DeadLetterConfig"] = {"Arn": config["deadLetterConfig"]}
        retry_policy = config.get("retryPolicy")
        if retry_policy:
            if not isinstance(retry_policy, dict):
                raise DefinitionError("retryPolicy must be a mapping", entity)
            unknown = set(retry_policy) - set(RETRY_POLICY_KEYS)
            if unknown:
                raise DefinitionError(f"unknown retryPolicy option(s): {', '.join(sorted(unknown))}", entity)
            target["RetryPolicy"] = {RETRY_POLICY_KEYS[key]: value for key, value in retry_policy.items()}

        properties: Dict[str, Any] = {
            "EventPattern": copy.deepcopy(pattern),
            "State": rule_state(config),
            "Targets": [target],
        }
        if config.get("eventBusName"):
            properties["EventBusName"] = config["eventBusName"]
        if config.get("name"):
            properties["Name"] = config["name"]
        if config.get("description"):
            properties["Description"] = config["description"]
        return properties

    def emit(self, context: CompilationContext, binding: EventBusBinding, properties: Dict[str, Any]) -> str:
        naming = context.naming
        name = binding.state_machine_name
        state_machine_id = naming.resolve_name(name, ResourceKind.STATE_MACHINE)
        logical_id = naming.resolve_name(name, ResourceKind.EVENT_RULE, binding.index)

        target = properties["Targets"][0]
        target["Id"] = f"{name}Event{binding.index}"
        target["RoleArn"] = ensure_invoke_role(
            context, naming.resolve_name(name, ResourceKind.EVENT_ROLE), "events.amazonaws.com",
            f"{naming.policy_name()}-{name}-events", state_machine_id, binding.config.get("role"),
        )
        context.template.add_resource(logical_id, {"Type": "AWS::Events::Rule", "Properties": properties})
        return logical_id
