"""
State Machine Compiler

Turns every StateMachineDefinition into one AWS::StepFunctions::StateMachine
resource: the definition is structurally validated, its placeholders and
intrinsic references are resolved, and the execution role chosen by the IAM
role phase is attached.
"""

import logging
from typing import Any, Dict, List

from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase
from stepfunctions_compiler.compiler.naming import ResourceKind
from stepfunctions_compiler.data_schema.service_config import StateMachineDefinition
from stepfunctions_compiler.errors import DefinitionError
from stepfunctions_compiler.transform.definition_validator import validate_definition
from stepfunctions_compiler.transform.interpolation import DefinitionInterpolator

logger = logging.getLogger(__name__)

LOG_LEVELS = ("ALL", "ERROR", "FATAL", "OFF")


def merge_tags(*tag_maps) -> List[Dict[str, str]]:
    """Merge tag mappings (later ones win) into the CloudFormation Key/Value list form."""
    merged: Dict[str, str] = {}
    for tags in tag_maps:
        merged.update({str(key): str(value) for key, value in (tags or {}).items()})
    return [{"Key": key, "Value": value} for key, value in merged.items()]


class StateMachineCompiler(CompilationPhase):
    """Compiles the declared state machines into the template."""

    name = "state_machines"

    def run(self, context: CompilationContext) -> None:
        interpolator = DefinitionInterpolator(context.service_config, context.naming)
        for state_machine in context.service_config.state_machines.values():
            self.compile_state_machine(context, interpolator, state_machine)

    def compile_state_machine(self, context: CompilationContext, interpolator: DefinitionInterpolator,
                              state_machine: StateMachineDefinition) -> str:
        """
        Emit the resource (and Arn output) for one state machine.

        Args:
            context: Compilation context
            interpolator: Placeholder resolver shared across the phase
            state_machine: The state machine to compile

        Returns:
            str: Logical identifier of the emitted resource

        Raises:
            DefinitionError: If the definition or its options are invalid
            UnresolvedReferenceError: If a placeholder cannot be resolved
        """
        name = state_machine.name
        validate_definition(name, state_machine.definition)

        naming = context.naming
        logical_id = naming.resolve_name(name, ResourceKind.STATE_MACHINE)
        role = context.role_references.get(name)
        if role is None:
            raise DefinitionError("no execution role was resolved for this state machine", name)

        properties: Dict[str, Any] = {
            "DefinitionString": interpolator.definition_string(name, state_machine.definition),
            "RoleArn": role.arn,
        }
        if state_machine.state_machine_name:
            properties["StateMachineName"] = interpolator.substitute_string(name, state_machine.state_machine_name)
        if state_machine.type != "STANDARD":
            properties["StateMachineType"] = state_machine.type
        if state_machine.logging_config:
            properties["LoggingConfiguration"] = self._logging_configuration(name, state_machine.logging_config)
        if state_machine.tracing_config:
            properties["TracingConfiguration"] = {
                "Enabled": bool(state_machine.tracing_config.get("enabled", False))
            }
        tags = merge_tags(context.service_config.provider.tags, state_machine.tags)
        if tags:
            properties["Tags"] = tags

        resource: Dict[str, Any] = {
            "Type": "AWS::StepFunctions::StateMachine",
            "Properties": properties,
        }
        depends_on = []
        if not role.external:
            depends_on.append(role.logical_id)
        for dependency in state_machine.depends_on:
            translated = interpolator.translate_local_name(dependency)
            if translated not in depends_on:
                depends_on.append(translated)
        if depends_on:
            resource["DependsOn"] = depends_on
        if state_machine.retain:
            resource["DeletionPolicy"] = "Retain"

        context.template.add_resource(logical_id, resource)
        logger.debug("Compiled state machine %s as %s", name, logical_id)

        if not context.service_config.no_output:
            context.template.add_output(naming.resolve_name(name, ResourceKind.STATE_MACHINE_OUTPUT), {
                "Description": "Current StateMachine Arn",
                "Value": {"Ref": logical_id},
            })
        return logical_id

    @staticmethod
    def _logging_configuration(name: str, logging_config: Dict[str, Any]) -> Dict[str, Any]:
        level = str(logging_config.get("level", "OFF")).upper()
        if level not in LOG_LEVELS:
            raise DefinitionError(
                f"loggingConfig level '{logging_config.get('level')}' must be one of {', '.join(LOG_LEVELS)}",
                name,
            )
        destinations = logging_config.get("destinations") or []
        if level != "OFF" and not destinations:
            raise DefinitionError("loggingConfig requires at least one log group destination", name)
        return {
            "Level": level,
            "IncludeExecutionData": bool(logging_config.get("includeExecutionData", False)),
            "Destinations": [
                {"CloudWatchLogsLogGroup": {"LogGroupArn": destination}} for destination in destinations
            ],
        }
