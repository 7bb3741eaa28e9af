"""
Helpers shared by the schedule and event-bus compilers: the target input
options of a rule and the per-state-machine role that lets a trigger start
an execution.
"""

import json
from typing import Any, Dict, Optional

from stepfunctions_compiler.compiler.context import CompilationContext
from stepfunctions_compiler.errors import DefinitionError

from .roles import service_role, start_execution_statement

INPUT_KEYS = ("input", "inputPath", "inputTransformer")


def target_input(config: Dict[str, Any], entity: str) -> Dict[str, Any]:
    """
    Translate ``input`` / ``inputPath`` / ``inputTransformer`` into rule target properties.

    Raises:
        DefinitionError: If more than one of the options is given
    """
    present = [key for key in INPUT_KEYS if config.get(key) is not None]
    if len(present) > 1:
        raise DefinitionError(f"{', '.join(present)} are mutually exclusive", entity)
    if not present:
        return {}

    key = present[0]
    value = config[key]
    if key == "input":
        return {"Input": value if isinstance(value, str) else json.dumps(value)}
    if key == "inputPath":
        return {"InputPath": value}

    if not isinstance(value, dict) or "inputTemplate" not in value:
        raise DefinitionError("inputTransformer requires an inputTemplate", entity)
    transformer = {"InputTemplate": value["inputTemplate"]}
    if value.get("inputPathsMap"):
        transformer["InputPathsMap"] = dict(value["inputPathsMap"])
    return {"InputTransformer": transformer}


def rule_state(config: Dict[str, Any]) -> str:
    return "ENABLED" if config.get("enabled", True) else "DISABLED"


def ensure_invoke_role(context: CompilationContext, role_id: str, principal: str, policy_name: str,
                       state_machine_id: str, role: Optional[Any] = None) -> Any:
    """
    Return the ARN of the role a trigger assumes to start a state machine.

    A user supplied ``role`` is returned as is. Otherwise the role is emitted
    the first time it is requested for a state machine and reused afterwards.
    """
    if role:
        return role
    if not context.template.has_resource(role_id):
        statement = start_execution_statement([{"Ref": state_machine_id}])
        context.template.add_resource(role_id, service_role(principal, policy_name, [statement]))
    return {"Fn::GetAtt": [role_id, "Arn"]}
