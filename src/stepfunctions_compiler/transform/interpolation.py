"""
Variable interpolation for state machine definitions.

Scans the string leaves of a definition for ``${...}`` placeholders and
replaces them with stage, region, account and cross-resource identifiers,
and turns CloudFormation intrinsic objects (Ref, Fn::GetAtt, ...) embedded in
the tree into Fn::Sub substitutions so the whole definition can be emitted
as a single DefinitionString.
"""

import copy
import json
import re
from typing import Any, Dict, Tuple

from stepfunctions_compiler.compiler.naming import NamingResolver, ResourceKind
from stepfunctions_compiler.data_schema.service_config import ServiceConfig
from stepfunctions_compiler.errors import UnresolvedReferenceError

PLACEHOLDER_PATTERN = re.compile(r"\$\{([^}]*)\}")

STAGE_TOKENS = ("self:provider.stage", "sls:stage", "opt:stage")
REGION_TOKENS = ("self:provider.region", "opt:region", "aws:region")
ACCOUNT_TOKENS = ("aws:accountId",)
SERVICE_TOKENS = ("self:service",)


def is_intrinsic(value: Any) -> bool:
    """True for a single-key mapping such as {"Ref": ...} or {"Fn::GetAtt": ...}."""
    if not isinstance(value, dict) or len(value) != 1:
        return False
    key = next(iter(value))
    return key == "Ref" or key.startswith("Fn::")


class DefinitionInterpolator:
    """
    Resolves placeholders and intrinsic references inside definition trees.

    Attributes:
        service_config (ServiceConfig): The service being compiled
        naming (NamingResolver): Resolver used for cross-resource identifiers
    """

    def __init__(self, service_config: ServiceConfig, naming: NamingResolver):
        self.service_config = service_config
        self.naming = naming
        self.activity_names = {activity.name for activity in service_config.activities}

    def substitute_string(self, state_machine_name: str, text: str) -> str:
        """
        Replace every placeholder in a string.

        Args:
            state_machine_name: Owning state machine, used in error messages
            text: String leaf from the definition

        Returns:
            str: The string with resolved values; cross-resource references
                become Fn::Sub variables such as ``${OrderFlowStepFunctionsStateMachine}``

        Raises:
            UnresolvedReferenceError: If a placeholder cannot be resolved
        """
        def repl(match):
            return self._resolve_token(state_machine_name, match.group(1).strip(), match.group(0))

        return PLACEHOLDER_PATTERN.sub(repl, text)

    def _resolve_token(self, state_machine_name: str, token: str, original: str) -> str:
        ctx = self.naming.context
        if token in SERVICE_TOKENS:
            return ctx.service
        if token in STAGE_TOKENS:
            return ctx.stage
        if token in REGION_TOKENS:
            return ctx.region
        if token in ACCOUNT_TOKENS:
            return ctx.account_id
        if token.startswith("AWS::") or token.startswith("!"):
            # CloudFormation pseudo parameters and Fn::Sub escapes are kept for Fn::Sub
            return original
        if token.startswith("stateMachine:"):
            target = token.split(":", 1)[1].strip()
            if target not in self.service_config.state_machines:
                raise UnresolvedReferenceError(
                    f"placeholder {original} references undeclared state machine '{target}'",
                    state_machine_name,
                )
            return "${" + self.naming.resolve_name(target, ResourceKind.STATE_MACHINE) + "}"
        if token.startswith("activity:"):
            target = token.split(":", 1)[1].strip()
            if target not in self.activity_names:
                raise UnresolvedReferenceError(
                    f"placeholder {original} references undeclared activity '{target}'",
                    state_machine_name,
                )
            return "${" + self.naming.activity_logical_id(target) + "}"
        raise UnresolvedReferenceError(f"unresolved placeholder {original}", state_machine_name)

    def translate_local_name(self, name: str) -> str:
        """Map a local function name to its Lambda logical id; other names pass through."""
        if name in self.service_config.functions:
            return self.naming.lambda_logical_id(name)
        return name

    def translate_intrinsic(self, value: Dict[str, Any]) -> Dict[str, Any]:
        """Translate local function names inside a Ref / Fn::GetAtt object."""
        if "Ref" in value and isinstance(value["Ref"], str):
            return {"Ref": self.translate_local_name(value["Ref"])}
        if "Fn::GetAtt" in value:
            target, attribute = _split_get_att(value["Fn::GetAtt"])
            if target is not None:
                return {"Fn::GetAtt": [self.translate_local_name(target), attribute]}
        return copy.deepcopy(value)

    def resolve_value(self, state_machine_name: str, value: Any) -> Any:
        """
        Resolve one value (e.g. a task Resource or FunctionName) into a
        CloudFormation-ready value: a plain string, an Fn::Sub, or an intrinsic.
        """
        if is_intrinsic(value):
            return self.translate_intrinsic(value)
        if isinstance(value, str):
            substituted = self.substitute_string(state_machine_name, value)
            if "${" in substituted:
                return {"Fn::Sub": substituted}
            return substituted
        return value

    def interpolate(self, state_machine_name: str, definition: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """
        Produce a substituted copy of a definition tree.

        Args:
            state_machine_name: Owning state machine
            definition: ASL definition tree (left untouched)

        Returns:
            Tuple containing:
            - The substituted definition tree
            - Fn::Sub parameters for intrinsics that have no inline ``${}`` form
        """
        params: Dict[str, Any] = {}
        tree = self._walk(state_machine_name, definition, params)
        return tree, params

    def _walk(self, state_machine_name: str, node: Any, params: Dict[str, Any]) -> Any:
        if is_intrinsic(node):
            return self._inline_intrinsic(node, params)
        if isinstance(node, dict):
            return {key: self._walk(state_machine_name, value, params) for key, value in node.items()}
        if isinstance(node, list):
            return [self._walk(state_machine_name, item, params) for item in node]
        if isinstance(node, str):
            return self.substitute_string(state_machine_name, node)
        return node

    def _inline_intrinsic(self, node: Dict[str, Any], params: Dict[str, Any]) -> str:
        translated = self.translate_intrinsic(node)
        if "Ref" in translated and isinstance(translated["Ref"], str):
            return "${" + translated["Ref"] + "}"
        if "Fn::GetAtt" in translated:
            target, attribute = _split_get_att(translated["Fn::GetAtt"])
            if target is not None:
                return "${" + f"{target}.{attribute}" + "}"
        param_name = f"Param{len(params) + 1}"
        params[param_name] = translated
        return "${" + param_name + "}"

    def definition_string(self, state_machine_name: str, definition: Dict[str, Any]) -> Any:
        """
        Build the DefinitionString property of a state machine resource.

        Returns:
            A JSON string, or an Fn::Sub wrapping it when substitutions remain.
        """
        tree, params = self.interpolate(state_machine_name, definition)
        definition_json = json.dumps(tree, indent=2)
        if params:
            return {"Fn::Sub": [definition_json, params]}
        if "${" in definition_json:
            return {"Fn::Sub": definition_json}
        return definition_json


def _split_get_att(value: Any):
    if isinstance(value, list) and len(value) == 2 and isinstance(value[0], str):
        return value[0], value[1]
    if isinstance(value, str) and "." in value:
        target, attribute = value.split(".", 1)
        return target, attribute
    return None, None
