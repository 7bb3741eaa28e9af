from typing import Any, Dict, List

from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase
from stepfunctions_compiler.errors import DefinitionError

from .endpoint import resource_ids_of_type, rest_api_ref


def deployment_dependency(context: CompilationContext) -> List[str]:
    """Keys and usage plans attach to the stage, which exists once the deployment does."""
    return resource_ids_of_type(context.template, "AWS::ApiGateway::Deployment")


def parse_api_key(raw: Any, service: str) -> Dict[str, Any]:
    """
    Normalize one ``apiKeys`` entry: a name, or a mapping with ``name``,
    ``value``, ``description``, ``customerId`` and ``enabled``.
    """
    if isinstance(raw, str):
        return {"name": raw}
    if isinstance(raw, dict) and raw.get("name"):
        return raw
    raise DefinitionError(f"invalid api key declaration {raw!r}", service)


class ApiKeysCompiler(CompilationPhase):
    name = "http_api_keys"

    def run(self, context: CompilationContext) -> None:
        naming = context.naming
        service = context.service_config.service
        for index, raw in enumerate(context.service_config.provider.api_gateway.api_keys, start=1):
            key = parse_api_key(raw, service)
            properties: Dict[str, Any] = {
                "Enabled": bool(key.get("enabled", True)),
                "Name": key["name"],
                "StageKeys": [{"RestApiId": rest_api_ref(context), "StageName": naming.context.stage}],
            }
            if key.get("value"):
                properties["Value"] = key["value"]
            if key.get("description"):
                properties["Description"] = key["description"]
            if key.get("customerId"):
                properties["CustomerId"] = key["customerId"]

            context.template.add_resource(naming.api_key_logical_id(index), {
                "Type": "AWS::ApiGateway::ApiKey",
                "Properties": properties,
                "DependsOn": deployment_dependency(context),
            })
