"""
Validated HTTP endpoint model and the API Gateway references shared by the
HTTP compiler chain.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from stepfunctions_compiler.compiler.context import CompilationContext
from stepfunctions_compiler.compiler.template import CompiledTemplate


@dataclass(frozen=True)
class Authorizer:
    """
    Authorizer attached to an endpoint.

    ``type`` is one of TOKEN, REQUEST, COGNITO_USER_POOLS or AWS_IAM. A
    Lambda authorizer carries ``arn`` and ``is_lambda``; a pre-existing
    authorizer carries ``authorizer_id`` and emits no resource.
    """

    name: str
    type: str = "TOKEN"
    arn: Any = None
    is_lambda: bool = False
    result_ttl_in_seconds: int = 300
    identity_source: Optional[str] = "method.request.header.Authorization"
    identity_validation_expression: Optional[str] = None
    scopes: Tuple[str, ...] = ()
    authorizer_id: Any = None

    @property
    def authorization_type(self) -> str:
        if self.type == "AWS_IAM":
            return "AWS_IAM"
        if self.type == "COGNITO_USER_POOLS":
            return "COGNITO_USER_POOLS"
        return "CUSTOM"

    @property
    def emits_resource(self) -> bool:
        return self.type != "AWS_IAM" and self.authorizer_id is None


@dataclass(frozen=True)
class Cors:
    origins: Tuple[str, ...] = ("*",)
    headers: Tuple[str, ...] = (
        "Content-Type",
        "X-Amz-Date",
        "Authorization",
        "X-Api-Key",
        "X-Amz-Security-Token",
        "X-Amz-User-Agent",
    )
    allow_credentials: bool = False
    max_age: Optional[int] = None
    cache_control: Optional[str] = None

    @property
    def origin_header(self) -> str:
        return ",".join(self.origins)


@dataclass(frozen=True)
class HttpEndpoint:
    """One validated ``http`` binding."""

    state_machine_name: str
    index: int
    method: str
    path: str
    action: str = "StartExecution"
    cors: Optional[Cors] = None
    private: bool = False
    authorizer: Optional[Authorizer] = None
    request_templates: Any = None
    request_schemas: Dict[str, Any] = field(default_factory=dict)
    response_template: Optional[str] = None
    response_headers: Dict[str, str] = field(default_factory=dict)
    iam_role: Any = None

    @property
    def entity(self) -> str:
        return f"{self.state_machine_name} http #{self.index}"

    def path_prefixes(self) -> List[str]:
        """'orders/{id}/items' -> ['orders', 'orders/{id}', 'orders/{id}/items']"""
        parts = [part for part in self.path.split("/") if part]
        return ["/".join(parts[:position]) for position in range(1, len(parts) + 1)]


def rest_api_ref(context: CompilationContext) -> Any:
    configured = context.service_config.provider.api_gateway.rest_api_id
    if configured:
        return configured
    return {"Ref": context.naming.rest_api_logical_id()}


def root_resource_ref(context: CompilationContext) -> Any:
    configured = context.service_config.provider.api_gateway
    if configured.rest_api_id:
        return configured.rest_api_root_resource_id
    return {"Fn::GetAtt": [context.naming.rest_api_logical_id(), "RootResourceId"]}


def resource_ref(context: CompilationContext, path: str) -> Any:
    """Reference the API resource of a path: the root, a pre-declared resource, or a compiled one."""
    if not path:
        return root_resource_ref(context)
    predeclared = context.service_config.provider.api_gateway.rest_api_resources
    if path in predeclared:
        return predeclared[path]
    return {"Ref": context.naming.resource_logical_id(path)}


def resource_ids_of_type(template: CompiledTemplate, resource_type: str) -> List[str]:
    return sorted(
        logical_id for logical_id, resource in template.resources.items() if resource.get("Type") == resource_type
    )
