"""
HTTP binding validation.

First link of the HTTP chain: every ``http`` binding is parsed into an
HttpEndpoint. A binding that fails validation is recorded on the context
and dropped; the remaining endpoints are handed to the rest of the chain
through ``context.http_endpoints``.
"""

import json
import logging
import re
from typing import Any, Dict, Optional, Tuple

from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase
from stepfunctions_compiler.data_schema.service_config import HttpBinding
from stepfunctions_compiler.errors import DefinitionError, StepFunctionsCompilerError

from .endpoint import Authorizer, Cors, HttpEndpoint

logger = logging.getLogger(__name__)

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "OPTIONS", "HEAD", "DELETE", "ANY")
ACTIONS = ("StartExecution", "StartSyncExecution")
ENDPOINT_TYPES = ("EDGE", "REGIONAL", "PRIVATE")

AUTHORIZER_TYPES = {
    "token": "TOKEN",
    "request": "REQUEST",
    "cognito_user_pools": "COGNITO_USER_POOLS",
    "aws_iam": "AWS_IAM",
}

PATH_SEGMENT = re.compile(r"^(?:[A-Za-z0-9._~-]+|\{[A-Za-z0-9._~-]+\+?\})$")


def parse_path(path: Any, entity: str) -> str:
    """
    Normalize and check an endpoint path.

    Leading and trailing slashes are dropped; the root path becomes ''.

    Raises:
        DefinitionError: If a segment holds reserved or unescaped characters
    """
    if not isinstance(path, str):
        raise DefinitionError("'path' is required and must be a string", entity)
    segments = path.strip().strip("/").split("/")
    if segments == [""]:
        return ""
    for segment in segments:
        if not PATH_SEGMENT.match(segment):
            raise DefinitionError(f"path '{path}' contains an invalid segment '{segment}'", entity)
    return "/".join(segments)


class HttpValidator(CompilationPhase):
    """Parses ``http`` bindings into HttpEndpoint values."""

    name = "http_validate"

    def run(self, context: CompilationContext) -> None:
        bindings = context.service_config.all_bindings(HttpBinding)
        if not bindings:
            return
        self._check_provider(context)

        seen: Dict[Tuple[str, str], str] = {}
        # logical id -> path, method or authorizer that first claimed it
        claimed: Dict[str, Any] = {}
        for binding in bindings:
            try:
                endpoint = self.parse(context, binding)
                key = (endpoint.path, endpoint.method)
                if key in seen:
                    raise DefinitionError(
                        f"{endpoint.method} /{endpoint.path} is already bound by {seen[key]}", endpoint.entity
                    )
                claims = self.logical_id_claims(context, endpoint)
                self._check_claims(endpoint, claims, claimed)
            except StepFunctionsCompilerError as e:
                context.add_error(e)
                continue
            seen[key] = endpoint.entity
            for logical_id, owner in claims.items():
                claimed.setdefault(logical_id, owner)
            context.http_endpoints.append(endpoint)
        logger.debug("Validated %d of %d http binding(s)", len(context.http_endpoints), len(bindings))

    @staticmethod
    def logical_id_claims(context: CompilationContext, endpoint: HttpEndpoint) -> Dict[str, Any]:
        """
        Logical ids the endpoint's resources, method and authorizer will be emitted under.

        Distinct paths can normalize to one identifier ('user_list' and
        'userlist'), so clashes are caught here rather than by the template.
        """
        naming = context.naming
        claims: Dict[str, Any] = {
            naming.resource_logical_id(prefix): f"path /{prefix}" for prefix in endpoint.path_prefixes()
        }
        claims[naming.method_logical_id(endpoint.path, endpoint.method)] = \
            f"method {endpoint.method} /{endpoint.path}"
        authorizer = endpoint.authorizer
        if authorizer is not None and authorizer.emits_resource:
            claims[naming.authorizer_logical_id(authorizer.name)] = authorizer
        return claims

    @staticmethod
    def _check_claims(endpoint: HttpEndpoint, claims: Dict[str, Any], claimed: Dict[str, Any]) -> None:
        for logical_id, owner in claims.items():
            existing = claimed.get(logical_id)
            if existing is None or existing == owner:
                continue
            if isinstance(owner, Authorizer):
                raise DefinitionError(
                    f"authorizer '{owner.name}' conflicts with an authorizer already declared under "
                    f"'{existing.name}' with different settings", endpoint.entity,
                )
            raise DefinitionError(
                f"{owner} maps to logical id '{logical_id}', already used by {existing}", endpoint.entity
            )

    @staticmethod
    def _check_provider(context: CompilationContext) -> None:
        api_gateway = context.service_config.provider.api_gateway
        if api_gateway.endpoint_type not in ENDPOINT_TYPES:
            raise DefinitionError(
                f"endpointType must be one of {', '.join(ENDPOINT_TYPES)}", context.service_config.service
            )
        if api_gateway.rest_api_id and not api_gateway.rest_api_root_resource_id:
            raise DefinitionError(
                "restApiRootResourceId is required when restApiId is set", context.service_config.service
            )

    def parse(self, context: CompilationContext, binding: HttpBinding) -> HttpEndpoint:
        """
        Parse one binding.

        Args:
            context: Compilation context
            binding: ``http`` binding as declared, either ``"<METHOD> <path>"`` or a mapping

        Returns:
            HttpEndpoint: The validated endpoint

        Raises:
            DefinitionError: On an invalid method, path, authorizer or option
        """
        entity = f"{binding.state_machine_name} http #{binding.index}"
        if binding.state_machine_name not in context.service_config.state_machines:
            raise DefinitionError(f"references undeclared state machine '{binding.state_machine_name}'", entity)

        config = binding.config
        if isinstance(config, str):
            parts = config.split()
            if len(parts) != 2:
                raise DefinitionError(f"http shorthand must be '<METHOD> <path>', got '{config}'", entity)
            config = {"method": parts[0], "path": parts[1]}
        if not isinstance(config, dict):
            raise DefinitionError("http binding must be a string or a mapping", entity)

        method = str(config.get("method", "")).upper()
        if method not in HTTP_METHODS:
            raise DefinitionError(f"invalid HTTP method '{config.get('method')}'", entity)
        path = parse_path(config.get("path"), entity)

        action = config.get("action", "StartExecution")
        if action not in ACTIONS:
            raise DefinitionError(f"action must be one of {', '.join(ACTIONS)}", entity)

        request = config.get("request") or {}
        response = config.get("response") or {}
        if not isinstance(request, dict) or not isinstance(response, dict):
            raise DefinitionError("'request' and 'response' must be mappings", entity)

        authorizer = self._authorizer(context, config.get("authorizer"), entity)
        if authorizer is not None and authorizer.emits_resource:
            # raises NamingError for names unusable in a logical id
            context.naming.authorizer_logical_id(authorizer.name)

        return HttpEndpoint(
            state_machine_name=binding.state_machine_name,
            index=binding.index,
            method=method,
            path=path,
            action=action,
            cors=self._cors(config.get("cors"), entity),
            private=bool(config.get("private", False)),
            authorizer=authorizer,
            request_templates=self._request_templates(request, entity),
            request_schemas=self._schemas(request, entity),
            response_template=response.get("template"),
            response_headers=dict(response.get("headers") or {}),
            iam_role=config.get("iamRole"),
        )

    @staticmethod
    def _cors(cors: Any, entity: str) -> Optional[Cors]:
        if not cors:
            return None
        if cors is True:
            return Cors()
        if not isinstance(cors, dict):
            raise DefinitionError("'cors' must be true or a mapping", entity)

        defaults = Cors()
        origins = cors.get("origins") or cors.get("origin") or defaults.origins
        if isinstance(origins, str):
            origins = [origins]
        headers = cors.get("headers") or defaults.headers
        return Cors(
            origins=tuple(origins),
            headers=tuple(headers),
            allow_credentials=bool(cors.get("allowCredentials", False)),
            max_age=cors.get("maxAge"),
            cache_control=cors.get("cacheControl"),
        )

    @staticmethod
    def _authorizer(context: CompilationContext, authorizer: Any, entity: str) -> Optional[Authorizer]:
        if not authorizer:
            return None
        if isinstance(authorizer, str):
            authorizer = {"arn": authorizer} if authorizer.startswith("arn:") else {"name": authorizer}
        if not isinstance(authorizer, dict):
            raise DefinitionError("'authorizer' must be a function name, an ARN or a mapping", entity)

        raw_type = str(authorizer.get("type", "")).lower()
        if raw_type and raw_type not in AUTHORIZER_TYPES:
            raise DefinitionError(
                f"authorizer type must be one of {', '.join(AUTHORIZER_TYPES)}", entity
            )
        authorizer_type = AUTHORIZER_TYPES.get(raw_type, "TOKEN")
        name = authorizer.get("name")
        arn = authorizer.get("arn")
        is_lambda = False

        if authorizer_type == "AWS_IAM":
            return Authorizer(name=name or "aws_iam", type="AWS_IAM", identity_source=None)

        if authorizer.get("authorizerId"):
            if not raw_type and isinstance(arn, str) and "cognito-idp" in arn:
                authorizer_type = "COGNITO_USER_POOLS"
            return Authorizer(
                name=name or "existing",
                type=authorizer_type,
                authorizer_id=authorizer["authorizerId"],
                scopes=tuple(authorizer.get("scopes") or ()),
            )

        if arn is None:
            if not name:
                raise DefinitionError("authorizer needs a function name or an ARN", entity)
            if name not in context.service_config.functions:
                raise DefinitionError(f"authorizer references undeclared function '{name}'", entity)
            arn = {"Fn::GetAtt": [context.naming.lambda_logical_id(name), "Arn"]}
            is_lambda = True
        elif isinstance(arn, str) and "cognito-idp" in arn:
            if not raw_type:
                authorizer_type = "COGNITO_USER_POOLS"
            name = name or arn.split("/")[-1]
        else:
            is_lambda = True
            if not name:
                if not isinstance(arn, str):
                    raise DefinitionError("authorizer 'name' is required when 'arn' is not a literal ARN", entity)
                parts = arn.split(":")
                if len(parts) < 7:
                    raise DefinitionError(f"cannot derive an authorizer name from '{arn}'", entity)
                name = parts[6]

        default_source = "method.request.header.Authorization" if authorizer_type != "REQUEST" else None
        identity_source = authorizer.get("identitySource", default_source)
        if authorizer_type == "REQUEST" and not identity_source:
            raise DefinitionError("request authorizers require an identitySource", entity)

        return Authorizer(
            name=str(name),
            type=authorizer_type,
            arn=arn,
            is_lambda=is_lambda and authorizer_type != "COGNITO_USER_POOLS",
            result_ttl_in_seconds=int(authorizer.get("resultTtlInSeconds", 300)),
            identity_source=identity_source,
            identity_validation_expression=authorizer.get("identityValidationExpression"),
            scopes=tuple(authorizer.get("scopes") or ()),
        )

    @staticmethod
    def _request_templates(request: Dict[str, Any], entity: str) -> Any:
        template = request.get("template")
        if template is None or template == "lambda_proxy":
            return template
        if not isinstance(template, dict):
            raise DefinitionError("request template must be 'lambda_proxy' or a mapping of content type", entity)
        return dict(template)

    @staticmethod
    def _schemas(request: Dict[str, Any], entity: str) -> Dict[str, Any]:
        schemas = request.get("schemas")
        if schemas is None and request.get("schema") is not None:
            schemas = {"application/json": request["schema"]}
        if not schemas:
            return {}
        if not isinstance(schemas, dict):
            raise DefinitionError("request schemas must be a mapping of content type to schema", entity)

        parsed = {}
        for content_type, schema in schemas.items():
            if isinstance(schema, str):
                try:
                    schema = json.loads(schema)
                except json.JSONDecodeError as e:
                    raise DefinitionError(f"schema for {content_type} is not valid JSON: {e}", entity)
            if not isinstance(schema, dict):
                raise DefinitionError(f"schema for {content_type} must be a JSON object", entity)
            parsed[content_type] = schema
        return parsed
