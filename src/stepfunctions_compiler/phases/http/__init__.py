"""
HTTP event compiler chain.

The links run in this order, each one merging its resources into the shared
template: validation, REST API, path resources, methods, request
validators, authorizers, Lambda permissions, CORS, integration role,
deployment, API keys, usage plan and usage plan keys.
"""

from .api_keys import ApiKeysCompiler
from .authorizers import AuthorizersCompiler
from .cors import CorsCompiler
from .deployment import DeploymentCompiler
from .endpoint import Authorizer, Cors, HttpEndpoint
from .iam_role import ApiGatewayRoleCompiler
from .lambda_permissions import LambdaPermissionsCompiler
from .methods import MethodsCompiler
from .request_validators import RequestValidatorsCompiler
from .resources import ResourcesCompiler
from .rest_api import RestApiCompiler
from .usage_plan import UsagePlanCompiler
from .usage_plan_keys import UsagePlanKeysCompiler
from .validate import HttpValidator

# Links that run only when validation produced at least one endpoint
HTTP_CHAIN = (
    RestApiCompiler,
    ResourcesCompiler,
    MethodsCompiler,
    RequestValidatorsCompiler,
    AuthorizersCompiler,
    LambdaPermissionsCompiler,
    CorsCompiler,
    ApiGatewayRoleCompiler,
    DeploymentCompiler,
    ApiKeysCompiler,
    UsagePlanCompiler,
    UsagePlanKeysCompiler,
)

__all__ = [
    "HTTP_CHAIN",
    "ApiGatewayRoleCompiler",
    "ApiKeysCompiler",
    "Authorizer",
    "AuthorizersCompiler",
    "Cors",
    "CorsCompiler",
    "DeploymentCompiler",
    "HttpEndpoint",
    "HttpValidator",
    "LambdaPermissionsCompiler",
    "MethodsCompiler",
    "RequestValidatorsCompiler",
    "ResourcesCompiler",
    "RestApiCompiler",
    "UsagePlanCompiler",
    "UsagePlanKeysCompiler",
]
