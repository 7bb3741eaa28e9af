"""
CORS preflight compilation.

For every path where at least one endpoint enables CORS, an ``OPTIONS``
method with a MOCK integration answers the preflight request. The allowed
methods are the union of the methods bound on that path; origins and
headers are merged across its endpoints.
"""

import logging
from typing import Dict, List

from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase

from .endpoint import Cors, HttpEndpoint, resource_ref, rest_api_ref

logger = logging.getLogger(__name__)

HEADER_PREFIX = "method.response.header."


def _merge(configs: List[Cors]) -> Cors:
    origins: List[str] = []
    headers: List[str] = []
    for cors in configs:
        origins.extend(origin for origin in cors.origins if origin not in origins)
        headers.extend(header for header in cors.headers if header not in headers)
    max_ages = [cors.max_age for cors in configs if cors.max_age is not None]
    cache_controls = [cors.cache_control for cors in configs if cors.cache_control]
    return Cors(
        origins=tuple(origins),
        headers=tuple(headers),
        allow_credentials=any(cors.allow_credentials for cors in configs),
        max_age=max(max_ages) if max_ages else None,
        cache_control=cache_controls[0] if cache_controls else None,
    )


class CorsCompiler(CompilationPhase):
    name = "http_cors"

    def run(self, context: CompilationContext) -> None:
        by_path: Dict[str, List[HttpEndpoint]] = {}
        for endpoint in context.http_endpoints:
            by_path.setdefault(endpoint.path, []).append(endpoint)

        for path, endpoints in sorted(by_path.items()):
            configs = [endpoint.cors for endpoint in endpoints if endpoint.cors]
            if not configs:
                continue
            methods = [endpoint.method for endpoint in endpoints]
            if "OPTIONS" in methods:
                logger.warning("Not adding a CORS preflight on /%s: OPTIONS is bound explicitly", path)
                continue
            self.compile_preflight(context, path, sorted(set(methods)) + ["OPTIONS"], _merge(configs))

    def compile_preflight(self, context: CompilationContext, path: str, methods: List[str], cors: Cors) -> str:
        parameters = {
            "Access-Control-Allow-Origin": f"'{cors.origin_header}'",
            "Access-Control-Allow-Headers": f"'{','.join(cors.headers)}'",
            "Access-Control-Allow-Methods": f"'{','.join(methods)}'",
        }
        if cors.allow_credentials:
            parameters["Access-Control-Allow-Credentials"] = "'true'"
        if cors.max_age is not None:
            parameters["Access-Control-Max-Age"] = f"'{cors.max_age}'"
        if cors.cache_control:
            parameters["Cache-Control"] = f"'{cors.cache_control}'"

        return context.template.add_resource(context.naming.method_logical_id(path, "OPTIONS"), {
            "Type": "AWS::ApiGateway::Method",
            "Properties": {
                "AuthorizationType": "NONE",
                "HttpMethod": "OPTIONS",
                "MethodResponses": [{
                    "StatusCode": "200",
                    "ResponseParameters": {HEADER_PREFIX + header: True for header in parameters},
                    "ResponseModels": {},
                }],
                "RequestParameters": {},
                "Integration": {
                    "Type": "MOCK",
                    "RequestTemplates": {"application/json": "{statusCode:200}"},
                    "ContentHandling": "CONVERT_TO_TEXT",
                    "IntegrationResponses": [{
                        "StatusCode": "200",
                        "ResponseParameters": {HEADER_PREFIX + header: value for header, value in parameters.items()},
                        "ResponseTemplates": {"application/json": ""},
                    }],
                },
                "ResourceId": resource_ref(context, path),
                "RestApiId": rest_api_ref(context),
            },
        })
