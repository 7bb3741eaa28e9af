"""
API resource compilation.

Every endpoint path is split into its prefixes ('orders/{id}' gives
'orders' and 'orders/{id}'); one AWS::ApiGateway::Resource is emitted per
distinct prefix across all endpoints, so endpoints sharing a prefix share
its resource. Prefixes pre-declared in ``restApiResources`` are reused.
"""

from typing import List

from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase

from .endpoint import resource_ref, rest_api_ref


class ResourcesCompiler(CompilationPhase):
    name = "http_resources"

    def run(self, context: CompilationContext) -> None:
        predeclared = context.service_config.provider.api_gateway.rest_api_resources
        for path in self.distinct_paths(context):
            if path in predeclared:
                continue
            parent, _, path_part = path.rpartition("/")
            context.template.add_resource(context.naming.resource_logical_id(path), {
                "Type": "AWS::ApiGateway::Resource",
                "Properties": {
                    "ParentId": resource_ref(context, parent),
                    "PathPart": path_part,
                    "RestApiId": rest_api_ref(context),
                },
            })

    @staticmethod
    def distinct_paths(context: CompilationContext) -> List[str]:
        """All path prefixes of all endpoints, parents before children."""
        paths = set()
        for endpoint in context.http_endpoints:
            paths.update(endpoint.path_prefixes())
        return sorted(paths, key=lambda path: (path.count("/"), path))
