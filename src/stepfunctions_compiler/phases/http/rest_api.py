from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase

from ..roles import POLICY_VERSION


class RestApiCompiler(CompilationPhase):
    """Emits the AWS::ApiGateway::RestApi, unless an existing API is configured through ``restApiId``."""

    name = "http_rest_api"

    def run(self, context: CompilationContext) -> None:
        api_gateway = context.service_config.provider.api_gateway
        if api_gateway.rest_api_id:
            return

        naming = context.naming
        properties = {
            "Name": naming.rest_api_name(),
            "EndpointConfiguration": {"Types": [api_gateway.endpoint_type]},
        }
        if api_gateway.description:
            properties["Description"] = api_gateway.description
        if api_gateway.resource_policy:
            properties["Policy"] = {
                "Version": POLICY_VERSION,
                "Statement": list(api_gateway.resource_policy),
            }
        context.template.add_resource(naming.rest_api_logical_id(), {
            "Type": "AWS::ApiGateway::RestApi",
            "Properties": properties,
        })
