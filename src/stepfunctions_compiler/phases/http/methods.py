"""
API method compilation.

One AWS::ApiGateway::Method per endpoint, integrated with the Step Functions
``StartExecution`` (or ``StartSyncExecution``) action through an ``AWS``
integration. The request template turns the HTTP request into the
execution input; ``lambda_proxy`` forwards headers, path and query
parameters alongside the body.
"""

from typing import Any, Dict

from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase
from stepfunctions_compiler.compiler.naming import ResourceKind

from .endpoint import HttpEndpoint, resource_ref, rest_api_ref

DEFAULT_TEMPLATE = (
    "#set( $body = $util.escapeJavaScript($input.json('$')) )\n"
    "{\"input\": \"$body\", \"name\": \"$context.requestId\", \"stateMachineArn\": \"${StateMachineArn}\"}"
)

LAMBDA_PROXY_TEMPLATE = """#define( $loop )
{
#foreach($key in $map.keySet())
  #set( $k = $util.escapeJavaScript($key) )
  #set( $v = $util.escapeJavaScript($map.get($key)).replaceAll("\\\\'", "'") )
  \\"$k\\": \\"$v\\"
  #if( $foreach.hasNext ) , #end
#end
}
#end
#set( $body = $util.escapeJavaScript($input.json('$')) )
{
  "input": "{\\"body\\": $body, \\"method\\": \\"$context.httpMethod\\", \\"path\\": \\"$context.resourcePath\\", \\"headers\\": #set( $map = $input.params().header )$loop, \\"pathParameters\\": #set( $map = $input.params().path )$loop, \\"queryStringParameters\\": #set( $map = $input.params().querystring )$loop, \\"requestContext\\": {\\"requestId\\": \\"$context.requestId\\", \\"stage\\": \\"$context.stage\\"}}",
  "name": "$context.requestId",
  "stateMachineArn": "${StateMachineArn}"
}"""

DEFAULT_CONTENT_TYPES = ("application/json", "application/x-www-form-urlencoded")
SYNC_RESPONSE_TEMPLATE = "$input.path('$.output')"
ALLOW_ORIGIN = "method.response.header.Access-Control-Allow-Origin"


def integration_role_arn(context: CompilationContext, endpoint: HttpEndpoint) -> Any:
    if endpoint.iam_role:
        return endpoint.iam_role
    return {"Fn::GetAtt": [context.naming.api_to_state_machine_role_logical_id(), "Arn"]}


class MethodsCompiler(CompilationPhase):
    name = "http_methods"

    def run(self, context: CompilationContext) -> None:
        for endpoint in context.http_endpoints:
            self.compile_method(context, endpoint)

    def compile_method(self, context: CompilationContext, endpoint: HttpEndpoint) -> str:
        """Emit the method of one endpoint, returning its logical id."""
        naming = context.naming
        state_machine_id = naming.resolve_name(endpoint.state_machine_name, ResourceKind.STATE_MACHINE)

        properties: Dict[str, Any] = {
            "HttpMethod": endpoint.method,
            "RequestParameters": {},
            "ResourceId": resource_ref(context, endpoint.path),
            "RestApiId": rest_api_ref(context),
            "ApiKeyRequired": endpoint.private,
            "AuthorizationType": "NONE",
            "Integration": {
                "IntegrationHttpMethod": "POST",
                "Type": "AWS",
                "Credentials": integration_role_arn(context, endpoint),
                "Uri": {
                    "Fn::Sub": f"arn:${{AWS::Partition}}:apigateway:${{AWS::Region}}:states:action/{endpoint.action}"
                },
                "PassthroughBehavior": "NEVER",
                "RequestTemplates": self._request_templates(endpoint, state_machine_id),
                "IntegrationResponses": self._integration_responses(endpoint),
            },
            "MethodResponses": self._method_responses(endpoint),
        }

        resource: Dict[str, Any] = {"Type": "AWS::ApiGateway::Method", "Properties": properties}
        authorizer = endpoint.authorizer
        if authorizer:
            properties["AuthorizationType"] = authorizer.authorization_type
            if authorizer.authorizer_id is not None:
                properties["AuthorizerId"] = authorizer.authorizer_id
            elif authorizer.emits_resource:
                authorizer_id = naming.authorizer_logical_id(authorizer.name)
                properties["AuthorizerId"] = {"Ref": authorizer_id}
                resource["DependsOn"] = [authorizer_id]
            if authorizer.scopes and authorizer.type == "COGNITO_USER_POOLS":
                properties["AuthorizationScopes"] = list(authorizer.scopes)

        return context.template.add_resource(naming.method_logical_id(endpoint.path, endpoint.method), resource)

    @staticmethod
    def _request_templates(endpoint: HttpEndpoint, state_machine_id: str) -> Dict[str, Any]:
        if isinstance(endpoint.request_templates, dict):
            return dict(endpoint.request_templates)
        body = LAMBDA_PROXY_TEMPLATE if endpoint.request_templates == "lambda_proxy" else DEFAULT_TEMPLATE
        return {
            content_type: {"Fn::Sub": [body, {"StateMachineArn": {"Ref": state_machine_id}}]}
            for content_type in DEFAULT_CONTENT_TYPES
        }

    @staticmethod
    def _response_parameters(endpoint: HttpEndpoint) -> Dict[str, str]:
        parameters = {
            f"method.response.header.{header}": value for header, value in endpoint.response_headers.items()
        }
        if endpoint.cors:
            parameters[ALLOW_ORIGIN] = f"'{endpoint.cors.origin_header}'"
        return parameters

    def _integration_responses(self, endpoint: HttpEndpoint):
        parameters = self._response_parameters(endpoint)
        template = endpoint.response_template
        if template is None and endpoint.action == "StartSyncExecution":
            template = SYNC_RESPONSE_TEMPLATE

        success: Dict[str, Any] = {"StatusCode": 200, "SelectionPattern": "200", "ResponseParameters": parameters}
        if template is not None:
            success["ResponseTemplates"] = {"application/json": template}
        return [
            success,
            {"StatusCode": 400, "SelectionPattern": "400", "ResponseParameters": dict(parameters)},
        ]

    def _method_responses(self, endpoint: HttpEndpoint):
        parameters = {key: True for key in self._response_parameters(endpoint)}
        return [
            {"StatusCode": 200, "ResponseParameters": parameters},
            {"StatusCode": 400, "ResponseParameters": dict(parameters)},
        ]
