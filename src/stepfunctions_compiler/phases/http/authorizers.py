from typing import Any, Dict, List

from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase
from stepfunctions_compiler.errors import DefinitionError

from .endpoint import Authorizer, rest_api_ref


def distinct_authorizers(context: CompilationContext) -> List[Authorizer]:
    """
    Authorizers that need a resource, one per name, in endpoint order.

    Raises:
        DefinitionError: If two endpoints declare different authorizers under one name.
            HttpValidator already drops such endpoints per binding.
    """
    by_name: Dict[str, Authorizer] = {}
    for endpoint in context.http_endpoints:
        authorizer = endpoint.authorizer
        if authorizer is None or not authorizer.emits_resource:
            continue
        existing = by_name.get(authorizer.name)
        if existing is None:
            by_name[authorizer.name] = authorizer
        elif existing != authorizer:
            raise DefinitionError("authorizer is declared with conflicting settings", authorizer.name)
    return list(by_name.values())


def lambda_authorizer_uri(arn: Any) -> Dict[str, Any]:
    return {
        "Fn::Join": ["", [
            "arn:",
            {"Ref": "AWS::Partition"},
            ":apigateway:",
            {"Ref": "AWS::Region"},
            ":lambda:path/2015-03-31/functions/",
            arn,
            "/invocations",
        ]],
    }


class AuthorizersCompiler(CompilationPhase):
    """Emits one AWS::ApiGateway::Authorizer per distinct Lambda or Cognito authorizer."""

    name = "http_authorizers"

    def run(self, context: CompilationContext) -> None:
        for authorizer in distinct_authorizers(context):
            properties: Dict[str, Any] = {
                "Name": authorizer.name,
                "Type": authorizer.type,
                "RestApiId": rest_api_ref(context),
                "AuthorizerResultTtlInSeconds": authorizer.result_ttl_in_seconds,
            }
            if authorizer.identity_source:
                properties["IdentitySource"] = authorizer.identity_source
            if authorizer.type == "COGNITO_USER_POOLS":
                properties["ProviderARNs"] = [authorizer.arn]
            else:
                properties["AuthorizerUri"] = lambda_authorizer_uri(authorizer.arn)
            if authorizer.identity_validation_expression:
                properties["IdentityValidationExpression"] = authorizer.identity_validation_expression

            context.template.add_resource(context.naming.authorizer_logical_id(authorizer.name), {
                "Type": "AWS::ApiGateway::Authorizer",
                "Properties": properties,
            })
