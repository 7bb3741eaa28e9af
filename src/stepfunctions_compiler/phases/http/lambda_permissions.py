from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase

from .authorizers import distinct_authorizers
from .endpoint import rest_api_ref


class LambdaPermissionsCompiler(CompilationPhase):
    """Grants API Gateway the right to invoke every Lambda authorizer."""

    name = "http_lambda_permissions"

    def run(self, context: CompilationContext) -> None:
        for authorizer in distinct_authorizers(context):
            if not authorizer.is_lambda:
                continue
            context.template.add_resource(context.naming.lambda_permission_logical_id(authorizer.name), {
                "Type": "AWS::Lambda::Permission",
                "Properties": {
                    "FunctionName": authorizer.arn,
                    "Action": "lambda:InvokeFunction",
                    "Principal": {"Fn::Sub": "apigateway.${AWS::URLSuffix}"},
                    "SourceArn": {
                        "Fn::Join": ["", [
                            "arn:",
                            {"Ref": "AWS::Partition"},
                            ":execute-api:",
                            {"Ref": "AWS::Region"},
                            ":",
                            {"Ref": "AWS::AccountId"},
                            ":",
                            rest_api_ref(context),
                            "/authorizers/*",
                        ]],
                    },
                },
            })
