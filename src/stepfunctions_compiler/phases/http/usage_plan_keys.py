from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase


class UsagePlanKeysCompiler(CompilationPhase):
    """Attaches every API key to the usage plan."""

    name = "http_usage_plan_keys"

    def run(self, context: CompilationContext) -> None:
        naming = context.naming
        for index in range(1, len(context.service_config.provider.api_gateway.api_keys) + 1):
            context.template.add_resource(naming.usage_plan_key_logical_id(index), {
                "Type": "AWS::ApiGateway::UsagePlanKey",
                "Properties": {
                    "KeyId": {"Ref": naming.api_key_logical_id(index)},
                    "KeyType": "API_KEY",
                    "UsagePlanId": {"Ref": naming.usage_plan_logical_id()},
                },
            })
