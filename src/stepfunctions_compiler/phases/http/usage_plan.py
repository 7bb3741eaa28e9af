from typing import Any, Dict

from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase
from stepfunctions_compiler.errors import DefinitionError

from .api_keys import deployment_dependency
from .endpoint import rest_api_ref


def usage_plan_enabled(context: CompilationContext) -> bool:
    api_gateway = context.service_config.provider.api_gateway
    return bool(api_gateway.api_keys or api_gateway.usage_plan)


class UsagePlanCompiler(CompilationPhase):
    """Emits the usage plan (quota and throttle) when API keys or a usagePlan are configured."""

    name = "http_usage_plan"

    def run(self, context: CompilationContext) -> None:
        if not usage_plan_enabled(context):
            return
        naming = context.naming
        plan = context.service_config.provider.api_gateway.usage_plan or {}
        if not isinstance(plan, dict):
            raise DefinitionError("usagePlan must be a mapping", context.service_config.service)

        properties: Dict[str, Any] = {
            "ApiStages": [{"ApiId": rest_api_ref(context), "Stage": naming.context.stage}],
            "Description": f"Usage plan for {naming.stack_name()} stage {naming.context.stage}",
            "UsagePlanName": naming.stack_name(),
        }
        quota = plan.get("quota")
        if quota:
            properties["Quota"] = {
                key: value for key, value in (
                    ("Limit", quota.get("limit")),
                    ("Offset", quota.get("offset")),
                    ("Period", quota.get("period")),
                ) if value is not None
            }
        throttle = plan.get("throttle")
        if throttle:
            properties["Throttle"] = {
                key: value for key, value in (
                    ("BurstLimit", throttle.get("burstLimit")),
                    ("RateLimit", throttle.get("rateLimit")),
                ) if value is not None
            }

        context.template.add_resource(naming.usage_plan_logical_id(), {
            "Type": "AWS::ApiGateway::UsagePlan",
            "Properties": properties,
            "DependsOn": deployment_dependency(context),
        })
