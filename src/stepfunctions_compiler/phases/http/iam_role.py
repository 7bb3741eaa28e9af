from typing import Dict, List

from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase
from stepfunctions_compiler.compiler.naming import ResourceKind

from ..roles import service_role, start_execution_statement


class ApiGatewayRoleCompiler(CompilationPhase):
    """
    Emits the role API Gateway assumes to start executions.

    The policy only covers the state machines bound by endpoints that do not
    bring their own ``iamRole``; no role is emitted when every endpoint does.
    """

    name = "http_iam_role"

    def run(self, context: CompilationContext) -> None:
        arns_by_action: Dict[str, List[dict]] = {}
        for endpoint in context.http_endpoints:
            if endpoint.iam_role:
                continue
            arn = {"Ref": context.naming.resolve_name(endpoint.state_machine_name, ResourceKind.STATE_MACHINE)}
            arns = arns_by_action.setdefault(f"states:{endpoint.action}", [])
            if arn not in arns:
                arns.append(arn)
        if not arns_by_action:
            return

        statements = [
            start_execution_statement(arns, action) for action, arns in sorted(arns_by_action.items())
        ]
        ctx = context.naming.context
        context.template.add_resource(
            context.naming.api_to_state_machine_role_logical_id(),
            service_role("apigateway.amazonaws.com", f"{ctx.stage}-{ctx.region}-{ctx.service}-apigateway", statements),
        )
