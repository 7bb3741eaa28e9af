"""
IAM Role Synthesizer

Produces the execution role of every state machine, or records the role the
user supplied. The synthesized policy is the union of the minimal permission
templates implied by each Task state of the definition:

- Lambda functions (direct ARN, intrinsic reference or lambda:invoke)
- SNS publish, SQS send, DynamoDB item operations
- Nested state machine executions (.sync / .waitForTaskToken)
- EventBridge putEvents, Batch, ECS, Glue, CodeBuild, HTTP endpoints
- AWS SDK integrations (arn:aws:states:::aws-sdk:<service>:<action>)

Task resources with no known template are let through with a broad
service-wide grant and a warning, unless strict mode is enabled.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase, RoleReference
from stepfunctions_compiler.compiler.naming import ResourceKind
from stepfunctions_compiler.data_schema.service_config import StateMachineDefinition
from stepfunctions_compiler.errors import DefinitionError
from stepfunctions_compiler.transform.definition_validator import iter_states
from stepfunctions_compiler.transform.interpolation import DefinitionInterpolator, is_intrinsic

from .roles import service_role

logger = logging.getLogger(__name__)

SERVICE_INTEGRATION_PATTERN = re.compile(r"^arn:[^:]+:states:::(?P<integration>[^.]+)(?:\.(?P<pattern>.+))?$")
LAMBDA_ARN_PATTERN = re.compile(r"^arn:[^:]+:lambda:")
ACTIVITY_ARN_PATTERN = re.compile(r"^arn:[^:]+:states:[^:]*:[^:]*:activity:")
SQS_URL_PATTERN = re.compile(r"^https://sqs\.(?P<region>[^.]+)\.amazonaws\.com/(?P<account>[^/]+)/(?P<queue>[^/]+)$")

DYNAMODB_ACTIONS = {
    "getItem": "dynamodb:GetItem",
    "putItem": "dynamodb:PutItem",
    "updateItem": "dynamodb:UpdateItem",
    "deleteItem": "dynamodb:DeleteItem",
}

# AWS SDK service names whose IAM prefix differs
SDK_IAM_PREFIXES = {
    "sfn": "states",
    "cloudwatchlogs": "logs",
    "cloudwatch": "cloudwatch",
    "sesv2": "ses",
    "elasticloadbalancingv2": "elasticloadbalancing",
}

LOGGING_ACTIONS = [
    "logs:CreateLogDelivery",
    "logs:GetLogDelivery",
    "logs:UpdateLogDelivery",
    "logs:DeleteLogDelivery",
    "logs:ListLogDeliveries",
    "logs:PutResourcePolicy",
    "logs:DescribeResourcePolicies",
    "logs:DescribeLogGroups",
]

TRACING_ACTIONS = [
    "xray:PutTraceSegments",
    "xray:PutTelemetryRecords",
    "xray:GetSamplingRules",
    "xray:GetSamplingTargets",
]

Permission = Tuple[List[str], List[Any]]


def _managed_rule_arn(rule_name: str) -> Dict[str, str]:
    return {"Fn::Sub": "arn:${AWS::Partition}:events:${AWS::Region}:${AWS::AccountId}:rule/" + rule_name}


def _sync_rule_permission(rule_name: str) -> Permission:
    return (["events:PutTargets", "events:PutRule", "events:DescribeRule"], [_managed_rule_arn(rule_name)])


def _with_qualifiers(arn: Any) -> Optional[Any]:
    """Return the ARN matching every version/alias of a function, or None if it cannot be derived."""
    if isinstance(arn, str):
        return None if arn == "*" else f"{arn}:*"
    if isinstance(arn, dict) and isinstance(arn.get("Fn::Sub"), str):
        return {"Fn::Sub": arn["Fn::Sub"] + ":*"}
    if isinstance(arn, dict) and isinstance(arn.get("Fn::GetAtt"), list) and len(arn["Fn::GetAtt"]) == 2:
        target, attribute = arn["Fn::GetAtt"]
        return {"Fn::Sub": "${" + f"{target}.{attribute}" + "}:*"}
    return None


def trim_lambda_qualifier(arn: str) -> str:
    """Drop an alias or version suffix from a Lambda function ARN."""
    parts = arn.split(":")
    return ":".join(parts[:7]) if len(parts) > 7 else arn


class IamRoleSynthesizer(CompilationPhase):
    """
    Synthesizes or reuses the execution role of each state machine.

    Attributes:
        name (str): Phase name
    """

    name = "iam_role"

    def run(self, context: CompilationContext) -> None:
        for state_machine in context.service_config.state_machines.values():
            context.role_references[state_machine.name] = self.synthesize(context, state_machine)

    def synthesize(self, context: CompilationContext, state_machine: StateMachineDefinition) -> RoleReference:
        """
        Produce the role for one state machine.

        Args:
            context: Compilation context
            state_machine: The state machine needing an execution role

        Returns:
            RoleReference: The user-supplied role, or the synthesized role's logical id and ARN

        Raises:
            DefinitionError: In strict mode, when a task resource has no permission template
        """
        if state_machine.role:
            logger.debug("Using user supplied role for %s", state_machine.name)
            return RoleReference(arn=state_machine.role)

        role_id = context.naming.resolve_name(state_machine.name, ResourceKind.ROLE)
        reference = RoleReference(arn={"Fn::GetAtt": [role_id, "Arn"]}, logical_id=role_id)
        if context.template.has_resource(role_id):
            return reference

        statements = self.build_statements(self.collect_permissions(context, state_machine))
        context.template.add_resource(
            role_id, service_role("states.amazonaws.com", context.naming.policy_name(), statements)
        )
        return reference

    def collect_permissions(self, context: CompilationContext, state_machine: StateMachineDefinition) -> List[Permission]:
        """Collect (actions, resources) pairs for every Task state plus logging and tracing."""
        interpolator = DefinitionInterpolator(context.service_config, context.naming)
        strict = context.service_config.strict_iam_role
        permissions: List[Permission] = []

        for state_name, state in iter_states(state_machine.definition):
            if state.get("Type") != "Task":
                continue
            permissions.extend(
                self._task_permissions(interpolator, state_machine.name, state_name, state, strict)
            )

        logging_config = state_machine.logging_config or {}
        if logging_config and str(logging_config.get("level", "OFF")).upper() != "OFF":
            permissions.append((list(LOGGING_ACTIONS), ["*"]))
        if (state_machine.tracing_config or {}).get("enabled"):
            permissions.append((list(TRACING_ACTIONS), ["*"]))
        return permissions

    def _task_permissions(self, interpolator: DefinitionInterpolator, machine_name: str,
                          state_name: str, state: Dict[str, Any], strict: bool) -> List[Permission]:
        resource = state.get("Resource")
        params = state.get("Parameters") or state.get("Arguments") or {}

        def param(key: str) -> Any:
            # Dynamic ("Key.$") or missing parameters can only be granted on "*"
            if key not in params:
                return "*"
            return interpolator.resolve_value(machine_name, params[key])

        if is_intrinsic(resource):
            arn = interpolator.translate_intrinsic(resource)
            return [self._lambda_permission(arn)]

        resource = str(resource)
        if resource.startswith("${activity:") or ACTIVITY_ARN_PATTERN.match(resource):
            return []

        if LAMBDA_ARN_PATTERN.match(resource):
            resolved = interpolator.resolve_value(machine_name, resource)
            if isinstance(resolved, str):
                resolved = trim_lambda_qualifier(resolved)
            return [self._lambda_permission(resolved)]

        match = SERVICE_INTEGRATION_PATTERN.match(resource)
        if match:
            integration = match.group("integration")
            pattern = match.group("pattern") or ""
            permissions = self._integration_permissions(integration, pattern, param, params)
            if permissions is not None:
                return permissions

        return self._fallback_permission(machine_name, state_name, resource, strict)

    def _integration_permissions(self, integration: str, pattern: str, param, params) -> Optional[List[Permission]]:
        service, _, action = integration.partition(":")
        sync = pattern.startswith("sync")

        if integration == "lambda:invoke":
            return [self._lambda_permission(self._function_arn(param("FunctionName")))]
        if integration == "sns:publish":
            return [(["sns:Publish"], [param("TopicArn")])]
        if integration == "sqs:sendMessage":
            return [(["sqs:SendMessage"], [self._queue_arn(param("QueueUrl"))])]
        if service == "dynamodb" and action in DYNAMODB_ACTIONS:
            return [([DYNAMODB_ACTIONS[action]], [self._table_arn(param("TableName"))])]
        if integration == "states:startExecution":
            permissions = [(["states:StartExecution"], [param("StateMachineArn")])]
            if sync:
                permissions.append((["states:DescribeExecution", "states:StopExecution"], ["*"]))
                permissions.append(_sync_rule_permission("StepFunctionsGetEventsForStepFunctionsExecutionRule"))
            return permissions
        if integration == "events:putEvents":
            return [(["events:PutEvents"], self._event_bus_arns(params))]
        if integration == "batch:submitJob":
            permissions = [(["batch:SubmitJob"], [param("JobDefinition"), param("JobQueue")])]
            if sync:
                permissions.append((["batch:DescribeJobs", "batch:TerminateJob"], ["*"]))
                permissions.append(_sync_rule_permission("StepFunctionsGetEventsForBatchJobsRule"))
            return permissions
        if integration == "ecs:runTask":
            permissions = [
                (["ecs:RunTask"], [param("TaskDefinition")]),
                (["ecs:StopTask", "ecs:DescribeTasks"], ["*"]),
                (["iam:PassRole"], ["*"]),
            ]
            if sync:
                permissions.append(_sync_rule_permission("StepFunctionsGetEventsForECSTaskRule"))
            return permissions
        if integration == "glue:startJobRun":
            return [(["glue:StartJobRun", "glue:GetJobRun", "glue:GetJobRuns", "glue:BatchStopJobRun"], ["*"])]
        if integration == "codebuild:startBuild":
            permissions = [(["codebuild:StartBuild", "codebuild:StopBuild", "codebuild:BatchGetBuilds"],
                            [self._codebuild_project_arn(param("ProjectName"))])]
            if sync:
                permissions.append(_sync_rule_permission("StepFunctionsGetEventForCodeBuildStartBuildRule"))
            return permissions
        if integration == "http:invoke":
            return [
                (["states:InvokeHTTPEndpoint"], ["*"]),
                (["events:RetrieveConnectionCredentials"], [param("ConnectionArn")]),
                (["secretsmanager:GetSecretValue", "secretsmanager:DescribeSecret"],
                 [{"Fn::Sub": "arn:${AWS::Partition}:secretsmanager:*:*:secret:events!connection/*"}]),
            ]
        if service == "aws-sdk":
            sdk_service, _, sdk_action = action.partition(":")
            if sdk_service and sdk_action:
                prefix = SDK_IAM_PREFIXES.get(sdk_service.lower(), sdk_service.lower())
                return [([f"{prefix}:{sdk_action[:1].upper()}{sdk_action[1:]}"], ["*"])]
        return None

    def _fallback_permission(self, machine_name: str, state_name: str, resource: str, strict: bool) -> List[Permission]:
        if strict:
            raise DefinitionError(
                f"cannot generate IAM policy statement for Task state '{state_name}' "
                f"with resource '{resource}'",
                machine_name,
            )
        service = None
        match = SERVICE_INTEGRATION_PATTERN.match(resource)
        if match:
            service = match.group("integration").split(":")[0]
        elif resource.startswith("arn:") and len(resource.split(":")) > 2:
            service = resource.split(":")[2]
        action = f"{service}:*" if service else "*"
        logger.warning(
            "Cannot generate a minimal IAM policy statement for Task state '%s' of %s (resource %s); granting %s",
            state_name, machine_name, resource, action,
        )
        return [([action], ["*"])]

    def _lambda_permission(self, arn: Any) -> Permission:
        resources = [arn]
        qualified = _with_qualifiers(arn)
        if qualified is not None:
            resources.append(qualified)
        return (["lambda:InvokeFunction"], resources)

    @staticmethod
    def _function_arn(function_name: Any) -> Any:
        if isinstance(function_name, str) and function_name != "*" and not function_name.startswith("arn:"):
            return {"Fn::Sub": "arn:${AWS::Partition}:lambda:${AWS::Region}:${AWS::AccountId}:function:" + function_name}
        if isinstance(function_name, str):
            return trim_lambda_qualifier(function_name)
        return function_name

    @staticmethod
    def _queue_arn(queue_url: Any) -> Any:
        if isinstance(queue_url, str):
            match = SQS_URL_PATTERN.match(queue_url)
            if match:
                region, account, queue = match.group("region"), match.group("account"), match.group("queue")
                return {"Fn::Sub": f"arn:${{AWS::Partition}}:sqs:{region}:{account}:{queue}"}
            return "*"
        if isinstance(queue_url, dict) and isinstance(queue_url.get("Ref"), str):
            return {"Fn::GetAtt": [queue_url["Ref"], "Arn"]}
        return "*"

    @staticmethod
    def _table_arn(table_name: Any) -> Any:
        if isinstance(table_name, str) and table_name != "*":
            if table_name.startswith("arn:"):
                return table_name
            return {"Fn::Sub": "arn:${AWS::Partition}:dynamodb:${AWS::Region}:${AWS::AccountId}:table/" + table_name}
        if isinstance(table_name, dict) and isinstance(table_name.get("Ref"), str):
            return {"Fn::GetAtt": [table_name["Ref"], "Arn"]}
        return table_name

    @staticmethod
    def _codebuild_project_arn(project_name: Any) -> Any:
        if isinstance(project_name, str) and project_name != "*" and not project_name.startswith("arn:"):
            return {"Fn::Sub": "arn:${AWS::Partition}:codebuild:${AWS::Region}:${AWS::AccountId}:project/" + project_name}
        return project_name

    @staticmethod
    def _event_bus_arns(params: Dict[str, Any]) -> List[Any]:
        arns = []
        entries = params.get("Entries")
        if not isinstance(entries, list):
            return ["*"]
        for entry in entries:
            bus = entry.get("EventBusName", "default") if isinstance(entry, dict) else "*"
            if isinstance(bus, str) and not bus.startswith("arn:"):
                bus = {"Fn::Sub": "arn:${AWS::Partition}:events:${AWS::Region}:${AWS::AccountId}:event-bus/" + bus}
            arns.append(bus)
        return arns or ["*"]

    @staticmethod
    def build_statements(permissions: List[Permission]) -> List[Dict[str, Any]]:
        """
        Group permissions by action list and de-duplicate resources.

        A role without any permission gets a single Deny-all statement, as an
        IAM policy needs at least one statement.
        """
        grouped: Dict[Tuple[str, ...], List[Any]] = {}
        seen: Dict[Tuple[str, ...], set] = {}
        for actions, resources in permissions:
            key = tuple(actions)
            grouped.setdefault(key, [])
            seen.setdefault(key, set())
            for resource in resources:
                fingerprint = json.dumps(resource, sort_keys=True)
                if fingerprint not in seen[key]:
                    seen[key].add(fingerprint)
                    grouped[key].append(resource)

        if not grouped:
            return [{"Effect": "Deny", "Action": "*", "Resource": "*"}]

        statements = []
        for actions, resources in grouped.items():
            if '"*"' in seen[actions]:
                resources = ["*"]
            statements.append({"Effect": "Allow", "Action": list(actions), "Resource": resources})
        return statements
