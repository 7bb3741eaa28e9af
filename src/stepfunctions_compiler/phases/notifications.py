"""
Notification Compiler

Compiles the ``notifications`` block of a state machine: for each execution
status an EventBridge rule matching "Step Functions Execution Status Change"
events of that machine, and for each target the resource that subscribes it
to the rule (SNS topic policy, SQS queue policy, Lambda permission, or a
statement in the shared notifications role for Kinesis, Firehose and
nested state machines).
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase
from stepfunctions_compiler.compiler.naming import ResourceKind
from stepfunctions_compiler.data_schema.service_config import StateMachineDefinition
from stepfunctions_compiler.errors import DefinitionError

from .roles import POLICY_VERSION, service_role

EXECUTION_STATUSES = ("ABORTED", "FAILED", "RUNNING", "SUCCEEDED", "TIMED_OUT")
SUPPORTED_TARGETS = ("sns", "sqs", "lambda", "kinesis", "firehose", "stepFunctions")

# target type -> actions the rule's role needs to deliver to it
ROLE_TARGET_ACTIONS = {
    "kinesis": ["kinesis:PutRecord"],
    "firehose": ["firehose:PutRecord", "firehose:PutRecordBatch"],
    "stepFunctions": ["states:StartExecution"],
}

SQS_ARN_PATTERN = re.compile(r"^arn:[^:]+:sqs:(?P<region>[^:]+):(?P<account>[^:]+):(?P<queue>.+)$")


class NotificationCompiler(CompilationPhase):
    """Emits execution status rules and their target subscriptions."""

    name = "notifications"

    def run(self, context: CompilationContext) -> None:
        for state_machine in context.service_config.state_machines.values():
            if state_machine.notifications:
                self.compile_notifications(context, state_machine)

    def compile_notifications(self, context: CompilationContext, state_machine: StateMachineDefinition) -> List[str]:
        """
        Compile the notifications of one state machine.

        Args:
            context: Compilation context
            state_machine: State machine with a ``notifications`` block

        Returns:
            List[str]: Logical identifiers of the emitted rules

        Raises:
            DefinitionError: On an unknown status or target type
        """
        name = state_machine.name
        notifications = state_machine.notifications
        if not isinstance(notifications, dict):
            raise DefinitionError("'notifications' must be a mapping of status to targets", name)

        naming = context.naming
        state_machine_arn = {"Ref": naming.resolve_name(name, ResourceKind.STATE_MACHINE)}
        role_id = naming.resolve_name(name, ResourceKind.NOTIFICATION_ROLE)

        rules = []
        permission_index = 0
        for status, targets in notifications.items():
            if status not in EXECUTION_STATUSES:
                raise DefinitionError(
                    f"unknown notification status '{status}', expected one of {', '.join(EXECUTION_STATUSES)}", name
                )
            if not targets:
                continue
            if not isinstance(targets, list):
                raise DefinitionError(f"notifications for {status} must be a list of targets", name)

            rule_id = naming.resolve_name(name, ResourceKind.NOTIFICATION_RULE, status)
            rule_arn = {"Fn::GetAtt": [rule_id, "Arn"]}
            rule_targets = []
            for position, target in enumerate(targets, start=1):
                target_type, arn, options = self._parse_target(name, status, target)
                rule_target: Dict[str, Any] = {"Arn": arn, "Id": f"{status}-{position}"}

                if target_type in ROLE_TARGET_ACTIONS:
                    self._grant(context, role_id, ROLE_TARGET_ACTIONS[target_type], arn)
                    rule_target["RoleArn"] = {"Fn::GetAtt": [role_id, "Arn"]}
                    if target_type == "kinesis" and options.get("partitionKeyPath"):
                        rule_target["KinesisParameters"] = {"PartitionKeyPath": options["partitionKeyPath"]}
                else:
                    permission_index += 1
                    permission_id = naming.resolve_name(name, ResourceKind.NOTIFICATION_PERMISSION, permission_index)
                    context.template.add_resource(
                        permission_id, self._subscription(name, target_type, arn, rule_arn)
                    )
                    if target_type == "sqs" and options.get("messageGroupId"):
                        rule_target["SqsParameters"] = {"MessageGroupId": options["messageGroupId"]}
                rule_targets.append(rule_target)

            context.template.add_resource(rule_id, {
                "Type": "AWS::Events::Rule",
                "Properties": {
                    "Description": f"Notify {status} executions of {name}",
                    "EventPattern": {
                        "source": ["aws.states"],
                        "detail-type": ["Step Functions Execution Status Change"],
                        "detail": {
                            "status": [status],
                            "stateMachineArn": [state_machine_arn],
                        },
                    },
                    "Targets": rule_targets,
                },
            })
            rules.append(rule_id)
        return rules

    @staticmethod
    def _parse_target(name: str, status: str, target: Any) -> Tuple[str, Any, Dict[str, Any]]:
        if not isinstance(target, dict) or len(target) != 1:
            raise DefinitionError(f"each {status} notification target must be a single-key mapping", name)
        target_type, value = next(iter(target.items()))
        if target_type not in SUPPORTED_TARGETS:
            raise DefinitionError(
                f"unsupported notification target '{target_type}', expected one of {', '.join(SUPPORTED_TARGETS)}",
                name,
            )
        options: Dict[str, Any] = {}
        if isinstance(value, dict) and "arn" in value:
            options = value
            value = value["arn"]
        if not value:
            raise DefinitionError(f"{status} {target_type} target is missing its ARN", name)
        return target_type, value, options

    @staticmethod
    def _grant(context: CompilationContext, role_id: str, actions: List[str], arn: Any) -> None:
        statement = {"Effect": "Allow", "Action": actions, "Resource": [arn]}
        if context.template.has_resource(role_id):
            context.template.append_policy_statements(role_id, [statement])
        else:
            context.template.add_resource(
                role_id, service_role("events.amazonaws.com", "notifications", [statement])
            )

    def _subscription(self, name: str, target_type: str, arn: Any, rule_arn: Dict[str, Any]) -> Dict[str, Any]:
        if target_type == "sns":
            return {
                "Type": "AWS::SNS::TopicPolicy",
                "Properties": {
                    "PolicyDocument": {
                        "Version": POLICY_VERSION,
                        "Statement": [{
                            "Effect": "Allow",
                            "Principal": {"Service": "events.amazonaws.com"},
                            "Action": "sns:Publish",
                            "Resource": arn,
                        }],
                    },
                    "Topics": [arn],
                },
            }
        if target_type == "sqs":
            return {
                "Type": "AWS::SQS::QueuePolicy",
                "Properties": {
                    "PolicyDocument": {
                        "Version": POLICY_VERSION,
                        "Statement": [{
                            "Effect": "Allow",
                            "Principal": {"Service": "events.amazonaws.com"},
                            "Action": "sqs:SendMessage",
                            "Resource": arn,
                            "Condition": {"ArnEquals": {"aws:SourceArn": rule_arn}},
                        }],
                    },
                    "Queues": [self._queue_url(name, arn)],
                },
            }
        return {
            "Type": "AWS::Lambda::Permission",
            "Properties": {
                "Action": "lambda:InvokeFunction",
                "FunctionName": arn,
                "Principal": "events.amazonaws.com",
                "SourceArn": rule_arn,
            },
        }

    @staticmethod
    def _queue_url(name: str, arn: Any) -> Optional[Any]:
        if isinstance(arn, str):
            match = SQS_ARN_PATTERN.match(arn)
            if match:
                return f"https://sqs.{match.group('region')}.amazonaws.com/{match.group('account')}/{match.group('queue')}"
        if isinstance(arn, dict) and isinstance(arn.get("Fn::GetAtt"), list):
            return {"Ref": arn["Fn::GetAtt"][0]}
        raise DefinitionError(f"cannot derive a queue URL from SQS target {arn}", name)
