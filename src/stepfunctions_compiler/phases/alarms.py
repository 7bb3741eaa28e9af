"""
Alarm Compiler

Derives CloudWatch alarms from the declarative ``alarms`` block of a state
machine. One alarm is emitted per declared metric; absent alarms produce no
resources.
"""

import logging
from typing import Any, Dict, List, Optional

from stepfunctions_compiler.compiler.context import CompilationContext, CompilationPhase
from stepfunctions_compiler.compiler.naming import ResourceKind, normalize_name_to_alphanumeric
from stepfunctions_compiler.data_schema.service_config import StateMachineDefinition
from stepfunctions_compiler.errors import DefinitionError

logger = logging.getLogger(__name__)

CLOUDWATCH_METRICS = {
    "executionsTimedOut": "ExecutionsTimedOut",
    "executionsFailed": "ExecutionsFailed",
    "executionsAborted": "ExecutionsAborted",
    "executionThrottled": "ExecutionThrottled",
    "executionsSucceeded": "ExecutionsSucceeded",
}

TREAT_MISSING_DATA = ("missing", "ignore", "breaching", "notBreaching")

TOPIC_ACTIONS = {
    "alarm": "AlarmActions",
    "ok": "OKActions",
    "insufficientData": "InsufficientDataActions",
}


class AlarmCompiler(CompilationPhase):
    """Emits one AWS::CloudWatch::Alarm per metric declared on a state machine."""

    name = "alarms"

    def run(self, context: CompilationContext) -> None:
        for state_machine in context.service_config.state_machines.values():
            if state_machine.alarms:
                self.compile_alarms(context, state_machine)

    def compile_alarms(self, context: CompilationContext, state_machine: StateMachineDefinition) -> List[str]:
        """
        Compile the alarms of one state machine.

        Args:
            context: Compilation context
            state_machine: State machine with an ``alarms`` block

        Returns:
            List[str]: Logical identifiers of the emitted alarms

        Raises:
            DefinitionError: If the alarms block is malformed
        """
        alarms = state_machine.alarms
        name = state_machine.name
        if not isinstance(alarms, dict):
            raise DefinitionError("'alarms' must be a mapping", name)
        metrics = alarms.get("metrics") or []
        if not isinstance(metrics, list):
            raise DefinitionError("'alarms.metrics' must be a list", name)

        topics = alarms.get("topics") or {}
        default_missing = alarms.get("treatMissingData", "missing")
        state_machine_id = context.naming.resolve_name(name, ResourceKind.STATE_MACHINE)

        emitted = []
        for metric in metrics:
            metric_config = metric if isinstance(metric, dict) else {"metric": metric}
            metric_key = metric_config.get("metric")
            cloudwatch_metric = CLOUDWATCH_METRICS.get(metric_key)
            if cloudwatch_metric is None:
                logger.warning("Skipping unsupported alarm metric '%s' on %s", metric_key, name)
                continue

            treat_missing = metric_config.get("treatMissingData", default_missing)
            if treat_missing not in TREAT_MISSING_DATA:
                raise DefinitionError(
                    f"treatMissingData '{treat_missing}' must be one of {', '.join(TREAT_MISSING_DATA)}", name
                )

            if metric_config.get("logicalId"):
                logical_id = normalize_name_to_alphanumeric(str(metric_config["logicalId"]))
            else:
                logical_id = context.naming.resolve_name(name, ResourceKind.ALARM, cloudwatch_metric)

            properties: Dict[str, Any] = {
                "Namespace": "AWS/States",
                "MetricName": cloudwatch_metric,
                "AlarmDescription": f"{name}[{context.naming.context.stage}][{context.naming.context.region}]: "
                                    f"{cloudwatch_metric} alarm",
                "Threshold": metric_config.get("threshold", 1),
                "Period": metric_config.get("period", 60),
                "EvaluationPeriods": metric_config.get("evaluationPeriods", 1),
                "ComparisonOperator": "GreaterThanOrEqualToThreshold",
                "Statistic": "Sum",
                "TreatMissingData": treat_missing,
                "Dimensions": [{"Name": "StateMachineArn", "Value": {"Ref": state_machine_id}}],
            }
            alarm_name = self._alarm_name(alarms.get("nameTemplate"), state_machine, cloudwatch_metric)
            if alarm_name:
                properties["AlarmName"] = alarm_name
            for topic_key, action_key in TOPIC_ACTIONS.items():
                if topics.get(topic_key):
                    properties[action_key] = [topics[topic_key]]

            context.template.add_resource(logical_id, {
                "Type": "AWS::CloudWatch::Alarm",
                "Properties": properties,
            })
            emitted.append(logical_id)
        return emitted

    @staticmethod
    def _alarm_name(template: Optional[str], state_machine: StateMachineDefinition, metric: str) -> Optional[str]:
        if not template:
            return None
        machine_name = state_machine.state_machine_name or state_machine.name
        return template.replace("$[stateMachineName]", machine_name).replace("$[cloudWatchMetricName]", metric)
