"""
Tests for AlarmCompiler and NotificationCompiler
"""

import pytest

from stepfunctions_compiler.errors import DefinitionError
from stepfunctions_compiler.phases.alarms import AlarmCompiler
from stepfunctions_compiler.phases.notifications import NotificationCompiler

STATE_MACHINE_ID = "OrderFlowStepFunctionsStateMachine"


class TestAlarmCompiler:
    """Test AlarmCompiler phase."""

    def test_no_alarms_no_resources(self, build_document, make_context, run_phase):
        context = make_context(build_document())
        run_phase(context, AlarmCompiler())
        assert context.template.resources == {}

    def test_one_alarm_per_metric(self, build_document, make_context, run_phase, pass_definition):
        context = make_context(build_document({
            "OrderFlow": {
                "definition": pass_definition,
                "alarms": {
                    "topics": {"alarm": "arn:aws:sns:us-east-1:1:alarms", "ok": "arn:aws:sns:us-east-1:1:ok"},
                    "metrics": ["executionsFailed", {"metric": "executionsTimedOut", "threshold": 5}],
                    "treatMissingData": "ignore",
                },
            }
        }))
        run_phase(context, AlarmCompiler())

        failed = context.template.get_resource(f"{STATE_MACHINE_ID}ExecutionsFailedAlarm")["Properties"]
        assert failed["MetricName"] == "ExecutionsFailed"
        assert failed["Namespace"] == "AWS/States"
        assert failed["Threshold"] == 1
        assert failed["TreatMissingData"] == "ignore"
        assert failed["Dimensions"] == [{"Name": "StateMachineArn", "Value": {"Ref": STATE_MACHINE_ID}}]
        assert failed["AlarmActions"] == ["arn:aws:sns:us-east-1:1:alarms"]
        assert failed["OKActions"] == ["arn:aws:sns:us-east-1:1:ok"]
        assert "InsufficientDataActions" not in failed

        timed_out = context.template.get_resource(f"{STATE_MACHINE_ID}ExecutionsTimedOutAlarm")["Properties"]
        assert timed_out["Threshold"] == 5

    def test_custom_logical_id_and_name_template(self, build_document, make_context, run_phase, pass_definition):
        context = make_context(build_document({
            "OrderFlow": {
                "definition": pass_definition,
                "alarms": {
                    "nameTemplate": "$[stateMachineName]-$[cloudWatchMetricName]",
                    "metrics": [{"metric": "executionsAborted", "logicalId": "orders-aborted"}],
                },
            }
        }))
        run_phase(context, AlarmCompiler())

        alarm = context.template.get_resource("Ordersaborted")
        assert alarm["Properties"]["AlarmName"] == "OrderFlow-ExecutionsAborted"

    def test_unknown_metric_is_skipped(self, build_document, make_context, run_phase, pass_definition, caplog):
        context = make_context(build_document({
            "OrderFlow": {"definition": pass_definition, "alarms": {"metrics": ["executionsExploded"]}}
        }))
        run_phase(context, AlarmCompiler())

        assert context.template.resources == {}
        assert "unsupported alarm metric 'executionsExploded'" in caplog.text

    def test_invalid_treat_missing_data(self, build_document, make_context, run_phase, pass_definition):
        context = make_context(build_document({
            "OrderFlow": {
                "definition": pass_definition,
                "alarms": {"metrics": ["executionsFailed"], "treatMissingData": "sometimes"},
            }
        }))
        with pytest.raises(DefinitionError, match="treatMissingData"):
            run_phase(context, AlarmCompiler())


class TestNotificationCompiler:
    """Test NotificationCompiler phase."""

    def compile(self, build_document, make_context, run_phase, pass_definition, notifications):
        context = make_context(build_document({
            "OrderFlow": {"definition": pass_definition, "notifications": notifications}
        }))
        return run_phase(context, NotificationCompiler())

    def test_rule_per_status(self, build_document, make_context, run_phase, pass_definition):
        context = self.compile(build_document, make_context, run_phase, pass_definition, {
            "FAILED": [{"sns": "arn:aws:sns:us-east-1:123456789012:failures"}],
            "SUCCEEDED": [{"lambda": "arn:aws:lambda:us-east-1:123456789012:function:done"}],
        })

        rule = context.template.get_resource(f"{STATE_MACHINE_ID}NotificationsFAILEDEventRule")
        pattern = rule["Properties"]["EventPattern"]
        assert pattern["detail-type"] == ["Step Functions Execution Status Change"]
        assert pattern["detail"] == {"status": ["FAILED"], "stateMachineArn": [{"Ref": STATE_MACHINE_ID}]}
        assert rule["Properties"]["Targets"] == [
            {"Arn": "arn:aws:sns:us-east-1:123456789012:failures", "Id": "FAILED-1"}
        ]

        topic_policy = context.template.get_resource(f"{STATE_MACHINE_ID}Notifications1Permission")
        assert topic_policy["Type"] == "AWS::SNS::TopicPolicy"
        permission = context.template.get_resource(f"{STATE_MACHINE_ID}Notifications2Permission")
        assert permission["Type"] == "AWS::Lambda::Permission"
        assert permission["Properties"]["SourceArn"] == {
            "Fn::GetAtt": [f"{STATE_MACHINE_ID}NotificationsSUCCEEDEDEventRule", "Arn"]
        }

    def test_sqs_queue_url_and_message_group(self, build_document, make_context, run_phase, pass_definition):
        context = self.compile(build_document, make_context, run_phase, pass_definition, {
            "ABORTED": [{"sqs": {"arn": "arn:aws:sqs:us-east-1:123456789012:aborted.fifo", "messageGroupId": "g"}}],
        })

        policy = context.template.get_resource(f"{STATE_MACHINE_ID}Notifications1Permission")
        assert policy["Properties"]["Queues"] == ["https://sqs.us-east-1.amazonaws.com/123456789012/aborted.fifo"]
        target = context.template.get_resource(f"{STATE_MACHINE_ID}NotificationsABORTEDEventRule")[
            "Properties"]["Targets"][0]
        assert target["SqsParameters"] == {"MessageGroupId": "g"}

    def test_role_targets_share_one_role(self, build_document, make_context, run_phase, pass_definition):
        context = self.compile(build_document, make_context, run_phase, pass_definition, {
            "FAILED": [{"kinesis": "arn:aws:kinesis:us-east-1:1:stream/failures"}],
            "TIMED_OUT": [{"stepFunctions": "arn:aws:states:us-east-1:1:stateMachine:cleanup"}],
        })

        role_id = f"{STATE_MACHINE_ID}NotificationsIamRole"
        role = context.template.get_resource(role_id)
        statements = role["Properties"]["Policies"][0]["PolicyDocument"]["Statement"]
        assert [statement["Action"] for statement in statements] == [["kinesis:PutRecord"], ["states:StartExecution"]]
        target = context.template.get_resource(f"{STATE_MACHINE_ID}NotificationsTIMEDOUTEventRule")[
            "Properties"]["Targets"][0]
        assert target["RoleArn"] == {"Fn::GetAtt": [role_id, "Arn"]}

    def test_unknown_status(self, build_document, make_context, run_phase, pass_definition):
        with pytest.raises(DefinitionError, match="unknown notification status 'EXPLODED'"):
            self.compile(build_document, make_context, run_phase, pass_definition, {"EXPLODED": [{"sns": "arn"}]})

    def test_unknown_target(self, build_document, make_context, run_phase, pass_definition):
        with pytest.raises(DefinitionError, match="unsupported notification target 'email'"):
            self.compile(build_document, make_context, run_phase, pass_definition, {"FAILED": [{"email": "a@b"}]})
