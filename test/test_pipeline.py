"""
Tests for CompilationPipeline
"""

import json

import pytest

from stepfunctions_compiler.compiler.template import NamingContext
from stepfunctions_compiler.data_schema.service_config import load_service_config
from stepfunctions_compiler.errors import DefinitionError
from stepfunctions_compiler.pipeline import CompilationPipeline, compile_service


def compile_document(document):
    return CompilationPipeline(load_service_config(document)).run()


class TestPipelineRun:
    """Test CompilationPipeline.run method."""

    def test_minimal_state_machine(self, build_document):
        """A Pass-only machine compiles to its state machine and role."""
        result = compile_document(build_document())

        assert result.ok
        assert sorted(result.template.resources) == ["OrderFlowRole", "OrderFlowStepFunctionsStateMachine"]
        assert result.template.get_resource("OrderFlowStepFunctionsStateMachine")["Type"] == \
            "AWS::StepFunctions::StateMachine"

    def test_single_http_endpoint(self, build_document, pass_definition):
        """A single POST binding produces the whole API surface."""
        result = compile_document(build_document({
            "OrderFlow": {"definition": pass_definition, "events": [{"http": {"method": "POST", "path": "orders"}}]}
        }))

        resources = result.template.resources
        assert resources["ApiGatewayRestApi"]["Type"] == "AWS::ApiGateway::RestApi"
        assert resources["ApiGatewayResourceOrders"]["Properties"]["PathPart"] == "orders"
        assert resources["ApiGatewayMethodOrdersPost"]["Properties"]["HttpMethod"] == "POST"
        assert resources["ApigatewayToStepFunctionsRole"]["Type"] == "AWS::IAM::Role"
        deployments = [rid for rid, res in resources.items() if res["Type"] == "AWS::ApiGateway::Deployment"]
        assert len(deployments) == 1
        assert "ServiceEndpoint" in result.template.outputs
        assert [(e.method, e.path) for e in result.http_endpoints] == [("POST", "orders")]

    def test_every_trigger_kind(self, build_document, lambda_definition):
        result = compile_document(build_document(
            {
                "OrderFlow": {
                    "definition": lambda_definition,
                    "events": [
                        {"http": "get orders"},
                        {"schedule": "rate(1 hour)"},
                        {"eventBridge": {"event": {"source": ["shop.orders"]}}},
                    ],
                    "alarms": {"metrics": ["executionsFailed"]},
                    "notifications": {"FAILED": [{"sns": "arn:aws:sns:us-east-1:1:failures"}]},
                }
            },
            activities=["approve"],
        ))

        assert result.ok
        types = {resource["Type"] for resource in result.template.resources.values()}
        assert {
            "AWS::StepFunctions::StateMachine",
            "AWS::StepFunctions::Activity",
            "AWS::CloudWatch::Alarm",
            "AWS::Events::Rule",
            "AWS::SNS::TopicPolicy",
            "AWS::ApiGateway::Method",
            "AWS::IAM::Role",
        } <= types

    def test_output_is_deterministic(self, build_document, pass_definition):
        """Two compilations of the same document give byte-identical templates."""
        document = build_document(
            {
                "OrderFlow": {"definition": pass_definition, "events": [{"http": "post orders"}, {"http": "get orders/{id}"}]},
                "Billing": {"definition": pass_definition, "events": [{"schedule": "rate(1 day)"}]},
            },
            provider={"apiKeys": ["partner"]},
        )

        assert compile_document(document).to_json() == compile_document(document).to_json()

    def test_template_is_valid_json(self, build_document):
        parsed = json.loads(compile_document(build_document()).to_json())
        assert parsed["AWSTemplateFormatVersion"] == "2010-09-09"
        assert "OrderFlowStepFunctionsStateMachineArn" in parsed["Outputs"]

    def test_binding_errors_are_collected(self, build_document, pass_definition):
        result = compile_document(build_document({
            "OrderFlow": {
                "definition": pass_definition,
                "events": [
                    {"http": "post orders"},
                    {"http": "fetch orders"},
                    {"schedule": "whenever"},
                ],
            }
        }))

        assert not result.ok
        assert len(result.errors) == 2
        assert result.template.has_resource("ApiGatewayMethodOrdersPost")
        assert result.template.has_resource("OrderFlowStepFunctionsStateMachine")

    def test_fatal_error_propagates(self, build_document):
        definition = {"StartAt": "Missing", "States": {"A": {"Type": "Pass", "End": True}}}
        with pytest.raises(DefinitionError):
            compile_document(build_document({"OrderFlow": {"definition": definition}}))

    def test_logical_ids_are_unique_across_state_machines(self, build_document, pass_definition):
        result = compile_document(build_document({
            name: {"definition": pass_definition, "events": [{"schedule": "rate(1 hour)"}]}
            for name in ("OrderFlow", "Billing", "Refunds")
        }))

        schedule_rules = sorted(
            rid for rid, resource in result.template.resources.items() if resource["Type"] == "AWS::Events::Rule"
        )
        assert schedule_rules == [
            "BillingStepFunctionsEventsRuleSchedule1",
            "OrderFlowStepFunctionsEventsRuleSchedule1",
            "RefundsStepFunctionsEventsRuleSchedule1",
        ]


class TestCompileService:
    """Test compile_service function."""

    def test_naming_context_override(self, build_document):
        config = load_service_config(build_document())
        result = compile_service(config, NamingContext(service="shop", stage="prod", region="eu-west-1"))

        role = result.template.get_resource("OrderFlowRole")
        assert role["Properties"]["Policies"][0]["PolicyName"] == "prod-eu-west-1-shop-statemachine"
