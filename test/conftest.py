"""
Shared fixtures for the compiler tests.
"""

import copy

import pytest

from stepfunctions_compiler.compiler.context import CompilationContext
from stepfunctions_compiler.compiler.naming import NamingResolver
from stepfunctions_compiler.data_schema.service_config import load_service_config

PASS_DEFINITION = {
    "StartAt": "Hello",
    "States": {"Hello": {"Type": "Pass", "End": True}},
}

LAMBDA_DEFINITION = {
    "StartAt": "Invoke",
    "States": {
        "Invoke": {
            "Type": "Task",
            "Resource": "arn:aws:lambda:us-east-1:123456789012:function:hello",
            "End": True,
        }
    },
}


@pytest.fixture
def pass_definition():
    return copy.deepcopy(PASS_DEFINITION)


@pytest.fixture
def lambda_definition():
    return copy.deepcopy(LAMBDA_DEFINITION)


@pytest.fixture
def build_document():
    """Build a service document around a stateMachines block."""

    def _build(state_machines=None, provider=None, **step_functions):
        document = {
            "service": "shop",
            "provider": {"stage": "dev", "region": "us-east-1", **(provider or {})},
            "stepFunctions": {
                "stateMachines": state_machines if state_machines is not None else {
                    "OrderFlow": {"definition": copy.deepcopy(PASS_DEFINITION)}
                },
                **step_functions,
            },
        }
        return document

    return _build


@pytest.fixture
def make_context():
    """Build a CompilationContext from a service document."""

    def _make(document):
        config = load_service_config(document)
        return CompilationContext(service_config=config, naming=NamingResolver.for_service(config))

    return _make


@pytest.fixture
def run_phase():
    """Run phases the way the pipeline does, holding the template writer slot."""

    def _run(context, *phases):
        for phase in phases:
            with context.template.writer(phase.name):
                phase.run(context)
        return context

    return _run
