"""
Tests for the structural definition validator
"""

import pytest

from stepfunctions_compiler.errors import DefinitionError
from stepfunctions_compiler.transform.definition_validator import iter_states, validate_definition


class TestValidateDefinition:
    """Test validate_definition function."""

    def test_valid_definition(self):
        definition = {
            "StartAt": "Check",
            "States": {
                "Check": {
                    "Type": "Choice",
                    "Choices": [{"Variable": "$.ok", "BooleanEquals": True, "Next": "Done"}],
                    "Default": "Fail",
                },
                "Done": {"Type": "Succeed"},
                "Fail": {"Type": "Fail"},
            },
        }
        validate_definition("OrderFlow", definition)

    def test_missing_start_at(self):
        with pytest.raises(DefinitionError, match="missing 'StartAt'"):
            validate_definition("OrderFlow", {"States": {"A": {"Type": "Pass", "End": True}}})

    def test_start_at_unknown_state(self):
        with pytest.raises(DefinitionError, match="does not name a state"):
            validate_definition("OrderFlow", {"StartAt": "B", "States": {"A": {"Type": "Pass", "End": True}}})

    def test_unknown_next(self):
        definition = {"StartAt": "A", "States": {"A": {"Type": "Pass", "Next": "Nowhere"}}}
        with pytest.raises(DefinitionError, match="unknown state 'Nowhere'"):
            validate_definition("OrderFlow", definition)

    def test_orphan_state(self):
        definition = {
            "StartAt": "A",
            "States": {"A": {"Type": "Pass", "End": True}, "Orphan": {"Type": "Pass", "End": True}},
        }
        with pytest.raises(DefinitionError, match="unreachable from 'A': Orphan"):
            validate_definition("OrderFlow", definition)

    def test_next_and_end_together(self):
        definition = {
            "StartAt": "A",
            "States": {"A": {"Type": "Pass", "Next": "B", "End": True}, "B": {"Type": "Succeed"}},
        }
        with pytest.raises(DefinitionError, match="exactly one of 'Next' or 'End: true'"):
            validate_definition("OrderFlow", definition)

    def test_task_without_resource(self):
        definition = {"StartAt": "A", "States": {"A": {"Type": "Task", "End": True}}}
        with pytest.raises(DefinitionError, match="missing 'Resource'"):
            validate_definition("OrderFlow", definition)

    def test_error_names_the_state_machine(self):
        with pytest.raises(DefinitionError) as exc_info:
            validate_definition("OrderFlow", {"StartAt": "A", "States": {"A": {"Type": "Nope", "End": True}}})
        assert exc_info.value.entity == "OrderFlow"
        assert "unknown Type 'Nope'" in str(exc_info.value)

    def test_parallel_branch_is_validated(self):
        definition = {
            "StartAt": "Fan",
            "States": {
                "Fan": {
                    "Type": "Parallel",
                    "Branches": [{"States": {"X": {"Type": "Pass", "End": True}}}],
                    "End": True,
                }
            },
        }
        with pytest.raises(DefinitionError, match="branch #1 of 'Fan' is missing 'StartAt'"):
            validate_definition("OrderFlow", definition)

    def test_catch_target_keeps_state_reachable(self):
        definition = {
            "StartAt": "Work",
            "States": {
                "Work": {
                    "Type": "Task",
                    "Resource": "arn:aws:lambda:us-east-1:123456789012:function:work",
                    "Catch": [{"ErrorEquals": ["States.ALL"], "Next": "Recover"}],
                    "End": True,
                },
                "Recover": {"Type": "Pass", "End": True},
            },
        }
        validate_definition("OrderFlow", definition)


class TestIterStates:
    """Test iter_states function."""

    def test_descends_into_map_and_parallel(self):
        definition = {
            "StartAt": "Each",
            "States": {
                "Each": {
                    "Type": "Map",
                    "ItemProcessor": {"StartAt": "Inner", "States": {"Inner": {"Type": "Pass", "End": True}}},
                    "Next": "Fan",
                },
                "Fan": {
                    "Type": "Parallel",
                    "Branches": [{"StartAt": "Left", "States": {"Left": {"Type": "Pass", "End": True}}}],
                    "End": True,
                },
            },
        }
        assert [name for name, _ in iter_states(definition)] == ["Each", "Inner", "Fan", "Left"]
