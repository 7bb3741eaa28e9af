"""
Step Functions Execution Client

Thin blocking wrapper over the boto3 ``stepfunctions`` and ``cloudformation``
clients used by the invoke workflow. Retries are disabled: a failed call is
surfaced once as a TransportError and the caller decides what to do.
"""

from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from stepfunctions_compiler import config as settings
from stepfunctions_compiler.errors import TransportError, UnresolvedReferenceError


class StepFunctionsExecutionClient:
    """
    Starts and inspects executions of deployed state machines.

    Attributes:
        region (str): AWS region of the deployed stack
    """

    def __init__(self, region: str, read_timeout: int = settings.CLIENT_READ_TIMEOUT,
                 connect_timeout: int = settings.CLIENT_CONNECT_TIMEOUT):
        self.region = region
        client_config = boto3.session.Config(
            retries={"total_max_attempts": 1, "mode": "standard"},
            read_timeout=read_timeout,
            connect_timeout=connect_timeout,
        )
        self.stepfunctions = boto3.client("stepfunctions", region_name=region, config=client_config)
        self.cloudformation = boto3.client("cloudformation", region_name=region, config=client_config)

    def _stack_outputs(self, stack_name: str) -> Dict[str, Any]:
        try:
            response = self.cloudformation.describe_stacks(StackName=stack_name)
        except (BotoCoreError, ClientError) as e:
            raise TransportError(f"describe_stacks failed: {e}", stack_name) from e
        stacks = response.get("Stacks") or []
        if not stacks:
            raise UnresolvedReferenceError("stack is not deployed", stack_name)
        return {output["OutputKey"]: output.get("OutputValue") for output in stacks[0].get("Outputs") or []}

    def get_state_machine_arn(self, stack_name: str, output_key: str) -> str:
        """
        Look up a state machine ARN from the outputs of its deployed stack.

        Args:
            stack_name: CloudFormation stack of the service
            output_key: Output holding the ARN

        Returns:
            str: The state machine ARN

        Raises:
            TransportError: If the CloudFormation call fails
            UnresolvedReferenceError: If the stack has no such output
        """
        outputs = self._stack_outputs(stack_name)
        if output_key not in outputs:
            raise UnresolvedReferenceError(f"stack has no output '{output_key}'", stack_name)
        return outputs[output_key]

    def get_endpoint_info(self, stack_name: str) -> Optional[str]:
        """Return the ServiceEndpoint output of the stack, or None when the service has no API."""
        return self._stack_outputs(stack_name).get("ServiceEndpoint")

    def start_execution(self, state_machine_arn: str, execution_input: str) -> str:
        """Start an execution and return its ARN."""
        try:
            response = self.stepfunctions.start_execution(
                stateMachineArn=state_machine_arn, input=execution_input
            )
        except (BotoCoreError, ClientError) as e:
            raise TransportError(f"start_execution failed: {e}", state_machine_arn) from e
        return response["executionArn"]

    def describe_execution(self, execution_arn: str) -> Dict[str, Any]:
        try:
            response = self.stepfunctions.describe_execution(executionArn=execution_arn)
        except (BotoCoreError, ClientError) as e:
            raise TransportError(f"describe_execution failed: {e}", execution_arn) from e
        response.pop("ResponseMetadata", None)
        return response

    def get_execution_history(self, execution_arn: str) -> List[Dict[str, Any]]:
        """Return every history event of an execution, oldest first."""
        events: List[Dict[str, Any]] = []
        try:
            paginator = self.stepfunctions.get_paginator("get_execution_history")
            for page in paginator.paginate(executionArn=execution_arn):
                events.extend(page.get("events", []))
        except (BotoCoreError, ClientError) as e:
            raise TransportError(f"get_execution_history failed: {e}", execution_arn) from e
        return events
