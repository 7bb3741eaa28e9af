"""
Invoke workflow and post-deploy endpoint display.

``InvokeWorkflow.invoke`` starts an execution of a deployed state machine,
waits for it to leave RUNNING and prints the result. A FAILED execution is
reported with the failure details of its last history event and yields exit
code 1.
"""

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from colorama import Fore, Style

from stepfunctions_compiler import config as settings
from stepfunctions_compiler.compiler.naming import NamingResolver, ResourceKind
from stepfunctions_compiler.data_schema.service_config import HttpBinding, ServiceConfig
from stepfunctions_compiler.errors import DefinitionError

from .execution_client import StepFunctionsExecutionClient

logger = logging.getLogger(__name__)


class InvokeWorkflow:
    """
    Runs one state machine of a deployed service to completion.

    Attributes:
        service_config (ServiceConfig): Configuration the service was deployed from
        client (StepFunctionsExecutionClient): Client used for every AWS call
        poll_interval (float): Seconds between two describe_execution calls
    """

    def __init__(self, service_config: ServiceConfig, client: Optional[StepFunctionsExecutionClient] = None,
                 poll_interval: float = settings.EXECUTION_POLL_INTERVAL,
                 sleep: Callable[[float], None] = time.sleep):
        self.service_config = service_config
        self.naming = NamingResolver.for_service(service_config)
        self.client = client or StepFunctionsExecutionClient(service_config.provider.region)
        self.poll_interval = poll_interval
        self._sleep = sleep

    def invoke(self, name: str, data: Optional[str] = None, path: Optional[str] = None) -> int:
        """
        Start an execution and wait for its result.

        Args:
            name: State machine name as declared in stateMachines
            data: Execution input as a JSON string
            path: File holding the execution input

        Returns:
            int: 0 when the execution did not fail, 1 when it reported FAILED

        Raises:
            DefinitionError: For an undeclared state machine or invalid input
            TransportError: If an AWS call fails
        """
        self.service_config.get_state_machine(name)
        execution_input = self._read_input(name, data, path)

        arn = self.client.get_state_machine_arn(
            self.naming.stack_name(), self.naming.resolve_name(name, ResourceKind.STATE_MACHINE_OUTPUT)
        )
        execution_arn = self.client.start_execution(arn, execution_input)
        print(f"{Fore.CYAN}▶ Started execution {execution_arn}{Style.RESET_ALL}")

        result = self.wait_for_completion(execution_arn)
        if result.get("status") == "FAILED":
            history = self.client.get_execution_history(execution_arn)
            if history:
                result.update(history[-1].get("executionFailedEventDetails") or {})
            print(f"{Fore.RED}✘ Execution failed{Style.RESET_ALL}")
            print(json.dumps(result, indent=2, default=str))
            return 1

        print(f"{Fore.GREEN}✓ Execution {result.get('status', '').lower()}{Style.RESET_ALL}")
        print(json.dumps(result, indent=2, default=str))
        return 0

    def wait_for_completion(self, execution_arn: str) -> Dict[str, Any]:
        result = self.client.describe_execution(execution_arn)
        while result.get("status") == "RUNNING":
            logger.debug("Execution %s still running, polling again in %ss", execution_arn, self.poll_interval)
            self._sleep(self.poll_interval)
            result = self.client.describe_execution(execution_arn)
        return result

    @staticmethod
    def _read_input(name: str, data: Optional[str], path: Optional[str]) -> str:
        if data is not None and path is not None:
            raise DefinitionError("--data and --path are mutually exclusive", name)
        if path is not None:
            data = Path(path).read_text(encoding="utf-8")
        if data is None:
            return "{}"
        try:
            json.loads(data)
        except json.JSONDecodeError as e:
            raise DefinitionError(f"execution input is not valid JSON: {e}", name)
        return data


def display(service_config: ServiceConfig, endpoint: Optional[str]) -> str:
    """
    List the HTTP endpoints of a deployed service.

    Args:
        service_config: Configuration the service was deployed from
        endpoint: ServiceEndpoint output of the stack

    Returns:
        str: One ``<METHOD> - <endpoint><path>`` line per http binding (the root path adds nothing
            to the endpoint), or '' when there are none
    """
    lines: List[str] = []
    base = (endpoint or "").rstrip("/")
    for binding in service_config.all_bindings(HttpBinding):
        method, path = _method_and_path(binding.config)
        if method is None:
            continue
        lines.append(f"{method} - {base}{path}")
    return "\n".join(lines)


def _method_and_path(config: Any):
    if isinstance(config, str):
        parts = config.split()
        if len(parts) != 2:
            return None, None
        method, path = parts
    elif isinstance(config, dict):
        method, path = config.get("method"), config.get("path")
    else:
        return None, None
    if not method or not isinstance(path, str):
        return None, None
    segments = [segment for segment in path.strip().split("/") if segment]
    return str(method).upper(), "".join(f"/{segment}" for segment in segments)
