"""
Execution client and post-deploy commands for deployed state machines.
"""

from .execution_client import StepFunctionsExecutionClient
from .invoke import InvokeWorkflow, display

__all__ = [
    "InvokeWorkflow",
    "StepFunctionsExecutionClient",
    "display",
]
