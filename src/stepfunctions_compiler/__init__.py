"""
Step Functions Compiler

Compiles Step Functions state machines, their activities and their event
triggers (HTTP routes, schedules, event-bus rules) into one CloudFormation
template, and invokes deployed state machines.

Main Components:
- data_schema: Loads service documents into the read-only ServiceConfig.
- compiler: Naming resolver, shared template accumulator and phase contract.
- transform: Definition validation and placeholder interpolation.
- phases: The compiler phases, including the HTTP chain.
- execution: Execution client, invoke workflow and endpoint display.

Usage:
    from stepfunctions_compiler import CompilationPipeline, load_service_config_file

    result = CompilationPipeline(load_service_config_file("serverless.yml")).run()
    print(result.to_json())
"""

# Version information
__version__ = "1.0.0"
__description__ = "Step Functions service compiler"

from .compiler import CompiledTemplate, NamingContext, NamingResolver, ResourceKind
from .data_schema import ServiceConfig, load_service_config, load_service_config_file
from .errors import (
    CollisionError,
    DefinitionError,
    NamingError,
    StepFunctionsCompilerError,
    TransportError,
    UnresolvedReferenceError,
)
from .execution import InvokeWorkflow, StepFunctionsExecutionClient, display
from .pipeline import CompilationPipeline, CompilationResult, compile_service

__all__ = [
    "__version__",
    "__description__",
    # Pipeline
    "CompilationPipeline",
    "CompilationResult",
    "compile_service",
    # Compiler core
    "CompiledTemplate",
    "NamingContext",
    "NamingResolver",
    "ResourceKind",
    # Configuration
    "ServiceConfig",
    "load_service_config",
    "load_service_config_file",
    # Execution
    "InvokeWorkflow",
    "StepFunctionsExecutionClient",
    "display",
    # Errors
    "StepFunctionsCompilerError",
    "DefinitionError",
    "UnresolvedReferenceError",
    "NamingError",
    "CollisionError",
    "TransportError",
]

import logging

# Set up package-level logging
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
