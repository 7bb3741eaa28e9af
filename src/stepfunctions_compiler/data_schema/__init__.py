"""
Data schema package for the Step Functions compiler.

This package provides the read-only service configuration model and the
loaders that build it from YAML/JSON documents.
"""

from .service_config import (
    ActivityDefinition,
    ApiGatewayConfig,
    EventBusBinding,
    HttpBinding,
    ProviderConfig,
    ScheduleBinding,
    ServiceConfig,
    StateMachineDefinition,
    load_service_config,
)
from .utils import load_document, load_service_config_file

__all__ = [
    "ActivityDefinition",
    "ApiGatewayConfig",
    "EventBusBinding",
    "HttpBinding",
    "ProviderConfig",
    "ScheduleBinding",
    "ServiceConfig",
    "StateMachineDefinition",
    "load_service_config",
    "load_document",
    "load_service_config_file",
]
