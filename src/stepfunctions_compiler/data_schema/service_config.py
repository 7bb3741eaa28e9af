"""
Service configuration model.

This module turns the generic tree produced by the YAML/JSON loader into the
read-only values the compiler phases consume:

- ServiceConfig: service name, provider settings, state machines and activities
- StateMachineDefinition: one state machine with its ASL tree and event bindings
- HttpBinding / ScheduleBinding / EventBusBinding: the event binding variants
- ActivityDefinition: a standalone activity

Every nested tree is deep-copied on load, so compilers can never mutate the
user's document.
"""

import copy
import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml

from stepfunctions_compiler import config as settings
from stepfunctions_compiler.errors import DefinitionError

STATE_MACHINE_TYPES = ("STANDARD", "EXPRESS")

# event key -> binding variant
HTTP_EVENT_KEYS = ("http",)
SCHEDULE_EVENT_KEYS = ("schedule",)
EVENT_BUS_EVENT_KEYS = ("eventBridge", "cloudwatchEvent")


@dataclass(frozen=True)
class HttpBinding:
    state_machine_name: str
    index: int
    config: Any


@dataclass(frozen=True)
class ScheduleBinding:
    state_machine_name: str
    index: int
    config: Any


@dataclass(frozen=True)
class EventBusBinding:
    state_machine_name: str
    index: int
    config: Any
    source_key: str = "eventBridge"


EventBinding = Union[HttpBinding, ScheduleBinding, EventBusBinding]


@dataclass(frozen=True)
class ActivityDefinition:
    name: str
    tags: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StateMachineDefinition:
    name: str
    definition: Dict[str, Any]
    logical_id: Optional[str] = None
    state_machine_name: Optional[str] = None
    role: Any = None
    type: str = "STANDARD"
    logging_config: Optional[Dict[str, Any]] = None
    tracing_config: Optional[Dict[str, Any]] = None
    alarms: Optional[Dict[str, Any]] = None
    notifications: Optional[Dict[str, Any]] = None
    tags: Mapping[str, str] = field(default_factory=dict)
    depends_on: Tuple[str, ...] = ()
    retain: bool = False
    events: Tuple[EventBinding, ...] = ()

    def bindings_of(self, binding_type) -> Tuple[EventBinding, ...]:
        """Return this machine's bindings of one variant, in declaration order."""
        return tuple(event for event in self.events if isinstance(event, binding_type))


@dataclass(frozen=True)
class ApiGatewayConfig:
    rest_api_id: Any = None
    rest_api_root_resource_id: Any = None
    rest_api_resources: Mapping[str, Any] = field(default_factory=dict)
    endpoint_type: str = "EDGE"
    resource_policy: Optional[list] = None
    description: Optional[str] = None
    api_keys: Tuple[Any, ...] = ()
    usage_plan: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ProviderConfig:
    stage: str
    region: str
    tags: Mapping[str, str] = field(default_factory=dict)
    api_gateway: ApiGatewayConfig = field(default_factory=ApiGatewayConfig)


@dataclass(frozen=True)
class ServiceConfig:
    service: str
    provider: ProviderConfig
    state_machines: Mapping[str, StateMachineDefinition]
    activities: Tuple[ActivityDefinition, ...] = ()
    functions: Tuple[str, ...] = ()
    no_output: bool = False
    strict_iam_role: bool = False

    def get_state_machine(self, name: str) -> StateMachineDefinition:
        """Look up a state machine by name, raising DefinitionError if it is not declared."""
        try:
            return self.state_machines[name]
        except KeyError:
            raise DefinitionError(f"state machine '{name}' is not declared in stateMachines", name)

    def all_bindings(self, binding_type) -> Tuple[EventBinding, ...]:
        """Return every binding of one variant across all state machines."""
        bindings = []
        for state_machine in self.state_machines.values():
            bindings.extend(state_machine.bindings_of(binding_type))
        return tuple(bindings)


def load_service_config(document: Dict[str, Any], stage: Optional[str] = None,
                        region: Optional[str] = None) -> ServiceConfig:
    """
    Build a ServiceConfig from a parsed service document.

    The Step Functions block is read from a ``stepFunctions`` key when present,
    otherwise from the document root.

    Args:
        document: Tree produced by the YAML/JSON loader
        stage: Stage override (takes precedence over the document)
        region: Region override (takes precedence over the document)

    Returns:
        ServiceConfig: Immutable configuration for one compilation run

    Raises:
        DefinitionError: If the document is missing required keys or declares
            an unknown event type
    """
    if not isinstance(document, dict):
        raise DefinitionError("service document must be a mapping")
    document = copy.deepcopy(document)

    service = document.get("service")
    if isinstance(service, dict):
        service = service.get("name")
    if not service or not isinstance(service, str):
        raise DefinitionError("'service' name is required")

    provider = _load_provider(document.get("provider") or {}, stage, region)

    block = document.get("stepFunctions")
    if block is None:
        block = document
    if not isinstance(block, dict):
        raise DefinitionError("'stepFunctions' must be a mapping")

    raw_machines = block.get("stateMachines") or {}
    if not isinstance(raw_machines, dict):
        raise DefinitionError("'stateMachines' must be a mapping of name to definition")

    state_machines = {}
    for name, raw in raw_machines.items():
        state_machines[name] = _load_state_machine(str(name), raw)

    activities = tuple(_load_activity(item) for item in (block.get("activities") or []))

    functions = document.get("functions") or {}
    function_names = tuple(functions.keys()) if isinstance(functions, dict) else tuple(functions)

    strict = block.get("strictIamRole")
    return ServiceConfig(
        service=service,
        provider=provider,
        state_machines=MappingProxyType(state_machines),
        activities=activities,
        functions=function_names,
        no_output=bool(block.get("noOutput", False)),
        strict_iam_role=settings.STRICT_IAM if strict is None else bool(strict),
    )


def _load_provider(raw: Dict[str, Any], stage: Optional[str], region: Optional[str]) -> ProviderConfig:
    api_gateway = raw.get("apiGateway") or {}
    api_keys = api_gateway.get("apiKeys", raw.get("apiKeys")) or []
    usage_plan = api_gateway.get("usagePlan", raw.get("usagePlan"))
    endpoint_type = str(raw.get("endpointType") or api_gateway.get("endpointType") or "EDGE").upper()
    resource_policy = raw.get("resourcePolicy") or api_gateway.get("resourcePolicy")

    return ProviderConfig(
        stage=stage or raw.get("stage") or settings.DEFAULT_STAGE,
        region=region or raw.get("region") or settings.DEFAULT_REGION,
        tags=MappingProxyType(dict(raw.get("tags") or {})),
        api_gateway=ApiGatewayConfig(
            rest_api_id=api_gateway.get("restApiId"),
            rest_api_root_resource_id=api_gateway.get("restApiRootResourceId"),
            rest_api_resources=MappingProxyType(
                {str(path).strip("/"): resource_id
                 for path, resource_id in (api_gateway.get("restApiResources") or {}).items()}
            ),
            endpoint_type=endpoint_type,
            resource_policy=resource_policy,
            description=api_gateway.get("description"),
            api_keys=tuple(api_keys),
            usage_plan=usage_plan,
        ),
    )


def _load_state_machine(name: str, raw: Any) -> StateMachineDefinition:
    if not isinstance(raw, dict):
        raise DefinitionError("state machine must be a mapping", name)

    definition = raw.get("definition")
    if isinstance(definition, str):
        # Definitions may be embedded as a JSON or YAML string
        try:
            definition = yaml.safe_load(definition)
        except yaml.YAMLError as e:
            raise DefinitionError(f"definition is not valid JSON/YAML: {e}", name)
    if not isinstance(definition, dict):
        raise DefinitionError("'definition' is required and must be a mapping", name)

    machine_type = str(raw.get("type", "STANDARD")).upper()
    if machine_type not in STATE_MACHINE_TYPES:
        raise DefinitionError(f"unsupported state machine type '{raw.get('type')}'", name)

    depends_on = raw.get("dependsOn") or ()
    if isinstance(depends_on, str):
        depends_on = (depends_on,)

    return StateMachineDefinition(
        name=name,
        definition=definition,
        logical_id=raw.get("id"),
        state_machine_name=raw.get("name"),
        role=raw.get("role"),
        type=machine_type,
        logging_config=raw.get("loggingConfig"),
        tracing_config=raw.get("tracingConfig"),
        alarms=raw.get("alarms"),
        notifications=raw.get("notifications"),
        tags=MappingProxyType(dict(raw.get("tags") or {})),
        depends_on=tuple(depends_on),
        retain=bool(raw.get("retain", False)),
        events=_load_events(name, raw.get("events") or []),
    )


def _load_events(state_machine_name: str, raw_events: Any) -> Tuple[EventBinding, ...]:
    if not isinstance(raw_events, list):
        raise DefinitionError("'events' must be a list", state_machine_name)

    counters = {HttpBinding: 0, ScheduleBinding: 0, EventBusBinding: 0}
    bindings = []
    for position, event in enumerate(raw_events):
        if not isinstance(event, dict) or len(event) != 1:
            raise DefinitionError(
                f"event #{position + 1} must be a mapping with exactly one event type key",
                state_machine_name,
            )
        key, value = next(iter(event.items()))
        if key in HTTP_EVENT_KEYS:
            counters[HttpBinding] += 1
            bindings.append(HttpBinding(state_machine_name, counters[HttpBinding], value))
        elif key in SCHEDULE_EVENT_KEYS:
            counters[ScheduleBinding] += 1
            bindings.append(ScheduleBinding(state_machine_name, counters[ScheduleBinding], value))
        elif key in EVENT_BUS_EVENT_KEYS:
            counters[EventBusBinding] += 1
            bindings.append(EventBusBinding(state_machine_name, counters[EventBusBinding], value, key))
        else:
            raise DefinitionError(f"unknown event type '{key}'", state_machine_name)
    return tuple(bindings)


def _load_activity(raw: Any) -> ActivityDefinition:
    if isinstance(raw, str):
        return ActivityDefinition(name=raw)
    if isinstance(raw, dict) and len(raw) == 1:
        name, options = next(iter(raw.items()))
        tags = options.get("tags") if isinstance(options, dict) else None
        return ActivityDefinition(name=str(name), tags=MappingProxyType(dict(tags or {})))
    raise DefinitionError(f"invalid activity declaration: {json.dumps(raw, default=str)}")
