"""
Naming Resolver

Pure functions mapping (service, stage, region, state machine name, resource
kind, index) to deterministic CloudFormation logical identifiers. Every other
compiler phase derives its identifiers here, so two compilations of the same
service under the same NamingContext always produce the same names.
"""

import re
from enum import Enum
from typing import Mapping, Optional, Union

from stepfunctions_compiler.errors import NamingError

from .template import NamingContext

_VALID_NAME = re.compile(r"^[A-Za-z0-9_-]+$")


class ResourceKind(Enum):
    STATE_MACHINE = "StateMachine"
    STATE_MACHINE_OUTPUT = "StateMachineOutput"
    ROLE = "Role"
    ALARM = "Alarm"
    NOTIFICATION_RULE = "NotificationRule"
    NOTIFICATION_ROLE = "NotificationRole"
    NOTIFICATION_PERMISSION = "NotificationPermission"
    SCHEDULE_RULE = "ScheduleRule"
    SCHEDULER_SCHEDULE = "SchedulerSchedule"
    SCHEDULE_ROLE = "ScheduleRole"
    SCHEDULER_ROLE = "SchedulerRole"
    EVENT_RULE = "EventRule"
    EVENT_ROLE = "EventRole"


def normalize_name(name: str) -> str:
    """Upper-case the first character."""
    return name[:1].upper() + name[1:]


def normalize_name_to_alphanumeric(name: str) -> str:
    return normalize_name(re.sub(r"[^0-9A-Za-z]", "", name))


def normalized_function_name(name: str) -> str:
    """Normalize a user-facing name into an identifier stem: '-' -> 'Dash', '_' -> 'Underscore'."""
    return normalize_name(name.replace("-", "Dash").replace("_", "Underscore"))


def normalize_path_part(part: str) -> str:
    part = part.replace("-", "Dash")
    part = re.sub(r"\{([^}]+)\+\}", r"\1ProxyVar", part)
    part = re.sub(r"\{([^}]+)\}", r"\1Var", part)
    return normalize_name_to_alphanumeric(part)


def normalize_path(path: str) -> str:
    """Normalize an API path ('orders/{id}') into an identifier fragment ('OrdersIdVar')."""
    return "".join(normalize_path_part(part) for part in path.split("/") if part)


def normalize_method_name(method: str) -> str:
    return normalize_name(method.lower())


class NamingResolver:
    """
    Derives logical identifiers for every resource the compiler emits.

    Attributes:
        context (NamingContext): Service, stage and region of the compilation
        logical_id_overrides (Mapping[str, str]): State machine name -> custom logical id stem
    """

    def __init__(self, context: NamingContext, logical_id_overrides: Optional[Mapping[str, str]] = None):
        self.context = context
        self.logical_id_overrides = dict(logical_id_overrides or {})

    @classmethod
    def for_service(cls, service_config, context: Optional[NamingContext] = None) -> "NamingResolver":
        """Build a resolver honouring the custom ``id`` of every declared state machine."""
        overrides = {
            name: machine.logical_id
            for name, machine in service_config.state_machines.items()
            if machine.logical_id
        }
        return cls(context or NamingContext.from_service_config(service_config), overrides)

    def _stem(self, state_machine_name: str) -> str:
        _check_name(state_machine_name)
        custom = self.logical_id_overrides.get(state_machine_name)
        if custom:
            _check_name(custom)
            return normalized_function_name(custom)
        return normalized_function_name(state_machine_name)

    def _is_custom(self, state_machine_name: str) -> bool:
        return bool(self.logical_id_overrides.get(state_machine_name))

    def resolve_name(self, state_machine_name: str, kind: ResourceKind,
                     index: Optional[Union[int, str]] = None) -> str:
        """
        Resolve the logical identifier of a resource owned by a state machine.

        Args:
            state_machine_name: Key of the state machine in the service config
            kind: Kind of resource being named
            index: Disambiguator (binding position, alarm metric, notification status)

        Returns:
            str: Deterministic logical identifier

        Raises:
            NamingError: If the name is empty, contains invalid characters, or
                the kind requires an index that was not given
        """
        stem = self._stem(state_machine_name)
        custom = self._is_custom(state_machine_name)

        if kind is ResourceKind.STATE_MACHINE:
            return stem if custom else f"{stem}StepFunctionsStateMachine"
        if kind is ResourceKind.STATE_MACHINE_OUTPUT:
            return f"{stem}Arn" if custom else f"{stem}StepFunctionsStateMachineArn"
        if kind is ResourceKind.ROLE:
            return f"{stem}Role"
        if kind is ResourceKind.NOTIFICATION_ROLE:
            return f"{self.resolve_name(state_machine_name, ResourceKind.STATE_MACHINE)}NotificationsIamRole"
        if kind is ResourceKind.SCHEDULE_ROLE:
            return f"{stem}ScheduleToStepFunctionsRole"
        if kind is ResourceKind.SCHEDULER_ROLE:
            return f"{stem}SchedulerToStepFunctionsRole"
        if kind is ResourceKind.EVENT_ROLE:
            return f"{stem}EventToStepFunctionsRole"

        if index is None or index == "":
            raise NamingError(f"resource kind {kind.value} requires an index", state_machine_name)
        suffix = normalize_name_to_alphanumeric(str(index))

        if kind is ResourceKind.ALARM:
            return f"{self.resolve_name(state_machine_name, ResourceKind.STATE_MACHINE)}{suffix}Alarm"
        if kind is ResourceKind.NOTIFICATION_RULE:
            return f"{self.resolve_name(state_machine_name, ResourceKind.STATE_MACHINE)}Notifications{suffix}EventRule"
        if kind is ResourceKind.NOTIFICATION_PERMISSION:
            return f"{self.resolve_name(state_machine_name, ResourceKind.STATE_MACHINE)}Notifications{suffix}Permission"
        if kind is ResourceKind.SCHEDULE_RULE:
            return f"{stem}StepFunctionsEventsRuleSchedule{suffix}"
        if kind is ResourceKind.SCHEDULER_SCHEDULE:
            return f"{stem}StepFunctionsSchedulerSchedule{suffix}"
        if kind is ResourceKind.EVENT_RULE:
            return f"{stem}EventsRuleCloudWatchEvent{suffix}"
        raise NamingError(f"unknown resource kind {kind}", state_machine_name)

    # Service level names

    def policy_name(self) -> str:
        ctx = self.context
        return f"{ctx.stage}-{ctx.region}-{ctx.service}-statemachine"

    def stack_name(self) -> str:
        return f"{self.context.service}-{self.context.stage}"

    def activity_logical_id(self, activity_name: str) -> str:
        _check_name(activity_name)
        return f"{normalized_function_name(activity_name)}StepFunctionsActivity"

    def activity_output_logical_id(self, activity_name: str) -> str:
        return f"{self.activity_logical_id(activity_name)}Arn"

    def lambda_logical_id(self, function_name: str) -> str:
        _check_name(function_name)
        return f"{normalized_function_name(function_name)}LambdaFunction"

    # API Gateway names

    def rest_api_logical_id(self) -> str:
        return "ApiGatewayRestApi"

    def rest_api_name(self) -> str:
        return f"{self.context.stage}-{self.context.service}"

    def resource_logical_id(self, path: str) -> str:
        return f"ApiGatewayResource{normalize_path(path)}"

    def method_logical_id(self, path: str, method: str) -> str:
        return f"ApiGatewayMethod{normalize_path(path)}{normalize_method_name(method)}"

    def validator_logical_id(self, path: str, method: str) -> str:
        return f"{self.method_logical_id(path, method)}Validator"

    def model_logical_id(self, path: str, method: str, content_type: str) -> str:
        return f"{self.method_logical_id(path, method)}{normalize_name_to_alphanumeric(content_type)}Model"

    def authorizer_logical_id(self, authorizer_name: str) -> str:
        _check_name(authorizer_name)
        return f"{normalized_function_name(authorizer_name)}ApiGatewayAuthorizer"

    def lambda_permission_logical_id(self, function_name: str) -> str:
        _check_name(function_name)
        return f"{normalized_function_name(function_name)}LambdaPermissionApiGateway"

    def api_to_state_machine_role_logical_id(self) -> str:
        return "ApigatewayToStepFunctionsRole"

    def deployment_logical_id(self, digest: str) -> str:
        return f"ApiGatewayDeployment{digest}"

    def api_key_logical_id(self, index: int) -> str:
        return f"ApiGatewayApiKey{index}"

    def usage_plan_logical_id(self) -> str:
        return "ApiGatewayUsagePlan"

    def usage_plan_key_logical_id(self, index: int) -> str:
        return f"ApiGatewayUsagePlanKey{index}"

    def service_endpoint_output_key(self) -> str:
        return "ServiceEndpoint"


def _check_name(name: str) -> None:
    if not isinstance(name, str) or not name:
        raise NamingError("name must be a non-empty string", repr(name))
    if not _VALID_NAME.match(name):
        raise NamingError(
            "name may only contain letters, digits, '-' and '_'", name
        )
