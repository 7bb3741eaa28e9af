"""
Compiled template accumulator and naming context.

CompiledTemplate is the single mutable output of a compilation run. Every
phase merges its resources into it; identifiers are unique across the whole
run, and only the phase currently holding the writer slot may write.
"""

import json
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from stepfunctions_compiler.errors import CollisionError

ACCOUNT_ID_PLACEHOLDER = "${AWS::AccountId}"
PARTITION_PLACEHOLDER = "${AWS::Partition}"


@dataclass(frozen=True)
class NamingContext:
    service: str
    stage: str
    region: str
    account_id: str = ACCOUNT_ID_PLACEHOLDER
    partition: str = PARTITION_PLACEHOLDER

    @classmethod
    def from_service_config(cls, service_config) -> "NamingContext":
        return cls(
            service=service_config.service,
            stage=service_config.provider.stage,
            region=service_config.provider.region,
        )


class CompiledTemplate:
    """
    Append-only resource template shared by all compiler phases.

    Attributes:
        resources (Dict[str, Dict[str, Any]]): Logical identifier -> resource description
        outputs (Dict[str, Dict[str, Any]]): Output key -> output description
    """

    def __init__(self):
        self.resources: Dict[str, Dict[str, Any]] = {}
        self.outputs: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._writer: Optional[str] = None

    @contextmanager
    def writer(self, phase_name: str) -> Iterator["CompiledTemplate"]:
        """
        Hold the writer slot for the duration of one phase.

        Args:
            phase_name: Name of the phase taking ownership of the template

        Raises:
            RuntimeError: If another phase already holds the writer slot
        """
        with self._lock:
            if self._writer is not None:
                raise RuntimeError(
                    f"phase '{phase_name}' cannot write while '{self._writer}' holds the template"
                )
            self._writer = phase_name
        try:
            yield self
        finally:
            with self._lock:
                self._writer = None

    @property
    def current_writer(self) -> Optional[str]:
        return self._writer

    def has_resource(self, logical_id: str) -> bool:
        return logical_id in self.resources

    def get_resource(self, logical_id: str) -> Dict[str, Any]:
        return self.resources[logical_id]

    def add_resource(self, logical_id: str, resource: Dict[str, Any]) -> str:
        """
        Insert a new resource.

        Args:
            logical_id: Unique logical identifier
            resource: Resource description with Type, Properties and optional DependsOn

        Returns:
            str: The logical identifier, for chaining into references

        Raises:
            CollisionError: If the identifier is already present
        """
        with self._lock:
            self._check_writer(logical_id)
            if logical_id in self.resources:
                raise CollisionError(
                    f"resource '{logical_id}' is already defined in the template", logical_id
                )
            self.resources[logical_id] = resource
        return logical_id

    def add_output(self, key: str, output: Dict[str, Any]) -> str:
        """Insert a template output, raising CollisionError on a duplicate key."""
        with self._lock:
            self._check_writer(key)
            if key in self.outputs:
                raise CollisionError(f"output '{key}' is already defined in the template", key)
            self.outputs[key] = output
        return key

    def merge_resource_properties(self, logical_id: str, properties: Dict[str, Any]) -> None:
        """
        Merge additional properties into an existing resource.

        Lists are extended, mappings merged recursively, scalars replaced.
        This is the only sanctioned way to change an emitted resource.
        """
        with self._lock:
            self._check_writer(logical_id)
            resource = self.resources[logical_id]
            _deep_merge(resource.setdefault("Properties", {}), properties)

    def append_policy_statements(self, logical_id: str, statements: List[Dict[str, Any]]) -> None:
        """Accumulate statements into the first inline policy of an existing IAM role."""
        with self._lock:
            self._check_writer(logical_id)
            document = self.resources[logical_id]["Properties"]["Policies"][0]["PolicyDocument"]
            for statement in statements:
                if statement not in document["Statement"]:
                    document["Statement"].append(statement)

    def _check_writer(self, logical_id: str) -> None:
        if self._writer is None:
            raise RuntimeError(f"write of '{logical_id}' outside of a compiler phase")

    def to_dict(self) -> Dict[str, Any]:
        template = {
            "AWSTemplateFormatVersion": "2010-09-09",
            "Resources": self.resources,
        }
        if self.outputs:
            template["Outputs"] = self.outputs
        return template

    def to_json(self, indent: int = 2) -> str:
        """Serialize the template; keys are sorted so identical inputs give identical bytes."""
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)


def _deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> None:
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        elif isinstance(value, list) and isinstance(target.get(key), list):
            target[key].extend(item for item in value if item not in target[key])
        else:
            target[key] = value
