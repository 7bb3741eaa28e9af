"""
Structural validation of Amazon States Language definitions.

The compiler never executes a state machine; it only checks that the tree is
well formed before emitting it:
- StartAt names an existing state
- every state has a known Type
- non-terminal states carry exactly one of Next / End
- every Next, Default, choice rule Next and Catch Next target exists
- every state is reachable from StartAt (no orphans)
- Parallel branches and Map processors are validated as independent scopes
"""

from collections import deque
from typing import Any, Dict, Iterator, List, Tuple

from stepfunctions_compiler.errors import DefinitionError

STATE_TYPES = ("Task", "Pass", "Choice", "Wait", "Succeed", "Fail", "Parallel", "Map")
TERMINAL_TYPES = ("Succeed", "Fail")


def validate_definition(state_machine_name: str, definition: Dict[str, Any]) -> None:
    """
    Validate a state machine definition.

    Args:
        state_machine_name: Name used to scope error messages
        definition: ASL definition tree

    Raises:
        DefinitionError: On the first structural violation found
    """
    _validate_scope(state_machine_name, definition, "definition")


def iter_states(definition: Dict[str, Any]) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """
    Yield every (state name, state) pair of a definition, descending into
    Parallel branches and Map processors.
    """
    for state_name, state in (definition.get("States") or {}).items():
        if not isinstance(state, dict):
            continue
        yield state_name, state
        for sub_definition in _sub_definitions(state):
            yield from iter_states(sub_definition)


def _sub_definitions(state: Dict[str, Any]) -> List[Dict[str, Any]]:
    if state.get("Type") == "Parallel":
        return [branch for branch in state.get("Branches") or [] if isinstance(branch, dict)]
    if state.get("Type") == "Map":
        processor = state.get("ItemProcessor") or state.get("Iterator")
        return [processor] if isinstance(processor, dict) else []
    return []


def _validate_scope(name: str, scope: Dict[str, Any], where: str) -> None:
    if not isinstance(scope, dict):
        raise DefinitionError(f"{where} must be a mapping", name)

    start_at = scope.get("StartAt")
    states = scope.get("States")
    if not isinstance(start_at, str) or not start_at:
        raise DefinitionError(f"{where} is missing 'StartAt'", name)
    if not isinstance(states, dict) or not states:
        raise DefinitionError(f"{where} must declare at least one state in 'States'", name)
    if start_at not in states:
        raise DefinitionError(f"{where} StartAt '{start_at}' does not name a state", name)

    for state_name, state in states.items():
        _validate_state(name, state_name, state, states)

    orphans = sorted(set(states) - _reachable(start_at, states))
    if orphans:
        raise DefinitionError(
            f"{where} has states unreachable from '{start_at}': {', '.join(orphans)}", name
        )


def _validate_state(name: str, state_name: str, state: Any, states: Dict[str, Any]) -> None:
    if not isinstance(state, dict):
        raise DefinitionError(f"state '{state_name}' must be a mapping", name)

    state_type = state.get("Type")
    if state_type not in STATE_TYPES:
        raise DefinitionError(f"state '{state_name}' has unknown Type '{state_type}'", name)

    if state_type == "Choice":
        choices = state.get("Choices")
        if not isinstance(choices, list) or not choices:
            raise DefinitionError(f"Choice state '{state_name}' must declare 'Choices'", name)
        if "Next" in state or "End" in state:
            raise DefinitionError(f"Choice state '{state_name}' cannot use 'Next' or 'End'", name)
    elif state_type not in TERMINAL_TYPES:
        has_next = "Next" in state
        has_end = state.get("End") is True
        if has_next == has_end:
            raise DefinitionError(
                f"state '{state_name}' must declare exactly one of 'Next' or 'End: true'", name
            )

    if state_type == "Task" and not state.get("Resource"):
        raise DefinitionError(f"Task state '{state_name}' is missing 'Resource'", name)

    for target in _transitions(state):
        if target not in states:
            raise DefinitionError(
                f"state '{state_name}' transitions to unknown state '{target}'", name
            )

    if state_type == "Parallel":
        branches = state.get("Branches")
        if not isinstance(branches, list) or not branches:
            raise DefinitionError(f"Parallel state '{state_name}' must declare 'Branches'", name)
        for position, branch in enumerate(branches):
            _validate_scope(name, branch, f"branch #{position + 1} of '{state_name}'")
    elif state_type == "Map":
        processor = state.get("ItemProcessor") or state.get("Iterator")
        if processor is None:
            raise DefinitionError(f"Map state '{state_name}' must declare 'ItemProcessor'", name)
        _validate_scope(name, processor, f"item processor of '{state_name}'")


def _transitions(state: Dict[str, Any]) -> List[str]:
    targets = []
    if "Next" in state:
        targets.append(state["Next"])
    if "Default" in state:
        targets.append(state["Default"])
    for choice in state.get("Choices") or []:
        if isinstance(choice, dict) and "Next" in choice:
            targets.append(choice["Next"])
    for catcher in state.get("Catch") or []:
        if isinstance(catcher, dict) and "Next" in catcher:
            targets.append(catcher["Next"])
    return targets


def _reachable(start_at: str, states: Dict[str, Any]) -> set:
    seen = {start_at}
    queue = deque([start_at])
    while queue:
        for target in _transitions(states[queue.popleft()]):
            if target in states and target not in seen:
                seen.add(target)
                queue.append(target)
    return seen
