"""
Compiler phases.

Each phase implements CompilationPhase.run(context) and writes only through
context.template while it holds the writer slot.
"""

from .activities import ActivitiesCompiler
from .alarms import AlarmCompiler
from .event_bridge_events import EventBusCompiler
from .iam_role import IamRoleSynthesizer
from .notifications import NotificationCompiler
from .schedule_events import ScheduleCompiler
from .state_machines import StateMachineCompiler

__all__ = [
    "ActivitiesCompiler",
    "AlarmCompiler",
    "EventBusCompiler",
    "IamRoleSynthesizer",
    "NotificationCompiler",
    "ScheduleCompiler",
    "StateMachineCompiler",
]
