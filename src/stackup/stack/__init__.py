"""Stack orchestration: event watching, change-sets and the stack controller."""

from stackup.stack.models import (
    StackStatus,
    ChangeSetStatus,
    ChangeSetExecutionStatus,
    ChangeSetState,
    StackEvent,
    Change,
    ChangeSetDescription,
    ChangeSetSummary,
    is_terminal_status,
    is_transient_status,
)
from stackup.stack.watcher import EventWatcher
from stackup.stack.change_set import ChangeSet
from stackup.stack.controller import StackController, list_stack_names, log_event

__all__ = [
    # Models
    'StackStatus',
    'ChangeSetStatus',
    'ChangeSetExecutionStatus',
    'ChangeSetState',
    'StackEvent',
    'Change',
    'ChangeSetDescription',
    'ChangeSetSummary',
    'is_terminal_status',
    'is_transient_status',

    # Watching
    'EventWatcher',

    # Operations
    'ChangeSet',
    'StackController',
    'list_stack_names',
    'log_event',
]
