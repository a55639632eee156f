"""Stack, event and change-set data models."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class StackStatus(Enum):
    """CloudFormation stack statuses, with a fallback for unrecognized values."""
    CREATE_IN_PROGRESS = "CREATE_IN_PROGRESS"
    CREATE_FAILED = "CREATE_FAILED"
    CREATE_COMPLETE = "CREATE_COMPLETE"
    ROLLBACK_IN_PROGRESS = "ROLLBACK_IN_PROGRESS"
    ROLLBACK_FAILED = "ROLLBACK_FAILED"
    ROLLBACK_COMPLETE = "ROLLBACK_COMPLETE"
    DELETE_IN_PROGRESS = "DELETE_IN_PROGRESS"
    DELETE_FAILED = "DELETE_FAILED"
    DELETE_COMPLETE = "DELETE_COMPLETE"
    UPDATE_IN_PROGRESS = "UPDATE_IN_PROGRESS"
    UPDATE_COMPLETE_CLEANUP_IN_PROGRESS = "UPDATE_COMPLETE_CLEANUP_IN_PROGRESS"
    UPDATE_COMPLETE = "UPDATE_COMPLETE"
    UPDATE_FAILED = "UPDATE_FAILED"
    UPDATE_ROLLBACK_IN_PROGRESS = "UPDATE_ROLLBACK_IN_PROGRESS"
    UPDATE_ROLLBACK_FAILED = "UPDATE_ROLLBACK_FAILED"
    UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS = "UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS"
    UPDATE_ROLLBACK_COMPLETE = "UPDATE_ROLLBACK_COMPLETE"
    REVIEW_IN_PROGRESS = "REVIEW_IN_PROGRESS"
    IMPORT_IN_PROGRESS = "IMPORT_IN_PROGRESS"
    IMPORT_COMPLETE = "IMPORT_COMPLETE"
    IMPORT_ROLLBACK_IN_PROGRESS = "IMPORT_ROLLBACK_IN_PROGRESS"
    IMPORT_ROLLBACK_FAILED = "IMPORT_ROLLBACK_FAILED"
    IMPORT_ROLLBACK_COMPLETE = "IMPORT_ROLLBACK_COMPLETE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Optional[str]) -> "StackStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


# Stacks in these states can only be deleted, so create_or_update recreates them
ALMOST_DEAD_STATUSES = frozenset({StackStatus.CREATE_FAILED, StackStatus.ROLLBACK_COMPLETE})


def is_terminal_status(status: Optional[str]) -> bool:
    """True for absent stacks and any status ending in _COMPLETE or _FAILED.

    Classification works on the raw string so that statuses this client does
    not know about are still handled.
    """
    if status is None:
        return True
    return status.endswith("_COMPLETE") or status.endswith("_FAILED")


def is_transient_status(status: Optional[str]) -> bool:
    return not is_terminal_status(status)


class ChangeSetStatus(Enum):
    """Change-set creation status."""
    CREATE_PENDING = "CREATE_PENDING"
    CREATE_IN_PROGRESS = "CREATE_IN_PROGRESS"
    CREATE_COMPLETE = "CREATE_COMPLETE"
    DELETE_PENDING = "DELETE_PENDING"
    DELETE_IN_PROGRESS = "DELETE_IN_PROGRESS"
    DELETE_COMPLETE = "DELETE_COMPLETE"
    DELETE_FAILED = "DELETE_FAILED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ChangeSetStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class ChangeSetExecutionStatus(Enum):
    """Change-set execution status."""
    UNAVAILABLE = "UNAVAILABLE"
    AVAILABLE = "AVAILABLE"
    EXECUTE_IN_PROGRESS = "EXECUTE_IN_PROGRESS"
    EXECUTE_COMPLETE = "EXECUTE_COMPLETE"
    EXECUTE_FAILED = "EXECUTE_FAILED"
    OBSOLETE = "OBSOLETE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ChangeSetExecutionStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class ChangeSetState(Enum):
    """Local lifecycle state of a named change-set."""
    ABSENT = "absent"
    CREATING = "creating"
    AVAILABLE = "available"
    CREATE_FAILED = "create_failed"
    EXECUTING = "executing"
    EXECUTED = "executed"
    EXECUTE_FAILED = "execute_failed"
    DELETED = "deleted"


class StackEvent(BaseModel):
    """A single, immutable entry of a stack's event history."""

    model_config = {"frozen": True}

    event_id: str
    timestamp: datetime
    logical_resource_id: str
    physical_resource_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_status: str
    resource_status_reason: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "StackEvent":
        return cls(
            event_id=data["EventId"],
            timestamp=data["Timestamp"],
            logical_resource_id=data["LogicalResourceId"],
            physical_resource_id=data.get("PhysicalResourceId") or None,
            resource_type=data.get("ResourceType"),
            resource_status=data["ResourceStatus"],
            resource_status_reason=data.get("ResourceStatusReason") or None,
        )

    def summary(self) -> str:
        """One-line human summary of the event."""
        text = f"[{self.timestamp.astimezone().isoformat()}] {self.logical_resource_id}"
        text += f" - {self.resource_status}"
        if self.resource_status_reason:
            text += f" - {self.resource_status_reason}"
        return text


class Change(BaseModel):
    """One planned resource change within a change-set."""

    action: str = Field(..., description="Add, Modify, Remove, Import or Dynamic")
    logical_resource_id: str
    physical_resource_id: Optional[str] = None
    resource_type: Optional[str] = None
    replacement: Optional[str] = None
    scope: List[str] = Field(default_factory=list)
    details: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Change":
        resource_change = data.get("ResourceChange", {})
        return cls(
            action=resource_change.get("Action", "Unknown"),
            logical_resource_id=resource_change.get("LogicalResourceId", ""),
            physical_resource_id=resource_change.get("PhysicalResourceId"),
            resource_type=resource_change.get("ResourceType"),
            replacement=resource_change.get("Replacement"),
            scope=list(resource_change.get("Scope", [])),
            details=list(resource_change.get("Details", [])),
        )


class ChangeSetDescription(BaseModel):
    """Snapshot of a change-set as reported by the remote service."""

    name: str
    stack_name: str
    change_set_id: Optional[str] = None
    description: Optional[str] = None
    status: str
    status_reason: Optional[str] = None
    execution_status: str = "UNAVAILABLE"
    creation_time: Optional[datetime] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    tags: Dict[str, str] = Field(default_factory=dict)
    capabilities: List[str] = Field(default_factory=list)
    changes: List[Change] = Field(default_factory=list)

    @property
    def creation_status(self) -> ChangeSetStatus:
        return ChangeSetStatus.parse(self.status)

    @property
    def execution(self) -> ChangeSetExecutionStatus:
        return ChangeSetExecutionStatus.parse(self.execution_status)

    @property
    def state(self) -> ChangeSetState:
        """Map the remote status pair onto the local lifecycle."""
        status = self.creation_status
        execution = self.execution

        if status in (ChangeSetStatus.DELETE_COMPLETE, ChangeSetStatus.DELETE_PENDING,
                      ChangeSetStatus.DELETE_IN_PROGRESS):
            return ChangeSetState.DELETED
        if status == ChangeSetStatus.FAILED:
            return ChangeSetState.CREATE_FAILED
        if status in (ChangeSetStatus.CREATE_PENDING, ChangeSetStatus.CREATE_IN_PROGRESS):
            return ChangeSetState.CREATING
        if execution == ChangeSetExecutionStatus.EXECUTE_IN_PROGRESS:
            return ChangeSetState.EXECUTING
        if execution == ChangeSetExecutionStatus.EXECUTE_COMPLETE:
            return ChangeSetState.EXECUTED
        if execution == ChangeSetExecutionStatus.EXECUTE_FAILED:
            return ChangeSetState.EXECUTE_FAILED
        if execution == ChangeSetExecutionStatus.AVAILABLE:
            return ChangeSetState.AVAILABLE
        # Unavailable or obsolete after creation: cannot be executed
        return ChangeSetState.CREATE_FAILED

    @classmethod
    def from_api(cls, data: Dict[str, Any], changes: Optional[List[Dict[str, Any]]] = None) -> "ChangeSetDescription":
        return cls(
            name=data["ChangeSetName"],
            stack_name=data["StackName"],
            change_set_id=data.get("ChangeSetId"),
            description=data.get("Description"),
            status=data["Status"],
            status_reason=data.get("StatusReason"),
            execution_status=data.get("ExecutionStatus", "UNAVAILABLE"),
            creation_time=data.get("CreationTime"),
            parameters={
                p["ParameterKey"]: p.get("ParameterValue")
                for p in data.get("Parameters", []) or []
            },
            tags={t["Key"]: t["Value"] for t in data.get("Tags", []) or []},
            capabilities=list(data.get("Capabilities", []) or []),
            changes=[Change.from_api(c) for c in (changes if changes is not None else data.get("Changes", []))],
        )

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ChangeSetSummary(BaseModel):
    """Entry of a stack's change-set listing."""

    name: str
    status: str
    execution_status: Optional[str] = None
    status_reason: Optional[str] = None
    creation_time: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ChangeSetSummary":
        return cls(
            name=data["ChangeSetName"],
            status=data["Status"],
            execution_status=data.get("ExecutionStatus"),
            status_reason=data.get("StatusReason"),
            creation_time=data.get("CreationTime"),
        )
