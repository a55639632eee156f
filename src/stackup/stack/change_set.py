"""Named change-set of a stack: create, describe, execute, delete."""

from typing import Any, Dict, List, Optional

from stackup.config.models import ChangeSetOptions
from stackup.parameters import Parameters, tags_to_api
from stackup.stack.models import ChangeSetDescription, ChangeSetState, StackStatus
from stackup.utils.errors import (
    EmptyChangeSetError,
    ErrorContext,
    InvalidStateError,
    ServiceError,
)
from stackup.utils.logging import get_logger

logger = get_logger(__name__)

CHANGE_SET_NOT_FOUND_CODES = frozenset({"ChangeSetNotFound", "ChangeSetNotFoundException"})

# Status reasons CloudFormation gives for a change-set without changes
EMPTY_CHANGE_SET_REASONS = (
    "didn't contain changes",
    "No updates are to be performed",
)


def _is_absent(error: ServiceError) -> bool:
    return error.context.error_code in CHANGE_SET_NOT_FOUND_CODES or "does not exist" in error.message


def _is_empty(description: ChangeSetDescription) -> bool:
    reason = description.status_reason or ""
    return any(marker in reason for marker in EMPTY_CHANGE_SET_REASONS)


class ChangeSet:
    """State machine over one change-set, identified by (stack name, change-set name).

    The lifecycle is absent -> creating -> available | create_failed ->
    executing -> executed | execute_failed, with deletion allowed from any
    state except absent and executing. The state itself lives remotely and
    is re-read on every call.
    """

    def __init__(self, stack, name: str):
        """Initialize change-set handle.

        Args:
            stack: StackController owning the change-set
            name: Change-set name
        """
        self.stack = stack
        self.name = name

    @property
    def cloudformation(self):
        return self.stack.cloudformation

    def _context(self, operation: str) -> ErrorContext:
        return ErrorContext(stack_name=self.stack.stack_name, change_set_name=self.name, operation=operation)

    @property
    def state(self) -> ChangeSetState:
        description = self._fetch()
        return ChangeSetState.ABSENT if description is None else description.state

    def create(self, options: ChangeSetOptions) -> ChangeSetDescription:
        """Create the change-set and block until it is available or failed.

        Raises:
            NameConflictError: If the name is taken and ``force`` is not set
            EmptyChangeSetError: If there are no changes and empty change-sets are not allowed
            ServiceError: If creation failed for any other reason
        """
        stack_status = self.stack.status
        new_stack = stack_status in (None, StackStatus.REVIEW_IN_PROGRESS.value)

        if options.force:
            self.delete()

        args: Dict[str, Any] = {
            "StackName": self.stack.stack_name,
            "ChangeSetName": self.name,
            "ChangeSetType": "CREATE" if new_stack else "UPDATE",
        }
        args.update(options.template_args())
        args["Parameters"] = Parameters(options.parameters).to_api()
        if options.tags is not None:
            args["Tags"] = tags_to_api(options.tags)
        args["Capabilities"] = list(options.capabilities)
        if options.role_arn:
            args["RoleARN"] = options.role_arn
        if options.description:
            args["Description"] = options.description

        logger.info(f"Creating change-set {self.name} ({args['ChangeSetType']}) for stack {self.stack.stack_name}")
        with self.stack.handling_service_errors("create_change_set", change_set_name=self.name):
            self.cloudformation.create_change_set(**args)

        def tick() -> Optional[ChangeSetDescription]:
            description = self.describe()
            logger.debug(f"change_set_status={description.status}")
            if description.state == ChangeSetState.CREATING:
                return None
            return description

        description = self.stack.poller.run(tick, description=f"change-set {self.name}")

        if description.state == ChangeSetState.CREATE_FAILED:
            if _is_empty(description):
                if options.allow_empty_change_set:
                    logger.info(description.status_reason)
                    return description
                raise EmptyChangeSetError(
                    f"change-set {self.name} contains no changes: {description.status_reason}",
                    context=self._context("create_change_set"),
                    suggestions=["Use --no-fail-on-empty-change-set to accept empty change-sets"]
                )
            raise ServiceError(
                f"change-set creation failed: {description.status_reason}",
                context=self._context("create_change_set")
            )

        return description

    def _fetch(self) -> Optional[ChangeSetDescription]:
        """Describe the change-set, following change pagination; None if absent."""
        kwargs = {"StackName": self.stack.stack_name, "ChangeSetName": self.name}
        changes: List[Dict[str, Any]] = []
        try:
            with self.stack.handling_service_errors("describe_change_set", change_set_name=self.name):
                while True:
                    response = self.cloudformation.describe_change_set(**kwargs)
                    changes.extend(response.get("Changes", []))
                    next_token = response.get("NextToken")
                    if not next_token:
                        break
                    kwargs["NextToken"] = next_token
        except ServiceError as e:
            if _is_absent(e):
                return None
            raise
        return ChangeSetDescription.from_api(response, changes)

    def describe(self) -> ChangeSetDescription:
        """Current change-set record including its planned changes.

        Raises:
            InvalidStateError: If the change-set does not exist
        """
        description = self._fetch()
        if description is None:
            raise InvalidStateError(
                f"change-set {self.name} does not exist",
                context=self._context("describe_change_set")
            )
        return description

    def execute(self) -> Optional[str]:
        """Execute an available change-set and return the resulting stack status.

        Raises:
            InvalidStateError: If the change-set is not available
        """
        description = self._fetch()
        state = ChangeSetState.ABSENT if description is None else description.state
        if state != ChangeSetState.AVAILABLE:
            raise InvalidStateError(
                f"change-set {self.name} is {state.value}; only available change-sets can be executed",
                context=self._context("execute_change_set")
            )

        logger.info(f"Executing change-set {self.name}")
        return self.stack.modify_stack(
            "execute_change_set",
            lambda: self.cloudformation.execute_change_set(
                StackName=self.stack.stack_name, ChangeSetName=self.name
            )
        )

    def delete(self) -> None:
        """Delete the change-set; deleting an absent change-set is a no-op.

        Raises:
            InvalidStateError: If the change-set is executing
        """
        description = self._fetch()
        if description is None:
            logger.debug(f"Change-set {self.name} does not exist")
            return None
        if description.state == ChangeSetState.EXECUTING:
            raise InvalidStateError(
                f"change-set {self.name} is executing and cannot be deleted",
                context=self._context("delete_change_set")
            )

        logger.info(f"Deleting change-set {self.name}")
        try:
            with self.stack.handling_service_errors("delete_change_set", change_set_name=self.name):
                self.cloudformation.delete_change_set(
                    StackName=self.stack.stack_name, ChangeSetName=self.name
                )
        except ServiceError as e:
            if not _is_absent(e):
                raise
        return None
