"""Create, update, delete and wait on a single CloudFormation stack."""

import re
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from stackup.config.models import CreateOrUpdateOptions
from stackup.parameters import Parameters, tags_to_api
from stackup.source import parse_data
from stackup.stack.change_set import ChangeSet
from stackup.stack.models import (
    ALMOST_DEAD_STATUSES,
    ChangeSetSummary,
    StackEvent,
    StackStatus,
    is_terminal_status,
)
from stackup.stack.watcher import EventWatcher
from stackup.utils.errors import (
    ErrorContext,
    InvalidStateError,
    ServiceError,
    error_handler,
)
from stackup.utils.logging import LogContext, get_logger
from stackup.utils.polling import DEFAULT_POLL_INTERVAL, Poller

logger = get_logger(__name__)

NO_UPDATES_MESSAGE = "No updates are to be performed"
CANNOT_BE_UPDATED = re.compile(r"(can ?not|can't) be updated")
CANCEL_NOT_ALLOWED_MESSAGE = "CancelUpdateStack cannot be called from current stack status"

EventHandler = Callable[[StackEvent], None]


def log_event(event: StackEvent) -> None:
    """Default event handler: log the event summary."""
    logger.info(event.summary())


def list_stack_names(cloudformation) -> List[str]:
    """Names of all stacks in the region that have not been deleted."""
    names = []
    try:
        paginator = cloudformation.get_paginator("list_stacks")
        for page in paginator.paginate():
            for summary in page.get("StackSummaries", []):
                if summary["StackStatus"] != StackStatus.DELETE_COMPLETE.value:
                    names.append(summary["StackName"])
    except (ClientError, BotoCoreError) as e:
        raise error_handler.handle_exception(e, ErrorContext(operation="list_stacks")) from e
    return names


class StackController:
    """Stateless facade over one named stack.

    Every call re-queries the remote service. Modifying operations block
    (when ``wait`` is set) until the stack leaves its ``*_IN_PROGRESS``
    status, reporting stack events to ``event_handler`` along the way, and
    return the literal terminal status. Remote failures are not retried here;
    transport retries are the client's concern.
    """

    def __init__(
        self,
        cloudformation,
        stack_name: str,
        wait: bool = True,
        wait_poll_interval: float = DEFAULT_POLL_INTERVAL,
        wait_timeout: Optional[float] = None,
        event_handler: Optional[EventHandler] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize stack controller.

        Args:
            cloudformation: boto3 CloudFormation client
            stack_name: Name of the stack
            wait: Whether modifying operations block until the stack is stable
            wait_poll_interval: Seconds between status polls
            wait_timeout: Optional deadline for each wait, in seconds
            event_handler: Callback receiving stack events observed while waiting
            sleep: Sleep function (injectable for tests)
            clock: Monotonic clock (injectable for tests)
        """
        self.cloudformation = cloudformation
        self.stack_name = stack_name
        self.wait_enabled = wait
        self.event_handler = event_handler or log_event
        self.poller = Poller(wait_poll_interval, timeout=wait_timeout, sleep=sleep, clock=clock)

    # Remote access

    @contextmanager
    def handling_service_errors(self, operation: str, **context: Any):
        """Convert botocore exceptions raised inside the block into StackupErrors."""
        try:
            yield
        except (ClientError, BotoCoreError) as e:
            raise error_handler.handle_exception(
                e, ErrorContext(stack_name=self.stack_name, operation=operation, **context)
            ) from e

    def _describe_stack(self, stack_ref: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Describe the stack, or return None if it does not exist."""
        try:
            with self.handling_service_errors("describe_stacks"):
                response = self.cloudformation.describe_stacks(StackName=stack_ref or self.stack_name)
        except ServiceError as e:
            if "does not exist" in e.message:
                return None
            raise
        stacks = response.get("Stacks", [])
        return stacks[0] if stacks else None

    def _require_stack(self) -> Dict[str, Any]:
        stack = self._describe_stack()
        if stack is None:
            raise InvalidStateError(
                f"stack {self.stack_name} does not exist",
                context=ErrorContext(stack_name=self.stack_name)
            )
        return stack

    # Read-only views

    @property
    def status(self) -> Optional[str]:
        """Current stack status, or None if the stack does not exist."""
        return self._status_of(self.stack_name)

    def _status_of(self, stack_ref: str) -> Optional[str]:
        stack = self._describe_stack(stack_ref)
        return None if stack is None else stack["StackStatus"]

    @property
    def exists(self) -> bool:
        return self._describe_stack() is not None

    def template(self) -> Any:
        """The stack's original template, parsed."""
        with self.handling_service_errors("get_template"):
            response = self.cloudformation.get_template(
                StackName=self.stack_name, TemplateStage="Original"
            )
        body = response["TemplateBody"]
        if isinstance(body, str):
            return parse_data(body, f"template of {self.stack_name}")
        return body

    def parameters(self) -> Dict[str, str]:
        stack = self._require_stack()
        return {p["ParameterKey"]: p.get("ParameterValue") for p in stack.get("Parameters", [])}

    def tags(self) -> Dict[str, str]:
        stack = self._require_stack()
        return {t["Key"]: t["Value"] for t in stack.get("Tags", [])}

    def outputs(self) -> Dict[str, str]:
        stack = self._require_stack()
        return {o["OutputKey"]: o["OutputValue"] for o in stack.get("Outputs", [])}

    def resources(self) -> List[Dict[str, Any]]:
        """Summaries of the stack's resources."""
        resources = []
        with self.handling_service_errors("list_stack_resources"):
            paginator = self.cloudformation.get_paginator("list_stack_resources")
            for page in paginator.paginate(StackName=self.stack_name):
                resources.extend(page.get("StackResourceSummaries", []))
        return resources

    def inspect(self) -> Dict[str, Any]:
        """Aggregate snapshot of the stack."""
        return {
            "Status": self.status,
            "Parameters": self.parameters(),
            "Tags": self.tags(),
            "Resources": self.resources(),
            "Outputs": self.outputs(),
        }

    def change_set_summaries(self) -> List[ChangeSetSummary]:
        summaries = []
        kwargs = {"StackName": self.stack_name}
        with self.handling_service_errors("list_change_sets"):
            while True:
                response = self.cloudformation.list_change_sets(**kwargs)
                summaries.extend(ChangeSetSummary.from_api(s) for s in response.get("Summaries", []))
                next_token = response.get("NextToken")
                if not next_token:
                    break
                kwargs["NextToken"] = next_token
        return summaries

    def change_set(self, name: str) -> ChangeSet:
        """Handle on the named change-set of this stack."""
        return ChangeSet(self, name)

    # Modifying operations

    def create_or_update(self, options: CreateOrUpdateOptions) -> Optional[str]:
        """Create the stack if absent, otherwise update it.

        Returns:
            The terminal stack status, or None when there was nothing to update
        """
        status = self.status
        if status is not None and StackStatus.parse(status) in ALMOST_DEAD_STATUSES:
            logger.info(f"Stack is in {status}; deleting it before re-creating")
            deleted = self.delete(wait=True)
            if deleted not in (None, StackStatus.DELETE_COMPLETE.value):
                raise InvalidStateError(
                    f"stack {self.stack_name} could not be deleted before re-creating: {deleted}",
                    context=ErrorContext(stack_name=self.stack_name, operation="delete_stack"),
                    suggestions=["Inspect the stack events, fix the failing resources and delete the stack manually"]
                )
            status = None

        if status is None:
            return self._create(options)
        return self._update(options)

    def _common_args(self, options: CreateOrUpdateOptions) -> Dict[str, Any]:
        args: Dict[str, Any] = {"StackName": self.stack_name}
        args.update(options.template_args())
        args["Parameters"] = Parameters(options.parameters).to_api()
        if options.tags is not None:
            args["Tags"] = tags_to_api(options.tags)
        args["Capabilities"] = list(options.capabilities)
        if options.role_arn:
            args["RoleARN"] = options.role_arn
        args.update(options.policy_args())
        return args

    def _create(self, options: CreateOrUpdateOptions) -> Optional[str]:
        if options.use_previous_template:
            raise InvalidStateError(
                f"stack {self.stack_name} does not exist; there is no previous template to use",
                context=ErrorContext(stack_name=self.stack_name, operation="create_stack")
            )
        args = self._common_args(options)
        args["OnFailure"] = options.on_failure
        logger.info(f"Creating stack {self.stack_name}")
        return self.modify_stack("create_stack", lambda: self.cloudformation.create_stack(**args))

    def _update(self, options: CreateOrUpdateOptions) -> Optional[str]:
        args = self._common_args(options)
        logger.info(f"Updating stack {self.stack_name}")
        try:
            return self.modify_stack("update_stack", lambda: self.cloudformation.update_stack(**args))
        except ServiceError as e:
            if NO_UPDATES_MESSAGE in e.message:
                logger.info("No updates are to be performed")
                return None
            if CANNOT_BE_UPDATED.search(e.message):
                raise InvalidStateError(
                    f"stack {self.stack_name} requires manual repair: {e.message}",
                    context=e.context,
                    cause=e
                ) from e
            raise

    def delete(self, wait: Optional[bool] = None) -> Optional[str]:
        """Delete the stack; a missing stack is a no-op returning None."""
        stack = self._describe_stack()
        if stack is None:
            logger.info(f"Stack {self.stack_name} does not exist")
            return None

        # The unique id keeps resolving after the name is gone
        stack_id = stack.get("StackId", self.stack_name)
        logger.info(f"Deleting stack {self.stack_name}")
        status = self.modify_stack(
            "delete_stack",
            lambda: self.cloudformation.delete_stack(StackName=stack_id),
            stack_ref=stack_id,
            wait=wait
        )
        if status is None and (self.wait_enabled if wait is None else wait):
            return StackStatus.DELETE_COMPLETE.value
        return status

    def cancel_update(self) -> Optional[str]:
        """Cancel an in-flight update.

        Raises:
            InvalidStateError: If the stack is not in UPDATE_IN_PROGRESS
        """
        status = self.status
        if status != StackStatus.UPDATE_IN_PROGRESS.value:
            raise InvalidStateError(
                f"stack {self.stack_name} is {status or 'absent'}; no update to cancel",
                context=ErrorContext(stack_name=self.stack_name, operation="cancel_update_stack")
            )
        try:
            return self.modify_stack(
                "cancel_update_stack",
                lambda: self.cloudformation.cancel_update_stack(StackName=self.stack_name)
            )
        except ServiceError as e:
            if CANCEL_NOT_ALLOWED_MESSAGE in e.message:
                logger.info("Update is no longer running; nothing to cancel")
                return None
            raise

    def wait(self) -> Optional[str]:
        """Block until the stack is stable and return its status."""
        watcher = EventWatcher(self.cloudformation, self.stack_name)
        return self._wait_until_stable(watcher, self.stack_name)

    def modify_stack(
        self,
        operation: str,
        request: Callable[[], Any],
        stack_ref: Optional[str] = None,
        wait: Optional[bool] = None
    ) -> Optional[str]:
        """Issue a modifying request, then (optionally) wait for a terminal status."""
        stack_ref = stack_ref or self.stack_name
        wait = self.wait_enabled if wait is None else wait

        if not wait:
            with self.handling_service_errors(operation):
                request()
            return self._status_of(stack_ref)

        # Start watching before the request so no event is missed
        watcher = EventWatcher(self.cloudformation, stack_ref)
        with self.handling_service_errors(operation):
            request()
        return self._wait_until_stable(watcher, stack_ref)

    def _wait_until_stable(self, watcher: EventWatcher, stack_ref: str) -> Optional[str]:
        def tick():
            self._report(watcher)
            status = self._status_of(stack_ref)
            logger.debug(f"stack_status={status}")
            if is_terminal_status(status):
                # Wrapped so an absent stack (None) still ends the loop
                return (status,)
            return None

        with LogContext(logger, stack_name=self.stack_name):
            (status,) = self.poller.run(tick, description=f"stack {self.stack_name}")
            self._report(watcher)
        return status

    def _report(self, watcher: EventWatcher) -> None:
        for event in watcher.new_events():
            self.event_handler(event)
