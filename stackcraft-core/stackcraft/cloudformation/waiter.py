import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Callable

from stackcraft import config
from stackcraft.cloudformation.models import ALL_STACK_STATUSES, Stack, StackEvent, StackStatus
from stackcraft.exceptions import (
    DeleteFailedError,
    DeploymentCancelledError,
    DeploymentFailureError,
    DeploymentTimeoutError,
)

LOG = logging.getLogger(__name__)


class Operation(Enum):
    create = "create"
    update = "update"
    delete = "delete"


SUCCESS_STATUSES: dict[Operation, frozenset] = {
    Operation.create: frozenset({StackStatus.CREATE_COMPLETE}),
    Operation.update: frozenset({StackStatus.UPDATE_COMPLETE}),
    Operation.delete: frozenset({StackStatus.DELETE_COMPLETE}),
}

TERMINAL_FAILURE_STATUSES = frozenset(
    status for status in ALL_STACK_STATUSES if status.endswith("_FAILED") or status.endswith("ROLLBACK_COMPLETE")
)


def failure_statuses(operation: Operation) -> frozenset:
    return TERMINAL_FAILURE_STATUSES - SUCCESS_STATUSES[operation]


class StackWaiter:
    """
    Polls a stack until the given operation reached a terminal state. Every attempt queries the stack exactly once,
    attempts are separated by a fixed interval, and after ``max_attempts`` unsuccessful queries the waiter gives up.

    The waiter sleeps on its ``cancel_event`` (unless a custom ``sleep`` is given), so setting the event from
    another thread stops the polling right away.
    """

    def __init__(
        self,
        describe_stack: Callable[[str], Stack | None],
        interval: float = None,
        max_attempts: int = None,
        sleep: Callable[[float], None] = None,
        cancel_event: threading.Event = None,
        describe_stack_events: Callable[[str], list[StackEvent]] = None,
        on_event: Callable[[StackEvent], None] = None,
    ):
        self.describe_stack = describe_stack
        self.interval = config.STACK_POLL_INTERVAL if interval is None else interval
        self.max_attempts = config.STACK_POLL_MAX_ATTEMPTS if max_attempts is None else max_attempts
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.cancel_event = cancel_event or threading.Event()
        self.sleep = sleep or self._wait_for_cancel
        self.describe_stack_events = describe_stack_events
        self.on_event = on_event

    def _wait_for_cancel(self, interval: float) -> None:
        self.cancel_event.wait(interval)

    def cancel(self) -> None:
        self.cancel_event.set()

    def wait_for(self, stack_name: str, operation: Operation, since: datetime = None) -> Stack | None:
        """
        Waits until the operation on the given stack completes.

        :param stack_name: name or ID of the stack
        :param operation: the operation that was started on the stack
        :param since: if given, stack events older than this are not reported to ``on_event``
        :return: the stack in its final state, or ``None`` if it was deleted
        :raises DeleteFailedError: if the deletion failed (retry with retained resources)
        :raises DeploymentFailureError: if the stack reached a failure state
        :raises DeploymentTimeoutError: after ``max_attempts`` queries without a terminal state
        :raises DeploymentCancelledError: if the waiter was cancelled
        """
        operation = Operation(operation)
        success = SUCCESS_STATUSES[operation]
        failures = failure_statuses(operation)
        seen_events: set[str] = set()

        for attempt in range(1, self.max_attempts + 1):
            if self.cancel_event.is_set():
                raise DeploymentCancelledError(stack_name)

            stack = self.describe_stack(stack_name)
            if stack is not None:
                self._report_events(stack_name, seen_events, since)

            if stack is None:
                if operation is Operation.delete:
                    LOG.info("Stack %s has been deleted", stack_name)
                    return None
                LOG.debug("Stack %s not found yet (attempt %s/%s)", stack_name, attempt, self.max_attempts)
            else:
                status = stack.status
                LOG.debug("Stack %s is %s (attempt %s/%s)", stack_name, status, attempt, self.max_attempts)
                if status in success:
                    LOG.info("Stack %s reached %s", stack_name, status)
                    return stack
                if status == StackStatus.DELETE_FAILED:
                    raise DeleteFailedError(stack_name, status, stack.status_reason)
                if status in failures:
                    raise DeploymentFailureError(stack_name, status, stack.status_reason)

            if attempt < self.max_attempts:
                self.sleep(self.interval)

        if self.cancel_event.is_set():
            raise DeploymentCancelledError(stack_name)
        raise DeploymentTimeoutError(stack_name, self.max_attempts)

    def _report_events(self, stack_name: str, seen: set[str], since: datetime | None) -> None:
        if not self.on_event or not self.describe_stack_events:
            return
        new_events = []
        # events are returned newest first
        for event in self.describe_stack_events(stack_name):
            if event.event_id in seen:
                continue
            seen.add(event.event_id)
            if since and event.timestamp and event.timestamp < since:
                continue
            new_events.append(event)
        for event in reversed(new_events):
            self.on_event(event)
