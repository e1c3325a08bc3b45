import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from stackcraft.cloudformation.api import CloudFormationClient
from stackcraft.cloudformation.diff import (
    Strategy,
    diff_templates,
    format_diff,
    get_deployment_strategy,
)
from stackcraft.cloudformation.models import Stack, StackStatus, Template, TemplateDiff
from stackcraft.cloudformation.waiter import Operation, StackWaiter
from stackcraft.exceptions import NoUpdatesError

LOG = logging.getLogger(__name__)


@dataclass
class DeploymentResult:
    stack_name: str
    strategy: Strategy
    diff: TemplateDiff
    stack: Stack | None = None
    reason: str = ""


class StackDeployer:
    """
    Brings a stack to the state described by a template: creates the stack if it does not exist, updates it if
    the template changed, and does nothing otherwise. Every operation is awaited until the stack is stable.
    """

    def __init__(self, cloudformation: CloudFormationClient, waiter: StackWaiter = None):
        self.cloudformation = cloudformation
        self.waiter = waiter or StackWaiter(
            cloudformation.describe_stack,
            describe_stack_events=cloudformation.describe_stack_events,
        )

    def deploy(
        self,
        stack_name: str,
        template: Template,
        parameters: dict = None,
        capabilities: list[str] = None,
        tags: dict = None,
    ) -> DeploymentResult:
        stack = self.cloudformation.describe_stack(stack_name)

        if stack is not None and stack.status == StackStatus.ROLLBACK_COMPLETE:
            # a stack whose creation was rolled back cannot be updated, only recreated
            LOG.warning("Stack %s is in %s, deleting it before creating it again", stack_name, stack.status)
            self.destroy(stack_name)
            stack = None

        if stack is None:
            diff = diff_templates(None, template)
            since = datetime.now(tz=timezone.utc)
            self.cloudformation.create_stack(
                stack_name, template, parameters=parameters, capabilities=capabilities, tags=tags
            )
            stack = self.waiter.wait_for(stack_name, Operation.create, since=since)
            return DeploymentResult(stack_name, Strategy.create, diff, stack, "Stack does not exist")

        deployed_template = self.cloudformation.get_template(stack_name)
        diff = diff_templates(deployed_template, template)
        strategy = get_deployment_strategy(diff)
        parameters_changed = parameters is not None and dict(stack.parameters) != {
            key: str(value) for key, value in parameters.items()
        }
        if strategy.strategy is Strategy.skip and not parameters_changed:
            LOG.info("Stack %s is up to date", stack_name)
            return DeploymentResult(stack_name, Strategy.skip, diff, stack, strategy.reason)

        LOG.info("Changes of stack %s:\n%s", stack_name, format_diff(diff))
        since = datetime.now(tz=timezone.utc)
        try:
            self.cloudformation.update_stack(
                stack_name, template, parameters=parameters, capabilities=capabilities, tags=tags
            )
        except NoUpdatesError:
            LOG.info("No updates are to be performed on stack %s", stack_name)
            return DeploymentResult(stack_name, Strategy.skip, diff, stack, "No updates are to be performed")

        stack = self.waiter.wait_for(stack_name, Operation.update, since=since)
        strategy_value = strategy.strategy if strategy.strategy is not Strategy.skip else Strategy.update
        reason = strategy.reason if strategy.strategy is not Strategy.skip else "Parameters changed"
        return DeploymentResult(stack_name, strategy_value, diff, stack, reason)

    def destroy(self, stack_name: str, retain_resources: list[str] = None) -> None:
        """
        Deletes the stack and waits until it is gone.

        :raises DeleteFailedError: if a resource could not be deleted, retry with ``retain_resources``
        """
        since = datetime.now(tz=timezone.utc)
        self.cloudformation.delete_stack(stack_name, retain_resources=retain_resources)
        self.waiter.wait_for(stack_name, Operation.delete, since=since)
