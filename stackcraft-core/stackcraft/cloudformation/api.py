import logging
from datetime import datetime
from typing import Any

from stackcraft.aws.client import SigningHttpClient
from stackcraft.aws.protocol import members
from stackcraft.aws.signing import Credentials
from stackcraft.cloudformation.models import (
    Stack,
    StackEvent,
    StackOutput,
    Template,
    load_template,
)
from stackcraft.constants import CLOUDFORMATION_API_VERSION
from stackcraft.exceptions import NoUpdatesError, TransportError

LOG = logging.getLogger(__name__)

NO_UPDATES_MESSAGE = "No updates are to be performed"
DOES_NOT_EXIST_MESSAGE = "does not exist"


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        LOG.debug("Unable to parse timestamp %r", value)
        return None


def _to_parameter_list(parameters: dict | None) -> list[dict] | None:
    if not parameters:
        return None
    return [{"ParameterKey": key, "ParameterValue": str(value)} for key, value in parameters.items()]


def _to_tag_list(tags: dict | None) -> list[dict] | None:
    if not tags:
        return None
    return [{"Key": key, "Value": str(value)} for key, value in tags.items()]


def _template_body(template: Template | str) -> str:
    if isinstance(template, Template):
        return template.to_json(indent=None)
    return template


def parse_stack(data: dict) -> Stack:
    return Stack(
        stack_id=data.get("StackId"),
        stack_name=data.get("StackName"),
        status=data.get("StackStatus"),
        status_reason=data.get("StackStatusReason"),
        outputs=[
            StackOutput(
                key=output.get("OutputKey"),
                value=output.get("OutputValue"),
                description=output.get("Description"),
                export_name=output.get("ExportName"),
            )
            for output in members(data.get("Outputs"))
        ],
        parameters={
            parameter.get("ParameterKey"): parameter.get("ParameterValue")
            for parameter in members(data.get("Parameters"))
        },
        creation_time=_parse_timestamp(data.get("CreationTime")),
        last_updated_time=_parse_timestamp(data.get("LastUpdatedTime")),
    )


def parse_stack_event(data: dict) -> StackEvent:
    return StackEvent(
        event_id=data.get("EventId"),
        stack_name=data.get("StackName"),
        logical_resource_id=data.get("LogicalResourceId"),
        resource_type=data.get("ResourceType"),
        resource_status=data.get("ResourceStatus"),
        timestamp=_parse_timestamp(data.get("Timestamp")),
        resource_status_reason=data.get("ResourceStatusReason"),
        physical_resource_id=data.get("PhysicalResourceId"),
    )


class CloudFormationClient:
    """
    The CloudFormation operations needed to deploy a stack, sent over the query protocol (API version
    ``2010-05-15``) through a ``SigningHttpClient``.
    """

    def __init__(self, client: SigningHttpClient):
        self.client = client

    @classmethod
    def create(
        cls, region: str = None, credentials: Credentials = None, endpoint_url: str = None
    ) -> "CloudFormationClient":
        return cls(
            SigningHttpClient.for_service(
                "cloudformation", region=region, credentials=credentials, endpoint_url=endpoint_url
            )
        )

    def _call(self, action: str, params: dict = None) -> dict:
        response = self.client.post_query(action, CLOUDFORMATION_API_VERSION, params)
        if not isinstance(response, dict):
            return {}
        return (response.get(f"{action}Response") or {}).get(f"{action}Result") or {}

    def create_stack(
        self,
        stack_name: str,
        template: Template | str,
        parameters: dict = None,
        capabilities: list[str] = None,
        tags: dict = None,
    ) -> str:
        """Starts the creation of a stack and returns its ID."""
        LOG.info("Creating stack %s", stack_name)
        result = self._call(
            "CreateStack",
            {
                "StackName": stack_name,
                "TemplateBody": _template_body(template),
                "Parameters": _to_parameter_list(parameters),
                "Capabilities": capabilities or None,
                "Tags": _to_tag_list(tags),
            },
        )
        return result.get("StackId")

    def update_stack(
        self,
        stack_name: str,
        template: Template | str,
        parameters: dict = None,
        capabilities: list[str] = None,
        tags: dict = None,
    ) -> str:
        """
        Starts the update of a stack and returns its ID.

        :raises NoUpdatesError: if the template and the parameters equal the deployed ones
        """
        LOG.info("Updating stack %s", stack_name)
        try:
            result = self._call(
                "UpdateStack",
                {
                    "StackName": stack_name,
                    "TemplateBody": _template_body(template),
                    "Parameters": _to_parameter_list(parameters),
                    "Capabilities": capabilities or None,
                    "Tags": _to_tag_list(tags),
                },
            )
        except TransportError as e:
            if NO_UPDATES_MESSAGE in (e.message or ""):
                raise NoUpdatesError(e.status_code, e.code, e.message, e.body) from e
            raise
        return result.get("StackId")

    def delete_stack(self, stack_name: str, retain_resources: list[str] = None) -> None:
        """Starts the deletion of a stack, optionally keeping the given resources (after a ``DELETE_FAILED``)."""
        LOG.info("Deleting stack %s", stack_name)
        self._call(
            "DeleteStack",
            {"StackName": stack_name, "RetainResources": list(retain_resources) if retain_resources else None},
        )

    def describe_stack(self, stack_name: str) -> Stack | None:
        """Returns the current state of the stack, or ``None`` if it does not exist."""
        try:
            result = self._call("DescribeStacks", {"StackName": stack_name})
        except TransportError as e:
            if DOES_NOT_EXIST_MESSAGE in (e.message or ""):
                return None
            raise
        stacks = members(result.get("Stacks"))
        if not stacks:
            return None
        return parse_stack(stacks[0])

    def describe_stack_events(self, stack_name: str) -> list[StackEvent]:
        """Returns the most recent events of the stack, newest first."""
        try:
            result = self._call("DescribeStackEvents", {"StackName": stack_name})
        except TransportError as e:
            if DOES_NOT_EXIST_MESSAGE in (e.message or ""):
                return []
            raise
        return [parse_stack_event(event) for event in members(result.get("StackEvents"))]

    def get_template(self, stack_name: str) -> Template | None:
        """Returns the template the stack was deployed with, or ``None`` if the stack does not exist."""
        try:
            result = self._call("GetTemplate", {"StackName": stack_name, "TemplateStage": "Original"})
        except TransportError as e:
            if DOES_NOT_EXIST_MESSAGE in (e.message or ""):
                return None
            raise
        body = result.get("TemplateBody")
        if not body:
            return None
        return load_template(body)

    def get_stack_outputs(self, stack_name: str) -> dict[str, Any]:
        stack = self.describe_stack(stack_name)
        if not stack:
            return {}
        return {output.key: output.value for output in stack.outputs}

    def validate_template(self, template: Template | str) -> dict:
        """Lets CloudFormation validate the template; returns its declared parameters and required capabilities."""
        result = self._call("ValidateTemplate", {"TemplateBody": _template_body(template)})
        return {
            "description": result.get("Description"),
            "parameters": [parameter.get("ParameterKey") for parameter in members(result.get("Parameters"))],
            "capabilities": members(result.get("Capabilities")),
        }
