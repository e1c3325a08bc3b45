from datetime import datetime, timezone

import pytest
from pytest_httpserver import HTTPServer
from werkzeug import Request, Response

from stackcraft.aws.client import SigningHttpClient
from stackcraft.cloudformation.api import CloudFormationClient
from stackcraft.cloudformation.models import Resource, StackStatus, Template
from stackcraft.exceptions import NoUpdatesError, TransportError

XMLNS = "http://cloudformation.amazonaws.com/doc/2010-05-15/"

DESCRIBE_STACKS = f"""<DescribeStacksResponse xmlns="{XMLNS}">
  <DescribeStacksResult>
    <Stacks>
      <member>
        <StackId>arn:aws:cloudformation:us-east-1:000000000000:stack/my-stack/1</StackId>
        <StackName>my-stack</StackName>
        <StackStatus>UPDATE_ROLLBACK_COMPLETE</StackStatus>
        <StackStatusReason>Resource creation cancelled</StackStatusReason>
        <CreationTime>2024-05-01T08:00:00.123Z</CreationTime>
        <Parameters>
          <member>
            <ParameterKey>Environment</ParameterKey>
            <ParameterValue>production</ParameterValue>
          </member>
        </Parameters>
        <Outputs>
          <member>
            <OutputKey>BucketName</OutputKey>
            <OutputValue>my-stack-assets</OutputValue>
            <Description>assets bucket name</Description>
          </member>
          <member>
            <OutputKey>QueueUrl</OutputKey>
            <OutputValue>https://sqs.us-east-1.amazonaws.com/000000000000/jobs</OutputValue>
          </member>
        </Outputs>
      </member>
    </Stacks>
  </DescribeStacksResult>
</DescribeStacksResponse>"""

DESCRIBE_STACK_EVENTS = f"""<DescribeStackEventsResponse xmlns="{XMLNS}">
  <DescribeStackEventsResult>
    <StackEvents>
      <member>
        <EventId>e2</EventId>
        <StackName>my-stack</StackName>
        <LogicalResourceId>Bucket</LogicalResourceId>
        <ResourceType>AWS::S3::Bucket</ResourceType>
        <ResourceStatus>CREATE_FAILED</ResourceStatus>
        <ResourceStatusReason>Bucket already exists</ResourceStatusReason>
        <Timestamp>2024-05-01T08:00:02Z</Timestamp>
      </member>
      <member>
        <EventId>e1</EventId>
        <StackName>my-stack</StackName>
        <LogicalResourceId>Bucket</LogicalResourceId>
        <ResourceType>AWS::S3::Bucket</ResourceType>
        <ResourceStatus>CREATE_IN_PROGRESS</ResourceStatus>
        <Timestamp>2024-05-01T08:00:01Z</Timestamp>
      </member>
    </StackEvents>
  </DescribeStackEventsResult>
</DescribeStackEventsResponse>"""

GET_TEMPLATE = f"""<GetTemplateResponse xmlns="{XMLNS}">
  <GetTemplateResult>
    <TemplateBody>{{"AWSTemplateFormatVersion": "2010-09-09", "Resources": {{"Topic": {{"Type": "AWS::SNS::Topic"}}}}}}</TemplateBody>
  </GetTemplateResult>
</GetTemplateResponse>"""

CREATE_STACK = f"""<CreateStackResponse xmlns="{XMLNS}">
  <CreateStackResult>
    <StackId>arn:aws:cloudformation:us-east-1:000000000000:stack/my-stack/1</StackId>
  </CreateStackResult>
</CreateStackResponse>"""

DELETE_STACK = f"""<DeleteStackResponse xmlns="{XMLNS}">
  <ResponseMetadata><RequestId>1</RequestId></ResponseMetadata>
</DeleteStackResponse>"""

VALIDATE_TEMPLATE = f"""<ValidateTemplateResponse xmlns="{XMLNS}">
  <ValidateTemplateResult>
    <Description>my template</Description>
    <Capabilities>
      <member>CAPABILITY_IAM</member>
    </Capabilities>
    <Parameters>
      <member>
        <ParameterKey>Environment</ParameterKey>
        <DefaultValue>production</DefaultValue>
      </member>
    </Parameters>
  </ValidateTemplateResult>
</ValidateTemplateResponse>"""


def _error(message: str, code: str = "ValidationError") -> str:
    return (
        f'<ErrorResponse xmlns="{XMLNS}"><Error><Type>Sender</Type>'
        f"<Code>{code}</Code><Message>{message}</Message></Error></ErrorResponse>"
    )


class FakeCloudFormation:
    """Answers query protocol calls with canned responses, by action."""

    def __init__(self):
        self.responses: dict[str, tuple[int, str]] = {}
        self.requests: list[dict] = []

    def respond(self, action: str, body: str, status: int = 200):
        self.responses[action] = (status, body)

    def handle(self, request: Request) -> Response:
        form = request.form.to_dict()
        self.requests.append(form)
        status, body = self.responses[form["Action"]]
        return Response(body, status=status, content_type="text/xml")


@pytest.fixture
def fake_cloudformation(httpserver: HTTPServer) -> FakeCloudFormation:
    fake = FakeCloudFormation()
    httpserver.expect_request("/", method="POST").respond_with_handler(fake.handle)
    return fake


@pytest.fixture
def cloudformation(httpserver: HTTPServer, cloudformation_signer) -> CloudFormationClient:
    return CloudFormationClient(SigningHttpClient(cloudformation_signer, endpoint_url=httpserver.url_for("/")))


def test_describe_stack(fake_cloudformation, cloudformation):
    fake_cloudformation.respond("DescribeStacks", DESCRIBE_STACKS)

    stack = cloudformation.describe_stack("my-stack")

    assert stack.stack_name == "my-stack"
    assert stack.status == StackStatus.UPDATE_ROLLBACK_COMPLETE
    assert stack.status_reason == "Resource creation cancelled"
    assert stack.parameters == {"Environment": "production"}
    assert [output.key for output in stack.outputs] == ["BucketName", "QueueUrl"]
    assert stack.outputs[0].description == "assets bucket name"
    assert stack.creation_time == datetime(2024, 5, 1, 8, 0, 0, 123000, tzinfo=timezone.utc)
    assert fake_cloudformation.requests == [
        {"Action": "DescribeStacks", "Version": "2010-05-15", "StackName": "my-stack"}
    ]


def test_describe_missing_stack(fake_cloudformation, cloudformation):
    fake_cloudformation.respond("DescribeStacks", _error("Stack with id my-stack does not exist"), status=400)
    assert cloudformation.describe_stack("my-stack") is None


def test_describe_stack_propagates_other_errors(fake_cloudformation, cloudformation):
    fake_cloudformation.respond("DescribeStacks", _error("Rate exceeded", code="Throttling"), status=400)

    with pytest.raises(TransportError) as e:
        cloudformation.describe_stack("my-stack")
    assert e.value.code == "Throttling"


def test_get_stack_outputs(fake_cloudformation, cloudformation):
    fake_cloudformation.respond("DescribeStacks", DESCRIBE_STACKS)
    assert cloudformation.get_stack_outputs("my-stack") == {
        "BucketName": "my-stack-assets",
        "QueueUrl": "https://sqs.us-east-1.amazonaws.com/000000000000/jobs",
    }


def test_describe_stack_events(fake_cloudformation, cloudformation):
    fake_cloudformation.respond("DescribeStackEvents", DESCRIBE_STACK_EVENTS)

    events = cloudformation.describe_stack_events("my-stack")

    assert [event.event_id for event in events] == ["e2", "e1"]
    assert events[0].resource_status_reason == "Bucket already exists"
    assert events[1].timestamp == datetime(2024, 5, 1, 8, 0, 1, tzinfo=timezone.utc)


def test_describe_stack_events_of_missing_stack(fake_cloudformation, cloudformation):
    fake_cloudformation.respond("DescribeStackEvents", _error("Stack [my-stack] does not exist"), status=400)
    assert cloudformation.describe_stack_events("my-stack") == []


def test_create_stack(fake_cloudformation, cloudformation):
    fake_cloudformation.respond("CreateStack", CREATE_STACK)
    template = Template(resources={"Topic": Resource("Topic", "AWS::SNS::Topic")})

    stack_id = cloudformation.create_stack(
        "my-stack",
        template,
        parameters={"Environment": "production", "Replicas": 2},
        capabilities=["CAPABILITY_IAM"],
        tags={"team": "platform"},
    )

    assert stack_id == "arn:aws:cloudformation:us-east-1:000000000000:stack/my-stack/1"
    assert fake_cloudformation.requests == [
        {
            "Action": "CreateStack",
            "Version": "2010-05-15",
            "StackName": "my-stack",
            "TemplateBody": template.to_json(indent=None),
            "Parameters.member.1.ParameterKey": "Environment",
            "Parameters.member.1.ParameterValue": "production",
            "Parameters.member.2.ParameterKey": "Replicas",
            "Parameters.member.2.ParameterValue": "2",
            "Capabilities.member.1": "CAPABILITY_IAM",
            "Tags.member.1.Key": "team",
            "Tags.member.1.Value": "platform",
        }
    ]


def test_update_stack_without_changes(fake_cloudformation, cloudformation):
    fake_cloudformation.respond("UpdateStack", _error("No updates are to be performed."), status=400)

    with pytest.raises(NoUpdatesError) as e:
        cloudformation.update_stack("my-stack", '{"Resources": {}}')
    assert e.value.code == "ValidationError"
    assert e.value.status_code == 400


def test_update_stack_failure(fake_cloudformation, cloudformation):
    fake_cloudformation.respond("UpdateStack", _error("Template format error: unresolved reference"), status=400)

    with pytest.raises(TransportError) as e:
        cloudformation.update_stack("my-stack", '{"Resources": {}}')
    assert not isinstance(e.value, NoUpdatesError)


def test_delete_stack_retaining_resources(fake_cloudformation, cloudformation):
    fake_cloudformation.respond("DeleteStack", DELETE_STACK)

    cloudformation.delete_stack("my-stack")
    cloudformation.delete_stack("my-stack", retain_resources=["AssetsBucket", "BackupsBucket"])

    assert fake_cloudformation.requests[0] == {
        "Action": "DeleteStack",
        "Version": "2010-05-15",
        "StackName": "my-stack",
    }
    assert fake_cloudformation.requests[1] == {
        "Action": "DeleteStack",
        "Version": "2010-05-15",
        "StackName": "my-stack",
        "RetainResources.member.1": "AssetsBucket",
        "RetainResources.member.2": "BackupsBucket",
    }


def test_get_template(fake_cloudformation, cloudformation):
    fake_cloudformation.respond("GetTemplate", GET_TEMPLATE)

    template = cloudformation.get_template("my-stack")

    assert list(template.resources) == ["Topic"]
    assert fake_cloudformation.requests[0]["TemplateStage"] == "Original"


def test_get_template_of_missing_stack(fake_cloudformation, cloudformation):
    fake_cloudformation.respond("GetTemplate", _error("Stack with id my-stack does not exist"), status=400)
    assert cloudformation.get_template("my-stack") is None


def test_validate_template(fake_cloudformation, cloudformation):
    fake_cloudformation.respond("ValidateTemplate", VALIDATE_TEMPLATE)

    result = cloudformation.validate_template('{"Resources": {}}')

    assert result == {
        "description": "my template",
        "parameters": ["Environment"],
        "capabilities": ["CAPABILITY_IAM"],
    }
