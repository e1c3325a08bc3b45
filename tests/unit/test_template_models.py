import dataclasses
import json
from datetime import datetime, timezone

import pytest
import yaml

from stackcraft.cloudformation.models import (
    ALL_STACK_STATUSES,
    Output,
    Parameter,
    Resource,
    Stack,
    StackOutput,
    StackStatus,
    Template,
    load_template,
    parse_template,
)
from stackcraft.exceptions import InvalidResourceError

YAML_TEMPLATE = """
AWSTemplateFormatVersion: "2010-09-09"
Description: short form tags
Parameters:
  Environment:
    Type: String
    Default: production
    AllowedValues: [staging, production]
Conditions:
  IsProduction: !Equals [!Ref Environment, production]
Resources:
  Bucket:
    Type: AWS::S3::Bucket
    DeletionPolicy: Retain
    Properties:
      BucketName: !Sub "${AWS::StackName}-assets"
      Tags:
        - Key: Created
          Value: 2024-05-01
  Policy:
    Type: AWS::S3::BucketPolicy
    DependsOn: Bucket
    Properties:
      Bucket: !Ref Bucket
      Arn: !GetAtt Bucket.Arn
Outputs:
  BucketArn:
    Value: !GetAtt [Bucket, Arn]
    Export:
      Name: !Sub "${AWS::StackName}-bucket-arn"
"""


def _template() -> Template:
    return Template(
        description="my template",
        parameters={"Environment": Parameter(default="production", allowed_values=["staging", "production"])},
        conditions={"IsProduction": {"Fn::Equals": [{"Ref": "Environment"}, "production"]}},
        resources={
            "Bucket": Resource("Bucket", "AWS::S3::Bucket", {"BucketName": "assets"}, deletion_policy="Retain"),
            "Policy": Resource("Policy", "AWS::S3::BucketPolicy", {"Bucket": {"Ref": "Bucket"}}, depends_on="Bucket"),
        },
        outputs={"BucketName": Output({"Ref": "Bucket"}, description="name", export_name="assets-bucket")},
    )


def test_serialize():
    document = _template().serialize()

    assert list(document) == [
        "AWSTemplateFormatVersion",
        "Description",
        "Parameters",
        "Conditions",
        "Resources",
        "Outputs",
    ]
    assert document["AWSTemplateFormatVersion"] == "2010-09-09"
    assert document["Parameters"] == {
        "Environment": {"Type": "String", "Default": "production", "AllowedValues": ["staging", "production"]}
    }
    assert document["Resources"]["Policy"] == {
        "Type": "AWS::S3::BucketPolicy",
        "Properties": {"Bucket": {"Ref": "Bucket"}},
        "DependsOn": ["Bucket"],
    }
    assert document["Outputs"] == {
        "BucketName": {"Value": {"Ref": "Bucket"}, "Description": "name", "Export": {"Name": "assets-bucket"}}
    }


def test_empty_template_has_resources():
    assert Template().serialize() == {"AWSTemplateFormatVersion": "2010-09-09", "Resources": {}}


def test_from_dict_restores_the_template():
    template = _template()
    assert Template.from_dict(template.serialize()) == template


def test_json_and_yaml_rendering():
    template = _template()
    assert json.loads(template.to_json()) == template.serialize()
    assert yaml.safe_load(template.to_yaml()) == template.serialize()
    assert load_template(template.to_yaml()) == template
    assert load_template(template.to_json()) == template


def test_parse_yaml_short_form_tags():
    document = parse_template(YAML_TEMPLATE)

    assert document["Conditions"]["IsProduction"] == {"Fn::Equals": [{"Ref": "Environment"}, "production"]}
    bucket = document["Resources"]["Bucket"]
    assert bucket["Properties"]["BucketName"] == {"Fn::Sub": "${AWS::StackName}-assets"}
    # dates stay strings
    assert bucket["Properties"]["Tags"][0]["Value"] == "2024-05-01"
    policy = document["Resources"]["Policy"]["Properties"]
    assert policy["Bucket"] == {"Ref": "Bucket"}
    assert policy["Arn"] == {"Fn::GetAtt": ["Bucket", "Arn"]}
    assert document["Outputs"]["BucketArn"]["Value"] == {"Fn::GetAtt": ["Bucket", "Arn"]}

    template = load_template(YAML_TEMPLATE)
    assert template.resources["Policy"].depends_on == ("Bucket",)
    assert template.outputs["BucketArn"].export_name == {"Fn::Sub": "${AWS::StackName}-bucket-arn"}


def test_parse_empty_template():
    assert parse_template("") == {}
    assert parse_template(None) == {}


def test_template_is_immutable():
    template = _template()
    with pytest.raises(TypeError):
        template.resources["Other"] = Resource("Other", "AWS::SNS::Topic")
    with pytest.raises(dataclasses.FrozenInstanceError):
        template.description = "changed"


def test_serialize_returns_copies():
    template = _template()
    template.serialize()["Resources"]["Bucket"]["Properties"]["BucketName"] = "changed"
    assert template.resources["Bucket"].properties == {"BucketName": "assets"}


def test_template_does_not_share_state_with_its_input():
    properties = {"BucketName": "assets", "Tags": [{"Key": "team", "Value": "web"}]}
    mappings = {"RegionMap": {"us-east-1": {"ami": "ami-1"}}}
    template = Template(
        mappings=mappings,
        resources={"Bucket": Resource("Bucket", "AWS::S3::Bucket", properties)},
    )

    properties["BucketName"] = "changed"
    properties["Tags"][0]["Value"] = "changed"
    mappings["RegionMap"]["us-east-1"]["ami"] = "ami-2"

    assert template.resources["Bucket"].properties == {
        "BucketName": "assets",
        "Tags": [{"Key": "team", "Value": "web"}],
    }
    assert template.mappings["RegionMap"]["us-east-1"]["ami"] == "ami-1"
    with pytest.raises(TypeError):
        template.resources["Bucket"].properties["BucketName"] = "changed"


class TestResource:
    def test_depends_on_is_deduplicated(self):
        resource = Resource("Api", "AWS::Lambda::Function", depends_on=["Table", "Queue", "Table"])
        assert resource.depends_on == ("Table", "Queue")

    def test_custom_resource_types(self):
        assert Resource("Seed", "Custom::DatabaseSeed").type == "Custom::DatabaseSeed"

    @pytest.mark.parametrize(
        "logical_id,resource_type,kwargs",
        [
            ("", "AWS::S3::Bucket", {}),
            ("My_Bucket", "AWS::S3::Bucket", {}),
            ("Bucket", "", {}),
            ("Bucket", "Google::Storage::Bucket", {}),
            ("Bucket", "AWS::S3::Bucket", {"depends_on": ["Other", "Bucket"]}),
            ("Bucket", "AWS::S3::Bucket", {"update_replace_policy": "Archive"}),
        ],
    )
    def test_invalid(self, logical_id, resource_type, kwargs):
        with pytest.raises(InvalidResourceError):
            Resource(logical_id, resource_type, **kwargs)


def test_stack():
    stack = Stack(
        stack_id="arn:aws:cloudformation:us-east-1:000000000000:stack/my-stack/1",
        stack_name="my-stack",
        status=StackStatus.CREATE_COMPLETE,
        outputs=[StackOutput("BucketName", "my-stack-assets", export_name="assets-bucket")],
        parameters={"Environment": "production"},
        creation_time=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )

    assert stack.get_output("BucketName") == "my-stack-assets"
    assert stack.get_output("Missing") is None
    assert stack.serialize() == {
        "StackId": "arn:aws:cloudformation:us-east-1:000000000000:stack/my-stack/1",
        "StackName": "my-stack",
        "StackStatus": "CREATE_COMPLETE",
        "Parameters": [{"ParameterKey": "Environment", "ParameterValue": "production"}],
        "Outputs": [
            {
                "OutputKey": "BucketName",
                "OutputValue": "my-stack-assets",
                "Description": "",
                "ExportName": "assets-bucket",
            }
        ],
        "CreationTime": "2024-05-01T00:00:00+00:00",
    }


def test_all_stack_statuses():
    assert StackStatus.DELETE_FAILED in ALL_STACK_STATUSES
    assert StackStatus.UPDATE_ROLLBACK_COMPLETE in ALL_STACK_STATUSES
    assert len(ALL_STACK_STATUSES) == len(set(ALL_STACK_STATUSES)) == 23
