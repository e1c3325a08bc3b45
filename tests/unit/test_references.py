from stackcraft.cloudformation.models import Resource
from stackcraft.cloudformation.references import Reference, collect_references, extract_references


def test_ref_and_get_att():
    value = {
        "Bucket": {"Ref": "AssetsBucket"},
        "Arn": {"Fn::GetAtt": ["JobsQueue", "Arn"]},
        "Legacy": {"Fn::GetAtt": "Table.StreamArn"},
    }
    assert collect_references(value) == [
        Reference("AssetsBucket"),
        Reference("JobsQueue", "Arn", "Fn::GetAtt"),
        Reference("Table", "StreamArn", "Fn::GetAtt"),
    ]


def test_pseudo_parameters_are_ignored():
    assert collect_references({"Ref": "AWS::Region"}) == []
    assert collect_references({"Fn::Sub": "${AWS::StackName}-${AWS::Region}"}) == []


def test_sub_tokens():
    value = {"Fn::Sub": "arn:aws:s3:::${AssetsBucket}/${Prefix}/${Queue.Arn} ${!Literal}"}
    assert collect_references(value) == [
        Reference("AssetsBucket", None, "Fn::Sub"),
        Reference("Prefix", None, "Fn::Sub"),
        Reference("Queue", "Arn", "Fn::Sub"),
    ]


def test_sub_with_variables():
    value = {"Fn::Sub": ["${Name}-${Suffix}", {"Name": {"Ref": "AssetsBucket"}}]}
    assert collect_references(value) == [
        Reference("Suffix", None, "Fn::Sub"),
        Reference("AssetsBucket"),
    ]


def test_nested_values():
    value = {
        "PolicyDocument": {
            "Statement": [
                {"Resource": {"Fn::Join": ["", [{"Fn::GetAtt": ["Bucket", "Arn"]}, "/*"]]}},
                {"Resource": [{"Ref": "Topic"}, "arn:aws:sns:::other"]},
            ]
        }
    }
    assert {reference.target for reference in collect_references(value)} == {"Bucket", "Topic"}


def test_ref_next_to_other_keys_is_not_an_intrinsic():
    # only single-key dicts are intrinsic functions, other dicts are searched recursively
    value = {"Ref": "Bucket", "Other": {"Ref": "Queue"}}
    assert collect_references(value) == [Reference("Queue")]


def test_extract_references():
    resource = Resource(
        "QueuePolicy",
        "AWS::SQS::QueuePolicy",
        {
            "Queues": [{"Ref": "JobsQueue"}],
            "Resource": {"Fn::GetAtt": ["JobsQueue", "Arn"]},
            "Env": {"Ref": "Environment"},
        },
    )
    assert extract_references(resource) == {"JobsQueue", "Environment"}
