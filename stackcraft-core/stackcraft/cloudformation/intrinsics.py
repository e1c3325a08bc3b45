"""Helpers to write CloudFormation intrinsic functions as plain template values."""
from typing import Any


def ref(logical_id: str) -> dict:
    return {"Ref": logical_id}


def get_att(logical_id: str, attribute: str) -> dict:
    return {"Fn::GetAtt": [logical_id, attribute]}


def sub(template: str, variables: dict = None) -> dict:
    if variables:
        return {"Fn::Sub": [template, variables]}
    return {"Fn::Sub": template}


def join(delimiter: str, values: list) -> dict:
    return {"Fn::Join": [delimiter, values]}


def equals(left: Any, right: Any) -> dict:
    return {"Fn::Equals": [left, right]}


def not_(condition: Any) -> dict:
    return {"Fn::Not": [condition]}


def if_(condition_name: str, if_true: Any, if_false: Any) -> dict:
    return {"Fn::If": [condition_name, if_true, if_false]}


def s3_bucket_arn(bucket_name: Any) -> dict:
    return sub("arn:${AWS::Partition}:s3:::${Bucket}", {"Bucket": bucket_name})
