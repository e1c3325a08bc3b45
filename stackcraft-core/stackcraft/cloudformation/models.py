import copy
import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from stackcraft.constants import RESOURCE_TYPE_PREFIXES, TEMPLATE_FORMAT_VERSION
from stackcraft.exceptions import InvalidResourceError

LOGICAL_ID_REGEX = re.compile(r"^[A-Za-z0-9]+$")


class StackStatus(str):
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


ALL_STACK_STATUSES = tuple(
    value for name, value in vars(StackStatus).items() if name.isupper() and isinstance(value, str)
)


class DeletionPolicy(Enum):
    Delete = "Delete"
    Retain = "Retain"
    Snapshot = "Snapshot"


def _to_policy(logical_id: str, attribute: str, value) -> DeletionPolicy | None:
    if value is None or isinstance(value, DeletionPolicy):
        return value
    try:
        return DeletionPolicy(value)
    except ValueError:
        raise InvalidResourceError(
            f"Invalid {attribute} {value!r} for resource {logical_id}, "
            f"expected one of {[p.value for p in DeletionPolicy]}"
        )


class AwsResource(ABC):
    @abstractmethod
    def serialize(self) -> dict: ...


@dataclass(frozen=True)
class Resource(AwsResource):
    logical_id: str
    type: str
    properties: Mapping[str, Any] = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()
    condition: str | None = None
    deletion_policy: DeletionPolicy | None = None
    update_replace_policy: DeletionPolicy | None = None

    def __post_init__(self):
        if not isinstance(self.logical_id, str) or not LOGICAL_ID_REGEX.match(self.logical_id):
            raise InvalidResourceError(
                f"Invalid logical ID {self.logical_id!r}: only alphanumeric characters are allowed"
            )
        if not isinstance(self.type, str) or not self.type.startswith(RESOURCE_TYPE_PREFIXES):
            raise InvalidResourceError(
                f"Invalid type {self.type!r} of resource {self.logical_id}: "
                f"must start with one of {', '.join(RESOURCE_TYPE_PREFIXES)}"
            )
        depends_on = [self.depends_on] if isinstance(self.depends_on, str) else list(self.depends_on or ())
        if self.logical_id in depends_on:
            raise InvalidResourceError(f"Resource {self.logical_id} cannot depend on itself")
        # ordered set
        object.__setattr__(self, "depends_on", tuple(dict.fromkeys(depends_on)))
        # read-only view on a private deep copy
        object.__setattr__(self, "properties", MappingProxyType(copy.deepcopy(dict(self.properties or {}))))
        object.__setattr__(
            self, "deletion_policy", _to_policy(self.logical_id, "DeletionPolicy", self.deletion_policy)
        )
        object.__setattr__(
            self,
            "update_replace_policy",
            _to_policy(self.logical_id, "UpdateReplacePolicy", self.update_replace_policy),
        )

    def serialize(self) -> dict:
        result = {"Type": self.type}
        if self.properties:
            result["Properties"] = copy.deepcopy(dict(self.properties))
        if self.depends_on:
            result["DependsOn"] = list(self.depends_on)
        if self.condition:
            result["Condition"] = self.condition
        if self.deletion_policy:
            result["DeletionPolicy"] = self.deletion_policy.value
        if self.update_replace_policy:
            result["UpdateReplacePolicy"] = self.update_replace_policy.value
        return result

    @classmethod
    def from_dict(cls, logical_id: str, data: dict) -> "Resource":
        return cls(
            logical_id=logical_id,
            type=data.get("Type"),
            properties=data.get("Properties") or {},
            depends_on=data.get("DependsOn") or (),
            condition=data.get("Condition"),
            deletion_policy=data.get("DeletionPolicy"),
            update_replace_policy=data.get("UpdateReplacePolicy"),
        )


# attribute name -> template key of a parameter declaration
_PARAMETER_KEYS = {
    "type": "Type",
    "default": "Default",
    "description": "Description",
    "allowed_values": "AllowedValues",
    "allowed_pattern": "AllowedPattern",
    "min_length": "MinLength",
    "max_length": "MaxLength",
    "min_value": "MinValue",
    "max_value": "MaxValue",
    "no_echo": "NoEcho",
    "constraint_description": "ConstraintDescription",
}


@dataclass(frozen=True)
class Parameter(AwsResource):
    type: str = "String"
    default: Any = None
    description: str | None = None
    allowed_values: list | None = None
    allowed_pattern: str | None = None
    min_length: int | None = None
    max_length: int | None = None
    min_value: float | None = None
    max_value: float | None = None
    no_echo: bool | None = None
    constraint_description: str | None = None

    def serialize(self) -> dict:
        result = {}
        for attr, key in _PARAMETER_KEYS.items():
            value = getattr(self, attr)
            if value is not None:
                result[key] = copy.deepcopy(value)
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "Parameter":
        kwargs = {attr: data[key] for attr, key in _PARAMETER_KEYS.items() if key in data}
        return cls(**kwargs)


@dataclass(frozen=True)
class Output(AwsResource):
    value: Any
    description: str | None = None
    export_name: Any = None
    condition: str | None = None

    def serialize(self) -> dict:
        result = {"Value": copy.deepcopy(self.value)}
        if self.description:
            result["Description"] = self.description
        if self.export_name:
            result["Export"] = {"Name": copy.deepcopy(self.export_name)}
        if self.condition:
            result["Condition"] = self.condition
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "Output":
        return cls(
            value=copy.deepcopy(data.get("Value")),
            description=data.get("Description"),
            export_name=copy.deepcopy((data.get("Export") or {}).get("Name")),
            condition=data.get("Condition"),
        )


@dataclass(frozen=True)
class Template(AwsResource):
    """
    A complete CloudFormation template. All maps are read-only views, a template never changes after it is built.
    """

    description: str | None = None
    parameters: Mapping[str, Parameter] = field(default_factory=dict)
    mappings: Mapping[str, Any] = field(default_factory=dict)
    conditions: Mapping[str, Any] = field(default_factory=dict)
    resources: Mapping[str, Resource] = field(default_factory=dict)
    outputs: Mapping[str, Output] = field(default_factory=dict)

    def __post_init__(self):
        for name in ("parameters", "resources", "outputs"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name) or {})))
        for name in ("mappings", "conditions"):
            object.__setattr__(self, name, MappingProxyType(copy.deepcopy(dict(getattr(self, name) or {}))))

    def serialize(self) -> dict:
        result = {"AWSTemplateFormatVersion": TEMPLATE_FORMAT_VERSION}
        if self.description:
            result["Description"] = self.description
        if self.parameters:
            result["Parameters"] = {key: param.serialize() for key, param in self.parameters.items()}
        if self.mappings:
            result["Mappings"] = copy.deepcopy(dict(self.mappings))
        if self.conditions:
            result["Conditions"] = copy.deepcopy(dict(self.conditions))
        result["Resources"] = {key: resource.serialize() for key, resource in self.resources.items()}
        if self.outputs:
            result["Outputs"] = {key: output.serialize() for key, output in self.outputs.items()}
        return result

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.serialize(), indent=indent)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.serialize(), sort_keys=False, default_flow_style=False)

    @classmethod
    def from_dict(cls, document: dict) -> "Template":
        document = document or {}
        return cls(
            description=document.get("Description"),
            parameters={
                key: Parameter.from_dict(value or {})
                for key, value in (document.get("Parameters") or {}).items()
            },
            mappings=document.get("Mappings") or {},
            conditions=document.get("Conditions") or {},
            resources={
                key: Resource.from_dict(key, value or {})
                for key, value in (document.get("Resources") or {}).items()
            },
            outputs={
                key: Output.from_dict(value or {}) for key, value in (document.get("Outputs") or {}).items()
            },
        )


class TemplateLoader(yaml.SafeLoader):
    """Safe YAML loader which keeps date strings as strings and understands the CloudFormation short-form tags."""


TemplateLoader.yaml_implicit_resolvers = {
    k: [r for r in v if r[0] != "tag:yaml.org,2002:timestamp"]
    for k, v in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _construct_intrinsic(loader: yaml.SafeLoader, tag_suffix: str, node: yaml.Node) -> dict:
    if isinstance(node, yaml.ScalarNode):
        value = loader.construct_scalar(node)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_mapping(node, deep=True)

    if tag_suffix == "Ref":
        return {"Ref": value}
    if tag_suffix == "GetAtt" and isinstance(value, str):
        value = value.split(".", 1)
    if tag_suffix == "Condition":
        return {"Condition": value}
    return {f"Fn::{tag_suffix}": value}


TemplateLoader.add_multi_constructor("!", _construct_intrinsic)


def parse_template(body: str) -> dict:
    """
    Parses a template document (JSON or YAML) into a plain dict.

    :param body: the template body
    :return: the template document
    """
    body = (body or "").strip()
    if not body:
        return {}
    if body.startswith("{"):
        return json.loads(body)
    return yaml.load(body, Loader=TemplateLoader) or {}


def load_template(body: str) -> Template:
    return Template.from_dict(parse_template(body))


@dataclass(frozen=True)
class TemplateDiff:
    added: frozenset = frozenset()
    modified: frozenset = frozenset()
    deleted: frozenset = frozenset()
    unchanged: frozenset = frozenset()
    parameters_changed: bool = False
    outputs_changed: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(
            self.added or self.modified or self.deleted or self.parameters_changed or self.outputs_changed
        )


@dataclass
class StackOutput(AwsResource):
    key: str
    value: Any
    description: str | None = None
    export_name: str | None = None

    def serialize(self) -> dict:
        result = {"OutputKey": self.key, "OutputValue": self.value, "Description": self.description or ""}
        if self.export_name:
            result["ExportName"] = self.export_name
        return result


@dataclass
class Stack(AwsResource):
    stack_id: str
    stack_name: str
    status: str
    status_reason: str | None = None
    outputs: list[StackOutput] = field(default_factory=list)
    parameters: dict[str, str] = field(default_factory=dict)
    creation_time: datetime | None = None
    last_updated_time: datetime | None = None

    def serialize(self) -> dict:
        result = {
            "StackId": self.stack_id,
            "StackName": self.stack_name,
            "StackStatus": self.status,
            "Parameters": [
                {"ParameterKey": key, "ParameterValue": value} for key, value in self.parameters.items()
            ],
            "Outputs": [output.serialize() for output in self.outputs],
        }
        if self.status_reason:
            result["StackStatusReason"] = self.status_reason
        if self.creation_time:
            result["CreationTime"] = self.creation_time.isoformat()
        if self.last_updated_time:
            result["LastUpdatedTime"] = self.last_updated_time.isoformat()
        return result

    def get_output(self, key: str) -> Any:
        for output in self.outputs:
            if output.key == key:
                return output.value
        return None


@dataclass
class StackEvent(AwsResource):
    event_id: str
    stack_name: str
    logical_resource_id: str
    resource_type: str
    resource_status: str
    timestamp: datetime | None = None
    resource_status_reason: str | None = None
    physical_resource_id: str | None = None

    def serialize(self) -> dict:
        result = {
            "EventId": self.event_id,
            "StackName": self.stack_name,
            "LogicalResourceId": self.logical_resource_id,
            "ResourceType": self.resource_type,
            "ResourceStatus": self.resource_status,
        }
        if self.timestamp:
            result["Timestamp"] = self.timestamp.isoformat()
        if self.resource_status_reason:
            result["ResourceStatusReason"] = self.resource_status_reason
        if self.physical_resource_id:
            result["PhysicalResourceId"] = self.physical_resource_id
        return result
