"""
Comparison of two template revisions, and the classification of the changes into a deployment strategy.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any

from stackcraft.cloudformation.models import Resource, Template, TemplateDiff

# properties whose change makes CloudFormation replace (not update) the resource, by resource type. Types missing
# here are assumed to be updatable in place.
REPLACEMENT_PROPERTIES: dict[str, frozenset] = {
    "AWS::S3::Bucket": frozenset({"BucketName"}),
    "AWS::EC2::Instance": frozenset({"ImageId", "InstanceType", "KeyName"}),
    "AWS::RDS::DBInstance": frozenset({"DBInstanceIdentifier", "Engine"}),
    "AWS::DynamoDB::Table": frozenset({"TableName", "KeySchema"}),
    "AWS::Lambda::Function": frozenset({"FunctionName"}),
    "AWS::ECS::Service": frozenset({"ServiceName"}),
    "AWS::ElasticLoadBalancingV2::LoadBalancer": frozenset({"Name", "Type"}),
}


class Strategy(Enum):
    create = "create"
    skip = "skip"
    update = "update"
    replace = "replace"


@dataclass(frozen=True)
class DeploymentStrategy:
    strategy: Strategy
    reason: str


@dataclass(frozen=True)
class ChangeCategories:
    safe: frozenset
    caution: frozenset
    dangerous: frozenset


@dataclass(frozen=True)
class DiffStats:
    total: int
    added: int
    modified: int
    deleted: int
    unchanged: int
    change_percentage: float


@dataclass(frozen=True)
class PropertyChange:
    path: str
    old_value: Any
    new_value: Any
    requires_replacement: bool


def deep_equal(left: Any, right: Any) -> bool:
    """
    Structural equality of two JSON-like values: dicts are compared regardless of key order, lists element by
    element, and booleans never equal numbers (``1`` and ``True`` differ).
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, dict) and isinstance(right, dict):
        if left.keys() != right.keys():
            return False
        return all(deep_equal(value, right[key]) for key, value in left.items())
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        if len(left) != len(right):
            return False
        return all(deep_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, (dict, list, tuple)) or isinstance(right, (dict, list, tuple)):
        return False
    return left == right


def _serialize_map(values) -> dict:
    return {key: value.serialize() for key, value in values.items()}


def diff_templates(old: Template | None, new: Template) -> TemplateDiff:
    """
    Partitions the resource IDs of both templates into added, deleted, modified and unchanged ones. A missing old
    template is treated as an empty one.
    """
    old = old or Template()
    old_resources = old.resources
    new_resources = new.resources

    added = {key for key in new_resources if key not in old_resources}
    deleted = {key for key in old_resources if key not in new_resources}
    modified = set()
    unchanged = set()
    for key in new_resources:
        if key not in old_resources:
            continue
        if deep_equal(old_resources[key].serialize(), new_resources[key].serialize()):
            unchanged.add(key)
        else:
            modified.add(key)

    return TemplateDiff(
        added=frozenset(added),
        modified=frozenset(modified),
        deleted=frozenset(deleted),
        unchanged=frozenset(unchanged),
        parameters_changed=not deep_equal(_serialize_map(old.parameters), _serialize_map(new.parameters)),
        outputs_changed=not deep_equal(_serialize_map(old.outputs), _serialize_map(new.outputs)),
    )


def _replacement_properties(resource_type: str) -> frozenset:
    return REPLACEMENT_PROPERTIES.get(resource_type, frozenset())


def requires_replacement(diff: TemplateDiff, old: Template, new: Template) -> bool:
    """
    Whether applying the diff replaces at least one resource: any deletion does, as does a modified resource whose
    type changed or whose replacement-triggering property changed.
    """
    if diff.deleted:
        return True
    for logical_id in diff.modified:
        old_resource = old.resources[logical_id]
        new_resource = new.resources[logical_id]
        if old_resource.type != new_resource.type:
            return True
        for prop in _replacement_properties(new_resource.type):
            if not deep_equal(old_resource.properties.get(prop), new_resource.properties.get(prop)):
                return True
    return False


def property_changes(old_resource: Resource, new_resource: Resource) -> list[PropertyChange]:
    """
    Lists what changed in a modified resource: its type, then its top-level properties (by name), then its
    resource attributes (``DependsOn``, ``Condition``, the policies).
    """
    changes = []
    type_changed = old_resource.type != new_resource.type
    if type_changed:
        changes.append(PropertyChange("Type", old_resource.type, new_resource.type, True))

    replacement_properties = _replacement_properties(new_resource.type)
    for key in sorted(set(old_resource.properties) | set(new_resource.properties)):
        old_value = old_resource.properties.get(key)
        new_value = new_resource.properties.get(key)
        if not deep_equal(old_value, new_value):
            changes.append(
                PropertyChange(
                    f"Properties.{key}",
                    old_value,
                    new_value,
                    type_changed or key in replacement_properties,
                )
            )

    old_attributes = old_resource.serialize()
    new_attributes = new_resource.serialize()
    for attribute in ("DependsOn", "Condition", "DeletionPolicy", "UpdateReplacePolicy"):
        old_value = old_attributes.get(attribute)
        new_value = new_attributes.get(attribute)
        if not deep_equal(old_value, new_value):
            changes.append(PropertyChange(attribute, old_value, new_value, False))
    return changes


def categorize_changes(diff: TemplateDiff) -> ChangeCategories:
    return ChangeCategories(safe=diff.added, caution=diff.modified, dangerous=diff.deleted)


def get_deployment_strategy(diff: TemplateDiff) -> DeploymentStrategy:
    if not diff.has_changes:
        return DeploymentStrategy(Strategy.skip, "No changes detected")
    if diff.deleted:
        return DeploymentStrategy(Strategy.replace, "Resources will be deleted")
    if diff.added and not diff.modified:
        return DeploymentStrategy(Strategy.update, "Only new resources added")
    return DeploymentStrategy(Strategy.update, "Resources will be updated")


def get_diff_stats(diff: TemplateDiff) -> DiffStats:
    changes = len(diff.added) + len(diff.modified) + len(diff.deleted)
    total = changes + len(diff.unchanged)
    return DiffStats(
        total=total,
        added=len(diff.added),
        modified=len(diff.modified),
        deleted=len(diff.deleted),
        unchanged=len(diff.unchanged),
        change_percentage=(changes / total) * 100 if total else 0.0,
    )


def format_diff(diff: TemplateDiff) -> str:
    """Human-readable summary of a diff, one line per changed resource."""
    if not diff.has_changes:
        return "No changes detected"

    lines = []
    for title, symbol, ids in (
        ("Added", "+", diff.added),
        ("Modified", "~", diff.modified),
        ("Deleted", "-", diff.deleted),
    ):
        if ids:
            lines.append(f"{title} resources ({len(ids)}):")
            lines.extend(f"  {symbol} {logical_id}" for logical_id in sorted(ids))
    if diff.parameters_changed:
        lines.append("Parameters changed")
    if diff.outputs_changed:
        lines.append("Outputs changed")
    return "\n".join(lines)
