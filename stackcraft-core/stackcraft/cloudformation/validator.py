"""
Static checks of a template document before it is sent to CloudFormation. Errors make the template unusable,
warnings point at likely mistakes (e.g., a database without a deletion policy).
"""
import logging
from dataclasses import dataclass, field

from stackcraft.cloudformation.graph import DependencyGraph
from stackcraft.cloudformation.models import LOGICAL_ID_REGEX, DeletionPolicy, Template
from stackcraft.cloudformation.references import collect_references
from stackcraft.constants import (
    MAX_PARAMETERS_PER_TEMPLATE,
    MAX_RESOURCES_PER_TEMPLATE,
    PSEUDO_PARAMETERS,
    RESOURCE_TYPE_PREFIXES,
    TEMPLATE_FORMAT_VERSION,
)
from stackcraft.exceptions import TemplateValidationError

LOG = logging.getLogger(__name__)

# resource types holding data that is lost when the resource is deleted
DATA_RESOURCE_TYPES = (
    "AWS::S3::Bucket",
    "AWS::DynamoDB::Table",
    "AWS::RDS::DBInstance",
    "AWS::RDS::DBCluster",
    "AWS::ElastiCache::CacheCluster",
    "AWS::ElastiCache::ReplicationGroup",
    "AWS::EFS::FileSystem",
    "AWS::OpenSearchService::Domain",
)


@dataclass(frozen=True)
class ValidationIssue:
    path: str
    message: str

    def __str__(self):
        return f"{self.path}: {self.message}"


@dataclass
class ValidationResult:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise TemplateValidationError(self.errors)


def validate_template(template: Template | dict) -> ValidationResult:
    """
    Validates the given template (a ``Template`` or a raw template document).

    :param template: the template to check
    :return: the errors and warnings found
    """
    document = template.serialize() if isinstance(template, Template) else (template or {})
    result = ValidationResult()

    version = document.get("AWSTemplateFormatVersion")
    if version is not None and version != TEMPLATE_FORMAT_VERSION:
        result.errors.append(
            ValidationIssue("AWSTemplateFormatVersion", f'AWSTemplateFormatVersion must be "{TEMPLATE_FORMAT_VERSION}"')
        )

    resources = document.get("Resources") or {}
    parameters = document.get("Parameters") or {}
    if not resources:
        result.errors.append(ValidationIssue("Resources", "Template must contain at least one resource"))

    _validate_resources(resources, result)
    _validate_parameters(parameters, result)
    _validate_outputs(document.get("Outputs") or {}, result)
    _validate_references(resources, parameters, result)
    _validate_dependencies(resources, result)

    LOG.debug("Validated template: %s errors, %s warnings", len(result.errors), len(result.warnings))
    return result


def _validate_resources(resources: dict, result: ValidationResult) -> None:
    if len(resources) > MAX_RESOURCES_PER_TEMPLATE:
        result.warnings.append(
            ValidationIssue(
                "Resources",
                f"Template contains {len(resources)} resources (limit is {MAX_RESOURCES_PER_TEMPLATE})",
            )
        )
    policies = [policy.value for policy in DeletionPolicy]

    for logical_id, resource in resources.items():
        path = f"Resources.{logical_id}"
        resource = resource or {}
        if not LOGICAL_ID_REGEX.match(logical_id):
            result.errors.append(ValidationIssue(path, "Logical ID must contain only alphanumeric characters"))

        resource_type = resource.get("Type")
        if not resource_type:
            result.errors.append(ValidationIssue(f"{path}.Type", "Resource Type is required"))
        elif not resource_type.startswith(RESOURCE_TYPE_PREFIXES):
            result.errors.append(
                ValidationIssue(
                    f"{path}.Type", f"Resource Type must start with one of {', '.join(RESOURCE_TYPE_PREFIXES)}"
                )
            )

        for attribute in ("DeletionPolicy", "UpdateReplacePolicy"):
            value = resource.get(attribute)
            if value is not None and value not in policies:
                result.errors.append(
                    ValidationIssue(f"{path}.{attribute}", f"{attribute} must be one of {', '.join(policies)}")
                )

        if not resource.get("DeletionPolicy") and resource_type in DATA_RESOURCE_TYPES:
            result.warnings.append(
                ValidationIssue(
                    f"{path}.DeletionPolicy",
                    f"{resource_type} should specify DeletionPolicy to prevent accidental data loss",
                )
            )


def _validate_parameters(parameters: dict, result: ValidationResult) -> None:
    if len(parameters) > MAX_PARAMETERS_PER_TEMPLATE:
        result.warnings.append(
            ValidationIssue(
                "Parameters",
                f"Template contains {len(parameters)} parameters (limit is {MAX_PARAMETERS_PER_TEMPLATE})",
            )
        )
    for name, parameter in parameters.items():
        if not (parameter or {}).get("Type"):
            result.errors.append(ValidationIssue(f"Parameters.{name}.Type", "Parameter Type is required"))


def _validate_outputs(outputs: dict, result: ValidationResult) -> None:
    for name, output in outputs.items():
        if (output or {}).get("Value") in (None, ""):
            result.errors.append(ValidationIssue(f"Outputs.{name}.Value", "Output Value is required"))


def _validate_references(resources: dict, parameters: dict, result: ValidationResult) -> None:
    for logical_id, resource in resources.items():
        path = f"Resources.{logical_id}"
        resource = resource or {}
        for reference in collect_references(resource.get("Properties") or {}):
            target = reference.target
            if target == logical_id:
                result.errors.append(ValidationIssue(path, f"Resource references itself via {reference.function}"))
            elif target in resources:
                continue
            elif reference.attribute is None and (target in parameters or target in PSEUDO_PARAMETERS):
                continue
            else:
                result.errors.append(
                    ValidationIssue(path, f"{reference.function} to non-existent resource or parameter: {target}")
                )

        depends_on = resource.get("DependsOn") or []
        if isinstance(depends_on, str):
            depends_on = [depends_on]
        for target in depends_on:
            if target == logical_id:
                result.errors.append(ValidationIssue(f"{path}.DependsOn", "Resource cannot depend on itself"))
            elif target not in resources:
                result.errors.append(
                    ValidationIssue(f"{path}.DependsOn", f"DependsOn references non-existent resource: {target}")
                )


def _validate_dependencies(resources: dict, result: ValidationResult) -> None:
    graph = DependencyGraph()
    for logical_id, resource in resources.items():
        resource = resource or {}
        depends_on = resource.get("DependsOn") or []
        if isinstance(depends_on, str):
            depends_on = [depends_on]
        graph.add_edges(logical_id, [target for target in depends_on if target != logical_id])
        references = {reference.target for reference in collect_references(resource.get("Properties") or {})}
        graph.add_edges(
            logical_id, sorted(target for target in references if target in resources and target != logical_id)
        )

    cycle = graph.find_cycle()
    if cycle:
        result.errors.append(ValidationIssue("Resources", f"Circular dependency detected: {' -> '.join(cycle)}"))
