import logging
import re
from typing import Any, Callable, Iterable, Mapping

from stackcraft.cloudformation import intrinsics as fn
from stackcraft.cloudformation.config import CloudConfig
from stackcraft.cloudformation.graph import DependencyGraph
from stackcraft.cloudformation.models import Output, Parameter, Resource, Template
from stackcraft.cloudformation.references import extract_references

LOG = logging.getLogger(__name__)

# a contribution adds the resources of one infrastructure feature: (builder, feature_config, outputs) -> None
Contribution = Callable[["TemplateBuilder", Any, "OutputsBuilder"], None]

_re_logical_id_separators = re.compile(r"[-_\s]+")
_re_non_alphanumeric = re.compile(r"[^A-Za-z0-9]")


class OutputsBuilder:
    """
    Collects template outputs. One instance is handed to every contribution step during a build, and merged into the
    template once all steps have run. Adding an output with an existing key replaces it.
    """

    def __init__(self):
        self._outputs: dict[str, Output] = {}

    def add(
        self,
        key: str,
        value: Any,
        description: str = None,
        export_name: Any = None,
        condition: str = None,
    ) -> "OutputsBuilder":
        self._outputs[key] = Output(
            value=value, description=description, export_name=export_name, condition=condition
        )
        return self

    def add_output(self, key: str, output: Output) -> "OutputsBuilder":
        self._outputs[key] = output
        return self

    def merge(self, outputs: "OutputsBuilder | Mapping[str, Output]") -> "OutputsBuilder":
        items = outputs.to_dict() if isinstance(outputs, OutputsBuilder) else outputs
        for key, output in items.items():
            self.add_output(key, output if isinstance(output, Output) else Output.from_dict(output))
        return self

    def to_dict(self) -> dict[str, Output]:
        return dict(self._outputs)

    def __contains__(self, key: str) -> bool:
        return key in self._outputs

    def __len__(self):
        return len(self._outputs)


class TemplateBuilder:
    """
    Assembles a ``Template`` from a ``CloudConfig``. Resources are added by the registered contribution steps (one
    per infrastructure feature) or directly via ``add_resource``. ``build`` wires the dependency edges implied by
    ``Ref`` / ``Fn::GetAtt`` / ``Fn::Sub`` and rejects circular dependencies.
    """

    def __init__(self, config: CloudConfig, contributions: Mapping[str, Contribution] = None):
        if contributions is None:
            from stackcraft.cloudformation.contributions import DEFAULT_CONTRIBUTIONS

            contributions = DEFAULT_CONTRIBUTIONS
        self.config = config
        self.contributions = dict(contributions)
        self.graph = DependencyGraph()
        self._resources: dict[str, Resource] = {}
        self._parameters: dict[str, Parameter] = {}
        self._conditions: dict[str, Any] = {}
        self._outputs = OutputsBuilder()

    def add_resource(
        self,
        logical_id: str,
        type: str,
        properties: dict = None,
        depends_on: str | Iterable[str] = None,
        condition: str = None,
        deletion_policy: str = None,
        update_replace_policy: str = None,
    ) -> None:
        """
        Adds a resource to the template. Adding a resource with an existing logical ID replaces the previous one,
        including its explicit dependencies.

        :raises InvalidResourceError: if the logical ID, the type or a policy is invalid, or the resource depends
            on itself
        """
        resource = Resource(
            logical_id=logical_id,
            type=type,
            properties=properties or {},
            depends_on=depends_on or (),
            condition=condition,
            deletion_policy=deletion_policy,
            update_replace_policy=update_replace_policy,
        )
        if logical_id in self._resources:
            LOG.debug("Replacing resource %s (%s)", logical_id, type)
            self.graph.clear_edges(logical_id)
        self._resources[logical_id] = resource
        self.graph.add_node(logical_id)
        if resource.depends_on:
            self.graph.add_edges(logical_id, resource.depends_on)

    def has_resource(self, logical_id: str) -> bool:
        return logical_id in self._resources

    def get_resource(self, logical_id: str) -> Resource | None:
        return self._resources.get(logical_id)

    @property
    def resources(self) -> dict[str, Resource]:
        return dict(self._resources)

    def add_parameter(self, key: str, parameter: Parameter) -> None:
        self._parameters[key] = parameter

    def add_condition(self, name: str, condition: Any) -> None:
        self._conditions[name] = condition

    def add_outputs(self, outputs: "OutputsBuilder | Mapping[str, Output]") -> None:
        self._outputs.merge(outputs)

    @property
    def outputs(self) -> OutputsBuilder:
        return self._outputs

    @staticmethod
    def to_logical_id(name: str) -> str:
        """Turns a name like ``my-assets_bucket`` into the logical ID ``MyAssetsBucket``."""
        parts = [part for part in _re_logical_id_separators.split(name) if part]
        logical_id = "".join(part[0].upper() + part[1:].lower() for part in parts)
        return _re_non_alphanumeric.sub("", logical_id)

    def build(self) -> Template:
        """
        Synthesizes the template: parameters, mappings and conditions from the configuration, then the resources of
        every configured feature, then the outputs, and finally the dependency validation.

        :raises CircularDependencyError: if the resources depend on each other in a cycle
        """
        parameters = self._default_parameters()
        parameters.update(self._parameters)
        mappings = dict(self.config.mappings)
        conditions = self._default_conditions()
        conditions.update(self._conditions)

        contributed = OutputsBuilder()
        for feature, contribution in self.contributions.items():
            feature_config = self.config.feature(feature)
            if not feature_config:
                continue
            LOG.debug("Adding resources of feature %s", feature)
            contribution(self, feature_config, contributed)

        outputs = self._default_outputs()
        outputs.merge(self._outputs)
        outputs.merge(contributed)

        self._add_implicit_dependencies()
        self.graph.detect_cycles()

        LOG.debug("Built template with %s resources and %s outputs", len(self._resources), len(outputs))
        return Template(
            description=self.config.description,
            parameters=parameters,
            mappings=mappings,
            conditions=conditions,
            resources=self._resources,
            outputs=outputs.to_dict(),
        )

    def _add_implicit_dependencies(self) -> None:
        for logical_id, resource in self._resources.items():
            # a reference to the resource itself is kept, the cycle check reports it
            targets = [target for target in extract_references(resource) if target in self._resources]
            # sorted for a deterministic traversal order
            self.graph.add_edges(logical_id, sorted(targets))

    def _default_parameters(self) -> dict[str, Parameter]:
        environments = self.config.environment_names()
        default = "production" if "production" in environments else environments[0]
        return {
            "Environment": Parameter(
                type="String",
                default=default,
                allowed_values=environments,
                description="Environment name",
            )
        }

    def _default_conditions(self) -> dict[str, Any]:
        return {
            "IsProduction": fn.equals(fn.ref("Environment"), "production"),
            "HasDomain": fn.not_(fn.equals(self.config.production_domain or "", "")),
        }

    def _default_outputs(self) -> OutputsBuilder:
        outputs = OutputsBuilder()
        outputs.add(
            "StackName",
            fn.ref("AWS::StackName"),
            description="Stack name",
            export_name=fn.sub("${AWS::StackName}-Name"),
        )
        outputs.add(
            "Region",
            fn.ref("AWS::Region"),
            description="AWS Region",
            export_name=fn.sub("${AWS::StackName}-Region"),
        )
        if self.config.production_domain:
            outputs.add(
                "Domain",
                self.config.production_domain,
                description="Production domain",
                condition="HasDomain",
            )
        return outputs
