"""
The static project configuration a template is synthesized from, e.g.::

    project:
      name: My App
      slug: my-app
      region: eu-central-1
    environments:
      production:
        type: production
        domain: example.com
    infrastructure:
      storage:
        assets:
          versioning: true
      queues:
        jobs:
          deadLetterQueue: true
"""
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any

import yaml

from stackcraft import config as stackcraft_config

LOG = logging.getLogger(__name__)

ENVIRONMENT_TYPES = ("development", "staging", "production")


@dataclass
class ProjectConfig:
    name: str
    slug: str
    region: str = None

    def __post_init__(self):
        if not self.region:
            self.region = stackcraft_config.AWS_REGION


@dataclass
class EnvironmentConfig:
    type: str = "production"
    region: str | None = None
    domain: str | None = None
    variables: dict[str, str] = field(default_factory=dict)


@dataclass
class CloudConfig:
    project: ProjectConfig
    environments: dict[str, EnvironmentConfig] = field(default_factory=dict)
    infrastructure: dict[str, Any] = field(default_factory=dict)
    mappings: dict[str, Any] = field(default_factory=dict)
    mode: str = "serverless"

    @property
    def description(self) -> str:
        return f"Infrastructure for {self.project.name} ({self.project.slug})"

    @property
    def production_domain(self) -> str | None:
        production = self.environments.get("production")
        return production.domain if production else None

    def environment_names(self) -> list[str]:
        return list(self.environments) or list(ENVIRONMENT_TYPES)

    def feature(self, name: str) -> Any:
        return self.infrastructure.get(name)

    @classmethod
    def from_dict(cls, data: dict) -> "CloudConfig":
        data = data or {}
        project = data.get("project") or {}
        if not project.get("name"):
            raise ValueError("Configuration is missing the project name")
        environments = {}
        for name, env in (data.get("environments") or {}).items():
            env = env or {}
            environments[name] = EnvironmentConfig(
                type=env.get("type", name),
                region=env.get("region"),
                domain=env.get("domain"),
                variables=dict(env.get("variables") or {}),
            )
        return cls(
            project=ProjectConfig(
                name=project["name"],
                slug=project.get("slug") or project["name"].lower().replace(" ", "-"),
                region=project.get("region"),
            ),
            environments=environments,
            infrastructure=dict(data.get("infrastructure") or {}),
            mappings=dict(data.get("mappings") or {}),
            mode=data.get("mode", "serverless"),
        )

    @classmethod
    def from_file(cls, path: str) -> "CloudConfig":
        """Loads the configuration from a JSON or YAML file."""
        LOG.debug("Loading configuration from %s", path)
        with open(path, "r", encoding=stackcraft_config.DEFAULT_ENCODING) as fd:
            content = fd.read()
        if os.path.splitext(path)[1].lower() == ".json":
            data = json.loads(content)
        else:
            data = yaml.safe_load(content)
        return cls.from_dict(data)
