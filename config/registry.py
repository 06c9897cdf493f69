from dataclasses import dataclass, field
from typing import Mapping

from config.domains import DEFAULT_DOMAIN_REGISTRY, DomainRegistry
from config.environments import ENVIRONMENTS, Environment, EnvironmentConfig
from config.regions import REGIONS, Region, RegionConfig


@dataclass(frozen=True)
class Registry:
    """All static lookup tables one synthesis pass resolves against"""

    environments: Mapping[Environment, EnvironmentConfig] = field(default_factory=lambda: ENVIRONMENTS)
    regions: Mapping[Region, RegionConfig] = field(default_factory=lambda: REGIONS)
    domains: DomainRegistry = field(default_factory=lambda: DEFAULT_DOMAIN_REGISTRY)


DEFAULT_REGISTRY = Registry()
