from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Union

from config.app_config import check_static_keys
from config.errors import ConfigurationError


class Environment(str, Enum):
    DEV = "dev"
    PROD = "prod"

    @classmethod
    def parse(cls, value: Union["Environment", str]) -> "Environment":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            choices = ", ".join(e.value for e in cls)
            raise ConfigurationError(
                f"Unknown environment '{value}'. Choose from: {choices}"
            ) from None


def environment_from_selector(value: Optional[str]) -> Environment:
    """Entry point policy: an absent selector means dev, anything else must parse"""
    if not value:
        return Environment.DEV
    return Environment.parse(value)


@dataclass(frozen=True)
class DatabaseConfig:
    instance_class: str
    backup_retention_days: int
    replica_instance_class: Optional[str] = None
    backup_rate_hours: int = 6
    backup_delete_after_days: int = 30


@dataclass(frozen=True)
class CacheConfig:
    node_type: str


@dataclass(frozen=True)
class ComputeConfig:
    instance_type: str
    min_capacity: int
    max_capacity: int
    desired_count: int
    target_cpu_utilization: int
    scale_in_cooldown_seconds: int
    scale_out_cooldown_seconds: int


@dataclass(frozen=True)
class EnvironmentConfig:
    environment: Environment
    cidr: str
    app_config: Mapping[str, str]
    general_secret_arn: str
    database: DatabaseConfig
    cache: CacheConfig
    compute: ComputeConfig
    log_retention_days: int
    deletion_protection: bool
    retain_data: bool

    def __post_init__(self):
        check_static_keys(self.app_config)
        object.__setattr__(self, "app_config", MappingProxyType(dict(self.app_config)))


_COMPUTE = ComputeConfig(
    instance_type="t4g.micro",
    min_capacity=1,
    max_capacity=4,
    desired_count=1,
    target_cpu_utilization=60,
    scale_in_cooldown_seconds=300,
    scale_out_cooldown_seconds=60,
)

DEV_CONFIG = EnvironmentConfig(
    environment=Environment.DEV,
    cidr="10.0.0.0/16",
    app_config={"PORT": "8000", "POOL_SIZE": "10"},
    general_secret_arn="arn:aws:secretsmanager:eu-west-1:000000000000:secret:general-application-config-dev-a1b2c3",
    database=DatabaseConfig(instance_class="t4g.micro", backup_retention_days=0),
    cache=CacheConfig(node_type="t4g.micro"),
    compute=_COMPUTE,
    log_retention_days=7,
    deletion_protection=False,
    retain_data=False,
)

PROD_CONFIG = EnvironmentConfig(
    environment=Environment.PROD,
    cidr="10.1.0.0/16",
    app_config={"PORT": "8000", "POOL_SIZE": "10"},
    general_secret_arn="arn:aws:secretsmanager:eu-west-1:728247919352:secret:general-application-config-uL5n4J",
    database=DatabaseConfig(
        instance_class="t4g.micro",
        backup_retention_days=30,
        replica_instance_class="t4g.micro",
    ),
    cache=CacheConfig(node_type="t4g.micro"),
    compute=_COMPUTE,
    log_retention_days=7,
    deletion_protection=False,
    retain_data=True,
)

ENVIRONMENTS: Mapping[Environment, EnvironmentConfig] = MappingProxyType(
    {
        Environment.DEV: DEV_CONFIG,
        Environment.PROD: PROD_CONFIG,
    }
)


def resolve_environment(
    environment: Union[Environment, str],
    table: Mapping[Environment, EnvironmentConfig] = ENVIRONMENTS,
) -> EnvironmentConfig:
    env = Environment.parse(environment)
    if env not in table:
        raise ConfigurationError(f"No configuration registered for environment '{env.value}'")
    return table[env]
