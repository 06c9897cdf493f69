import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Tuple, Union

from config.environments import Environment
from config.errors import ConfigurationError, MissingZoneError
from config.regions import Region

_LABEL = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")


class DomainRole(str, Enum):
    MAIN = "main"
    WWW = "www"
    CDN = "cdn"
    APP_CDN = "app-cdn"
    COM = "com"
    EMAIL = "email"
    TRACKING = "tracking"


class ZoneKey(str, Enum):
    TOOLS = "tools"
    COMMERCE = "commerce"


@dataclass(frozen=True)
class HostedZoneRef:
    """Existing Route 53 zone, looked up by attributes and never created here"""

    key: ZoneKey
    zone_id: str
    zone_name: str

    def contains(self, domain: str) -> bool:
        return domain == self.zone_name or domain.endswith("." + self.zone_name)


@dataclass(frozen=True)
class DomainEntry:
    zone: ZoneKey
    domain: str


@dataclass(frozen=True)
class DomainAttributes:
    role: DomainRole
    zone: HostedZoneRef
    domain: str

    @property
    def record_name(self) -> str:
        """Name relative to the owning zone, empty for the apex"""
        if self.domain == self.zone.zone_name:
            return ""
        return self.domain[: -len(self.zone.zone_name) - 1]


@dataclass(frozen=True)
class DomainSet:
    region: Region
    environment: Environment
    domains: Mapping[DomainRole, DomainAttributes]

    def __getitem__(self, role: DomainRole) -> DomainAttributes:
        return self.domains[role]

    def zones(self) -> Tuple[HostedZoneRef, ...]:
        seen = {}
        for attributes in self.domains.values():
            seen.setdefault(attributes.zone.key, attributes.zone)
        return tuple(seen[key] for key in ZoneKey if key in seen)


ZoneTable = Mapping[Environment, Mapping[ZoneKey, HostedZoneRef]]
DomainTable = Mapping[Region, Mapping[Environment, Mapping[DomainRole, DomainEntry]]]


@dataclass(frozen=True)
class DomainRegistry:
    zones: ZoneTable
    domains: DomainTable


ENVIRONMENT_TOKENS: Mapping[Environment, str] = MappingProxyType(
    {
        Environment.DEV: "dev.",
        Environment.PROD: "",
    }
)

ZONE_APEXES: Mapping[ZoneKey, str] = MappingProxyType(
    {
        ZoneKey.TOOLS: "passwordless.tools",
        ZoneKey.COMMERCE: "passwordlesstools.com",
    }
)

# {region} and {env} are filled per pair, {apex} comes from the role's zone
ROLE_TEMPLATES: Mapping[DomainRole, Tuple[ZoneKey, str]] = MappingProxyType(
    {
        DomainRole.MAIN: (ZoneKey.TOOLS, "{region}.{env}{apex}"),
        DomainRole.WWW: (ZoneKey.TOOLS, "www.{region}.{env}{apex}"),
        DomainRole.APP_CDN: (ZoneKey.TOOLS, "cdn.{region}.{env}{apex}"),
        DomainRole.CDN: (ZoneKey.COMMERCE, "cdn.{region}.{env}{apex}"),
        DomainRole.COM: (ZoneKey.COMMERCE, "{region}.{env}{apex}"),
        DomainRole.EMAIL: (ZoneKey.COMMERCE, "{region}.{env}{apex}"),
        DomainRole.TRACKING: (ZoneKey.COMMERCE, "track.{region}.{env}{apex}"),
    }
)


def build_zone_table(zone_ids: Mapping[Environment, Mapping[ZoneKey, str]]) -> ZoneTable:
    table = {}
    for env, ids in zone_ids.items():
        table[env] = MappingProxyType(
            {
                key: HostedZoneRef(
                    key=key,
                    zone_id=zone_id,
                    zone_name=f"{ENVIRONMENT_TOKENS[env]}{ZONE_APEXES[key]}",
                )
                for key, zone_id in ids.items()
            }
        )
    return MappingProxyType(table)


def build_domain_table(
    regions: Iterable[Region],
    environments: Iterable[Environment],
    templates: Mapping[DomainRole, Tuple[ZoneKey, str]] = ROLE_TEMPLATES,
) -> DomainTable:
    environments = tuple(environments)
    table = {}
    for region in regions:
        by_env = {}
        for env in environments:
            by_env[env] = MappingProxyType(
                {
                    role: DomainEntry(
                        zone=zone,
                        domain=template.format(
                            region=region.value,
                            env=ENVIRONMENT_TOKENS[env],
                            apex=ZONE_APEXES[zone],
                        ),
                    )
                    for role, (zone, template) in templates.items()
                }
            )
        table[region] = MappingProxyType(by_env)
    return MappingProxyType(table)


ZONES = build_zone_table(
    {
        Environment.DEV: {
            ZoneKey.TOOLS: "Z0153786Q2DEVTOOLS0001",
            ZoneKey.COMMERCE: "Z0153786Q2DEVCOMM0001",
        },
        Environment.PROD: {
            ZoneKey.TOOLS: "Z0737569361XQK32FNWPX",
            ZoneKey.COMMERCE: "Z06750861RW0K8GN2HE9G",
        },
    }
)

DOMAINS = build_domain_table(Region, Environment)

DEFAULT_DOMAIN_REGISTRY = DomainRegistry(zones=ZONES, domains=DOMAINS)


def is_fqdn(domain: str) -> bool:
    labels = domain.split(".")
    return len(labels) >= 2 and all(_LABEL.match(label) for label in labels)


def resolve_domains(
    region: Union[Region, str],
    environment: Union[Environment, str],
    registry: DomainRegistry = DEFAULT_DOMAIN_REGISTRY,
) -> DomainSet:
    reg = Region.parse(region)
    env = Environment.parse(environment)

    by_env = registry.domains.get(reg)
    if by_env is None:
        raise ConfigurationError(f"No domains registered for region '{reg.value}'")
    entries = by_env.get(env)
    if entries is None:
        raise ConfigurationError(
            f"No domains registered for region '{reg.value}' in environment '{env.value}'"
        )
    zones = registry.zones.get(env, {})

    resolved = {}
    for role in DomainRole:
        entry = entries.get(role)
        if entry is None:
            raise ConfigurationError(
                f"Domain role '{role.value}' missing for {reg.value}/{env.value}"
            )
        zone = zones.get(entry.zone)
        if zone is None:
            raise MissingZoneError(
                f"Domain role '{role.value}' for {reg.value}/{env.value} needs zone "
                f"'{entry.zone.value}', which is not registered"
            )
        if not is_fqdn(entry.domain):
            raise ConfigurationError(
                f"Domain '{entry.domain}' for role '{role.value}' is not a valid FQDN"
            )
        if not zone.contains(entry.domain):
            raise ConfigurationError(
                f"Domain '{entry.domain}' for role '{role.value}' is outside zone '{zone.zone_name}'"
            )
        resolved[role] = DomainAttributes(role=role, zone=zone, domain=entry.domain)

    return DomainSet(region=reg, environment=env, domains=MappingProxyType(resolved))


def validate_domain_table(registry: DomainRegistry = DEFAULT_DOMAIN_REGISTRY) -> None:
    """Resolve every registered (region, environment) pair so bad tables fail early"""
    for region, by_env in registry.domains.items():
        for env in by_env:
            resolve_domains(region, env, registry)
