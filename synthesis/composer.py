import heapq
import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from config.app_config import DynamicAppConfig, merge_app_config
from config.domains import DomainRole, DomainSet, ZoneKey
from config.environments import Environment, EnvironmentConfig
from config.errors import ConfigurationError, DependencyCycleError
from config.regions import Region, RegionConfig
from synthesis.certificates import CertificateSet
from synthesis.naming import APP_NAME

logger = logging.getLogger(__name__)

POSTGRES_PORT = 5432
REDIS_PORT = 6379
CONTAINER_PORT = 8000
CLUSTER_NAMESPACE = "passwordless.tools.internal"

# CloudFront policies by origin type. The load balancer sees every viewer
# header; an S3 origin signed with OAC must keep its own Host header.
LOAD_BALANCER_POLICIES = MappingProxyType(
    {"cache_policy": "use-origin-cache-control-headers", "origin_request_policy": "all-viewer"}
)
BUCKET_POLICIES = MappingProxyType(
    {"cache_policy": "caching-optimized", "origin_request_policy": None}
)


@dataclass(frozen=True)
class Ref:
    """Attribute of another declaration, filled in by the deploy engine"""

    target: str
    attribute: str


@dataclass(frozen=True)
class Grant:
    """IAM permission of `principal` on `resource`, limited to `actions`"""

    principal: str
    resource: str
    actions: Tuple[str, ...]


@dataclass(frozen=True)
class Ingress:
    source: str
    target: str
    port: int
    description: str


class DeclarationKind(str, Enum):
    NETWORK = "network"
    HOSTED_ZONE = "hosted-zone"
    SECRET = "secret"
    CERTIFICATE = "certificate"
    EDGE_CERTIFICATE = "edge-certificate"
    DATABASE = "database"
    BACKUP = "backup"
    CACHE = "cache"
    BUCKET = "bucket"
    QUEUE = "queue"
    NAMESPACE = "namespace"
    CLUSTER = "cluster"
    SCANNING = "scanning"
    IMAGE = "image"
    MIGRATION = "migration"
    SERVICE = "service"
    WAF = "waf"
    CDN = "cdn"
    REDIRECT = "redirect"
    EMAIL = "email"


def _collect_refs(value: Any, found: List[str]) -> None:
    if isinstance(value, Ref):
        found.append(value.target)
    elif isinstance(value, Mapping):
        for item in value.values():
            _collect_refs(item, found)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _collect_refs(item, found)


def _freeze(value: Any) -> Any:
    """Read-only copy of nested mappings and sequences"""
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


@dataclass(frozen=True)
class Declaration:
    name: str
    kind: DeclarationKind
    properties: Mapping[str, Any] = field(default_factory=dict)
    depends_on: Tuple[str, ...] = ()
    grants: Tuple[Grant, ...] = ()
    ingress: Tuple[Ingress, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "properties", _freeze(self.properties))

    def references(self) -> Tuple[str, ...]:
        """Names of every other declaration this one needs, in first-seen order"""
        found: List[str] = list(self.depends_on)
        _collect_refs(self.properties, found)
        for grant in self.grants:
            found.extend((grant.principal, grant.resource))
        for rule in self.ingress:
            found.extend((rule.source, rule.target))

        ordered: List[str] = []
        for name in found:
            if name != self.name and name not in ordered:
                ordered.append(name)
        return tuple(ordered)


@dataclass(frozen=True)
class OrderedDeclarationSet:
    region: Region
    environment: Environment
    declarations: Tuple[Declaration, ...]

    def __iter__(self) -> Iterator[Declaration]:
        return iter(self.declarations)

    def __len__(self) -> int:
        return len(self.declarations)

    def names(self) -> Tuple[str, ...]:
        return tuple(d.name for d in self.declarations)

    def index(self, name: str) -> int:
        return self.names().index(name)

    def get(self, name: str) -> Declaration:
        for declaration in self.declarations:
            if declaration.name == name:
                return declaration
        raise KeyError(name)

    def of_kind(self, kind: DeclarationKind) -> Tuple[Declaration, ...]:
        return tuple(d for d in self.declarations if d.kind is kind)


def order_declarations(declarations: Iterable[Declaration]) -> Tuple[Declaration, ...]:
    """
    Stable topological sort.

    Declarations keep their given order unless a reference forces one later;
    a reference to an unknown name is a configuration error, a cycle a
    DependencyCycleError.
    """
    declarations = tuple(declarations)
    position: Dict[str, int] = {}
    for i, declaration in enumerate(declarations):
        if declaration.name in position:
            raise ConfigurationError(f"Declaration '{declaration.name}' declared twice")
        position[declaration.name] = i

    pending: Dict[str, int] = {}
    dependents: Dict[str, List[str]] = {d.name: [] for d in declarations}
    for declaration in declarations:
        refs = declaration.references()
        for ref in refs:
            if ref not in position:
                raise ConfigurationError(
                    f"Declaration '{declaration.name}' references undeclared resource '{ref}'"
                )
            dependents[ref].append(declaration.name)
        pending[declaration.name] = len(refs)

    ready = [(position[name], name) for name, count in pending.items() if count == 0]
    heapq.heapify(ready)
    ordered: List[Declaration] = []
    while ready:
        _, name = heapq.heappop(ready)
        ordered.append(declarations[position[name]])
        for dependent in dependents[name]:
            pending[dependent] -= 1
            if pending[dependent] == 0:
                heapq.heappush(ready, (position[dependent], dependent))

    if len(ordered) != len(declarations):
        stuck = sorted((n for n, count in pending.items() if count > 0), key=position.get)
        raise DependencyCycleError(f"Dependency cycle among declarations: {', '.join(stuck)}")
    return tuple(ordered)


def _zone_decl(key: ZoneKey) -> str:
    return f"zone-{key.value}"


def _certificate_decl(role: DomainRole) -> str:
    return f"certificate-{role.value}"


def compose(
    region: Region,
    environment: Environment,
    domains: DomainSet,
    certificates: CertificateSet,
    *,
    env_config: EnvironmentConfig,
    region_config: RegionConfig,
    account_id: str,
    image_directory: str = ".",
    image_build_args: Optional[Mapping[str, str]] = None,
) -> OrderedDeclarationSet:
    """Declarations for one regional application stack, in dependency order"""
    region = Region.parse(region)
    environment = Environment.parse(environment)
    for name, value in (
        ("domain set", (domains.region, domains.environment)),
        ("certificate set", (certificates.region, certificates.environment)),
        ("environment config", (region, env_config.environment)),
        ("region config", (region_config.region, environment)),
    ):
        if value != (region, environment):
            raise ConfigurationError(
                f"{name} does not belong to {region.value}/{environment.value}"
            )

    # Every certificate is looked up before the first declaration exists
    main_cert = certificates.require(DomainRole.MAIN)
    edge_roles = (DomainRole.APP_CDN, DomainRole.CDN, DomainRole.WWW, DomainRole.COM, DomainRole.TRACKING)
    edge_certs = {role: certificates.require(role) for role in edge_roles}

    env = environment.value
    main = domains[DomainRole.MAIN]
    cdn = domains[DomainRole.CDN]
    app_cdn = domains[DomainRole.APP_CDN]
    www = domains[DomainRole.WWW]
    com = domains[DomainRole.COM]
    email = domains[DomainRole.EMAIL]
    tracking = domains[DomainRole.TRACKING]

    declarations: List[Declaration] = [
        Declaration(
            "vpc",
            DeclarationKind.NETWORK,
            {
                "name": f"{env}-vpc",
                "cidr": env_config.cidr,
                "cidr_mask": 18,
                "max_azs": region_config.max_azs,
                "flow_logs": True,
                "log_retention_days": env_config.log_retention_days,
            },
        ),
        Declaration(
            "cluster-namespace",
            DeclarationKind.NAMESPACE,
            {
                "name": CLUSTER_NAMESPACE,
                "vpc": Ref("vpc", "vpc"),
                "description": f"Private DNS namespace {CLUSTER_NAMESPACE} for the ECS cluster",
            },
        ),
    ]

    for zone in domains.zones():
        declarations.append(
            Declaration(
                _zone_decl(zone.key),
                DeclarationKind.HOSTED_ZONE,
                {"zone_id": zone.zone_id, "zone_name": zone.zone_name},
            )
        )

    declarations.append(
        Declaration(
            "general-secret", DeclarationKind.SECRET, {"arn": env_config.general_secret_arn}
        )
    )

    declarations.append(
        Declaration(
            _certificate_decl(DomainRole.MAIN),
            DeclarationKind.CERTIFICATE,
            {
                "handle": main_cert,
                "domain": main.domain,
                "zone": Ref(_zone_decl(main.zone.key), "zone"),
            },
        )
    )
    for role, handle in edge_certs.items():
        declarations.append(
            Declaration(
                _certificate_decl(role),
                DeclarationKind.EDGE_CERTIFICATE,
                {"handle": handle, "domain": handle.domain},
            )
        )

    database = env_config.database
    declarations += [
        Declaration(
            "postgres",
            DeclarationKind.DATABASE,
            {
                "name": "passwordlesstools",
                "vpc": Ref("vpc", "vpc"),
                "port": POSTGRES_PORT,
                "instance_type": database.instance_class,
                "replica_instance_type": database.replica_instance_class,
                "backup_retention_days": database.backup_retention_days,
                "deletion_protection": env_config.deletion_protection,
                "retain": env_config.retain_data,
            },
        ),
        Declaration(
            "postgres-backup",
            DeclarationKind.BACKUP,
            {
                "plan_name": f"{APP_NAME}-backup",
                "rate_hours": database.backup_rate_hours,
                "completion_window_hours": 2,
                "delete_after_days": database.backup_delete_after_days,
                "resource": Ref("postgres", "instance"),
            },
        ),
        Declaration(
            "redis",
            DeclarationKind.CACHE,
            {
                "name": f"{APP_NAME}-redis",
                "vpc": Ref("vpc", "vpc"),
                "port": REDIS_PORT,
                "node_type": env_config.cache.node_type,
                "retain": env_config.retain_data,
            },
        ),
        Declaration(
            "customer-media",
            DeclarationKind.BUCKET,
            {"name": f"{env}-customer-media", "retain": env_config.retain_data},
        ),
        Declaration(
            "email-events",
            DeclarationKind.QUEUE,
            {"name": f"{APP_NAME}-email-notifications", "retain": env_config.retain_data},
        ),
    ]

    compute = env_config.compute
    declarations += [
        Declaration(
            "cluster",
            DeclarationKind.CLUSTER,
            {
                "name": f"{APP_NAME}-cluster",
                "vpc": Ref("vpc", "vpc"),
                "instance_type": compute.instance_type,
                "min_capacity": compute.min_capacity,
                "max_capacity": compute.max_capacity,
            },
        ),
        Declaration(
            "container-scanning",
            DeclarationKind.SCANNING,
            {"name": f"{env}-app", "timeout_minutes": 5},
        ),
        Declaration(
            "image",
            DeclarationKind.IMAGE,
            {
                "asset_name": f"{APP_NAME}-image",
                "directory": image_directory,
                "exclude": ("node_modules", "deps", "_build", ".git", "cdk.out"),
                "build_args": dict(image_build_args or {}),
            },
        ),
    ]

    static_env = env_config.app_config
    migration_env = {key: static_env[key] for key in sorted(static_env)}
    migration_env["DATABASE_MIGRATION"] = "true"

    declarations.append(
        Declaration(
            "migration",
            DeclarationKind.MIGRATION,
            {
                "name": f"{APP_NAME}-migration-lambda",
                "vpc": Ref("vpc", "vpc"),
                "image": Ref("image", "asset"),
                "postgres_secret": Ref("postgres", "secret"),
                "general_secret": Ref("general-secret", "secret"),
                "environment": migration_env,
                "log_retention_days": env_config.log_retention_days,
                "timeout_minutes": 5,
                "memory_size": 512,
            },
            grants=(
                Grant("migration", "general-secret", ("secretsmanager:GetSecretValue",)),
                Grant("migration", "postgres", ("secretsmanager:GetSecretValue",)),
            ),
            ingress=(
                Ingress(
                    "migration",
                    "postgres",
                    POSTGRES_PORT,
                    f"Allow traffic from migration lambda to Postgres on port {POSTGRES_PORT}",
                ),
            ),
        )
    )

    dynamic = DynamicAppConfig(
        account_id=account_id,
        aws_region=region_config.aws_region,
        phx_host=main.domain,
        cdn_host=cdn.domain,
        customer_media_bucket=Ref("customer-media", "bucket_name"),
        customer_media_cdn_url=f"https://{cdn.domain}/customer-media/",
        email_domain=email.domain,
        email_events_queue_url=Ref("email-events", "queue_url"),
        tracking_domain=tracking.domain,
    )

    def secret(target: str, key: str) -> Dict[str, Any]:
        return {"secret": Ref(target, "secret"), "field": key}

    declarations.append(
        Declaration(
            "app-service",
            DeclarationKind.SERVICE,
            {
                "name": APP_NAME,
                "cluster": Ref("cluster", "cluster"),
                "capacity_provider": Ref("cluster", "capacity_provider"),
                "image": Ref("image", "asset"),
                "domain": main.domain,
                "zone": Ref(_zone_decl(main.zone.key), "zone"),
                "certificate": Ref(_certificate_decl(DomainRole.MAIN), "certificate"),
                "command": "/app/bin/server",
                "environment": merge_app_config(static_env, dynamic),
                "secrets": {
                    "POSTGRES_USER": secret("postgres", "username"),
                    "POSTGRES_PASSWORD": secret("postgres", "password"),
                    "POSTGRES_HOST": secret("postgres", "host"),
                    "POSTGRES_PORT": secret("postgres", "port"),
                    "POSTGRES_DB_NAME": secret("postgres", "dbname"),
                    "REDIS_HOST": secret("general-secret", "REDIS_HOST"),
                    "REDIS_PORT": secret("general-secret", "REDIS_PORT"),
                    "REDIS_AUTH_TOKEN": secret("redis", "auth_token"),
                    "SECRET_KEY_BASE": secret("general-secret", "SECRET_KEY_BASE"),
                    "OPEN_AI_KEY": secret("general-secret", "OPEN_AI_KEY"),
                    "GOOGLE_OAUTH_CLIENT_ID": secret("general-secret", "GOOGLE_OAUTH_CLIENT_ID"),
                    "GOOGLE_OAUTH_SECRET": secret("general-secret", "GOOGLE_OAUTH_SECRET"),
                },
                "container_port": CONTAINER_PORT,
                "memory_reservation": 512,
                "min_healthy_percent": 50,
                "stop_timeout_seconds": 30,
                "health_check_path": "/health/ready",
                "health_check_command": "/app/bin/health",
                "log_retention_days": env_config.log_retention_days,
                "scaling": {
                    "desired_count": compute.desired_count,
                    "min_capacity": compute.min_capacity,
                    "max_capacity": compute.max_capacity,
                    "target_cpu_utilization": compute.target_cpu_utilization,
                    "scale_in_cooldown_seconds": compute.scale_in_cooldown_seconds,
                    "scale_out_cooldown_seconds": compute.scale_out_cooldown_seconds,
                },
            },
            # The service must not take traffic before the schema is migrated
            depends_on=("migration",),
            grants=(
                Grant("app-service", "general-secret", ("secretsmanager:GetSecretValue",)),
                Grant("app-service", "postgres", ("secretsmanager:GetSecretValue",)),
                Grant("app-service", "redis", ("secretsmanager:GetSecretValue",)),
                Grant("app-service", "customer-media", ("s3:GetObject", "s3:PutObject", "s3:DeleteObject")),
                Grant(
                    "app-service",
                    "email-events",
                    ("sqs:ReceiveMessage", "sqs:DeleteMessage", "sqs:GetQueueAttributes"),
                ),
            ),
            ingress=(
                Ingress(
                    "app-service",
                    "postgres",
                    POSTGRES_PORT,
                    f"Allow traffic from app to Postgres on port {POSTGRES_PORT}",
                ),
                Ingress(
                    "app-service",
                    "redis",
                    REDIS_PORT,
                    f"Allow traffic from app to Redis on port {REDIS_PORT}",
                ),
            ),
        )
    )

    declarations += [
        Declaration(
            "waf",
            DeclarationKind.WAF,
            {
                "name": f"{APP_NAME}-waf",
                "associations": {f"{APP_NAME}-alb": Ref("app-service", "load_balancer_arn")},
                "allowed_path_prefixes": ("/api", "/webhook"),
                "blocked_path_prefixes": ("/health",),
            },
        ),
        Declaration(
            "app-cdn",
            DeclarationKind.CDN,
            {
                "name": f"{APP_NAME}-cdn",
                "domain": app_cdn.domain,
                "zone": Ref(_zone_decl(app_cdn.zone.key), "zone"),
                "certificate": Ref(_certificate_decl(DomainRole.APP_CDN), "certificate"),
                "default_origin": Ref("app-service", "origin"),
                "default_policies": LOAD_BALANCER_POLICIES,
                "additional_origins": {"customer-media/*": Ref("customer-media", "origin")},
                "additional_policies": BUCKET_POLICIES,
            },
        ),
        Declaration(
            "media-cdn",
            DeclarationKind.CDN,
            {
                "name": f"{APP_NAME}-media-cdn",
                "domain": cdn.domain,
                "zone": Ref(_zone_decl(cdn.zone.key), "zone"),
                "certificate": Ref(_certificate_decl(DomainRole.CDN), "certificate"),
                "default_origin": Ref("customer-media", "origin"),
                "default_policies": BUCKET_POLICIES,
                "additional_origins": {},
                "additional_policies": BUCKET_POLICIES,
            },
        ),
        Declaration(
            "www-redirect",
            DeclarationKind.REDIRECT,
            {
                "name": "www-to-main",
                "zone": Ref(_zone_decl(www.zone.key), "zone"),
                "certificate": Ref(_certificate_decl(DomainRole.WWW), "certificate"),
                "to_domain": main.domain,
                "from_domains": (www.domain,),
                "retain": env_config.retain_data,
            },
        ),
        Declaration(
            "com-redirect",
            DeclarationKind.REDIRECT,
            {
                "name": "com-to-main",
                "zone": Ref(_zone_decl(com.zone.key), "zone"),
                "certificate": Ref(_certificate_decl(DomainRole.COM), "certificate"),
                "to_domain": main.domain,
                "from_domains": (com.domain,),
                "retain": env_config.retain_data,
            },
        ),
        Declaration(
            "email",
            DeclarationKind.EMAIL,
            {
                "name": f"{APP_NAME}-app-ses",
                "domain": email.domain,
                "zone": Ref(_zone_decl(email.zone.key), "zone"),
                "mail_from_prefix": "envelope",
                "rua_email": f"dmarc@{email.domain}",
                "ruf_email": f"dmarc@{email.domain}",
                "tracking_domain": tracking.domain,
                "tracking_zone": Ref(_zone_decl(tracking.zone.key), "zone"),
                "tracking_certificate": Ref(_certificate_decl(DomainRole.TRACKING), "certificate"),
                "event_topic": Ref("email-events", "topic"),
            },
            grants=(Grant("app-service", "email", ("ses:SendEmail", "ses:SendRawEmail")),),
        ),
    ]

    ordered = order_declarations(declarations)
    logger.info(
        "Composed %d declarations for %s/%s", len(ordered), region.value, environment.value
    )
    return OrderedDeclarationSet(region=region, environment=environment, declarations=ordered)
