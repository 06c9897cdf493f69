import logging
from types import SimpleNamespace

from aws_cdk import (
    Stack,
    aws_backup as backup,
    aws_cloudfront as cloudfront,
    aws_ec2 as ec2,
    aws_ecs as ecs,
    aws_iam as iam,
    aws_logs as logs,
    aws_route53 as route53,
    aws_secretsmanager as secretsmanager,
    aws_servicediscovery as servicediscovery,
    Duration,
    RemovalPolicy,
    Tags
)
from constructs import Construct
from typing import Any, Callable, Dict, Mapping, Optional

from components.application_service import ApplicationService, ScalingSettings
from components.backup import BackupSchedule
from components.cdn import ContentDistribution
from components.certificate import DnsValidatedCertificate
from components.container_image import ContainerImage
from components.container_scanning import ContainerScanning
from components.ecs_cluster import EcsCluster
from components.email_events import EmailEvents
from components.media_bucket import MediaBucket
from components.migration import DatabaseMigration
from components.postgres import Postgres
from components.redirect import DomainRedirect
from components.redis_cache import RedisCache
from components.secure_vpc import SecureVpc
from components.ses import EmailSending
from components.waf import WebApplicationFirewall
from config.errors import ConfigurationError, CrossRegionReferenceError
from synthesis.composer import Declaration, DeclarationKind, OrderedDeclarationSet, Ref
from synthesis.naming import APP_NAME

logger = logging.getLogger(__name__)

RETENTION_DAYS: Mapping[int, logs.RetentionDays] = {
    1: logs.RetentionDays.ONE_DAY,
    3: logs.RetentionDays.THREE_DAYS,
    5: logs.RetentionDays.FIVE_DAYS,
    7: logs.RetentionDays.ONE_WEEK,
    14: logs.RetentionDays.TWO_WEEKS,
    30: logs.RetentionDays.ONE_MONTH,
    90: logs.RetentionDays.THREE_MONTHS,
    180: logs.RetentionDays.SIX_MONTHS,
    365: logs.RetentionDays.ONE_YEAR,
}


def log_retention(days: int) -> logs.RetentionDays:
    try:
        return RETENTION_DAYS[days]
    except KeyError:
        raise ConfigurationError(f"Unsupported log retention of {days} days") from None


def removal_policy(retain: bool) -> RemovalPolicy:
    return RemovalPolicy.RETAIN if retain else RemovalPolicy.DESTROY


CACHE_POLICIES: Mapping[str, cloudfront.ICachePolicy] = {
    "caching-optimized": cloudfront.CachePolicy.CACHING_OPTIMIZED,
    "caching-disabled": cloudfront.CachePolicy.CACHING_DISABLED,
    "use-origin-cache-control-headers": cloudfront.CachePolicy.USE_ORIGIN_CACHE_CONTROL_HEADERS,
}

ORIGIN_REQUEST_POLICIES: Mapping[str, cloudfront.IOriginRequestPolicy] = {
    "all-viewer": cloudfront.OriginRequestPolicy.ALL_VIEWER,
    "cors-s3-origin": cloudfront.OriginRequestPolicy.CORS_S3_ORIGIN,
}


def distribution_policies(policies: Mapping[str, Optional[str]]) -> Dict[str, Any]:
    """CloudFront policy objects for a policy selection; no name means no policy"""
    cache = policies.get("cache_policy")
    origin_request = policies.get("origin_request_policy")
    for name, table in ((cache, CACHE_POLICIES), (origin_request, ORIGIN_REQUEST_POLICIES)):
        if name is not None and name not in table:
            raise ConfigurationError(f"Unknown CloudFront policy '{name}'")
    return {
        "cache_policy": CACHE_POLICIES[cache] if cache else None,
        "origin_request_policy": ORIGIN_REQUEST_POLICIES[origin_request] if origin_request else None,
    }


class PasswordlessToolsStack(Stack):
    """
    Application stack for one (region, environment) pair.

    Builds the ordered declarations one by one; every reference resolves to a
    resource built earlier in the same walk. Edge certificates come from the
    pinned edge stack through cross-region references.
    """

    def __init__(self, scope: Construct, construct_id: str,
                 declarations: OrderedDeclarationSet,
                 edge_certificates: Mapping[str, Any],
                 **kwargs) -> None:
        super().__init__(scope, construct_id, cross_region_references=True, **kwargs)

        self.declarations = declarations
        self.edge_certificates = edge_certificates
        self.resources: Dict[str, Any] = {}

        # Fail before anything is built when the edge stack lacks a certificate
        for declaration in declarations.of_kind(DeclarationKind.EDGE_CERTIFICATE):
            self._edge_certificate_for(declaration.properties["handle"])

        handlers: Dict[DeclarationKind, Callable[[Declaration, Dict[str, Any]], Any]] = {
            DeclarationKind.NETWORK: self._network,
            DeclarationKind.NAMESPACE: self._namespace,
            DeclarationKind.HOSTED_ZONE: self._hosted_zone,
            DeclarationKind.SECRET: self._secret,
            DeclarationKind.CERTIFICATE: self._certificate,
            DeclarationKind.EDGE_CERTIFICATE: self._edge_certificate,
            DeclarationKind.DATABASE: self._database,
            DeclarationKind.BACKUP: self._backup,
            DeclarationKind.CACHE: self._cache,
            DeclarationKind.BUCKET: self._bucket,
            DeclarationKind.QUEUE: self._queue,
            DeclarationKind.CLUSTER: self._cluster,
            DeclarationKind.SCANNING: self._scanning,
            DeclarationKind.IMAGE: self._image,
            DeclarationKind.MIGRATION: self._migration,
            DeclarationKind.SERVICE: self._service,
            DeclarationKind.WAF: self._waf,
            DeclarationKind.CDN: self._cdn,
            DeclarationKind.REDIRECT: self._redirect,
            DeclarationKind.EMAIL: self._email,
        }

        for declaration in declarations:
            props = self._resolve(declaration.properties)
            self.resources[declaration.name] = handlers[declaration.kind](declaration, props)
            logger.debug("Built %s (%s)", declaration.name, declaration.kind.value)

        for declaration in declarations:
            self._wire(declaration)

        # Tags
        Tags.of(self).add("Environment", declarations.environment.value)
        Tags.of(self).add("Region", declarations.region.value)
        Tags.of(self).add("Application", APP_NAME)

    def _resolve(self, value: Any) -> Any:
        if isinstance(value, Ref):
            return getattr(self.resources[value.target], value.attribute)
        if isinstance(value, Mapping):
            return {key: self._resolve(item) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._resolve(item) for item in value]
        return value

    def _wire(self, declaration: Declaration) -> None:
        """Apply explicit ordering, IAM grants and security group ingress"""
        node = self.resources[declaration.name]
        for name in declaration.depends_on:
            node.node.add_dependency(self.resources[name])

        for grant in declaration.grants:
            iam.Grant.add_to_principal(
                grantee=self.resources[grant.principal].grantee,
                actions=list(grant.actions),
                resource_arns=self.resources[grant.resource].grant_arns,
            )

        for rule in declaration.ingress:
            self.resources[rule.target].connections.allow_from(
                self.resources[rule.source].connections,
                ec2.Port.tcp(rule.port),
                rule.description,
            )

    def _network(self, declaration, props):
        return SecureVpc(self, declaration.name,
            name=props["name"],
            cidr=props["cidr"],
            cidr_mask=props["cidr_mask"],
            max_azs=props["max_azs"],
            enable_flow_logs=props["flow_logs"],
            log_retention=log_retention(props["log_retention_days"]),
        )

    def _namespace(self, declaration, props):
        return servicediscovery.PrivateDnsNamespace(self, declaration.name,
            name=props["name"],
            vpc=props["vpc"],
            description=props["description"],
        )

    def _hosted_zone(self, declaration, props):
        zone = route53.HostedZone.from_hosted_zone_attributes(self, declaration.name,
            hosted_zone_id=props["zone_id"],
            zone_name=props["zone_name"],
        )
        return SimpleNamespace(zone=zone, node=zone.node)

    def _secret(self, declaration, props):
        secret = secretsmanager.Secret.from_secret_complete_arn(self, declaration.name, props["arn"])
        return SimpleNamespace(secret=secret, grant_arns=[secret.secret_arn], node=secret.node)

    def _certificate(self, declaration, props):
        handle = props["handle"]
        return DnsValidatedCertificate(self, handle.id,
            name=handle.id,
            zone=props["zone"],
            domain=props["domain"],
        )

    def _edge_certificate_for(self, handle):
        certificate = self.edge_certificates.get(handle.id)
        if certificate is None:
            raise CrossRegionReferenceError(
                f"Edge certificate {handle.id} for {handle.domain} was not built in "
                f"{handle.region} ({handle.stack_name})"
            )
        return certificate

    def _edge_certificate(self, declaration, props):
        certificate = self._edge_certificate_for(props["handle"])
        return SimpleNamespace(certificate=certificate, node=certificate.node)

    def _database(self, declaration, props):
        return Postgres(self, declaration.name,
            vpc=props["vpc"],
            name=props["name"],
            instance_type=props["instance_type"],
            port=props["port"],
            replica_instance_type=props["replica_instance_type"],
            backup_retention_days=props["backup_retention_days"],
            deletion_protection=props["deletion_protection"],
            removal_policy=removal_policy(props["retain"]),
        )

    def _backup(self, declaration, props):
        return BackupSchedule(self, declaration.name,
            plan_name=props["plan_name"],
            resources=[backup.BackupResource.from_rds_database_instance(props["resource"])],
            rate_hours=props["rate_hours"],
            completion_window=Duration.hours(props["completion_window_hours"]),
            delete_after=Duration.days(props["delete_after_days"]),
        )

    def _cache(self, declaration, props):
        return RedisCache(self, declaration.name,
            vpc=props["vpc"],
            name=props["name"],
            node_type=props["node_type"],
            port=props["port"],
            removal_policy=removal_policy(props["retain"]),
        )

    def _bucket(self, declaration, props):
        return MediaBucket(self, declaration.name,
            name=props["name"],
            removal_policy=removal_policy(props["retain"]),
        )

    def _queue(self, declaration, props):
        return EmailEvents(self, declaration.name,
            name=props["name"],
            removal_policy=removal_policy(props["retain"]),
        )

    def _cluster(self, declaration, props):
        return EcsCluster(self, declaration.name,
            vpc=props["vpc"],
            name=props["name"],
            instance_type=props["instance_type"],
            min_capacity=props["min_capacity"],
            max_capacity=props["max_capacity"],
        )

    def _scanning(self, declaration, props):
        return ContainerScanning(self, declaration.name,
            name=props["name"],
            timeout=Duration.minutes(props["timeout_minutes"]),
        )

    def _image(self, declaration, props):
        return ContainerImage(self, declaration.name,
            asset_name=props["asset_name"],
            directory=props["directory"],
            exclude=list(props["exclude"]),
            build_args=props["build_args"],
        )

    def _migration(self, declaration, props):
        return DatabaseMigration(self, declaration.name,
            vpc=props["vpc"],
            name=props["name"],
            image=props["image"],
            general_secret=props["general_secret"],
            postgres_secret=props["postgres_secret"],
            environment=props["environment"],
            log_retention=log_retention(props["log_retention_days"]),
            timeout=Duration.minutes(props["timeout_minutes"]),
            memory_size=props["memory_size"],
        )

    def _service(self, declaration, props):
        scaling = props["scaling"]
        secrets = {
            key: ecs.Secret.from_secrets_manager(value["secret"], value["field"])
            for key, value in props["secrets"].items()
        }
        return ApplicationService(self, declaration.name,
            name=props["name"],
            cluster=props["cluster"],
            capacity_provider=props["capacity_provider"],
            image=ecs.ContainerImage.from_docker_image_asset(props["image"]),
            domain=props["domain"],
            zone=props["zone"],
            certificate=props["certificate"],
            command=props["command"],
            environment=props["environment"],
            secrets=secrets,
            scaling=ScalingSettings(
                desired_count=scaling["desired_count"],
                min_capacity=scaling["min_capacity"],
                max_capacity=scaling["max_capacity"],
                target_cpu_utilization=scaling["target_cpu_utilization"],
                scale_in_cooldown=Duration.seconds(scaling["scale_in_cooldown_seconds"]),
                scale_out_cooldown=Duration.seconds(scaling["scale_out_cooldown_seconds"]),
            ),
            container_port=props["container_port"],
            memory_reservation=props["memory_reservation"],
            min_healthy_percent=props["min_healthy_percent"],
            stop_timeout=Duration.seconds(props["stop_timeout_seconds"]),
            health_check_path=props["health_check_path"],
            health_check_command=props["health_check_command"],
            log_retention=log_retention(props["log_retention_days"]),
        )

    def _waf(self, declaration, props):
        return WebApplicationFirewall(self, declaration.name,
            name=props["name"],
            associations=props["associations"],
            allowed_path_prefixes=props["allowed_path_prefixes"],
            blocked_path_prefixes=props["blocked_path_prefixes"],
        )

    def _cdn(self, declaration, props):
        default = distribution_policies(props["default_policies"])
        additional = distribution_policies(props["additional_policies"])
        return ContentDistribution(self, declaration.name,
            name=props["name"],
            zone=props["zone"],
            certificate=props["certificate"],
            domain=props["domain"],
            default_origin=props["default_origin"],
            additional_origins=props["additional_origins"],
            cache_policy=default["cache_policy"],
            origin_request_policy=default["origin_request_policy"],
            additional_cache_policy=additional["cache_policy"],
            additional_origin_request_policy=additional["origin_request_policy"],
        )

    def _redirect(self, declaration, props):
        return DomainRedirect(self, declaration.name,
            name=props["name"],
            zone=props["zone"],
            certificate=props["certificate"],
            to_domain=props["to_domain"],
            from_domains=list(props["from_domains"]),
            removal_policy=removal_policy(props["retain"]),
        )

    def _email(self, declaration, props):
        return EmailSending(self, declaration.name,
            name=props["name"],
            zone=props["zone"],
            domain=props["domain"],
            mail_from_prefix=props["mail_from_prefix"],
            event_topic=props["event_topic"],
            rua_email=props["rua_email"],
            ruf_email=props["ruf_email"],
            tracking_domain=props["tracking_domain"],
            tracking_zone=props["tracking_zone"],
            tracking_certificate=props["tracking_certificate"],
        )
