import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

from config.domains import (
    DEFAULT_DOMAIN_REGISTRY,
    DomainAttributes,
    DomainRegistry,
    DomainRole,
    DomainSet,
    HostedZoneRef,
    resolve_domains,
)
from config.environments import Environment
from config.errors import CrossRegionReferenceError
from config.regions import EDGE_REGION, REGIONS, Region, RegionConfig, resolve_region
from synthesis.bridge import CertificateBridge, CertificateHandle, CrossRegionReference
from synthesis.naming import application_stack_name, domain_slug, edge_stack_name

logger = logging.getLogger(__name__)


class Placement(str, Enum):
    EDGE = "edge"
    REGIONAL = "regional"


# Roles terminating TLS and where their certificate lives. EMAIL has none.
TLS_PLACEMENTS: Mapping[DomainRole, Placement] = MappingProxyType(
    {
        DomainRole.MAIN: Placement.REGIONAL,
        DomainRole.WWW: Placement.EDGE,
        DomainRole.CDN: Placement.EDGE,
        DomainRole.APP_CDN: Placement.EDGE,
        DomainRole.COM: Placement.EDGE,
        DomainRole.TRACKING: Placement.EDGE,
    }
)


@dataclass(frozen=True)
class CertificateRecord:
    role: DomainRole
    domain: str
    zone: HostedZoneRef
    placement: Placement
    handle: CertificateHandle


@dataclass(frozen=True)
class CertificateSet:
    region: Region
    environment: Environment
    regional: Mapping[DomainRole, CertificateRecord]
    edge: Mapping[DomainRole, CrossRegionReference]

    def require(self, role: DomainRole) -> CertificateHandle:
        if role in self.regional:
            return self.regional[role].handle
        if role in self.edge:
            return self.edge[role].handle
        raise CrossRegionReferenceError(
            f"No certificate resolved for role '{role.value}' in "
            f"{self.region.value}/{self.environment.value}"
        )

    def handles(self) -> Tuple[CertificateHandle, ...]:
        return tuple(r.handle for r in self.regional.values()) + tuple(
            ref.handle for ref in self.edge.values()
        )


class CertificateResolver:
    """
    Derives the certificates every (region, environment) pair needs.

    Edge certificates are requested in the pinned edge region by one stack for
    all regions; regional certificates are requested in the region of the load
    balancer that uses them. One record exists per (zone, domain, provisioning
    region) for the lifetime of the resolver.
    """

    def __init__(
        self,
        domains: DomainRegistry = DEFAULT_DOMAIN_REGISTRY,
        regions: Mapping[Region, RegionConfig] = REGIONS,
        edge_region: str = EDGE_REGION,
        bridge: Optional[CertificateBridge] = None,
        edge_stack_namer: Callable[[Environment], str] = edge_stack_name,
        regional_stack_namer: Callable[[Region, Environment], str] = application_stack_name,
    ) -> None:
        self.domains = domains
        self.regions = regions
        self.edge_region = edge_region
        self.bridge = bridge if bridge is not None else CertificateBridge()
        self._edge_stack_namer = edge_stack_namer
        self._regional_stack_namer = regional_stack_namer
        self._cache: Dict[Tuple[str, str, str, str], CertificateRecord] = {}

    def _record(
        self,
        attributes: DomainAttributes,
        placement: Placement,
        provisioning_region: str,
        stack_name: str,
    ) -> CertificateRecord:
        key = (attributes.zone.zone_id, attributes.zone.zone_name, attributes.domain, provisioning_region)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Reusing certificate %s for %s", cached.handle.id, attributes.role.value)
            return cached

        handle = CertificateHandle(
            id=f"{domain_slug(attributes.domain)}-certificate",
            role=attributes.role,
            domain=attributes.domain,
            zone_name=attributes.zone.zone_name,
            region=provisioning_region,
            stack_name=stack_name,
        )
        record = CertificateRecord(
            role=attributes.role,
            domain=attributes.domain,
            zone=attributes.zone,
            placement=placement,
            handle=handle,
        )
        self._cache[key] = record
        return record

    def resolve_edge_certificates(
        self, environment: Union[Environment, str]
    ) -> Tuple[CertificateRecord, ...]:
        """Records for the pinned edge stack, covering every registered region"""
        env = Environment.parse(environment)
        stack_name = self._edge_stack_namer(env)

        # Resolve every region before recording anything so a missing zone
        # fails the pass with nothing published.
        domain_sets = [resolve_domains(region, env, self.domains) for region in self.domains.domains]

        records: List[CertificateRecord] = []
        for domains in domain_sets:
            for role, placement in TLS_PLACEMENTS.items():
                if placement is not Placement.EDGE:
                    continue
                record = self._record(domains[role], placement, self.edge_region, stack_name)
                self.bridge.publish(domains.region, env, role, record.handle)
                if record not in records:
                    records.append(record)

        logger.info(
            "Resolved %d edge certificates for %s in %s", len(records), env.value, self.edge_region
        )
        return tuple(records)

    def resolve_certificates(
        self,
        region: Union[Region, str],
        environment: Union[Environment, str],
        domains: Optional[DomainSet] = None,
    ) -> CertificateSet:
        reg = Region.parse(region)
        env = Environment.parse(environment)
        region_config = resolve_region(reg, self.regions)
        if domains is None:
            domains = resolve_domains(reg, env, self.domains)
        stack_name = self._regional_stack_namer(reg, env)

        regional = {}
        edge = {}
        for role, placement in TLS_PLACEMENTS.items():
            if placement is Placement.REGIONAL:
                regional[role] = self._record(
                    domains[role], placement, region_config.aws_region, stack_name
                )
            else:
                edge[role] = self.bridge.reference(reg, env, role, region_config.aws_region)

        return CertificateSet(
            region=reg,
            environment=env,
            regional=MappingProxyType(regional),
            edge=MappingProxyType(edge),
        )
