import logging
from dataclasses import dataclass
from typing import Dict, Tuple

from config.domains import DomainRole
from config.environments import Environment
from config.errors import CrossRegionReferenceError
from config.regions import Region

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CertificateHandle:
    """
    Capability for a certificate owned by some stack.

    Only identity and metadata travel between stacks; certificate material
    never leaves the provisioning system.
    """

    id: str
    role: DomainRole
    domain: str
    zone_name: str
    region: str
    stack_name: str


@dataclass(frozen=True)
class CrossRegionReference:
    handle: CertificateHandle
    consumer_region: str

    @property
    def is_cross_region(self) -> bool:
        return self.handle.region != self.consumer_region


class CertificateBridge:
    """
    Hands certificates produced by the pinned edge stack to regional stacks.

    The edge pass publishes one handle per (region, environment, role); a
    regional stack may only reference what was published.
    """

    def __init__(self) -> None:
        self._published: Dict[Tuple[Region, Environment, DomainRole], CertificateHandle] = {}

    def publish(
        self,
        region: Region,
        environment: Environment,
        role: DomainRole,
        handle: CertificateHandle,
    ) -> None:
        key = (region, environment, role)
        existing = self._published.get(key)
        if existing is not None and existing != handle:
            raise CrossRegionReferenceError(
                f"Certificate for {region.value}/{environment.value}/{role.value} already "
                f"published as '{existing.id}', refusing '{handle.id}'"
            )
        self._published[key] = handle
        logger.debug("Published %s for %s/%s/%s", handle.id, region.value, environment.value, role.value)

    def reference(
        self,
        region: Region,
        environment: Environment,
        role: DomainRole,
        consumer_region: str,
    ) -> CrossRegionReference:
        handle = self._published.get((region, environment, role))
        if handle is None:
            raise CrossRegionReferenceError(
                f"No '{role.value}' certificate was resolved in the edge region for "
                f"{region.value}/{environment.value}"
            )
        return CrossRegionReference(handle=handle, consumer_region=consumer_region)

    def published(self, environment: Environment) -> Tuple[CertificateHandle, ...]:
        handles = []
        for (_, env, _), handle in self._published.items():
            if env == environment and handle not in handles:
                handles.append(handle)
        return tuple(handles)
