import logging

from aws_cdk import (
    Stack,
    aws_certificatemanager as acm,
    aws_route53 as route53,
    Tags
)
from constructs import Construct
from typing import Dict, Iterable

from components.certificate import DnsValidatedCertificate
from config.environments import Environment
from config.errors import ConfigurationError
from synthesis.certificates import CertificateRecord, Placement
from synthesis.naming import APP_NAME

logger = logging.getLogger(__name__)


class EdgeCertificatesStack(Stack):
    """
    Certificates for CloudFront distributions of every region.

    CloudFront only accepts certificates from the edge region, so this stack
    is pinned there and regional stacks reference its certificates across
    regions.
    """

    def __init__(self, scope: Construct, construct_id: str,
                 environment: Environment,
                 records: Iterable[CertificateRecord],
                 **kwargs) -> None:
        super().__init__(scope, construct_id, cross_region_references=True, **kwargs)

        self.certificates: Dict[str, acm.ICertificate] = {}
        zones: Dict[str, route53.IHostedZone] = {}

        for record in records:
            if record.placement is not Placement.EDGE:
                raise ConfigurationError(
                    f"Certificate for {record.domain} is not an edge certificate"
                )
            handle = record.handle
            if handle.id in self.certificates:
                continue

            zone = zones.get(record.zone.zone_id)
            if zone is None:
                zone = route53.HostedZone.from_hosted_zone_attributes(
                    self, f"{record.zone.key.value}-zone",
                    hosted_zone_id=record.zone.zone_id,
                    zone_name=record.zone.zone_name,
                )
                zones[record.zone.zone_id] = zone

            certificate = DnsValidatedCertificate(self, handle.id,
                name=handle.id,
                zone=zone,
                domain=handle.domain,
            )
            self.certificates[handle.id] = certificate.certificate
            logger.debug("Edge certificate %s for %s", handle.id, handle.domain)

        # Tags
        Tags.of(self).add("Environment", environment.value)
        Tags.of(self).add("Scope", "Edge")
        Tags.of(self).add("Application", APP_NAME)
