from aws_cdk import (
    aws_certificatemanager as acm,
    aws_route53 as route53,
)
from constructs import Construct


class DnsValidatedCertificate(Construct):
    """ACM certificate for a domain and its wildcard, validated through Route 53"""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        name: str,
        zone: route53.IHostedZone,
        domain: str,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.domain = domain
        self.certificate = acm.Certificate(
            self,
            f"{name}-domain-certificate",
            domain_name=domain,
            subject_alternative_names=[f"*.{domain}"],
            validation=acm.CertificateValidation.from_dns(zone),
        )
