import hashlib

from aws_cdk import (
    aws_certificatemanager as acm,
    aws_cloudfront as cloudfront,
    aws_cloudfront_origins as origins,
    aws_route53 as route53,
    aws_route53_targets as targets,
    aws_s3 as s3,
    RemovalPolicy,
)
from constructs import Construct
from typing import List


class DomainRedirect(Construct):
    """Permanent HTTPS redirect of one or more domains to another host"""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        name: str,
        zone: route53.IHostedZone,
        certificate: acm.ICertificate,
        to_domain: str,
        from_domains: List[str],
        removal_policy: RemovalPolicy = RemovalPolicy.DESTROY,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        bucket = s3.Bucket(
            self,
            f"{name}-redirect-bucket",
            website_redirect=s3.RedirectTarget(
                host_name=to_domain, protocol=s3.RedirectProtocol.HTTPS
            ),
            removal_policy=removal_policy,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
        )

        self.distribution = cloudfront.Distribution(
            self,
            f"{name}-distribution",
            default_behavior=cloudfront.BehaviorOptions(
                origin=origins.S3StaticWebsiteOrigin(bucket),
                viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
            ),
            domain_names=from_domains,
            certificate=certificate,
            comment=f"Redirect to {to_domain} from {', '.join(from_domains)}",
        )

        alias = route53.RecordTarget.from_alias(targets.CloudFrontTarget(self.distribution))
        for domain in from_domains:
            digest = hashlib.md5(domain.encode("utf-8")).hexdigest()[:6]
            route53.ARecord(
                self, f"redirect-alias-{digest}", zone=zone, target=alias, record_name=domain
            )
            route53.AaaaRecord(
                self, f"redirect-alias-six-{digest}", zone=zone, target=alias, record_name=domain
            )
