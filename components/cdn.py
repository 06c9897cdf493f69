from aws_cdk import (
    aws_certificatemanager as acm,
    aws_cloudfront as cloudfront,
    aws_route53 as route53,
    aws_route53_targets as targets,
)
from constructs import Construct
from typing import Dict, Optional


class ContentDistribution(Construct):
    """
    CloudFront distribution on a custom domain with A/AAAA alias records.

    Cache and origin request policies are set per origin type: an S3 origin
    signed with OAC takes no origin request policy, since forwarding the
    viewer Host header breaks the signature.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        name: str,
        zone: route53.IHostedZone,
        certificate: acm.ICertificate,
        domain: str,
        default_origin: cloudfront.IOrigin,
        additional_origins: Optional[Dict[str, cloudfront.IOrigin]] = None,
        cache_policy: Optional[cloudfront.ICachePolicy] = None,
        origin_request_policy: Optional[cloudfront.IOriginRequestPolicy] = None,
        additional_cache_policy: Optional[cloudfront.ICachePolicy] = None,
        additional_origin_request_policy: Optional[cloudfront.IOriginRequestPolicy] = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        additional_behaviors = {
            path: cloudfront.BehaviorOptions(
                origin=origin,
                viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
                cache_policy=additional_cache_policy or cloudfront.CachePolicy.CACHING_OPTIMIZED,
                origin_request_policy=additional_origin_request_policy,
            )
            for path, origin in (additional_origins or {}).items()
        }

        self.distribution = cloudfront.Distribution(
            self,
            f"{name}-cf-distribution",
            domain_names=[domain],
            certificate=certificate,
            default_behavior=cloudfront.BehaviorOptions(
                origin=default_origin,
                viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
                cache_policy=cache_policy or cloudfront.CachePolicy.CACHING_OPTIMIZED,
                origin_request_policy=origin_request_policy,
            ),
            additional_behaviors=additional_behaviors,
        )

        alias = route53.RecordTarget.from_alias(targets.CloudFrontTarget(self.distribution))
        self.a_record = route53.ARecord(
            self, f"{name}-cf-a-record", zone=zone, target=alias, record_name=f"{domain}."
        )
        self.aaaa_record = route53.AaaaRecord(
            self, f"{name}-cf-aaaa-record", zone=zone, target=alias, record_name=f"{domain}."
        )
