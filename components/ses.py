import logging

import tldextract
from aws_cdk import (
    aws_certificatemanager as acm,
    aws_cloudfront as cloudfront,
    aws_cloudfront_origins as origins,
    aws_route53 as route53,
    aws_route53_targets as targets,
    aws_ses as ses,
    aws_sns as sns,
    CfnOutput,
    Stack,
    Token,
)
from constructs import Construct
from typing import List, Optional, Tuple

from config.errors import ConfigurationError
from synthesis.naming import domain_slug

logger = logging.getLogger(__name__)

# Offline: only the public suffix snapshot bundled with tldextract is used
_extract = tldextract.TLDExtract(suffix_list_urls=())

SENDING_EVENTS = [
    ses.EmailSendingEvent.SEND,
    ses.EmailSendingEvent.REJECT,
    ses.EmailSendingEvent.BOUNCE,
    ses.EmailSendingEvent.COMPLAINT,
    ses.EmailSendingEvent.DELIVERY,
    ses.EmailSendingEvent.RENDERING_FAILURE,
    ses.EmailSendingEvent.DELIVERY_DELAY,
    ses.EmailSendingEvent.SUBSCRIPTION,
]

SPF_VALUE = "v=spf1 include:amazonses.com ~all"


def split_domain(domain: str) -> Tuple[str, str]:
    """Split a sending domain into (subdomain, registered domain)"""
    parts = _extract(domain)
    if not parts.domain or not parts.suffix or not parts.subdomain:
        raise ConfigurationError(f"Invalid email domain: {domain}")
    return parts.subdomain, f"{parts.domain}.{parts.suffix}"


def _within(name: str, parent: str) -> bool:
    return name == parent or name.endswith(f".{parent}")


def check_zone(domain: str, zone_name: str) -> None:
    """The sending domain must sit in the zone, and the zone in its registered domain"""
    _, registered = split_domain(domain)
    zone = zone_name.rstrip(".").lower()
    if not (_within(domain.lower(), zone) and _within(zone, registered)):
        raise ConfigurationError(
            f"Email domain {domain} cannot be verified in hosted zone {zone_name}"
        )


def dmarc_value(rua_email: Optional[str] = None, ruf_email: Optional[str] = None) -> str:
    value = "v=DMARC1; p=none; "
    if rua_email:
        value += f"rua=mailto:{rua_email}; "
    if ruf_email:
        value += f"ruf=mailto:{ruf_email}; "
    return value.strip()


class EmailSending(Construct):
    """
    SES sending for one domain.

    Creates the configuration set, publishes sending events to the given
    topic and verifies the domain identity with DKIM, SPF, DMARC and a custom
    MAIL FROM. When a tracking domain is given, open and click tracking is
    served from it through CloudFront.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        name: str,
        zone: route53.IHostedZone,
        domain: str,
        mail_from_prefix: str,
        event_topic: sns.ITopic,
        rua_email: Optional[str] = None,
        ruf_email: Optional[str] = None,
        tracking_domain: Optional[str] = None,
        tracking_zone: Optional[route53.IHostedZone] = None,
        tracking_certificate: Optional[acm.ICertificate] = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        subdomain, registered = split_domain(domain)
        if not Token.is_unresolved(zone.zone_name):
            check_zone(domain, zone.zone_name)
        logger.debug("Email domain %s is %s under %s", domain, subdomain, registered)
        region = Stack.of(self).region

        self.click_distribution = None
        if tracking_domain:
            if tracking_zone is None or tracking_certificate is None:
                raise ConfigurationError(
                    f"Tracking domain {tracking_domain} needs a zone and a certificate"
                )
            self.click_distribution = self._create_click_tracking(
                name, region, tracking_domain, tracking_zone, tracking_certificate
            )

        config_set_name = f"{name}-config-set"
        self.config_set = ses.ConfigurationSet(
            self,
            config_set_name,
            configuration_set_name=config_set_name,
            reputation_metrics=True,
            tls_policy=ses.ConfigurationSetTlsPolicy.REQUIRE,
            sending_enabled=True,
            suppression_reasons=ses.SuppressionReasons.BOUNCES_AND_COMPLAINTS,
            custom_tracking_redirect_domain=tracking_domain,
        )
        if self.click_distribution is not None:
            self.config_set.node.add_dependency(self.click_distribution)

        destination_name = f"{name}-notification-destination"
        ses.ConfigurationSetEventDestination(
            self,
            destination_name,
            configuration_set=self.config_set,
            configuration_set_event_destination_name=destination_name,
            destination=ses.EventDestination.sns_topic(event_topic),
            events=SENDING_EVENTS,
        )

        self.identity = self._create_domain_identity(
            zone, domain, mail_from_prefix, rua_email, ruf_email, region
        )
        self.identities = [self.identity]

    def _create_click_tracking(
        self,
        name: str,
        region: str,
        domain: str,
        zone: route53.IHostedZone,
        certificate: acm.ICertificate,
    ) -> cloudfront.Distribution:
        cache_policy = cloudfront.CachePolicy(
            self,
            f"{name}-ses-cache",
            cache_policy_name=f"{name}-ses-cache-policy",
            comment="Policy to cache host header",
            header_behavior=cloudfront.CacheHeaderBehavior.allow_list("Host"),
        )
        distribution = cloudfront.Distribution(
            self,
            f"{name}-ses-click-distribution",
            default_behavior=cloudfront.BehaviorOptions(
                origin=origins.HttpOrigin(f"r.{region}.awstrack.me"),
                cache_policy=cache_policy,
            ),
            domain_names=[domain],
            certificate=certificate,
        )
        route53.ARecord(
            self,
            f"{name}-ses-click-record",
            zone=zone,
            record_name=domain,
            target=route53.RecordTarget.from_alias(targets.CloudFrontTarget(distribution)),
        )
        return distribution

    def _create_domain_identity(
        self,
        zone: route53.IHostedZone,
        domain: str,
        mail_from_prefix: str,
        rua_email: Optional[str],
        ruf_email: Optional[str],
        region: str,
    ) -> ses.EmailIdentity:
        slug = domain_slug(domain)
        mail_from_domain = f"{mail_from_prefix}.{domain}"

        identity = ses.EmailIdentity(
            self,
            f"{slug}-identity",
            identity=ses.Identity.domain(domain),
            mail_from_domain=mail_from_domain,
            configuration_set=self.config_set,
            mail_from_behavior_on_mx_failure=ses.MailFromBehaviorOnMxFailure.REJECT_MESSAGE,
        )

        dkim_tokens = [
            (identity.dkim_dns_token_name1, identity.dkim_dns_token_value1),
            (identity.dkim_dns_token_name2, identity.dkim_dns_token_value2),
            (identity.dkim_dns_token_name3, identity.dkim_dns_token_value3),
        ]
        for i, (token_name, token_value) in enumerate(dkim_tokens, start=1):
            route53.CnameRecord(
                self,
                f"{slug}-dkim-token-{i}",
                zone=zone,
                record_name=f"{token_name}.",
                domain_name=token_value,
                comment=f"SES DKIM Record {i} for {domain}",
            )
            CfnOutput(
                self,
                f"{slug}-dkim-token-value-{i}",
                description=f"SES DKIM CNAME Record {i}",
                value=f"{token_name}. CNAME {token_value}.dkim.amazonses.com",
            )

        route53.TxtRecord(
            self,
            f"{slug}-txt-recordset",
            zone=zone,
            record_name=mail_from_domain,
            values=[SPF_VALUE, dmarc_value(rua_email, ruf_email)],
        )
        route53.MxRecord(
            self,
            f"{slug}-mx-recordset",
            zone=zone,
            record_name=mail_from_domain,
            values=[
                route53.MxRecordValue(
                    priority=10, host_name=f"feedback-smtp.{region}.amazonses.com"
                )
            ],
        )
        logger.debug("Email identity %s with MAIL FROM %s", domain, mail_from_domain)
        return identity

    @property
    def grant_arns(self) -> List[str]:
        return [identity.email_identity_arn for identity in self.identities]
