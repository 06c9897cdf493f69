from types import MappingProxyType

import pytest
from config.domains import DEFAULT_DOMAIN_REGISTRY, DomainRegistry, DomainRole, resolve_domains
from config.environments import Environment
from config.errors import CrossRegionReferenceError, MissingZoneError
from config.regions import EDGE_REGION, Region
from synthesis.bridge import CertificateBridge, CertificateHandle
from synthesis.certificates import TLS_PLACEMENTS, CertificateResolver, Placement


@pytest.fixture
def resolver():
    return CertificateResolver()


class TestEdgeCertificates:
    """Test certificates requested in the pinned edge region"""

    def test_edge_records_live_in_edge_region(self, resolver):
        """Test every edge certificate is provisioned in us-east-1"""
        records = resolver.resolve_edge_certificates("prod")

        assert records
        for record in records:
            assert record.placement is Placement.EDGE
            assert record.handle.region == EDGE_REGION
            assert record.handle.stack_name == "prod-edge-certificates"

    def test_edge_records_cover_every_region(self, resolver):
        """Test one record per edge role per region"""
        records = resolver.resolve_edge_certificates("dev")
        edge_roles = [r for r, p in TLS_PLACEMENTS.items() if p is Placement.EDGE]

        assert len(records) == len(edge_roles) * len(Region)
        assert len({record.handle.id for record in records}) == len(records)

    def test_handle_id_from_domain(self, resolver):
        """Test handle ids are derived from the domain"""
        records = resolver.resolve_edge_certificates("prod")
        ids = {record.domain: record.handle.id for record in records}

        assert ids["cdn.eu.passwordlesstools.com"] == "cdn-eu-passwordlesstools-com-certificate"

    def test_edge_resolution_is_cached(self, resolver):
        """Test repeated resolution reuses the same records"""
        first = resolver.resolve_edge_certificates("prod")
        second = resolver.resolve_edge_certificates("prod")

        assert first == second
        assert all(a is b for a, b in zip(first, second))

    def test_missing_zone_publishes_nothing(self):
        """Test a registry without zones fails the edge pass before any handle is published"""
        registry = DomainRegistry(zones=MappingProxyType({}), domains=DEFAULT_DOMAIN_REGISTRY.domains)
        resolver = CertificateResolver(domains=registry)

        with pytest.raises(MissingZoneError):
            resolver.resolve_edge_certificates("prod")
        assert resolver.bridge.published(Environment.PROD) == ()


class TestRegionalCertificates:
    """Test the certificate set of one (region, environment)"""

    def test_regional_certificate_in_target_region(self, resolver):
        """Test the load balancer certificate is issued where the stack runs"""
        resolver.resolve_edge_certificates("prod")
        certificates = resolver.resolve_certificates("us", "prod")

        handle = certificates.require(DomainRole.MAIN)
        assert handle.region == "us-east-2"
        assert handle.domain == "us.passwordless.tools"
        assert handle.stack_name == "us-prod-stack"

    @pytest.mark.parametrize("region", list(Region))
    @pytest.mark.parametrize("environment", list(Environment))
    def test_edge_roles_never_in_target_region(self, resolver, region, environment):
        """Test CDN facing certificates come from the edge region only"""
        resolver.resolve_edge_certificates(environment)
        certificates = resolver.resolve_certificates(region, environment)

        for role in (DomainRole.CDN, DomainRole.APP_CDN, DomainRole.WWW, DomainRole.COM, DomainRole.TRACKING):
            reference = certificates.edge[role]
            assert reference.handle.region == EDGE_REGION
            assert reference.is_cross_region

    def test_resolution_is_deterministic(self, resolver):
        """Test resolving a pair twice gives equal sets"""
        resolver.resolve_edge_certificates("prod")

        assert resolver.resolve_certificates("eu", "prod") == resolver.resolve_certificates("eu", "prod")

    def test_fresh_resolvers_agree(self):
        """Test independent resolvers produce equal values"""
        first, second = CertificateResolver(), CertificateResolver()
        first.resolve_edge_certificates("dev")
        second.resolve_edge_certificates("dev")

        assert first.resolve_certificates("eu", "dev") == second.resolve_certificates("eu", "dev")

    def test_edge_pass_required(self, resolver):
        """Test regional resolution needs the edge pass to have run"""
        with pytest.raises(CrossRegionReferenceError):
            resolver.resolve_certificates("eu", "prod")

    def test_email_has_no_certificate(self, resolver):
        """Test the email role does not terminate TLS"""
        resolver.resolve_edge_certificates("prod")
        certificates = resolver.resolve_certificates("eu", "prod")

        with pytest.raises(CrossRegionReferenceError, match="email"):
            certificates.require(DomainRole.EMAIL)
        assert len(certificates.handles()) == len(TLS_PLACEMENTS)

    def test_accepts_resolved_domains(self, resolver):
        """Test a resolved domain set can be passed in"""
        resolver.resolve_edge_certificates("dev")
        domains = resolve_domains("eu", "dev")

        certificates = resolver.resolve_certificates("eu", "dev", domains)
        assert certificates.require(DomainRole.MAIN).domain == domains[DomainRole.MAIN].domain


class TestCertificateBridge:
    """Test handing edge certificates to regional stacks"""

    def _handle(self, id="a-certificate"):
        return CertificateHandle(
            id=id,
            role=DomainRole.CDN,
            domain="cdn.eu.passwordlesstools.com",
            zone_name="passwordlesstools.com",
            region=EDGE_REGION,
            stack_name="prod-edge-certificates",
        )

    def test_reference_published(self):
        """Test a published handle can be referenced"""
        bridge = CertificateBridge()
        bridge.publish(Region.EU, Environment.PROD, DomainRole.CDN, self._handle())

        reference = bridge.reference(Region.EU, Environment.PROD, DomainRole.CDN, "eu-west-1")
        assert reference.handle == self._handle()
        assert reference.consumer_region == "eu-west-1"
        assert bridge.published(Environment.PROD) == (self._handle(),)
        assert bridge.published(Environment.DEV) == ()

    def test_unpublished_reference(self):
        """Test referencing a certificate nobody produced"""
        with pytest.raises(CrossRegionReferenceError, match="app-cdn"):
            CertificateBridge().reference(Region.EU, Environment.PROD, DomainRole.APP_CDN, "eu-west-1")

    def test_republish_same_handle(self):
        """Test publishing the same handle twice is harmless"""
        bridge = CertificateBridge()
        bridge.publish(Region.EU, Environment.PROD, DomainRole.CDN, self._handle())
        bridge.publish(Region.EU, Environment.PROD, DomainRole.CDN, self._handle())

    def test_conflicting_publish(self):
        """Test a different handle for the same slot is refused"""
        bridge = CertificateBridge()
        bridge.publish(Region.EU, Environment.PROD, DomainRole.CDN, self._handle())

        with pytest.raises(CrossRegionReferenceError):
            bridge.publish(Region.EU, Environment.PROD, DomainRole.CDN, self._handle("b-certificate"))
