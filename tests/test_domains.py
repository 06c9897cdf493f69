from types import MappingProxyType

import pytest
from config.domains import (
    DEFAULT_DOMAIN_REGISTRY,
    ZONES,
    DomainEntry,
    DomainRegistry,
    DomainRole,
    ZoneKey,
    build_domain_table,
    is_fqdn,
    resolve_domains,
    validate_domain_table,
)
from config.environments import Environment
from config.errors import ConfigurationError, MissingZoneError
from config.regions import Region


def _registry_with(region, environment, role, entry, zones=ZONES):
    domains = {
        reg: {env: dict(entries) for env, entries in by_env.items()}
        for reg, by_env in DEFAULT_DOMAIN_REGISTRY.domains.items()
    }
    domains[region][environment][role] = entry
    return DomainRegistry(zones=zones, domains=domains)


class TestDomainResolution:
    """Test domain lookups per (region, environment)"""

    def test_prod_eu_example(self):
        """Test the production EU domains and their zones"""
        domains = resolve_domains("eu", "prod")

        assert domains[DomainRole.MAIN].domain == "eu.passwordless.tools"
        assert domains[DomainRole.CDN].domain == "cdn.eu.passwordlesstools.com"
        assert domains[DomainRole.CDN].zone.key is ZoneKey.COMMERCE
        assert domains[DomainRole.MAIN].zone.key is ZoneKey.TOOLS

    def test_dev_domains_live_in_dev_zones(self):
        """Test dev domains carry the dev token and dev zone names"""
        domains = resolve_domains(Region.US, Environment.DEV)

        assert domains[DomainRole.MAIN].domain == "us.dev.passwordless.tools"
        assert domains[DomainRole.MAIN].zone.zone_name == "dev.passwordless.tools"
        assert domains[DomainRole.TRACKING].domain == "track.us.dev.passwordlesstools.com"

    @pytest.mark.parametrize("region", list(Region))
    @pytest.mark.parametrize("environment", list(Environment))
    def test_every_role_is_a_fqdn_in_its_zone(self, region, environment):
        """Test every role resolves to a well formed domain under its zone apex"""
        domains = resolve_domains(region, environment)

        for role in DomainRole:
            attributes = domains[role]
            assert attributes.domain
            assert is_fqdn(attributes.domain)
            assert attributes.domain.endswith(attributes.zone.zone_name)

    def test_resolution_is_deterministic(self):
        """Test resolving twice yields equal values"""
        assert resolve_domains("eu", "prod") == resolve_domains("eu", "prod")

    def test_record_name(self):
        """Test record names are relative to the zone"""
        domains = resolve_domains("eu", "prod")

        assert domains[DomainRole.WWW].record_name == "www.eu"
        assert domains[DomainRole.COM].record_name == "eu"

    def test_zones_in_key_order(self):
        """Test zones are listed once each"""
        zones = resolve_domains("eu", "prod").zones()

        assert [zone.key for zone in zones] == [ZoneKey.TOOLS, ZoneKey.COMMERCE]
        assert zones[0].zone_id == "Z0737569361XQK32FNWPX"

    def test_default_table_is_valid(self):
        """Test the default table resolves for every pair"""
        validate_domain_table(DEFAULT_DOMAIN_REGISTRY)


class TestDomainErrors:
    """Test malformed domain tables"""

    def test_unknown_environment(self):
        """Test unknown environments fail before any lookup"""
        with pytest.raises(ConfigurationError, match="staging"):
            resolve_domains("eu", "staging")

    def test_missing_zone(self):
        """Test a role pointing at an unregistered zone"""
        zones = MappingProxyType(
            {env: {ZoneKey.TOOLS: by_key[ZoneKey.TOOLS]} for env, by_key in ZONES.items()}
        )
        registry = DomainRegistry(zones=zones, domains=DEFAULT_DOMAIN_REGISTRY.domains)

        with pytest.raises(MissingZoneError, match="commerce"):
            resolve_domains("eu", "prod", registry)

    def test_missing_role(self):
        """Test every role must be present"""
        table = build_domain_table(
            Region, Environment, {DomainRole.MAIN: (ZoneKey.TOOLS, "{region}.{env}{apex}")}
        )
        registry = DomainRegistry(zones=ZONES, domains=table)

        with pytest.raises(ConfigurationError, match="www"):
            resolve_domains("eu", "prod", registry)

    def test_domain_outside_zone(self):
        """Test a domain must sit under its zone"""
        registry = _registry_with(
            Region.EU,
            Environment.PROD,
            DomainRole.MAIN,
            DomainEntry(zone=ZoneKey.TOOLS, domain="eu.example.com"),
        )

        with pytest.raises(ConfigurationError, match="outside zone"):
            resolve_domains("eu", "prod", registry)
        with pytest.raises(ConfigurationError):
            validate_domain_table(registry)

    def test_malformed_domain(self):
        """Test domains must be valid FQDNs"""
        registry = _registry_with(
            Region.EU,
            Environment.PROD,
            DomainRole.MAIN,
            DomainEntry(zone=ZoneKey.TOOLS, domain="bad_label.passwordless.tools"),
        )

        with pytest.raises(ConfigurationError, match="FQDN"):
            resolve_domains("eu", "prod", registry)


class TestFqdn:
    """Test FQDN validation"""

    @pytest.mark.parametrize(
        "domain", ["eu.passwordless.tools", "cdn.eu.dev.passwordlesstools.com", "a.io"]
    )
    def test_valid(self, domain):
        assert is_fqdn(domain)

    @pytest.mark.parametrize("domain", ["", "localhost", "-a.com", "a..com", "UPPER.com"])
    def test_invalid(self, domain):
        assert not is_fqdn(domain)
