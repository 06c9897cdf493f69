import pytest
from config.domains import resolve_domains
from config.environments import resolve_environment
from config.regions import resolve_region
from synthesis.certificates import CertificateResolver


@pytest.fixture
def composition_inputs():
    """Resolved inputs for composing one (region, environment) pair"""

    def build(region, environment):
        resolver = CertificateResolver()
        resolver.resolve_edge_certificates(environment)
        domains = resolve_domains(region, environment)
        return dict(
            region=region,
            environment=environment,
            domains=domains,
            certificates=resolver.resolve_certificates(region, environment, domains),
            env_config=resolve_environment(environment),
            region_config=resolve_region(region),
            account_id="123456789012",
        )

    return build
