import dataclasses
from types import MappingProxyType

import pytest
from config.domains import DomainRole
from config.environments import Environment
from config.errors import ConfigurationError, CrossRegionReferenceError, DependencyCycleError
from config.regions import EDGE_REGION, Region
from synthesis.composer import (
    Declaration,
    DeclarationKind,
    Grant,
    Ingress,
    Ref,
    compose,
    order_declarations,
)

PAIRS = [(region, environment) for region in Region for environment in Environment]


def _compose(inputs):
    return compose(
        inputs["region"],
        inputs["environment"],
        inputs["domains"],
        inputs["certificates"],
        env_config=inputs["env_config"],
        region_config=inputs["region_config"],
        account_id=inputs["account_id"],
    )


class TestCompose:
    """Test the declarations of the regional application stack"""

    @pytest.mark.parametrize("region,environment", PAIRS)
    def test_references_point_backwards(self, composition_inputs, region, environment):
        """Test every reference names a declaration emitted earlier"""
        declarations = _compose(composition_inputs(region, environment))
        seen = set()

        for declaration in declarations:
            for name in declaration.references():
                assert name in seen, f"{declaration.name} references {name} before it exists"
            seen.add(declaration.name)

    @pytest.mark.parametrize("region,environment", PAIRS)
    def test_migration_before_service(self, composition_inputs, region, environment):
        """Test the schema migration always comes before the application service"""
        declarations = _compose(composition_inputs(region, environment))

        assert declarations.index("migration") < declarations.index("app-service")
        assert "migration" in declarations.get("app-service").depends_on

    def test_declaration_order(self, composition_inputs):
        """Test the full declaration order of a stack"""
        declarations = _compose(composition_inputs(Region.EU, Environment.PROD))

        assert declarations.names() == (
            "vpc",
            "cluster-namespace",
            "zone-tools",
            "zone-commerce",
            "general-secret",
            "certificate-main",
            "certificate-app-cdn",
            "certificate-cdn",
            "certificate-www",
            "certificate-com",
            "certificate-tracking",
            "postgres",
            "postgres-backup",
            "redis",
            "customer-media",
            "email-events",
            "cluster",
            "container-scanning",
            "image",
            "migration",
            "app-service",
            "waf",
            "app-cdn",
            "media-cdn",
            "www-redirect",
            "com-redirect",
            "email",
        )

    def test_edge_certificates_from_edge_region(self, composition_inputs):
        """Test CDN certificates are handles to the edge region"""
        declarations = _compose(composition_inputs(Region.US, Environment.PROD))

        edge = declarations.of_kind(DeclarationKind.EDGE_CERTIFICATE)
        assert len(edge) == 5
        for declaration in edge:
            assert declaration.properties["handle"].region == EDGE_REGION

        main = declarations.get("certificate-main").properties["handle"]
        assert main.region == "us-east-2"

    def test_cdn_uses_edge_certificate(self, composition_inputs):
        """Test the app CDN is wired to its edge certificate and the service origin"""
        declarations = _compose(composition_inputs(Region.EU, Environment.PROD))
        app_cdn = declarations.get("app-cdn")

        assert app_cdn.properties["certificate"] == Ref("certificate-app-cdn", "certificate")
        assert app_cdn.properties["default_origin"] == Ref("app-service", "origin")
        assert app_cdn.properties["domain"] == "cdn.eu.passwordless.tools"
        assert app_cdn.properties["zone"] == Ref("zone-tools", "zone")

    def test_cdn_policies_follow_origin(self, composition_inputs):
        """Test only the load balancer origin receives every viewer header"""
        declarations = _compose(composition_inputs(Region.EU, Environment.DEV))
        app_cdn = declarations.get("app-cdn").properties
        media_cdn = declarations.get("media-cdn").properties

        assert app_cdn["default_policies"]["origin_request_policy"] == "all-viewer"
        assert app_cdn["additional_policies"]["origin_request_policy"] is None
        assert media_cdn["default_policies"] == {
            "cache_policy": "caching-optimized",
            "origin_request_policy": None,
        }

    def test_cluster_namespace_and_scanning(self, composition_inputs):
        """Test the private namespace sits on the VPC and scanning is named per environment"""
        declarations = _compose(composition_inputs(Region.US, Environment.DEV))
        namespace = declarations.get("cluster-namespace")

        assert namespace.kind is DeclarationKind.NAMESPACE
        assert namespace.properties["name"] == "passwordless.tools.internal"
        assert namespace.references() == ("vpc",)
        assert declarations.get("container-scanning").properties["name"] == "dev-app"
        assert declarations.index("container-scanning") < declarations.index("image")

    def test_service_environment(self, composition_inputs):
        """Test the container environment merges static and computed values"""
        declarations = _compose(composition_inputs(Region.EU, Environment.PROD))
        environment = declarations.get("app-service").properties["environment"]

        assert environment["PORT"] == "8000"
        assert environment["PHX_HOST"] == "eu.passwordless.tools"
        assert environment["AWS_REGION"] == "eu-west-1"
        assert environment["AWS_ACCOUNT_ID"] == "123456789012"
        assert environment["CUSTOMER_MEDIA_BUCKET"] == Ref("customer-media", "bucket_name")
        assert environment["CUSTOMER_MEDIA_CDN_URL"] == "https://cdn.eu.passwordlesstools.com/customer-media/"
        assert environment["EMAIL_EVENTS_QUEUE_URL"] == Ref("email-events", "queue_url")

    def test_migration_environment(self, composition_inputs):
        """Test the migration runs with the static config and the migration flag"""
        declarations = _compose(composition_inputs(Region.EU, Environment.DEV))
        environment = declarations.get("migration").properties["environment"]

        assert environment["DATABASE_MIGRATION"] == "true"
        assert "PHX_HOST" not in environment

    def test_least_privilege(self, composition_inputs):
        """Test grants and ingress rules"""
        declarations = _compose(composition_inputs(Region.EU, Environment.PROD))

        email = declarations.get("email")
        assert email.grants == (Grant("app-service", "email", ("ses:SendEmail", "ses:SendRawEmail")),)

        service = declarations.get("app-service")
        targets = {(rule.target, rule.port) for rule in service.ingress}
        assert targets == {("postgres", 5432), ("redis", 6379)}

        migration = declarations.get("migration")
        assert {rule.target for rule in migration.ingress} == {"postgres"}
        assert {grant.resource for grant in migration.grants} == {"general-secret", "postgres"}

    def test_environment_sizing(self, composition_inputs):
        """Test prod gets a read replica and retained data, dev does not"""
        prod = _compose(composition_inputs(Region.EU, Environment.PROD)).get("postgres")
        dev = _compose(composition_inputs(Region.EU, Environment.DEV)).get("postgres")

        assert prod.properties["replica_instance_type"] is not None
        assert prod.properties["retain"] is True
        assert dev.properties["replica_instance_type"] is None
        assert dev.properties["retain"] is False

    def test_waf_protects_load_balancer(self, composition_inputs):
        """Test the WAF is associated with the service load balancer"""
        waf = _compose(composition_inputs(Region.EU, Environment.DEV)).get("waf")

        assert waf.properties["associations"] == {
            "passwordless-tools-alb": Ref("app-service", "load_balancer_arn")
        }
        assert "/api" in waf.properties["allowed_path_prefixes"]

    def test_missing_app_cdn_certificate(self, composition_inputs):
        """Test composing without the app CDN certificate fails before declaring anything"""
        inputs = composition_inputs(Region.EU, Environment.PROD)
        certificates = inputs["certificates"]
        edge = {role: ref for role, ref in certificates.edge.items() if role is not DomainRole.APP_CDN}
        inputs["certificates"] = dataclasses.replace(certificates, edge=MappingProxyType(edge))

        with pytest.raises(CrossRegionReferenceError, match="app-cdn"):
            _compose(inputs)

    def test_mismatched_inputs(self, composition_inputs):
        """Test inputs resolved for another pair are rejected"""
        inputs = composition_inputs(Region.EU, Environment.PROD)
        inputs["domains"] = composition_inputs(Region.US, Environment.PROD)["domains"]

        with pytest.raises(ConfigurationError, match="domain set"):
            _compose(inputs)

    def test_unknown_environment(self, composition_inputs):
        """Test an unregistered environment fails before any declaration"""
        inputs = composition_inputs(Region.EU, Environment.PROD)
        inputs["environment"] = "staging"

        with pytest.raises(ConfigurationError, match="staging"):
            _compose(inputs)


class TestOrderDeclarations:
    """Test dependency ordering"""

    def test_keeps_given_order(self):
        """Test independent declarations keep their order"""
        declarations = [Declaration(name, DeclarationKind.BUCKET) for name in ("a", "b", "c")]

        assert [d.name for d in order_declarations(declarations)] == ["a", "b", "c"]

    def test_forward_reference_moves_later(self):
        """Test a declaration waits for what it references"""
        declarations = [
            Declaration("a", DeclarationKind.SERVICE, {"bucket": Ref("c", "bucket")}),
            Declaration("b", DeclarationKind.BUCKET),
            Declaration("c", DeclarationKind.BUCKET),
        ]

        assert [d.name for d in order_declarations(declarations)] == ["b", "c", "a"]

    def test_references_from_grants_and_ingress(self):
        """Test grants, ingress and explicit dependencies count as references"""
        declaration = Declaration(
            "svc",
            DeclarationKind.SERVICE,
            {"nested": {"items": [Ref("img", "asset")]}},
            depends_on=("mig",),
            grants=(Grant("svc", "db", ("a:b",)),),
            ingress=(Ingress("svc", "cache", 6379, "redis"),),
        )

        assert declaration.references() == ("mig", "img", "db", "cache")

    def test_self_reference_ignored(self):
        """Test a declaration never depends on itself"""
        declaration = Declaration(
            "email", DeclarationKind.EMAIL, grants=(Grant("app", "email", ("ses:SendEmail",)),)
        )

        assert declaration.references() == ("app",)

    def test_cycle(self):
        """Test cycles are reported"""
        declarations = [
            Declaration("a", DeclarationKind.BUCKET, depends_on=("b",)),
            Declaration("b", DeclarationKind.BUCKET, depends_on=("a",)),
            Declaration("c", DeclarationKind.BUCKET),
        ]

        with pytest.raises(DependencyCycleError, match="a, b"):
            order_declarations(declarations)

    def test_unknown_reference(self):
        """Test references to undeclared names are rejected"""
        declarations = [Declaration("a", DeclarationKind.SERVICE, {"x": Ref("missing", "y")})]

        with pytest.raises(ConfigurationError, match="missing"):
            order_declarations(declarations)

    def test_duplicate_name(self):
        """Test names are unique"""
        declarations = [Declaration("a", DeclarationKind.BUCKET), Declaration("a", DeclarationKind.QUEUE)]

        with pytest.raises(ConfigurationError, match="twice"):
            order_declarations(declarations)

    def test_properties_are_read_only(self):
        """Test declaration properties cannot change after construction"""
        declaration = Declaration("a", DeclarationKind.BUCKET, {"name": "a"})

        with pytest.raises(TypeError):
            declaration.properties["name"] = "b"

    def test_nested_properties_are_read_only(self):
        """Test nested mappings and lists are frozen too"""
        declaration = Declaration(
            "a",
            DeclarationKind.SERVICE,
            {"environment": {"PHX_HOST": "eu.passwordless.tools"}, "exclude": [".git"]},
        )

        with pytest.raises(TypeError):
            declaration.properties["environment"]["PHX_HOST"] = "evil.example.com"
        assert declaration.properties["exclude"] == (".git",)

    def test_composed_environment_is_read_only(self, composition_inputs):
        """Test a composed service environment cannot be changed"""
        declarations = _compose(composition_inputs(Region.EU, Environment.PROD))
        environment = declarations.get("app-service").properties["environment"]

        with pytest.raises(TypeError):
            environment["PHX_HOST"] = "evil.example.com"
