import ipaddress

import pytest
from config.environments import (
    DEV_CONFIG,
    ENVIRONMENTS,
    PROD_CONFIG,
    CacheConfig,
    ComputeConfig,
    DatabaseConfig,
    Environment,
    EnvironmentConfig,
    environment_from_selector,
    resolve_environment,
)
from config.errors import ConfigurationError
from config.regions import EDGE_REGION, REGIONS, Region, resolve_region


class TestEnvironmentConfig:
    """Test environment configuration"""

    def test_production_config(self):
        """Test production configuration is valid"""
        config = PROD_CONFIG

        assert config.environment is Environment.PROD
        assert config.retain_data is True
        assert config.database.replica_instance_class is not None
        assert config.database.backup_retention_days > 0

    def test_dev_config(self):
        """Test dev configuration throws data away and has no replica"""
        config = DEV_CONFIG

        assert config.environment is Environment.DEV
        assert config.retain_data is False
        assert config.database.replica_instance_class is None

    def test_vpc_cidrs_are_different(self):
        """Test VPC CIDRs don't overlap"""
        dev = ipaddress.ip_network(DEV_CONFIG.cidr)
        prod = ipaddress.ip_network(PROD_CONFIG.cidr)

        assert not dev.overlaps(prod)

    def test_app_config_is_read_only(self):
        """Test static app config cannot be changed after construction"""
        with pytest.raises(TypeError):
            DEV_CONFIG.app_config["PORT"] = "9000"

    def test_static_config_cannot_set_dynamic_keys(self):
        """Test a static map naming a computed variable is rejected"""
        with pytest.raises(ConfigurationError, match="PHX_HOST"):
            EnvironmentConfig(
                environment=Environment.DEV,
                cidr="10.2.0.0/16",
                app_config={"PHX_HOST": "example.com"},
                general_secret_arn="arn:aws:secretsmanager:eu-west-1:000000000000:secret:x-abcdef",
                database=DatabaseConfig(instance_class="t4g.micro", backup_retention_days=0),
                cache=CacheConfig(node_type="t4g.micro"),
                compute=ComputeConfig(
                    instance_type="t4g.micro",
                    min_capacity=1,
                    max_capacity=1,
                    desired_count=1,
                    target_cpu_utilization=60,
                    scale_in_cooldown_seconds=300,
                    scale_out_cooldown_seconds=60,
                ),
                log_retention_days=7,
                deletion_protection=False,
                retain_data=False,
            )


class TestEnvironmentSelection:
    """Test environment selectors"""

    def test_unknown_environment_is_rejected(self):
        """Test staging is not a registered environment"""
        with pytest.raises(ConfigurationError, match="staging"):
            resolve_environment("staging")

    def test_selector_defaults_to_dev(self):
        """Test an absent selector picks dev"""
        assert environment_from_selector(None) is Environment.DEV
        assert environment_from_selector("") is Environment.DEV

    def test_selector_parses_known_values(self):
        """Test a set selector must name a registered environment"""
        assert environment_from_selector("prod") is Environment.PROD
        with pytest.raises(ConfigurationError):
            environment_from_selector("production")

    def test_alternate_table(self):
        """Test lookups go through the table passed in"""
        table = {Environment.DEV: DEV_CONFIG}

        assert resolve_environment("dev", table) is DEV_CONFIG
        with pytest.raises(ConfigurationError):
            resolve_environment("prod", table)

    def test_every_environment_registered(self):
        """Test the default table covers every environment"""
        assert set(ENVIRONMENTS) == set(Environment)


class TestRegions:
    """Test region configuration"""

    def test_region_mapping(self):
        """Test region selectors map to AWS regions"""
        assert resolve_region("eu").aws_region == "eu-west-1"
        assert resolve_region(Region.US).aws_region == "us-east-2"

    def test_edge_region_is_pinned(self):
        """Test CloudFront certificates live in us-east-1"""
        assert EDGE_REGION == "us-east-1"

    def test_unknown_region(self):
        """Test unknown regions are rejected"""
        with pytest.raises(ConfigurationError, match="ap"):
            resolve_region("ap")

    def test_every_region_registered(self):
        """Test the default table covers every region"""
        assert set(REGIONS) == set(Region)
