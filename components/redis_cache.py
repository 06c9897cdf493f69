import json

from aws_cdk import (
    aws_ec2 as ec2,
    aws_elasticache as elasticache,
    aws_secretsmanager as secretsmanager,
    RemovalPolicy,
    Tags
)
from cdk_nag import NagSuppressions
from constructs import Construct
from typing import List


class RedisCache(Construct):
    """
    Single node Valkey replication group with TLS and an AUTH token kept in
    Secrets Manager
    """

    def __init__(self, scope: Construct, construct_id: str,
                 vpc: ec2.IVpc,
                 name: str,
                 node_type: str,
                 port: int = 6379,
                 removal_policy: RemovalPolicy = RemovalPolicy.DESTROY,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.port = port

        subnet_group_name = f"{name}-redis-subnet-group"
        self.subnet_group = elasticache.CfnSubnetGroup(self, subnet_group_name,
            cache_subnet_group_name=subnet_group_name,
            subnet_ids=[subnet.subnet_id for subnet in vpc.private_subnets],
            description=f"Subnet group for the {name} redis cluster"
        )

        security_group_name = f"{name}-redis-security-group"
        self.security_group = ec2.SecurityGroup(self, security_group_name,
            vpc=vpc,
            security_group_name=security_group_name,
            description=f"Security group for the {name} redis cluster"
        )
        self.connections = self.security_group.connections

        secret_name = f"{name}-redis-auth-token"
        self.secret = secretsmanager.Secret(self, secret_name,
            secret_name=secret_name,
            description=f"AUTH token for {name} Redis Cluster",
            generate_secret_string=secretsmanager.SecretStringGenerator(
                secret_string_template=json.dumps({}),
                generate_string_key="auth_token",
                password_length=24,
                exclude_punctuation=True
            ),
            removal_policy=removal_policy
        )

        auth_token = self.secret.secret_value_from_json("auth_token").unsafe_unwrap()

        self.cluster = elasticache.CfnReplicationGroup(self, name,
            port=port,
            engine="valkey",
            engine_version="7.2",
            auth_token=auth_token,
            cluster_mode="disabled",
            replication_group_description=f"{name} Redis Cluster",
            num_cache_clusters=1,
            cache_node_type=f"cache.{node_type}",
            cache_subnet_group_name=self.subnet_group.cache_subnet_group_name,
            cache_parameter_group_name="default.valkey7",
            security_group_ids=[self.security_group.security_group_id],
            automatic_failover_enabled=False,
            auto_minor_version_upgrade=True,
            at_rest_encryption_enabled=True,
            transit_encryption_enabled=True
        )
        self.cluster.add_dependency(self.subnet_group)
        self.cluster.node.add_dependency(self.secret)

        NagSuppressions.add_resource_suppressions(self, [
            {"id": "AwsSolutions-AEC5", "reason": "Default Redis port inside private subnets"},
        ], apply_to_children=True)

        Tags.of(self).add("Component", "Cache")

    @property
    def grant_arns(self) -> List[str]:
        return [self.secret.secret_arn]
