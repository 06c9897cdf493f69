from aws_cdk import (
    aws_rds as rds,
    aws_ec2 as ec2,
    RemovalPolicy,
    Duration,
    Tags
)
from cdk_nag import NagSuppressions
from constructs import Construct
from typing import List, Optional


class Postgres(Construct):
    """
    PostgreSQL instance with generated admin credentials and an optional
    read replica. The credentials secret carries username, password, host,
    port and dbname, which is what the app and the migration lambda read.
    """

    def __init__(self, scope: Construct, construct_id: str,
                 vpc: ec2.IVpc,
                 name: str,
                 instance_type: str,
                 port: int = 5432,
                 replica_instance_type: Optional[str] = None,
                 backup_retention_days: int = 0,
                 deletion_protection: bool = False,
                 removal_policy: RemovalPolicy = RemovalPolicy.DESTROY,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.port = port
        engine = rds.DatabaseInstanceEngine.postgres(
            version=rds.PostgresEngineVersion.VER_17
        )
        subnets = ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS)

        self.instance = rds.DatabaseInstance(self, name,
            vpc=vpc,
            vpc_subnets=subnets,
            instance_type=ec2.InstanceType(instance_type),
            engine=engine,
            port=port,
            database_name=name,
            credentials=rds.Credentials.from_generated_secret(
                "postgres",
                secret_name=f"{name}-db-admin",
                exclude_characters=" %+~`#$&*()|[]{}:;<>?!'/@\"\\",
            ),
            backup_retention=Duration.days(backup_retention_days),
            deletion_protection=deletion_protection,
            delete_automated_backups=not deletion_protection,
            removal_policy=removal_policy,
            storage_encrypted=True,
            publicly_accessible=False,
            enable_performance_insights=True,
            monitoring_interval=Duration.seconds(10),
            allow_major_version_upgrade=True
        )
        self.secret = self.instance.secret
        self.connections = self.instance.connections

        self.replica = None
        if replica_instance_type:
            self.replica = rds.DatabaseInstanceReadReplica(self, f"{name}-replica",
                vpc=vpc,
                vpc_subnets=subnets,
                instance_type=ec2.InstanceType(replica_instance_type),
                source_database_instance=self.instance,
                storage_encrypted=True,
                deletion_protection=deletion_protection,
                delete_automated_backups=not deletion_protection,
                removal_policy=removal_policy,
                publicly_accessible=False,
                enable_performance_insights=True,
                monitoring_interval=Duration.seconds(10)
            )

        NagSuppressions.add_resource_suppressions(self, [
            {"id": "AwsSolutions-RDS11", "reason": "Default Postgres port inside private subnets"},
        ], apply_to_children=True)

        Tags.of(self).add("Component", "Database")

    @property
    def grant_arns(self) -> List[str]:
        return [self.secret.secret_arn]
