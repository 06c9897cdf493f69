from datetime import datetime, timezone

from aws_cdk import (
    aws_ec2 as ec2,
    aws_ecr_assets as ecr_assets,
    aws_iam as iam,
    aws_lambda as lambda_,
    aws_logs as logs,
    aws_secretsmanager as secretsmanager,
    custom_resources as cr,
    Duration,
)
from constructs import Construct
from typing import Dict


class DatabaseMigration(Construct):
    """
    One-shot schema migration.

    The application image runs as a Lambda function and a custom resource
    invokes it synchronously on every deployment, so anything depending on
    this construct is only created once the migration has finished.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        vpc: ec2.IVpc,
        name: str,
        image: ecr_assets.DockerImageAsset,
        general_secret: secretsmanager.ISecret,
        postgres_secret: secretsmanager.ISecret,
        environment: Dict[str, str],
        log_retention: logs.RetentionDays = logs.RetentionDays.ONE_WEEK,
        timeout: Duration = Duration.minutes(5),
        memory_size: int = 512,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        def from_secret(secret: secretsmanager.ISecret, key: str) -> str:
            return secret.secret_value_from_json(key).unsafe_unwrap()

        self.function = lambda_.Function(
            self,
            name,
            function_name=name,
            vpc=vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
            code=lambda_.Code.from_ecr_image(image.repository, tag_or_digest=image.image_tag),
            runtime=lambda_.Runtime.FROM_IMAGE,
            handler=lambda_.Handler.FROM_IMAGE,
            architecture=lambda_.Architecture.ARM_64,
            environment={
                "POSTGRES_USER": from_secret(postgres_secret, "username"),
                "POSTGRES_PASSWORD": from_secret(postgres_secret, "password"),
                "POSTGRES_HOST": from_secret(postgres_secret, "host"),
                "POSTGRES_PORT": from_secret(postgres_secret, "port"),
                "POSTGRES_DB_NAME": from_secret(postgres_secret, "dbname"),
                "SECRET_KEY_BASE": from_secret(general_secret, "SECRET_KEY_BASE"),
                **environment,
            },
            log_group=logs.LogGroup(self, f"{name}-logs", retention=log_retention),
            timeout=timeout,
            memory_size=memory_size,
        )
        self.connections = self.function.connections
        self.function.node.add_dependency(image)

        # A fresh physical id makes CloudFormation run the invocation on every deploy
        resource_id = f"{name}-{datetime.now(timezone.utc).isoformat()}"
        invoke = cr.AwsSdkCall(
            service="Lambda",
            action="invoke",
            parameters={"FunctionName": self.function.function_name},
            physical_resource_id=cr.PhysicalResourceId.of(resource_id),
        )
        self.invocation = cr.AwsCustomResource(
            self,
            f"{name}-custom-resource",
            on_create=invoke,
            on_update=invoke,
            policy=cr.AwsCustomResourcePolicy.from_statements(
                [
                    iam.PolicyStatement(
                        actions=["lambda:InvokeFunction"],
                        resources=[self.function.function_arn],
                    )
                ]
            ),
            timeout=timeout,
        )

    @property
    def grantee(self) -> iam.IGrantable:
        return self.function
