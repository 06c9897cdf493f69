from aws_cdk import (
    aws_ec2 as ec2,
    aws_iam as iam,
    aws_logs as logs,
    RemovalPolicy,
    Tags
)
from constructs import Construct


class SecureVpc(Construct):
    """
    Application VPC with public/private subnets, VPC flow logs to CloudWatch
    and interface endpoints for the services the ECS tasks talk to
    """

    def __init__(self, scope: Construct, construct_id: str,
                 name: str,
                 cidr: str = "10.0.0.0/16",
                 cidr_mask: int = 18,
                 max_azs: int = 3,
                 enable_flow_logs: bool = True,
                 log_retention: logs.RetentionDays = logs.RetentionDays.ONE_WEEK,
                 removal_policy: RemovalPolicy = RemovalPolicy.DESTROY,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.vpc = ec2.Vpc(self, name,
            vpc_name=name,
            ip_addresses=ec2.IpAddresses.cidr(cidr),
            max_azs=max_azs,
            enable_dns_hostnames=True,
            enable_dns_support=True,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="public",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=cidr_mask,
                    map_public_ip_on_launch=True
                ),
                ec2.SubnetConfiguration(
                    name="private",
                    subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                    cidr_mask=cidr_mask
                )
            ]
        )

        if enable_flow_logs:
            flow_log_role = iam.Role(self, f"{name}-vpc-role",
                assumed_by=iam.ServicePrincipal("vpc-flow-logs.amazonaws.com")
            )

            self.flow_log_group = logs.LogGroup(self, f"{name}-flow-log-group",
                retention=log_retention,
                removal_policy=removal_policy
            )
            self.flow_log_group.grant_write(flow_log_role)

            self.flow_logs = ec2.FlowLog(self, f"{name}-flow-log",
                resource_type=ec2.FlowLogResourceType.from_vpc(self.vpc),
                destination=ec2.FlowLogDestination.to_cloud_watch_logs(self.flow_log_group, flow_log_role),
                traffic_type=ec2.FlowLogTrafficType.ALL
            )

        self._add_endpoints(name)

        Tags.of(self).add("Component", "Networking")

    def _add_endpoints(self, name: str):
        """Keep image pulls, secrets and queue traffic inside the VPC"""
        self.vpc.add_gateway_endpoint(f"{name}-s3-endpoint",
            service=ec2.GatewayVpcEndpointAwsService.S3
        )

        interface_endpoints = {
            "ecs": ec2.InterfaceVpcEndpointAwsService.ECS,
            "ecs-agent": ec2.InterfaceVpcEndpointAwsService.ECS_AGENT,
            "ecs-telemetry": ec2.InterfaceVpcEndpointAwsService.ECS_TELEMETRY,
            "ecr": ec2.InterfaceVpcEndpointAwsService.ECR,
            "ecr-docker": ec2.InterfaceVpcEndpointAwsService.ECR_DOCKER,
            "secrets-manager": ec2.InterfaceVpcEndpointAwsService.SECRETS_MANAGER,
            "sqs": ec2.InterfaceVpcEndpointAwsService.SQS,
        }
        for endpoint, service in interface_endpoints.items():
            self.vpc.add_interface_endpoint(f"{name}-{endpoint}-endpoint", service=service)
