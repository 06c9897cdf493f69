from dataclasses import dataclass

from aws_cdk import (
    aws_certificatemanager as acm,
    aws_cloudfront as cloudfront,
    aws_cloudfront_origins as origins,
    aws_ecs as ecs,
    aws_ecs_patterns as ecs_patterns,
    aws_elasticloadbalancingv2 as elbv2,
    aws_iam as iam,
    aws_logs as logs,
    aws_route53 as route53,
    Duration,
    Tags,
)
from constructs import Construct
from typing import Dict, Optional


@dataclass
class ScalingSettings:
    desired_count: int
    min_capacity: int
    max_capacity: int
    target_cpu_utilization: int
    scale_in_cooldown: Duration
    scale_out_cooldown: Duration


class ApplicationService(Construct):
    """
    Load balanced ECS service for the web application
    HTTPS on the main domain, CPU target tracking with fixed cooldowns
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        name: str,
        cluster: ecs.ICluster,
        capacity_provider: ecs.AsgCapacityProvider,
        image: ecs.ContainerImage,
        domain: str,
        zone: route53.IHostedZone,
        certificate: acm.ICertificate,
        command: str,
        environment: Dict[str, str],
        secrets: Dict[str, ecs.Secret],
        scaling: ScalingSettings,
        container_port: int = 8000,
        memory_reservation: int = 512,
        min_healthy_percent: int = 50,
        stop_timeout: Duration = Duration.seconds(30),
        health_check_path: str = "/health/ready",
        health_check_command: Optional[str] = None,
        log_retention: logs.RetentionDays = logs.RetentionDays.ONE_WEEK,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.domain = domain

        self.task_definition = ecs.Ec2TaskDefinition(
            self, f"{name}-task", network_mode=ecs.NetworkMode.AWS_VPC
        )

        container_health_check = None
        if health_check_command:
            container_health_check = ecs.HealthCheck(
                command=["CMD-SHELL", health_check_command],
                interval=Duration.seconds(30),
                timeout=Duration.seconds(5),
                retries=3,
                start_period=Duration.seconds(60),
            )

        container = self.task_definition.add_container(
            "web",
            image=image,
            command=[command],
            environment=environment,
            secrets=secrets,
            memory_reservation_mib=memory_reservation,
            stop_timeout=stop_timeout,
            health_check=container_health_check,
            logging=ecs.LogDrivers.aws_logs(
                stream_prefix=f"{name}-web", log_retention=log_retention
            ),
        )
        container.add_port_mappings(ecs.PortMapping(container_port=container_port))

        self.service = ecs_patterns.ApplicationLoadBalancedEc2Service(
            self,
            name,
            cluster=cluster,
            service_name=name,
            task_definition=self.task_definition,
            desired_count=scaling.desired_count,
            min_healthy_percent=min_healthy_percent,
            domain_name=domain,
            domain_zone=zone,
            certificate=certificate,
            protocol=elbv2.ApplicationProtocol.HTTPS,
            redirect_http=True,
            public_load_balancer=True,
            capacity_provider_strategies=[
                ecs.CapacityProviderStrategy(
                    capacity_provider=capacity_provider.capacity_provider_name,
                    weight=100,
                )
            ],
        )

        self.service.target_group.configure_health_check(
            path=health_check_path,
            healthy_http_codes="200",
            interval=Duration.seconds(30),
            timeout=Duration.seconds(5),
            healthy_threshold_count=2,
            unhealthy_threshold_count=3,
        )

        self.load_balancer = self.service.load_balancer
        self.load_balancer_arn = self.load_balancer.load_balancer_arn
        self.connections = self.service.service.connections

        self._create_scaling_policy(scaling)

        Tags.of(self).add("Component", "Application")

    def _create_scaling_policy(self, scaling: ScalingSettings):
        """Scale the task count on average CPU utilization"""
        task_count = self.service.service.auto_scale_task_count(
            min_capacity=scaling.min_capacity,
            max_capacity=scaling.max_capacity,
        )
        task_count.scale_on_cpu_utilization(
            "CpuScaling",
            target_utilization_percent=scaling.target_cpu_utilization,
            scale_in_cooldown=scaling.scale_in_cooldown,
            scale_out_cooldown=scaling.scale_out_cooldown,
        )

    @property
    def origin(self) -> cloudfront.IOrigin:
        # The load balancer certificate covers the main domain, not the ALB hostname
        return origins.HttpOrigin(
            self.domain, protocol_policy=cloudfront.OriginProtocolPolicy.HTTPS_ONLY
        )

    @property
    def grantee(self) -> iam.IGrantable:
        return self.task_definition.task_role
