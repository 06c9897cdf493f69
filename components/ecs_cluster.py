from aws_cdk import (
    aws_autoscaling as autoscaling,
    aws_ec2 as ec2,
    aws_ecs as ecs,
    Tags,
)
from constructs import Construct


class EcsCluster(Construct):
    """
    ECS cluster backed by an ARM Auto Scaling group registered as a managed
    capacity provider
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        vpc: ec2.IVpc,
        name: str,
        instance_type: str,
        min_capacity: int,
        max_capacity: int,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.cluster = ecs.Cluster(
            self,
            name,
            vpc=vpc,
            cluster_name=name,
            container_insights_v2=ecs.ContainerInsights.ENHANCED,
        )

        provider_name = f"{instance_type.replace('.', '-')}-asg-capacity-provider"
        self.auto_scaling_group = autoscaling.AutoScalingGroup(
            self,
            f"{instance_type.replace('.', '-')}-autoscaling-group",
            vpc=vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
            instance_type=ec2.InstanceType(instance_type),
            machine_image=ecs.EcsOptimizedImage.amazon_linux2023(ecs.AmiHardwareType.ARM),
            min_capacity=min_capacity,
            max_capacity=max_capacity,
        )

        self.capacity_provider = ecs.AsgCapacityProvider(
            self,
            provider_name,
            auto_scaling_group=self.auto_scaling_group,
            enable_managed_termination_protection=True,
            enable_managed_scaling=True,
        )
        self.cluster.add_asg_capacity_provider(self.capacity_provider)

        Tags.of(self).add("Component", "Compute")
