from aws_cdk import (
    aws_iam as iam,
    custom_resources as cr,
    Duration,
)
from constructs import Construct
from typing import Any, Dict


def scanning_configuration(scan_type: str) -> Dict[str, Any]:
    """Registry scanning configuration covering every repository"""
    return {
        "scanType": scan_type,
        "rules": [
            {
                "repositoryFilters": [{"filter": "*", "filterType": "WILDCARD"}],
                "scanFrequency": "SCAN_ON_PUSH",
            }
        ],
    }


class ContainerScanning(Construct):
    """
    Enhanced ECR image scanning on push for the whole registry.

    Reverts the registry to basic scanning when the stack is deleted.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        name: str,
        timeout: Duration = Duration.minutes(5),
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        def configure(scan_type: str) -> cr.AwsSdkCall:
            return cr.AwsSdkCall(
                service="ECR",
                action="putRegistryScanningConfiguration",
                parameters=scanning_configuration(scan_type),
                physical_resource_id=cr.PhysicalResourceId.of(name),
            )

        self.scanning = cr.AwsCustomResource(
            self,
            f"enable-ecr-scan-{name}",
            on_create=configure("ENHANCED"),
            on_delete=configure("BASIC"),
            policy=cr.AwsCustomResourcePolicy.from_sdk_calls(
                resources=cr.AwsCustomResourcePolicy.ANY_RESOURCE
            ),
            timeout=timeout,
        )

        # Enhanced scanning is backed by Inspector, which has to be enabled first
        self.scanning.grant_principal.add_to_principal_policy(
            iam.PolicyStatement(
                actions=[
                    "inspector2:ListAccountPermissions",
                    "inspector2:Enable",
                    "iam:CreateServiceLinkedRole",
                ],
                resources=["*"],
            )
        )
