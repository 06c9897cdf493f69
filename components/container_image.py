from aws_cdk import aws_ecr_assets as ecr_assets
from constructs import Construct
from typing import Dict, List, Optional


class ContainerImage(Construct):
    """ARM64 Docker image built from the application repository root"""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        asset_name: str,
        directory: str,
        exclude: Optional[List[str]] = None,
        build_args: Optional[Dict[str, str]] = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.asset = ecr_assets.DockerImageAsset(
            self,
            asset_name,
            directory=directory,
            exclude=exclude or [],
            build_args=build_args or {},
            platform=ecr_assets.Platform.LINUX_ARM64,
            asset_name=asset_name,
        )
