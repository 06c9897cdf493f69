from aws_cdk import (
    aws_cloudfront as cloudfront,
    aws_cloudfront_origins as origins,
    aws_s3 as s3,
    RemovalPolicy,
)
from constructs import Construct
from typing import List


class MediaBucket(Construct):
    """Private, versioned bucket served to browsers only through CloudFront"""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        name: str,
        removal_policy: RemovalPolicy = RemovalPolicy.DESTROY,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.bucket = s3.Bucket(
            self,
            f"{name}-bucket",
            removal_policy=removal_policy,
            auto_delete_objects=removal_policy == RemovalPolicy.DESTROY,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            encryption=s3.BucketEncryption.S3_MANAGED,
            enforce_ssl=True,
            versioned=True,
        )
        self.bucket_name = self.bucket.bucket_name

    @property
    def origin(self) -> cloudfront.IOrigin:
        return origins.S3BucketOrigin.with_origin_access_control(self.bucket)

    @property
    def grant_arns(self) -> List[str]:
        return [self.bucket.bucket_arn, self.bucket.arn_for_objects("*")]
