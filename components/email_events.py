from aws_cdk import (
    aws_sns as sns,
    aws_sns_subscriptions as subscriptions,
    aws_sqs as sqs,
    RemovalPolicy,
)
from constructs import Construct
from typing import List


class EmailEvents(Construct):
    """SNS topic for SES sending events, fanned out to a queue the app consumes"""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        name: str,
        removal_policy: RemovalPolicy = RemovalPolicy.DESTROY,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.topic = sns.Topic(
            self,
            f"{name}-topic",
            topic_name=name,
            display_name="SES Email Notifications",
            enforce_ssl=True,
        )

        self.queue = sqs.Queue(
            self,
            f"{name}-queue",
            queue_name=name,
            enforce_ssl=True,
            removal_policy=removal_policy,
        )
        self.queue_url = self.queue.queue_url

        self.topic.add_subscription(subscriptions.SqsSubscription(self.queue))

    @property
    def grant_arns(self) -> List[str]:
        return [self.queue.queue_arn]
