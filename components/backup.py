from aws_cdk import (
    aws_backup as backup,
    aws_events as events,
    Duration,
)
from constructs import Construct
from typing import List


class BackupSchedule(Construct):
    """AWS Backup plan taking a snapshot every `rate_hours` hours"""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        plan_name: str,
        resources: List[backup.BackupResource],
        rate_hours: int,
        completion_window: Duration,
        delete_after: Duration,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        if completion_window.to_hours() < 2:
            raise ValueError("Backup completion window must be at least two hours")
        # start window closes one hour before the completion window
        start_window = Duration.hours(completion_window.to_hours() - 1)

        rule = backup.BackupPlanRule(
            completion_window=completion_window,
            start_window=start_window,
            delete_after=delete_after,
            schedule_expression=events.Schedule.cron(minute="0", hour=f"0/{rate_hours}"),
        )

        self.backup_plan = backup.BackupPlan(
            self, plan_name, backup_plan_name=plan_name, backup_plan_rules=[rule]
        )
        self.backup_plan.add_selection(f"{plan_name}-selection", resources=resources)
