from typing import List, Optional, Tuple

import aws_cdk as cdk

from stacks.application_stack import PasswordlessToolsStack
from stacks.edge_certificates_stack import EdgeCertificatesStack
from synthesis.naming import APP_NAME, application_stack_name, edge_stack_name
from synthesis.pipeline import SynthesisPlan


def emit_stacks(
    app: cdk.App, plan: SynthesisPlan, account: Optional[str] = None
) -> Tuple[EdgeCertificatesStack, List[PasswordlessToolsStack]]:
    """Turn a composed plan into the edge stack and one stack per region"""
    env = plan.environment.value

    edge_stack = EdgeCertificatesStack(
        app,
        edge_stack_name(plan.environment),
        environment=plan.environment,
        records=plan.edge_certificates,
        env=cdk.Environment(region=plan.edge_region, account=account),
        description=f"{APP_NAME} CloudFront certificates ({env})",
    )

    stacks = []
    for region, region_plan in plan.regions.items():
        stack = PasswordlessToolsStack(
            app,
            application_stack_name(region, plan.environment),
            declarations=region_plan.declarations,
            edge_certificates=edge_stack.certificates,
            env=cdk.Environment(region=region_plan.region_config.aws_region, account=account),
            description=f"{APP_NAME} application ({region.value}, {env})",
        )
        # Stack dependencies
        stack.add_dependency(edge_stack)
        stacks.append(stack)

    return edge_stack, stacks
