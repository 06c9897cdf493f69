#!/usr/bin/env python3
import logging
import os

import aws_cdk as cdk
from cdk_nag import AwsSolutionsChecks

from config.environments import environment_from_selector
from config.errors import ConfigurationError
from stacks.deployment import emit_stacks
from synthesis.pipeline import Synthesis

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

ROOT_DIRECTORY = os.path.dirname(os.path.abspath(__file__))
# The application (and its Dockerfile) lives one level above the infrastructure
APP_SOURCE_DIRECTORY = os.environ.get("APP_SOURCE_DIRECTORY", os.path.dirname(ROOT_DIRECTORY))

app = cdk.App()

# Environment from DEPLOYMENT_ENV, dev when unset
environment = environment_from_selector(os.environ.get("DEPLOYMENT_ENV"))
account = os.environ.get("CDK_DEFAULT_ACCOUNT")

oban_pro_auth_key = os.environ.get("OBAN_PRO_AUTH_KEY")
if not oban_pro_auth_key:
    raise ConfigurationError("OBAN_PRO_AUTH_KEY is required")

logger.info("Synthesizing %s for account %s", environment.value, account or "<unset>")

Synthesis(
    environment,
    account_id=account or "",
    image_directory=APP_SOURCE_DIRECTORY,
    image_build_args={"OBAN_PRO_AUTH_KEY": oban_pro_auth_key},
).run(lambda plan: emit_stacks(app, plan, account))

if app.node.try_get_context("nag"):
    cdk.Aspects.of(app).add(AwsSolutionsChecks(verbose=True))

app.synth()
