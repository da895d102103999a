#!/usr/bin/env python3
import logging
import os

import aws_cdk as cdk

from infrastructure.app_config import AppConfig, load_config
from infrastructure.stacks import APIDeploymentStack, APIStack, TablesStack

logger = logging.getLogger(__name__)


def build_app(app: cdk.App, config: AppConfig) -> dict:
    """Declare every stack of the stage in dependency order."""
    env = cdk.Environment(
        account=config.account or os.environ.get("CDK_DEFAULT_ACCOUNT"),
        region=config.region,
    )
    prefix = config.stack_name_prefix

    tables = TablesStack(app, f"{prefix}-TablesStack", config, env=env)
    api = APIStack(app, f"{prefix}-APIStack", config, env=env)
    deployment = APIDeploymentStack(app, f"{prefix}-APIDeploymentStack", config, env=env)

    # Stacks only share SSM parameters, so ordering has to be explicit
    api.add_dependency(tables)
    deployment.add_dependency(api)

    logger.info("Declared %s stacks for stage %s", prefix, config.environment)
    return {"tables": tables, "api": api, "deployment": deployment}


def main() -> None:
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))

    app = cdk.App()

    # Get stage from context (defaults to 'dev' for local development)
    stage = app.node.try_get_context("stage") or "dev"

    build_app(app, load_config(stage))

    app.synth()


if __name__ == "__main__":
    main()
