import time

from aws_cdk import (
    Stack,
    aws_apigateway as apigateway,
    aws_logs as logs,
    RemovalPolicy
)
from constructs import Construct

from ..app_config import AppConfig
from .api_stack import APIStack
from .utils import output_ssm, retention_days


def deployment_timestamp() -> int:
    """Wall-clock time in milliseconds."""
    return int(time.time() * 1000)


class APIDeploymentStack(Stack):
    """Deployment and stage of the REST API published by ``APIStack``."""

    def __init__(self, scope: Construct, construct_id: str, config: AppConfig, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.config = config
        self.stage = config.environment
        version = config.api_version

        api = APIStack.get_instance(self, config)

        self.deployment = apigateway.Deployment(
            self,
            config.name(f"ApiDeployment-{version}"),
            api=api
        )
        # New logical id on every synthesis so the API is always redeployed
        self.deployment.add_to_logical_id(deployment_timestamp())

        self.log_group = logs.LogGroup(
            self,
            config.name(f"ApiLogs-{version}"),
            log_group_name=config.name(f"-api-{version}").lower(),
            retention=retention_days(config.logs.get("retentionDays", 7)),
            removal_policy=RemovalPolicy.RETAIN if config.is_prod else RemovalPolicy.DESTROY
        )

        self.api_stage = apigateway.Stage(
            self,
            config.name(f"ApiStage-{version}"),
            stage_name=version,
            deployment=self.deployment,
            data_trace_enabled=True,
            tracing_enabled=True,
            logging_level=apigateway.MethodLoggingLevel.INFO,
            access_log_destination=apigateway.LogGroupLogDestination(self.log_group),
            access_log_format=apigateway.AccessLogFormat.json_with_standard_fields(
                caller=True,
                http_method=True,
                ip=True,
                protocol=True,
                request_time=True,
                resource_path=True,
                response_length=True,
                status=True,
                user=True
            )
        )

        output_ssm(
            self,
            config.name(f"ApiUrl-{version}SSM"),
            config.api_parameter("url"),
            self.api_stage.url_for_path("/")
        )
