from pathlib import Path
from typing import Optional

from aws_cdk import (
    Stack,
    aws_apigateway as apigateway,
    aws_iam as iam,
    aws_lambda as lambda_,
    aws_ssm as ssm,
    Duration
)
from constructs import Construct

from ..app_config import AppConfig, config_for
from .tables_stack import Tables, TablesStack
from .utils import output_ssm, retention_days


LAMBDAS_PATH = Path(__file__).parent.parent.parent / "src" / "lambdas"


class APIStack(Stack):
    """REST API definition and the Lambda functions behind it.

    The API is created without a deployment; ``APIDeploymentStack`` looks it
    up through ``get_instance`` and owns deployments and stages.
    """

    def __init__(self, scope: Construct, construct_id: str, config: AppConfig, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.config = config
        self.stage = config.environment

        self.api = apigateway.RestApi(
            self,
            config.name("Api"),
            rest_api_name=config.name(f"-api-{self.stage}"),
            description=f"Buildor REST API for {self.stage} environment",
            deploy=False,
            cloud_watch_role=True
        )

        output_ssm(self, config.name("ApiIdSSM"), config.api_parameter("restApiId"), self.api.rest_api_id)
        output_ssm(
            self,
            config.name("ApiRootResourceIdSSM"),
            config.api_parameter("rootResourceId"),
            self.api.rest_api_root_resource_id
        )

        self._create_users_resource()

    def _create_function(self, name: str, handler: str, description: str) -> lambda_.Function:
        """Create a users Lambda with its own execution role."""
        lambda_config = self.config.lambda_
        tracing_enabled = lambda_config.get("tracingEnabled", True)

        role = iam.Role(
            self,
            f"{name}Role",
            assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"),
            description=f"Role for {name} Lambda in {self.stage} environment",
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AWSLambdaBasicExecutionRole")
            ]
        )

        if tracing_enabled:
            role.add_managed_policy(
                iam.ManagedPolicy.from_aws_managed_policy_name("AWSXRayDaemonWriteAccess")
            )

        return lambda_.Function(
            self,
            name,
            function_name=f"{self.config.project_name}-{name.lower()}-{self.stage}",
            runtime=lambda_.Runtime.PYTHON_3_12,
            handler=handler,
            code=lambda_.Code.from_asset(str(LAMBDAS_PATH / "users")),
            role=role,
            memory_size=lambda_config.get("memorySize", 256),
            timeout=Duration.seconds(lambda_config.get("timeout", 10)),
            environment={
                "STAGE": self.stage,
                "TABLE_NAME": self.users_table.table_name,
                "TABLE_REGION": self.region,
                "LOG_LEVEL": "DEBUG" if self.stage == "beta" else "INFO"
            },
            tracing=lambda_.Tracing.ACTIVE if tracing_enabled else lambda_.Tracing.DISABLED,
            log_retention=retention_days(lambda_config.get("logRetentionDays", 7)),
            reserved_concurrent_executions=lambda_config.get("reservedConcurrentExecutions") if self.config.is_prod else None,
            description=description
        )

    def _create_users_resource(self):
        """Wire GET/POST /users to the list and create functions."""
        self.users_table = TablesStack.get_instance(self, Tables.USERS, self.config)

        self.users_list_lambda = self._create_function(
            "UsersList",
            "handler.list_users",
            f"List users in {self.stage} environment"
        )
        self.users_table.grant_read_data(self.users_list_lambda)
        TablesStack.grant_read_index(self.users_table, self.users_list_lambda)

        self.users_create_lambda = self._create_function(
            "UsersCreate",
            "handler.create_user",
            f"Create users in {self.stage} environment"
        )
        self.users_table.grant_write_data(self.users_create_lambda)
        TablesStack.grant_write_index(self.users_table, self.users_create_lambda)

        users = self.api.root.add_resource("users")
        users.add_method("GET", apigateway.LambdaIntegration(self.users_list_lambda))
        users.add_method("POST", apigateway.LambdaIntegration(self.users_create_lambda))

    @staticmethod
    def get_instance(scope: Construct, config: Optional[AppConfig] = None) -> apigateway.IRestApi:
        """Import the published REST API into ``scope``."""
        existing = scope.node.try_find_child("RestApi")
        if existing is not None:
            return existing

        config = config or config_for(scope)
        rest_api_id = ssm.StringParameter.from_string_parameter_name(
            scope,
            "RestApiId",
            config.api_parameter("restApiId")
        ).string_value
        root_resource_id = ssm.StringParameter.from_string_parameter_name(
            scope,
            "RestApiRootResourceId",
            config.api_parameter("rootResourceId")
        ).string_value

        return apigateway.RestApi.from_rest_api_attributes(
            scope,
            "RestApi",
            rest_api_id=rest_api_id,
            root_resource_id=root_resource_id
        )
