from enum import Enum
from typing import Optional, Union

from aws_cdk import (
    Stack,
    aws_dynamodb as dynamodb,
    aws_iam as iam,
    aws_ssm as ssm,
    RemovalPolicy
)
from aws_cdk.aws_lambda import IFunction
from constructs import Construct

from ..app_config import AppConfig, config_for
from .utils import output_ssm


READ_ACTIONS = ["dynamodb:Query", "dynamodb:Scan", "dynamodb:GetItem"]
WRITE_ACTIONS = ["dynamodb:PutItem", "dynamodb:UpdateItem", "dynamodb:DeleteItem"]


class Tables(str, Enum):
    USERS = "Users"
    PROJECTS = "Projects"


class TablesStack(Stack):
    """DynamoDB tables with change streams, published to SSM for other stacks."""

    def __init__(self, scope: Construct, construct_id: str, config: AppConfig, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.config = config
        self.stage = config.environment

        self.users_table = self._create_table(Tables.USERS)
        self.projects_table = self._create_table(Tables.PROJECTS)

    def _create_table(self, table: Tables) -> dynamodb.Table:
        """Create a table keyed by ``uuid`` and publish its ARNs."""
        dynamodb_config = self.config.dynamodb

        created = dynamodb.Table(
            self,
            table.value,
            partition_key=dynamodb.Attribute(name="uuid", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            stream=dynamodb.StreamViewType.NEW_AND_OLD_IMAGES,
            point_in_time_recovery=dynamodb_config.get("pointInTimeRecovery", False),
            deletion_protection=dynamodb_config.get("deletionProtection", False),
            removal_policy=RemovalPolicy.RETAIN if self.config.is_prod else RemovalPolicy.DESTROY
        )

        output_ssm(
            self,
            self.config.name(f"{table.value}SSM"),
            self.config.table_parameter(table.value, "tableArn"),
            created.table_arn
        )
        output_ssm(
            self,
            self.config.name(f"{table.value}StreamSSM"),
            self.config.table_parameter(table.value, "streamArn"),
            created.table_stream_arn
        )

        return created

    @staticmethod
    def _lookup(scope: Construct, config: AppConfig, table: Tables, attribute: str) -> str:
        construct_id = f"{table.value}{attribute[0].upper()}{attribute[1:]}"
        parameter = scope.node.try_find_child(construct_id)
        if parameter is None:
            parameter = ssm.StringParameter.from_string_parameter_name(
                scope,
                construct_id,
                config.table_parameter(table.value, attribute)
            )
        return parameter.string_value

    @staticmethod
    def get_instance(scope: Construct, table: Union[Tables, str], config: Optional[AppConfig] = None) -> dynamodb.ITable:
        """Resolve a published table by name.

        Raises ValueError for names outside ``Tables``. A parameter that was
        never published fails when the consuming stack deploys.
        """
        table = Tables(table)
        config = config or config_for(scope)

        existing = scope.node.try_find_child(f"{table.value}Table")
        if existing is not None:
            return existing

        table_arn = TablesStack._lookup(scope, config, table, "tableArn")
        return dynamodb.Table.from_table_arn(scope, f"{table.value}Table", table_arn)

    @staticmethod
    def get_streaming_instance(scope: Construct, table: Union[Tables, str], config: Optional[AppConfig] = None) -> dynamodb.ITable:
        """Resolve a published table together with its stream ARN."""
        table = Tables(table)
        config = config or config_for(scope)

        existing = scope.node.try_find_child(f"{table.value}StreamingTable")
        if existing is not None:
            return existing

        return dynamodb.Table.from_table_attributes(
            scope,
            f"{table.value}StreamingTable",
            table_arn=TablesStack._lookup(scope, config, table, "tableArn"),
            table_stream_arn=TablesStack._lookup(scope, config, table, "streamArn")
        )

    @staticmethod
    def _grant_index(table: dynamodb.ITable, fn: IFunction, actions: list, index: str) -> None:
        fn.add_to_role_policy(
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                actions=actions,
                resources=[f"{table.table_arn}/index/{index}"]
            )
        )

    @staticmethod
    def grant_read_index(table: dynamodb.ITable, fn: IFunction, index: str = "*") -> None:
        """Allow Query/Scan/GetItem on ``index`` of ``table``; ``*`` covers every index."""
        TablesStack._grant_index(table, fn, READ_ACTIONS, index)

    @staticmethod
    def grant_write_index(table: dynamodb.ITable, fn: IFunction, index: str = "*") -> None:
        """Allow PutItem/UpdateItem/DeleteItem on ``index`` of ``table``."""
        TablesStack._grant_index(table, fn, WRITE_ACTIONS, index)

    @staticmethod
    def grant_read_write_index(table: dynamodb.ITable, fn: IFunction, index: str = "*") -> None:
        TablesStack.grant_read_index(table, fn, index)
        TablesStack.grant_write_index(table, fn, index)
