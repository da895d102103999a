"""Unit tests for the tables stack and its lookup/grant helpers."""
import pytest
from aws_cdk import App, Stack
from aws_cdk import aws_dynamodb as dynamodb
from aws_cdk import aws_lambda as lambda_
from aws_cdk.assertions import Template

from infrastructure.app_config import load_config
from infrastructure.stacks import Tables, TablesStack


TABLE_ARN = "arn:aws:dynamodb:us-east-1:123456789012:table/Users"


@pytest.fixture
def config():
    return load_config("beta")


@pytest.fixture
def template(config):
    app = App()
    stack = TablesStack(app, "TablesStack", config)
    return Template.from_stack(stack)


def table_logical_id(template: Template, table: Tables) -> str:
    ids = [lid for lid in template.find_resources("AWS::DynamoDB::Table") if lid.startswith(table.value)]
    assert len(ids) == 1
    return ids[0]


def make_function(stack: Stack) -> lambda_.Function:
    return lambda_.Function(
        stack,
        "Fn",
        runtime=lambda_.Runtime.PYTHON_3_12,
        handler="index.handler",
        code=lambda_.Code.from_inline("def handler(event, context):\n    return event\n")
    )


def policy_actions(template: Template) -> dict:
    """Collect granted actions per resource across every IAM policy."""
    granted = {}
    for policy in template.find_resources("AWS::IAM::Policy").values():
        for statement in policy["Properties"]["PolicyDocument"]["Statement"]:
            assert statement["Effect"] == "Allow"
            actions = statement["Action"]
            actions = [actions] if isinstance(actions, str) else actions
            resources = statement["Resource"]
            resources = [resources] if isinstance(resources, str) else resources
            for resource in resources:
                granted.setdefault(resource, set()).update(actions)
    return granted


class TestTablesStack:
    """Test table declarations."""

    def test_two_tables(self, template):
        template.resource_count_is("AWS::DynamoDB::Table", 2)

    def test_table_shape(self, template):
        for table in template.find_resources("AWS::DynamoDB::Table").values():
            props = table["Properties"]

            assert props["KeySchema"] == [{"AttributeName": "uuid", "KeyType": "HASH"}]
            assert props["AttributeDefinitions"] == [{"AttributeName": "uuid", "AttributeType": "S"}]
            assert props["BillingMode"] == "PAY_PER_REQUEST"
            assert props["StreamSpecification"] == {"StreamViewType": "NEW_AND_OLD_IMAGES"}

    def test_beta_tables_are_destroyed(self, template):
        for table in template.find_resources("AWS::DynamoDB::Table").values():
            assert table["DeletionPolicy"] == "Delete"

    def test_prod_tables_are_protected(self):
        app = App()
        template = Template.from_stack(TablesStack(app, "TablesStack", load_config("prod")))

        for table in template.find_resources("AWS::DynamoDB::Table").values():
            assert table["DeletionPolicy"] == "Retain"
            assert table["Properties"]["DeletionProtectionEnabled"] is True
            assert table["Properties"]["PointInTimeRecoverySpecification"]["PointInTimeRecoveryEnabled"] is True

    @pytest.mark.parametrize("table", list(Tables))
    def test_arns_published(self, template, config, table):
        logical_id = table_logical_id(template, table)

        template.has_resource_properties("AWS::SSM::Parameter", {
            "Name": config.table_parameter(table.value, "tableArn"),
            "Type": "String",
            "Value": {"Fn::GetAtt": [logical_id, "Arn"]},
        })
        template.has_resource_properties("AWS::SSM::Parameter", {
            "Name": config.table_parameter(table.value, "streamArn"),
            "Type": "String",
            "Value": {"Fn::GetAtt": [logical_id, "StreamArn"]},
        })

    def test_four_parameters(self, template):
        template.resource_count_is("AWS::SSM::Parameter", 4)


class TestTableLookup:
    """Test resolving published tables from another stack."""

    def parameter_defaults(self, stack: Stack) -> set:
        parameters = Template.from_stack(stack).to_json().get("Parameters", {})
        # BootstrapVersion is added by the default synthesizer
        return {p["Default"] for p in parameters.values() if p.get("Default", "").startswith("/buildor/")}

    def published_names(self, config) -> set:
        app = App()
        template = Template.from_stack(TablesStack(app, "TablesStack", config))
        return {p["Properties"]["Name"] for p in template.find_resources("AWS::SSM::Parameter").values()}

    def test_get_instance_reads_published_arn(self, config):
        app = App()
        consumer = Stack(app, "Consumer")

        table = TablesStack.get_instance(consumer, Tables.USERS, config)
        make_function(consumer).add_environment("TABLE_ARN", table.table_arn)

        defaults = self.parameter_defaults(consumer)
        assert defaults == {config.table_parameter("Users", "tableArn")}
        assert defaults <= self.published_names(config)

    def test_get_streaming_instance_reads_both_arns(self, config):
        app = App()
        consumer = Stack(app, "Consumer")

        table = TablesStack.get_streaming_instance(consumer, Tables.PROJECTS, config)
        fn = make_function(consumer)
        fn.add_environment("TABLE_ARN", table.table_arn)
        fn.add_environment("STREAM_ARN", table.table_stream_arn)

        assert table.table_stream_arn is not None
        defaults = self.parameter_defaults(consumer)
        assert defaults == {
            config.table_parameter("Projects", "tableArn"),
            config.table_parameter("Projects", "streamArn"),
        }
        assert defaults <= self.published_names(config)

    def test_lookups_accept_table_names(self, config):
        app = App()
        consumer = Stack(app, "Consumer")

        by_name = TablesStack.get_instance(consumer, "Users", config)
        by_member = TablesStack.get_instance(consumer, Tables.USERS, config)

        assert by_name.node.path == by_member.node.path

    def test_instance_and_streaming_instance_share_scope(self, config):
        app = App()
        consumer = Stack(app, "Consumer")

        TablesStack.get_instance(consumer, Tables.USERS, config)
        streaming = TablesStack.get_streaming_instance(consumer, Tables.USERS, config)

        assert streaming.table_stream_arn is not None

    def test_unknown_table(self, config):
        app = App()
        consumer = Stack(app, "Consumer")

        with pytest.raises(ValueError):
            TablesStack.get_instance(consumer, "Orders", config)

    def test_config_resolved_from_context(self):
        app = App(context={"stage": "prod"})
        consumer = Stack(app, "Consumer")

        table = TablesStack.get_instance(consumer, Tables.USERS)
        make_function(consumer).add_environment("TABLE_ARN", table.table_arn)

        assert self.parameter_defaults(consumer) == {"/buildor/prod/tables/users/tableArn"}


class TestIndexGrants:
    """Test index-scoped IAM grants."""

    def granted(self, *grants, index=None):
        app = App()
        stack = Stack(app, "Grants")
        table = dynamodb.Table.from_table_arn(stack, "Table", TABLE_ARN)
        fn = make_function(stack)
        for grant in grants:
            if index is None:
                grant(table, fn)
            else:
                grant(table, fn, index)
        return policy_actions(Template.from_stack(stack))

    def test_read_index(self):
        granted = self.granted(TablesStack.grant_read_index)

        assert granted == {
            f"{TABLE_ARN}/index/*": {"dynamodb:Query", "dynamodb:Scan", "dynamodb:GetItem"}
        }

    def test_write_index(self):
        granted = self.granted(TablesStack.grant_write_index, index="byEmail")

        assert granted == {
            f"{TABLE_ARN}/index/byEmail": {"dynamodb:PutItem", "dynamodb:UpdateItem", "dynamodb:DeleteItem"}
        }

    def test_read_then_write_equals_read_write(self):
        separate = self.granted(TablesStack.grant_read_index, TablesStack.grant_write_index, index="byEmail")
        combined = self.granted(TablesStack.grant_read_write_index, index="byEmail")

        assert separate == combined
        assert combined[f"{TABLE_ARN}/index/byEmail"] == {
            "dynamodb:Query",
            "dynamodb:Scan",
            "dynamodb:GetItem",
            "dynamodb:PutItem",
            "dynamodb:UpdateItem",
            "dynamodb:DeleteItem",
        }

    def test_default_index_covers_all_indexes(self):
        granted = self.granted(TablesStack.grant_read_write_index)

        assert list(granted) == [f"{TABLE_ARN}/index/*"]
