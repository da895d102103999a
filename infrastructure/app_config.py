"""Stage configuration for the Buildor infrastructure."""
import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from aws_cdk import Stack
from constructs import Construct

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).parent / "config"


@dataclass(frozen=True)
class AppConfig:
    """Immutable view over a stage's JSON configuration."""

    environment: str
    project_name: str
    app_name: str
    stack_name_prefix: str
    region: str
    api_version: str
    account: str = None
    dynamodb: Dict[str, Any] = field(default_factory=dict)
    lambda_: Dict[str, Any] = field(default_factory=dict)
    logs: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "AppConfig":
        return cls(
            environment=data["environment"],
            project_name=data["projectName"],
            app_name=data["appName"],
            stack_name_prefix=data["stackNamePrefix"],
            region=data["region"],
            api_version=data["api"]["version"],
            account=data.get("account"),
            dynamodb=dict(data.get("dynamodb", {})),
            lambda_=dict(data.get("lambda", {})),
            logs=dict(data.get("logs", {})),
        )

    def name(self, suffix: str) -> str:
        """Prefix a construct or resource name with the application name."""
        return f"{self.app_name}{suffix}"

    def table_parameter(self, table: str, attribute: str) -> str:
        """SSM path holding ``attribute`` (tableArn/streamArn) of ``table``."""
        return f"/{self.project_name}/{self.environment}/tables/{table.lower()}/{attribute}"

    def api_parameter(self, attribute: str) -> str:
        """SSM path holding ``attribute`` of the REST API."""
        return f"/{self.project_name}/{self.environment}/api/{attribute}"

    @property
    def is_prod(self) -> bool:
        return self.environment == "prod"


def default_config(stage: str) -> dict:
    return {
        "environment": stage,
        "projectName": "buildor",
        "appName": "Buildor",
        "stackNamePrefix": f"Buildor-{stage.title()}",
        "region": "us-east-1",
        "api": {"version": "v1"},
        "dynamodb": {"pointInTimeRecovery": False, "deletionProtection": False},
        "lambda": {
            "memorySize": 256,
            "timeout": 10,
            "logRetentionDays": 7,
            "tracingEnabled": True,
        },
        "logs": {"retentionDays": 7},
    }


@lru_cache(maxsize=None)
def load_config(stage: str) -> AppConfig:
    """Load configuration for the given stage."""
    config_file = CONFIG_DIR / f"{stage}.json"
    try:
        with open(config_file, "r") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning("No config file for stage %s at %s, using defaults", stage, config_file)
        data = default_config(stage)
    return AppConfig.from_dict(data)


def config_for(scope: Construct) -> AppConfig:
    """Configuration of the stack enclosing ``scope``.

    Falls back to the stage selected with ``-c stage=<name>`` when the
    enclosing stack carries no configuration of its own.
    """
    config = getattr(Stack.of(scope), "config", None)
    if isinstance(config, AppConfig):
        return config
    return load_config(scope.node.try_get_context("stage") or "dev")
