"""CDK Stack definitions for the Buildor backend."""

from .tables_stack import Tables, TablesStack
from .api_stack import APIStack
from .api_deployment_stack import APIDeploymentStack

__all__ = [
    "Tables",
    "TablesStack",
    "APIStack",
    "APIDeploymentStack"
]
