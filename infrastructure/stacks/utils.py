from aws_cdk import (
    CfnOutput,
    aws_logs as logs,
    aws_ssm as ssm
)
from constructs import Construct


_RETENTION_DAYS = {
    1: logs.RetentionDays.ONE_DAY,
    3: logs.RetentionDays.THREE_DAYS,
    5: logs.RetentionDays.FIVE_DAYS,
    7: logs.RetentionDays.ONE_WEEK,
    14: logs.RetentionDays.TWO_WEEKS,
    30: logs.RetentionDays.ONE_MONTH,
    60: logs.RetentionDays.TWO_MONTHS,
    90: logs.RetentionDays.THREE_MONTHS,
    180: logs.RetentionDays.SIX_MONTHS,
    365: logs.RetentionDays.ONE_YEAR,
}


def retention_days(days: int) -> logs.RetentionDays:
    """Map a configured number of days onto the CloudWatch retention enum."""
    try:
        return _RETENTION_DAYS[days]
    except KeyError:
        raise ValueError(
            f"Unsupported log retention of {days} days, expected one of {sorted(_RETENTION_DAYS)}"
        ) from None


def output_ssm(scope: Construct, construct_id: str, parameter_name: str, value: str) -> ssm.StringParameter:
    """Publish ``value`` as an SSM string parameter and a stack output.

    Other stacks resolve the value by ``parameter_name``, so they never hold
    a direct reference to the producing stack.
    """
    parameter = ssm.StringParameter(
        scope,
        construct_id,
        parameter_name=parameter_name,
        string_value=value
    )

    CfnOutput(
        scope,
        f"{construct_id}Output",
        value=value,
        description=f"Published to SSM as {parameter_name}"
    )

    return parameter
