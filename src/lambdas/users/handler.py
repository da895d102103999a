"""
Lambda functions behind the /users resource.
Both handlers use API Gateway proxy integration and return JSON bodies.
"""
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO"))

# Get environment variables
STAGE = os.environ.get("STAGE", "unknown")
TABLE_NAME = os.environ.get("TABLE_NAME", "")
TABLE_REGION = os.environ.get("TABLE_REGION", os.environ.get("AWS_REGION", "us-east-1"))

# Initialize DynamoDB client
dynamodb = boto3.client("dynamodb", region_name=TABLE_REGION)

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def list_users(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Return every user in the table."""
    logger.info(f"Received event: {json.dumps(event, default=str)}")
    logger.info(f"Stage: {STAGE}, Table: {TABLE_NAME}")

    if not TABLE_NAME:
        return create_response(500, {"error": "Missing required env var: TABLE_NAME"})

    try:
        users = []
        scan_kwargs = {"TableName": TABLE_NAME}
        while True:
            response = dynamodb.scan(**scan_kwargs)
            users.extend(deserialize(item) for item in response.get("Items", []))
            if "LastEvaluatedKey" not in response:
                break
            scan_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

        return create_response(200, {"data": users})

    except ClientError as e:
        logger.error(f"AWS Client Error: {str(e)}")
        return create_response(500, {"error": e.response["Error"]["Message"]})
    except Exception as e:
        logger.error(f"Unexpected error: {str(e)}")
        return create_response(500, {"error": "Internal server error"})


def create_user(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Create a user from the request body."""
    logger.info(f"Received event: {json.dumps(event, default=str)}")
    logger.info(f"Stage: {STAGE}, Table: {TABLE_NAME}")

    if not TABLE_NAME:
        return create_response(500, {"error": "Missing required env var: TABLE_NAME"})

    try:
        payload = parse_body(event.get("body"))
    except ValueError as e:
        logger.warning(f"Body payload not compliant: {str(e)}")
        return create_response(400, schema_error(f"Body payload not compliant: {str(e)}"))

    user = {
        "uuid": str(uuid.uuid4()),
        "name": payload["name"],
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }
    if payload.get("email"):
        user["email"] = payload["email"]

    try:
        dynamodb.put_item(
            TableName=TABLE_NAME,
            Item=serialize(user),
            ConditionExpression="attribute_not_exists(#uuid)",
            ExpressionAttributeNames={"#uuid": "uuid"}
        )
        return create_response(200, user)

    except ClientError as e:
        logger.error(f"Failed to create user: {str(e)}")
        return create_response(400, {
            "code": "USR00",
            "message": "User creation failed",
            "details": e.response["Error"]["Message"]
        })
    except Exception as e:
        logger.error(f"Unexpected error: {str(e)}")
        return create_response(500, {"error": "Internal server error"})


def parse_body(body: Any) -> Dict[str, Any]:
    """Decode and validate a user creation payload."""
    if body is None:
        raise ValueError("missing body")

    try:
        payload = json.loads(body) if isinstance(body, (str, bytes)) else body
    except json.JSONDecodeError as e:
        raise ValueError(str(e)) from e

    if not isinstance(payload, dict):
        raise ValueError("expected a JSON object")

    name = payload.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValueError("missing field `name`")

    email = payload.get("email")
    if email is not None and not isinstance(email, str):
        raise ValueError("invalid type for field `email`, expected a string")

    return payload


def schema_error(details: str) -> Dict[str, Any]:
    return {"code": "CME00", "message": "Schema Compliant Error", "details": details}


def serialize(item: Dict[str, Any]) -> Dict[str, Any]:
    return {key: _serializer.serialize(value) for key, value in item.items()}


def deserialize(item: Dict[str, Any]) -> Dict[str, Any]:
    return {key: _deserializer.deserialize(value) for key, value in item.items()}


def create_response(status_code: int, body: Any) -> Dict[str, Any]:
    """Create a standardized response."""
    return {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
            "X-Stage": STAGE
        },
        "body": json.dumps(body, default=str)
    }
