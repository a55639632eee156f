"""
Shared fixtures for stackup tests.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def client_error(code: str, message: str, operation: str = "DescribeStacks") -> ClientError:
    """Build a botocore ClientError the way the service reports it."""
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def stack_missing(name: str = "demo") -> ClientError:
    return client_error("ValidationError", f"Stack with id {name} does not exist")


def stack_response(status: str, name: str = "demo", **extra) -> dict:
    stack = {
        "StackName": name,
        "StackId": f"arn:aws:cloudformation:us-east-1:123456789012:stack/{name}/abc",
        "StackStatus": status,
    }
    stack.update(extra)
    return {"Stacks": [stack]}


def stack_event(event_id: str, seconds: int = 0, status: str = "CREATE_IN_PROGRESS",
                logical_id: str = "demo", reason: str = None) -> dict:
    event = {
        "EventId": event_id,
        "StackName": "demo",
        "Timestamp": BASE_TIME + timedelta(seconds=seconds),
        "LogicalResourceId": logical_id,
        "PhysicalResourceId": "",
        "ResourceType": "AWS::CloudFormation::Stack",
        "ResourceStatus": status,
    }
    if reason:
        event["ResourceStatusReason"] = reason
    return event


def event_pages(*pages) -> list:
    """Paginator output: one dict per page of events."""
    return [{"StackEvents": list(page)} for page in pages]


def change_set_response(status: str, execution_status: str = "UNAVAILABLE",
                        reason: str = None, changes=None, name: str = "pending") -> dict:
    response = {
        "ChangeSetName": name,
        "ChangeSetId": f"arn:aws:cloudformation:us-east-1:123456789012:changeSet/{name}/xyz",
        "StackName": "demo",
        "Status": status,
        "ExecutionStatus": execution_status,
        "Changes": changes or [],
    }
    if reason:
        response["StatusReason"] = reason
    return response


@pytest.fixture
def cloudformation():
    """CloudFormation client mock with an empty event history."""
    client = Mock()
    client.get_paginator.return_value.paginate.return_value = []
    return client
