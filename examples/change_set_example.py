"""Example usage of stack and change-set operations from Python."""

from stackup.config import ChangeSetOptions, CreateOrUpdateOptions
from stackup.differ import Differ
from stackup.stack import StackController, StackEvent
from stackup.utils import (
    AWSClientManager,
    StackupError,
    EmptyChangeSetError,
    setup_logging,
)

TEMPLATE = {
    'Parameters': {
        'Env': {'Type': 'String'},
    },
    'Resources': {
        'Bucket': {
            'Type': 'AWS::S3::Bucket',
            'Properties': {
                'Tags': [{'Key': 'env', 'Value': {'Ref': 'Env'}}],
            },
        },
    },
}


def print_event(event: StackEvent):
    print(f"  {event.summary()}")


def example_create_or_update(stack: StackController):
    """Example: Create or update a stack and follow its events."""
    print("=== Create or Update ===")

    options = CreateOrUpdateOptions(
        template=TEMPLATE,
        parameters={'Env': 'dev'},
        tags={'team': 'platform'}
    )

    try:
        status = stack.create_or_update(options)
    except StackupError as e:
        print(e.to_user_message())
        return

    if status is None:
        print("✓ Nothing to update")
    else:
        print(f"✓ Stack settled in {status}")


def example_review_change_set(stack: StackController):
    """Example: Review planned changes before applying them."""
    print("\n=== Change-Set Review ===")

    # Show how parameters would change first
    current = {'Parameters': stack.parameters()}
    planned = {'Parameters': {**current['Parameters'], 'Env': 'staging'}}
    print(Differ('text').diff(current, planned) or "No parameter changes")

    change_set = stack.change_set('staging')
    try:
        description = change_set.create(ChangeSetOptions(
            use_previous_template=True,
            parameters={'Env': 'staging'},
            description='promote to staging',
            force=True
        ))
    except EmptyChangeSetError:
        print("✓ No changes to apply")
        return

    for change in description.changes:
        print(f"  {change.action} {change.logical_resource_id} ({change.resource_type})")

    status = change_set.execute()
    print(f"✓ Change-set applied: {status}")


def example_teardown(stack: StackController):
    """Example: Delete the stack."""
    print("\n=== Teardown ===")

    print(f"✓ {stack.delete() or 'Stack already gone'}")


if __name__ == '__main__':
    setup_logging('info')

    clients = AWSClientManager(region='us-east-1')
    stack = StackController(
        clients.cloudformation,
        'stackup-example',
        wait_poll_interval=5,
        event_handler=print_event
    )

    example_create_or_update(stack)
    example_review_change_set(stack)
    example_teardown(stack)
