"""CloudFormation stack orchestration: create, update, change-sets, diffs and event watching."""

__version__ = "1.0.0"
