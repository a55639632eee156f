"""Pydantic models for client settings and per-operation options."""

import json
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

REGION_PATTERN = r"^[a-z]{2}-[a-z]+-\d$"
ROLE_ARN_PATTERN = r"^arn:aws:iam::\d+:role/"

DEFAULT_CAPABILITIES = ["CAPABILITY_NAMED_IAM"]


class ClientSettings(BaseModel):
    """Settings shared by every command of one invocation."""

    region: Optional[str] = Field(None, pattern=REGION_PATTERN, description="AWS region")
    role_arn: Optional[str] = Field(None, pattern=ROLE_ARN_PATTERN, description="Role to assume")
    retry_limit: Optional[int] = Field(None, ge=0, description="Maximum retries for API calls")
    wait: bool = True
    wait_poll_interval: int = Field(5, ge=0, description="Seconds between status polls")
    wait_timeout: Optional[float] = Field(None, gt=0, description="Give up waiting after this many seconds")
    output_format: Literal["json", "yaml"] = "json"
    debug: bool = False


class StackUpdateOptions(BaseModel):
    """Options common to direct stack updates and change-set creation."""

    template: Optional[Any] = Field(None, description="Parsed template tree")
    template_body: Optional[str] = Field(None, description="Original template text")
    template_url: Optional[str] = Field(None, description="S3 location of the template")
    use_previous_template: bool = False
    preserve_template_formatting: bool = False
    parameters: Dict[str, Any] = Field(default_factory=dict)
    tags: Optional[Dict[str, str]] = None
    role_arn: Optional[str] = Field(None, pattern=ROLE_ARN_PATTERN, description="CloudFormation service role")
    capabilities: List[str] = Field(default_factory=lambda: list(DEFAULT_CAPABILITIES))

    @model_validator(mode="after")
    def validate_template_source(self):
        """Validate that the template is given inline or by location, never both."""
        inline = self.template is not None or self.template_body is not None
        if inline and self.template_url:
            raise ValueError("specify either an inline template or a template URL, not both")
        if self.use_previous_template and (inline or self.template_url):
            raise ValueError("a template cannot be combined with use_previous_template")
        return self

    @property
    def has_template(self) -> bool:
        return (
            self.template is not None
            or self.template_body is not None
            or self.template_url is not None
            or self.use_previous_template
        )

    def template_args(self) -> Dict[str, Any]:
        """CloudFormation API arguments selecting the template."""
        if self.template_url:
            return {"TemplateURL": self.template_url}
        if self.use_previous_template:
            return {"UsePreviousTemplate": True}
        if self.preserve_template_formatting and self.template_body is not None:
            return {"TemplateBody": self.template_body}
        if self.template is not None:
            return {"TemplateBody": json.dumps(self.template, default=str)}
        if self.template_body is not None:
            return {"TemplateBody": self.template_body}
        return {}


class CreateOrUpdateOptions(StackUpdateOptions):
    """Options for StackController.create_or_update."""

    on_failure: Literal["DO_NOTHING", "ROLLBACK", "DELETE"] = "ROLLBACK"
    stack_policy: Optional[Any] = None
    stack_policy_url: Optional[str] = None

    @model_validator(mode="after")
    def validate_policy_source(self):
        """Validate that the stack policy is given inline or by location, never both."""
        if self.stack_policy is not None and self.stack_policy_url:
            raise ValueError("specify either an inline stack policy or a policy URL, not both")
        return self

    def policy_args(self) -> Dict[str, Any]:
        if self.stack_policy_url:
            return {"StackPolicyURL": self.stack_policy_url}
        if self.stack_policy is not None:
            return {"StackPolicyBody": json.dumps(self.stack_policy, default=str)}
        return {}


class ChangeSetOptions(StackUpdateOptions):
    """Options for ChangeSet.create."""

    description: Optional[str] = Field(None, max_length=1024)
    force: bool = False
    allow_empty_change_set: bool = False

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        """Treat a blank description as absent."""
        if v is not None and not v.strip():
            return None
        return v
