"""Error taxonomy for stack and change-set operations."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type

from botocore.exceptions import ClientError, NoCredentialsError, PartialCredentialsError


class ErrorCategory(Enum):
    """What kind of failure an error represents."""
    USAGE = "usage"
    SOURCE = "source"
    SERVICE = "service"
    CREDENTIAL = "credential"
    STATE = "state"
    CHANGE_SET = "change_set"
    TIMEOUT = "timeout"
    RENDER = "render"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Where an error happened: stack, change-set and API call."""
    stack_name: Optional[str] = None
    change_set_name: Optional[str] = None
    operation: Optional[str] = None
    aws_operation: Optional[str] = None
    error_code: Optional[str] = None
    request_id: Optional[str] = None


class StackupError(Exception):
    """Base exception for all errors leaving the stack management core.

    Args:
        message: Human-readable error message (for remote failures, the
            message the service returned)
        context: Stack/change-set/operation the error relates to
        cause: Underlying exception, if any
        suggestions: Follow-up actions to show the user
    """

    category = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = list(suggestions or [])

    def to_user_message(self) -> str:
        """Message for stderr, followed by numbered suggestions."""
        if not self.suggestions:
            return self.message
        numbered = [f"  {n}. {text}" for n, text in enumerate(self.suggestions, 1)]
        return "\n".join([self.message, "", "Suggested fixes:", *numbered])

    def to_dict(self) -> Dict[str, Any]:
        return {
            'message': self.message,
            'category': self.category.value,
            'context': asdict(self.context),
            'cause': repr(self.cause) if self.cause else None,
            'suggestions': self.suggestions,
        }


class UsageError(StackupError):
    """Invalid combination of command inputs."""
    category = ErrorCategory.USAGE


class SourceReadError(StackupError):
    """A template/parameter/tag/policy source could not be read or parsed."""
    category = ErrorCategory.SOURCE


class ServiceError(StackupError):
    """The remote orchestration API reported a failure."""
    category = ErrorCategory.SERVICE


class CredentialError(ServiceError):
    """Credentials are missing or unusable."""
    category = ErrorCategory.CREDENTIAL


class InvalidStateError(StackupError):
    """Operation requested against a stack or change-set in a forbidding state."""
    category = ErrorCategory.STATE


class EmptyChangeSetError(StackupError):
    """The created change-set contains no changes."""
    category = ErrorCategory.CHANGE_SET


class NameConflictError(StackupError):
    """A change-set of the same name already exists."""
    category = ErrorCategory.CHANGE_SET


class WaitTimeoutError(StackupError):
    """A wait did not reach a terminal state before its deadline."""
    category = ErrorCategory.TIMEOUT


class RenderError(StackupError):
    """Output could not be rendered in the requested format."""
    category = ErrorCategory.RENDER


def client_error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', 'Unknown')


def client_error_message(error: ClientError) -> str:
    """The service-provided message of a ClientError."""
    return error.response.get('Error', {}).get('Message', str(error))


class ErrorHandler:
    """Converts botocore exceptions into the stackup error taxonomy."""

    # AWS error code -> (error class, suggestions)
    AWS_ERROR_MAPPING: Dict[str, Tuple[Type[StackupError], List[str]]] = {
        'InvalidClientTokenId': (CredentialError, [
            'Check which credentials are active: aws sts get-caller-identity',
        ]),
        'SignatureDoesNotMatch': (CredentialError, [
            'Check the secret access key of the active profile',
        ]),
        'ExpiredToken': (CredentialError, [
            'Refresh the session credentials and run the command again',
        ]),
        'AccessDenied': (ServiceError, [
            'Check the IAM policies of the caller (or of the role given with --with-role)',
            'Pass --service-role-arn to let CloudFormation act through a dedicated role',
        ]),
        'InsufficientCapabilitiesException': (ServiceError, [
            'Acknowledge the required capability with --capability',
        ]),
        'LimitExceededException': (ServiceError, [
            'Delete unused stacks or change-sets',
        ]),
    }

    # (AWS operation, error code) -> (error class, suggestions), checked first
    OPERATION_ERROR_MAPPING: Dict[Tuple[str, str], Tuple[Type[StackupError], List[str]]] = {
        ('CreateChangeSet', 'AlreadyExistsException'): (NameConflictError, [
            'Use --force to replace the existing change-set',
        ]),
    }

    def handle_exception(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None
    ) -> StackupError:
        """Convert an exception raised by a remote call into a StackupError.

        Args:
            error: Exception raised by boto3/botocore (StackupErrors pass through)
            context: Where the call was made

        Returns:
            StackupError subclass matching the failure
        """
        if isinstance(error, StackupError):
            return error

        context = context or ErrorContext()

        if isinstance(error, ClientError):
            return self._from_client_error(error, context)

        if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
            return CredentialError(
                'no credentials provided',
                context=context,
                cause=error,
                suggestions=[
                    'Configure a profile with: aws configure',
                    'Or export AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY',
                ]
            )

        return ServiceError(str(error), context=context, cause=error)

    def _from_client_error(self, error: ClientError, context: ErrorContext) -> StackupError:
        context.error_code = client_error_code(error)
        context.aws_operation = error.operation_name
        context.request_id = error.response.get('ResponseMetadata', {}).get('RequestId')

        error_class, suggestions = self.OPERATION_ERROR_MAPPING.get(
            (context.aws_operation, context.error_code),
            self.AWS_ERROR_MAPPING.get(context.error_code, (ServiceError, []))
        )
        return error_class(client_error_message(error), context=context, cause=error, suggestions=suggestions)


error_handler = ErrorHandler()
