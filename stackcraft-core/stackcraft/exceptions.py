from typing import Optional


class StackcraftError(Exception):
    """Base class for all errors raised by stackcraft."""


class AssemblyError(StackcraftError):
    """Raised when a set of resources cannot be assembled into a template."""


class CircularDependencyError(AssemblyError):
    def __init__(self, logical_id: str, path: Optional[list] = None):
        self.logical_id = logical_id
        self.path = list(path or [])
        message = f"Circular dependency detected involving resource: {logical_id}"
        if self.path:
            message += f" ({' -> '.join(self.path)})"
        super().__init__(message)


class InvalidResourceError(AssemblyError):
    pass


class TemplateValidationError(AssemblyError):
    def __init__(self, errors: list):
        self.errors = list(errors)
        super().__init__("Template validation failed: " + "; ".join(str(e) for e in self.errors))


class SigningError(StackcraftError):
    pass


class TransportError(StackcraftError):
    """
    Raised for every failed remote call: an error envelope returned by the service, or any other non-2xx reply.
    Mirrors the ``code`` / ``message`` / ``status_code`` triple of a service exception.
    """

    def __init__(
        self,
        status_code: int,
        code: Optional[str] = None,
        message: Optional[str] = None,
        body: Optional[str] = None,
    ):
        self.status_code = status_code
        self.code = code
        self.message = message
        self.body = body
        super().__init__(self._format())

    def _format(self) -> str:
        if self.code:
            return f"{self.code} ({self.status_code}): {self.message}"
        return f"HTTP {self.status_code}: {self.message or self.body or ''}".rstrip()


class NoUpdatesError(TransportError):
    """The stack template and parameters are identical to the deployed ones."""


class DeploymentError(StackcraftError):
    pass


class DeploymentFailureError(DeploymentError):
    retain_resources_required = False

    def __init__(self, stack_name: str, status: str, reason: Optional[str] = None):
        self.stack_name = stack_name
        self.status = status
        self.reason = reason
        message = f"Stack {stack_name} reached failure status {status}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class DeleteFailedError(DeploymentFailureError):
    """
    A stack deletion failed, typically because a resource (e.g., a non-empty bucket) could not be removed. The
    deletion can be retried with those resources retained.
    """

    retain_resources_required = True


class DeploymentTimeoutError(DeploymentError):
    def __init__(self, stack_name: str, attempts: int):
        self.stack_name = stack_name
        self.attempts = attempts
        super().__init__(f"Timeout waiting for stack {stack_name} after {attempts} attempts")


class DeploymentCancelledError(DeploymentError):
    def __init__(self, stack_name: str):
        self.stack_name = stack_name
        super().__init__(f"Waiting for stack {stack_name} was cancelled")
