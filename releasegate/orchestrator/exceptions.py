"""
Deployment Exception Classes.

Exception hierarchy for the deployment pipeline. Every error carries the
captured command output (if any) so the executor can surface it on the
failed stage result.
"""

from typing import Optional


class DeploymentError(Exception):
    """Base exception for all deployment pipeline errors."""

    def __init__(
        self,
        message: str,
        output: str = "",
        details: Optional[dict] = None,
    ):
        """
        Initialize deployment error.

        Args:
            message: Human-readable error message
            output: Captured stdout/stderr of the failing operation
            details: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.output = output
        self.details = details or {}


class ToolUnavailableError(DeploymentError):
    """Raised when neither the modern nor the legacy compose command is available."""

    def __init__(self, probed: list[list[str]], output: str = ""):
        message = "No compose command available (probed: {})".format(
            ", ".join(" ".join(argv) for argv in probed)
        )
        super().__init__(message, output=output, details={"probed": probed})
        self.probed = probed


class MissingConfigError(DeploymentError):
    """Raised when the environment template is absent on the release branch."""

    def __init__(self, template_path: str, message: Optional[str] = None):
        if message is None:
            message = f"Environment template not found: {template_path}"
        super().__init__(message, details={"template_path": template_path})
        self.template_path = template_path


MissingTemplateError = MissingConfigError


class CommandFailedError(DeploymentError):
    """Raised when a command exits non-zero inside a stage."""

    def __init__(
        self,
        argv: list[str],
        returncode: int,
        output: str = "",
        message: Optional[str] = None,
    ):
        if message is None:
            message = f"Command failed with exit code {returncode}: {' '.join(argv)}"
        super().__init__(
            message,
            output=output,
            details={"argv": argv, "returncode": returncode},
        )
        self.argv = argv
        self.returncode = returncode


class BuildFailureError(CommandFailedError):
    """Raised when building or starting the container stack exits non-zero."""


class HealthCheckFailure(DeploymentError):
    """Raised when the health gate verdict is not HEALTHY."""

    def __init__(self, verdict: str, endpoint: str, output: str = "", reason: str = ""):
        message = f"Health gate {verdict} for {endpoint}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            output=output,
            details={"verdict": verdict, "endpoint": endpoint},
        )
        self.verdict = verdict
        self.endpoint = endpoint


class CleanupFailure(DeploymentError):
    """Raised inside the cleanup stage. Logged and swallowed, never fatal."""


class RunFinalizedError(RuntimeError):
    """Raised when a finalized pipeline run is mutated."""
