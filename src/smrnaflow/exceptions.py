"""Custom exceptions for smrnaflow."""


class SmrnaFlowError(Exception):
    """Base exception for all smrnaflow errors."""

    pass


class ConfigurationError(SmrnaFlowError):
    """Raised when configuration is invalid or mandatory inputs are missing."""

    pass


class ExternalToolError(SmrnaFlowError):
    """Raised when an external tool execution fails."""

    def __init__(self, message="", command=None, returncode=None, stderr=None):
        """Initialize ExternalToolError with optional command details.

        Args:
            message: Error message
            command: Command that was executed (list of strings)
            returncode: Exit code from the command
            stderr: Standard error output from the command
        """
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class PipelineError(SmrnaFlowError):
    """Raised when the pipeline cannot be assembled or run."""

    pass


class DependencyError(SmrnaFlowError):
    """Raised when required external dependencies are missing or incompatible."""

    pass


class GraphError(SmrnaFlowError):
    """Raised when the task graph is structurally invalid."""

    pass


class CyclicGraphError(GraphError):
    """Raised when task bindings form a cycle."""

    def __init__(self, message="", cycle=None):
        super().__init__(message)
        self.cycle = list(cycle or [])


class DanglingInputError(GraphError):
    """Raised when a task binds to a stream that nothing produces."""

    def __init__(self, message="", task=None, stream=None):
        super().__init__(message)
        self.task = task
        self.stream = stream


class UnsatisfiedDependency(GraphError):
    """Raised when an active task needs a stream produced only by inactive tasks."""

    def __init__(self, message="", task=None, stream=None):
        super().__init__(message)
        self.task = task
        self.stream = stream


class InvalidSampleKey(SmrnaFlowError):
    """Raised when a filename resolves to an empty sample key."""

    def __init__(self, message="", filename=None):
        super().__init__(message)
        self.filename = filename


class UnroutableArtifact(SmrnaFlowError):
    """Raised when no publish rule matches an artifact."""

    def __init__(self, message="", task=None, artifact=None):
        super().__init__(message)
        self.task = task
        self.artifact = artifact


class StreamClosedError(SmrnaFlowError):
    """Raised when publishing to a stream that has already been closed.

    This is a programming error and aborts the whole run.
    """

    pass


class TaskExecutionFailure(SmrnaFlowError):
    """Raised when a task's work unit fails."""

    def __init__(self, message="", task=None, sample_key=None, cause=None):
        super().__init__(message)
        self.task = task
        self.sample_key = sample_key
        self.cause = cause


class NotificationDeliveryFailure(SmrnaFlowError):
    """Raised when a completion notification cannot be delivered."""

    pass
