"""Exception classes for revue."""


class RevueError(Exception):
    """Base exception for revue."""


class InvalidCommentError(RevueError):
    """A comment submission or edit is missing required input.

    Raised before any store call, so a rejected submission has no side effects.
    """


class NotFoundError(RevueError):
    """A target, comment, reply or sub-asset does not exist."""

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} '{resource_id}' not found")


class StoreWriteError(RevueError):
    """The document store rejected a write (network or permission failure)."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class MirrorError(RevueError):
    """The task/calendar mirror rejected a create, update or delete."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class ConfigError(RevueError):
    """A configuration value could not be parsed."""


class CascadeError(RevueError):
    """A cascading delete stopped because some of its comments could not be deleted."""

    def __init__(self, resource: str, resource_id: str, remaining: int):
        self.resource = resource
        self.resource_id = resource_id
        self.remaining = remaining
        super().__init__(f"{resource} '{resource_id}' kept: {remaining} comment(s) could not be deleted")
