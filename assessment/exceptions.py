"""
Exceptions raised inside the assessment core
"""


class AssessmentError(Exception):
    """Base class for assessment core errors"""


class StorageError(AssessmentError):
    """A storage adapter failed to read or write a key"""

    def __init__(self, operation: str, key: str, cause: Exception = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        message = f"Storage {operation} failed for key '{key}'"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
