"""Exception hierarchy for mdflow."""


class MdflowError(Exception):
    """Base class for all mdflow errors."""


class ConversionError(MdflowError):
    """Raised when a conversion cannot start (e.g. no input document)."""


class UnsupportedFormatError(MdflowError):
    """Raised for inputs that must be handled by an external extractor."""

    def __init__(self, fmt: str, message: str = ""):
        self.format = fmt
        super().__init__(message or f"Unsupported input format: {fmt}")


class FetchError(MdflowError):
    """Raised when a remote document or resource cannot be fetched."""

    def __init__(self, url: str, message: str, status_code: int = 0):
        self.url = url
        self.status_code = status_code
        super().__init__(f"{url}: {message}")


class TaskNotFoundError(MdflowError, KeyError):
    """Raised when a queue operation references an unknown task id."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")

    def __str__(self) -> str:
        return f"Task not found: {self.task_id}"
