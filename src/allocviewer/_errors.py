from typing import Any


class AllocViewerError(Exception):
    """Exceptions raised in this package."""


class AllocViewerCommandError(AllocViewerError):
    """Exceptions raised from this package's CLI commands."""

    def __init__(self, *args: Any, exit_code: int) -> None:
        super().__init__(*args)
        self.exit_code = exit_code


class FilterSyntaxError(AllocViewerError, ValueError):
    """A frame filter expression could not be parsed."""

    def __init__(self, message: str, expression: str = "", position: int = -1) -> None:
        self.message = message
        self.expression = expression
        self.position = position
        super().__init__(message)

    def __str__(self) -> str:
        if self.position < 0 or not self.expression:
            return self.message
        pointer = " " * self.position + "^"
        return f"{self.message}\n    {self.expression}\n    {pointer}"
