from typing import Any, Optional

__all__ = (
    "AdapterError",
    "ExpressionCompileError",
    "ExpressionError",
    "ExpressionEvaluationError",
    "ImproperConfigurationError",
    "ParameterError",
    "ParameterMismatchError",
    "SQLVecError",
    "TemplateParseError",
    "UnreadableSourceError",
)


class SQLVecError(Exception):
    """Base exception class from which all sqlvec exceptions inherit."""

    detail: str

    def __init__(self, *args: Any, detail: str = "") -> None:
        """Initialize ``SQLVecError``.

        Args:
            *args: args are converted to :class:`str` before passing to :class:`Exception`
            detail: detail of the exception.
        """
        str_args = [str(arg) for arg in args if arg]
        if not detail:
            if str_args:
                detail, *str_args = str_args
            elif hasattr(self, "detail"):
                detail = self.detail
        self.detail = detail
        super().__init__(*str_args)

    def __repr__(self) -> str:
        if self.detail:
            return f"{self.__class__.__name__} - {self.detail}"
        return self.__class__.__name__

    def __str__(self) -> str:
        return " ".join((*self.args, self.detail)).strip()


class ImproperConfigurationError(SQLVecError):
    """Raised when an option value is not recognized."""


class TemplateParseError(SQLVecError):
    """Issues parsing template text or definition headers."""

    def __init__(self, message: Optional[str] = None, line: Optional[int] = None) -> None:
        if message is None:
            message = "Issues parsing SQL template."
        self.message = message
        self.line = line
        if line is not None:
            message = f"{message} (line {line})"
        super().__init__(message)


class UnreadableSourceError(SQLVecError):
    """A template source could not be located or read."""

    def __init__(self, source: Any) -> None:
        super().__init__(f"Can not read file: {source}")
        self.source = source


# -- Parameter Errors --
class ParameterError(SQLVecError):
    """Base class for parameter-related errors."""

    sql: Optional[str]

    def __init__(self, message: str, sql: Optional[str] = None) -> None:
        """Initialize with optional SQL context."""
        detail_message = message
        if sql:
            detail_message = f"{message}\nSQL: {sql}"
        super().__init__(detail=detail_message)
        self.sql = sql


class ParameterMismatchError(ParameterError):
    """Raised when a template parameter has no matching parameter data."""

    parameter: str

    def __init__(self, parameter: str, sql: Optional[str] = None) -> None:
        super().__init__(f"Parameter Mismatch: {parameter} parameter data not found.", sql)
        self.parameter = parameter


# -- Expression Errors --
class ExpressionError(SQLVecError):
    """Base class for embedded expression errors."""

    source: Optional[str]

    def __init__(self, message: str, source: Optional[str] = None) -> None:
        detail_message = message
        if source:
            detail_message = f"{message}\nExpression: {source}"
        super().__init__(detail=detail_message)
        self.source = source


class ExpressionCompileError(ExpressionError):
    """An embedded expression could not be compiled."""


class ExpressionEvaluationError(ExpressionError):
    """An embedded expression failed while running against parameter data."""


class AdapterError(SQLVecError):
    """A database adapter failed while executing a statement."""
