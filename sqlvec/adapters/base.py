"""Base class for database adapters."""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, NoReturn

from mypy_extensions import mypyc_attr

from sqlvec.exceptions import AdapterError, SQLVecError
from sqlvec.utils.logging import get_logger, log_event

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlvec.config import QueryConfig

__all__ = ("AdapterBase",)

logger = get_logger("adapters")


@mypyc_attr(allow_interpreted_subclasses=True)
class AdapterBase(ABC):
    """Common behaviour for adapters.

    Subclasses implement :meth:`execute` and :meth:`query`; result shaping
    defaults to plain Python containers and errors are normalized to
    :class:`~sqlvec.exceptions.AdapterError`.
    """

    __slots__ = ()

    @abstractmethod
    def execute(self, db: Any, sql: str, values: "Sequence[Any]", options: "QueryConfig") -> Any: ...

    @abstractmethod
    def query(self, db: Any, sql: str, values: "Sequence[Any]", options: "QueryConfig") -> Any: ...

    def result_one(self, result: Any, options: "QueryConfig") -> Any:
        if result is None:
            return None
        if isinstance(result, (list, tuple)):
            return result[0] if result else None
        return result

    def result_many(self, result: Any, options: "QueryConfig") -> Any:
        if result is None:
            return []
        return list(result)

    def result_affected(self, result: Any, options: "QueryConfig") -> Any:
        if isinstance(result, int):
            return result
        if isinstance(result, (list, tuple)):
            return len(result)
        return result

    def result_raw(self, result: Any, options: "QueryConfig") -> Any:
        return result

    def on_exception(self, error: BaseException) -> NoReturn:
        """Re-raise ``error``, wrapping anything foreign in :class:`AdapterError`."""
        if isinstance(error, SQLVecError):
            raise error
        log_event(
            logger,
            logging.DEBUG,
            "adapter.error",
            adapter=type(self).__name__,
            error_type=type(error).__name__,
            error=str(error),
        )
        msg = f"Database operation failed: {error}"
        raise AdapterError(msg) from error

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
