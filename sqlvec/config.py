"""Query configuration and the process-wide default adapter."""

import threading
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any, Final, Optional, Union

from mypy_extensions import mypyc_attr

from sqlvec.exceptions import ImproperConfigurationError
from sqlvec.utils.logging import get_logger

if TYPE_CHECKING:
    from sqlvec.protocols import AdapterProtocol

__all__ = (
    "DEFAULT_DB_CONFIG",
    "DEFAULT_SQLVEC_CONFIG",
    "Empty",
    "EmptyEnum",
    "QUERY_CONFIG_SLOTS",
    "QueryConfig",
    "Quoting",
    "get_adapter",
    "reset_adapter",
    "set_adapter",
)

logger = get_logger("config")

QUERY_CONFIG_SLOTS: Final = ("adapter", "command", "command_options", "fn_suffix", "quoting", "result")


class Quoting(str, Enum):
    """Identifier quoting styles."""

    OFF = "off"
    ANSI = "ansi"
    MYSQL = "mysql"
    MSSQL = "mssql"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def coerce(cls, value: "Union[str, Quoting, None]") -> "Quoting":
        if value is None:
            return cls.OFF
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lstrip(":").lower())
        except ValueError:
            msg = f"Unknown quoting option {value!r}; expected one of {', '.join(q.value for q in cls)}"
            raise ImproperConfigurationError(msg) from None


class EmptyEnum(Enum):
    """Marks a field that was not passed."""

    EMPTY = 0


Empty: Final = EmptyEnum.EMPTY

_FIELD_DEFAULTS: "Final[dict[str, Any]]" = {
    "adapter": None,
    "command": None,
    "command_options": (),
    "fn_suffix": "",
    "quoting": Quoting.OFF,
    "result": None,
}


def _option_key(key: str) -> str:
    return key.lstrip(":").replace("-", "_")


@mypyc_attr(allow_interpreted_subclasses=True)
class QueryConfig:
    """Immutable options for assembling and running a template.

    Later sources win when merging: call site over definition site over the
    package defaults. The config remembers which fields were passed, so a
    source applies exactly those fields, including values equal to a default.
    """

    __slots__ = (*QUERY_CONFIG_SLOTS, "_explicit")

    _explicit: "frozenset[str]"

    def __init__(
        self,
        quoting: "Union[str, Quoting, None, EmptyEnum]" = Empty,
        command: "Optional[Any]" = Empty,
        result: "Optional[Any]" = Empty,
        adapter: "Union[AdapterProtocol, None, EmptyEnum]" = Empty,
        fn_suffix: "Union[str, EmptyEnum]" = Empty,
        command_options: "Union[tuple[Any, ...], EmptyEnum]" = Empty,
    ) -> None:
        """Initialize the configuration.

        Args:
            quoting: Identifier quoting style (``off``, ``ansi``, ``mysql``, ``mssql``)
            command: Declared command token (execute vs. query)
            result: Declared result shape token
            adapter: Adapter overriding the process-wide default
            fn_suffix: Suffix appended to generated sqlvec function names
            command_options: Extra adapter-specific arguments
        """
        passed = {
            "adapter": adapter,
            "command": command,
            "command_options": command_options,
            "fn_suffix": fn_suffix,
            "quoting": quoting,
            "result": result,
        }
        explicit = frozenset(slot for slot, value in passed.items() if value is not Empty)
        values = {slot: _FIELD_DEFAULTS[slot] if value is Empty else value for slot, value in passed.items()}
        values["quoting"] = Quoting.coerce(values["quoting"])
        values["command_options"] = tuple(values["command_options"])
        for slot, value in values.items():
            object.__setattr__(self, slot, value)
        object.__setattr__(self, "_explicit", explicit)

    def __setattr__(self, name: str, value: Any) -> None:
        msg = f"{type(self).__name__} is immutable; use replace()"
        raise AttributeError(msg)

    def replace(self, **kwargs: Any) -> "QueryConfig":
        """Return a copy with the given attributes updated.

        Fields set on this config stay set on the copy.

        Raises:
            TypeError: If a keyword does not name a field.
        """
        for key in kwargs:
            if key not in QUERY_CONFIG_SLOTS:
                msg = f"{key!r} is not a field in {type(self).__name__}"
                raise TypeError(msg)
        current_kwargs = self.explicit_fields()
        current_kwargs.update(kwargs)
        return type(self)(**current_kwargs)

    def merge(self, *sources: "Union[QueryConfig, Mapping[str, Any], None]") -> "QueryConfig":
        """Layer ``sources`` over this config, later sources overriding earlier.

        Mappings override the keys they contain; keys may use the option
        spelling (``fn-suffix``, ``:quoting``). A ``QueryConfig`` source
        overrides the fields it was built with.
        """
        updates: dict[str, Any] = {}
        for source in sources:
            if source is None:
                continue
            if isinstance(source, QueryConfig):
                updates.update(source.explicit_fields())
            else:
                updates.update({_option_key(str(key)): value for key, value in source.items()})
        if not updates:
            return self
        return self.replace(**updates)

    def explicit_fields(self) -> "dict[str, Any]":
        """Fields passed when this config was built, or set by ``replace``."""
        return {slot: getattr(self, slot) for slot in QUERY_CONFIG_SLOTS if slot in self._explicit}

    def get(self, name: str, default: Any = None) -> Any:
        return getattr(self, name, default) if name in QUERY_CONFIG_SLOTS else default

    def __hash__(self) -> int:
        return hash((self.quoting, str(self.command), str(self.result), id(self.adapter), self.fn_suffix))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, type(self)):
            return False
        return all(getattr(self, slot) == getattr(other, slot) for slot in QUERY_CONFIG_SLOTS)

    def __repr__(self) -> str:
        field_strs = [f"{slot}={getattr(self, slot)!r}" for slot in QUERY_CONFIG_SLOTS]
        return f"{self.__class__.__name__}({', '.join(field_strs)})"


DEFAULT_SQLVEC_CONFIG: Final = QueryConfig(quoting=Quoting.OFF, fn_suffix="_sqlvec")
DEFAULT_DB_CONFIG: Final = QueryConfig(quoting=Quoting.OFF)


_default_adapter: "Optional[AdapterProtocol]" = None
_adapter_lock = threading.Lock()


def set_adapter(adapter: "Optional[AdapterProtocol]") -> None:
    """Set the process-wide default adapter.

    Intended to be called once at startup. Passing ``None`` clears it.
    """
    global _default_adapter
    with _adapter_lock:
        _default_adapter = adapter
    logger.debug("Default adapter set to %r", adapter)


def get_adapter() -> "AdapterProtocol":
    """Return the process-wide default adapter.

    When none was set, a :class:`~sqlvec.adapters.dbapi.DBAPIAdapter` is
    installed on first use.
    """
    global _default_adapter
    if _default_adapter is None:
        with _adapter_lock:
            if _default_adapter is None:
                from sqlvec.adapters.dbapi import DBAPIAdapter

                _default_adapter = DBAPIAdapter()
                logger.debug("No adapter set, using default %r", _default_adapter)
    return _default_adapter


def reset_adapter() -> None:
    """Forget the default adapter."""
    set_adapter(None)
