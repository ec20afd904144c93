"""Typed configuration arguments for configurable collectors."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Sequence

from mysqld_exporter.errors import ConfigurationError

class ArgKind(Enum):
    """Value types a collector argument can take."""
    BOOL = "bool"
    INT = "int"
    STRING = "string"

    def accepts(self, value: Any) -> bool:
        """Check a value's static type; bool is not accepted as int."""
        if self is ArgKind.BOOL:
            return isinstance(value, bool)
        if self is ArgKind.INT:
            return isinstance(value, int) and not isinstance(value, bool)
        return isinstance(value, str)

@dataclass(frozen=True)
class ArgDefinition:
    """Declared argument of a configurable collector."""
    name: str
    help: str
    default_value: Any
    kind: ArgKind

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Argument definitions need a name")
        if not self.kind.accepts(self.default_value):
            raise ConfigurationError(
                f"Argument {self.name} default {self.default_value!r} "
                f"is not of kind {self.kind.value}"
            )

@dataclass(frozen=True)
class Arg:
    """Runtime name/value pair passed to configure()."""
    name: str
    value: Any

def default_args(definitions: Sequence[ArgDefinition]) -> List[Arg]:
    """Fresh list of args carrying each definition's default."""
    return [Arg(definition.name, definition.default_value) for definition in definitions]
