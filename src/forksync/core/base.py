"""Base classes for configuration, state, and record models.

Kept in their own module so that config.py and log.py can both
depend on them without importing each other:
- Closeable Protocol for anything holding an OS resource
- BaseCloseable, which closes its Closeable fields on exit
- BaseConfig / BaseState markers for config and runtime sections
- BaseRecord for immutable pipeline results
"""

from __future__ import annotations

import sys
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict


@runtime_checkable
class Closeable(Protocol):
    """Protocol for objects that support close()."""

    def close(self) -> None:
        """Release held resources."""
        ...


class BaseCloseable(BaseModel):
    """Model that closes every Closeable field when it is closed.

    Subclasses become context managers. Closing walks the model
    fields in declaration order and keeps going when one child
    fails, so a broken log sink never keeps the lock file or the
    other sinks open:

        State.__exit__() -> Config.close() -> Logger.close() -> Sink.close()
    """

    def close(self):
        """Close all Closeable children, reporting failures on stderr."""
        for field_name in self.__class__.model_fields:
            child = getattr(self, field_name, None)
            if child is None or not isinstance(child, Closeable):
                continue
            try:
                child.close()
            except Exception as e:
                print(
                    f"Warning: Error closing {field_name}: {e}",
                    file=sys.stderr,
                )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):  # noqa: U100
        self.close()
        return False


class BaseConfig(BaseCloseable):
    """Marker base for sections loaded from YAML/env/CLI."""
    pass


class BaseState(BaseCloseable):
    """Marker base for sections mutated while a run executes."""
    pass


class BaseRecord(BaseModel):
    """Immutable result produced by one pipeline stage.

    Records are frozen once built: a stage hands them to the next
    stage and to the status report, and nobody downstream may
    rewrite what an earlier stage observed.
    """

    model_config = ConfigDict(frozen=True)


__all__ = [
    "Closeable",
    "BaseCloseable",
    "BaseConfig",
    "BaseState",
    "BaseRecord",
]
