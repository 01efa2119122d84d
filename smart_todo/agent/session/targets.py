from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class ExistingTarget:
    id: int

    @property
    def external(self) -> str:
        return f"existing:{self.id}"


@dataclass(frozen=True)
class PendingTarget:
    ref: int

    @property
    def external(self) -> str:
        return f"pending:{self.ref}"


Target = Union[ExistingTarget, PendingTarget]


def describe_target(target: Target) -> str:
    """Short label used in commit error messages: ``7`` or ``pending:1``."""
    if isinstance(target, ExistingTarget):
        return str(target.id)
    return target.external
