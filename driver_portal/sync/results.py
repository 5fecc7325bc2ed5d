"""
Outcome types for gateway operations.

A remote attempt yields ``Ok`` or ``RemoteUnavailable``; the gateway then
either returns the ``Ok`` or retries locally. ``WriteFailed`` is only produced
when the local write fails too.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class Source(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    source: Source = Source.REMOTE

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class RemoteUnavailable:
    reason: str

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class WriteFailed:
    reason: str

    @property
    def ok(self) -> bool:
        return False


RemoteResult = Union[Ok[Any], RemoteUnavailable]
WriteResult = Union[Ok[Any], WriteFailed]
