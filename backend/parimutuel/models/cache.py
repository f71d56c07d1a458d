"""
Cache Entry Models
"""
from datetime import datetime
from typing import Callable, Generic, Optional, TypeVar
from dataclasses import dataclass
from enum import Enum

from ..errors import AppError


T = TypeVar('T')


class CacheState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """
    Immutable snapshot of one cache key.

    Entries are replaced wholesale on every transition, so a reader never
    observes a half-applied update. `data` survives failures: an error
    leaves the last good value in place.
    """
    key: str
    data: Optional[T] = None
    is_loading: bool = False
    error: Optional[AppError] = None
    request_generation: int = 0
    updated_at: Optional[datetime] = None

    @property
    def state(self) -> CacheState:
        if self.is_loading:
            return CacheState.LOADING
        if self.error is not None:
            return CacheState.ERROR
        if self.updated_at is not None:
            return CacheState.READY
        return CacheState.IDLE

    @property
    def has_data(self) -> bool:
        return self.data is not None

    def to_dict(self, serialize: Optional[Callable[[T], object]] = None) -> dict:
        data = self.data
        if data is not None and serialize is not None:
            data = serialize(data)
        return {
            'key': self.key,
            'state': self.state.value,
            'data': data,
            'is_loading': self.is_loading,
            'error': self.error.to_dict() if self.error else None,
            'request_generation': self.request_generation,
            'updated_at': self.updated_at.isoformat() + 'Z' if self.updated_at else None,
        }
