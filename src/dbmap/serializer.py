"""
Normalizer contract and dispatch.

A normalizer converts objects to plain dicts (normalize) and back
(denormalize). Repository implements the contract for its entity class, so
repositories can be registered with a Serializer and picked by type.

Probe results are cached per ``(type, format)`` for normalizers whose
``has_cacheable_supports_method()`` answers True.
"""
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from dbmap.exceptions import UnsupportedTypeError

logger = logging.getLogger(__name__)

__all__ = ['Normalizer', 'Serializer']


class Normalizer(ABC):
    """Object <-> dict conversion capability.
    """

    @abstractmethod
    def normalize(self, obj: Any, format: str | None = None,
                  context: dict[str, Any] | None = None) -> dict[str, Any]:
        """Convert an object into a dict."""

    @abstractmethod
    def denormalize(self, data: Any, type_: type, format: str | None = None,
                    context: dict[str, Any] | None = None) -> Any:
        """Build (or populate) an object of ``type_`` from a dict."""

    @abstractmethod
    def supports_normalization(self, obj: Any, format: str | None = None) -> bool:
        """Whether ``normalize`` accepts ``obj``."""

    @abstractmethod
    def supports_denormalization(self, data: Any, type_: type, format: str | None = None) -> bool:
        """Whether ``denormalize`` accepts ``data`` for ``type_``."""

    def has_cacheable_supports_method(self) -> bool:
        """Whether the supports_* answers depend only on type and format."""
        return False


class Serializer:
    """Dispatch to the first normalizer supporting the input.

    Args:
        normalizers: Normalizers in priority order
    """

    def __init__(self, normalizers: Iterable[Normalizer] = ()) -> None:
        self.normalizers: list[Normalizer] = list(normalizers)
        self._normalize_cache: dict[tuple[type, str | None], Normalizer | None] = {}
        self._denormalize_cache: dict[tuple[type, str | None], Normalizer | None] = {}
        self._lock = threading.RLock()

    def add(self, normalizer: Normalizer) -> None:
        """Append a normalizer and forget cached probe results."""
        with self._lock:
            self.normalizers.append(normalizer)
            self._normalize_cache.clear()
            self._denormalize_cache.clear()

    def _find(self, cache: dict, key: tuple[type, str | None], probe) -> Normalizer | None:
        if key in cache:
            return cache[key]
        found = None
        cacheable = True
        for normalizer in self.normalizers:
            cacheable = cacheable and normalizer.has_cacheable_supports_method()
            if probe(normalizer):
                found = normalizer
                break
        if cacheable:
            with self._lock:
                cache[key] = found
        return found

    def get_normalizer(self, obj: Any, format: str | None = None) -> Normalizer | None:
        return self._find(self._normalize_cache, (type(obj), format),
                          lambda n: n.supports_normalization(obj, format))

    def get_denormalizer(self, data: Any, type_: type, format: str | None = None) -> Normalizer | None:
        return self._find(self._denormalize_cache, (type_, format),
                          lambda n: n.supports_denormalization(data, type_, format))

    def supports_normalization(self, obj: Any, format: str | None = None) -> bool:
        return self.get_normalizer(obj, format) is not None

    def supports_denormalization(self, data: Any, type_: type, format: str | None = None) -> bool:
        return self.get_denormalizer(data, type_, format) is not None

    def normalize(self, obj: Any, format: str | None = None,
                  context: dict[str, Any] | None = None) -> dict[str, Any]:
        """Normalize with the first supporting normalizer.

        Raises
            UnsupportedTypeError: If no normalizer supports the object
        """
        normalizer = self.get_normalizer(obj, format)
        if normalizer is None:
            raise UnsupportedTypeError(f'No normalizer supports {type(obj).__name__}')
        return normalizer.normalize(obj, format, context)

    def denormalize(self, data: Any, type_: type, format: str | None = None,
                    context: dict[str, Any] | None = None) -> Any:
        """Denormalize with the first supporting normalizer.

        Raises
            UnsupportedTypeError: If no normalizer supports the target type
        """
        normalizer = self.get_denormalizer(data, type_, format)
        if normalizer is None:
            name = getattr(type_, '__name__', repr(type_))
            raise UnsupportedTypeError(f'No normalizer supports denormalizing into {name}')
        return normalizer.denormalize(data, type_, format, context)
