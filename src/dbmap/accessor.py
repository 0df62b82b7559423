"""
Read and write values on objects through property paths.

A path is a dot-separated chain of attribute names with optional ``[key]``
segments::

    email
    address.city
    tags[0]
    meta[owner].name

Mappings are addressed by key for both dotted and bracketed segments.
Bracketed segments on sequences are integer indexes.
"""
import functools
import logging
import re
from collections.abc import Mapping, MutableMapping, MutableSequence, Sequence
from typing import Any

from dbmap.exceptions import AccessError

logger = logging.getLogger(__name__)

_SEGMENT = re.compile(r'\.?([^.\[\]]+)|\[([^\[\]]*)\]')


@functools.lru_cache(maxsize=256)
def parse_path(path: str) -> tuple[tuple[bool, str], ...]:
    """Split a path into ``(is_key, name)`` segments.

    Raises
        AccessError: If the path is empty or malformed
    """
    if not isinstance(path, str) or not path:
        raise AccessError(f'Invalid property path: {path!r}')

    segments = []
    pos = 0
    for match in _SEGMENT.finditer(path):
        if match.start() != pos or (match.group(1) is not None and pos == 0 and path.startswith('.')):
            raise AccessError(f'Invalid property path: {path!r}')
        if match.group(1) is not None:
            segments.append((False, match.group(1)))
        else:
            segments.append((True, match.group(2)))
        pos = match.end()
    if pos != len(path) or not segments:
        raise AccessError(f'Invalid property path: {path!r}')
    return tuple(segments)


def _read(obj: Any, is_key: bool, name: str, path: str) -> Any:
    try:
        if isinstance(obj, Mapping):
            return obj[name]
        if is_key:
            if isinstance(obj, Sequence) and not isinstance(obj, str):
                return obj[int(name)]
            raise AccessError(f'Cannot index {type(obj).__name__} with [{name}] in {path!r}')
        return getattr(obj, name)
    except (KeyError, IndexError, ValueError, AttributeError) as exc:
        if isinstance(exc, AccessError):
            raise
        raise AccessError(f'Cannot read {name!r} of {type(obj).__name__} in {path!r}') from exc


def _write(obj: Any, is_key: bool, name: str, value: Any, path: str) -> None:
    try:
        if isinstance(obj, MutableMapping):
            obj[name] = value
        elif is_key:
            if not isinstance(obj, MutableSequence):
                raise AccessError(f'Cannot index {type(obj).__name__} with [{name}] in {path!r}')
            obj[int(name)] = value
        else:
            setattr(obj, name, value)
    except (IndexError, ValueError, AttributeError, TypeError) as exc:
        if isinstance(exc, AccessError):
            raise
        raise AccessError(f'Cannot write {name!r} of {type(obj).__name__} in {path!r}') from exc


class PropertyAccessor:
    """Get and set values by property path.
    """

    def get_value(self, obj: Any, path: str) -> Any:
        """Read the value at ``path``.

        Raises
            AccessError: If any segment is missing
        """
        for is_key, name in parse_path(path):
            obj = _read(obj, is_key, name, path)
        return obj

    def set_value(self, obj: Any, path: str, value: Any) -> None:
        """Write ``value`` at ``path``; intermediate segments must exist.
        """
        segments = parse_path(path)
        target = obj
        for is_key, name in segments[:-1]:
            target = _read(target, is_key, name, path)
        is_key, name = segments[-1]
        _write(target, is_key, name, value, path)

    def is_readable(self, obj: Any, path: str) -> bool:
        try:
            self.get_value(obj, path)
        except AccessError:
            return False
        return True


_default_accessor = PropertyAccessor()


def get_accessor() -> PropertyAccessor:
    """Return the shared accessor."""
    return _default_accessor
