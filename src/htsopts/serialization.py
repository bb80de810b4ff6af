"""Dict/JSON encoding of the option and metadata records.

Field names are the stable contract. Enums are written by name and read back
from either their name or integer value. Missing fields take their defaults and
unknown fields are rejected, after which the record's own validation runs.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Mapping
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Type, TypeVar, get_args, get_origin, get_type_hints

from .errors import InvalidConfiguration
from .utils import write_json

logger = logging.getLogger(__name__)

R = TypeVar("R")


@lru_cache(maxsize=None)
def _field_types(cls: type) -> Dict[str, Any]:
    hints = get_type_hints(cls)
    return {f.name: hints[f.name] for f in dataclasses.fields(cls)}


def to_dict(record: Any) -> Dict[str, Any]:
    """Encode a record (recursively) into JSON-compatible plain data."""
    if not dataclasses.is_dataclass(record) or isinstance(record, type):
        raise TypeError(f"Expected a record instance, got {record!r}")
    return {f.name: _encode(getattr(record, f.name)) for f in dataclasses.fields(record)}


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.name
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return to_dict(value)
    if isinstance(value, Mapping):
        return {str(k): _encode(v) for k, v in value.items()}
    if isinstance(value, (tuple, list)):
        return [_encode(v) for v in value]
    return value


def from_dict(cls: Type[R], data: Mapping[str, Any]) -> R:
    """Decode plain data produced by :func:`to_dict` (or written by hand) into ``cls``."""
    if not isinstance(data, Mapping):
        raise InvalidConfiguration(f"{cls.__name__}: expected an object, got {data!r}")
    types = _field_types(cls)
    unknown = sorted(set(data) - set(types))
    if unknown:
        raise InvalidConfiguration(
            f"{cls.__name__}: unknown field(s) {', '.join(unknown)}", field=unknown[0]
        )
    kwargs = {name: _decode(types[name], value, name) for name, value in data.items()}
    return cls(**kwargs)


def _decode(tp: Any, value: Any, name: str) -> Any:
    if isinstance(tp, type) and dataclasses.is_dataclass(tp):
        return from_dict(tp, value)
    origin = get_origin(tp)
    if origin is tuple:
        if isinstance(value, (str, Mapping)) or not isinstance(value, (list, tuple)):
            raise InvalidConfiguration(f"{name}: expected a list, got {value!r}", field=name)
        item_tp = get_args(tp)[0]
        return tuple(_decode(item_tp, v, name) for v in value)
    if isinstance(origin, type) and issubclass(origin, Mapping):
        if not isinstance(value, Mapping):
            raise InvalidConfiguration(f"{name}: expected an object, got {value!r}", field=name)
        return dict(value)
    # Scalars and enums are checked by the record constructor.
    return value


def dumps(record: Any, *, indent: int | None = 2) -> str:
    return json.dumps(to_dict(record), indent=indent, sort_keys=False)


def loads(cls: Type[R], text: str) -> R:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidConfiguration(f"{cls.__name__}: invalid JSON ({e})") from e
    return from_dict(cls, data)


def load_options(path: str | Path, cls: Type[R]) -> R:
    """Load a record of type ``cls`` from a JSON file."""
    p = Path(path)
    logger.debug("Loading %s from %s", cls.__name__, p)
    return loads(cls, p.read_text(encoding="utf-8"))


def save_options(path: str | Path, record: Any) -> None:
    write_json(path, to_dict(record))
