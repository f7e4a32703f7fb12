"""Extract declared keys from an untrusted param mapping."""

from __future__ import annotations

import json
from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from types import MappingProxyType

from formgate.domain.models import to_jsonable


@dataclass(frozen=True, slots=True)
class ExtractedParams:
    """Raw values for declared names that were present, plus the keys left behind."""

    values: Mapping[str, object]
    ignored: tuple[str, ...]

    def __contains__(self, name: object) -> bool:
        return name in self.values


def extract_params(
    source: Mapping[str, object] | None,
    names: Iterable[str],
    *,
    param_key: str | None = None,
    keep_lists: Collection[str] = (),
) -> ExtractedParams:
    """Read only ``names`` from ``source`` (or from ``source[param_key]``).

    A name present with a list/tuple value takes the last element, matching how
    repeated query/form keys are usually submitted, unless the name is listed in
    ``keep_lists`` (JSON columns). Keys that are not declared are reported in
    ``ignored`` and never applied.
    """

    scope: Mapping[str, object]
    if source is None:
        scope = {}
    elif param_key is None:
        scope = source
    else:
        nested = source.get(param_key)
        if nested is None:
            scope = {}
        elif isinstance(nested, Mapping):
            scope = nested
        else:
            return ExtractedParams(values=MappingProxyType({}), ignored=(param_key,))

    declared = tuple(names)
    wanted = set(declared)
    values: dict[str, object] = {}
    for name in declared:
        if name in scope:
            raw = scope[name]
            values[name] = raw if name in keep_lists else last_value(raw)
    ignored = tuple(sorted(str(key) for key in scope if key not in wanted))
    return ExtractedParams(values=MappingProxyType(values), ignored=ignored)


def last_value(raw: object) -> object:
    if isinstance(raw, (list, tuple)):
        return raw[-1] if raw else None
    return raw


def display_value(raw: object) -> str | None:
    """The raw submitted representation kept on a field's ``param_value``."""

    if raw is None or isinstance(raw, str):
        return raw
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if isinstance(raw, (datetime, date)):
        return raw.isoformat()
    if isinstance(raw, (Mapping, list)):
        try:
            return json.dumps(to_jsonable(raw), sort_keys=True)
        except TypeError:
            return repr(raw)
    return str(raw)


__all__ = ["ExtractedParams", "display_value", "extract_params", "last_value"]
