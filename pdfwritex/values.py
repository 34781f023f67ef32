"""PDF value model and its textual serialization.

Every value that ends up in a dictionary, array or trailer belongs to a
closed set of variants:

* :class:`int` and :class:`float` numbers (``bool`` renders as
  ``true``/``false``, ``None`` as ``null``),
* :class:`Name` (``/Name``),
* :class:`String` (``(literal)`` or ``<feff...>``),
* :class:`ObjectNumber` (an indirect reference, ``N 0 R``),
* :class:`Dict` / any mapping (``<< ... >>``),
* :class:`Array` / list / tuple (``[ ... ]``),
* :class:`NameTreeData` (a key-sorted ``[ (key) ref ... ]`` array),
* :class:`Raw` (pre-formatted PDF syntax, copied verbatim).

Anything else, plain :class:`str` included, raises :class:`TypeError`;
wrap text in :class:`Name`, :class:`String` or :class:`Raw` to state what
it is.
"""

from __future__ import annotations

import math
from decimal import Decimal
from typing import Any, Iterable, Mapping

__all__ = [
    "Array",
    "Dict",
    "Name",
    "NameTreeData",
    "ObjectNumber",
    "Raw",
    "String",
    "float_to_point",
    "format_float",
    "name_to_pdf",
    "round_point",
    "serialize",
    "string_to_pdf",
]


# -- Value variants ----------------------------------------------------------


class ObjectNumber(int):
    """Identity of an indirect object; serializes as a reference."""

    def ref(self) -> str:
        return f"{int(self)} 0 R"


class Name(str):
    """A PDF name. A single leading slash is accepted and dropped."""

    def __new__(cls, value: str) -> "Name":
        if not isinstance(value, str):
            raise TypeError(f"PDF names must be strings, got {type(value).__name__}")
        if value.startswith("/"):
            value = value[1:]
        return super().__new__(cls, value)


class String(str):
    """A PDF text string."""


class Raw(str):
    """Pre-formatted PDF syntax written without any escaping."""


class Array(list):
    """An ordered PDF array."""


class NameTreeData(dict):
    """Mapping of keys to object numbers, written as a sorted flat array."""


class Dict(dict):
    """A PDF dictionary keyed by :class:`Name`.

    Keys are normalized on every access, so ``d["/Type"]`` and
    ``d["Type"]`` address the same entry and caller overrides merged
    with :meth:`update` replace computed entries instead of duplicating
    them.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__()
        self.update(*args, **kwargs)

    def __setitem__(self, key: str, value: Any) -> None:
        super().__setitem__(Name(key), value)

    def __getitem__(self, key: str) -> Any:
        return super().__getitem__(Name(key))

    def __delitem__(self, key: str) -> None:
        super().__delitem__(Name(key))

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        return super().__contains__(Name(key))

    def get(self, key: str, default: Any = None) -> Any:
        return super().get(Name(key), default)

    def pop(self, key: str, *default: Any) -> Any:
        return super().pop(Name(key), *default)

    def setdefault(self, key: str, default: Any = None) -> Any:
        return super().setdefault(Name(key), default)

    def update(self, *args: Any, **kwargs: Any) -> None:
        for key, value in dict(*args, **kwargs).items():
            self[key] = value

    def copy(self) -> "Dict":
        return Dict(self)


# -- Scalars -----------------------------------------------------------------


_STRING_ESCAPES = {
    "\\": "\\\\",
    "(": "\\(",
    ")": "\\)",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
}

_NAME_DELIMITERS = frozenset(b"()<>[]{}/%#")


def format_float(value: float) -> str:
    """Shortest round-trippable decimal form, never in exponent notation."""

    if not math.isfinite(value):
        raise ValueError(f"Cannot write non-finite number {value!r} to a PDF")
    text = format(Decimal(repr(float(value))), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("", "-0"):
        return "0"
    return text


def round_point(value: float) -> float:
    """Round a geometry value to two decimal places, halves away from zero."""

    scaled = math.floor(abs(value) * 100 + 0.5) / 100
    return math.copysign(scaled, value) if scaled else 0.0


def float_to_point(value: float) -> str:
    return format_float(round_point(value))


def string_to_pdf(text: str) -> str:
    """Render *text* as a literal string if it is ASCII, else as UTF-16BE hex."""

    if all(ord(char) <= 127 for char in text):
        return "(" + "".join(_STRING_ESCAPES.get(char, char) for char in text) + ")"
    return "<feff" + text.encode("utf-16-be").hex() + ">"


def name_to_pdf(name: str) -> str:
    raw = name[1:] if name.startswith("/") else name
    out = ["/"]
    for byte in raw.encode("utf-8"):
        if byte < 0x21 or byte > 0x7E or byte in _NAME_DELIMITERS:
            out.append(f"#{byte:02X}")
        else:
            out.append(chr(byte))
    return "".join(out)


# -- Containers --------------------------------------------------------------


def _sort_key(key: str) -> tuple[int, str]:
    # /Type always leads so that identical dictionaries serialize identically
    return (0, "") if key == "Type" else (1, key)


def _dict_to_string(mapping: Mapping[str, Any], level: int) -> str:
    entries = mapping if isinstance(mapping, Dict) else Dict(mapping)
    indent = " " * (level + 1)
    lines = ["<<"]
    for key in sorted(entries, key=_sort_key):
        lines.append(f"{indent}{name_to_pdf(key)} {serialize(entries[key], level + 1)}")
    lines.append(" " * level + ">>")
    return "\n".join(lines)


def _array_to_string(items: Iterable[Any], level: int) -> str:
    return "[" + " ".join(serialize(item, level) for item in items) + "]"


def _name_tree_to_string(tree: Mapping[str, int]) -> str:
    parts = []
    for key in sorted(tree):
        parts.append(f"{string_to_pdf(key)} {ObjectNumber(tree[key]).ref()}")
    return "[" + " ".join(parts) + "]"


def serialize(item: Any, level: int = 0) -> str:
    """Return the PDF representation of *item*."""

    if isinstance(item, Raw):
        return str(item)
    if isinstance(item, Name):
        return name_to_pdf(item)
    if isinstance(item, String):
        return string_to_pdf(item)
    if isinstance(item, ObjectNumber):
        return item.ref()
    if isinstance(item, bool):
        return "true" if item else "false"
    if isinstance(item, int):
        return str(int(item))
    if isinstance(item, float):
        return format_float(item)
    if item is None:
        return "null"
    if isinstance(item, NameTreeData):
        return _name_tree_to_string(item)
    if isinstance(item, Mapping):
        return _dict_to_string(item, level)
    if isinstance(item, (list, tuple)):
        return _array_to_string(item, level)
    if isinstance(item, str):
        raise TypeError(
            f"Plain string {item!r} is ambiguous in a PDF; use Name, String or Raw"
        )
    raise TypeError(f"Unsupported PDF value type: {type(item).__name__}")
