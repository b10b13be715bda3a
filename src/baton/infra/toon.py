"""Token-oriented object notation (TOON) codec for JSON-compatible values.

TOON trades JSON punctuation for indentation and table headers, which makes
large structured tool results cheaper to feed back to a model::

    users[2]{id,name}:
      1,Alice
      2,Bob

``decode(encode(value)) == value`` for every JSON-compatible value, with
the exception that non-finite floats encode as ``null``.
"""

import json
import math
import re
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from baton.domain.exceptions import BatonError

INDENT = "  "

_BARE_KEY = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")
_NUMERIC_LIKE = re.compile(r"^-?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")
_NUMBER = re.compile(r"^-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?$")
_HEADER = re.compile(r"^\[(\d+)\](?:\{(.*)\})?:(.*)$")
_SPECIAL_CHARS = frozenset(',:"\\[]{}#')


class ToonDecodeError(BatonError, ValueError):
    """Raised when text is not well-formed TOON."""

    def __init__(self, message: str, line: Optional[int] = None) -> None:
        self.line = line
        super().__init__(f"{message} (line {line})" if line is not None else message)


def encode(value: Any) -> str:
    """
    Encodes a JSON-compatible value as TOON.

    Args:
        value: Dicts, lists, tuples, strings, numbers, booleans or None.

    Returns:
        TOON text. An empty dict encodes as an empty string.

    Raises:
        TypeError: When the value contains non JSON-compatible objects.
    """
    value = _normalize(value)
    if isinstance(value, dict):
        return "\n".join(_object_lines(value, 0))
    if isinstance(value, list):
        return "\n".join(_array_lines("", value, 0))
    return _primitive(value)


def decode(text: str) -> Any:
    """
    Decodes TOON text produced by ``encode``.

    Raises:
        ToonDecodeError: When counts, indentation or tokens are malformed.
    """
    lines = _scan(text)
    if not lines:
        return {}
    return _Parser(lines).parse_root()


def estimate_savings(value: Any) -> Dict[str, int]:
    """
    Estimates the token savings of TOON over compact JSON.

    Tokens are approximated as one per four characters.

    Returns:
        ``json_tokens``, ``toon_tokens``, ``savings`` and ``savings_percent``.
    """
    json_tokens = math.ceil(len(json.dumps(value, separators=(",", ":"))) / 4)
    toon_tokens = math.ceil(len(encode(value)) / 4)
    savings = json_tokens - toon_tokens
    percent = round(savings * 100 / json_tokens) if json_tokens else 0
    return {
        "json_tokens": json_tokens,
        "toon_tokens": toon_tokens,
        "savings": savings,
        "savings_percent": percent,
    }


def _normalize(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _normalize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(item) for item in value]
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    raise TypeError(f"Value of type {type(value).__name__} is not JSON-compatible")


def _is_primitive(value: Any) -> bool:
    return not isinstance(value, (dict, list))


def _needs_quotes(text: str) -> bool:
    return (
        text == ""
        or text != text.strip()
        or text in ("true", "false", "null")
        or text.startswith("-")
        or _NUMERIC_LIKE.match(text) is not None
        or any(char in _SPECIAL_CHARS or ord(char) < 32 for char in text)
    )


def _primitive(value: Any) -> str:
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if _needs_quotes(value):
        return json.dumps(value, ensure_ascii=False)
    return value


def _key(name: str) -> str:
    if _BARE_KEY.match(name):
        return name
    return json.dumps(name, ensure_ascii=False)


def _object_lines(obj: Dict[str, Any], depth: int) -> List[str]:
    pad = INDENT * depth
    lines: List[str] = []
    for name, value in obj.items():
        key = _key(name)
        if isinstance(value, dict):
            lines.append(f"{pad}{key}:")
            lines.extend(_object_lines(value, depth + 1))
        elif isinstance(value, list):
            lines.extend(_array_lines(key, value, depth))
        else:
            lines.append(f"{pad}{key}: {_primitive(value)}")
    return lines


def _tabular_fields(items: List[Any]) -> Optional[List[str]]:
    if not items or not all(isinstance(item, dict) and item for item in items):
        return None
    fields = list(items[0])
    for item in items:
        if list(item) != fields:
            return None
        if not all(_is_primitive(value) for value in item.values()):
            return None
    return fields


def _array_lines(key: str, items: List[Any], depth: int) -> List[str]:
    pad = INDENT * depth
    header = f"{pad}{key}[{len(items)}]"
    if all(_is_primitive(item) for item in items):
        if not items:
            return [f"{header}:"]
        return [f"{header}: {','.join(_primitive(item) for item in items)}"]

    row_pad = INDENT * (depth + 1)
    fields = _tabular_fields(items)
    if fields is not None:
        lines = [f"{header}{{{','.join(_key(field) for field in fields)}}}:"]
        for item in items:
            lines.append(row_pad + ",".join(_primitive(item[field]) for field in fields))
        return lines

    lines = [f"{header}:"]
    for item in items:
        lines.extend(_list_item_lines(item, depth + 1))
    return lines


def _list_item_lines(item: Any, depth: int) -> List[str]:
    pad = INDENT * depth
    if isinstance(item, dict):
        if not item:
            return [f"{pad}-"]
        body = _object_lines(item, depth + 1)
    elif isinstance(item, list):
        body = _array_lines("", item, depth + 1)
    else:
        return [f"{pad}- {_primitive(item)}"]
    first = body[0][len(INDENT) * (depth + 1) :]
    return [f"{pad}- {first}"] + body[1:]


class _Line(NamedTuple):
    number: int
    indent: int
    content: str


def _scan(text: str) -> List[_Line]:
    lines: List[_Line] = []
    for number, raw in enumerate(text.split("\n"), start=1):
        if not raw.strip():
            continue
        stripped = raw.lstrip(" ")
        if stripped.startswith("\t"):
            raise ToonDecodeError("Tabs are not allowed in indentation", number)
        lines.append(_Line(number, len(raw) - len(stripped), stripped.rstrip()))
    return lines


def _closing_quote(text: str) -> Optional[int]:
    escaped = False
    for index in range(1, len(text)):
        char = text[index]
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            return index
    return None


def _split_key(content: str) -> Optional[Tuple[str, str]]:
    """Split ``key: ...`` or ``key[N]...`` into the key and the remainder."""

    if content.startswith('"'):
        end = _closing_quote(content)
        if end is None:
            return None
        rest = content[end + 1 :]
        if rest.startswith((":", "[")):
            return json.loads(content[: end + 1]), rest
        return None
    for index, char in enumerate(content):
        if char in ":[":
            if index == 0:
                return None
            return content[:index], content[index:]
    return None


def _split_values(text: str) -> List[str]:
    values: List[str] = []
    current: List[str] = []
    in_quotes = False
    escaped = False
    for char in text:
        if in_quotes:
            current.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_quotes = False
        elif char == '"':
            in_quotes = True
            current.append(char)
        elif char == ",":
            values.append("".join(current))
            current = []
        else:
            current.append(char)
    values.append("".join(current))
    return [value.strip() for value in values]


def _parse_string(token: str, number: int) -> str:
    try:
        value = json.loads(token)
    except json.JSONDecodeError as exc:
        raise ToonDecodeError(f"Invalid quoted string {token!r}", number) from exc
    if not isinstance(value, str):
        raise ToonDecodeError(f"Invalid quoted string {token!r}", number)
    return value


def _parse_primitive(token: str, number: int) -> Any:
    if token.startswith('"'):
        return _parse_string(token, number)
    if token == "null":
        return None
    if token == "true":
        return True
    if token == "false":
        return False
    if _NUMBER.match(token):
        if any(char in token for char in ".eE"):
            return float(token)
        return int(token)
    return token


def _parse_field_name(token: str, number: int) -> str:
    if token.startswith('"'):
        return _parse_string(token, number)
    return token


class _Parser:
    """Recursive descent over indented lines; columns are absolute."""

    def __init__(self, lines: List[_Line]) -> None:
        self._lines = lines
        self._pos = 0

    def _peek(self) -> Optional[_Line]:
        if self._pos < len(self._lines):
            return self._lines[self._pos]
        return None

    def parse_root(self) -> Any:
        first = self._lines[0]
        if first.indent != 0:
            raise ToonDecodeError("Unexpected indentation", first.number)
        if first.content.startswith("["):
            self._pos = 1
            value = self._array(first, first.content, 0)
        elif _split_key(first.content) is not None:
            value = self._object(0)
        else:
            self._pos = 1
            value = _parse_primitive(first.content, first.number)

        trailing = self._peek()
        if trailing is not None:
            raise ToonDecodeError("Unexpected trailing content", trailing.number)
        return value

    def _object(self, column: int) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        while True:
            line = self._peek()
            if line is None or line.indent < column:
                return result
            if line.indent > column:
                raise ToonDecodeError("Unexpected indentation", line.number)
            self._pos += 1
            key, value = self._field(line, line.content, column)
            result[key] = value

    def _field(self, line: _Line, content: str, column: int) -> Tuple[str, Any]:
        split = _split_key(content)
        if split is None:
            raise ToonDecodeError(f"Expected 'key: value', got {content!r}", line.number)
        key, rest = split
        if rest.startswith("["):
            return key, self._array(line, rest, column)

        value_text = rest[1:].strip()
        if value_text:
            return key, _parse_primitive(value_text, line.number)
        following = self._peek()
        if following is not None and following.indent > column:
            return key, self._object(following.indent)
        return key, {}

    def _array(self, line: _Line, header: str, column: int) -> List[Any]:
        match = _HEADER.match(header)
        if match is None:
            raise ToonDecodeError(f"Malformed array header {header!r}", line.number)
        count = int(match.group(1))
        fields_text = match.group(2)
        inline = match.group(3).strip()

        if fields_text is not None:
            if inline:
                raise ToonDecodeError("Tabular header cannot carry inline values", line.number)
            fields = [
                _parse_field_name(token, line.number) for token in _split_values(fields_text)
            ]
            return self._rows(count, fields, column, line.number)
        if inline:
            values = [_parse_primitive(token, line.number) for token in _split_values(inline)]
            if len(values) != count:
                raise ToonDecodeError(
                    f"Expected {count} values, found {len(values)}", line.number
                )
            return values
        if count == 0:
            return []
        return self._items(count, column, line.number)

    def _children(self, column: int, expected: int):
        """Yield up to ``expected`` consecutive lines indented past a column."""

        child_column = None
        produced = 0
        while produced < expected:
            line = self._peek()
            if line is None or line.indent <= column:
                return
            if child_column is None:
                child_column = line.indent
            elif line.indent != child_column:
                raise ToonDecodeError("Inconsistent indentation", line.number)
            self._pos += 1
            produced += 1
            yield line

    def _rows(self, count: int, fields: List[str], column: int, number: int) -> List[Any]:
        rows = []
        for line in self._children(column, count):
            values = [_parse_primitive(token, line.number) for token in _split_values(line.content)]
            if len(values) != len(fields):
                raise ToonDecodeError(
                    f"Row has {len(values)} values, expected {len(fields)}", line.number
                )
            rows.append(dict(zip(fields, values)))
        if len(rows) != count:
            raise ToonDecodeError(f"Expected {count} rows, found {len(rows)}", number)
        return rows

    def _items(self, count: int, column: int, number: int) -> List[Any]:
        items = []
        for line in self._children(column, count):
            items.append(self._item(line))
        if len(items) != count:
            raise ToonDecodeError(f"Expected {count} items, found {len(items)}", number)
        return items

    def _item(self, line: _Line) -> Any:
        if line.content == "-":
            return {}
        if not line.content.startswith("- "):
            raise ToonDecodeError("Expected a '- ' list item", line.number)
        rest = line.content[2:]
        inner = line.indent + len(INDENT)
        if rest.startswith("["):
            return self._array(line, rest, inner)
        if _split_key(rest) is None:
            return _parse_primitive(rest, line.number)
        key, value = self._field(line, rest, inner)
        item = {key: value}
        item.update(self._object(inner))
        return item
