"""默认的 JSON 字段编解码器.

只负责 JSON 的最外一层: 把对象拆分为 名称->原始字节片段 的映射,
或把数组拆分为元素片段, 以及反向的拼接. 片段内容原样保留, 不做解析.
"""

import json
import re
from collections.abc import Iterable, Mapping
from enum import Enum
from json.decoder import scanstring

from .exceptions import DecodeError

_WHITESPACE = re.compile(r"[ \t\n\r]*")
_DECODER = json.JSONDecoder()
_NUMBER_START = frozenset("-0123456789")


class Shape(str, Enum):
    """JSON 片段的语法形态."""

    OBJECT = "object"
    ARRAY = "array"
    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    NULL = "null"
    INVALID = "invalid"


def _text(data: bytes | bytearray | memoryview | str) -> str:
    if isinstance(data, str):
        return data
    try:
        return bytes(data).decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Invalid UTF-8 in JSON input: {e}") from e


def _skip(s: str, pos: int) -> int:
    return _WHITESPACE.match(s, pos).end()  # type: ignore[union-attr]


def _scan_value(s: str, pos: int) -> int:
    """扫描 pos 处的一个完整 JSON 值, 返回其结束位置."""
    try:
        _, end = _DECODER.raw_decode(s, pos)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid JSON value: {e}") from e
    return end


def _expect(s: str, pos: int, char: str) -> None:
    if s[pos : pos + 1] != char:
        found = s[pos : pos + 1] or "end of input"
        raise DecodeError(f"Expected {char!r} at position {pos}, found {found!r}")


def _ensure_end(s: str, pos: int) -> None:
    pos = _skip(s, pos)
    if pos != len(s):
        raise DecodeError(f"Unexpected trailing data at position {pos}")


def classify(data: bytes | bytearray | memoryview | str) -> Shape:
    """根据首个非空白字符判断 JSON 片段的形态 (不做完整解析).

    Examples:
        >>> classify(b' {"a": 1}')
        <Shape.OBJECT: 'object'>
        >>> classify(b"5")
        <Shape.NUMBER: 'number'>
        >>> classify(b"nope")
        <Shape.INVALID: 'invalid'>
    """
    try:
        s = _text(data).strip(" \t\n\r")
    except DecodeError:
        return Shape.INVALID
    if not s:
        return Shape.INVALID
    head = s[0]
    if head == "{":
        return Shape.OBJECT
    if head == "[":
        return Shape.ARRAY
    if head == '"':
        return Shape.STRING
    if head in _NUMBER_START:
        return Shape.NUMBER
    if s in ("true", "false"):
        return Shape.BOOLEAN
    if s == "null":
        return Shape.NULL
    return Shape.INVALID


def read_fields(data: bytes | bytearray | memoryview | str) -> dict[str, bytes]:
    """将 JSON 对象拆分为 名称->原始字节 映射.

    重复的键以最后一次出现为准.

    Raises:
        DecodeError: 输入不是合法的 JSON 对象.
    """
    s = _text(data)
    pos = _skip(s, 0)
    if s[pos : pos + 1] != "{":
        raise DecodeError(f"Cannot read fields from JSON {classify(s).value}")
    fields: dict[str, bytes] = {}
    pos = _skip(s, pos + 1)
    if s[pos : pos + 1] == "}":
        _ensure_end(s, pos + 1)
        return fields

    while True:
        _expect(s, pos, '"')
        try:
            key, pos = scanstring(s, pos + 1)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Invalid JSON key: {e}") from e
        pos = _skip(s, pos)
        _expect(s, pos, ":")
        start = _skip(s, pos + 1)
        end = _scan_value(s, start)
        fields[key] = s[start:end].encode("utf-8")
        pos = _skip(s, end)
        if s[pos : pos + 1] == ",":
            pos = _skip(s, pos + 1)
            continue
        _expect(s, pos, "}")
        _ensure_end(s, pos + 1)
        return fields


def read_elements(data: bytes | bytearray | memoryview | str) -> list[bytes]:
    """将 JSON 数组拆分为各元素的原始字节.

    Raises:
        DecodeError: 输入不是合法的 JSON 数组.
    """
    s = _text(data)
    pos = _skip(s, 0)
    if s[pos : pos + 1] != "[":
        raise DecodeError(f"Cannot read elements from JSON {classify(s).value}")
    elements: list[bytes] = []
    pos = _skip(s, pos + 1)
    if s[pos : pos + 1] == "]":
        _ensure_end(s, pos + 1)
        return elements

    while True:
        end = _scan_value(s, pos)
        elements.append(s[pos:end].encode("utf-8"))
        pos = _skip(s, end)
        if s[pos : pos + 1] == ",":
            pos = _skip(s, pos + 1)
            continue
        _expect(s, pos, "]")
        _ensure_end(s, pos + 1)
        return elements


def check_value(data: bytes | bytearray | memoryview | str) -> None:
    """检查输入恰好是一个完整的 JSON 值.

    Raises:
        DecodeError: 输入不是合法的 JSON, 或值后面还有多余的数据.
    """
    s = _text(data)
    pos = _skip(s, 0)
    _ensure_end(s, _scan_value(s, pos))


def write_fields(fields: Mapping[str, bytes]) -> bytes:
    """将 名称->已编码字节 映射拼接为 JSON 对象."""
    parts = [
        json.dumps(name, ensure_ascii=False).encode("utf-8") + b":" + bytes(value)
        for name, value in fields.items()
    ]
    return b"{" + b",".join(parts) + b"}"


def write_elements(elements: Iterable[bytes]) -> bytes:
    """将已编码的元素拼接为 JSON 数组."""
    return b"[" + b",".join(bytes(e) for e in elements) + b"]"
