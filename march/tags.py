"""标签语法.

标签值的格式为 ``"name,flag,flag"``: 第一部分是字段在编码形式中的名称,
其余部分是标志. 名称为空表示跳过该字段.
"""

from collections.abc import Mapping
from typing import Any, NamedTuple

# 默认标签键, 同时也是默认的自定义方法名后缀
DEFAULT_TAG = "march"

# 将字段的子字段提升到父结构体的命名空间
FLAG_HOIST = "hoist"
# 接收所有未被其他字段认领的输入字段
FLAG_REMAINS = "remains"

# dataclass 字段 metadata 中存放标签的键
METADATA_KEY = "tags"


class TagDirective(NamedTuple):
    """解析后的标签.

    Attributes:
        name: 主名称, 为空时字段被忽略.
        flags: 标志集合.
        ok: 仅当标签键完全不存在时为 False.
    """

    name: str
    flags: frozenset[str]
    ok: bool


def get_tag_part(tag: str, n: int) -> tuple[str, bool]:
    """返回标签值的第 n 部分, 不存在时 ok 为 False."""
    parts = tag.split(",")
    if len(parts) > n:
        return parts[n], True
    return "", False


def tag_flags(tag: str) -> tuple[str, ...]:
    """返回标签值中除第一部分以外的各部分."""
    parts = tag.split(",")
    if len(parts) < 2:
        return ()
    return tuple(parts[1:])


def flags_contain(tag: str, flag: str) -> bool:
    """标签值的标志部分是否包含 flag."""
    return flag in tag_flags(tag)


def is_valid_tag_name(name: str) -> bool:
    """任何非空字符串都是合法的标签名."""
    return len(name) > 0


def parse_tag(tag: str | None) -> TagDirective:
    """解析标签值.

    Args:
        tag: 原始标签值, None 表示字段上不存在该标签键.

    Returns:
        TagDirective: 名称, 标志集合以及标签键是否存在.

    Examples:
        >>> parse_tag("H,hoist")
        TagDirective(name='H', flags=frozenset({'hoist'}), ok=True)
        >>> parse_tag("").name
        ''
        >>> parse_tag(None).ok
        False
    """
    if tag is None:
        return TagDirective("", frozenset(), False)
    name, _ = get_tag_part(tag, 0)
    return TagDirective(name, frozenset(tag_flags(tag)), True)


def lookup_tag(tags: Mapping[str, str] | None, key: str) -> str | None:
    """从字段的标签映射中取出指定标签键的原始值."""
    if not tags:
        return None
    return tags.get(key)


def field_tags(**keys: str) -> dict[str, Any]:
    """构造携带标签的 dataclass 字段 metadata.

    Examples:
        >>> from dataclasses import dataclass, field
        >>> @dataclass
        ... class Point:
        ...     x: int = field(default=0, metadata=field_tags(march="x"))
    """
    return {METADATA_KEY: dict(keys)}
