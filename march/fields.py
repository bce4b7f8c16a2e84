"""通用字段遍历.

把结构体 (Struct / dataclass), 序列和映射统一成 "从 0 开始编号的字段列表",
对第 n 个字段给出 (所属对象, 当前值, 字段描述). 映射按键的字节序排序,
保证每次遍历的顺序一致.
"""

import dataclasses
import types as stdlib_types
from collections import abc
from collections.abc import Iterable, Iterator, Mapping
from enum import Enum
from functools import lru_cache
from typing import (
    Annotated,
    Any,
    Generic,
    Literal,
    NamedTuple,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from .exceptions import FieldAccessError, UnsupportedShapeError
from .tags import METADATA_KEY, lookup_tag, parse_tag

T = TypeVar("T")

_NONE_TYPE = type(None)
_ABSTRACT_SEQUENCES = (abc.Sequence, abc.MutableSequence, abc.Collection, abc.Iterable)
_ABSTRACT_SETS = (abc.Set, abc.MutableSet)
_ABSTRACT_MAPPINGS = (abc.Mapping, abc.MutableMapping)


class Kind(Enum):
    """类型的形态分类."""

    RECORD = "record"
    SEQUENCE = "sequence"
    ARRAY = "array"
    MAPPING = "mapping"
    OPTIONAL = "optional"
    ANY = "any"
    LEAF = "leaf"


def strip_annotated(annotation: Any) -> Any:
    """去掉 Annotated 包装, 返回底层类型."""
    while get_origin(annotation) is Annotated:
        annotation = get_args(annotation)[0]
    return annotation


def is_record_class(cls: Any) -> bool:
    """是否为带字段标签的结构体类 (Struct 子类或 dataclass).

    实现了原样透传协议 (``__march_json__``) 的类型总是叶子.
    """
    if not isinstance(cls, type) or hasattr(cls, "__march_json__"):
        return False
    return hasattr(cls, "__march_fields__") or dataclasses.is_dataclass(cls)


def kind_of(annotation: Any) -> Kind:
    """根据声明的类型注解判断形态.

    Examples:
        >>> kind_of(int | None)
        <Kind.OPTIONAL: 'optional'>
        >>> kind_of(tuple[int, int])
        <Kind.ARRAY: 'array'>
        >>> kind_of(tuple[int, ...])
        <Kind.SEQUENCE: 'sequence'>
    """
    tp = strip_annotated(annotation)
    if tp is Any or tp is object:
        return Kind.ANY

    origin = get_origin(tp)
    if origin is Union or origin is stdlib_types.UnionType:
        if _NONE_TYPE in get_args(tp):
            return Kind.OPTIONAL
        return Kind.LEAF
    if origin is Literal:
        return Kind.LEAF

    cls = origin if origin is not None else tp
    if not isinstance(cls, type):
        return Kind.LEAF
    if issubclass(cls, str | bytes | bytearray):
        return Kind.LEAF
    if is_record_class(cls):
        return Kind.RECORD
    if issubclass(cls, tuple):
        # NamedTuple 交给 pydantic 处理
        if hasattr(cls, "_fields"):
            return Kind.LEAF
        args = get_args(tp)
        if not args or (len(args) == 2 and args[1] is Ellipsis):
            return Kind.SEQUENCE
        return Kind.ARRAY
    if issubclass(cls, list | set | frozenset) or cls in _ABSTRACT_SEQUENCES + _ABSTRACT_SETS:
        return Kind.SEQUENCE
    if issubclass(cls, dict) or cls in _ABSTRACT_MAPPINGS:
        return Kind.MAPPING
    return Kind.LEAF


def kind_of_value(value: Any) -> Kind:
    """根据运行时的值判断形态."""
    if isinstance(value, str | bytes | bytearray):
        return Kind.LEAF
    if is_record_class(type(value)):
        return Kind.RECORD
    if isinstance(value, tuple) and hasattr(value, "_fields"):
        return Kind.LEAF
    if isinstance(value, list | tuple | set | frozenset):
        return Kind.SEQUENCE
    if isinstance(value, Mapping):
        return Kind.MAPPING
    return Kind.LEAF


def optional_inner(annotation: Any) -> Any:
    """返回 Optional[T] 中的 T (多个候选时返回它们的 Union)."""
    args = tuple(a for a in get_args(strip_annotated(annotation)) if a is not _NONE_TYPE)
    if len(args) == 1:
        return args[0]
    return Union[args]  # noqa: UP007


def element_type(annotation: Any) -> Any:
    """序列的元素类型, 未声明时为 Any."""
    args = get_args(strip_annotated(annotation))
    return args[0] if args else Any


def mapping_types(annotation: Any) -> tuple[Any, Any]:
    """映射的 (键类型, 值类型), 未声明时为 Any."""
    args = get_args(strip_annotated(annotation))
    if len(args) == 2:
        return args[0], args[1]
    return Any, Any


def container_class(annotation: Any) -> type:
    """序列或映射注解对应的具体容器类."""
    tp = strip_annotated(annotation)
    cls = get_origin(tp) or tp
    if cls in _ABSTRACT_SEQUENCES:
        return list
    if cls in _ABSTRACT_SETS:
        return set
    if cls in _ABSTRACT_MAPPINGS:
        return dict
    return cls


def type_name(annotation: Any) -> str:
    tp = strip_annotated(annotation)
    if isinstance(tp, type) and not get_args(tp):
        return tp.__name__
    return repr(tp).replace("typing.", "")


class RecordField:
    """结构体字段的标签元数据.

    Attributes:
        attr: 属性名.
        annotation: 声明的类型 (保留 Annotated 约束).
        tags: 标签键到原始标签值的映射.
        settable: 解码时能否写入.
        exported: 能否被读写 (以下划线开头的 dataclass 字段不能).
    """

    __slots__ = ("annotation", "attr", "exported", "settable", "tags")

    def __init__(
        self,
        attr: str,
        annotation: Any,
        tags: Mapping[str, str] | None = None,
        settable: bool = True,
        exported: bool = True,
    ):
        self.attr = attr
        self.annotation = annotation
        self.tags: dict[str, str] = dict(tags or {})
        self.settable = settable
        self.exported = exported

    def __repr__(self) -> str:
        return f"RecordField({self.attr!r}, tags={self.tags!r})"


@lru_cache(maxsize=None)
def _dataclass_fields(cls: type) -> tuple[RecordField, ...]:
    hints = get_type_hints(cls, include_extras=True)
    frozen = cls.__dataclass_params__.frozen  # type: ignore[attr-defined]
    result = []
    for f in dataclasses.fields(cls):
        exported = not f.name.startswith("_")
        result.append(
            RecordField(
                f.name,
                hints.get(f.name, Any),
                f.metadata.get(METADATA_KEY),
                settable=exported and not frozen,
                exported=exported,
            )
        )
    return tuple(result)


def record_fields(cls: type) -> tuple[RecordField, ...]:
    """返回结构体类的字段元数据 (按声明顺序)."""
    fields = cls.__dict__.get("__march_fields__")
    if fields is not None:
        return fields
    if dataclasses.is_dataclass(cls):
        return _dataclass_fields(cls)
    return ()


@dataclasses.dataclass(frozen=True)
class FieldDescriptor:
    """字段的统一描述.

    对结构体字段, `attr` 为属性名; 对序列元素, `index` 为下标且名称为其十进制字符串;
    对映射条目, `key` 为原始键且名称为 ``str(key)``.
    """

    annotation: Any
    kind: Kind
    tag: str = ""
    tag_name: str = ""
    tag_flags: frozenset[str] = frozenset()
    ok: bool = True
    attr: str | None = None
    index: int | None = None
    key: Any = None
    settable: bool = True
    exported: bool = True

    def flags_contain(self, flag: str) -> bool:
        return flag in self.tag_flags

    @classmethod
    def from_record_field(cls, rf: RecordField, tag_key: str) -> "FieldDescriptor":
        raw = lookup_tag(rf.tags, tag_key)
        directive = parse_tag(raw)
        return cls(
            annotation=rf.annotation,
            kind=kind_of(rf.annotation),
            tag=raw or "",
            tag_name=directive.name,
            tag_flags=directive.flags,
            ok=directive.ok,
            attr=rf.attr,
            settable=rf.settable,
            exported=rf.exported,
        )

    @classmethod
    def from_sequence(cls, index: int, value: Any) -> "FieldDescriptor":
        name = str(index)
        return cls(Any, kind_of_value(value), tag=name, tag_name=name, index=index)

    @classmethod
    def from_mapping(cls, key: Any, value: Any) -> "FieldDescriptor":
        name = key_name(key)
        return cls(Any, kind_of_value(value), tag=name, tag_name=name, key=key)


class WalkedField(NamedTuple):
    """遍历得到的一个字段."""

    owner: Any
    value: Any
    descriptor: FieldDescriptor


def _is_int_key(key: Any) -> bool:
    return isinstance(key, int) and not isinstance(key, bool)


def key_name(key: Any) -> str:
    """映射键在 JSON 中的名称. 整数键写成十进制字符串.

    Raises:
        UnsupportedShapeError: 键不是 str, bytes 或整数.
    """
    if isinstance(key, str):
        # str 子类 (如 str 枚举) 取其字符串值
        return str.__str__(key)
    if isinstance(key, bytes | bytearray):
        return bytes(key).decode("utf-8", "backslashreplace")
    if _is_int_key(key):
        return str(int(key))
    raise UnsupportedShapeError(
        f"Cannot use map key of type {type(key).__name__}, use str, bytes or int keys"
    )


def key_to_bytes(key: Any) -> bytes:
    """将映射键转换为用于排序的字节序列.

    Raises:
        UnsupportedShapeError: 键不是 str, bytes 或整数.
    """
    if isinstance(key, str):
        return key.encode("utf-8", "surrogatepass")
    if isinstance(key, bytes | bytearray):
        return bytes(key)
    if _is_int_key(key):
        return str(int(key)).encode("ascii")
    raise UnsupportedShapeError(
        f"Cannot order map key of type {type(key).__name__}, use str, bytes or int keys"
    )


def sort_keys(keys: Iterable[Any]) -> list[Any]:
    """按字节字典序排列映射键, 较短的前缀排在前面."""
    return sorted(keys, key=key_to_bytes)


class _Root:
    """字段列表中的一个根对象, 映射的键在加入时排好序."""

    __slots__ = ("count", "items", "kind", "value")

    def __init__(self, value: Any):
        self.value = value
        self.kind = kind_of_value(value)
        self.items: list[Any] | None = None
        if self.kind is Kind.RECORD:
            self.count = len(record_fields(type(value)))
        elif self.kind is Kind.MAPPING:
            self.items = sort_keys(value.keys())
            self.count = len(self.items)
        elif self.kind is Kind.SEQUENCE:
            self.items = value if isinstance(value, list | tuple) else list(value)
            self.count = len(self.items)
        else:
            self.count = 0

    def field(self, n: int, tag_key: str) -> WalkedField | None:
        if n < 0 or n >= self.count:
            return None
        value = self.value
        if self.kind is Kind.RECORD:
            rf = record_fields(type(value))[n]
            descriptor = FieldDescriptor.from_record_field(rf, tag_key)
            if not rf.exported:
                return WalkedField(value, None, descriptor)
            try:
                field_value = getattr(value, rf.attr)
            except AttributeError as e:
                raise FieldAccessError(
                    f"Cannot read {type(value).__name__}.{rf.attr}: {e}"
                ) from e
            return WalkedField(value, field_value, descriptor)
        assert self.items is not None
        if self.kind is Kind.MAPPING:
            key = self.items[n]
            field_value = value[key]
            return WalkedField(value, field_value, FieldDescriptor.from_mapping(key, field_value))
        field_value = self.items[n]
        return WalkedField(value, field_value, FieldDescriptor.from_sequence(n, field_value))


def num_field(value: Any) -> int:
    """值的字段数, 非结构体/序列/映射时为 0."""
    return _Root(value).count


def nth_field(value: Any, n: int, tag_key: str) -> WalkedField | None:
    """值的第 n 个字段, 越界时返回 None."""
    return _Root(value).field(n, tag_key)


class Values:
    """可在遍历过程中增长的字段列表.

    多个根对象的字段首尾相接编号. hoist 在遍历途中追加新的根,
    其字段会在同一轮遍历的后面被访问到.
    """

    __slots__ = ("_roots", "_tag_key")

    def __init__(self, roots: Iterable[Any], tag_key: str):
        self._tag_key = tag_key
        self._roots: list[_Root] = []
        for root in roots:
            self.append(root)

    def append(self, root: Any) -> None:
        self._roots.append(_Root(root))

    def __len__(self) -> int:
        return len(self._roots)

    def total_fields(self) -> int:
        return sum(root.count for root in self._roots)

    def _locate(self, n: int) -> tuple[_Root, int] | None:
        if n < 0:
            return None
        for root in self._roots:
            if n < root.count:
                return root, n
            n -= root.count
        return None

    def field_at(self, n: int) -> WalkedField | None:
        """整个列表中的第 n 个字段, 越界时返回 None."""
        located = self._locate(n)
        if located is None:
            return None
        root, index = located
        return root.field(index, self._tag_key)

    def value_at(self, n: int) -> Any:
        """第 n 个字段所属的根对象, 越界时返回 None."""
        located = self._locate(n)
        return located[0].value if located is not None else None

    def __iter__(self) -> Iterator[WalkedField]:
        # 每一步都重新检查总数, 以便访问遍历途中追加的根
        n = 0
        while n < self.total_fields():
            walked = self.field_at(n)
            assert walked is not None
            yield walked
            n += 1


def _zero_record(cls: type) -> Any:
    if hasattr(cls, "model_construct"):
        required = {
            name: zero_value(info.annotation)
            for name, info in cls.model_fields.items()  # type: ignore[attr-defined]
            if info.is_required()
        }
        return cls.model_construct(**required)  # type: ignore[attr-defined]
    hints = get_type_hints(cls, include_extras=True)
    kwargs = {
        f.name: zero_value(hints.get(f.name, Any))
        for f in dataclasses.fields(cls)
        if f.init
        and f.default is dataclasses.MISSING
        and f.default_factory is dataclasses.MISSING
    }
    return cls(**kwargs)


def zero_value(annotation: Any) -> Any:
    """声明类型的零值.

    结构体不经校验直接构造, 必填字段取各自的零值; 无法构造的叶子类型返回 None.
    """
    kind = kind_of(annotation)
    if kind is Kind.OPTIONAL or kind is Kind.ANY:
        return None
    if kind is Kind.RECORD:
        return _zero_record(container_class(annotation))
    if kind is Kind.ARRAY:
        return tuple(zero_value(a) for a in get_args(strip_annotated(annotation)))
    if kind is Kind.SEQUENCE or kind is Kind.MAPPING:
        return container_class(annotation)()

    cls = get_origin(strip_annotated(annotation)) or strip_annotated(annotation)
    if not isinstance(cls, type) or issubclass(cls, Enum):
        return None
    try:
        return cls()
    except (TypeError, ValueError):
        return None


_MISSING: Any = object()


class Ref(Generic[T]):
    """可写的值槽, 相当于解码目标的 "引用".

    `found` 记录是否真正写入过值, 用于区分 "解码得到零值" 与 "字段不存在".

    Examples:
        >>> from march import unmarshal
        >>> ref = Ref(int)
        >>> unmarshal(b"5", ref)
        >>> ref.value, ref.found
        (5, True)
    """

    __slots__ = ("_value", "annotation", "found")

    def __init__(self, annotation: Any = Any, value: Any = _MISSING):
        self.annotation = annotation
        self.found = False
        self._value = zero_value(annotation) if value is _MISSING else value

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: Any) -> None:
        self._value = value
        self.found = True

    def __repr__(self) -> str:
        return f"Ref({type_name(self.annotation)}, value={self._value!r}, found={self.found})"
