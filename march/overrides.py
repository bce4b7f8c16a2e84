"""自定义编解码方法的注册与调用.

类型通过装饰器显式声明自己实现了哪些操作, 引擎按方法名
(操作名 + 配置的后缀, 例如 ``marshal_march``) 查找并优先调用它们,
找不到时回退到默认行为.

调用约定 (均为实例方法):

- marshal: ``(self) -> bytes``
- unmarshal: ``(self, data: bytes) -> None``, 原地修改 self
- read_fields: ``(self, data: bytes) -> dict[str, bytes]``
- write_fields: ``(self, fields: dict[str, bytes]) -> bytes``
"""

from collections.abc import Callable, Mapping
from functools import lru_cache
from typing import Any, TypeVar

from .exceptions import DecodeError, EncodeError, MarchError, OverrideContractError
from .tags import DEFAULT_TAG

MARSHAL = "marshal"
UNMARSHAL = "unmarshal"
READ_FIELDS = "read_fields"
WRITE_FIELDS = "write_fields"

F = TypeVar("F", bound=Callable[..., Any])


class _NotFound:
    """表示类型没有实现对应的自定义方法."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


NOT_FOUND: Any = _NotFound()


def method_name(op: str, suffix: str) -> str:
    """由操作名和后缀得到方法名."""
    return f"{op}_{suffix}"


def _override(op: str, suffix: str) -> Callable[[F], F]:
    def decorator(func: F) -> F:
        # 标记函数, 稍后由 collect_overrides 收集
        targets = getattr(func, "__march_override_targets__", ())
        func.__march_override_targets__ = (*targets, method_name(op, suffix))  # type: ignore[attr-defined]
        return func

    return decorator


def marshaller(suffix: str = DEFAULT_TAG) -> Callable[[F], F]:
    """装饰器: 注册类型的自定义编码方法.

    Args:
        suffix: 方法名后缀, 与 `Config.method_suffix` 匹配时生效.

    Examples:
        ```python
        class Celsius:
            @marshaller("march")
            def encode(self) -> bytes:
                return f'"{self.degrees}C"'.encode()
        ```
    """
    return _override(MARSHAL, suffix)


def unmarshaller(suffix: str = DEFAULT_TAG) -> Callable[[F], F]:
    """装饰器: 注册类型的自定义解码方法."""
    return _override(UNMARSHAL, suffix)


def fields_reader(suffix: str = DEFAULT_TAG) -> Callable[[F], F]:
    """装饰器: 注册将输入拆分为 名称->原始字节 映射的方法."""
    return _override(READ_FIELDS, suffix)


def fields_writer(suffix: str = DEFAULT_TAG) -> Callable[[F], F]:
    """装饰器: 注册将 名称->已编码字节 映射拼接为输出的方法."""
    return _override(WRITE_FIELDS, suffix)


@lru_cache(maxsize=None)
def collect_overrides(cls: type) -> dict[str, str]:
    """收集类 (含基类) 上注册的自定义方法.

    Returns:
        dict[str, str]: 方法名 (如 ``marshal_march``) 到属性名的映射.
    """
    registry: dict[str, str] = {}
    for klass in reversed(cls.__mro__):
        for attr_name, attr_value in vars(klass).items():
            func = attr_value
            if isinstance(func, classmethod | staticmethod):
                func = func.__func__
            for target in getattr(func, "__march_override_targets__", ()):
                registry[target] = attr_name
    return registry


def find_override(cls: type, name: str) -> str | None:
    """查找类型上名为 name 的自定义方法, 返回属性名或 None."""
    registry = cls.__dict__.get("__march_overrides__")
    if registry is None:
        try:
            registry = collect_overrides(cls)
        except TypeError:
            # 不可哈希的类对象
            return None
    return registry.get(name)


def _describe(obj: Any, attr: str) -> str:
    return f"{type(obj).__name__}.{attr}"


def try_marshal(value: Any, name: str) -> Any:
    """尝试调用自定义编码方法.

    Returns:
        编码结果, 没有自定义方法时返回 `NOT_FOUND`.

    Raises:
        OverrideContractError: 返回值不是 bytes.
        EncodeError: 自定义方法抛出异常.
    """
    attr = find_override(type(value), name)
    if attr is None:
        return NOT_FOUND
    try:
        result = getattr(value, attr)()
    except MarchError:
        raise
    except Exception as e:
        raise EncodeError(f"{_describe(value, attr)} failed: {e}") from e
    if not isinstance(result, bytes | bytearray | memoryview):
        raise OverrideContractError(
            f"{_describe(value, attr)} returned {type(result).__name__}, expected bytes"
        )
    return bytes(result)


def try_unmarshal(target: Any, data: bytes, name: str) -> bool:
    """尝试调用自定义解码方法, 返回是否找到了该方法."""
    attr = find_override(type(target), name)
    if attr is None:
        return False
    try:
        result = getattr(target, attr)(data)
    except MarchError:
        raise
    except Exception as e:
        raise DecodeError(f"{_describe(target, attr)} failed: {e}") from e
    if result is not None:
        raise OverrideContractError(
            f"{_describe(target, attr)} returned {type(result).__name__}, expected None"
        )
    return True


def try_read_fields(target: Any, data: bytes, name: str) -> Any:
    """尝试调用自定义字段读取方法.

    Returns:
        名称到原始字节的映射, 没有自定义方法时返回 `NOT_FOUND`.
    """
    attr = find_override(type(target), name)
    if attr is None:
        return NOT_FOUND
    try:
        result = getattr(target, attr)(data)
    except MarchError:
        raise
    except Exception as e:
        raise DecodeError(f"{_describe(target, attr)} failed: {e}") from e
    if not isinstance(result, Mapping) or not all(
        isinstance(k, str) and isinstance(v, bytes | bytearray)
        for k, v in result.items()
    ):
        raise OverrideContractError(
            f"{_describe(target, attr)} returned {type(result).__name__}, "
            f"expected dict[str, bytes]"
        )
    return {k: bytes(v) for k, v in result.items()}


def try_write_fields(value: Any, fields: dict[str, bytes], name: str) -> Any:
    """尝试调用自定义字段写出方法.

    Returns:
        编码结果, 没有自定义方法时返回 `NOT_FOUND`.
    """
    attr = find_override(type(value), name)
    if attr is None:
        return NOT_FOUND
    try:
        result = getattr(value, attr)(fields)
    except MarchError:
        raise
    except Exception as e:
        raise EncodeError(f"{_describe(value, attr)} failed: {e}") from e
    if not isinstance(result, bytes | bytearray | memoryview):
        raise OverrideContractError(
            f"{_describe(value, attr)} returned {type(result).__name__}, expected bytes"
        )
    return bytes(result)
