"""march API 模块.

提供按字段标签进行 JSON 序列化和反序列化的高级接口
`dumps`, `dump`, `loads`, `load`, `unmarshal`.
"""

from typing import IO, Any, TypeVar, overload

from .config import Config, Marshaller, Unmarshaller
from .decoder import Decoder
from .encoder import Encoder
from .fields import Ref
from .options import Option
from .tags import DEFAULT_TAG

T = TypeVar("T")

Input = bytes | bytearray | memoryview | str


def _build_config(
    config: Config | None,
    tag: str,
    option: Option,
    suffix: str | None,
    default: Marshaller | None = None,
    default_unmarshaller: Unmarshaller | None = None,
) -> Config:
    if config is not None:
        return config
    return Config.from_params(
        tag=tag,
        option=option,
        suffix=suffix,
        default=default,
        default_unmarshaller=default_unmarshaller,
    )


def dumps(
    obj: Any,
    tag: str = DEFAULT_TAG,
    option: Option = Option.NONE,
    *,
    suffix: str | None = None,
    default: Marshaller | None = None,
    config: Config | None = None,
) -> bytes:
    """按字段标签序列化对象为 JSON.

    Args:
        obj: 要序列化的对象. 支持 `Struct` 实例, dataclass, `dict`, `list` 以及
            pydantic 能够序列化的任意值.
        tag: 查找字段指令所用的标签键.
        option: 选项标志 (如 `Option.STRICT`).
        suffix: 自定义方法名后缀, 默认与 `tag` 相同.
        default: 默认编码函数, 替换没有自定义方法的类型的默认编码行为.
            签名为 ``def default(obj: Any) -> bytes``.
        config: 完整配置, 给出时忽略上面的参数.

    Returns:
        bytes: 编码结果.

    Raises:
        EncodeError: 严格模式下某个字段编码失败.
        MarchError: 其他不可恢复的错误.

    Examples:
        >>> from march import dumps, Struct, Field
        >>> class User(Struct):
        ...     uid: int = Field(0, tags={"march": "uid"})
        >>> dumps(User(uid=123))
        b'{"uid":123}'
    """
    config = _build_config(config, tag, option, suffix, default=default)
    return Encoder(config).encode(obj)


def dump(
    obj: Any,
    fp: IO[bytes],
    tag: str = DEFAULT_TAG,
    option: Option = Option.NONE,
    *,
    suffix: str | None = None,
    default: Marshaller | None = None,
    config: Config | None = None,
) -> None:
    """序列化对象并写入文件.

    Args:
        obj: 要序列化的对象.
        fp: 文件类对象, 必须实现 `write(bytes)` 方法.
        tag: 标签键.
        option: 选项标志.
        suffix: 自定义方法名后缀.
        default: 默认编码函数.
        config: 完整配置.
    """
    fp.write(dumps(obj, tag, option, suffix=suffix, default=default, config=config))


def unmarshal(
    data: Input,
    target: Any,
    tag: str = DEFAULT_TAG,
    option: Option = Option.NONE,
    *,
    suffix: str | None = None,
    default: Unmarshaller | None = None,
    config: Config | None = None,
) -> None:
    """将 JSON 解码并原地写入 target.

    Args:
        data: JSON 输入.
        target: 可写的目标, `Ref`, 结构体实例, `list` 或 `dict`.
        tag: 标签键.
        option: 选项标志.
        suffix: 自定义方法名后缀.
        default: 默认解码函数, 签名为 ``def default(data: bytes, target: Any) -> None``.
        config: 完整配置.

    Raises:
        InvalidTargetError: target 不可写.
        DecodeError: 严格模式下某个字段解码失败.
    """
    config = _build_config(config, tag, option, suffix, default_unmarshaller=default)
    Decoder(config).decode(data, target)


@overload
def loads(
    data: Input,
    target: type[T],
    tag: str = DEFAULT_TAG,
    option: Option = Option.NONE,
    *,
    suffix: str | None = None,
    default: Unmarshaller | None = None,
    config: Config | None = None,
) -> T: ...


@overload
def loads(
    data: Input,
    target: Any = Any,
    tag: str = DEFAULT_TAG,
    option: Option = Option.NONE,
    *,
    suffix: str | None = None,
    default: Unmarshaller | None = None,
    config: Config | None = None,
) -> Any: ...


def loads(
    data: Input,
    target: Any = Any,
    tag: str = DEFAULT_TAG,
    option: Option = Option.NONE,
    *,
    suffix: str | None = None,
    default: Unmarshaller | None = None,
    config: Config | None = None,
) -> Any:
    """将 JSON 反序列化为目标类型的新值.

    Args:
        data: JSON 输入.
        target: 目标类型 (类型注解).
            - `Struct` 子类或 dataclass: 按字段标签解码.
            - `list[T]`, `dict[K, V]`, `T | None` 等: 按声明的形态解码.
            - `Any` (默认): 解析为 Python 基础类型.
        tag: 标签键.
        option: 选项标志.
        suffix: 自定义方法名后缀.
        default: 默认解码函数, 签名为 ``def default(data: bytes, target: Any) -> None``.
        config: 完整配置.

    Returns:
        解码结果. 输入为 null 且目标不是 Optional 时返回目标类型的零值.

    Examples:
        >>> loads(b'{"a": [1, 2]}', dict[str, list[int]])
        {'a': [1, 2]}
    """
    ref: Ref[Any] = Ref(target)
    unmarshal(data, ref, tag, option, suffix=suffix, default=default, config=config)
    return ref.value


@overload
def load(
    fp: IO[bytes],
    target: type[T],
    tag: str = DEFAULT_TAG,
    option: Option = Option.NONE,
    *,
    suffix: str | None = None,
    default: Unmarshaller | None = None,
    config: Config | None = None,
) -> T: ...


@overload
def load(
    fp: IO[bytes],
    target: Any = Any,
    tag: str = DEFAULT_TAG,
    option: Option = Option.NONE,
    *,
    suffix: str | None = None,
    default: Unmarshaller | None = None,
    config: Config | None = None,
) -> Any: ...


def load(
    fp: IO[bytes],
    target: Any = Any,
    tag: str = DEFAULT_TAG,
    option: Option = Option.NONE,
    *,
    suffix: str | None = None,
    default: Unmarshaller | None = None,
    config: Config | None = None,
) -> Any:
    """从文件读取并反序列化.

    封装了 `read()` 和 `loads()`.
    """
    return loads(
        fp.read(),
        target,
        tag,
        option,
        suffix=suffix,
        default=default,
        config=config,
    )
