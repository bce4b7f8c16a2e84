"""march 配置对象."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .exceptions import MalformedConfigurationError
from .options import Option
from .overrides import MARSHAL, READ_FIELDS, UNMARSHAL, WRITE_FIELDS, method_name
from .tags import DEFAULT_TAG, is_valid_tag_name

DEFAULT_MAX_DEPTH = 100

Marshaller = Callable[[Any], bytes]
Unmarshaller = Callable[[bytes, Any], None]


@dataclass(frozen=True)
class Config:
    """march 序列化/反序列化配置 (不可变).

    在 API 入口层创建, 然后按值传递给 Encoder/Decoder 的每一层递归调用.
    任何一层都不会修改它, 因此可以在多个独立调用 (包括多线程) 之间共享.

    Attributes:
        tag: 在字段上查找指令所用的标签键.
        suffix: 自定义方法名后缀, 为空时使用 `tag`.
        flags: 选项标志 (IntFlag).
        default_marshaller: 替换没有自定义方法的类型的整个默认编码行为.
        default_unmarshaller: 替换没有自定义方法的类型的整个默认解码行为,
            签名为 ``(data, target) -> None``, 原地写入 target.
        max_depth: 允许的最大嵌套深度.
    """

    tag: str = DEFAULT_TAG
    suffix: str = ""
    flags: Option = Option.NONE
    default_marshaller: Marshaller | None = None
    default_unmarshaller: Unmarshaller | None = None
    max_depth: int = DEFAULT_MAX_DEPTH

    @classmethod
    def from_params(
        cls,
        tag: str = DEFAULT_TAG,
        option: Option = Option.NONE,
        suffix: str | None = None,
        default: Marshaller | None = None,
        default_unmarshaller: Unmarshaller | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> "Config":
        """从参数构建配置对象.

        Args:
            tag: 标签键.
            option: Option 枚举.
            suffix: 自定义方法名后缀.
            default: 默认编码函数.
            default_unmarshaller: 默认解码函数.
            max_depth: 最大嵌套深度.

        Returns:
            Config: 配置对象.
        """
        return cls(
            tag=tag,
            suffix=suffix or "",
            flags=option,
            default_marshaller=default,
            default_unmarshaller=default_unmarshaller,
            max_depth=max_depth,
        )

    def validate(self) -> None:
        """检查配置是否可用.

        Raises:
            MalformedConfigurationError: 标签键为空.
        """
        if not is_valid_tag_name(self.tag_key):
            raise MalformedConfigurationError(f"Malformed tag key: {self.tag!r}")

    @property
    def tag_key(self) -> str:
        """字段标签键."""
        return self.tag

    @property
    def strict(self) -> bool:
        """字段编解码失败时是否终止整个操作."""
        return bool(self.flags & Option.STRICT)

    @property
    def verbose(self) -> bool:
        """是否报告被跳过的字段错误."""
        return bool(self.flags & Option.VERBOSE)

    @property
    def debug(self) -> bool:
        """是否输出调试日志."""
        return bool(self.flags & Option.DEBUG)

    @property
    def method_suffix(self) -> str:
        """自定义方法名后缀, 未设置时使用标签键."""
        return self.suffix or self.tag

    @property
    def marshal_method_name(self) -> str:
        return method_name(MARSHAL, self.method_suffix)

    @property
    def unmarshal_method_name(self) -> str:
        return method_name(UNMARSHAL, self.method_suffix)

    @property
    def read_fields_method_name(self) -> str:
        return method_name(READ_FIELDS, self.method_suffix)

    @property
    def write_fields_method_name(self) -> str:
        return method_name(WRITE_FIELDS, self.method_suffix)
