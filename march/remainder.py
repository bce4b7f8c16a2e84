"""延迟解码的原始字段片段."""

from dataclasses import dataclass, field
from typing import Any

from pydantic_core import core_schema, from_json

from .config import Config
from .decoder import Decoder
from .encoder import Encoder
from .fields import Ref
from .jsonfields import Shape, classify


@dataclass(frozen=True)
class Remainder:
    r"""尚未解码的原始片段及产生它的配置.

    作为 ``remains`` 字段的值类型时, 每个未被认领的输入字段都被保存为一个 Remainder,
    调用方可以稍后按需解码, 解码使用的是保存下来的配置而不是当前的全局设置.
    作为普通字段的类型时, 编码时原样输出保存的字节.

    Examples:
        >>> from march import loads
        >>> r = loads(b'{"x":1}', Remainder)
        >>> r.classify()
        <Shape.OBJECT: 'object'>
        >>> r.decode_as(dict[str, int])
        {'x': 1}
    """

    data: bytes
    config: Config = field(default_factory=Config, repr=False)

    def decode_to(self, target: Any) -> None:
        """将片段解码到 target (原地写入), 可重复调用."""
        Decoder(self.config).decode(self.data, target)

    def decode_as(self, annotation: Any = Any) -> Any:
        """将片段解码为指定类型的新值."""
        ref: Ref[Any] = Ref(annotation)
        self.decode_to(ref)
        return ref.value

    def classify(self) -> Shape:
        """片段的语法形态, 不做完整解析."""
        return classify(self.data)

    def marshal_from(self, value: Any) -> "Remainder":
        """使用保存的配置编码 value, 返回新的 Remainder."""
        return Remainder(Encoder(self.config).encode(value), self.config)

    def to_python(self) -> Any:
        """将片段解析为 Python 基础类型 (dict/list/str/...)."""
        return from_json(self.data)

    def __march_json__(self) -> bytes:
        return self.data

    @classmethod
    def __march_from_json__(cls, data: bytes, config: Config) -> "Remainder":
        return cls(bytes(data), config)

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any):
        return core_schema.is_instance_schema(
            cls,
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda v: v.to_python()
            ),
        )
