"""march 类型定义.

提供带取值范围约束的整数类型, 以及原样透传的 JSON 片段类型 `RawMessage`.
"""

from typing import Annotated, Any

from annotated_types import Interval
from pydantic_core import core_schema

Int8 = Annotated[int, Interval(ge=-(2**7), le=2**7 - 1)]
Int16 = Annotated[int, Interval(ge=-(2**15), le=2**15 - 1)]
Int32 = Annotated[int, Interval(ge=-(2**31), le=2**31 - 1)]
Int64 = Annotated[int, Interval(ge=-(2**63), le=2**63 - 1)]

Uint8 = Annotated[int, Interval(ge=0, le=2**8 - 1)]
Uint16 = Annotated[int, Interval(ge=0, le=2**16 - 1)]
Uint32 = Annotated[int, Interval(ge=0, le=2**32 - 1)]
Uint64 = Annotated[int, Interval(ge=0, le=2**64 - 1)]


class RawMessage(bytes):
    r"""已编码的 JSON 片段.

    编码时原样输出, 解码时原样保存输入片段, 不做任何解析.
    与 `Remainder` 不同, 它不携带配置, 只是字节的类型标记.

    Examples:
        >>> from march import dumps
        >>> dumps({"a": RawMessage(b'{"x":1}')})
        b'{"a":{"x":1}}'
    """

    def __march_json__(self) -> bytes:
        return bytes(self)

    @classmethod
    def __march_from_json__(cls, data: bytes, config: Any) -> "RawMessage":
        return cls(data)

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any):
        return core_schema.no_info_after_validator_function(
            cls, core_schema.bytes_schema()
        )

    def __repr__(self) -> str:
        return f"RawMessage({bytes(self)!r})"
