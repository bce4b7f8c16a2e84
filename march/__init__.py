"""march: 基于字段标签的 JSON 编解码引擎.

结构体字段通过标签声明它们在 JSON 中的名称以及 ``hoist`` / ``remains`` 等指令,
类型可以通过装饰器注册自定义的编解码方法覆盖默认行为.
"""

from . import types
from .api import dump, dumps, load, loads, unmarshal
from .config import Config
from .decoder import Decoder
from .encoder import Encoder
from .exceptions import (
    DecodeError,
    DepthLimitError,
    EncodeError,
    FieldAccessError,
    FieldCodecError,
    InvalidTargetError,
    MalformedConfigurationError,
    MarchError,
    OverrideContractError,
    UnsupportedShapeError,
)
from .fields import Kind, Ref, Values, kind_of, nth_field, num_field, zero_value
from .jsonfields import Shape, classify
from .options import Option
from .overrides import fields_reader, fields_writer, marshaller, unmarshaller
from .remainder import Remainder
from .struct import Field, Struct
from .tags import DEFAULT_TAG, FLAG_HOIST, FLAG_REMAINS, field_tags, parse_tag
from .types import RawMessage

__all__ = [
    "DEFAULT_TAG",
    "FLAG_HOIST",
    "FLAG_REMAINS",
    "Config",
    "DecodeError",
    "Decoder",
    "DepthLimitError",
    "EncodeError",
    "Encoder",
    "Field",
    "FieldAccessError",
    "FieldCodecError",
    "InvalidTargetError",
    "Kind",
    "MalformedConfigurationError",
    "MarchError",
    "Option",
    "OverrideContractError",
    "RawMessage",
    "Ref",
    "Remainder",
    "Shape",
    "Struct",
    "UnsupportedShapeError",
    "Values",
    "classify",
    "dump",
    "dumps",
    "field_tags",
    "fields_reader",
    "fields_writer",
    "kind_of",
    "load",
    "loads",
    "marshaller",
    "nth_field",
    "num_field",
    "parse_tag",
    "types",
    "unmarshal",
    "unmarshaller",
    "zero_value",
]
