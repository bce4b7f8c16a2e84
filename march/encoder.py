"""march 编码器实现."""

from typing import Any

import pydantic_core
from pydantic_core import PydanticSerializationError

from .config import Config
from .exceptions import (
    DepthLimitError,
    EncodeError,
    FieldCodecError,
    MarchError,
    OverrideContractError,
)
from .fields import Kind, Ref, Values, kind_of_value
from .jsonfields import write_elements, write_fields
from .log import logger
from .overrides import NOT_FOUND, try_marshal, try_write_fields
from .tags import FLAG_HOIST, is_valid_tag_name


class Encoder:
    """march 编码器.

    按以下顺序决定如何编码一个值:

    1. 类型上注册的自定义编码方法 (``marshal_<suffix>``).
    2. `Config.default_marshaller`.
    3. 默认 JSON 编码: 结构体和映射逐字段编码后拼接为对象,
       序列逐元素编码后拼接为数组, 其余值交给 pydantic_core.
    """

    __slots__ = ("_config",)

    def __init__(self, config: Config):
        self._config = config

    @property
    def config(self) -> Config:
        return self._config

    def encode(self, value: Any) -> bytes:
        """编码顶层对象."""
        self._config.validate()
        return self.marshal(value)

    def marshal(self, value: Any, depth: int = 0) -> bytes:
        """编码单个值 (自定义方法优先)."""
        if depth > self._config.max_depth:
            raise DepthLimitError(
                f"Maximum nesting depth {self._config.max_depth} exceeded"
            )
        if isinstance(value, Ref):
            value = value.value

        data = try_marshal(value, self._config.marshal_method_name)
        if data is not NOT_FOUND:
            if self._config.debug:
                logger.debug("[Encoder] %s 使用自定义编码方法", type(value).__name__)
            return data
        return self.marshal_default(value, depth)

    def marshal_default(self, value: Any, depth: int = 0) -> bytes:
        """跳过类型上的自定义方法, 使用默认编码."""
        hook = self._config.default_marshaller
        if hook is None:
            return self._marshal_json(value, depth)

        try:
            data = hook(value)
        except MarchError:
            raise
        except Exception as e:
            raise EncodeError(f"Default marshaller failed: {e}") from e
        if not isinstance(data, bytes | bytearray | memoryview):
            raise OverrideContractError(
                f"Default marshaller returned {type(data).__name__}, expected bytes"
            )
        return bytes(data)

    def _marshal_json(self, value: Any, depth: int) -> bytes:
        if value is None:
            return b"null"
        # RawMessage / Remainder 原样输出
        if hasattr(type(value), "__march_json__"):
            return bytes(value.__march_json__())

        kind = kind_of_value(value)
        if kind is Kind.RECORD or kind is Kind.MAPPING:
            return self._marshal_fields(value, depth)
        if kind is Kind.SEQUENCE:
            return self._marshal_sequence(value, depth)
        return self._marshal_leaf(value)

    def _marshal_fields(self, value: Any, depth: int) -> bytes:
        config = self._config
        values = Values([value], config.tag_key)
        output: dict[str, bytes] = {}
        claimed: set[str] = set()

        for walked in values:
            descriptor = walked.descriptor
            if not descriptor.exported:
                continue
            # 空名称只对标签指令有意义, 映射的空字符串键照常输出
            if descriptor.attr is not None and not is_valid_tag_name(descriptor.tag_name):
                continue

            if descriptor.flags_contain(FLAG_HOIST):
                if walked.value is not None:
                    if config.debug:
                        logger.debug("[Encoder] 提升字段 %s", descriptor.attr or descriptor.tag_name)
                    values.append(walked.value)
                continue

            name = descriptor.tag_name
            if name in claimed:
                continue
            claimed.add(name)

            try:
                output[name] = self.marshal(walked.value, depth + 1)
            except FieldCodecError as e:
                e.loc.insert(0, name)
                if config.verbose:
                    logger.warning("[Encoder] 字段 %s 编码失败: %s", name, e)
                if config.strict:
                    raise
            except MarchError as e:
                e.loc.insert(0, name)
                raise

        data = try_write_fields(value, output, config.write_fields_method_name)
        if data is NOT_FOUND:
            data = write_fields(output)
        return data

    def _marshal_sequence(self, value: Any, depth: int) -> bytes:
        elements = []
        for i, item in enumerate(value):
            try:
                elements.append(self.marshal(item, depth + 1))
            except MarchError as e:
                e.loc.insert(0, str(i))
                raise
        return write_elements(elements)

    def _marshal_leaf(self, value: Any) -> bytes:
        try:
            return pydantic_core.to_json(value)
        except PydanticSerializationError as e:
            raise EncodeError(f"Cannot encode {type(value).__name__}: {e}") from e
