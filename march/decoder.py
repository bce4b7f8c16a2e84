"""march 解码器实现.

解码总是写入一个可写的目标: `Ref` 值槽, 或可原地修改的结构体/list/dict 实例.
每个字段先解码到独立的 `Ref` 中, `Ref.found` 为 False 表示 "未找到", 此时字段保持原值.
结构体的所有赋值都先暂存, 整个结构体解码成功后才一次性写入.
"""

import copy
from typing import Any, get_origin

from pydantic import TypeAdapter, ValidationError
from pydantic.errors import PydanticSchemaGenerationError
from pydantic_core import from_json

from .config import Config
from .exceptions import (
    DecodeError,
    DepthLimitError,
    FieldAccessError,
    FieldCodecError,
    InvalidTargetError,
    MarchError,
    OverrideContractError,
    UnsupportedShapeError,
)
from .fields import (
    FieldDescriptor,
    Kind,
    Ref,
    Values,
    container_class,
    element_type,
    is_record_class,
    kind_of,
    kind_of_value,
    mapping_types,
    optional_inner,
    strip_annotated,
    type_name,
    zero_value,
)
from .jsonfields import Shape, classify, read_elements, read_fields
from .log import logger
from .overrides import NOT_FOUND, find_override, try_read_fields, try_unmarshal
from .tags import FLAG_HOIST, FLAG_REMAINS, is_valid_tag_name

_ADAPTERS: dict[Any, TypeAdapter] = {}
_PASSTHROUGH_KEYS = (str, Any, object)


def _adapter(annotation: Any) -> TypeAdapter:
    """获取类型的 TypeAdapter (缓存)."""
    try:
        return _ADAPTERS[annotation]
    except KeyError:
        pass
    except TypeError:
        # 不可哈希的注解
        return TypeAdapter(annotation)
    adapter = _ADAPTERS[annotation] = TypeAdapter(annotation)
    return adapter


def _first_error(e: ValidationError) -> str:
    errors = e.errors()
    return errors[0]["msg"] if errors else str(e)


def _owner_class(annotation: Any) -> Any:
    """声明类型对应的类, 用于查找自定义方法."""
    cls = container_class(annotation)
    return cls if isinstance(cls, type) else None


def _is_key_type(tp: Any) -> bool:
    """编码器能够写回的映射键类型: str 与 int 及其子类 (bool 除外)."""
    return (
        get_origin(tp) is None
        and isinstance(tp, type)
        and issubclass(tp, str | int)
        and not issubclass(tp, bool)
    )


def is_settable(target: Any) -> bool:
    """目标能否被原地写入."""
    if isinstance(target, Ref | list | dict):
        return True
    return kind_of_value(target) is Kind.RECORD


class Decoder:
    """march 解码器.

    按以下顺序决定如何解码一个目标:

    1. Optional 声明遇到 JSON null 时写入 None.
    2. 目标类型上注册的自定义解码方法 (``unmarshal_<suffix>``).
    3. `Config.default_unmarshaller`.
    4. 默认 JSON 解码.
    """

    __slots__ = ("_config",)

    def __init__(self, config: Config):
        self._config = config

    @property
    def config(self) -> Config:
        return self._config

    def decode(self, data: bytes | bytearray | memoryview | str, target: Any) -> None:
        """解码顶层输入, 原地写入 target.

        输入为 JSON null 时, 结构体/list/dict 目标保持不变, 与嵌套字段的处理一致.

        Raises:
            InvalidTargetError: target 不是可写的引用.
        """
        self._config.validate()
        if not is_settable(target):
            raise InvalidTargetError(
                f"Cannot unmarshal into {type(target).__name__}: "
                f"expected a Ref, a record instance, a list or a dict"
            )
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.unmarshal(bytes(data), target)

    def unmarshal(self, data: bytes, target: Any, depth: int = 0) -> None:
        """解码单个值 (自定义方法优先)."""
        if depth > self._config.max_depth:
            raise DepthLimitError(
                f"Maximum nesting depth {self._config.max_depth} exceeded"
            )

        if isinstance(target, Ref):
            if kind_of(target.annotation) is Kind.OPTIONAL:
                self._unmarshal_optional(data, target, depth)
                return
            if self._try_unmarshal_ref(data, target):
                return
        elif try_unmarshal(target, data, self._config.unmarshal_method_name):
            if self._config.debug:
                logger.debug("[Decoder] %s 使用自定义解码方法", type(target).__name__)
            return

        self.unmarshal_default(data, target, depth)

    def unmarshal_default(self, data: bytes, target: Any, depth: int = 0) -> None:
        """跳过目标类型上的自定义方法, 使用默认解码."""
        hook = self._config.default_unmarshaller
        if hook is None:
            self._unmarshal_json(data, target, depth)
            return

        try:
            result = hook(data, target)
        except MarchError:
            raise
        except Exception as e:
            raise DecodeError(f"Default unmarshaller failed: {e}") from e
        if result is not None:
            raise OverrideContractError(
                f"Default unmarshaller returned {type(result).__name__}, expected None"
            )

    def _unmarshal_optional(self, data: bytes, ref: Ref, depth: int) -> None:
        if classify(data) is Shape.NULL:
            ref.set(None)
            return
        inner = Ref(optional_inner(ref.annotation))
        self.unmarshal(data, inner, depth)
        if inner.found:
            ref.set(inner.value)

    def _try_unmarshal_ref(self, data: bytes, ref: Ref) -> bool:
        name = self._config.unmarshal_method_name
        cls = _owner_class(ref.annotation)
        if cls is None or find_override(cls, name) is None:
            return False

        instance = ref.value if isinstance(ref.value, cls) else zero_value(ref.annotation)
        if instance is None:
            raise OverrideContractError(
                f"Cannot construct {cls.__name__} to call its unmarshal method"
            )
        try_unmarshal(instance, data, name)
        if self._config.debug:
            logger.debug("[Decoder] %s 使用自定义解码方法", cls.__name__)
        ref.set(instance)
        return True

    def _unmarshal_json(self, data: bytes, target: Any, depth: int) -> None:
        if isinstance(target, Ref):
            self._unmarshal_value(data, target, depth)
        elif classify(data) is Shape.NULL:
            # 与字段相同: null 不写入任何值
            return
        elif isinstance(target, list):
            target[:] = self._decode_elements(data, Any, depth)
        elif isinstance(target, dict):
            target.update(self._decode_entries(data, Any, Any, depth))
        else:
            self._unmarshal_record(data, target, depth)

    def _unmarshal_value(self, data: bytes, ref: Ref, depth: int) -> None:
        annotation = ref.annotation
        cls = _owner_class(annotation)

        # RawMessage / Remainder 原样保存输入
        if cls is not None and hasattr(cls, "__march_from_json__"):
            ref.set(cls.__march_from_json__(data, self._config))
            return

        kind = kind_of(annotation)
        if kind is Kind.ARRAY:
            raise UnsupportedShapeError(
                f"Cannot unmarshal into fixed-size {type_name(annotation)}, "
                f"use a variable-length sequence instead"
            )
        if kind is not Kind.ANY and classify(data) is Shape.NULL:
            return

        if kind is Kind.RECORD:
            instance = zero_value(annotation)
            self._unmarshal_record(data, instance, depth)
            ref.set(instance)
        elif kind is Kind.SEQUENCE:
            elements = self._decode_elements(data, element_type(annotation), depth)
            ref.set(container_class(annotation)(elements))
        elif kind is Kind.MAPPING:
            key_type, value_type = mapping_types(annotation)
            container = container_class(annotation)()
            container.update(self._decode_entries(data, key_type, value_type, depth))
            ref.set(container)
        else:
            ref.set(self._validate_leaf(annotation, data))

    def _decode_elements(self, data: bytes, annotation: Any, depth: int) -> list[Any]:
        result = []
        for i, raw in enumerate(read_elements(data)):
            element = Ref(annotation)
            try:
                self.unmarshal(raw, element, depth + 1)
            except MarchError as e:
                e.loc.insert(0, str(i))
                raise
            result.append(element.value)
        return result

    def _decode_entries(
        self, data: bytes, key_type: Any, value_type: Any, depth: int
    ) -> dict[Any, Any]:
        result = {}
        for name, raw in read_fields(data).items():
            entry = Ref(value_type)
            try:
                self.unmarshal(raw, entry, depth + 1)
                key = self._decode_key(key_type, name)
            except MarchError as e:
                e.loc.insert(0, name)
                raise
            result[key] = entry.value
        return result

    def _decode_key(self, annotation: Any, name: str) -> Any:
        tp = strip_annotated(annotation)
        if tp in _PASSTHROUGH_KEYS:
            return name
        if tp is bytes:
            return name.encode("utf-8")
        if not _is_key_type(tp):
            raise UnsupportedShapeError(
                f"Cannot use {type_name(annotation)} as a map key, use str, bytes or int keys"
            )
        try:
            # 键在 JSON 中总是字符串, 使用宽松模式转换 (如 "1" -> 1)
            return _adapter(annotation).validate_python(name)
        except ValidationError as e:
            raise DecodeError(
                f"Cannot convert key {name!r} to {type_name(annotation)}: {_first_error(e)}"
            ) from e

    def _validate_leaf(self, annotation: Any, data: bytes) -> Any:
        try:
            adapter = _adapter(annotation)
        except PydanticSchemaGenerationError as e:
            raise UnsupportedShapeError(
                f"Cannot unmarshal into {type_name(annotation)} without an unmarshal method"
            ) from e
        try:
            return adapter.validate_json(data, strict=True)
        except ValidationError as e:
            raise DecodeError(
                f"Cannot decode JSON {classify(data).value} into "
                f"{type_name(annotation)}: {_first_error(e)}"
            ) from e

    def _unmarshal_record(self, data: bytes, target: Any, depth: int) -> None:
        config = self._config
        if config.debug:
            logger.debug("[Decoder] 开始解码 %s", type(target).__name__)

        fields = try_read_fields(target, data, config.read_fields_method_name)
        if fields is NOT_FOUND:
            fields = read_fields(data)

        values = Values([target], config.tag_key)
        claimed: set[str] = set()
        receivers: list[tuple[Any, FieldDescriptor]] = []
        pending: list[tuple[Any, str, Any]] = []
        optional_hoists: list[tuple[Any, str, Any]] = []
        written: list[Any] = []

        for walked in values:
            descriptor = walked.descriptor
            if not descriptor.exported or not descriptor.settable:
                continue
            if not is_valid_tag_name(descriptor.tag_name):
                continue
            assert descriptor.attr is not None

            if descriptor.flags_contain(FLAG_REMAINS):
                receivers.append((walked.owner, descriptor))
                continue

            if descriptor.flags_contain(FLAG_HOIST):
                nested = self._hoist_target(walked.value, descriptor)
                if nested is None:
                    continue
                values.append(nested)
                if walked.value is None and descriptor.kind is Kind.OPTIONAL:
                    # 空的 Optional 只有在子字段被写入时才创建
                    optional_hoists.append((walked.owner, descriptor.attr, nested))
                else:
                    pending.append((walked.owner, descriptor.attr, nested))
                continue

            name = descriptor.tag_name
            if name in claimed:
                continue
            claimed.add(name)

            raw = fields.get(name)
            if raw is None:
                continue

            slot = Ref(descriptor.annotation)
            try:
                self.unmarshal(raw, slot, depth + 1)
            except FieldCodecError as e:
                e.loc.insert(0, name)
                if config.verbose:
                    logger.warning("[Decoder] 字段 %s 解码失败: %s", name, e)
                if config.strict:
                    raise
                continue
            except MarchError as e:
                e.loc.insert(0, name)
                raise
            if slot.found:
                pending.append((walked.owner, descriptor.attr, slot.value))
                written.append(walked.owner)

        if receivers:
            remains = {name: raw for name, raw in fields.items() if name not in claimed}
            for owner, descriptor in receivers:
                assert descriptor.attr is not None
                try:
                    value = self._remains_value(descriptor, remains)
                except FieldCodecError as e:
                    e.loc.insert(0, descriptor.tag_name)
                    if config.verbose:
                        logger.warning(
                            "[Decoder] 字段 %s 解码失败: %s", descriptor.tag_name, e
                        )
                    if config.strict:
                        raise
                    continue
                pending.append((owner, descriptor.attr, value))
                if remains:
                    written.append(owner)

        # 嵌套更深的提升字段排在后面, 按逆序决定是否挂接
        for owner, attr, nested in reversed(optional_hoists):
            if any(written_owner is nested for written_owner in written):
                pending.append((owner, attr, nested))
                written.append(owner)

        for owner, attr, value in pending:
            self._assign(owner, attr, value)

        if config.debug:
            logger.debug(
                "[Decoder] 成功解码 %s, 写入 %d 个字段", type(target).__name__, len(pending)
            )

    def _hoist_target(self, current: Any, descriptor: FieldDescriptor) -> Any:
        """为提升字段准备一个新的结构体实例, 非结构体类型返回 None."""
        annotation = descriptor.annotation
        if kind_of(annotation) is Kind.OPTIONAL:
            annotation = optional_inner(annotation)
        if kind_of(annotation) is not Kind.RECORD:
            return None
        if current is not None and is_record_class(type(current)):
            # 浅拷贝保留未出现在输入中的字段, 且不修改原对象
            return copy.copy(current)
        return zero_value(annotation)

    def _remains_value(self, descriptor: FieldDescriptor, remains: dict[str, bytes]) -> Any:
        annotation = descriptor.annotation
        if kind_of(annotation) is Kind.OPTIONAL:
            annotation = optional_inner(annotation)
        if kind_of(annotation) is not Kind.MAPPING:
            raise UnsupportedShapeError(
                f"Cannot collect remaining fields into {type_name(annotation)}"
            )

        key_type, value_type = (strip_annotated(t) for t in mapping_types(annotation))
        if key_type not in _PASSTHROUGH_KEYS:
            raise UnsupportedShapeError(
                f"Cannot collect remaining fields into {type_name(annotation)}, keys must be str"
            )

        if value_type in (Any, object):
            convert = self._parse_any
        elif value_type is bytes:
            convert = bytes
        elif isinstance(value_type, type) and hasattr(value_type, "__march_from_json__"):
            def convert(raw: bytes) -> Any:
                return value_type.__march_from_json__(raw, self._config)
        else:
            raise UnsupportedShapeError(
                f"Cannot collect remaining fields into {type_name(annotation)}"
            )

        container = container_class(annotation)()
        container.update({name: convert(raw) for name, raw in remains.items()})
        return container

    @staticmethod
    def _parse_any(raw: bytes) -> Any:
        try:
            return from_json(raw)
        except ValueError as e:
            raise DecodeError(f"Invalid JSON value: {e}") from e

    @staticmethod
    def _assign(owner: Any, attr: str, value: Any) -> None:
        try:
            setattr(owner, attr, value)
        except (AttributeError, TypeError, ValueError) as e:
            raise FieldAccessError(
                f"Cannot set {type(owner).__name__}.{attr}: {e}"
            ) from e
