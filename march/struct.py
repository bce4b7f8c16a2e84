"""march 结构体定义模块."""

import re
from collections.abc import Callable, Mapping
from typing import Annotated, Any, ClassVar, Literal, TypeVar, cast

from pydantic import AliasChoices, AliasPath, BaseModel, ConfigDict, ValidationInfo, model_validator
from pydantic import Field as PydanticField
from pydantic.fields import FieldInfo
from pydantic_core import PydanticUndefined
from typing_extensions import Self, dataclass_transform

from .config import Config
from .fields import RecordField
from .options import Option
from .overrides import collect_overrides
from .tags import DEFAULT_TAG, METADATA_KEY

S = TypeVar("S", bound="Struct")


def Field(
    default: Any = PydanticUndefined,
    *,
    tags: Mapping[str, str] | None = None,
    default_factory: Callable[[], Any] | Callable[[dict[str, Any]], Any] | None = None,
    alias: str | None = None,
    validation_alias: str | AliasPath | AliasChoices | None = None,
    serialization_alias: str | None = None,
    title: str | None = None,
    description: str | None = None,
    examples: list[Any] | None = None,
    exclude: bool | None = None,
    json_schema_extra: dict[str, Any] | None = None,
    frozen: bool | None = None,
    validate_default: bool | None = None,
    repr: bool | None = None,
    pattern: str | re.Pattern[str] | None = None,
    strict: bool | None = None,
    gt: float | None = None,
    ge: float | None = None,
    lt: float | None = None,
    le: float | None = None,
    min_length: int | None = None,
    max_length: int | None = None,
    union_mode: Literal["smart", "left_to_right"] | None = None,
    **extra: Any,
) -> Any:
    """创建带标签的结构体字段.

    这是 Pydantic `Field` 的包装函数, 额外接收 `tags`: 标签键到标签值的映射.
    标签值的格式为 ``名称[,标志...]``, 名称为空或未设置对应标签键时字段不参与编解码.

    Args:
        default: 字段的静态默认值.
        tags: 标签映射, 例如 ``{"march": "name,hoist"}``.
        default_factory: 默认值工厂, 可变类型必须使用它.
        alias: 字段别名 (Pydantic).
        validation_alias: 验证别名 (Pydantic).
        serialization_alias: 序列化别名 (Pydantic).
        title: 字段标题 (Pydantic).
        description: 字段描述 (Pydantic).
        examples: 示例值 (Pydantic).
        exclude: 是否从 Pydantic 序列化中排除, 与标签无关.
        json_schema_extra: 额外的 JSON Schema 数据 (Pydantic).
        frozen: 是否冻结. 冻结的字段在解码时被跳过.
        validate_default: 是否验证默认值 (Pydantic).
        repr: 是否包含在 repr 中 (Pydantic).
        pattern: 正则表达式模式 (Pydantic).
        strict: 严格模式 (Pydantic).
        gt: Greater than (Pydantic).
        ge: Greater than or equal (Pydantic).
        lt: Less than (Pydantic).
        le: Less than or equal (Pydantic).
        min_length: 最小长度 (Pydantic).
        max_length: 最大长度 (Pydantic).
        union_mode: 联合模式 (Pydantic).
        **extra: 传递给 Pydantic `Field` 的其他参数.

    Returns:
        Any: 携带标签元数据的 Pydantic FieldInfo 对象.

    Examples:
        >>> from march import Struct, Field
        >>> class Inner(Struct):
        ...     h1: int = Field(0, tags={"march": "h1"})
        >>> class Outer(Struct):
        ...     v: str = Field("", tags={"march": "v"})
        ...     inner: Inner = Field(default_factory=Inner, tags={"march": ",hoist"})
        ...     hidden: int = 0  # 未设置标签, 不参与编解码
    """
    final_extra: dict[str, Any] = {METADATA_KEY: dict(tags or {})}
    if json_schema_extra is not None:
        final_extra.update(json_schema_extra)

    field_args = {
        "alias": alias,
        "validation_alias": validation_alias,
        "serialization_alias": serialization_alias,
        "title": title,
        "description": description,
        "examples": examples,
        "exclude": exclude,
        "frozen": frozen,
        "validate_default": validate_default,
        "repr": repr,
        "pattern": pattern,
        "strict": strict,
        "gt": gt,
        "ge": ge,
        "lt": lt,
        "le": le,
        "min_length": min_length,
        "max_length": max_length,
        "union_mode": union_mode,
    }

    kwargs_dict = cast(dict[str, Any], extra)
    for k, v in field_args.items():
        if v is not None:
            kwargs_dict[k] = v

    kwargs_dict["json_schema_extra"] = final_extra

    if default is not PydanticUndefined:
        kwargs_dict["default"] = default
    if default_factory is not None:
        kwargs_dict["default_factory"] = default_factory

    return cast(Any, PydanticField)(**kwargs_dict)


def _field_annotation(info: FieldInfo) -> Any:
    # Pydantic 会把 Annotated 约束拆到 metadata 中, 这里重新拼回去
    if info.metadata:
        return Annotated[(info.annotation, *info.metadata)]  # type: ignore[valid-type]
    return info.annotation


def _field_tags(info: FieldInfo) -> dict[str, str]:
    extra = info.json_schema_extra
    if not isinstance(extra, dict):
        return {}
    tags = extra.get(METADATA_KEY)
    return dict(tags) if isinstance(tags, Mapping) else {}


@dataclass_transform(kw_only_default=True, field_specifiers=(Field,))
class StructMeta(type(BaseModel)):
    """Struct 的元类, 用于收集字段标签和自定义方法."""

    def __new__(  # noqa: D102
        mcs,
        name: str,
        bases: tuple[type, ...],
        namespace: dict[str, Any],
        **kwargs: Any,
    ):
        cls = super().__new__(mcs, name, bases, namespace, **kwargs)

        if name != "Struct":
            frozen_model = bool(cls.model_config.get("frozen", False))
            cls.__march_fields__ = mcs._prepare_fields(cls.model_fields, frozen_model)
            cls.__march_overrides__ = collect_overrides(cls)

        return cls

    @staticmethod
    def _prepare_fields(
        fields: dict[str, FieldInfo], frozen_model: bool
    ) -> tuple[RecordField, ...]:
        """按声明顺序提取每个字段的标签元数据."""
        return tuple(
            RecordField(
                name,
                _field_annotation(info),
                _field_tags(info),
                settable=not (frozen_model or info.frozen),
            )
            for name, info in fields.items()
        )


class Struct(BaseModel, metaclass=StructMeta):
    """march 结构体基类.

    继承自 `pydantic.BaseModel`, 字段通过 `Field(tags=...)` 声明标签.
    普通的 dataclass 同样可以作为结构体使用, 标签放在
    ``dataclasses.field(metadata=field_tags(march=...))`` 中.

    Configuration:
        支持在 `model_config` 中配置以下 march 专用选项:

        - **march_option** (*Option*): 默认选项标志 (如 `Option.STRICT`).
        - **march_tag** (*str*): 默认标签键.

    Examples:
        >>> from march import Struct, Field
        >>> class User(Struct):
        ...     uid: int = Field(0, tags={"march": "uid"})
        ...     name: str = Field("", tags={"march": "name"})
        >>> User(uid=1, name="Alice").model_dump_march()
        b'{"uid":1,"name":"Alice"}'
        >>> User.model_validate_march(b'{"uid":2}').uid
        2
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    __march_fields__: ClassVar[tuple[RecordField, ...]] = ()
    __march_overrides__: ClassVar[dict[str, str]] = {}

    def __bytes__(self) -> bytes:
        """支持 bytes(obj) 语法."""
        return self.model_dump_march()

    @classmethod
    def _march_config(cls, option: Option, tag: str | None) -> Config:
        final_option = option | cls.model_config.get("march_option", Option.NONE)
        final_tag = tag or cls.model_config.get("march_tag", DEFAULT_TAG)
        return Config.from_params(tag=final_tag, option=final_option)

    @model_validator(mode="before")
    @classmethod
    def _march_pre_validate(cls, value: Any, info: ValidationInfo) -> Any:
        """验证前钩子: bytes 输入先按标签解码, 再交给 Pydantic 完整校验."""
        if not isinstance(value, bytes | bytearray | memoryview):
            return value

        from .api import loads

        context = info.context or {}
        config = cls._march_config(
            context.get("march_option", Option.NONE), context.get("march_tag")
        )
        instance = loads(bytes(value), cls, config=config)
        return {name: getattr(instance, name) for name in cls.model_fields}

    def model_dump_march(
        self,
        option: Option = Option.NONE,
        tag: str | None = None,
        config: Config | None = None,
    ) -> bytes:
        """按标签序列化为 JSON.

        Args:
            option: 选项标志, 与 `model_config` 中的 march_option 合并.
            tag: 标签键, 默认取 `model_config` 中的 march_tag 或 ``"march"``.
            config: 完整配置, 给出时忽略其他参数.

        Returns:
            bytes: 编码结果.
        """
        from .api import dumps

        return dumps(self, config=config or self._march_config(option, tag))

    @classmethod
    def model_validate_march(
        cls,
        data: bytes | bytearray | memoryview | str,
        option: Option = Option.NONE,
        tag: str | None = None,
        config: Config | None = None,
    ) -> Self:
        """按标签从 JSON 反序列化.

        与 ``model_validate(bytes)`` 不同, 此方法不做额外的 Pydantic 校验,
        解码失败时直接抛出 march 的异常.

        Args:
            data: JSON 输入.
            option: 选项标志.
            tag: 标签键.
            config: 完整配置, 给出时忽略其他参数.

        Returns:
            Struct 实例.
        """
        from .api import loads

        return loads(data, cls, config=config or cls._march_config(option, tag))
