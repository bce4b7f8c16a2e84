"""march 异常定义.

除 `FieldCodecError` 外, 所有异常都表示程序或模式缺陷,
无论是否启用严格模式都会立即终止当前的顶层调用.
"""


class MarchError(Exception):
    """march 异常基类.

    Attributes:
        loc: 出错位置的字段路径, 异常向外传播时逐层在头部插入字段名.
    """

    def __init__(self, message: str, loc: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.loc: list[str] = list(loc) if loc else []

    def __str__(self) -> str:
        if self.loc:
            return f"{'.'.join(self.loc)}: {self.message}"
        return self.message


class MalformedConfigurationError(MarchError, ValueError):
    """配置无效 (例如标签键为空)."""


class InvalidTargetError(MarchError, TypeError):
    """反序列化目标不是可写的引用."""


class UnsupportedShapeError(MarchError, TypeError):
    """不支持的数据形态.

    例如定长数组目标, 不支持的 remains 容器类型, 不支持的映射键类型.
    """


class FieldAccessError(MarchError, AttributeError):
    """读取或写入字段失败."""


class OverrideContractError(MarchError, TypeError):
    """自定义编解码方法的返回值不符合约定."""


class DepthLimitError(MarchError, RecursionError):
    """嵌套深度超过 `Config.max_depth`."""


class FieldCodecError(MarchError):
    """字段值编解码失败.

    唯一可以被宽松模式跳过的错误类别.
    """


class EncodeError(FieldCodecError):
    """编码失败."""


class DecodeError(FieldCodecError, ValueError):
    """解码失败."""
