"""march 选项标志."""

from enum import IntFlag


class Option(IntFlag):
    """编解码行为选项 (位掩码).

    Attributes:
        NONE: 默认行为 (宽松模式).
        STRICT: 严格模式, 任一字段编解码失败即终止整个操作.
        VERBOSE: 宽松模式下被跳过的字段错误通过日志报告.
        DEBUG: 输出遍历过程的调试日志.
    """

    NONE = 0
    STRICT = 1 << 0
    VERBOSE = 1 << 1
    DEBUG = 1 << 2
