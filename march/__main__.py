"""march 命令行工具."""

import json
import sys
from pathlib import Path
from typing import IO, Any, NamedTuple

import click

from .exceptions import MarchError
from .jsonfields import Shape, check_value, classify, read_elements, read_fields


class FieldNode(NamedTuple):
    """JSON 文档中的一个字段及其子字段."""

    key: str
    shape: Shape
    raw: bytes
    children: list["FieldNode"]


def inspect_fields(data: bytes, key: str = "") -> FieldNode:
    """使用默认编解码器递归拆分 JSON 文档.

    Raises:
        DecodeError: 文档不是合法的 JSON.
    """
    shape = classify(data)
    children: list[FieldNode] = []
    if shape is Shape.OBJECT:
        children = [inspect_fields(raw, name) for name, raw in read_fields(data).items()]
    elif shape is Shape.ARRAY:
        children = [inspect_fields(raw, str(i)) for i, raw in enumerate(read_elements(data))]
    else:
        check_value(data)
    return FieldNode(key, shape, data.strip(), children)


def summarize(node: FieldNode) -> Any:
    """名称到形态的嵌套映射, 数组展开为列表."""
    if node.shape is Shape.OBJECT:
        return {child.key: summarize(child) for child in node.children}
    if node.shape is Shape.ARRAY:
        return [summarize(child) for child in node.children]
    return node.shape.value


def _print_tree(root: FieldNode, file: IO[str] | None = None) -> None:
    def _print_recursive(node: FieldNode, current_id: str, indent_level: int) -> None:
        indent = "   " * indent_level

        if node.shape is Shape.OBJECT:
            click.echo(f"{indent}[{current_id}]┓", file=file)
            prefix = f"{current_id}." if current_id else ""
            for child in node.children:
                _print_recursive(child, f"{prefix}{child.key}", indent_level + 1)
            click.echo(f"{indent}[{current_id}]┛", file=file)

        elif node.shape is Shape.ARRAY:
            click.echo(f"{indent}[{current_id}](array={len(node.children)})", file=file)
            for child in node.children:
                _print_recursive(child, f"{current_id}[{child.key}]", indent_level + 1)

        else:
            value = node.raw.decode("utf-8", "replace")
            click.echo(f"{indent}[{current_id}]({node.shape.value}):{value}", file=file)

    _print_recursive(root, "", 0)


def _inspect_and_print(
    data: bytes, output_format: str, output_file: str | None, verbose: bool
) -> None:
    if verbose:
        click.echo(f"[DEBUG] 数据大小: {len(data)} 字节", err=True)

    try:
        root = inspect_fields(data)
    except MarchError as e:
        if verbose:
            import traceback

            traceback.print_exc(file=sys.stderr)
        raise click.ClickException(f"解析失败: {e}") from e

    if root.shape is Shape.INVALID:
        raise click.ClickException("解析失败: 输入不是合法的 JSON")

    if output_format == "tree":
        if output_file:
            with open(output_file, "w", encoding="utf-8") as f:
                _print_tree(root, file=f)
            click.echo(f"结果已保存到: {output_file}", err=True)
        else:
            _print_tree(root)
        return

    output = json.dumps(summarize(root), indent=2, ensure_ascii=False)
    if output_file:
        Path(output_file).write_text(output, encoding="utf-8")
        click.echo(f"结果已保存到: {output_file}", err=True)
    else:
        click.echo(output)


@click.command(help="march JSON 字段检查工具")
@click.argument("encoded", required=False)
@click.option(
    "-f",
    "--file",
    "file_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="从文件读取 JSON 数据",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["tree", "json"]),
    default="tree",
    show_default=True,
    help="输出格式",
)
@click.option(
    "-o",
    "--output",
    "output_file",
    type=click.Path(dir_okay=False, writable=True),
    help="将输出保存到文件 (如不指定则输出到控制台)",
)
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="显示详细的解析过程信息",
)
def cli(
    encoded: str | None,
    file_path: Path | None,
    output_format: str,
    output_file: str | None,
    verbose: bool,
) -> None:
    """march JSON 字段检查工具.

    Examples:
      # 打印字段树
      march '{"v": "x", "extra": [1, 2]}'

      # 从文件读取并以 JSON 格式输出每个字段的形态
      march -f input.json --format json
    """
    if encoded and file_path:
        raise click.UsageError("不能同时指定 ENCODED 数据和 --file 参数")
    if not encoded and not file_path:
        raise click.UsageError("必须指定 ENCODED 数据或 --file 参数")

    if file_path:
        data = file_path.read_bytes()
        if verbose:
            click.echo(f"[DEBUG] 从文件读取: {file_path}", err=True)
    else:
        assert encoded is not None
        data = encoded.encode("utf-8")

    _inspect_and_print(data, output_format, output_file, verbose)


def main() -> None:
    """入口函数."""
    cli()


if __name__ == "__main__":
    main()
