from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from adapters.filesystem.block_utils import assign_permanent_ids, dumps_blocks, loads_blocks
from app.config import load_settings
from app.wiring import build_block_repository
from domain.errors import MalformedImportError, PersistenceError
from domain.models import Block, BlockId, GridRow, single_row_key
from domain.services.block_store import BlockStore
from domain.services.grid_operations import convert_to_grid
from domain.services.layout_grouper import group_layout_rows
from domain.services.render_projection import RenderGrid, project_for_render

app = typer.Typer(no_args_is_help=True)
console = Console()


def _read_blocks(input_path: Path) -> list[Block]:
    if not input_path.exists():
        console.print(f"[red]File not found:[/] {input_path}")
        raise typer.Exit(code=1)
    try:
        return loads_blocks(input_path.read_bytes(), input_path.stem)
    except MalformedImportError as exc:
        console.print("[red]Validation failed:[/]")
        for problem in exc.problems:
            console.print(f"  - {problem}")
        raise typer.Exit(code=1) from exc


def _parse_block_id(raw: str) -> BlockId:
    return int(raw) if raw.lstrip("-").isdigit() else raw


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output.")) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


@app.command("validate")
def validate(input_path: Path = typer.Argument(..., help="Exported blocks JSON file.")) -> None:
    blocks = _read_blocks(input_path)
    rows = group_layout_rows(blocks)
    grids = sum(1 for row in rows if isinstance(row, GridRow))
    console.print(f"[green]Valid blocks file:[/] {input_path}")
    console.print(f"{len(blocks)} blocks, {len(rows)} rows, {grids} grid rows")


@app.command("layout")
def layout(
    input_path: Path = typer.Argument(..., help="Exported blocks JSON file."),
    preview: bool = typer.Option(False, help="Show the read-only preview without hidden blocks."),
) -> None:
    blocks = _read_blocks(input_path)
    table = Table(title=f"{input_path.name} {'preview' if preview else 'layout'}")
    table.add_column("#", justify="right")
    table.add_column("Row")
    table.add_column("Kind")
    table.add_column("Cells")

    if preview:
        for index, rendered in enumerate(project_for_render(blocks)):
            if isinstance(rendered, RenderGrid):
                cells = " | ".join(
                    f"{cell.block.type}#{cell.block.id}" if cell.block else "(empty)"
                    for cell in rendered.cells
                )
                kind = f"grid {rendered.columns} cols, gap {rendered.gap_rem:g}rem"
                table.add_row(str(index), rendered.row_id, kind, cells)
            else:
                block = rendered.block
                table.add_row(
                    str(index), single_row_key(block.id), "single", f"{block.type}#{block.id}"
                )
    else:
        for index, row in enumerate(group_layout_rows(blocks)):
            if isinstance(row, GridRow):
                cells = " | ".join(
                    f"{block.type}#{block.id}" if block else "(empty)" for block in row.cells
                )
                table.add_row(str(index), row.key, f"grid {row.columns} cols", cells)
            else:
                hidden = "" if row.block.visible else " (hidden)"
                table.add_row(
                    str(index), row.key, "single", f"{row.block.type}#{row.block.id}{hidden}"
                )
    console.print(table)


@app.command("import")
def import_document(
    input_path: Path = typer.Argument(..., help="Exported blocks JSON file."),
    document_id: str = typer.Argument(..., help="Target document id."),
    config: Optional[Path] = typer.Option(None, help="Settings YAML file."),
) -> None:
    blocks = _read_blocks(input_path)
    repository = build_block_repository(load_settings(config))
    try:
        persisted = repository.save(document_id, blocks)
    except (PersistenceError, ValueError) as exc:
        console.print(f"[red]Import failed:[/] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]Imported[/] {len(persisted)} blocks into {document_id}")


@app.command("export")
def export_document(
    document_id: str = typer.Argument(..., help="Document id to export."),
    output: Optional[Path] = typer.Option(None, help="Write to this file instead of stdout."),
    envelope: bool = typer.Option(False, help="Wrap blocks in the versioned export envelope."),
    config: Optional[Path] = typer.Option(None, help="Settings YAML file."),
) -> None:
    repository = build_block_repository(load_settings(config))
    try:
        blocks = repository.load(document_id)
    except FileNotFoundError as exc:
        console.print(f"[red]Document not found:[/] {document_id}")
        raise typer.Exit(code=1) from exc
    except (PersistenceError, ValueError) as exc:
        console.print(f"[red]Export failed:[/] {exc}")
        raise typer.Exit(code=1) from exc
    raw = dumps_blocks(blocks, envelope=envelope)
    if output is None:
        typer.echo(raw.decode("utf-8"))
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(raw)
    console.print(f"[green]Wrote[/] {output}")


@app.command("convert-grid")
def convert_grid(
    input_path: Path = typer.Argument(..., help="Exported blocks JSON file."),
    block_id: str = typer.Argument(..., help="Block to turn into a grid row."),
    columns: int = typer.Option(..., help="Number of grid columns."),
    gap: Optional[int] = typer.Option(None, help="Gap between columns."),
    output: Optional[Path] = typer.Option(None, help="Defaults to rewriting the input file."),
    config: Optional[Path] = typer.Option(None, help="Settings YAML file."),
) -> None:
    editor = load_settings(config).editor
    blocks = _read_blocks(input_path)
    store = BlockStore(input_path.stem, blocks)
    try:
        conversion = convert_to_grid(
            store,
            _parse_block_id(block_id),
            columns,
            editor.default_gap if gap is None else gap,
            max_columns=editor.max_grid_columns,
        )
    except ValueError as exc:
        console.print(f"[red]Conversion failed:[/] {exc}")
        raise typer.Exit(code=1) from exc
    if conversion is None:
        console.print(f"[red]Block {block_id} not found or already in a grid row[/]")
        raise typer.Exit(code=1)
    target = output or input_path
    target.write_bytes(dumps_blocks(assign_permanent_ids(store.blocks)))
    console.print(
        f"[green]Converted[/] block {block_id} into {conversion.row_id} "
        f"({len(conversion.block_ids)} cells), wrote {target}"
    )


if __name__ == "__main__":
    app()
