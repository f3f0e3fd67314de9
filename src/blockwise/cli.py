"""CLI entry point for Blockwise."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from blockwise.models.config import DEFAULT_CONFIG_PATH, Config
from blockwise.models.edits import EditStatus
from blockwise.models.protocol import SessionMode
from blockwise.services.block_ids import ensure_block_ids
from blockwise.services.diff import generate_unified_diff
from blockwise.services.document_editor import DocumentEditor
from blockwise.services.edit_channel import ApplyEditCommand, EditChannel
from blockwise.services.exceptions import FileModifiedError
from blockwise.services.file_monitor import FileMonitor
from blockwise.services.file_operations import load_document, render_document, save_document
from blockwise.services.response_parser import parse_agent_response
from blockwise.services.segmenter import segment as segment_document
from blockwise.utils.logging import configure_logging, get_logger


logger = get_logger(__name__)
console = Console()


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration, by default from ~/.config/blockwise/config.yaml.

    Raises:
        click.ClickException: If config is missing, has invalid permissions, or validation fails
    """
    config_path = config_path or DEFAULT_CONFIG_PATH

    try:
        config = Config.load(config_path)
        logger.info("config_loaded", path=str(config_path))
        return config
    except FileNotFoundError as e:
        logger.error("config_not_found", path=str(config_path))
        raise click.ClickException(str(e))
    except PermissionError as e:
        logger.error("config_permission_error", path=str(config_path))
        raise click.ClickException(str(e))
    except ValueError as e:
        logger.error("config_validation_error", error=str(e))
        raise click.ClickException(f"Configuration validation failed:\n{e}")


def open_document(path: Path, monitor: FileMonitor):
    try:
        return load_document(path, monitor)
    except ValueError as e:
        logger.error("document_load_error", path=str(path), error=str(e))
        raise click.ClickException(f"Cannot read {path}: {e}")


def write_document(path: Path, document, monitor: Optional[FileMonitor]) -> None:
    try:
        save_document(path, document, monitor)
    except FileModifiedError as e:
        logger.error("document_save_conflict", path=e.path)
        raise click.ClickException(f"{e}\nNothing was written; re-run against the current file.")
    except OSError as e:
        logger.error("document_save_error", path=str(path), error=str(e))
        raise click.ClickException(f"Cannot write {path}: {e}")


def _status_style(status: EditStatus, failure_reason: Optional[str]) -> str:
    if status == EditStatus.ACCEPTED:
        return "[green]applied[/green]"
    if status == EditStatus.REJECTED:
        return "[yellow]rejected[/yellow]"
    if failure_reason:
        return f"[red]failed: {failure_reason}[/red]"
    return "pending"


@click.group()
@click.version_option(version="0.1.0", prog_name="blockwise")
def cli():
    """Blockwise: block-addressable document editing with an AI agent."""
    configure_logging()


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print block descriptors as JSON")
@click.option("--write", is_flag=True, help="Save the document with its assigned block IDs")
def segment(path: Path, as_json: bool, write: bool):
    """
    Assign block IDs and print the address-annotated document.

    Examples:
        blockwise segment notes.md
        blockwise segment notes.md --json
    """
    monitor = FileMonitor()
    document = open_document(path, monitor)
    changed = ensure_block_ids(document)
    result = segment_document(document)
    logger.info("segment_command", path=str(path), blocks=len(result.blocks), ids_assigned=changed)

    if as_json:
        click.echo(json.dumps(result.model_dump(mode="json")["blocks"], indent=2))
    else:
        click.echo(result.text)

    if write and changed:
        write_document(path, document, monitor)
        console.print(f"[dim]Saved block IDs to {path}[/dim]", highlight=False)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("response_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--output", "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the result here instead of back to PATH",
)
@click.option("--dry-run", is_flag=True, help="Show the diff without writing anything")
def apply(path: Path, response_file: Path, output: Optional[Path], dry_run: bool):
    """
    Apply the edits of a saved model response to a document.

    Examples:
        blockwise apply notes.md response.json
        blockwise apply notes.md response.json --dry-run
    """
    monitor = FileMonitor()
    document = open_document(path, monitor)
    editor = DocumentEditor(document, EditChannel())
    before = render_document(document, path)

    result = parse_agent_response(response_file.read_text(encoding="utf-8"))
    if result.kind == "malformed":
        console.print("[yellow]Response could not be decoded; no edits to apply.[/yellow]")

    table = Table(title=f"Edits from {response_file.name}")
    table.add_column("#", justify="right")
    table.add_column("Action")
    table.add_column("Target")
    table.add_column("Result")

    applied = 0
    for number, edit in enumerate(result.edits, 1):
        event = editor.apply_command(ApplyEditCommand.from_proposal(edit))
        if event.success:
            applied += 1
            outcome = "[green]applied[/green]"
        else:
            outcome = f"[red]{event.error_code}[/red]"
        table.add_row(str(number), edit.action.value, edit.block_id, outcome)

    if result.edits:
        console.print(table)
    if result.response:
        console.print(result.response, markup=False, highlight=False)

    after = render_document(document, path)
    target = output or path
    if dry_run:
        click.echo(generate_unified_diff(before, after, str(path), str(target)), nl=False)
        return

    if applied:
        if output:
            write_document(output, document, None)
        else:
            write_document(path, document, monitor)
        console.print(f"Applied {applied}/{len(result.edits)} edits, saved to {target}", highlight=False)
    else:
        console.print("No edits applied; nothing written.")


async def run_chat_session(document, config: Config, message: str, mode: SessionMode, title: str):
    """Run one agent session against a live document and return the controller."""
    from blockwise.services.llm_client import LLMClient
    from blockwise.services.session import SessionController
    from blockwise.services.transport import LLMAgentTransport

    channel = EditChannel()
    transport = LLMAgentTransport(LLMClient(config=config.llm), config.agent)

    async with DocumentEditor(document, channel) as editor:
        controller = SessionController(
            transport,
            channel,
            editor.snapshot,
            config.agent,
            document_title=title,
        )
        await controller.send_message(message, mode=mode)
    return controller


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("message")
@click.option(
    "--mode",
    type=click.Choice([m.value for m in SessionMode]),
    default=SessionMode.AGENT.value,
    show_default=True,
    help="agent proposes and applies edits; ask only answers",
)
@click.option("--no-auto-apply", is_flag=True, help="List proposed edits without applying them")
@click.option(
    "--output", "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the result here instead of back to PATH",
)
@click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file (default: ~/.config/blockwise/config.yaml)",
)
def chat(
    path: Path,
    message: str,
    mode: str,
    no_auto_apply: bool,
    output: Optional[Path],
    config_path: Optional[Path],
):
    """
    Run an editing session on a document with the configured LLM.

    Examples:
        blockwise chat notes.md "Turn the second paragraph into a checklist"
        blockwise chat notes.md "What is this document about?" --mode ask
    """
    config = load_config(config_path)
    if no_auto_apply:
        config = config.model_copy(
            update={"agent": config.agent.model_copy(update={"auto_apply": False})}
        )

    monitor = FileMonitor()
    document = open_document(path, monitor)
    logger.info("chat_command_started", path=str(path), mode=mode)

    with console.status("[bold green]Working..."):
        controller = asyncio.run(
            run_chat_session(document, config, message, SessionMode(mode), path.stem)
        )

    for chat_message in controller.messages:
        if chat_message.role.value == "user":
            continue
        label = "Summary" if chat_message.is_summary else f"Iteration {chat_message.iteration}"
        console.rule(label)
        console.print(chat_message.content, markup=False, highlight=False)
        for edit in chat_message.edits:
            console.print(
                f"  {edit.action.value} {edit.block_id}: {edit.description or '-'} "
                f"({_status_style(edit.status, edit.failure_reason)})",
                highlight=False,
            )

    if controller.error:
        raise click.ClickException(f"Model request failed: {controller.error}")

    if controller.applied_edits:
        target = output or path
        write_document(target, document, None if output else monitor)
        console.print(f"Saved {target}", highlight=False)

    logger.info("chat_command_completed", version=document.version)


def main():
    """Main entry point for setuptools console script."""
    cli()


if __name__ == "__main__":
    main()
