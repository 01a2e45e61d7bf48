"""Document lifecycle CLI.

Provides commands to create documents, save drafts, publish, unpublish and
clean up versions in the configured store. Every command prints JSON.
"""

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Optional, TypeVar

import structlog
import typer
from pydantic import BaseModel

from doclifecycle.config import Settings, get_settings
from doclifecycle.errors import DocumentStoreError
from doclifecycle.models.enums import ContentKind, SortField, SortOrder
from doclifecycle.services.factory import create_lifecycle_store
from doclifecycle.services.lifecycle_store import LifecycleStore

T = TypeVar("T")

logger = structlog.get_logger(__name__)

app = typer.Typer(
    name="doclifecycle",
    help="""Manage versioned documents: drafts, publishing and cleanup.

Examples:

  # Create a document from a file
  uv run doclifecycle create "Q3 summary" --file summary.md -w ws-1 -u alice --message-id m1

  # Publish a version and make it searchable
  uv run doclifecycle publish <document-id> <version-id> --searchable

  # Remove drafts left behind by deleted chat messages
  uv run doclifecycle clean-orphans -w ws-1""",
    rich_markup_mode="markdown",
)


def configure_logging(settings: Settings) -> None:
    renderer = (
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        logger_factory=lambda *args: structlog.PrintLogger(file=sys.stderr),
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        cache_logger_on_first_use=False,
    )


@app.callback()
def main() -> None:
    """Configure logging from settings before any command runs."""
    configure_logging(get_settings())


def _run(operation: Callable[[LifecycleStore], Awaitable[T]]) -> T:
    settings = get_settings()

    async def runner() -> T:
        async with create_lifecycle_store(settings) as store:
            await store.initialize_schema()
            return await operation(store)

    try:
        return asyncio.run(runner())
    except DocumentStoreError as e:
        logger.error("command_failed", error=e.message, error_type=type(e).__name__)
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1)
    except ValueError as e:
        logger.error("invalid_input", error=str(e))
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _emit(value: BaseModel | dict[str, Any]) -> None:
    if isinstance(value, BaseModel):
        typer.echo(value.model_dump_json(indent=2))
    else:
        typer.echo(json.dumps(value, indent=2))


def _read_content(content: Optional[str], file: Optional[str]) -> str:
    if file is not None:
        path = Path(file)
        if not path.exists():
            logger.error("content_file_not_found", file=str(path))
            raise typer.Exit(1)
        return path.read_text(encoding="utf-8")
    if content is None:
        typer.echo("Provide --content or --file.", err=True)
        raise typer.Exit(1)
    return content


@app.command("init-db")
def init_db() -> None:
    """Create the document tables if they don't exist."""

    async def operation(store: LifecycleStore) -> None:
        return None

    _run(operation)
    _emit({"initialized": True})


@app.command()
def create(
    title: str = typer.Argument(..., help="Document title"),
    workspace: str = typer.Option(..., "--workspace", "-w", help="Workspace id"),
    user: str = typer.Option(..., "--user", "-u", help="Creating user id"),
    content: Optional[str] = typer.Option(None, "--content", "-c", help="Document content"),
    file: Optional[str] = typer.Option(None, "--file", "-f", help="Read content from a file"),
    message_id: Optional[str] = typer.Option(None, "--message-id", help="Conversation turn that produced it"),
    chat_id: Optional[str] = typer.Option(None, "--chat-id", help="Conversation the turn belongs to"),
    document_type: Optional[str] = typer.Option(None, "--type", "-t", help="Document type"),
    kind: ContentKind = typer.Option(ContentKind.TEXT, "--kind", "-k", help="Content format"),
) -> None:
    """Create a document with its first draft."""
    body = _read_content(content, file)
    created = _run(
        lambda store: store.create_document(
            title=title,
            content=body,
            message_id=message_id,
            workspace_id=workspace,
            user_id=user,
            document_type=document_type,
            kind=kind,
            chat_id=chat_id,
        )
    )
    _emit(created)


@app.command("save-draft")
def save_draft(
    document_id: str = typer.Argument(..., help="Document id"),
    workspace: str = typer.Option(..., "--workspace", "-w", help="Workspace id"),
    user: str = typer.Option(..., "--user", "-u", help="Editing user id"),
    content: Optional[str] = typer.Option(None, "--content", "-c", help="Draft content"),
    file: Optional[str] = typer.Option(None, "--file", "-f", help="Read content from a file"),
    message_id: Optional[str] = typer.Option(None, "--message-id", help="Conversation turn making the edit"),
) -> None:
    """Save draft content, amending or branching the current draft."""
    body = _read_content(content, file)
    version = _run(
        lambda store: store.save_document_draft(
            envelope_id=document_id,
            content=body,
            message_id=message_id,
            workspace_id=workspace,
            user_id=user,
        )
    )
    _emit(version)


@app.command()
def publish(
    document_id: str = typer.Argument(..., help="Document id"),
    version_id: str = typer.Argument(..., help="Version to publish"),
    searchable: bool = typer.Option(False, "--searchable/--no-searchable", help="Add to the search index"),
) -> None:
    """Publish a version of a document."""

    async def operation(store: LifecycleStore) -> None:
        await store.publish_document(document_id, version_id, make_searchable=searchable)

    _run(operation)
    _emit({"document_id": document_id, "published_version_id": version_id, "searchable": searchable})


@app.command()
def unpublish(document_id: str = typer.Argument(..., help="Document id")) -> None:
    """Withdraw the published version of a document."""
    _run(lambda store: store.unpublish_document(document_id))
    _emit({"document_id": document_id, "published": False})


@app.command("toggle-searchable")
def toggle_searchable(document_id: str = typer.Argument(..., help="Document id")) -> None:
    """Flip whether the published version is searchable."""
    searchable = _run(lambda store: store.toggle_document_searchable(document_id))
    _emit({"document_id": document_id, "searchable": searchable})


@app.command()
def branch(
    document_id: str = typer.Argument(..., help="Document id"),
    user: str = typer.Option(..., "--user", "-u", help="Editing user id"),
) -> None:
    """Get or create a standalone draft branched from the published version."""
    version = _run(lambda store: store.get_or_create_standalone_draft(document_id, user))
    _emit(version)


@app.command()
def discard(document_id: str = typer.Argument(..., help="Document id")) -> None:
    """Discard the standalone draft of a document."""
    _run(lambda store: store.discard_standalone_draft(document_id))
    _emit({"document_id": document_id, "discarded": True})


@app.command()
def show(document_id: str = typer.Argument(..., help="Document id")) -> None:
    """Show a document with its full version history."""
    document = _run(lambda store: store.get_document_with_versions(document_id))
    if document is None:
        typer.echo("Error: document not found or already deleted", err=True)
        raise typer.Exit(1)
    _emit(document)


@app.command("list")
def list_documents(
    workspace: str = typer.Option(..., "--workspace", "-w", help="Workspace id"),
    page: int = typer.Option(1, "--page", "-p", min=1, help="Page number"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, max=100, help="Documents per page"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Filter by title"),
    document_type: Optional[str] = typer.Option(None, "--type", "-t", help="Filter by document type"),
    sort_by: SortField = typer.Option(SortField.UPDATED_AT, "--sort-by", help="Sort field"),
    sort_order: SortOrder = typer.Option(SortOrder.DESC, "--sort-order", help="Sort direction"),
) -> None:
    """List documents in a workspace."""
    result = _run(
        lambda store: store.get_workspace_documents_paginated(
            workspace_id=workspace,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
            search=search,
            document_type=document_type,
        )
    )
    _emit(result)


@app.command("clean-orphans")
def clean_orphans(workspace: str = typer.Option(..., "--workspace", "-w", help="Workspace id")) -> None:
    """Delete unpublished versions no longer tied to a conversation."""
    deleted = _run(lambda store: store.clean_orphaned_versions(workspace))
    _emit({"workspace_id": workspace, "deleted": deleted})


@app.command()
def version() -> None:
    """Show version information."""
    from doclifecycle import __version__

    typer.echo(f"doclifecycle {__version__}")
