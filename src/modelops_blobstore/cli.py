"""CLI for modelops-blobstore."""

import logging
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler

from .blob import LocalBlob, reader_to_blob
from .blob_service import BlobService
from .config import StoreConfig, load_store_config
from .errors import BlobStoreError, ConfigError, NotFoundError, PackagingError, UploadError
from .packing import pack_directory
from .progress_display import RichUploadProgress
from .service_types import UploadResult
from .storage_models import object_key
from .utils import humanize_size


app = typer.Typer(help="""\
Content-addressed blob uploads. Files and directories are compressed,
hashed and stored under blob/<sha256>.gz; content already in the store
is never uploaded twice.""")

console = Console()
err_console = Console(stderr=True)

T = TypeVar("T")


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to store config YAML"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Global options."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    ctx.obj = {"config": config}


def _load_config(ctx: typer.Context) -> StoreConfig:
    """Load store configuration or exit with a readable message."""
    try:
        return load_store_config((ctx.obj or {}).get("config"))
    except ConfigError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)


def _get_service(ctx: typer.Context) -> BlobService:
    config = _load_config(ctx)
    try:
        return BlobService.from_config(config)
    except ConfigError as e:
        console.print(f"[red]✗[/red] {e}")
        console.print("[dim]Hint: check provider, bucket and credentials in your config[/dim]")
        raise typer.Exit(1)


def _run(action: str, fn: Callable[[], T]) -> T:
    """Run an operation, mapping blobstore errors to exit code 1."""
    try:
        return fn()
    except UploadError as e:
        console.print(f"[red]✗[/red] {action} failed: {e}")
        console.print(f"[dim]Digest: {e.digest}[/dim]")
        raise typer.Exit(1)
    except NotFoundError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)
    except BlobStoreError as e:
        console.print(f"[red]✗[/red] {action} failed: {e}")
        raise typer.Exit(1)


def _print_upload_result(result: UploadResult) -> None:
    sizes = f"{humanize_size(result.size)} compressed, {humanize_size(result.uncompressed_size)} raw"
    if result.uploaded:
        console.print(f"[green]✓[/green] Uploaded {result.reference} ({sizes})")
    else:
        console.print(f"[green]✓[/green] Already in store: {result.reference} ({sizes})")
    console.print(f"[dim]Key: {result.key}[/dim]")
    console.print(f"Digest: {result.digest}")


@app.command("upload-dir")
def upload_dir(
    ctx: typer.Context,
    src: Path = typer.Argument(..., help="Directory to upload"),
    reference: Optional[str] = typer.Option(None, "--reference", "-r", help="Human readable name (default: directory name)"),
    exclude: List[str] = typer.Option([], "--exclude", "-x", help="Gitignore-style pattern to leave out (repeatable)"),
):
    """Upload a directory as one tar blob.

    Examples:
        mops-blob upload-dir ./model
        mops-blob upload-dir ./model -x "*.pyc" -x "__pycache__/"
    """
    service = _get_service(ctx)
    with RichUploadProgress(console) as progress:
        result = _run("Upload", lambda: service.upload_directory(
            src, reference=reference, progress=progress, exclude=exclude,
        ))
    _print_upload_result(result)


@app.command("upload-file")
def upload_file(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="File to upload"),
    reference: Optional[str] = typer.Option(None, "--reference", "-r", help="Human readable name (default: file name)"),
):
    """Upload a single file as a blob."""
    service = _get_service(ctx)
    with RichUploadProgress(console) as progress:
        result = _run("Upload", lambda: service.upload_file(path, reference=reference, progress=progress))
    _print_upload_result(result)


@app.command("upload-zip")
def upload_zip(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Zip archive to upload"),
    reference: Optional[str] = typer.Option(None, "--reference", "-r", help="Human readable name (default: archive name)"),
):
    """Upload a zip archive as a directory blob (stored as tar)."""
    service = _get_service(ctx)
    with RichUploadProgress(console) as progress:
        result = _run("Upload", lambda: service.upload_zip(path, reference=reference, progress=progress))
    _print_upload_result(result)


@app.command("hash")
def hash_cmd(
    ctx: typer.Context,
    src: Path = typer.Argument(..., help="File or directory"),
    exclude: List[str] = typer.Option([], "--exclude", "-x", help="Gitignore-style pattern to leave out (repeatable)"),
):
    """Show the digest and key a file or directory would be stored under.

    Runs the full encode pipeline locally; nothing is sent to the store.
    """
    config = _load_config(ctx)

    def _encode() -> LocalBlob:
        # Size and digest outlive the spool file, which is removed here
        if src.is_dir():
            with LocalBlob.create(
                reference=src.name,
                is_dir=True,
                compress_level=config.compress_level,
                spool_dir=config.spool_dir,
            ) as blob:
                pack_directory(src, blob, exclude=exclude)
                blob.close()
            return blob

        try:
            f = src.open("rb")
        except OSError as e:
            raise PackagingError(f"Failed to open {src}: {e}") from e
        with f:
            blob = reader_to_blob(
                f,
                reference=src.name,
                compress_level=config.compress_level,
                spool_dir=config.spool_dir,
            )
        blob.remove()
        return blob

    blob = _run("Hash", _encode)

    kind = "directory" if blob.is_dir else "file"
    console.print(f"Digest: {blob.hexdigest()}")
    console.print(f"Key: {object_key(blob.digest())}")
    console.print(f"Kind: {kind}")
    console.print(f"Size: {blob.size()} bytes compressed, {blob.uncompressed_size()} bytes raw")


@app.command()
def fetch(
    ctx: typer.Context,
    digest: str = typer.Argument(..., help="sha256 hex digest of the blob"),
    dest: Path = typer.Argument(..., help="Destination directory (dir blobs) or file"),
):
    """Download a blob and restore it, verifying its digest."""
    service = _get_service(ctx)
    try:
        result = _run("Fetch", lambda: service.fetch(digest, dest))
    except ValueError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)
    kind = "directory" if result.is_dir else "file"
    console.print(f"[green]✓[/green] Restored {kind} to {result.dest} ({humanize_size(result.uncompressed_size)})")
