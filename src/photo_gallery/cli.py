"""CLI interface for photo-gallery."""

import json
import logging
import sys
from pathlib import Path
from typing import Dict, Optional, Tuple

import click

from . import __version__
from .errors import GalleryError
from .processing.adjustments import AdjustmentPipeline
from .processing.auth import Principal
from .processing.classifier import classify, raw_format
from .processing.config import PRESETS, RAW_DERIVATIVES, STANDARD_DERIVATIVES, FormatFamily, get_preset
from .processing.derivatives import DerivativeGenerator
from .processing.factory import create_image_source
from .processing.ingest import IngestionOrchestrator, UploadedFile
from .processing.metadata import MetadataExtractor
from .processing.models import ProcessingSettings
from .processing.record_store import GalleryStore
from .processing.storage_layout import StorageLayout
from .web.config import GalleryConfig

logger = logging.getLogger(__name__)


def _config(ctx: click.Context) -> GalleryConfig:
    return GalleryConfig(db_path=ctx.obj.get("db_path"), upload_dir=ctx.obj.get("upload_dir"))


def _parse_assignments(assignments: Tuple[str, ...]) -> Dict[str, float]:
    values = {}
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        if not sep:
            raise click.BadParameter(f"expected key=value, got {assignment!r}", param_hint="--set")
        try:
            values[key.strip()] = float(value)
        except ValueError:
            raise click.BadParameter(f"{key} must be a number", param_hint="--set") from None
    return values


@click.group()
@click.version_option(version=__version__, prog_name="photo-gallery")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--debug", is_flag=True, help="Enable debug mode.")
@click.option("--db-path", default=None, help="Database file path")
@click.option("--upload-dir", default=None, help="Root directory for stored photos")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool, db_path: Optional[str], upload_dir: Optional[str]) -> None:
    """photo-gallery - photo ingestion, derivatives and RAW adjustments."""
    # Ensure ctx.obj exists
    if ctx.obj is None:
        ctx.obj = {}

    # Configure logging
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["db_path"] = db_path
    ctx.obj["upload_dir"] = upload_dir

    if debug:
        logger.debug("Debug mode enabled")


@cli.command("classify")
@click.argument("files", nargs=-1, required=True)
def classify_files(files):
    """Classify files as standard, raw or unsupported by extension."""
    for name in files:
        family = classify(name)
        suffix = f" ({raw_format(name)})" if family is FormatFamily.RAW else ""
        click.echo(f"{name}: {family.value}{suffix}")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print metadata as JSON")
def metadata(file, as_json):
    """Show capture metadata of an image."""
    family = classify(file)
    if family is FormatFamily.UNSUPPORTED:
        click.echo(f"Error: unsupported file type: {file}", err=True)
        sys.exit(1)

    result = MetadataExtractor().extract(file, family is FormatFamily.RAW)
    data = result.to_dict()
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
        return
    for key, value in data.items():
        click.echo(f"  {key}: {value}")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--out-dir", required=True, type=click.Path(file_okay=False), help="Directory for the renditions")
@click.pass_context
def derive(ctx, file, out_dir):
    """Render the thumbnail, web and high-res/preview derivatives of FILE."""
    family = classify(file)
    if family is FormatFamily.UNSUPPORTED:
        click.echo(f"Error: unsupported file type: {file}", err=True)
        sys.exit(1)

    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    kinds = RAW_DERIVATIVES if family is FormatFamily.RAW else STANDARD_DERIVATIVES
    generator = DerivativeGenerator(create_image_source(family))
    for kind, result in generator.generate_all(file, kinds).items():
        target = out / f"{kind.value}_{Path(file).stem}.jpg"
        target.write_bytes(result.value)
        status = "ok" if result.is_ok else f"fallback ({result.reason})"
        click.echo(f"  {kind.value}: {target} [{status}]")


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--out-dir", required=True, type=click.Path(file_okay=False), help="Directory for processed images")
@click.option("--preset", type=click.Choice(sorted(PRESETS)), help="Start from a named preset")
@click.option("--set", "assignments", multiple=True, metavar="KEY=VALUE", help="Override one parameter")
@click.pass_context
def adjust(ctx, files, out_dir, preset, assignments):
    """Apply adjustments to RAW files, writing {stem}_processed.jpg."""
    values = get_preset(preset) if preset else {}
    values.update(_parse_assignments(assignments))
    try:
        settings = ProcessingSettings.from_dict(values)
    except GalleryError as e:
        click.echo(f"Error: {e.message}", err=True)
        for violation in e.details or []:
            click.echo(f"  {violation}", err=True)
        sys.exit(1)

    pipeline = AdjustmentPipeline(create_image_source(FormatFamily.RAW))
    results = pipeline.process_batch(files, out_dir, settings)
    for result in results:
        status = "ok" if result.is_ok else f"fallback ({result.error})"
        click.echo(f"  {result.value} [{status}]")
    click.echo(f"Processed {len(results)}/{len(files)} files")


@cli.command()
def presets():
    """List the named adjustment presets."""
    for name in sorted(PRESETS):
        values = ", ".join(f"{key}={value:g}" for key, value in PRESETS[name].items())
        click.echo(f"{name}: {values}")


@cli.group()
def collection():
    """Manage collections."""
    pass


@collection.command("create")
@click.option("--owner", required=True, help="Owner user id")
@click.option("--title", required=True, help="Collection title")
@click.pass_context
def create_collection(ctx, owner, title):
    """Create a collection and print its id."""
    store = GalleryStore(_config(ctx).db_path)
    created = store.create_collection(owner, title)
    click.echo(created.id)
    if ctx.obj.get("verbose"):
        click.echo(json.dumps(created.to_dict(), indent=2))


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--collection", "collection_id", required=True, help="Target collection id")
@click.option("--owner", required=True, help="User id performing the upload")
@click.pass_context
def ingest(ctx, file, collection_id, owner):
    """Ingest FILE into a collection as OWNER."""
    config = _config(ctx)
    orchestrator = IngestionOrchestrator(
        GalleryStore(config.db_path),
        StorageLayout(config.upload_dir, config.url_prefix),
        max_upload_bytes=config.max_upload_bytes,
        raw_full_decode=config.raw_full_decode,
    )
    path = Path(file)
    upload = UploadedFile(filename=path.name, content=path.read_bytes())
    try:
        photo = orchestrator.ingest(Principal(owner), collection_id, upload)
    except GalleryError as e:
        click.echo(f"Error [{e.code}]: {e.message}", err=True)
        sys.exit(1)

    click.echo(json.dumps(photo.to_dict(), indent=2, default=str))


@cli.command()
@click.pass_context
def stats(ctx):
    """Show gallery database statistics."""
    config = _config(ctx)
    store = GalleryStore(config.db_path)
    stats = store.get_stats()

    click.echo("Gallery Statistics:")
    click.echo(f"  Database file: {config.db_path}")
    click.echo(f"  Collections: {stats.get('total_collections', 0)}")
    click.echo(f"  Photos: {stats.get('total_photos', 0)}")
    click.echo(f"  RAW photos: {stats.get('raw_photos', 0)}")

    if ctx.obj.get("verbose"):
        for status, count in sorted(stats.get("by_status", {}).items()):
            click.echo(f"    {status}: {count}")


@cli.command()
@click.option("--host", default="0.0.0.0", help="Interface to bind")
@click.option("--port", default=8000, type=int, help="Port to listen on")
@click.pass_context
def serve(ctx, host, port):
    """Run the HTTP API server."""
    import uvicorn
    from .web.api import create_app

    config = _config(ctx)
    click.echo(f"Serving photo-gallery on http://{host}:{port} (database: {config.db_path})")
    uvicorn.run(create_app(config), host=host, port=port, log_level="info")


def main() -> None:
    """Entry point for the CLI."""
    try:
        cli(obj={})
    except Exception as e:
        click.echo(f"Fatal error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
