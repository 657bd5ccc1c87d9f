"""CLI interface for pydelivery."""

import asyncio
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import click

from .cli_progress import TransferProgressDisplay
from .exceptions import DeliveryAPIError, DeliveryError
from .output import OutputFormatter
from .sync import DOWNLOAD, UPLOAD, Delivery, DirectoryScanner
from .sync.models import DownloadOutcome, UploadOutcome
from .utils import format_size

logger = logging.getLogger(__name__)

Outcome = Union[UploadOutcome, DownloadOutcome]


@click.group()
@click.option(
    "--bucket", "-b", envvar="DELIVERY_BUCKET", help="Bucket to push to / pull from"
)
@click.option(
    "--base-path",
    envvar="DELIVERY_BASE_PATH",
    default="",
    help="Key prefix applied to every transfer (e.g. the project slug)",
)
@click.option("--region", envvar="DELIVERY_REGION", help="Bucket region")
@click.option(
    "--endpoint-url",
    envvar="DELIVERY_ENDPOINT_URL",
    help="Endpoint of an S3-compatible store (MinIO, R2, ...)",
)
@click.option(
    "--accelerate",
    is_flag=True,
    envvar="DELIVERY_ACCELERATE",
    help="Use the S3 Transfer Acceleration endpoint",
)
@click.option(
    "--max-connections",
    type=click.IntRange(min=1),
    envvar="DELIVERY_MAX_CONNECTIONS",
    help="Maximum concurrent connections to the store (default: 50)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="pydelivery")
@click.pass_context
def main(
    ctx: Any,
    bucket: Optional[str],
    base_path: str,
    region: Optional[str],
    endpoint_url: Optional[str],
    accelerate: bool,
    max_connections: Optional[int],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """pydelivery - Push and pull static assets to and from S3."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["delivery_options"] = {
        "bucket": bucket,
        "base_path": base_path,
        "region": region,
        "endpoint_url": endpoint_url,
        "use_accelerate_endpoint": accelerate,
        "max_connections": max_connections,
    }

    # Configure logging based on verbose flag
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pydelivery").setLevel(logging.DEBUG)
        # botocore dumps signed requests and wire data at DEBUG
        logging.getLogger("botocore").setLevel(logging.INFO)
    else:
        logging.basicConfig(level=logging.WARNING)


def _create_delivery(ctx: Any, scanner: Optional[DirectoryScanner] = None) -> Delivery:
    """Build a Delivery from the group options, exiting on bad configuration."""
    out: OutputFormatter = ctx.obj["out"]
    options = dict(ctx.obj["delivery_options"])

    if not options["bucket"]:
        out.error("No bucket given. Use --bucket or set DELIVERY_BUCKET.")
        ctx.exit(1)

    try:
        return Delivery(scanner=scanner, **options)
    except DeliveryError as e:
        out.error(f"Configuration error: {e}")
        ctx.exit(1)


def _run(ctx: Any, coro: Any) -> Any:
    """Run a coroutine, turning transfer failures into CLI errors."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        out.warning("\nTransfer cancelled by user")
        ctx.exit(130)  # Standard exit code for SIGINT
    except DeliveryAPIError as e:
        out.error(f"Store error: {e}")
        ctx.exit(1)
    except DeliveryError as e:
        out.error(str(e))
        ctx.exit(1)
    except OSError as e:
        out.error(f"File error: {e}")
        ctx.exit(1)


def _report(
    out: OutputFormatter, title: str, outcomes: Sequence[Outcome], verb: str
) -> None:
    """Print per-run results as JSON or as a summary table."""
    if out.json_output:
        out.output_json([asdict(o) for o in outcomes])
        return

    transferred = [o for o in outcomes if not o.is_identical]
    unchanged = len(outcomes) - len(transferred)
    total_bytes = sum(o.size for o in transferred)

    for outcome in transferred:
        out.progress_message(f"{verb} {outcome.key}")

    out.print_summary(
        title,
        [
            (verb, f"{len(transferred)} file(s)"),
            ("Unchanged", f"{unchanged} file(s)"),
            ("Transferred", format_size(total_bytes)),
        ],
    )


@main.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--key",
    "-k",
    help="Key for a single file, relative to the base path (default: file name)",
)
@click.option("--prefix", "-p", default="", help="Key prefix for directory uploads")
@click.option("--public", is_flag=True, help="Make uploaded objects public")
@click.option("--cache", is_flag=True, help="Attach Cache-Control headers")
@click.option(
    "--cache-control",
    help="Literal Cache-Control value to use instead of the built-in rules "
    "(requires --cache)",
)
@click.option(
    "--ignore",
    "-i",
    multiple=True,
    help="Glob pattern of files to skip (repeatable)",
)
@click.option(
    "--include-dot-files",
    is_flag=True,
    help="Also upload files and folders starting with . (skipped by default)",
)
@click.option("--no-progress", is_flag=True, help="Disable progress display")
@click.pass_context
def upload(
    ctx: Any,
    path: Path,
    key: Optional[str],
    prefix: str,
    public: bool,
    cache: bool,
    cache_control: Optional[str],
    ignore: tuple[str, ...],
    include_dot_files: bool,
    no_progress: bool,
) -> None:
    """Upload a file or directory.

    PATH: Local file or directory to upload
    """
    out: OutputFormatter = ctx.obj["out"]

    if cache_control and not cache:
        out.warning("--cache-control has no effect without --cache")

    scanner = DirectoryScanner(
        ignore_patterns=list(ignore), exclude_dot_files=not include_dot_files
    )
    delivery = _create_delivery(ctx, scanner)

    async def _upload() -> list[UploadOutcome]:
        async with delivery:
            if path.is_file():
                outcome = await delivery.upload_file(
                    path,
                    key or path.name,
                    is_public=public,
                    should_cache=cache,
                    cache_control_override=cache_control,
                )
                return [outcome]

            if no_progress or out.quiet or out.json_output:
                return await delivery.upload_files(
                    path,
                    prefix=prefix,
                    is_public=public,
                    should_cache=cache,
                    cache_control_override=cache_control,
                )

            files = await asyncio.to_thread(scanner.scan_local, path.resolve())
            total = len(files)
            with TransferProgressDisplay(delivery, UPLOAD, total=total):
                return await delivery.upload_files(
                    path,
                    prefix=prefix,
                    is_public=public,
                    should_cache=cache,
                    cache_control_override=cache_control,
                )

    if not out.quiet and not out.json_output:
        target = f"s3://{delivery.bucket}/{delivery.base_path}".rstrip("/")
        out.info(f"Uploading {path} to {target}")

    outcomes = _run(ctx, _upload())
    _report(out, "Upload Complete", outcomes, "Uploaded")


@main.command()
@click.argument("source")
@click.argument("dest", type=click.Path(path_type=Path))
@click.option(
    "--file",
    "single_file",
    is_flag=True,
    help="Treat SOURCE as a single object key instead of a prefix",
)
@click.option("--no-progress", is_flag=True, help="Disable progress display")
@click.pass_context
def download(
    ctx: Any,
    source: str,
    dest: Path,
    single_file: bool,
    no_progress: bool,
) -> None:
    """Download a prefix (or a single object) to the local disk.

    SOURCE: Key prefix (or object key with --file), relative to the base path

    DEST: Local directory (or file path with --file)
    """
    out: OutputFormatter = ctx.obj["out"]
    delivery = _create_delivery(ctx)

    async def _download() -> list[DownloadOutcome]:
        async with delivery:
            if single_file:
                return [await delivery.download_file(source, dest)]

            if no_progress or out.quiet or out.json_output:
                return await delivery.download_files(source, dest)

            with TransferProgressDisplay(delivery, DOWNLOAD):
                return await delivery.download_files(source, dest)

    outcomes = _run(ctx, _download())
    _report(out, "Download Complete", outcomes, "Downloaded")


if __name__ == "__main__":
    main()
