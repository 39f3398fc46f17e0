#!/usr/bin/env python3
"""
chipps-data - Entry Point

Upload local files to a Salesforce org as ContentVersion records.

Usage:
    chipps-data file upload --file-path ./contract.pdf --title "Contract" --target-org my-org
    chipps-data files upload --file-path ./files.csv --max-parallel-jobs 4 --target-org my-org
    python -m chipps_data files upload --file-path ./files.csv
"""

import sys
import json
import logging
import argparse
from typing import List, Optional
from rich.console import Console
import structlog

from .api.client import SalesforceAPIError
from .auth.oauth import ConnectionUnavailableError
from .commands import ContentVersionUploader, UploadFailure, connect, upload_files, upload_single_file
from .config import AppConfig, ConfigError, create_app_config, load_config
from .manifest import ManifestError

logger = structlog.get_logger()


def configure_logging(level: str = "WARNING") -> None:
    """Structured logs on stderr; stdout is left to command output"""
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(message)s",
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config", "-c",
        help="Path to configuration file (default: ~/.chipps/config.yaml if present)"
    )
    common.add_argument(
        "--target-org", "-o",
        help="Username or alias of the target org (sf CLI login)"
    )
    common.add_argument(
        "--api-version",
        help="Override the API version used for API requests (e.g. 59.0)"
    )
    common.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for stderr output"
    )
    common.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Shortcut for --log-level INFO"
    )

    parser = argparse.ArgumentParser(
        prog="chipps-data",
        description="Upload files to a Salesforce org as ContentVersion records"
    )
    topics = parser.add_subparsers(dest="topic", metavar="{file,files}")
    topics.required = True

    # chipps-data file upload
    file_topic = topics.add_parser("file", help="Work with a single file")
    file_commands = file_topic.add_subparsers(dest="command")
    file_commands.required = True
    file_upload = file_commands.add_parser(
        "upload", parents=[common],
        help="Upload a single file",
        description="Upload a local file to the org as a new ContentVersion."
    )
    file_upload.add_argument(
        "--file-path", "-f",
        required=True,
        help="Path of the file to upload"
    )
    file_upload.add_argument(
        "--title", "-t",
        help="Title of the file (defaults to the file name)"
    )
    file_upload.add_argument(
        "--first-publish-location-id", "-i",
        help="Id of the record or library the file is first published to"
    )
    file_upload.add_argument(
        "--json",
        action="store_true",
        help="Print the created ContentVersion as JSON"
    )
    file_upload.set_defaults(handler=run_file_upload)

    # chipps-data files upload
    files_topic = topics.add_parser("files", help="Work with many files")
    files_commands = files_topic.add_subparsers(dest="command")
    files_commands.required = True
    files_upload = files_commands.add_parser(
        "upload", parents=[common],
        help="Upload the files listed in a CSV manifest",
        description=(
            "Upload every file listed in a CSV manifest (columns PathOnClient, "
            "Title, FirstPublishLocationId). Results are written to success.csv "
            "and error.csv."
        )
    )
    files_upload.add_argument(
        "--file-path", "-f",
        required=True,
        help="Path of the CSV manifest"
    )
    files_upload.add_argument(
        "--max-parallel-jobs", "-p",
        type=positive_int,
        help="Maximum number of uploads running at once (default: 1)"
    )
    files_upload.add_argument(
        "--max-pending",
        type=positive_int,
        help="Stop reading the manifest while this many uploads are waiting to start"
    )
    files_upload.add_argument(
        "--output-dir",
        help="Directory for success.csv and error.csv (default: working directory)"
    )
    files_upload.add_argument(
        "--json",
        action="store_true",
        help="Print the run summary as JSON"
    )
    files_upload.set_defaults(handler=run_files_upload)

    return parser


def build_app_config(args: argparse.Namespace) -> AppConfig:
    """Config file, then environment, then flags"""
    config = load_config(args.config)
    return create_app_config(config, {
        "target_org": args.target_org,
        "api_version": args.api_version,
        "max_parallel_jobs": getattr(args, "max_parallel_jobs", None),
        "max_pending": getattr(args, "max_pending", None),
        "output_dir": getattr(args, "output_dir", None),
    })


def run_file_upload(args: argparse.Namespace, app_config: AppConfig, console: Console) -> None:
    client = connect(app_config.auth, app_config.api_version)

    try:
        with console.status("Uploading file"):
            version = upload_single_file(
                client,
                args.file_path,
                title=args.title,
                first_publish_location_id=args.first_publish_location_id,
            )
    finally:
        client.close()

    if args.json:
        print(json.dumps({"status": 0, "result": version.to_dict()}, indent=2))
        return

    console.print(f"[green]Uploaded[/green] {args.file_path}")
    console.print(f"  ContentVersion Id:  {version.id}")
    console.print(f"  ContentDocumentId:  {version.content_document_id}")


def run_files_upload(args: argparse.Namespace, app_config: AppConfig, console: Console) -> None:
    client = connect(app_config.auth, app_config.api_version)

    try:
        result = upload_files(
            args.file_path,
            ContentVersionUploader(client),
            max_parallel_jobs=app_config.upload.max_parallel_jobs,
            max_pending=app_config.upload.max_pending,
            output_dir=app_config.upload.output_dir,
            console=console,
        )
    finally:
        client.close()

    if args.json:
        print(json.dumps({"status": 0, "result": result.to_dict()}, indent=2))
        return

    colour = "red" if result.all_failed else ("yellow" if result.failed else "green")
    console.print(f"[{colour}]Upload complete[/{colour}] in {result.elapsed_seconds:.1f}s")
    console.print(f"  Succeeded: {result.succeeded}  -> {result.success_path}")
    console.print(f"  Failed:    {result.failed}  -> {result.error_path}")


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging("INFO" if args.verbose and args.log_level == "WARNING" else args.log_level)
    console = Console()
    err_console = Console(stderr=True)

    try:
        app_config = build_app_config(args)
        logger.info("command_starting", topic=args.topic, command=args.command,
                    target_org=app_config.auth.target_org, api_version=app_config.api_version)

        args.handler(args, app_config, console)

    except ConfigError as e:
        logger.error("config_invalid", error=str(e))
        err_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except ConnectionUnavailableError as e:
        logger.error("target_org_connection_failed", error=str(e))
        err_console.print(f"[red]Error:[/red] Unable to get a connection to the target org. {e}")
        sys.exit(1)
    except ManifestError as e:
        logger.error("manifest_invalid", error=str(e))
        err_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except (UploadFailure, SalesforceAPIError) as e:
        logger.error("upload_failed", error=str(e))
        err_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
