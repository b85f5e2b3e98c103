# main.py
import asyncio
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Optional

from .config import Settings, get_settings
from .exceptions import AuthError, GatewayError
from .gateway import DriveGateway
from .storage.dto import DEFAULT_CONTENT_TYPE


def setup_logging():
    """Configures logging to file and console explicitly."""
    settings = get_settings()

    # Get the root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.LOG_LEVEL)

    # Clear any existing handlers to prevent duplicate logs on re-runs or implicit configs
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    try:
        file_handler = logging.FileHandler(settings.LOG_FILE)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    except OSError as e:
        # Log to console if file logging fails (e.g., permissions)
        root_logger.error(f"Failed to set up file logging to {settings.LOG_FILE}: {e}")

    # Reducing "noise" from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)


def initialize_gateway(settings: Settings) -> Optional[DriveGateway]:
    """Builds the gateway from settings, or returns None if no credential is configured."""
    try:
        return DriveGateway.from_settings(settings)
    except AuthError as e:
        logging.critical(f"Cannot create the storage gateway: {e}")
        return None


def _write_or_print(content: bytes, output: Optional[str]):
    if output:
        Path(output).write_bytes(content)
        print(f"Wrote {len(content)} bytes to {output}")
    else:
        sys.stdout.buffer.write(content)


async def run_command(gateway: DriveGateway, args) -> int:
    if args.command == "list":
        for record in await gateway.list_files(args.folder):
            print(
                f"{record.id}\t{record.name}\t{record.content_type}\t"
                f"{record.display_size}\t{record.modified_at.isoformat()}"
            )

    elif args.command == "upload":
        path = Path(args.path)
        content_type = args.type or mimetypes.guess_type(path.name)[0] or DEFAULT_CONTENT_TYPE
        record = await gateway.upload(
            path.read_bytes(), content_type, args.name or path.name, args.folder
        )
        print(f"Uploaded {record.name} as {record.id}")

    elif args.command == "rename":
        record = await gateway.rename(args.file_id, args.name)
        print(f"Renamed {record.id} to {record.name}")

    elif args.command == "delete":
        await gateway.delete(args.file_id)
        print(f"Deleted {args.file_id}")

    elif args.command == "download":
        stream = await gateway.download(args.file_id)
        async with stream:
            if args.output:
                written = 0
                with open(args.output, "wb") as f:
                    async for chunk in stream:
                        f.write(chunk)
                        written += len(chunk)
                print(f"Wrote {written} bytes to {args.output}")
            else:
                async for chunk in stream:
                    sys.stdout.buffer.write(chunk)

    elif args.command == "thumbnail":
        thumbnail = await gateway.resolve_thumbnail(args.file_id)
        logging.info(f"Thumbnail from {thumbnail.source} ({thumbnail.content_type}).")
        _write_or_print(thumbnail.content, args.output)

    return 0


async def _run(settings: Settings, args) -> int:
    gateway = initialize_gateway(settings)
    if gateway is None:
        return 2
    async with gateway:
        try:
            return await run_command(gateway, args)
        except AuthError as e:
            logging.error(f"Authentication failed. Please sign in again. Error: {e}")
            return 2
        except GatewayError as e:
            hint = "Try again later." if e.retryable else "This will not resolve by retrying."
            logging.error(f"{e} {hint}")
            return 1


def build_parser():
    import argparse

    parser = argparse.ArgumentParser(description="Manage files in a Google Drive folder.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List files, newest first.")
    list_parser.add_argument("--folder", help="Folder ID to list (defaults to DRIVE_FOLDER_ID).")

    upload_parser = subparsers.add_parser("upload", help="Upload a local file.")
    upload_parser.add_argument("path")
    upload_parser.add_argument("--name", help="Remote name (defaults to the local file name).")
    upload_parser.add_argument("--type", help="MIME type (guessed from the name if omitted).")
    upload_parser.add_argument("--folder", help="Destination folder ID.")

    rename_parser = subparsers.add_parser("rename", help="Rename a file.")
    rename_parser.add_argument("file_id")
    rename_parser.add_argument("name")

    delete_parser = subparsers.add_parser("delete", help="Delete a file.")
    delete_parser.add_argument("file_id")

    download_parser = subparsers.add_parser("download", help="Download a file.")
    download_parser.add_argument("file_id")
    download_parser.add_argument("-o", "--output", help="Write to this path instead of stdout.")

    thumbnail_parser = subparsers.add_parser("thumbnail", help="Fetch a file's thumbnail.")
    thumbnail_parser.add_argument("file_id")
    thumbnail_parser.add_argument("-o", "--output", help="Write to this path instead of stdout.")

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    return asyncio.run(_run(get_settings(), args))


if __name__ == "__main__":
    sys.exit(main())
