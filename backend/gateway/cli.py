#!/usr/bin/env python3
"""
Command-line entry point for the upload gateway.

Usage:
    gateway-server --token s3cret --drive-id 0AxyzDrive --parent-id 1AbcFolder

    # Or with environment variables / .env:
    UPLOAD_TOKEN=s3cret DRIVE_ID=0AxyzDrive PARENT_ID=1AbcFolder gateway-server

Flags override the environment. Configuration is resolved once here and
handed to the application; nothing re-reads it while serving.
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import uvicorn

from gateway.config import Settings
from gateway.main import create_app
from gateway.utils.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gateway-server",
        description="Receive multipart uploads and store them locally and on Google Drive.",
    )
    parser.add_argument("-t", "--token", help="Token to be used in authentication")
    parser.add_argument("-p", "--port", type=int, help="Local port to bind to")
    parser.add_argument("--host", help="Local address to bind to")
    parser.add_argument(
        "-d", "--data-folder", type=Path, help="Folder to save received files to"
    )
    parser.add_argument("-D", "--drive-id", help="ID of the shared drive to upload files to")
    parser.add_argument("-P", "--parent-id", help="ID of the folder to upload files to")
    parser.add_argument(
        "-i", "--identity-file", type=Path,
        help="Service-account credentials file for the Google Drive API",
    )
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    return parser


def resolve_settings(argv: Optional[List[str]] = None) -> Settings:
    """Merge command-line overrides on top of the environment settings."""
    args = build_parser().parse_args(argv)
    overrides = {
        "upload_token": args.token,
        "port": args.port,
        "host": args.host,
        "data_folder": args.data_folder,
        "drive_id": args.drive_id,
        "parent_id": args.parent_id,
        "identity_file": args.identity_file,
        "log_level": args.log_level,
    }
    return Settings(**{key: value for key, value in overrides.items() if value is not None})


def main(argv: Optional[List[str]] = None) -> int:
    settings = resolve_settings(argv)
    configure_logging('drive-gateway', settings.log_level)

    try:
        settings.require_remote_target()
    except ValueError as e:
        logger.error(str(e))
        return 1

    app = create_app(settings)
    logger.info(f"listening on {settings.host}:{settings.port}")

    # uvicorn handles SIGINT/SIGTERM and lets in-flight requests finish
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
