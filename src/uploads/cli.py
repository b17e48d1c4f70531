#!/usr/bin/env python3
"""
Upload CLI — push files through the storage fallback chain.

Usage:
    python -m uploads.cli upload <file> [--type image/png]
    python -m uploads.cli upload <file> <file> ... --directory
    python -m uploads.cli status

Examples:
    # Upload a thumbnail
    python -m uploads.cli upload thumb.png

    # Upload an asset bundle as one directory CID
    python -m uploads.cli upload a.css b.js --directory

    # Show which providers are configured
    python -m uploads.cli --config config/storage.yaml status
"""

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .config import StorageConfig
from .errors import StorageError
from .resolver import StorageResolver, build_resolver


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(name)s] %(levelname)s: %(message)s' if verbose else '%(message)s'
    )
    # Quiet down noisy loggers
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def guess_content_type(path: Path, override: Optional[str] = None) -> str:
    if override:
        return override
    content_type, _ = mimetypes.guess_type(path.name)
    return content_type or "application/octet-stream"


async def run_upload(resolver: StorageResolver, paths: List[Path], directory: bool,
                     content_type: Optional[str] = None) -> int:
    """Upload files and print the result as JSON."""
    for path in paths:
        if not path.is_file():
            print(f"Error: file not found: {path}", file=sys.stderr)
            return 2

    async with resolver:
        try:
            if directory or len(paths) > 1:
                result = await resolver.resolve_upload_many(
                    [(p.read_bytes(), p.name, guess_content_type(p, content_type)) for p in paths]
                )
            else:
                path = paths[0]
                result = await resolver.resolve_upload(
                    path.read_bytes(), path.name, guess_content_type(path, content_type)
                )
        except (StorageError, ValidationError) as e:
            print(f"Upload failed: {e}", file=sys.stderr)
            return 1

    print(json.dumps(result.model_dump(mode="json"), indent=2))
    return 0


async def run_status(resolver: StorageResolver) -> int:
    """Warm up the primary provider and print the storage status."""
    async with resolver:
        print(json.dumps(resolver.status(), indent=2))
    return 0


def load_config(config_path: Optional[str]) -> StorageConfig:
    if config_path:
        return StorageConfig.from_yaml(config_path)
    return StorageConfig.from_env()


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Upload files to content-addressed storage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s upload thumb.png
  %(prog)s upload a.css b.js --directory
  %(prog)s status
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("-c", "--config", help="YAML config file (default: environment)")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # upload command
    upload_parser = subparsers.add_parser("upload", help="Upload one or more files")
    upload_parser.add_argument("files", nargs="+", type=Path, help="Files to upload")
    upload_parser.add_argument("--type", "-t", dest="content_type", help="MIME type override")
    upload_parser.add_argument("--directory", "-d", action="store_true",
                               help="Upload files as one directory")

    # status command
    subparsers.add_parser("status", help="Show storage provider status")

    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    if args.command == "upload":
        resolver = build_resolver(load_config(args.config))
        return asyncio.run(run_upload(resolver, args.files, args.directory, args.content_type))
    elif args.command == "status":
        resolver = build_resolver(load_config(args.config))
        return asyncio.run(run_status(resolver))
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
