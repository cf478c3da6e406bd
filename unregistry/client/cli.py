#!/usr/bin/env python3
"""
Command line client for Unregistry.

Usage:
    unrg config set-token <token>
    unrg config set-url <url>
    unrg file push <path>
    unrg file pull <filename> [dest]
    unrg file list
    unrg file delete <filename>
    unrg img push <docker_image>
    unrg img pull <docker_image>
    unrg img list
    unrg img delete <name>
"""

import argparse
import logging
import sys
import tempfile
from pathlib import Path
from typing import Optional

from .api import ClientError, UnregistryClient
from .config import ConfigError, load_config, save_config
from .docker import DockerError, archive_filename, image_object_name, load_image, save_image
from .transfer import TransferError

logger = logging.getLogger(__name__)

# Everything a command can fail with that should end as a one-line error
CommandError = (ClientError, ConfigError, DockerError, TransferError)


def get_client() -> UnregistryClient:
    config = load_config()
    return UnregistryClient(config.base_url, config.require_token())


# ---------------------------------------------------------------------------
# Config commands
# ---------------------------------------------------------------------------

def cmd_set_token(args: argparse.Namespace) -> None:
    config = load_config()
    config.token = args.token
    save_config(config)
    print("Token saved successfully")


def cmd_set_url(args: argparse.Namespace) -> None:
    config = load_config()
    config.base_url = args.url
    save_config(config)
    print(f"Base URL set to: {args.url}")


# ---------------------------------------------------------------------------
# File commands
# ---------------------------------------------------------------------------

def cmd_file_push(args: argparse.Namespace) -> None:
    path = Path(args.path)
    with get_client() as client:
        client.upload_file(path, show_progress=True)
    print(f"File {path.name} uploaded successfully")


def cmd_file_pull(args: argparse.Namespace) -> None:
    with get_client() as client:
        dest = client.download_file(args.filename, args.dest, show_progress=True)
    print(f"File downloaded to: {dest}")


def cmd_file_list(args: argparse.Namespace) -> None:
    with get_client() as client:
        files = client.list_files()

    if not files:
        print("No files found")
        return

    print("Files:")
    for name in files:
        print(f"  {name}")


def cmd_file_delete(args: argparse.Namespace) -> None:
    with get_client() as client:
        client.delete_file(args.filename)
    print(f"File {args.filename} deleted successfully")


# ---------------------------------------------------------------------------
# Image commands
# ---------------------------------------------------------------------------

def cmd_img_push(args: argparse.Namespace) -> None:
    client = get_client()

    with client, tempfile.TemporaryDirectory(prefix="unrg-") as tmp_dir:
        archive = Path(tmp_dir) / archive_filename(args.docker_image)

        print("Preparing Docker image...")
        save_image(args.docker_image, archive)

        client.upload_image(archive, show_progress=True)

    print(f"Image {args.docker_image} pushed successfully")


def cmd_img_pull(args: argparse.Namespace) -> None:
    client = get_client()

    with client, tempfile.TemporaryDirectory(prefix="unrg-") as tmp_dir:
        archive = Path(tmp_dir) / archive_filename(args.docker_image)
        client.download_image(image_object_name(args.docker_image), archive, show_progress=True)

        print("Loading Docker image...")
        load_image(archive)

    print(f"Image {args.docker_image} pulled successfully")


def cmd_img_list(args: argparse.Namespace) -> None:
    with get_client() as client:
        images = client.list_images()

    if not images:
        print("No images found")
        return

    print("Images:")
    for name in images:
        print(f"  {name}")


def cmd_img_delete(args: argparse.Namespace) -> None:
    with get_client() as client:
        client.delete_image(args.name)
    print(f"Image {args.name} deleted successfully")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="unrg",
        description="Unregistry client - a private file/image storage system",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    groups = parser.add_subparsers(dest="group", required=True)

    config = groups.add_parser("config", help="Manage configuration")
    config_cmds = config.add_subparsers(dest="command", required=True)
    p = config_cmds.add_parser("set-token", help="Set authentication token")
    p.add_argument("token")
    p.set_defaults(func=cmd_set_token)
    p = config_cmds.add_parser("set-url", help="Set server base URL")
    p.add_argument("url")
    p.set_defaults(func=cmd_set_url)

    files = groups.add_parser("file", help="File operations")
    file_cmds = files.add_subparsers(dest="command", required=True)
    p = file_cmds.add_parser("push", help="Upload a file")
    p.add_argument("path")
    p.set_defaults(func=cmd_file_push)
    p = file_cmds.add_parser("pull", help="Download a file")
    p.add_argument("filename")
    p.add_argument("dest", nargs="?", default=None)
    p.set_defaults(func=cmd_file_pull)
    p = file_cmds.add_parser("list", help="List all files")
    p.set_defaults(func=cmd_file_list)
    p = file_cmds.add_parser("delete", help="Delete a file")
    p.add_argument("filename")
    p.set_defaults(func=cmd_file_delete)

    images = groups.add_parser("img", help="Docker image operations")
    img_cmds = images.add_subparsers(dest="command", required=True)
    p = img_cmds.add_parser("push", help="Push a Docker image")
    p.add_argument("docker_image")
    p.set_defaults(func=cmd_img_push)
    p = img_cmds.add_parser("pull", help="Pull a Docker image")
    p.add_argument("docker_image")
    p.set_defaults(func=cmd_img_pull)
    p = img_cmds.add_parser("list", help="List all images")
    p.set_defaults(func=cmd_img_list)
    p = img_cmds.add_parser("delete", help="Delete an image")
    p.add_argument("name")
    p.set_defaults(func=cmd_img_delete)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.DEBUG if args.verbose else logging.WARNING,
    )

    try:
        args.func(args)
    except CommandError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
