"""Module defining the command-line arguments and providing a parser for them."""

from __future__ import annotations

import argparse
from typing import List, Optional

from bucketfs.constants import CACHE_FORMAT_VERSION, VERSION


class Arguments(argparse.Namespace):
    """Parsed command-line arguments."""

    bucket: str
    mount_point: str

    config: str

    provider: Optional[str]
    region: Optional[str]
    endpoint: Optional[str]
    anonymous: bool
    timeout: Optional[int]

    cache_dir: Optional[str]

    background: bool
    threaded: bool
    debug: bool

    @classmethod
    def parse(cls, args: Optional[List[str]] = None) -> Arguments:
        """
        Parse command-line arguments from the given list of strings.

        Defaults to sys.argv if none are specified.
        """
        return cls._get_parser().parse_args(args, namespace=cls())

    @classmethod
    def _get_parser(cls) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="Mount an object storage bucket as a read-only file system.",
            usage="bucketfs [option...] bucket mount_point",
        )

        parser.add_argument(
            "--version",
            action="version",
            version=f"%(prog)s {VERSION} (cache format {CACHE_FORMAT_VERSION})",
            help="show the program version and cache format version",
        )

        # Primary arguments
        parser.add_argument("bucket", type=str, help="name of the bucket to mount")
        parser.add_argument(
            "mount_point", type=str, help="empty directory to mount the bucket at"
        )

        # Path to (optional) config file
        parser.add_argument(
            "--config",
            type=str,
            help="path to config file (default is ~/.bucketfs/config)",
            default="~/.bucketfs/config",
        )

        # Store options, these override the config file
        parser.add_argument(
            "--provider",
            choices=["s3", "cos"],
            help="object storage provider (default is s3)",
        )
        parser.add_argument("--region", type=str, help="region of the bucket")
        parser.add_argument(
            "--endpoint", type=str, help="endpoint URL of the object storage service"
        )
        parser.add_argument(
            "--anonymous",
            action="store_true",
            help="access the bucket without credentials",
        )

        # Configure network timeout
        parser.add_argument(
            "--timeout",
            type=cls._parse_timeout,
            help="timeout for remote calls in milliseconds",
        )

        # Cache location
        parser.add_argument(
            "--cache-dir",
            type=str,
            help="directory to cache contents in (default is ~/.bucketfs/cache)",
        )

        # FUSE behavior
        parser.add_argument(
            "--background",
            action="store_true",
            help="detach from the terminal after mounting",
        )
        parser.add_argument(
            "--single-threaded",
            action="store_false",
            help="handle file system calls one at a time",
            dest="threaded",
        )

        # Enable debug output for development
        parser.add_argument(
            "--debug", action="store_true", help="enable debug information"
        )

        return parser

    @staticmethod
    def _parse_timeout(arg: str) -> int:
        try:
            val = int(arg)
        except ValueError:
            raise argparse.ArgumentTypeError("expected number > 0") from None

        if val <= 0:
            raise argparse.ArgumentTypeError("expected number > 0")

        return val
