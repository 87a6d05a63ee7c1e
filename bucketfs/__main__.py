"""
Module implementing the command-line interface and invoking the main logic of bucketfs.

bucketfs mounts a bucket of an S3-compatible object store, like AWS S3 or Tencent COS,
as a read-only file system. Keys in the bucket are presented as paths, with directories
synthesized from the "/" separators in them. The mount stays in the foreground until it
is unmounted (fusermount -u) or interrupted, unless it is sent to the background.
"""

import logging
import os
import signal
import sys
from typing import List, NoReturn, Optional

from bucketfs.config import Config
import bucketfs.constants as constants
from bucketfs.logger import log
import bucketfs.mount as mount
from .args import Arguments


def main(arguments: Optional[List[str]] = None) -> NoReturn:
    """
    Mount a bucket with the given arguments and exit once it has been unmounted.

    Defaults to parsing command-line arguments from sys.argv if none are specified.
    """
    # Parse command-line arguments.
    args = Arguments.parse(arguments)

    # Configure debug logging.
    if args.debug:
        log.setLevel(logging.DEBUG)
    else:
        log.setLevel(logging.ERROR)

    # Load the config file and let command-line arguments take precedence.
    config = _load_config(args)

    try:
        mount.mount(
            config,
            args.mount_point,
            foreground=not args.background,
            threaded=args.threaded,
        )

        exit_code = 0
    except KeyboardInterrupt:
        exit_code = 128 + signal.SIGINT
    except Exception as e:
        log.error(f"failed to mount bucket: {e}")
        exit_code = constants.BUCKETFS_ERROR_CODE

    sys.exit(exit_code)


def _load_config(args: Arguments) -> Config:
    config = Config.load(os.path.expanduser(args.config))

    config.store.bucket = args.bucket

    if args.provider is not None:
        config.store.provider = args.provider

    if args.region is not None:
        config.store.region = args.region

    if args.endpoint is not None:
        config.store.endpoint = args.endpoint

    if args.anonymous:
        config.store.anonymous = True

    if args.timeout is not None:
        config.store.timeout = args.timeout

    if args.cache_dir is not None:
        config.cache.path = os.path.expanduser(args.cache_dir)

    return config


if __name__ == "__main__":
    main()
