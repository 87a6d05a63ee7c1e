"""Module for configuration variables with defaults that are overridable by a file."""

from __future__ import annotations

from configparser import ConfigParser, SectionProxy
from dataclasses import dataclass, field
import os
from typing import Optional

from bucketfs.logger import log


@dataclass
class StoreConfig:
    """Configuration variables related to the remote object store."""

    bucket: str = ""

    # "s3" uses the regular AWS endpoints, "cos" derives a Tencent COS endpoint from
    # the region. An explicit endpoint always wins.
    provider: str = "s3"
    region: Optional[str] = None
    endpoint: Optional[str] = None

    anonymous: bool = False

    timeout: int = 5000  # milliseconds
    retries: int = 3

    @staticmethod
    def load(section: SectionProxy) -> StoreConfig:
        """Load overridden variables from a section within a config file."""
        config = StoreConfig()

        config.bucket = section.get("bucket", fallback=config.bucket)

        config.provider = section.get("provider", fallback=config.provider)
        config.region = section.get("region", fallback=config.region) or None
        config.endpoint = section.get("endpoint", fallback=config.endpoint) or None

        config.anonymous = section.getboolean("anonymous", fallback=config.anonymous)

        config.timeout = section.getint("timeout", fallback=config.timeout)
        config.retries = section.getint("retries", fallback=config.retries)

        return config


@dataclass
class CacheConfig:
    """Configuration variables related to metadata and contents caching."""

    path: str = os.path.expanduser("~/.bucketfs/cache")

    max_entries: int = 1024
    max_size: int = 20 * 1024 * 1024 * 1024  # 20 GB, 0 means unbounded

    @staticmethod
    def load(section: SectionProxy) -> CacheConfig:
        """Load overridden variables from a section within a config file."""
        config = CacheConfig()

        config.path = os.path.expanduser(section.get("path", fallback=config.path))

        config.max_entries = section.getint("max_entries", fallback=config.max_entries)
        config.max_size = section.getint("max_size", fallback=config.max_size)

        return config


@dataclass
class Config:
    """Configuration variables."""

    store: StoreConfig = field(default_factory=StoreConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)

    @staticmethod
    def load(filename: str) -> Config:
        """Load overridden configuration variables from a config file."""
        parser = ConfigParser()

        config = Config()

        try:
            with open(filename, "r") as f:
                parser.read_string(f.read(), filename)

            if "store" in parser:
                config.store = StoreConfig.load(parser["store"])

            if "cache" in parser:
                config.cache = CacheConfig.load(parser["cache"])
        except FileNotFoundError:
            log.info(f"no config file at {filename}")
        except Exception as e:
            # An unreadable config file is not considered a fatal error since we can
            # fall back to defaults.
            log.error(f"failed to read config file {filename}: {e}")
        else:
            log.info(f"loaded config: {config}")

        return config
