"""Site index configuration file parsing.

The file lists the target index and the sitemaps to crawl::

    [index]
    docusaurus_ja

    [sitemap urls]
    https://example.org/sitemap.xml
    https://example.org/guide/sitemap.xml

Sections may appear in any order, blank lines are ignored and unknown
sections are skipped.
"""

import io
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, TextIO, Tuple, Union

logger = logging.getLogger(__name__)

DEFAULT_INDEX_NAME = "docusaurus_ja"

SECTION_INDEX = "index"
SECTION_SITEMAP_URLS = "sitemap urls"

_HEADER_RE = re.compile(r"^\[(?P<name>[^\]]*)\]$")


class ConfigError(Exception):
    """Raised when a site index configuration cannot be opened or read."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.message = message
        self.path = path
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.path:
            return f"Cannot read site config '{self.path}': {self.message}"
        return f"Cannot read site config: {self.message}"


@dataclass(frozen=True)
class SiteIndexConfig:
    """Target index name and ordered sitemap sources for one pipeline run."""

    index_name: str = DEFAULT_INDEX_NAME
    sitemap_urls: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "sitemap_urls", tuple(self.sitemap_urls))

    @classmethod
    def from_lines(
        cls, lines: Iterable[str], default_index_name: str = DEFAULT_INDEX_NAME
    ) -> "SiteIndexConfig":
        index_name: Optional[str] = None
        sitemap_urls: List[str] = []
        section: Optional[str] = None

        for raw_line in lines:
            line = raw_line.strip()
            if not line:
                continue

            header = _HEADER_RE.match(line)
            if header:
                name = header.group("name").strip().lower()
                if name in (SECTION_INDEX, SECTION_SITEMAP_URLS):
                    section = name
                else:
                    logger.debug(f"Ignoring unknown config section: {line}")
                    section = None
                continue

            if section == SECTION_INDEX:
                # Only the first value counts
                if index_name is None:
                    index_name = line
            elif section == SECTION_SITEMAP_URLS:
                sitemap_urls.append(line)

        return cls(index_name=index_name or default_index_name, sitemap_urls=tuple(sitemap_urls))

    @classmethod
    def from_text(cls, text: str, default_index_name: str = DEFAULT_INDEX_NAME) -> "SiteIndexConfig":
        """Parse configuration held in a string."""
        return cls.from_lines(io.StringIO(text), default_index_name)

    @classmethod
    def read(
        cls, path: Union[str, os.PathLike], default_index_name: str = DEFAULT_INDEX_NAME
    ) -> "SiteIndexConfig":
        """Read configuration from a UTF-8 file.

        Raises:
            ConfigError: If the file is missing or cannot be read.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                config = cls.from_lines(f, default_index_name)
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(str(e), path=str(path)) from e

        logger.info(
            f"Loaded site config {path}: index={config.index_name}, "
            f"{len(config.sitemap_urls)} sitemap(s)"
        )
        return config

    @classmethod
    def parse(
        cls,
        source: Union[str, os.PathLike, TextIO],
        default_index_name: str = DEFAULT_INDEX_NAME,
    ) -> "SiteIndexConfig":
        """Parse a config from a file path or an open text stream."""
        if isinstance(source, (str, Path, os.PathLike)):
            return cls.read(source, default_index_name)

        try:
            return cls.from_lines(source, default_index_name)
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(str(e)) from e
