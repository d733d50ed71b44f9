"""Reading and writing line-oriented link files.

Each line of a link file holds one record in the format understood by
:func:`graph_monitor.link.parse_link`. Reading is tolerant: a malformed line
is reported and skipped so that one bad record never fails a whole file.
"""

import logging
import os
from typing import Iterable, Iterator, List

from .link import Link, MalformedLink, format_link, parse_link

logger = logging.getLogger(__name__)


def iter_links(path: str) -> Iterator[Link]:
    """Yield the links stored in ``path``, skipping malformed lines.

    Args:
        path: Link file to read.

    Yields:
        Parsed links in file order.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
    """
    # Undecodable bytes become U+FFFD, which the grammar rejects line by line
    with open(path, "r", encoding="utf-8", errors="replace") as link_file:
        for lineno, line in enumerate(link_file, start=1):
            try:
                yield parse_link(line)
            except MalformedLink:
                logger.warning("Malformed link (line: %d): %s", lineno, line.rstrip("\n"))


def read_links(path: str) -> List[Link]:
    """Read every well-formed link from ``path`` into a list."""
    logger.debug("Reading links from %s", path)
    return list(iter_links(path))


def write_links(path: str, links: Iterable[Link]) -> int:
    """Write ``links`` to ``path``, one formatted record per line.

    Parent directories are created when missing and any existing file is
    overwritten.

    Returns:
        The number of links written.
    """
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
    written = 0
    with open(path, "w", encoding="utf-8") as link_file:
        for link in links:
            link_file.write(format_link(link) + "\n")
            written += 1
    logger.debug("Wrote %d links to %s", written, path)
    return written


def count_lines(path: str) -> int:
    """Count the lines of ``path``; used as the total for progress reports."""
    with open(path, "r", encoding="utf-8", errors="replace") as link_file:
        return sum(1 for _ in link_file)
