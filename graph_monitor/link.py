"""Weighted link records and the identifiers of the algorithms that score them.

A link is one observation of an interaction between two nodes. Real
interactions come from the dataset; mined links carry the name of the
algorithm that produced their weight. Links are written one per line as
``(src,dst,weight)`` or ``(src,dst,weight,KIND)``.
"""

import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import List

import numpy as np

logger = logging.getLogger(__name__)


class LinkKind(str, Enum):
    """Kind of a link: a real interaction or the output of a scoring algorithm."""

    REAL = "REAL"
    NRA = "NRA"
    TA = "TA"
    NTA = "NTA"
    CN = "CN"
    JACCARD = "JACCARD"
    SALTON = "SALTON"
    SORENSEN = "SORENSEN"
    HPI = "HPI"
    HDI = "HDI"
    LHN1 = "LHN1"
    PA = "PA"
    AA = "AA"
    RA = "RA"


class _MetricName(str):
    @property
    def kind(self) -> LinkKind:
        """The link kind under which this metric's scores are stored."""
        return LinkKind(self)


# Every non-REAL link kind is a metric
Metric = Enum(  # type: ignore
    "Metric",
    [(kind.name, kind.value) for kind in LinkKind if kind is not LinkKind.REAL],
    type=_MetricName,
    module=__name__,
)
Metric.__doc__ = "Scoring algorithms whose predicted weights can be evaluated."


class MalformedLink(ValueError):
    """Raised when a line does not follow the link grammar."""


_LINK_PATTERN = re.compile(
    r"^\((\d+),(\d+),(\d+(?:\.\d+)?)(?:,(%s))?\)$"
    % "|".join(kind.value for kind in LinkKind)
)


@dataclass(frozen=True)
class Link:
    """A single weighted, undirected interaction between ``src`` and ``dst``."""

    src: int
    dst: int
    weight: float
    kind: LinkKind = LinkKind.REAL

    def __post_init__(self) -> None:
        if self.src < 0 or self.dst < 0:
            raise ValueError(f"Node ids must be non-negative: ({self.src},{self.dst})")
        if not math.isfinite(self.weight) or self.weight < 0:
            raise ValueError(f"Weight must be a finite non-negative number: {self.weight}")

    def __str__(self) -> str:
        return format_link(self)


def parse_link(line: str) -> Link:
    """Parse a link from its textual form.

    Args:
        line: Text such as ``(1,2,0.5)`` or ``(1,2,0.5,CN)``; surrounding
            whitespace and the trailing newline are ignored.

    Returns:
        The parsed :class:`Link`; the kind defaults to ``REAL``.

    Raises:
        MalformedLink: If ``line`` is empty, does not match the grammar or
            holds a weight that overflows to infinity.
    """
    if line is None or not line.strip():
        raise MalformedLink("Empty link")
    match = _LINK_PATTERN.match(line.strip())
    if match is None:
        raise MalformedLink(line.strip())
    src, dst, weight, kind = match.groups()
    try:
        return Link(
            int(src),
            int(dst),
            float(weight),
            LinkKind(kind) if kind is not None else LinkKind.REAL,
        )
    except ValueError as exc:
        # Digit runs too long for a finite weight
        raise MalformedLink(line.strip()) from exc


def format_weight(weight: float) -> str:
    """Print a weight in positional notation with the shortest exact digits."""
    # Positional notation keeps the grammar exponent-free; trim="0" keeps "1.0"
    return np.format_float_positional(float(weight), unique=True, trim="0")


def format_link(link: Link) -> str:
    """Format ``link`` so that ``parse_link(format_link(link)) == link``."""
    weight = format_weight(link.weight)
    if link.kind is LinkKind.REAL:
        return f"({link.src},{link.dst},{weight})"
    return f"({link.src},{link.dst},{weight},{link.kind.value})"


def parse_metric(name: str) -> Metric:
    """Return the metric named ``name`` (case-insensitive).

    Raises:
        ValueError: If ``name`` is not a known metric.
    """
    try:
        return Metric(name.strip().upper())
    except ValueError:
        known = ", ".join(m.value for m in Metric)
        raise ValueError(f"Unknown metric '{name}'. Known metrics: {known}") from None


def parse_metric_list(text: str) -> List[Metric]:
    """Parse a comma-separated list of metrics, or ``ALL`` for every metric.

    Unknown names are skipped with a warning so one typo does not discard the
    rest of the list.
    """
    if text.strip().upper() == "ALL":
        return list(Metric)
    metrics: List[Metric] = []
    for name in text.split(","):
        if not name.strip():
            continue
        try:
            metric = parse_metric(name)
        except ValueError:
            logger.warning("Ignoring unknown metric: %s", name.strip())
            continue
        if metric not in metrics:
            metrics.append(metric)
    return metrics
