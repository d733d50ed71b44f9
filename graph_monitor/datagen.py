"""Training/test set generation that keeps the training graph connected.

A split holds out a fraction of the links of a dataset as a test set. The
core loop is shared by every split policy: it asks the policy for the order in
which links are considered and whether the link may leave the training graph,
and stops once the requested number of links is held out. Policies are looked
up by name, so a new selection rule can be plugged in without touching the
loop.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import networkx as nx

from .graph import Edge, build_graph, is_single_component, remove_edge, restore_edge
from .link import Link

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Split:
    """Disjoint training and test links produced by :func:`split_links`."""

    train: Tuple[Link, ...]
    test: Tuple[Link, ...]


class SplitPolicy(ABC):
    """Decides which links are considered for the test set, and in what order."""

    @abstractmethod
    def candidate_order(self, links: Sequence[Link]) -> Iterable[int]:
        """Yield the indices of ``links`` in the order they should be visited."""

    @abstractmethod
    def accept(self, g: nx.MultiGraph, edge: Edge) -> bool:
        """Return True and leave ``edge`` removed from ``g`` to hold it out.

        Returning False must leave ``g`` exactly as it was.
        """


class ReverseChronologicalPolicy(SplitPolicy):
    """Hold out the most recent links whose removal keeps the graph connected.

    Links are visited from the last inserted to the first. A link is held out
    only if the graph is still a single connected component without it; cut
    edges are restored and stay in the training set.
    """

    def candidate_order(self, links: Sequence[Link]) -> Iterable[int]:
        return range(len(links) - 1, -1, -1)

    def accept(self, g: nx.MultiGraph, edge: Edge) -> bool:
        remove_edge(g, edge)
        if is_single_component(g):
            return True
        restore_edge(g, edge)
        return False


_POLICIES: Dict[str, Callable[[], SplitPolicy]] = {
    "prediction": ReverseChronologicalPolicy,
}


def register_policy(name: str, factory: Callable[[], SplitPolicy]) -> None:
    """Make a split policy available under ``name`` (case-insensitive)."""
    _POLICIES[name.lower()] = factory


def get_policy(name: str) -> SplitPolicy:
    """Instantiate the split policy registered under ``name``.

    Raises:
        ValueError: If no policy is registered under ``name``.
    """
    try:
        factory = _POLICIES[name.lower()]
    except KeyError:
        known = ", ".join(sorted(_POLICIES))
        raise ValueError(
            f"No split policy registered for '{name}'. Available: {known}"
        ) from None
    return factory()


def removal_target(ratio: float, total: int) -> int:
    """Number of links to hold out, rounding half up like ``Math.round``."""
    return int(math.floor(ratio * total + 0.5))


def split_links(
    links: Sequence[Link], ratio: float, policy: Optional[SplitPolicy] = None
) -> Split:
    """Split ``links`` into training and test sets.

    The test set receives at most ``round(ratio * len(links))`` links; fewer
    when the policy rejects too many candidates. If the dataset graph is a
    single connected component and the policy only accepts removals that keep
    it so (as the default policy does), the training graph is one too.

    Args:
        links: Dataset links in insertion order.
        ratio: Fraction of links to hold out, strictly between 0 and 1.
        policy: Selection rule; defaults to :class:`ReverseChronologicalPolicy`.

    Returns:
        A :class:`Split` with training links in dataset order and test links
        in the order they were held out.

    Raises:
        ValueError: If ``ratio`` is outside (0, 1).
    """
    if not 0.0 < ratio < 1.0:
        raise ValueError(f"Test ratio must be strictly between 0 and 1, got {ratio}")
    policy = policy or ReverseChronologicalPolicy()
    target = removal_target(ratio, len(links))

    g = build_graph(links)
    if not is_single_component(g):
        logger.warning("Dataset is not a single connected component")

    held_out: List[int] = []
    for index in policy.candidate_order(links):
        if len(held_out) >= target:
            break
        link = links[index]
        edge = Edge(link.src, link.dst, link.weight, index, link.kind)
        if policy.accept(g, edge):
            held_out.append(index)
            logger.debug("Removed link (%d/%d): %s", len(held_out), target, link)
        else:
            logger.debug("Skipping removal of link: %s", link)

    marked = set(held_out)
    train = tuple(link for i, link in enumerate(links) if i not in marked)
    test = tuple(links[i] for i in held_out)
    if len(test) < target:
        logger.info(
            "Held out %d of %d requested links: not enough non-cut edges", len(test), target
        )
    logger.info("Generated training set (%d links) and test set (%d links)", len(train), len(test))
    return Split(train=train, test=test)
