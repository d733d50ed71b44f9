"""Rank-based evaluation of a scoring algorithm against held-out links.

Given the full dataset, the training links and the held-out test links, this
module derives the sets of node pairs to compare and computes:

- AUC: the probability that a held-out (missing) link scores higher than a
  pair that was never linked in the dataset, ties counting one half
- Precision@k: the share of detectable held-out links found among the ``k``
  highest-scored pairs

Scores are read from a :class:`~graph_monitor.store.ScoreStore`. Every lookup
is an independent read, so lookups may run on a bounded pool of workers, each
with its own store session. Results always carry the counts they were
computed from, and an undefined ratio is reported as NaN.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .graph import canonical_pair
from .link import Link, Metric
from .store import ScoreStore
from .utils import log_progress

logger = logging.getLogger(__name__)

Pair = Tuple[int, int]


class EvaluationType(str, Enum):
    """Available evaluations."""

    AUC = "AUC"
    PRECISION = "PRECISION"


def parse_evaluation_list(text: str) -> List[EvaluationType]:
    """Parse ``AUC``, ``PRECISION``, a comma-separated list of both, or ``ALL``."""
    if text.strip().upper() == "ALL":
        return list(EvaluationType)
    evaluations: List[EvaluationType] = []
    for name in text.split(","):
        if not name.strip():
            continue
        try:
            evaluation = EvaluationType(name.strip().upper())
        except ValueError:
            logger.warning("Ignoring unknown evaluation: %s", name.strip())
            continue
        if evaluation not in evaluations:
            evaluations.append(evaluation)
    return evaluations


def _canonical_links(links: Iterable[Link]) -> FrozenSet[Pair]:
    return frozenset(
        canonical_pair(link.src, link.dst) for link in links if link.src != link.dst
    )


@dataclass(frozen=True)
class EvaluationSets:
    """Node pairs derived once from the dataset, training and test links.

    Attributes:
        train_nodes: Nodes appearing in the training links.
        dataset_links: Canonical pairs linked anywhere in the dataset.
        missing_links: Held-out pairs whose endpoints are both training nodes;
            these are also the links that Precision@k can detect.
        nonexistent_links: Pairs of training nodes never linked in the dataset.
    """

    train_nodes: FrozenSet[int]
    dataset_links: FrozenSet[Pair]
    missing_links: Tuple[Pair, ...]
    nonexistent_links: Tuple[Pair, ...]

    @classmethod
    def from_links(
        cls, dataset: Iterable[Link], trainset: Iterable[Link], testset: Iterable[Link]
    ) -> "EvaluationSets":
        dataset_links = _canonical_links(dataset)
        train_nodes = frozenset(n for link in trainset for n in (link.src, link.dst))
        missing = sorted(
            p
            for p in _canonical_links(testset)
            if p[0] in train_nodes and p[1] in train_nodes
        )
        logger.info("Generated missing links (links: %d)", len(missing))

        # Enumerating every pair of training nodes is quadratic in their number
        nodes = sorted(train_nodes)
        nonexistent = [
            (src, dst)
            for i, src in enumerate(nodes)
            for dst in nodes[i + 1 :]
            if (src, dst) not in dataset_links
        ]
        logger.info("Generated not existing links (links: %d)", len(nonexistent))
        return cls(
            train_nodes=train_nodes,
            dataset_links=dataset_links,
            missing_links=tuple(missing),
            nonexistent_links=tuple(nonexistent),
        )

    @property
    def detectable_links(self) -> Tuple[Pair, ...]:
        return self.missing_links


@dataclass(frozen=True)
class AucResult:
    """AUC value with the comparison counts behind it."""

    metric: Metric
    missing_links: int
    nonexistent_links: int
    n1: int
    n2: int
    n: int
    value: float

    @property
    def ignored(self) -> int:
        """Comparisons skipped because a score was missing on either side."""
        return self.missing_links * self.nonexistent_links - self.n

    def as_dict(self) -> Dict[str, Union[str, int, float]]:
        return {
            "evaluation": EvaluationType.AUC.value,
            "metric": self.metric.value,
            "missing_links": self.missing_links,
            "notexistent_links": self.nonexistent_links,
            "n1": self.n1,
            "n2": self.n2,
            "n": self.n,
            "ignored": self.ignored,
            "result": self.value,
        }


@dataclass(frozen=True)
class PrecisionResult:
    """Precision@k value with the hit counts behind it."""

    metric: Metric
    rank: int
    hits: int
    detectable: int
    value: float

    def as_dict(self) -> Dict[str, Union[str, int, float]]:
        return {
            "evaluation": EvaluationType.PRECISION.value,
            "metric": self.metric.value,
            "rank": self.rank,
            "hits": self.hits,
            "links_test": self.detectable,
            "result": self.value,
        }


EvaluationResult = Union[AucResult, PrecisionResult]


def summary_line(result: EvaluationResult) -> str:
    """Format a result as ``AUC(CN) (key:value | ...) : value``."""
    values = result.as_dict()
    details = " | ".join(
        f"{key}:{values[key]}"
        for key in sorted(values)
        if key not in ("evaluation", "metric", "result")
    )
    return f"{values['evaluation']}({values['metric']}) ({details}) : {values['result']}"


def _fetch_chunk(
    store: ScoreStore, metric: Metric, pairs: Sequence[Pair]
) -> Dict[Pair, Optional[float]]:
    scores: Dict[Pair, Optional[float]] = {}
    with store.session() as session:
        for u, v in pairs:
            scores[(u, v)] = session.score(metric, u, v)
    return scores


def fetch_scores(
    store: ScoreStore, metric: Metric, pairs: Sequence[Pair], workers: int = 1
) -> Dict[Pair, Optional[float]]:
    """Look up the score of every pair, spreading the reads over ``workers``.

    Each worker opens its own session; the partial results are merged once
    all workers are done.
    """
    if workers <= 1 or len(pairs) <= 1:
        return _fetch_chunk(store, metric, pairs)
    chunks = [pairs[i::workers] for i in range(workers) if pairs[i::workers]]
    scores: Dict[Pair, Optional[float]] = {}
    with ThreadPoolExecutor(max_workers=workers) as pool:
        for partial in pool.map(lambda chunk: _fetch_chunk(store, metric, chunk), chunks):
            scores.update(partial)
    return scores


def _available(scores: Dict[Pair, Optional[float]], pairs: Sequence[Pair]) -> np.ndarray:
    values = [scores.get(p) for p in pairs]
    return np.array(
        [v for v in values if v is not None and not math.isnan(v)], dtype=float
    )


def compute_auc(
    store: ScoreStore, metric: Metric, sets: EvaluationSets, workers: int = 1
) -> AucResult:
    """Compute the pairwise AUC of ``metric`` on the missing links.

    Every (missing, nonexistent) pair with a score on both sides is one
    comparison: ``n1`` counts those where the missing link scores higher,
    ``n2`` the ties, and ``AUC = (n1 + 0.5 * n2) / n``. Comparisons with a
    missing score are left out of ``n`` rather than counted as ties.

    Args:
        store: Score store holding the metric's predicted weights.
        metric: Scoring algorithm to evaluate.
        sets: Pairs derived by :meth:`EvaluationSets.from_links`.
        workers: Number of concurrent readers.

    Returns:
        An :class:`AucResult`; ``value`` is NaN when no comparison was possible.
    """
    logger.info("Evaluating AUC for %s", metric.value)
    missing, nonexistent = sets.missing_links, sets.nonexistent_links
    total = len(missing) * len(nonexistent)
    logger.info("Evaluation started: %d comparisons", total)

    pairs = list(missing) + list(nonexistent)
    scores = fetch_scores(store, metric, pairs, workers=workers)

    missing_scores = _available(scores, missing)
    nonexistent_scores = np.sort(_available(scores, nonexistent))

    n1 = 0
    n2 = 0
    # Each missing score is compared with every nonexistent score at once
    for examined, w1 in enumerate(missing_scores, start=1):
        lower = int(np.searchsorted(nonexistent_scores, w1, side="left"))
        upper = int(np.searchsorted(nonexistent_scores, w1, side="right"))
        n1 += lower
        n2 += upper - lower
        log_progress(logger, "evaluation", examined, len(missing_scores))
    n = len(missing_scores) * len(nonexistent_scores)

    if n < total:
        logger.warning("Ignored %d comparisons without a score on both sides", total - n)
    value = (n1 + 0.5 * n2) / n if n else float("nan")
    logger.info("Evaluation completed")
    return AucResult(
        metric=metric,
        missing_links=len(missing),
        nonexistent_links=len(nonexistent),
        n1=n1,
        n2=n2,
        n=n,
        value=value,
    )


def compute_precision(
    store: ScoreStore, metric: Metric, k: int, sets: EvaluationSets
) -> PrecisionResult:
    """Compute Precision@k of ``metric`` against the detectable held-out links.

    Returns:
        A :class:`PrecisionResult`; ``value`` is NaN when no held-out link is
        detectable.
    """
    logger.info("Evaluating PRECISION for %s with rank %d", metric.value, k)
    with store.session() as session:
        top = session.top_k(metric, k)
    top_pairs = {canonical_pair(s.src, s.dst) for s in top if s.src != s.dst}
    detectable = set(sets.detectable_links)
    hits = len(top_pairs & detectable)
    value = hits / len(detectable) if detectable else float("nan")
    return PrecisionResult(
        metric=metric, rank=k, hits=hits, detectable=len(detectable), value=value
    )


def evaluate(
    store: ScoreStore,
    evaluation: EvaluationType,
    metric: Metric,
    sets: EvaluationSets,
    rank: int = 3,
    workers: int = 1,
) -> EvaluationResult:
    """Run one evaluation of ``metric``."""
    if evaluation is EvaluationType.AUC:
        return compute_auc(store, metric, sets, workers=workers)
    return compute_precision(store, metric, rank, sets)
