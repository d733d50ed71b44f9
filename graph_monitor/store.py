"""Score store contract and an in-memory implementation.

The score store holds the real links of a dataset together with the weights
that each scoring algorithm assigned to node pairs. The evaluation engine only
reads from it; the ``save`` command writes real and mined links into it.

Access always goes through a session obtained from
:meth:`ScoreStore.session`, a context manager that releases the underlying
connection on every exit path.
"""

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import ContextManager, Dict, Iterator, List, Optional, Tuple

from .graph import canonical_pair
from .link import Link, LinkKind, Metric


class StoreUnavailable(RuntimeError):
    """Raised when the score store cannot be reached or used."""


class AggregationMode(str, Enum):
    """How a new weight for an already stored real link is combined with the old one."""

    OVERWRITE = "OVERWRITE"
    RUNNING_AVERAGE = "RUNNING_AVERAGE"
    EWMA = "EWMA"


@dataclass(frozen=True)
class AggregationPolicy:
    """Aggregation mode plus the EWMA factor used for recent observations."""

    mode: AggregationMode = AggregationMode.RUNNING_AVERAGE
    factor: float = 0.5

    def __post_init__(self) -> None:
        if not 0.0 <= self.factor <= 1.0:
            raise ValueError(f"EWMA factor must lie in [0, 1], got {self.factor}")

    def apply(self, old: float, count: int, incoming: float) -> float:
        """Combine the stored weight ``old`` (seen ``count`` times) with ``incoming``."""
        if self.mode is AggregationMode.RUNNING_AVERAGE:
            return (old * count + incoming) / (count + 1)
        if self.mode is AggregationMode.EWMA:
            return incoming * self.factor + old * (1.0 - self.factor)
        return incoming


OVERWRITE = AggregationPolicy(AggregationMode.OVERWRITE)


@dataclass(frozen=True)
class ScoredPair:
    """A canonical node pair with the score a metric assigned to it."""

    src: int
    dst: int
    score: float

    @property
    def pair(self) -> Tuple[int, int]:
        return (self.src, self.dst)


class ScoreSession(ABC):
    """Operations available on an open connection to a score store."""

    @abstractmethod
    def score(self, metric: Metric, u: int, v: int) -> Optional[float]:
        """Return the weight ``metric`` assigned to the pair, or None if absent."""

    @abstractmethod
    def top_k(self, metric: Metric, k: int) -> List[ScoredPair]:
        """Return at most ``k`` pairs scored by ``metric``, highest score first."""

    @abstractmethod
    def exists(self, kind: LinkKind, u: int, v: int, weight: float) -> bool:
        """Return True if a link of ``kind`` with exactly ``weight`` is stored."""

    @abstractmethod
    def count_links(self) -> int:
        """Return the number of stored links of every kind."""

    @abstractmethod
    def put(self, link: Link, policy: Optional[AggregationPolicy] = None) -> None:
        """Store ``link``.

        Mined links always overwrite. Real links are combined with any stored
        weight according to ``policy`` and replace the mined links of the pair.
        """

    @abstractmethod
    def remove(self, u: int, v: int, kind: LinkKind) -> None:
        """Delete the link of ``kind`` between ``u`` and ``v`` if present."""

    @abstractmethod
    def clear(self) -> None:
        """Delete every stored link."""

    def link_exists(self, link: Link) -> bool:
        return self.exists(link.kind, link.src, link.dst, link.weight)


class ScoreStore(ABC):
    """A score store from which scoped sessions can be opened."""

    @abstractmethod
    def session(self) -> ContextManager[ScoreSession]:
        """Open a session; it is closed when the ``with`` block exits."""


class _InMemorySession(ScoreSession):
    def __init__(self, store: "InMemoryScoreStore") -> None:
        self._store = store
        self.closed = False

    def _check_open(self) -> None:
        if self.closed:
            raise StoreUnavailable("Session is closed")

    def score(self, metric: Metric, u: int, v: int) -> Optional[float]:
        self._check_open()
        with self._store._lock:
            entry = self._store._links.get((metric.kind, canonical_pair(u, v)))
        return entry[0] if entry is not None else None

    def top_k(self, metric: Metric, k: int) -> List[ScoredPair]:
        self._check_open()
        with self._store._lock:
            scored = [
                ScoredPair(pair[0], pair[1], weight)
                for (kind, pair), (weight, _) in self._store._links.items()
                if kind is metric.kind
            ]
        # Ties are broken by canonical pair so repeated queries agree
        scored.sort(key=lambda s: (-s.score, s.src, s.dst))
        return scored[: max(k, 0)]

    def exists(self, kind: LinkKind, u: int, v: int, weight: float) -> bool:
        self._check_open()
        with self._store._lock:
            entry = self._store._links.get((kind, canonical_pair(u, v)))
        return entry is not None and entry[0] == weight

    def count_links(self) -> int:
        self._check_open()
        with self._store._lock:
            return len(self._store._links)

    def put(self, link: Link, policy: Optional[AggregationPolicy] = None) -> None:
        self._check_open()
        pair = canonical_pair(link.src, link.dst)
        links = self._store._links
        with self._store._lock:
            if link.kind is not LinkKind.REAL:
                links[(link.kind, pair)] = (link.weight, 1)
                return
            policy = policy or self._store.policy
            previous = links.get((LinkKind.REAL, pair))
            if previous is None:
                links[(LinkKind.REAL, pair)] = (link.weight, 1)
            else:
                old, count = previous
                links[(LinkKind.REAL, pair)] = (
                    policy.apply(old, count, link.weight),
                    count + 1,
                )
            for kind in LinkKind:
                if kind is not LinkKind.REAL:
                    links.pop((kind, pair), None)

    def remove(self, u: int, v: int, kind: LinkKind) -> None:
        self._check_open()
        with self._store._lock:
            self._store._links.pop((kind, canonical_pair(u, v)), None)

    def clear(self) -> None:
        self._check_open()
        with self._store._lock:
            self._store._links.clear()


class InMemoryScoreStore(ScoreStore):
    """Thread-safe score store kept in process memory.

    Pairs are stored canonically, so lookups ignore orientation. Useful for
    tests and for evaluating score files without a database.
    """

    def __init__(self, policy: Optional[AggregationPolicy] = None) -> None:
        self.policy = policy or AggregationPolicy()
        self._links: Dict[Tuple[LinkKind, Tuple[int, int]], Tuple[float, int]] = {}
        self._lock = threading.Lock()
        self.sessions_opened = 0
        self.sessions_closed = 0

    @contextmanager
    def session(self) -> Iterator[ScoreSession]:
        session = _InMemorySession(self)
        with self._lock:
            self.sessions_opened += 1
        try:
            yield session
        finally:
            session.closed = True
            with self._lock:
                self.sessions_closed += 1
