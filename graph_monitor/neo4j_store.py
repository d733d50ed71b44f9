"""Score store backed by a Neo4j database.

Nodes are stored as ``Person`` vertices; every link is a relationship whose
type is the link kind. Relationship types cannot be passed as Cypher
parameters, so they are only ever taken from the :class:`LinkKind` whitelist;
every other value travels as a query parameter.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from neo4j import GraphDatabase
from neo4j.exceptions import DriverError, Neo4jError

from .config import StoreConfig
from .graph import canonical_pair
from .link import Link, LinkKind, Metric
from .store import (
    AggregationMode,
    AggregationPolicy,
    ScoredPair,
    ScoreSession,
    ScoreStore,
    StoreUnavailable,
)

logger = logging.getLogger(__name__)

_SAVE_MINED = (
    "MERGE (u1:Person {id:$src}) "
    "MERGE (u2:Person {id:$dst}) "
    "MERGE (u1)-[r:`%s`]-(u2) "
    "ON CREATE SET r.weight=$weight,r.created=timestamp(),r.updated=r.created "
    "ON MATCH SET r.weight=$weight,r.updated=timestamp()"
)

_SAVE_REAL = (
    "MERGE (u1:Person {id:$src}) "
    "MERGE (u2:Person {id:$dst}) "
    "MERGE (u1)-[r:REAL]-(u2) "
    "ON CREATE SET r.weight=$weight,r.num=1,r.created=timestamp(),r.updated=r.created "
    "ON MATCH SET r.weight=%s,r.num=r.num+1,r.updated=timestamp() "
    "WITH u1,u2 "
    "MATCH (u1)-[r2]-(u2) "
    "WHERE NOT type(r2) = 'REAL' "
    "DELETE r2"
)

_REAL_UPDATES = {
    AggregationMode.OVERWRITE: "$weight",
    AggregationMode.RUNNING_AVERAGE: "(r.weight*r.num+$weight)/(r.num+1)",
    AggregationMode.EWMA: "($weight*$ewma+r.weight*(1-$ewma))",
}

_SCORE = (
    "MATCH (:Person {id:$src})-[r:`%s`]-(:Person {id:$dst}) "
    "RETURN r.weight AS weight LIMIT 1"
)

_TOP = (
    "MATCH (x:Person)-[r:`%s`]->(y:Person) "
    "RETURN x.id AS src, y.id AS dst, r.weight AS weight "
    "ORDER BY weight DESC, src, dst "
    "LIMIT $rank"
)

_EXISTS = (
    "MATCH (:Person {id:$src})-[r:`%s` {weight:$weight}]-(:Person {id:$dst}) "
    "RETURN count(r) > 0 AS exists"
)

_COUNT_LINKS = "MATCH ()-[r]->() RETURN count(r) AS numlinks"

_REMOVE = "MATCH (:Person {id:$src})-[r:`%s`]-(:Person {id:$dst}) DELETE r"

_CLEAR = "MATCH (n:Person) DETACH DELETE n"


def _relationship_type(kind: LinkKind) -> str:
    # Validated against the enum so that no free text reaches the query
    return LinkKind(kind).value


class Neo4jSession(ScoreSession):
    """Score session running parameterised Cypher on an open Neo4j session."""

    def __init__(self, session, default_policy: AggregationPolicy) -> None:
        self._session = session
        self._policy = default_policy

    def score(self, metric: Metric, u: int, v: int) -> Optional[float]:
        query = _SCORE % _relationship_type(metric.kind)
        record = self._session.run(query, src=u, dst=v).single()
        if record is None or record["weight"] is None:
            return None
        return float(record["weight"])

    def top_k(self, metric: Metric, k: int) -> List[ScoredPair]:
        query = _TOP % _relationship_type(metric.kind)
        top: List[ScoredPair] = []
        for record in self._session.run(query, rank=int(k)):
            src, dst = canonical_pair(int(record["src"]), int(record["dst"]))
            top.append(ScoredPair(src, dst, float(record["weight"])))
        return top

    def exists(self, kind: LinkKind, u: int, v: int, weight: float) -> bool:
        query = _EXISTS % _relationship_type(kind)
        record = self._session.run(query, src=u, dst=v, weight=weight).single()
        return bool(record is not None and record["exists"])

    def count_links(self) -> int:
        record = self._session.run(_COUNT_LINKS).single()
        return int(record["numlinks"]) if record is not None else 0

    def put(self, link: Link, policy: Optional[AggregationPolicy] = None) -> None:
        if link.kind is LinkKind.REAL:
            policy = policy or self._policy
            query = _SAVE_REAL % _REAL_UPDATES[policy.mode]
            self._session.run(
                query, src=link.src, dst=link.dst, weight=link.weight, ewma=policy.factor
            )
        else:
            query = _SAVE_MINED % _relationship_type(link.kind)
            self._session.run(query, src=link.src, dst=link.dst, weight=link.weight)

    def remove(self, u: int, v: int, kind: LinkKind) -> None:
        self._session.run(_REMOVE % _relationship_type(kind), src=u, dst=v)

    def clear(self) -> None:
        self._session.run(_CLEAR)


class Neo4jScoreStore(ScoreStore):
    """Score store that opens a fresh Neo4j driver and session per use."""

    def __init__(
        self, config: StoreConfig, policy: Optional[AggregationPolicy] = None
    ) -> None:
        self.config = config
        self.policy = policy or AggregationPolicy()

    @contextmanager
    def session(self) -> Iterator[ScoreSession]:
        try:
            driver = GraphDatabase.driver(
                self.config.hostname, auth=(self.config.username, self.config.password)
            )
        except (DriverError, Neo4jError, ValueError) as exc:
            raise StoreUnavailable(f"Cannot connect to {self.config}: {exc}") from exc
        try:
            with driver.session() as neo4j_session:
                yield Neo4jSession(neo4j_session, self.policy)
        except (DriverError, Neo4jError) as exc:
            # Any driver or server failure means the store is unavailable
            raise StoreUnavailable(f"Neo4j at {self.config} is unavailable: {exc}") from exc
        finally:
            driver.close()
