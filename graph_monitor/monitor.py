"""Command-level operations that tie files, graph, splits, store and relay together.

Each function here implements one CLI command and takes everything it needs
as arguments: paths, an opened-on-demand score store, a relay and the
relevant configuration values. Functions that poll the store accept a
``sleep`` callable so tests can run them without waiting.
"""

import logging
import os
import time
from typing import Callable, List, Optional, Sequence

from .datagen import Split, get_policy, split_links
from .evaluation import (
    EvaluationResult,
    EvaluationSets,
    EvaluationType,
    evaluate,
    summary_line,
)
from .graph import GraphAnalysis, analyze_graph, build_graph, lcc_links
from .io import count_lines, iter_links, read_links, write_links
from .link import Link, Metric
from .relay import MessageRelay, publish_links
from .store import AggregationPolicy, ScoreStore, StoreUnavailable
from .utils import ensure_dir, log_progress

logger = logging.getLogger(__name__)

Sleep = Callable[[float], None]


def analyze_dataset(dataset: str) -> GraphAnalysis:
    """Summarise the graph of the links stored in ``dataset``."""
    logger.info("Analyzing dataset %s", dataset)
    return analyze_graph(build_graph(read_links(dataset)))


def datagen_lcc(dataset: str, output: str) -> int:
    """Write the links of the largest connected component of ``dataset`` to ``output``.

    Returns:
        The number of links written.
    """
    logger.info("Generating largest connected component of %s to %s", dataset, output)
    return write_links(output, lcc_links(build_graph(read_links(dataset))))


def traintest(
    dataset: str, trainset: str, testset: str, ratio: float, mining: str = "prediction"
) -> Split:
    """Split ``dataset`` with the ``mining`` policy and write both sets."""
    policy = get_policy(mining)
    logger.info(
        "Generating training/test sets for %s from dataset %s with testRatio %s",
        mining,
        dataset,
        ratio,
    )
    split = split_links(read_links(dataset), ratio, policy)
    write_links(trainset, split.train)
    write_links(testset, split.test)
    return split


def save_dataset(
    store: ScoreStore, dataset: str, policy: Optional[AggregationPolicy] = None
) -> int:
    """Store every link of ``dataset``; real links are aggregated with ``policy``.

    Returns:
        The number of links saved.
    """
    total = count_lines(dataset)
    saved = 0
    with store.session() as session:
        for link in iter_links(dataset):
            session.put(link, policy)
            saved += 1
            log_progress(logger, "save", saved, total)
    return saved


def check_dataset_on_store(
    store: ScoreStore,
    dataset: str,
    period: Optional[float] = None,
    max_polls: Optional[int] = None,
    sleep: Sleep = time.sleep,
) -> bool:
    """Check that every link of ``dataset`` is present in the store.

    Without ``period`` a single pass is made. With ``period`` the links still
    missing are checked again every ``period`` seconds until none is left, or
    until ``max_polls`` further passes have been made. A store failure during
    polling counts as a pass and is retried.

    Returns:
        True if every link was found.
    """
    links = read_links(dataset)
    logger.info("Links to check: %d | dataset: %s", len(links), dataset)
    with store.session() as session:
        missing = [link for link in links if not session.link_exists(link)]
    logger.info("Check missing: %d/%d", len(missing), len(links))

    polls = 0
    while missing and period is not None:
        if max_polls is not None and polls >= max_polls:
            break
        sleep(period)
        polls += 1
        try:
            with store.session() as session:
                missing = [link for link in missing if not session.link_exists(link)]
        except StoreUnavailable as exc:
            logger.warning("Score store unavailable, retrying: %s", exc)
            continue
        logger.info("Check missing: %d/%d", len(missing), len(links))
    return not missing


def wait_store_stability(
    store: ScoreStore,
    period: float,
    stability_polls: int = 10,
    max_polls: Optional[int] = None,
    sleep: Sleep = time.sleep,
) -> int:
    """Poll the store until its link count is unchanged ``stability_polls`` times in a row.

    Returns:
        The stable number of links.

    Raises:
        TimeoutError: If ``max_polls`` polls are made without reaching stability.
    """
    stability_count = 0
    last_count = 0
    polls = 0
    while stability_count < stability_polls:
        if max_polls is not None and polls >= max_polls:
            raise TimeoutError(
                f"Score store not stable after {polls} polls (last count: {last_count})"
            )
        polls += 1
        try:
            with store.session() as session:
                count = session.count_links()
        except StoreUnavailable as exc:
            logger.warning("Score store unavailable, retrying: %s", exc)
            sleep(period)
            continue
        stability_count = stability_count + 1 if count == last_count else 0
        logger.info(
            "DB Stability check: numlinks: %d | stabilityCount: %d", count, stability_count
        )
        last_count = count
        if stability_count < stability_polls:
            sleep(period)
    return last_count


def result_path(output_dir: str, trainset: str, result: EvaluationResult) -> str:
    """Path of the file receiving ``result``: ``<trainset>_<EVALUATION>_<METRIC>.out``."""
    base = os.path.splitext(os.path.basename(trainset))[0]
    values = result.as_dict()
    return os.path.join(output_dir, f"{base}_{values['evaluation']}_{values['metric']}.out")


def evaluate_all(
    store: ScoreStore,
    evaluations: Sequence[EvaluationType],
    metrics: Sequence[Metric],
    dataset: str,
    trainset: str,
    testset: str,
    rank: int = 3,
    workers: int = 1,
    output_dir: Optional[str] = None,
) -> List[EvaluationResult]:
    """Run every evaluation for every metric on the same dataset and split.

    The node pairs are derived once. When ``output_dir`` is given, each
    result's summary line is written to its own file there.
    """
    sets = EvaluationSets.from_links(
        read_links(dataset), read_links(trainset), read_links(testset)
    )
    if output_dir is not None:
        ensure_dir(output_dir)

    results: List[EvaluationResult] = []
    for evaluation in evaluations:
        for metric in metrics:
            result = evaluate(store, evaluation, metric, sets, rank=rank, workers=workers)
            logger.info(
                "Evaluation Result: %s on %s with %s :: %s",
                evaluation.value,
                metric.value,
                trainset,
                result.as_dict(),
            )
            if output_dir is not None:
                with open(result_path(output_dir, trainset, result), "w", encoding="utf-8") as f:
                    f.write(summary_line(result) + "\n")
            results.append(result)
    return results


def publish(relay: MessageRelay, topic: str, dataset: str) -> int:
    """Forward every link of ``dataset`` to ``topic``; return how many were sent."""
    logger.info("Publishing dataset %s to topic %s", dataset, topic)
    return publish_links(relay, topic, iter_links(dataset))


def check_relay(relay: MessageRelay, topic: str, timeout: float = 3.0) -> bool:
    """Send a probe link and check that the same link comes back."""
    probe = Link(1, 2, 1.0)
    relay.send(topic, probe)
    received = relay.receive(topic, timeout=timeout)
    return received == probe
