"""Command line interface for the graph monitor.

This script defines the packaged ``graph-monitor`` entry point and its
subcommands. It loads an optional YAML or JSON configuration file, applies
command line overrides (store credentials, relay endpoints, evaluation
defaults), builds a single :class:`~graph_monitor.config.MonitorConfig` and
hands it to the command functions in :mod:`graph_monitor.monitor`.

Dataset commands (``analyze_dataset``, ``datagen_lcc``, ``traintest``) only
touch files. Store commands (``save``, ``check_dataset_db``,
``wait_stability_db``, ``evaluate``) open the score store for the duration of
the command. Relay commands (``check``, ``publish``) talk to the message
broker.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import Callable

from graph_monitor import monitor
from graph_monitor.config import (
    MonitorConfig,
    apply_overrides,
    configuration_from_mapping,
    load_configuration,
)
from graph_monitor.datagen import removal_target
from graph_monitor.evaluation import parse_evaluation_list, summary_line
from graph_monitor.link import parse_metric_list
from graph_monitor.neo4j_store import Neo4jScoreStore
from graph_monitor.relay import KafkaRelay, MessageRelay
from graph_monitor.store import (
    AggregationMode,
    AggregationPolicy,
    ScoreStore,
    StoreUnavailable,
)
from graph_monitor.utils import configure_logging, write_json

logger = logging.getLogger(__name__)


def _create_store(config: MonitorConfig) -> ScoreStore:
    """Return the score store described by ``config``."""

    return Neo4jScoreStore(config.store, config.aggregation)


def _create_relay(config: MonitorConfig) -> MessageRelay:
    """Return the message relay described by ``config``."""

    return KafkaRelay(config.relay.broker, config.relay.group)


def _build_configuration(arguments: argparse.Namespace) -> MonitorConfig:
    """Load the configuration file, if any, and apply command line overrides.

    The configuration is built exactly once per invocation and then passed
    explicitly to the command handlers.
    """

    mapping = load_configuration(arguments.config) if arguments.config else {}
    configuration = configuration_from_mapping(mapping)
    configuration = apply_overrides(
        configuration,
        hostname=getattr(arguments, "neo4j_hostname", None),
        username=getattr(arguments, "neo4j_username", None),
        password=getattr(arguments, "neo4j_password", None),
        broker=getattr(arguments, "kafka_broker", None),
        topic=getattr(arguments, "kafka_topic", None),
        rank=getattr(arguments, "rank", None),
        workers=getattr(arguments, "workers", None),
        period=getattr(arguments, "timeout", None),
        log_level=arguments.log_level,
    )

    aggregation_name = getattr(arguments, "aggregation", None)
    ewma_factor = getattr(arguments, "ewma_factor", None)
    if aggregation_name is not None or ewma_factor is not None:
        configuration = replace(
            configuration,
            aggregation=AggregationPolicy(
                mode=AggregationMode(aggregation_name)
                if aggregation_name is not None
                else configuration.aggregation.mode,
                factor=ewma_factor
                if ewma_factor is not None
                else configuration.aggregation.factor,
            ),
        )
    max_polls = getattr(arguments, "max_polls", None)
    if max_polls is not None:
        if max_polls < 1:
            raise ValueError("--max-polls must be positive.")
        configuration = replace(
            configuration, polling=replace(configuration.polling, max_polls=max_polls)
        )
    return configuration


def _command_analyze_dataset(arguments: argparse.Namespace, config: MonitorConfig) -> int:
    """Handle ``analyze_dataset`` by printing node, link and component counts."""

    analysis = monitor.analyze_dataset(arguments.dataset).as_dict()
    print("Dataset analysis completed")
    print("------------------------------------")
    for key, value in analysis.items():
        print(f"{key} :: {value}")
    print("------------------------------------")
    if arguments.output is not None:
        write_json(arguments.output, analysis)
    return 0


def _command_datagen_lcc(arguments: argparse.Namespace, config: MonitorConfig) -> int:
    """Handle ``datagen_lcc`` by writing the largest connected component."""

    written = monitor.datagen_lcc(arguments.dataset, arguments.output)
    print(f"Generated dataset of largest connected component {arguments.output}")
    print(f"Links written: {written}")
    return 0


def _command_traintest(arguments: argparse.Namespace, config: MonitorConfig) -> int:
    """Handle ``traintest`` by writing the training and test sets."""

    split = monitor.traintest(
        arguments.dataset,
        arguments.trainset,
        arguments.testset,
        arguments.test_ratio,
        arguments.mining,
    )
    requested = removal_target(arguments.test_ratio, len(split.train) + len(split.test))
    print(f"Generated trainset {arguments.trainset} ({len(split.train)} links)")
    print(
        f"Generated testset {arguments.testset} "
        f"({len(split.test)} links, {requested} requested)"
    )
    return 0


def _command_check(arguments: argparse.Namespace, config: MonitorConfig) -> int:
    """Handle ``check`` by sending a probe link through the relay."""

    with _create_relay(config) as relay:
        check = monitor.check_relay(relay, config.relay.topic)
    print(f"Relay check: {check}")
    return 0 if check else 1


def _command_publish(arguments: argparse.Namespace, config: MonitorConfig) -> int:
    """Handle ``publish`` by forwarding every dataset link to the relay topic."""

    with _create_relay(config) as relay:
        sent = monitor.publish(relay, config.relay.topic, arguments.dataset)
    print(f"Links published: {sent}")
    return 0


def _command_save(arguments: argparse.Namespace, config: MonitorConfig) -> int:
    """Handle ``save`` by storing every dataset link in the score store."""

    logger.info("Saving to %s with dataset %s", config.store, arguments.dataset)
    saved = monitor.save_dataset(
        _create_store(config), arguments.dataset, config.aggregation
    )
    print(f"Links saved: {saved}")
    return 0


def _command_check_dataset_db(arguments: argparse.Namespace, config: MonitorConfig) -> int:
    """Handle ``check_dataset_db``; exits with 1 if links are still missing."""

    complete = monitor.check_dataset_on_store(
        _create_store(config),
        arguments.dataset,
        period=config.polling.period if arguments.timeout is not None else None,
        max_polls=config.polling.max_polls,
    )
    print(f"Check finished: {'complete' if complete else 'links missing'}")
    return 0 if complete else 1


def _command_wait_stability_db(arguments: argparse.Namespace, config: MonitorConfig) -> int:
    """Handle ``wait_stability_db`` by polling until the link count settles."""

    count = monitor.wait_store_stability(
        _create_store(config),
        config.polling.period,
        stability_polls=config.polling.stability_polls,
        max_polls=config.polling.max_polls,
    )
    print(f"Score store stable with {count} links")
    return 0


def _command_evaluate(arguments: argparse.Namespace, config: MonitorConfig) -> int:
    """Handle ``evaluate`` by running each evaluation for each metric."""

    evaluations = parse_evaluation_list(arguments.evaluation)
    metrics = parse_metric_list(arguments.metric)
    if not evaluations:
        raise ValueError(f"No valid evaluation in: {arguments.evaluation}")
    if not metrics:
        raise ValueError(f"No valid metric in: {arguments.metric}")

    results = monitor.evaluate_all(
        _create_store(config),
        evaluations,
        metrics,
        arguments.dataset,
        arguments.trainset,
        arguments.testset,
        rank=config.evaluation.rank,
        workers=config.evaluation.workers,
        output_dir=arguments.output,
    )
    for result in results:
        print(summary_line(result))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    """Create the top-level argument parser with subcommands."""

    parser = argparse.ArgumentParser(prog="graph-monitor")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common_options(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--config",
            default=None,
            help="Optional path to a YAML or JSON configuration file.",
        )
        subparser.add_argument(
            "--log-level",
            default=None,
            help="Optional logging level override, for example 'DEBUG'.",
        )

    def add_store_options(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument("--neo4j-hostname", default=None, help="Score store URI.")
        subparser.add_argument("--neo4j-username", default=None, help="Score store user.")
        subparser.add_argument(
            "--neo4j-password", default=None, help="Score store password."
        )

    def add_relay_options(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument("--kafka-broker", default=None, help="Kafka bootstrap server.")
        subparser.add_argument("--kafka-topic", default=None, help="Kafka topic.")

    def add_polling_options(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--timeout",
            type=float,
            default=None,
            help="Polling period in seconds.",
        )
        subparser.add_argument(
            "--max-polls",
            type=int,
            default=None,
            help="Optional number of polls after which to give up.",
        )

    analyze_parser = subparsers.add_parser(
        "analyze_dataset", help="Print node, link and component counts of a dataset."
    )
    add_common_options(analyze_parser)
    analyze_parser.add_argument("--dataset", required=True, help="Link file to analyze.")
    analyze_parser.add_argument(
        "--output", default=None, help="Optional JSON file receiving the analysis."
    )
    analyze_parser.set_defaults(handler=_command_analyze_dataset)

    lcc_parser = subparsers.add_parser(
        "datagen_lcc", help="Extract the largest connected component of a dataset."
    )
    add_common_options(lcc_parser)
    lcc_parser.add_argument("--dataset", required=True, help="Link file to read.")
    lcc_parser.add_argument("--output", required=True, help="Link file to write.")
    lcc_parser.set_defaults(handler=_command_datagen_lcc)

    traintest_parser = subparsers.add_parser(
        "traintest", help="Split a dataset into connected training and test sets."
    )
    add_common_options(traintest_parser)
    traintest_parser.add_argument("--dataset", required=True, help="Link file to split.")
    traintest_parser.add_argument("--trainset", required=True, help="Training set output.")
    traintest_parser.add_argument("--testset", required=True, help="Test set output.")
    traintest_parser.add_argument(
        "--test-ratio",
        type=float,
        required=True,
        help="Fraction of links to hold out, strictly between 0 and 1.",
    )
    traintest_parser.add_argument(
        "--mining",
        default="prediction",
        help="Split policy name (default: prediction).",
    )
    traintest_parser.set_defaults(handler=_command_traintest)

    check_parser = subparsers.add_parser("check", help="Check the message relay.")
    add_common_options(check_parser)
    add_relay_options(check_parser)
    check_parser.set_defaults(handler=_command_check)

    publish_parser = subparsers.add_parser(
        "publish", help="Publish every dataset link to the message relay."
    )
    add_common_options(publish_parser)
    add_relay_options(publish_parser)
    publish_parser.add_argument("--dataset", required=True, help="Link file to publish.")
    publish_parser.set_defaults(handler=_command_publish)

    save_parser = subparsers.add_parser("save", help="Save a dataset into the score store.")
    add_common_options(save_parser)
    add_store_options(save_parser)
    save_parser.add_argument("--dataset", required=True, help="Link file to save.")
    save_parser.add_argument(
        "--aggregation",
        choices=[mode.value for mode in AggregationMode],
        default=None,
        help="How repeated real links are combined.",
    )
    save_parser.add_argument(
        "--ewma-factor", type=float, default=None, help="Weight of the newest observation."
    )
    save_parser.set_defaults(handler=_command_save)

    check_db_parser = subparsers.add_parser(
        "check_dataset_db", help="Check that a dataset is present in the score store."
    )
    add_common_options(check_db_parser)
    add_store_options(check_db_parser)
    add_polling_options(check_db_parser)
    check_db_parser.add_argument("--dataset", required=True, help="Link file to check.")
    check_db_parser.set_defaults(handler=_command_check_dataset_db)

    stability_parser = subparsers.add_parser(
        "wait_stability_db", help="Wait until the score store stops changing."
    )
    add_common_options(stability_parser)
    add_store_options(stability_parser)
    add_polling_options(stability_parser)
    stability_parser.set_defaults(handler=_command_wait_stability_db)

    evaluate_parser = subparsers.add_parser(
        "evaluate", help="Evaluate metrics against a held-out test set."
    )
    add_common_options(evaluate_parser)
    add_store_options(evaluate_parser)
    evaluate_parser.add_argument(
        "--evaluation", default="ALL", help="AUC, PRECISION, a comma list, or ALL."
    )
    evaluate_parser.add_argument(
        "--metric", default="ALL", help="Comma-separated metric names, or ALL."
    )
    evaluate_parser.add_argument(
        "--dataset", required=True, help="Full dataset the split was taken from."
    )
    evaluate_parser.add_argument("--trainset", required=True, help="Training set.")
    evaluate_parser.add_argument("--testset", required=True, help="Test set.")
    evaluate_parser.add_argument(
        "--output", default=None, help="Optional directory for per-result files."
    )
    evaluate_parser.add_argument(
        "--rank", type=int, default=None, help="Cut-off k for Precision@k."
    )
    evaluate_parser.add_argument(
        "--workers", type=int, default=None, help="Concurrent score readers for AUC."
    )
    evaluate_parser.set_defaults(handler=_command_evaluate)

    return parser


def main(argument_list: list[str] | None = None) -> int:
    """Entry point for the ``graph-monitor`` console script.

    The function returns an integer exit code so it can be tested without
    spawning a subprocess. Configuration and input errors return code 2,
    which matches the conventional behaviour of ``argparse`` for invalid
    input; score store, relay and other I/O failures return code 1.
    """

    parser = _build_parser()
    try:
        arguments = parser.parse_args(argument_list)
    except SystemExit as system_exit_exception:
        return (
            int(system_exit_exception.code)
            if system_exit_exception.code is not None
            else 1
        )

    handler: Callable[[argparse.Namespace, MonitorConfig], int] = arguments.handler
    try:
        configuration = _build_configuration(arguments)
        configure_logging(configuration.log_level)
        return int(handler(arguments, configuration))
    except (FileNotFoundError, ValueError) as exception:
        print(str(exception), file=sys.stderr)
        return 2
    except (StoreUnavailable, TimeoutError, RuntimeError, OSError) as exception:
        print(str(exception), file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())  # pragma: no cover
