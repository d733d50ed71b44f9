"""Smoke tests for the public command line interface.

The CLI is implemented as a Python function that returns an exit code, which
keeps tests fast and avoids spawning subprocesses. The score store and relay
factories are replaced by in-memory implementations.
"""

from __future__ import annotations

import json
from contextlib import contextmanager

import pytest

from graph_monitor import cli
from graph_monitor.io import read_links
from graph_monitor.link import Link, LinkKind
from graph_monitor.store import InMemoryScoreStore, ScoreStore, StoreUnavailable


class _UnreachableStore(ScoreStore):
    @contextmanager
    def session(self):
        raise StoreUnavailable("Cannot connect to neo4j@bolt://localhost:7687")
        yield  # pragma: no cover


@pytest.fixture
def memory_store(monkeypatch):
    store = InMemoryScoreStore()
    monkeypatch.setattr(cli, "_create_store", lambda config: store)
    return store


def test_cli_analyze_dataset_prints_and_writes_summary(link_files, tmp_path, capsys):
    """analyze_dataset prints the counts and optionally writes them as JSON."""
    output = tmp_path / "analysis.json"
    exit_code = cli.main(
        ["analyze_dataset", "--dataset", link_files["dataset"], "--output", str(output)]
    )
    assert exit_code == 0
    output_text = capsys.readouterr().out
    assert "numnodes :: 5" in output_text
    assert "numlinks :: 7" in output_text
    assert json.loads(output.read_text())["cc_vertexsets"] == 1


def test_cli_datagen_lcc_and_traintest(link_files, tmp_path, capsys):
    """The dataset commands write their output files."""
    lcc = tmp_path / "lcc.txt"
    trainset = tmp_path / "train.txt"
    testset = tmp_path / "test.txt"
    assert cli.main(["datagen_lcc", "--dataset", link_files["dataset"], "--output", str(lcc)]) == 0
    assert len(read_links(str(lcc))) == 7

    exit_code = cli.main(
        [
            "traintest",
            "--dataset",
            str(lcc),
            "--trainset",
            str(trainset),
            "--testset",
            str(testset),
            "--test-ratio",
            "0.3",
        ]
    )
    assert exit_code == 0
    assert len(read_links(str(trainset))) == 5
    assert read_links(str(testset)) == [Link(2, 4, 1.0), Link(1, 3, 1.0)]
    assert "2 requested" in capsys.readouterr().out


@pytest.mark.parametrize(
    "extra, message",
    [
        (["--test-ratio", "1.5"], "strictly between 0 and 1"),
        (["--test-ratio", "0.2", "--mining", "detection"], "No split policy"),
    ],
)
def test_cli_traintest_invalid_arguments_return_code_2(
    link_files, tmp_path, capsys, extra, message
):
    """Invalid ratios and unknown policies are reported with exit code 2."""
    exit_code = cli.main(
        [
            "traintest",
            "--dataset",
            link_files["dataset"],
            "--trainset",
            str(tmp_path / "train.txt"),
            "--testset",
            str(tmp_path / "test.txt"),
            *extra,
        ]
    )
    assert exit_code == 2
    assert message in capsys.readouterr().err


def test_cli_missing_dataset_returns_code_2(tmp_path):
    """A dataset path that does not exist is an input error."""
    assert cli.main(["analyze_dataset", "--dataset", str(tmp_path / "missing.txt")]) == 2


def test_cli_missing_required_argument_returns_code_2():
    """argparse errors are returned rather than raised."""
    assert cli.main(["traintest", "--dataset", "x.txt"]) == 2


def test_cli_returns_error_code_for_unknown_config_extension(tmp_path, link_files, capsys):
    """Unknown config extensions should be rejected with a clear message."""
    config_path = tmp_path / "config.txt"
    config_path.write_text("{}", encoding="utf-8")
    exit_code = cli.main(
        ["analyze_dataset", "--config", str(config_path), "--dataset", link_files["dataset"]]
    )
    assert exit_code == 2
    assert "Config file must end with" in capsys.readouterr().err


def test_cli_save_check_and_evaluate(memory_store, link_files, tmp_path, capsys):
    """Saved links pass the check and scored links can be evaluated."""
    assert cli.main(["save", "--dataset", link_files["trainset"]]) == 0
    assert cli.main(["check_dataset_db", "--dataset", link_files["trainset"]]) == 0
    assert cli.main(["check_dataset_db", "--dataset", link_files["dataset"]]) == 1

    with memory_store.session() as session:
        for u, v, w in [(1, 3, 0.9), (2, 4, 0.15), (1, 4, 0.5), (1, 5, 0.2), (2, 5, 0.1)]:
            session.put(Link(u, v, w, LinkKind.NTA))

    config_path = tmp_path / "config.yaml"
    config_path.write_text("evaluation:\n  rank: 2\n  workers: 2\n", encoding="utf-8")
    capsys.readouterr()
    exit_code = cli.main(
        [
            "evaluate",
            "--config",
            str(config_path),
            "--metric",
            "NTA",
            "--dataset",
            link_files["dataset"],
            "--trainset",
            link_files["trainset"],
            "--testset",
            link_files["testset"],
            "--output",
            str(tmp_path / "results"),
        ]
    )
    assert exit_code == 0
    output_lines = capsys.readouterr().out.splitlines()
    assert output_lines[0].startswith("AUC(NTA) (ignored:0 |")
    assert output_lines[1] == "PRECISION(NTA) (hits:1 | links_test:2 | rank:2) : 0.5"
    assert (tmp_path / "results" / "dataset_train_AUC_NTA.out").exists()


def test_cli_evaluate_without_valid_metric_returns_code_2(memory_store, link_files):
    """A metric list with no known metric is rejected."""
    exit_code = cli.main(
        [
            "evaluate",
            "--metric",
            "bogus",
            "--dataset",
            link_files["dataset"],
            "--trainset",
            link_files["trainset"],
            "--testset",
            link_files["testset"],
        ]
    )
    assert exit_code == 2


def test_cli_wait_stability_db(memory_store, capsys):
    """The stability wait prints the settled link count."""
    with memory_store.session() as session:
        session.put(Link(1, 2, 1.0))
    assert cli.main(["wait_stability_db", "--timeout", "0"]) == 0
    assert "stable with 1 links" in capsys.readouterr().out
    assert cli.main(["wait_stability_db", "--timeout", "0", "--max-polls", "2"]) == 1


def test_cli_unreachable_store_returns_code_1(monkeypatch, link_files, capsys):
    """Store connection failures are reported with exit code 1."""
    monkeypatch.setattr(cli, "_create_store", lambda config: _UnreachableStore())
    assert cli.main(["save", "--dataset", link_files["dataset"]]) == 1
    assert "Cannot connect" in capsys.readouterr().err


def test_cli_publish_and_check_use_configured_topic(monkeypatch, fake_relay, link_files, capsys):
    """Relay commands send to the topic given on the command line."""
    monkeypatch.setattr(cli, "_create_relay", lambda config: fake_relay)
    exit_code = cli.main(
        ["publish", "--kafka-topic", "events", "--dataset", link_files["dataset"]]
    )
    assert exit_code == 0
    assert {topic for topic, _ in fake_relay.sent} == {"events"}
    assert "Links published: 7" in capsys.readouterr().out

    assert cli.main(["check", "--kafka-topic", "probe"]) == 0
    assert "Relay check: True" in capsys.readouterr().out
