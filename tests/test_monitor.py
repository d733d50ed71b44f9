"""Tests for the command-level operations, run against in-memory collaborators."""

import os

import pytest

from graph_monitor import monitor
from graph_monitor.evaluation import EvaluationType
from graph_monitor.io import read_links, write_links
from graph_monitor.link import Link, LinkKind, Metric
from graph_monitor.store import InMemoryScoreStore, StoreUnavailable


def _store_with(links):
    store = InMemoryScoreStore()
    with store.session() as session:
        for link in links:
            session.put(link)
    return store


def test_analyze_dataset(tmp_path):
    """The dataset summary counts nodes, links and components."""
    path = tmp_path / "dataset.txt"
    write_links(str(path), [Link(1, 2, 1.0), Link(2, 3, 1.0), Link(8, 9, 1.0)])
    analysis = monitor.analyze_dataset(str(path))
    assert (analysis.num_nodes, analysis.num_edges, analysis.component_count) == (5, 3, 2)
    assert analysis.lcc_node_count == 3


def test_datagen_lcc_writes_largest_component(tmp_path):
    """Only links of the largest component are written, in dataset order."""
    dataset = tmp_path / "dataset.txt"
    output = tmp_path / "lcc" / "dataset_lcc.txt"
    write_links(str(dataset), [Link(8, 9, 1.0), Link(1, 2, 1.0), Link(2, 3, 2.0)])
    assert monitor.datagen_lcc(str(dataset), str(output)) == 2
    assert read_links(str(output)) == [Link(1, 2, 1.0), Link(2, 3, 2.0)]


def test_traintest_writes_both_sets(link_files, tmp_path):
    """traintest writes the training and the test set to their files."""
    trainset = tmp_path / "split" / "train.txt"
    testset = tmp_path / "split" / "test.txt"
    split = monitor.traintest(link_files["dataset"], str(trainset), str(testset), 0.2)
    assert read_links(str(trainset)) == list(split.train)
    assert read_links(str(testset)) == list(split.test)
    assert len(split.test) == 1


def test_traintest_unknown_policy_raises(link_files, tmp_path):
    """Asking for an unregistered policy is a value error."""
    with pytest.raises(ValueError):
        monitor.traintest(
            link_files["dataset"],
            str(tmp_path / "train.txt"),
            str(tmp_path / "test.txt"),
            0.2,
            mining="detection",
        )


def test_save_dataset_then_check_single_pass(link_files):
    """Saved datasets pass the presence check in a single pass."""
    store = InMemoryScoreStore()
    assert monitor.save_dataset(store, link_files["dataset"]) == 7
    assert monitor.check_dataset_on_store(store, link_files["dataset"])
    assert store.sessions_opened == store.sessions_closed


def test_check_dataset_polls_until_links_arrive(link_files):
    """Missing links are re-checked after each period until they appear."""
    links = read_links(link_files["dataset"])
    store = _store_with(links[:-1])
    sleeps = []

    def fake_sleep(period):
        sleeps.append(period)
        with store.session() as session:
            session.put(links[-1])

    assert monitor.check_dataset_on_store(
        store, link_files["dataset"], period=2.0, sleep=fake_sleep
    )
    assert sleeps == [2.0]


def test_check_dataset_gives_up_after_max_polls(link_files):
    """A link that never arrives makes the check fail after max_polls passes."""
    store = _store_with(read_links(link_files["dataset"])[:-1])
    sleeps = []
    complete = monitor.check_dataset_on_store(
        store, link_files["dataset"], period=1.0, max_polls=3, sleep=sleeps.append
    )
    assert not complete
    assert len(sleeps) == 3


def test_wait_store_stability_returns_stable_count():
    """The store is stable once its count repeats the required number of times."""
    store = _store_with([Link(1, 2, 1.0), Link(2, 3, 1.0)])
    sleeps = []
    count = monitor.wait_store_stability(store, 0.5, stability_polls=3, sleep=sleeps.append)
    assert count == 2
    assert sleeps == [0.5, 0.5, 0.5]


def test_wait_store_stability_times_out():
    """Reaching max_polls before stability raises TimeoutError."""
    store = _store_with([Link(1, 2, 1.0)])
    with pytest.raises(TimeoutError):
        monitor.wait_store_stability(
            store, 0.1, stability_polls=5, max_polls=2, sleep=lambda _: None
        )


def test_wait_store_stability_retries_when_store_unavailable():
    """A failing poll is logged and retried after one period."""
    store = _store_with([Link(1, 2, 1.0)])
    real_session = store.session
    failures = iter([True])

    def flaky_session():
        if next(failures, False):
            raise StoreUnavailable("down")
        return real_session()

    store.session = flaky_session
    sleeps = []
    assert monitor.wait_store_stability(store, 1.0, stability_polls=1, sleep=sleeps.append) == 1
    assert sleeps == [1.0, 1.0]


def test_evaluate_all_writes_one_file_per_result(link_files, tmp_path):
    """Each evaluation and metric pair gets its own result file."""
    store = InMemoryScoreStore()
    with store.session() as session:
        for u, v, w in [(1, 3, 0.9), (2, 4, 0.15), (1, 4, 0.5), (1, 5, 0.2), (2, 5, 0.1)]:
            session.put(Link(u, v, w, LinkKind.NTA))

    output_dir = tmp_path / "results"
    results = monitor.evaluate_all(
        store,
        [EvaluationType.AUC, EvaluationType.PRECISION],
        [Metric.NTA],
        link_files["dataset"],
        link_files["trainset"],
        link_files["testset"],
        rank=2,
        output_dir=str(output_dir),
    )

    assert [r.value for r in results][1] == 0.5
    assert sorted(os.listdir(output_dir)) == [
        "dataset_train_AUC_NTA.out",
        "dataset_train_PRECISION_NTA.out",
    ]
    precision_text = (output_dir / "dataset_train_PRECISION_NTA.out").read_text()
    assert precision_text == "PRECISION(NTA) (hits:1 | links_test:2 | rank:2) : 0.5\n"


def test_publish_and_check_relay(link_files, fake_relay):
    """Publishing sends every link; the check succeeds when the probe comes back."""
    assert monitor.publish(fake_relay, "links", link_files["dataset"]) == 7
    assert len(fake_relay.sent) == 7

    other_relay = type(fake_relay)()
    assert monitor.check_relay(other_relay, "probe")
    assert other_relay.sent == [("probe", Link(1, 2, 1.0))]
