"""Shared fixtures: a relay that loops messages back and small link files."""

from __future__ import annotations

from collections import deque

import pytest

from graph_monitor.io import write_links
from graph_monitor.link import Link
from graph_monitor.relay import MessageRelay


class FakeRelay(MessageRelay):
    """Relay that records sent links and hands them back on receive."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, Link]] = []
        self.closed = False
        self._queues: dict[str, deque] = {}

    def send(self, topic, link):
        self.sent.append((topic, link))
        self._queues.setdefault(topic, deque()).append(link)

    def receive(self, topic, timeout=3.0):
        queue = self._queues.get(topic)
        return queue.popleft() if queue else None

    def close(self):
        self.closed = True


@pytest.fixture
def fake_relay():
    return FakeRelay()


DATASET = [
    Link(1, 2, 1.0),
    Link(2, 3, 1.0),
    Link(3, 4, 1.0),
    Link(4, 5, 1.0),
    Link(3, 5, 1.0),
    Link(1, 3, 1.0),
    Link(2, 4, 1.0),
]

# Held-out links are the last two of the dataset
TRAINSET = DATASET[:5]
TESTSET = DATASET[5:]


@pytest.fixture
def link_files(tmp_path):
    """Write the evaluation dataset, trainset and testset; return their paths."""
    paths = {
        "dataset": tmp_path / "dataset.txt",
        "trainset": tmp_path / "dataset_train.txt",
        "testset": tmp_path / "dataset_test.txt",
    }
    write_links(str(paths["dataset"]), DATASET)
    write_links(str(paths["trainset"]), TRAINSET)
    write_links(str(paths["testset"]), TESTSET)
    return {name: str(path) for name, path in paths.items()}
