"""Message relay that forwards dataset links to a topic.

The relay is a pure pass-through: a link is sent as its formatted line and
parsed back on receipt. The Kafka implementation needs the optional
``kafka-python`` dependency (``pip install graph-monitor[relay]``).
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from .link import Link, MalformedLink, format_link, parse_link

logger = logging.getLogger(__name__)


class MessageRelay(ABC):
    """Publishes links to, and reads links from, a named topic."""

    @abstractmethod
    def send(self, topic: str, link: Link) -> None:
        """Publish ``link`` on ``topic``."""

    @abstractmethod
    def receive(self, topic: str, timeout: float = 3.0) -> Optional[Link]:
        """Return the next link on ``topic``, or None if nothing arrives in time."""

    @abstractmethod
    def close(self) -> None:
        """Release the relay's connections."""

    def __enter__(self) -> "MessageRelay":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class KafkaRelay(MessageRelay):
    """Relay backed by a Kafka broker."""

    def __init__(self, broker: str, group: str = "testers") -> None:
        try:
            from kafka import KafkaConsumer, KafkaProducer
        except ImportError as e:
            raise RuntimeError(
                "kafka-python is required for the Kafka relay. "
                "Install with: pip install kafka-python"
            ) from e

        self.broker = broker
        self.group = group
        self._consumer_factory = KafkaConsumer
        self._producer = KafkaProducer(
            bootstrap_servers=broker,
            acks="all",
            retries=0,
            linger_ms=1,
            value_serializer=lambda value: value.encode("utf-8"),
        )

    def send(self, topic: str, link: Link) -> None:
        self._producer.send(topic, format_link(link))

    def receive(self, topic: str, timeout: float = 3.0) -> Optional[Link]:
        self._producer.flush()
        consumer = self._consumer_factory(
            topic,
            bootstrap_servers=self.broker,
            group_id=self.group,
            auto_offset_reset="earliest",
            consumer_timeout_ms=int(timeout * 1000),
            value_deserializer=lambda value: value.decode("utf-8"),
        )
        try:
            message = next(iter(consumer), None)
        finally:
            consumer.close()
        if message is None:
            return None
        try:
            return parse_link(message.value)
        except MalformedLink:
            logger.warning("Malformed link: %s", message.value)
            return None

    def close(self) -> None:
        self._producer.flush()
        self._producer.close()


def publish_links(relay: MessageRelay, topic: str, links: Iterable[Link]) -> int:
    """Send every link of ``links`` on ``topic``; return how many were sent."""
    sent = 0
    for link in links:
        relay.send(topic, link)
        logger.debug("Link published: %s", link)
        sent += 1
    return sent
