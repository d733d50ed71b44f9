"""Configuration of the monitor, loaded once and passed explicitly.

Settings come from an optional YAML or JSON file and from command line
overrides. The result is an immutable :class:`MonitorConfig` value that the
CLI hands to each command; nothing reads configuration from global state.

Example file::

    store:
      hostname: bolt://localhost:7687
      username: neo4j
      password: password
    relay:
      broker: localhost:9092
      topic: links
    aggregation:
      mode: RUNNING_AVERAGE
    evaluation:
      rank: 3
      workers: 4
    polling:
      period: 5
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any

import yaml

from .store import AggregationMode, AggregationPolicy


@dataclass(frozen=True)
class StoreConfig:
    """Connection settings of the score store."""

    hostname: str = "bolt://localhost:7687"
    username: str = "neo4j"
    password: str = "password"

    def __str__(self) -> str:
        # Never print the password in logs
        return f"{self.username}@{self.hostname}"


@dataclass(frozen=True)
class RelayConfig:
    """Connection settings of the message relay."""

    broker: str = "localhost:9092"
    topic: str = "links"
    group: str = "testers"


@dataclass(frozen=True)
class EvaluationConfig:
    """Defaults for evaluation runs."""

    rank: int = 3
    workers: int = 1


@dataclass(frozen=True)
class PollingConfig:
    """Polling behaviour of the commands that wait on the score store."""

    period: float = 5.0
    stability_polls: int = 10
    max_polls: int | None = None


@dataclass(frozen=True)
class MonitorConfig:
    """Complete configuration of one CLI invocation."""

    store: StoreConfig = field(default_factory=StoreConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    aggregation: AggregationPolicy = field(default_factory=AggregationPolicy)
    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    log_level: str = "INFO"


def load_configuration(config_path: str) -> dict[str, Any]:
    """Load a configuration mapping from a YAML or JSON file.

    The function raises ``ValueError`` if the extension is not recognised or
    if the file does not parse to a mapping.
    """

    with open(config_path, "r", encoding="utf-8") as config_file:
        configuration_text = config_file.read()

    if config_path.endswith((".yaml", ".yml")):
        configuration = yaml.safe_load(configuration_text)
    elif config_path.endswith(".json"):
        configuration = json.loads(configuration_text)
    else:
        raise ValueError("Config file must end with .yaml, .yml, or .json.")

    if configuration is None:
        configuration = {}
    if not isinstance(configuration, dict):
        raise ValueError("Config file must contain a mapping at the top level.")

    return configuration


def _get_mapping_value(configuration: dict[str, Any], dotted_key: str, default: Any) -> Any:
    """Retrieve a nested value using dotted key notation, or ``default``.

    A dotted key such as ``store.hostname`` is interpreted as nested
    dictionaries. A section that exists but is not a mapping is an error.
    """

    value: Any = configuration
    for key_part in dotted_key.split("."):
        if value is None:
            return default
        if not isinstance(value, dict):
            raise ValueError(f"Config section is not a mapping: {dotted_key}")
        if key_part not in value:
            return default
        value = value[key_part]
    return default if value is None else value


def _as_positive_int(value: Any, dotted_key: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Config field must be an integer: {dotted_key}") from None
    if number < 1:
        raise ValueError(f"Config field must be positive: {dotted_key}")
    return number


def configuration_from_mapping(configuration: dict[str, Any]) -> MonitorConfig:
    """Build a validated :class:`MonitorConfig` from a loaded mapping.

    Missing fields fall back to the dataclass defaults. Values are converted
    to their expected types and invalid values raise ``ValueError`` with the
    dotted name of the offending field.
    """

    defaults = MonitorConfig()

    def get(dotted_key: str, default: Any) -> Any:
        return _get_mapping_value(configuration, dotted_key, default)

    mode_name = str(get("aggregation.mode", defaults.aggregation.mode.value)).upper()
    try:
        mode = AggregationMode(mode_name)
    except ValueError:
        known = ", ".join(m.value for m in AggregationMode)
        raise ValueError(
            f"Config field aggregation.mode must be one of: {known}"
        ) from None

    max_polls = get("polling.max_polls", None)
    period = float(get("polling.period", defaults.polling.period))
    if period < 0:
        raise ValueError("Config field must not be negative: polling.period")

    return MonitorConfig(
        store=StoreConfig(
            hostname=str(get("store.hostname", defaults.store.hostname)),
            username=str(get("store.username", defaults.store.username)),
            password=str(get("store.password", defaults.store.password)),
        ),
        relay=RelayConfig(
            broker=str(get("relay.broker", defaults.relay.broker)),
            topic=str(get("relay.topic", defaults.relay.topic)),
            group=str(get("relay.group", defaults.relay.group)),
        ),
        aggregation=AggregationPolicy(
            mode=mode,
            factor=float(get("aggregation.factor", defaults.aggregation.factor)),
        ),
        evaluation=EvaluationConfig(
            rank=_as_positive_int(
                get("evaluation.rank", defaults.evaluation.rank), "evaluation.rank"
            ),
            workers=_as_positive_int(
                get("evaluation.workers", defaults.evaluation.workers),
                "evaluation.workers",
            ),
        ),
        polling=PollingConfig(
            period=period,
            stability_polls=_as_positive_int(
                get("polling.stability_polls", defaults.polling.stability_polls),
                "polling.stability_polls",
            ),
            max_polls=None
            if max_polls is None
            else _as_positive_int(max_polls, "polling.max_polls"),
        ),
        log_level=str(get("log_level", defaults.log_level)).upper(),
    )


def apply_overrides(config: MonitorConfig, **overrides: Any) -> MonitorConfig:
    """Return ``config`` with the non-None command line overrides applied.

    Recognised keys are ``hostname``, ``username``, ``password`` (store),
    ``broker``, ``topic`` (relay), ``rank``, ``workers`` (evaluation),
    ``period`` (polling) and ``log_level``.
    """

    store_fields = {
        key: overrides[key]
        for key in ("hostname", "username", "password")
        if overrides.get(key) is not None
    }
    relay_fields = {
        key: overrides[key] for key in ("broker", "topic") if overrides.get(key) is not None
    }
    evaluation_fields = {
        key: _as_positive_int(overrides[key], f"--{key}")
        for key in ("rank", "workers")
        if overrides.get(key) is not None
    }

    updated = replace(
        config,
        store=replace(config.store, **store_fields),
        relay=replace(config.relay, **relay_fields),
        evaluation=replace(config.evaluation, **evaluation_fields),
    )
    if overrides.get("period") is not None:
        updated = replace(
            updated, polling=replace(updated.polling, period=float(overrides["period"]))
        )
    if overrides.get("log_level") is not None:
        updated = replace(updated, log_level=str(overrides["log_level"]).upper())
    return updated
