"""Graph Monitor: dataset preparation and evaluation for link-prediction pipelines.

This package provides:
- a link record format with its parser and formatter
- line-oriented dataset IO that skips malformed records
- multigraph helpers for connected components and the largest component
- connectivity-preserving train/test split generation
- a score store contract with in-memory and Neo4j backends
- a Kafka relay for publishing dataset links
- AUC and Precision@k evaluation against the score store
- a command line interface that ties everything together
"""

__all__ = [
    "link",
    "io",
    "graph",
    "datagen",
    "store",
    "neo4j_store",
    "relay",
    "evaluation",
    "config",
    "monitor",
    "cli",
    "utils",
]
