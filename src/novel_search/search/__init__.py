"""Similarity search engine and query options."""

from novel_search.search.engine import (
    PERTURBATION_AMPLITUDE,
    NoiseSource,
    SearchEngine,
    SearchMode,
    SearchOptions,
    SearchResult,
    perturb,
    seeded_noise,
    uniform_noise,
)

__all__ = [
    "PERTURBATION_AMPLITUDE",
    "NoiseSource",
    "SearchEngine",
    "SearchMode",
    "SearchOptions",
    "SearchResult",
    "perturb",
    "seeded_noise",
    "uniform_noise",
]
