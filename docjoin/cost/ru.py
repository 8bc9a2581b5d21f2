"""
Request-unit (RU) cost estimation for built documents.

A size/shape model fitted on benchmark runs:
- Point read: tier lookup quantized by document size
- Write: polynomial regression over (size_kb, top-level property count)
- Query: linear in size_kb

The estimator is an explicit object so callers can inject fitted
coefficients without touching shared state.
"""

import json
import math
from dataclasses import dataclass, field
from itertools import combinations_with_replacement
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

# (upper bound in KB, RU) pairs; the last bound is infinite
DEFAULT_READ_TIERS: List[Tuple[float, float]] = [
    (1.0, 1.0),
    (2.0, 1.05),
    (4.0, 1.14),
    (9.96, 1.33),
    (20.03, 1.67),
    (38.35, 2.19),
    (76.84, 4.76),
    (154.75, 9.95),
    (350.79, 20.29),
    (512.0, 40.95),
    (1024.0, 145.9),
    (math.inf, 291.8),
]


@dataclass
class WriteModel:
    intercept: float
    coefs: List[float]
    degree: int = 1


@dataclass
class QueryModel:
    intercept: float
    coef_size: float


DEFAULT_WRITE_MODEL = WriteModel(
    intercept=13.185295958304778,
    coefs=[
        -0.024661720142774183,
        0.49297157041454753,
        0.0016724699303381364,
        -0.004896549452692917,
        0.008337026077446397,
        0.000005025511857992271,
        -0.00003736113601646163,
        0.0000869072230423873,
        -0.00006860666010480992,
    ],
    degree=3,
)

DEFAULT_QUERY_MODEL = QueryModel(
    intercept=2.8080338276807506,
    coef_size=0.015162674622869772,
)


@dataclass
class RuModelConfig:
    read_tiers: List[Tuple[float, float]] = field(default_factory=lambda: list(DEFAULT_READ_TIERS))
    write_model: WriteModel = field(default_factory=lambda: DEFAULT_WRITE_MODEL)
    query_model: QueryModel = field(default_factory=lambda: DEFAULT_QUERY_MODEL)


@dataclass
class RuEstimate:
    size_bytes: int
    size_kb: float
    num_properties: int
    read_point_ru: float
    read_query_ru: float
    write_ru: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sizeBytes": self.size_bytes,
            "sizeKB": self.size_kb,
            "numProperties": self.num_properties,
            "readPointRU": self.read_point_ru,
            "readQueryRU": self.read_query_ru,
            "writeRU": self.write_ru,
        }


def document_size_bytes(doc: Any) -> int:
    """UTF-8 size of the compact JSON serialization."""
    if doc is None:
        return 0
    return len(json.dumps(doc, separators=(",", ":"), ensure_ascii=False, default=str).encode("utf-8"))


def count_top_level_properties(doc: Any) -> int:
    return len(doc) if isinstance(doc, dict) else 0


def polynomial_features(xs: Sequence[float], degree: int) -> np.ndarray:
    """
    Polynomial terms without bias, in scikit-learn's PolynomialFeatures order.

    For two inputs and degree 3:
    [x0, x1, x0^2, x0*x1, x1^2, x0^3, x0^2*x1, x0*x1^2, x1^3]
    """
    values = np.asarray(xs, dtype=float)
    terms = []
    for d in range(1, degree + 1):
        for combo in combinations_with_replacement(range(len(values)), d):
            terms.append(np.prod(values[list(combo)]))
    return np.array(terms)


class RuEstimator:
    """Estimates read, query and write RU for one document."""

    def __init__(self, config: Optional[RuModelConfig] = None):
        self.config = config or RuModelConfig()

    def estimate_read_point_ru(self, size: Optional[float] = None, is_bytes: bool = True) -> float:
        if size is None or not math.isfinite(size):
            size_kb = 0.0
        else:
            size_kb = size / 1024 if is_bytes else size

        tiers = self.config.read_tiers
        if tiers:
            for threshold, ru in tiers:
                if size_kb <= threshold:
                    return ru
            return tiers[-1][1]
        return float(max(1, math.ceil(size_kb)))

    def estimate_query_ru(self, size: float, is_bytes: bool = True) -> float:
        size_kb = size / 1024 if is_bytes else size
        model = self.config.query_model
        return max(0.0, model.intercept + model.coef_size * size_kb)

    def estimate_write_ru(self, size: float, num_properties: int = 0, is_bytes: bool = True) -> float:
        size_kb = size / 1024 if is_bytes else size
        model = self.config.write_model
        xs = [size_kb, float(num_properties)]
        features = polynomial_features(xs, model.degree) if model.degree > 1 else np.array(xs)
        coefs = np.zeros(len(features))
        usable = min(len(coefs), len(model.coefs))
        coefs[:usable] = model.coefs[:usable]
        return max(0.0, float(model.intercept + features @ coefs))

    def estimate(self, doc: Any) -> RuEstimate:
        size_bytes = document_size_bytes(doc)
        num_properties = count_top_level_properties(doc)
        return RuEstimate(
            size_bytes=size_bytes,
            size_kb=size_bytes / 1024,
            num_properties=num_properties,
            read_point_ru=self.estimate_read_point_ru(size_bytes),
            read_query_ru=self.estimate_query_ru(size_bytes),
            write_ru=self.estimate_write_ru(size_bytes, num_properties),
        )
