"""
Unit tests for RU cost estimation.
"""

import math

import numpy as np
import pytest

from docjoin.cost.ru import (
    QueryModel,
    RuEstimator,
    RuModelConfig,
    WriteModel,
    count_top_level_properties,
    document_size_bytes,
    polynomial_features,
)


def make_doc(size_kb):
    """Document whose compact JSON is just over size_kb kilobytes."""
    return {"a": "x" * (size_kb * 1024 - 7)}


@pytest.fixture
def estimator():
    return RuEstimator()


class TestDocumentShape:
    def test_size_of_compact_json(self):
        assert document_size_bytes({"a": 1}) == len('{"a":1}')

    def test_size_counts_utf8_bytes(self):
        assert document_size_bytes({"a": "é"}) == len('{"a":"é"}'.encode("utf-8"))

    def test_size_of_none(self):
        assert document_size_bytes(None) == 0

    def test_top_level_properties(self):
        assert count_top_level_properties({"a": 1, "b": {"c": 2}}) == 2
        assert count_top_level_properties([1, 2]) == 0


class TestPolynomialFeatures:
    def test_degree_three_ordering(self):
        features = polynomial_features([2.0, 3.0], 3)

        expected = [2, 3, 4, 6, 9, 8, 12, 18, 27]
        assert np.allclose(features, expected)

    def test_degree_one_is_identity(self):
        assert np.allclose(polynomial_features([2.0, 3.0], 1), [2.0, 3.0])


class TestReadPointRu:
    """Tests for the tiered point-read model."""

    def test_default_is_one(self, estimator):
        assert estimator.estimate_read_point_ru() == pytest.approx(1.0)

    def test_small_bytes(self, estimator):
        assert estimator.estimate_read_point_ru(512) == pytest.approx(1.0)

    def test_tiers_follow_size(self, estimator):
        ru1 = estimator.estimate(make_doc(1)).read_point_ru
        ru3 = estimator.estimate(make_doc(3)).read_point_ru

        assert ru1 == pytest.approx(1.05)
        assert ru3 == pytest.approx(1.14)

    def test_size_in_kb(self, estimator):
        assert estimator.estimate_read_point_ru(600, is_bytes=False) == pytest.approx(145.9)

    def test_huge_document_hits_last_tier(self, estimator):
        assert estimator.estimate_read_point_ru(10_000, is_bytes=False) == pytest.approx(291.8)

    def test_non_finite_size_treated_as_zero(self, estimator):
        assert estimator.estimate_read_point_ru(math.nan) == pytest.approx(1.0)

    def test_without_tiers_rounds_up_kb(self):
        estimator = RuEstimator(RuModelConfig(read_tiers=[]))

        assert estimator.estimate_read_point_ru(2.2, is_bytes=False) == 3.0


class TestQueryAndWriteRu:
    """Tests for the regression models."""

    def test_query_one_kb(self, estimator):
        ru = estimator.estimate(make_doc(1)).read_query_ru

        assert 2.5 < ru < 3.5

    def test_query_ten_kb(self, estimator):
        ru = estimator.estimate(make_doc(10)).read_query_ru

        assert 2.7 < ru < 3.5

    def test_query_grows_with_size(self, estimator):
        assert estimator.estimate_query_ru(20480) > estimator.estimate_query_ru(10240)

    def test_write_grows_with_size(self, estimator):
        small = estimator.estimate(make_doc(1))
        large = estimator.estimate(make_doc(512))

        assert small.write_ru > 0
        assert large.write_ru > small.write_ru

    def test_injected_models(self):
        config = RuModelConfig(
            write_model=WriteModel(intercept=1.0, coefs=[2.0, 3.0], degree=1),
            query_model=QueryModel(intercept=0.5, coef_size=1.0),
        )
        estimator = RuEstimator(config)

        assert estimator.estimate_write_ru(2.0, 1, is_bytes=False) == pytest.approx(8.0)
        assert estimator.estimate_query_ru(2.0, is_bytes=False) == pytest.approx(2.5)

    def test_estimates_never_negative(self):
        config = RuModelConfig(
            write_model=WriteModel(intercept=-100.0, coefs=[0.0, 0.0], degree=1),
            query_model=QueryModel(intercept=-100.0, coef_size=0.0),
        )
        estimator = RuEstimator(config)

        assert estimator.estimate_write_ru(1024) == 0.0
        assert estimator.estimate_query_ru(1024) == 0.0


class TestEstimate:
    def test_to_dict_keys(self, estimator):
        result = estimator.estimate({"a": 1, "b": 2}).to_dict()

        assert set(result) == {
            "sizeBytes", "sizeKB", "numProperties",
            "readPointRU", "readQueryRU", "writeRU",
        }
        assert result["numProperties"] == 2
        assert result["sizeBytes"] == len('{"a":1,"b":2}')
