"""Domain tests for similarity functions."""

import pytest

from study_qa.domain.similarity import cosine


def test_cosine_similarity():
    assert abs(cosine((1.0, 0.0, 0.0), (1.0, 0.0, 0.0)) - 1.0) < 1e-6
    assert abs(cosine((1.0, 0.0, 0.0), (0.0, 1.0, 0.0))) < 1e-6
    assert abs(cosine((1.0, 0.0), (-1.0, 0.0)) + 1.0) < 1e-6


def test_cosine_zero_vector():
    assert cosine((0.0, 0.0), (1.0, 0.0)) == 0.0


def test_cosine_dimension_mismatch():
    with pytest.raises(ValueError):
        cosine((1.0,), (1.0, 0.0))
