from __future__ import annotations

import pytest

from services.analytics import stats_kernel as sk
from services.report_errors import InsufficientDataError


def test_population_stddev_divides_by_n() -> None:
    assert sk.population_stddev([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)


def test_population_stddev_of_constant_series_is_zero() -> None:
    assert sk.population_stddev([0.1] * 7) == 0.0


def test_quantile_interpolates_between_order_statistics() -> None:
    values = [1, 2, 3, 4]
    assert sk.quantile(values, 0.25) == pytest.approx(1.75)
    assert sk.quantile(values, 0.5) == pytest.approx(2.5)
    assert sk.quantile(values, 1.0) == 4


def test_quantile_rejects_rank_outside_unit_interval() -> None:
    with pytest.raises(ValueError):
        sk.quantile([1, 2], 1.5)


def test_linear_regression_recovers_exact_line() -> None:
    slope, intercept = sk.linear_regression([(0, 1), (1, 3), (2, 5)])
    assert slope == pytest.approx(2.0)
    assert intercept == pytest.approx(1.0)


def test_pearson_is_zero_without_variance() -> None:
    assert sk.pearson([1, 1, 1], [1, 2, 3]) == 0.0
    assert sk.pearson([1, 2, 3], [3, 2, 1]) == pytest.approx(-1.0)


def test_mape_skips_zero_actuals() -> None:
    assert sk.mape([0, 100], [5, 110]) == pytest.approx(10.0)


def test_require_length_raises_insufficient_data() -> None:
    with pytest.raises(InsufficientDataError):
        sk.mean([])
