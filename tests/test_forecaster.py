from __future__ import annotations

import pytest

from services.analytics import forecaster
from services.report_errors import InsufficientDataError, ValidationError


def test_linear_forecast_for_short_growing_series() -> None:
    result = forecaster.forecast([1000, 1050, 1100, 1200, 1250, 1300], 3)

    assert result.method == forecaster.METHOD_LINEAR
    assert result.trend == forecaster.TREND_UP
    assert len(result.forecasts) == 3
    assert all(value >= 1300 for value in result.forecasts)
    assert result.forecasts == sorted(result.forecasts)
    assert 0.0 <= result.confidence <= 1.0
    assert result.r_squared is not None and result.r_squared > 0.9


def test_long_series_uses_weighted_moving_average() -> None:
    series = [100 + 10 * index for index in range(12)]
    result = forecaster.forecast(series, 2)

    assert result.method == forecaster.METHOD_MOVING_AVERAGE
    assert result.trend == forecaster.TREND_UP
    assert len(result.forecasts) == 2
    assert 0.5 <= result.confidence <= 0.95
    assert result.forecasts[0] > series[-1]


def test_forecasts_are_never_negative() -> None:
    result = forecaster.forecast([50, 30, 10], 5)

    assert result.trend == forecaster.TREND_DOWN
    assert all(value >= 0.0 for value in result.forecasts)
    assert result.forecasts[-1] == 0.0


def test_flat_series_is_stable() -> None:
    assert forecaster.forecast([10, 10, 10, 10], 1).trend == forecaster.TREND_STABLE


def test_fewer_than_three_points_is_insufficient() -> None:
    with pytest.raises(InsufficientDataError):
        forecaster.forecast([1, 2], 1)


@pytest.mark.parametrize("periods", [0, 25])
def test_periods_outside_range_are_rejected(periods: int) -> None:
    with pytest.raises(ValidationError):
        forecaster.forecast([1, 2, 3], periods)


def test_seasonal_forecast_falls_back_when_series_is_short() -> None:
    result = forecaster.forecast([1, 2, 3, 4, 5, 6], 2, seasonal_period=4)
    assert result.method == forecaster.METHOD_LINEAR


def test_seasonal_forecast_repeats_pattern() -> None:
    pattern = [10, 20, 30, 20]
    series = pattern * 4
    result = forecaster.forecast(series, 4, seasonal_period=4)

    assert result.method == forecaster.METHOD_SEASONAL
    assert len(result.forecasts) == 4
    assert result.forecasts[2] > result.forecasts[0]


def test_as_dict_omits_missing_r_squared() -> None:
    payload = forecaster.weighted_moving_average_forecast([float(value) for value in range(1, 13)], 1).as_dict()
    assert "rSquared" not in payload
    assert payload["forecasts"]
