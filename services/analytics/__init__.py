"Statistical analysis helpers for report insights."

from .anomaly_detector import AnomalyResult, detect, detect_time_series  # noqa: F401
from .correlation import Correlation, find_correlations  # noqa: F401
from .data_quality import DataQualityMetrics, build_quality_report, score  # noqa: F401
from .forecaster import ForecastResult, forecast  # noqa: F401
