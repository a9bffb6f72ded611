"""Schemas for business report and analytics APIs."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

ReportTypeLiteral = Literal["SALES", "INVENTORY", "FINANCIAL", "USERS", "LOGS", "ANALYTICS", "PREDICTIVE", "CUSTOM"]
ReportFormatLiteral = Literal["PDF", "EXCEL", "CSV", "HTML", "JSON"]
ReportStatusLiteral = Literal["PENDING", "PROCESSING", "ANALYZING", "COMPLETED", "FAILED"]


class AnalysisFlags(BaseModel):
    anomalyDetection: bool = Field(default=True, description="Run anomaly detection on numeric fields.")
    forecasting: bool = Field(default=True, description="Forecast numeric fields.")
    kpiSuggestions: bool = Field(default=True, description="Ask for KPI suggestions.")


class ReportCreateRequest(BaseModel):
    type: ReportTypeLiteral
    format: ReportFormatLiteral
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    data: List[Dict[str, Any]] = Field(..., min_length=1, description="Records to render, one object per row.")
    columns: Optional[List[str]] = Field(default=None, description="Columns to include, in order.")
    chartConfig: Optional[Dict[str, Any]] = None
    filters: Optional[Dict[str, Any]] = None
    dataSource: Optional[str] = Field(default=None, description="Name of the originating data source.")
    emailTo: Optional[str] = Field(default=None, description="Deliver the artifact to this address when ready.")
    enableAnalysis: bool = Field(default=False, description="Queue statistical analysis alongside rendering.")
    analysis: AnalysisFlags = Field(default_factory=AnalysisFlags)


class ReportCreateResponse(BaseModel):
    reportId: UUID
    status: ReportStatusLiteral
    jobId: str
    analysisJobId: Optional[str] = None
    estimatedSize: int = Field(..., description="Rough artifact size in bytes.")


class InsightSchema(BaseModel):
    type: str
    title: str
    description: str
    confidence: float
    actionable: bool = False
    data: Optional[Any] = None
    timestamp: Optional[datetime] = None
    runId: Optional[str] = None


class ReportResponse(BaseModel):
    id: UUID
    userId: str
    type: ReportTypeLiteral
    format: ReportFormatLiteral
    status: ReportStatusLiteral
    title: Optional[str] = None
    description: Optional[str] = None
    recordCount: Optional[int] = None
    insights: List[InsightSchema] = Field(default_factory=list)
    kpiSuggestions: List[Dict[str, Any]] = Field(default_factory=list)
    dataQuality: Optional[Dict[str, Any]] = None
    downloadUrl: Optional[str] = None
    fileSize: Optional[int] = None
    fileSizeLabel: Optional[str] = None
    error: Optional[str] = None
    downloadCount: int = 0
    processingMs: Optional[int] = None
    createdAt: Optional[datetime] = None
    completedAt: Optional[datetime] = None
    expiresAt: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True)


class ReportListResponse(BaseModel):
    reports: List[ReportResponse]
    total: int
    page: int
    limit: int
    totalPages: int


class ReportEmailRequest(BaseModel):
    emailTo: str
    subject: Optional[str] = Field(default=None, max_length=200)
    message: Optional[str] = Field(default=None, max_length=1000)


class ReportEmailResponse(BaseModel):
    status: str
    emailTo: str


class AnomalyRequest(BaseModel):
    values: List[float] = Field(..., min_length=1)
    threshold: float = Field(default=2.5, gt=0)
    method: str = Field(default="zscore", description="zscore, iqr, isolation_forest or time_series_zscore.")
    window: Optional[int] = Field(default=None, ge=2, description="Window size for the time-series method.")


class AnomalyPoint(BaseModel):
    index: int
    value: float
    score: float
    isAnomaly: bool


class AnomalyResponse(BaseModel):
    method: str
    threshold: float
    perPoint: List[AnomalyPoint]
    anomalyCount: int
    anomalyPercentage: float


class ForecastRequest(BaseModel):
    values: List[float] = Field(..., min_length=1)
    periods: int = Field(default=3, ge=1, le=24)
    confidence: float = Field(default=0.95, gt=0, lt=1)
    seasonalPeriod: Optional[int] = Field(default=None, ge=2)


class ForecastResponse(BaseModel):
    method: str
    trend: Literal["upward", "downward", "stable"]
    forecasts: List[float]
    confidence: float
    mape: Optional[float] = None
    rSquared: Optional[float] = None


class QualityRequest(BaseModel):
    data: List[Dict[str, Any]] = Field(default_factory=list)
    fields: Optional[List[str]] = None


class QualityResponse(BaseModel):
    completeness: float
    accuracy: float
    consistency: float
    outliers: int
    missingValues: int
    duplicates: int
    grade: str
    report: str


class KpiRequest(BaseModel):
    dataSource: str = Field(..., min_length=1)
    businessContext: Optional[str] = None
    maxSuggestions: int = Field(default=5, ge=1, le=10)
    existingKpis: List[str] = Field(default_factory=list)


class KpiSuggestionSchema(BaseModel):
    name: str
    description: str
    formula: str
    importance: Literal["high", "medium", "low"]
    category: str
    visualizationType: str
    currentValue: Optional[float] = None
    targetValue: Optional[float] = None


class KpiResponse(BaseModel):
    suggestions: List[KpiSuggestionSchema]
