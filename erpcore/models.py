"""Data models for retry policies, error records and import results."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, model_validator


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class Severity(str, Enum):
    """Error log severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RetryPolicy(BaseModel):
    """Exponential backoff configuration. Delays are in milliseconds."""
    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=1000, ge=0)
    max_delay: float = Field(default=10000, ge=0)
    exponential_base: float = Field(default=2, ge=0)

    def delay_for(self, attempt: int) -> float:
        """Delay in milliseconds before retry number ``attempt`` (1-based)."""
        if attempt < 1:
            return 0.0
        delay = self.base_delay * self.exponential_base ** (attempt - 1)
        return float(min(delay, self.max_delay))


class ErrorLogEntry(BaseModel):
    """A failure record handed to the error log."""
    error_type: str
    error_code: Optional[str] = None
    error_message: str
    stack_trace: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    severity: Severity = Severity.MEDIUM
    logged_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Notification(BaseModel):
    """User-facing toast message."""
    title: str
    description: str
    variant: str = "default"


class DateConversionResult(BaseModel):
    """Outcome of converting and validating a GRN date."""
    date: Optional[str] = None
    is_valid: bool = False
    warnings: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _date_matches_validity(self) -> "DateConversionResult":
        if (self.date is not None) != self.is_valid:
            raise ValueError("date must be set exactly when is_valid is true")
        return self


class ItemCodeValidation(BaseModel):
    """Normalized item code and whether it is well formed."""
    code: str
    is_valid: bool
    suggestions: Optional[List[str]] = None


class HeaderValidation(BaseModel):
    """Result of checking a sheet's header row."""
    valid: bool
    errors: List[str] = Field(default_factory=list)


class GRNStagingRecord(BaseModel):
    """A spreadsheet row normalized for the GRN staging table."""
    grn_number: str
    item_code: str
    supplier_name: str = ""
    date: str
    qty_received: float = 0
    unit_rate: float = 0
    total_amount: float = 0
    invoice_number: str = ""
    invoice_date: Optional[str] = None
    quality_status: str = "pending"
    remarks: str = ""
    uom: str = "PCS"
    source_row_number: int
    validation_status: str = "valid"
    validation_errors: List[str] = Field(default_factory=list)
    validation_warnings: List[str] = Field(default_factory=list)
    is_duplicate: bool = False
    duplicate_reason: Optional[str] = None


class DataQualityMetrics(BaseModel):
    """Quality scores (0-100) for a staged import batch."""
    overall_quality_score: int = 0
    completeness_score: int = 0
    accuracy_score: int = 0
    consistency_score: int = 0
    validity_score: int = 0
    total_records: int = 0
    valid_records: int = 0
    invalid_records: int = 0
    duplicate_records: int = 0
    records_with_warnings: int = 0
    recommendations: List[str] = Field(default_factory=list)
