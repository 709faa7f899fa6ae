from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Stage(str, Enum):
    PRE_LAUNCH = "pre-launch"
    EARLY_STAGE = "early-stage"
    GROWTH = "growth"
    MATURE = "mature"


class BusinessModel(str, Enum):
    SUBSCRIPTION = "subscription"
    USAGE_BASED = "usage-based"
    ONE_TIME = "one-time"
    FREEMIUM = "freemium"
    OTHER = "other"


class GtmApproach(str, Enum):
    SELF_SERVICE = "self-service"
    SALES_TEAM = "sales-team"
    PARTNERS = "partners"
    MIX = "mix"


BusinessType = Literal["b2b", "b2c"]
CustomerProblem = Annotated[str, Field(min_length=10)]


# --- Requests ---


class ProductInput(_CamelModel):
    """The questionnaire describing one business. Immutable for the whole run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    business_type: BusinessType
    product_overview: str = Field(min_length=50)
    customer_problems: list[CustomerProblem] = Field(min_length=3)
    price_range_min: float = Field(ge=0)
    price_range_max: float = Field(ge=0)

    stage: Stage | None = None
    business_model: BusinessModel | None = None
    business_model_other: str | None = None
    revenue_goal: float | None = Field(default=None, ge=0)
    vision: str | None = None
    gtm_approach: GtmApproach | None = None
    has_free_trial: bool = False
    free_trial_days: int | None = Field(default=None, ge=1, le=365)

    # B2B
    company_size_min: int | None = Field(default=None, ge=1)
    company_size_max: int | None = Field(default=None, ge=1)
    industry_focus: str | None = None
    job_titles: str | None = None
    budget_range_min: float | None = Field(default=None, ge=0)
    budget_range_max: float | None = Field(default=None, ge=0)

    # B2C
    age_range_min: int | None = Field(default=None, ge=1, le=100)
    age_range_max: int | None = Field(default=None, ge=1, le=100)
    income_level: str | None = None
    interests: str | None = None
    online_presence: str | None = None

    product_roadmap: str | None = None
    competitors: str | None = None
    existing_customers: str | None = None

    @model_validator(mode="after")
    def _check_price_range(self) -> "ProductInput":
        if self.price_range_max < self.price_range_min:
            raise ValueError("Maximum price must be greater than or equal to minimum price")
        return self

    @property
    def industry(self) -> str:
        return self.industry_focus or self.interests or "general"

    @property
    def target_audience(self) -> str:
        return self.job_titles or "general audience"

    @property
    def segment_target(self) -> str:
        if self.business_type == "b2b":
            return self.job_titles or "business buyers"
        return self.interests or "consumers"


# --- Responses ---


class SegmentationResult(_CamelModel):
    market_analysis: dict[str, Any]
    segments: list[dict[str, Any]]
    personas: list[dict[str, Any]]
    implementation_roadmap: dict[str, Any]
    created_at: str
    warnings: list[str] | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class StartJobResponse(_CamelModel):
    job_id: str


class JobPollResponse(BaseModel):
    status: Literal["processing", "completed", "error"]
    result: dict[str, Any] | None = None
    error: str | None = None
    costs: dict[str, Any]


class ErrorResponse(BaseModel):
    error: str
    details: str | None = None
    costs: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    environment: str
    timestamp: str


class ExtractDocumentResponse(_CamelModel):
    extracted_data: dict[str, Any]
