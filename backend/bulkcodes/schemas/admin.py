from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from bulkcodes.services.batch import (
    Campaign,
    CouponDuration,
    DiscountType,
    clamp_count,
    clean_product_ids,
)
from bulkcodes.services.codegen import GenerationConfig
from bulkcodes.services.export import ExportMode


class ApiKeyUpdateRequest(BaseModel):
    api_key: str


class CampaignCreateRequest(BaseModel):
    campaign: str = ""
    product_ids: list[str] = Field(default_factory=list)
    discount_type: Literal["percent", "amount"] = "percent"
    discount_value: str
    currency: str = ""
    count: int = 1
    prefix: str = ""
    code_pattern: str = "readable"
    code_group_sep: str = "-"
    group_sizes: list[int] = Field(default_factory=lambda: [8], max_length=6)
    duration: Literal["once", "forever", "repeating"] = "once"
    duration_months: int = Field(default=0, ge=0)
    usage_limit: int = 1
    usage_per_customer: int = 1
    end_date: str | None = None
    starts_at: str | None = None
    ends_at: str | None = None
    export_mode: str = "full"

    @field_validator("discount_value", mode="before")
    @classmethod
    def _coerce_value(cls, value: object) -> str:
        return "" if value is None else str(value)

    @field_validator("count", mode="before")
    @classmethod
    def _clamp_count(cls, value: object) -> int:
        try:
            return clamp_count(int(value))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 1

    @field_validator("usage_limit", "usage_per_customer", mode="before")
    @classmethod
    def _at_least_one(cls, value: object) -> int:
        try:
            return max(1, abs(int(value)))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 1

    def to_campaign(self) -> Campaign:
        return Campaign(
            name=self.campaign,
            discount_type=DiscountType(self.discount_type),
            discount_value=self.discount_value,
            currency=self.currency,
            count=self.count,
            product_ids=clean_product_ids(self.product_ids),
            generation=GenerationConfig.build(
                prefix=self.prefix,
                pattern=self.code_pattern,
                group_sizes=self.group_sizes,
                separator=self.code_group_sep,
            ),
            duration=CouponDuration(self.duration),
            duration_months=self.duration_months,
            usage_limit=self.usage_limit,
            usage_per_customer=self.usage_per_customer,
            end_date=self.end_date,
            starts_at=self.starts_at,
            ends_at=self.ends_at,
            export_mode=ExportMode.parse(self.export_mode),
        )


class CatalogItem(BaseModel):
    id: str
    name: str
    archived: bool = False


class ExportFileResponse(BaseModel):
    name: str
    kind: str
    size: int
    download_url: str
