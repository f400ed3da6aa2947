from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable

import structlog

from bulkcodes.services.codegen import GenerationConfig, generate_code
from bulkcodes.services.export import ExportError, ExportMode, ExportWriters, FullRow
from bulkcodes.services.surecart import CouponDraft, PromotionDraft, SureCartApiError, SureCartClient

logger = structlog.get_logger(__name__)

MIN_CODES = 1
MAX_CODES = 1000

PERCENT_MIN = Decimal("0.5")
PERCENT_MAX = Decimal("100.5")
MAX_AMOUNT = Decimal("1000000")

_PRODUCT_ID_STRIP_RE = re.compile(r"[^A-Za-z0-9_-]")


class CampaignError(ValueError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class DiscountType(str, Enum):
    PERCENT = "percent"
    AMOUNT = "amount"


class CouponDuration(str, Enum):
    ONCE = "once"
    FOREVER = "forever"
    REPEATING = "repeating"


@dataclass(frozen=True)
class Campaign:
    """Everything the operator submits for one run."""

    name: str = ""
    discount_type: DiscountType = DiscountType.PERCENT
    discount_value: str = ""
    currency: str = ""
    count: int = 1
    product_ids: tuple[str, ...] = ()
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    duration: CouponDuration = CouponDuration.ONCE
    duration_months: int = 0
    usage_limit: int = 1
    usage_per_customer: int = 1
    end_date: str | None = None
    starts_at: str | None = None
    ends_at: str | None = None
    export_mode: ExportMode = ExportMode.FULL


@dataclass(frozen=True)
class PromotionTemplate:
    max_redemptions: int = 1
    active: bool | None = None
    starts_at: int | None = None
    ends_at: int | None = None

    def draft(self, coupon_id: str, code: str) -> PromotionDraft:
        return PromotionDraft(
            coupon_id=coupon_id,
            code=code,
            max_redemptions=self.max_redemptions,
            active=self.active,
            starts_at=self.starts_at,
            ends_at=self.ends_at,
        )


@dataclass(frozen=True)
class RowContext:
    campaign: str
    discount_type: str
    value: str
    currency: str


@dataclass
class BatchCounts:
    created: int = 0
    errors: int = 0


@dataclass
class RunResult:
    created_count: int
    error_count: int
    csv_paths: dict[str, Path]
    coupon_id: str = ""
    campaign: str = ""

    @property
    def message(self) -> str:
        errors = f" ({self.error_count} errors)" if self.error_count else ""
        return (
            f'Created coupon "{self.campaign or "Bulk"}" and '
            f"{self.created_count} promotion codes{errors}."
        )


def clamp_count(count: int | None) -> int:
    return max(MIN_CODES, min(MAX_CODES, int(count or 0)))


def clean_product_ids(raw_ids: Iterable[str] | None) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for raw in raw_ids or ():
        cleaned = _PRODUCT_ID_STRIP_RE.sub("", str(raw or "").strip())
        if cleaned:
            seen.setdefault(cleaned, None)
    return tuple(seen)


def _parse_decimal(raw: str | float | int | None) -> Decimal | None:
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    return value if value.is_finite() else None


def parse_utc_timestamp(raw: str | None, *, field_name: str) -> int | None:
    if raw is None or not str(raw).strip():
        return None
    try:
        text = str(raw).strip()
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        moment = datetime.fromisoformat(text)
    except ValueError as exc:
        raise CampaignError("INVALID_DATE", f"Invalid {field_name}.") from exc
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


def build_coupon_draft(campaign: Campaign, *, now: datetime | None = None) -> tuple[CouponDraft, RowContext]:
    """Validate the discount settings and build the coupon payload.

    Raises ``CampaignError`` for anything that must stop the run before the
    first remote call.
    """
    value = _parse_decimal(campaign.discount_value)
    currency = (campaign.currency or "").strip().lower()

    percent_off: int | None = None
    amount_off: int | None = None
    if campaign.discount_type is DiscountType.PERCENT:
        # bounds checked before rounding; huge exponents overflow quantize
        if value is None or not PERCENT_MIN <= value < PERCENT_MAX:
            raise CampaignError("INVALID_PERCENT", "Percent must be between 1 and 100.")
        percent_off = int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        display_value = str(percent_off)
    else:
        if value is None or value <= 0:
            raise CampaignError("INVALID_AMOUNT", "Amount must be greater than zero.")
        if value > MAX_AMOUNT:
            raise CampaignError("INVALID_AMOUNT", f"Amount must not exceed {MAX_AMOUNT}.")
        if not currency:
            raise CampaignError("MISSING_CURRENCY", "Currency is required for fixed amount discounts.")
        amount_off = int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        display_value = f"{Decimal(amount_off) / 100:.2f}"

    redeem_by = parse_utc_timestamp(campaign.end_date, field_name="end date")

    moment = now or datetime.now(timezone.utc)
    name = campaign.name.strip() or f"Bulk {moment.strftime('%Y-%m-%d %H:%M:%S')}"
    months = campaign.duration_months
    draft = CouponDraft(
        name=name,
        duration=campaign.duration.value,
        percent_off=percent_off,
        amount_off=amount_off,
        currency=currency if amount_off else None,
        duration_in_months=months if campaign.duration is CouponDuration.REPEATING and months > 0 else None,
        max_redemptions_per_customer=max(1, campaign.usage_per_customer),
        product_ids=campaign.product_ids or None,
        redeem_by=redeem_by,
    )
    context = RowContext(
        campaign=campaign.name.strip(),
        discount_type=campaign.discount_type.value,
        value=display_value,
        currency=currency if amount_off else "",
    )
    return draft, context


def build_promotion_template(campaign: Campaign) -> PromotionTemplate:
    starts_at = parse_utc_timestamp(campaign.starts_at, field_name="start date")
    ends_at = parse_utc_timestamp(campaign.ends_at, field_name="end date")
    if starts_at is not None and ends_at is not None and starts_at >= ends_at:
        raise CampaignError("INVALID_WINDOW", "Start date must be before end date.")
    return PromotionTemplate(
        max_redemptions=max(1, campaign.usage_limit),
        starts_at=starts_at,
        ends_at=ends_at,
    )


def run_batch(
    client: SureCartClient,
    *,
    coupon_id: str,
    count: int,
    config: GenerationConfig,
    writers: ExportWriters | None,
    row_context: RowContext,
    template: PromotionTemplate | None = None,
    code_factory: Callable[[GenerationConfig], str] = generate_code,
) -> BatchCounts:
    """Create ``count`` promotion codes one after another.

    A failed creation is counted and skipped; there is no retry and no
    abort, so exactly ``count`` creations are attempted. Duplicates rejected
    by the remote side are ordinary failures.
    """
    template = template or PromotionTemplate()
    counts = BatchCounts()
    for _ in range(clamp_count(count)):
        code = code_factory(config)
        try:
            promotion = client.create_promotion(template.draft(coupon_id, code))
        except SureCartApiError as exc:
            counts.errors += 1
            logger.warning(
                "promotion_create_failed",
                coupon_id=coupon_id,
                code=code,
                status_code=exc.status_code,
                error=exc.message,
            )
            continue

        if writers is not None:
            writers.write(
                FullRow(
                    campaign=row_context.campaign,
                    code=code,
                    discount_type=row_context.discount_type,
                    value=row_context.value,
                    currency=row_context.currency,
                    coupon_id=coupon_id,
                    promotion_id=str(promotion.get("id") or ""),
                )
            )
        counts.created += 1
    return counts


def run_campaign(
    campaign: Campaign,
    client: SureCartClient,
    *,
    export_dir: str | Path,
    now: datetime | None = None,
    code_factory: Callable[[GenerationConfig], str] = generate_code,
) -> RunResult:
    if not (client.api_key or "").strip():
        raise CampaignError("MISSING_API_KEY", "Please save your SureCart API token first.")

    moment = now or datetime.now(timezone.utc)
    coupon_draft, row_context = build_coupon_draft(campaign, now=moment)
    template = build_promotion_template(campaign)

    try:
        coupon = client.create_coupon(coupon_draft)
    except SureCartApiError as exc:
        raise CampaignError("COUPON_CREATE_FAILED", f"Failed to create coupon: {exc.message}") from exc
    coupon_id = str(coupon.get("id") or "")

    try:
        writers = ExportWriters.open(export_dir, campaign.export_mode, now=moment)
    except ExportError as exc:
        raise CampaignError("EXPORT_OPEN_FAILED", str(exc)) from exc

    with writers:
        counts = run_batch(
            client,
            coupon_id=coupon_id,
            count=campaign.count,
            config=campaign.generation,
            writers=writers,
            row_context=row_context,
            template=template,
            code_factory=code_factory,
        )

    result = RunResult(
        created_count=counts.created,
        error_count=counts.errors,
        csv_paths=dict(writers.paths),
        coupon_id=coupon_id,
        campaign=campaign.name.strip(),
    )
    logger.info(
        "campaign_completed",
        coupon_id=coupon_id,
        created=result.created_count,
        errors=result.error_count,
        files=[path.name for path in result.csv_paths.values()],
    )
    return result
