from __future__ import annotations

import csv
from datetime import datetime, timezone

import pytest

from bulkcodes.services.batch import (
    Campaign,
    CampaignError,
    CouponDuration,
    DiscountType,
    RowContext,
    build_coupon_draft,
    build_promotion_template,
    clamp_count,
    clean_product_ids,
    parse_utc_timestamp,
    run_batch,
    run_campaign,
)
from bulkcodes.services.codegen import GenerationConfig
from bulkcodes.services.export import ExportMode, ExportWriters, list_exports

NOW = datetime(2025, 8, 1, 9, 0, 0, tzinfo=timezone.utc)


def _rows(path):
    with path.open(newline="", encoding="utf-8") as handle:
        return list(csv.reader(handle))[1:]


def _campaign(**overrides) -> Campaign:
    values = {
        "name": "AppSumo August",
        "discount_type": DiscountType.PERCENT,
        "discount_value": "20",
        "count": 5,
        "generation": GenerationConfig.build(prefix="as-", pattern="alnum", group_sizes=[4, 4]),
        "export_mode": ExportMode.BOTH,
    }
    values.update(overrides)
    return Campaign(**values)


def test_clamp_count():
    assert clamp_count(0) == 1
    assert clamp_count(-4) == 1
    assert clamp_count(5000) == 1000
    assert clamp_count(None) == 1


def test_clean_product_ids():
    assert clean_product_ids([" prod_1 ", "prod_1", "pr<o>d 2", "", "!!"]) == ("prod_1", "prod2")


def test_partial_failures_are_counted_and_skipped(surecart, tmp_path):
    surecart.fail_promotion = lambda index: index in (1, 3)
    result = run_campaign(_campaign(), surecart.client(), export_dir=tmp_path, now=NOW)

    assert result.created_count == 3
    assert result.error_count == 2
    assert surecart.promotion_calls == 5
    assert result.message == 'Created coupon "AppSumo August" and 3 promotion codes (2 errors).'

    full_rows = _rows(result.csv_paths["full"])
    code_rows = _rows(result.csv_paths["codes"])
    assert len(full_rows) == 3
    assert len(code_rows) == 3
    assert [row[1] for row in full_rows] == [row[0] for row in code_rows]
    assert [row[6] for row in full_rows] == ["promo_1", "promo_3", "promo_5"]
    assert full_rows[0][:6] == ["AppSumo August", full_rows[0][1], "percent", "20", "", "coup_1"]
    assert all(row[0].startswith("AS-") for row in code_rows)


def test_percent_out_of_range_aborts_before_any_call(surecart, tmp_path):
    with pytest.raises(CampaignError) as excinfo:
        run_campaign(_campaign(discount_value="150"), surecart.client(), export_dir=tmp_path, now=NOW)
    assert excinfo.value.code == "INVALID_PERCENT"
    assert surecart.promotion_calls == 0
    assert surecart.requests == []
    assert list(tmp_path.iterdir()) == []


def test_missing_api_key_aborts(surecart, tmp_path):
    with pytest.raises(CampaignError) as excinfo:
        run_campaign(_campaign(), surecart.client(api_key=" "), export_dir=tmp_path)
    assert excinfo.value.code == "MISSING_API_KEY"
    assert surecart.requests == []


def test_amount_requires_currency(surecart, tmp_path):
    campaign = _campaign(discount_type=DiscountType.AMOUNT, discount_value="10")
    with pytest.raises(CampaignError) as excinfo:
        run_campaign(campaign, surecart.client(), export_dir=tmp_path)
    assert excinfo.value.code == "MISSING_CURRENCY"
    assert surecart.requests == []


def test_invalid_window_aborts(surecart, tmp_path):
    campaign = _campaign(starts_at="2025-09-01T00:00", ends_at="2025-08-01T00:00")
    with pytest.raises(CampaignError) as excinfo:
        run_campaign(campaign, surecart.client(), export_dir=tmp_path)
    assert excinfo.value.code == "INVALID_WINDOW"
    assert surecart.requests == []


def test_coupon_failure_aborts_before_promotions(surecart, tmp_path):
    surecart.coupon_status = 400
    with pytest.raises(CampaignError) as excinfo:
        run_campaign(_campaign(), surecart.client(), export_dir=tmp_path)
    assert excinfo.value.code == "COUPON_CREATE_FAILED"
    assert excinfo.value.message == "Failed to create coupon: API error (400): Coupon rejected"
    assert surecart.promotion_calls == 0


def test_export_open_failure_aborts_before_promotions(surecart, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    with pytest.raises(CampaignError) as excinfo:
        run_campaign(_campaign(), surecart.client(), export_dir=blocker)
    assert excinfo.value.code == "EXPORT_OPEN_FAILED"
    assert surecart.promotion_calls == 0


def test_fixed_amount_coupon_and_rows(surecart, tmp_path):
    campaign = _campaign(
        discount_type=DiscountType.AMOUNT,
        discount_value="10.005",
        currency="USD",
        count=2,
        export_mode=ExportMode.FULL,
        duration=CouponDuration.REPEATING,
        duration_months=3,
        usage_limit=5,
        product_ids=("prod_1",),
        end_date="2025-12-31T23:59",
    )
    result = run_campaign(campaign, surecart.client(), export_dir=tmp_path, now=NOW)

    coupon = surecart.payloads("/v1/coupons")[0]
    assert coupon == {
        "name": "AppSumo August",
        "duration": "repeating",
        "amount_off": 1001,
        "currency": "usd",
        "duration_in_months": 3,
        "max_redemptions_per_customer": 1,
        "product_ids": ["prod_1"],
        "redeem_by": int(datetime(2025, 12, 31, 23, 59, tzinfo=timezone.utc).timestamp()),
    }
    promotions = surecart.payloads("/v1/promotions")
    assert all(p["max_redemptions"] == 5 and p["coupon_id"] == "coup_1" for p in promotions)
    assert list(result.csv_paths) == ["full"]
    assert _rows(result.csv_paths["full"])[0][2:5] == ["amount", "10.01", "usd"]


def test_default_coupon_name_uses_timestamp():
    draft, context = build_coupon_draft(_campaign(name=" "), now=NOW)
    assert draft.name == "Bulk 2025-08-01 09:00:00"
    assert context.campaign == ""


def test_percent_rounds_half_up():
    draft, _ = build_coupon_draft(_campaign(discount_value="99.5"))
    assert draft.percent_off == 100
    with pytest.raises(CampaignError):
        build_coupon_draft(_campaign(discount_value="0.4"))
    with pytest.raises(CampaignError):
        build_coupon_draft(_campaign(discount_value="abc"))


def test_huge_discount_values_are_rejected_not_crashing():
    with pytest.raises(CampaignError) as excinfo:
        build_coupon_draft(_campaign(discount_value="1e30"))
    assert excinfo.value.code == "INVALID_PERCENT"
    with pytest.raises(CampaignError) as excinfo:
        build_coupon_draft(_campaign(discount_type=DiscountType.AMOUNT, discount_value="1e27", currency="usd"))
    assert excinfo.value.code == "INVALID_AMOUNT"
    with pytest.raises(CampaignError) as excinfo:
        build_coupon_draft(_campaign(discount_value="100.5"))
    assert excinfo.value.code == "INVALID_PERCENT"


def test_unparseable_end_date():
    with pytest.raises(CampaignError) as excinfo:
        build_coupon_draft(_campaign(end_date="next tuesday"))
    assert excinfo.value.code == "INVALID_DATE"


def test_trailing_z_is_read_as_utc():
    assert parse_utc_timestamp("2025-08-01T00:00Z", field_name="end date") == parse_utc_timestamp(
        "2025-08-01T00:00", field_name="end date"
    )
    draft, _ = build_coupon_draft(_campaign(end_date="2025-08-01T00:00:00Z"))
    assert draft.redeem_by == int(datetime(2025, 8, 1, tzinfo=timezone.utc).timestamp())


def test_promotion_window_is_sent():
    template = build_promotion_template(_campaign(starts_at="2025-08-01T00:00", ends_at="2025-08-02T00:00+00:00"))
    draft = template.draft("coup_1", "CODE")
    assert draft.to_payload()["ends_at"] - draft.to_payload()["starts_at"] == 86400


def test_run_batch_without_writers_and_duplicate_codes(surecart):
    def fail_duplicates(index: int) -> bool:
        return index > 0

    surecart.fail_promotion = fail_duplicates
    counts = run_batch(
        surecart.client(),
        coupon_id="coup_1",
        count=3,
        config=GenerationConfig(),
        writers=None,
        row_context=RowContext("c", "percent", "10", ""),
        code_factory=lambda config: "SAME",
    )
    assert (counts.created, counts.errors) == (1, 2)
    assert [p["code"] for p in surecart.payloads("/v1/promotions")] == ["SAME", "SAME", "SAME"]


def test_run_batch_writes_each_success(surecart, tmp_path):
    with ExportWriters.open(tmp_path, "codes", now=NOW) as writers:
        counts = run_batch(
            surecart.client(),
            coupon_id="coup_1",
            count=4,
            config=GenerationConfig.build(pattern="numeric", group_sizes=[6]),
            writers=writers,
            row_context=RowContext("c", "percent", "10", ""),
        )
    assert counts.created == 4
    assert all(row[0].isdigit() and len(row[0]) == 6 for row in _rows(writers.paths["codes"]))


def test_campaign_keeps_rows_written_before_a_failure(surecart, tmp_path):
    calls = []

    def flaky_codes(config: GenerationConfig) -> str:
        calls.append(config)
        if len(calls) == 3:
            raise RuntimeError("entropy source gone")
        return f"CODE{len(calls)}"

    with pytest.raises(RuntimeError):
        run_campaign(_campaign(), surecart.client(), export_dir=tmp_path, now=NOW, code_factory=flaky_codes)

    files = {path.name.split("-")[3]: path for path in list_exports(tmp_path)}
    assert set(files) == {"full", "codes"}
    assert _rows(files["codes"]) == [["CODE1"], ["CODE2"]]
    assert [row[1] for row in _rows(files["full"])] == ["CODE1", "CODE2"]
    assert surecart.promotion_calls == 2
