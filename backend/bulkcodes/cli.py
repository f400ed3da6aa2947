from __future__ import annotations

import click
from redis.exceptions import RedisError

from bulkcodes.log import configure_logging
from bulkcodes.redis import get_redis_client
from bulkcodes.services.batch import (
    Campaign,
    CampaignError,
    CouponDuration,
    DiscountType,
    clamp_count,
    clean_product_ids,
    run_campaign,
)
from bulkcodes.services.codegen import CodePattern, GenerationConfig, generate_code
from bulkcodes.services.export import ExportMode, delete_exports
from bulkcodes.services.storage import OptionStore
from bulkcodes.services.surecart import SureCartClient
from bulkcodes.settings import settings


def _api_key(explicit: str | None) -> str:
    if explicit:
        return explicit.strip()
    # saved option first, then SURECART_API_KEY, same as the admin API
    try:
        return OptionStore(get_redis_client(), default_api_key=settings.SURECART_API_KEY).get_api_key()
    except RedisError as exc:
        if settings.SURECART_API_KEY.strip():
            return settings.SURECART_API_KEY.strip()
        raise click.ClickException(f"No API key given and the option store is unreachable: {exc}") from exc


@click.group()
def cli():
    """Bulk SureCart promotion codes."""
    configure_logging(settings.LOG_LEVEL)


@cli.command()
@click.option("--campaign", default="", help="Friendly coupon name")
@click.option("--product-id", "product_ids", multiple=True, help="Restrict to product (repeatable)")
@click.option("--discount-type", type=click.Choice([t.value for t in DiscountType]), default="percent")
@click.option("--discount-value", required=True)
@click.option("--currency", default="")
@click.option("--count", type=int, default=1, show_default=True)
@click.option("--prefix", default="")
@click.option("--pattern", type=click.Choice([p.value for p in CodePattern]), default="readable")
@click.option("--separator", default="-", show_default=True)
@click.option("--group", "groups", type=int, multiple=True, help="Group size (repeatable, up to 6)")
@click.option("--duration", type=click.Choice([d.value for d in CouponDuration]), default="once")
@click.option("--duration-months", type=int, default=0)
@click.option("--usage-limit", type=int, default=1)
@click.option("--usage-per-customer", type=int, default=1)
@click.option("--end-date", default=None, help="Coupon end date, ISO format, UTC")
@click.option("--starts-at", default=None, help="Promotion start, ISO format, UTC")
@click.option("--ends-at", default=None, help="Promotion end, ISO format, UTC")
@click.option("--export-mode", type=click.Choice([m.value for m in ExportMode]), default="full")
@click.option("--output-dir", default=None, help="Defaults to EXPORT_DIR")
@click.option("--api-key", default=None, help="Overrides the saved token and SURECART_API_KEY")
def generate(
    campaign: str,
    product_ids: tuple[str, ...],
    discount_type: str,
    discount_value: str,
    currency: str,
    count: int,
    prefix: str,
    pattern: str,
    separator: str,
    groups: tuple[int, ...],
    duration: str,
    duration_months: int,
    usage_limit: int,
    usage_per_customer: int,
    end_date: str | None,
    starts_at: str | None,
    ends_at: str | None,
    export_mode: str,
    output_dir: str | None,
    api_key: str | None,
):
    """Create one coupon and COUNT promotion codes, then write the CSV files."""
    request = Campaign(
        name=campaign,
        discount_type=DiscountType(discount_type),
        discount_value=discount_value,
        currency=currency,
        count=clamp_count(count),
        product_ids=clean_product_ids(product_ids),
        generation=GenerationConfig.build(
            prefix=prefix, pattern=pattern, group_sizes=groups, separator=separator
        ),
        duration=CouponDuration(duration),
        duration_months=max(duration_months, 0),
        usage_limit=max(usage_limit, 1),
        usage_per_customer=max(usage_per_customer, 1),
        end_date=end_date,
        starts_at=starts_at,
        ends_at=ends_at,
        export_mode=ExportMode(export_mode),
    )
    client = SureCartClient(
        _api_key(api_key),
        settings.SURECART_API_BASE_URL,
        timeout_s=settings.SURECART_TIMEOUT_SECONDS,
    )
    try:
        result = run_campaign(request, client, export_dir=output_dir or settings.EXPORT_DIR)
    except CampaignError as exc:
        raise click.ClickException(f"{exc.code}: {exc.message}") from exc

    click.echo(result.message)
    for kind, path in result.csv_paths.items():
        click.echo(f"{kind}: {path}")


@cli.command()
@click.option("--count", type=int, default=5, show_default=True)
@click.option("--prefix", default="")
@click.option("--pattern", type=click.Choice([p.value for p in CodePattern]), default="readable")
@click.option("--separator", default="-", show_default=True)
@click.option("--group", "groups", type=int, multiple=True)
def preview(count: int, prefix: str, pattern: str, separator: str, groups: tuple[int, ...]):
    """Print sample codes without calling the API."""
    config = GenerationConfig.build(prefix=prefix, pattern=pattern, group_sizes=groups, separator=separator)
    for _ in range(clamp_count(count)):
        click.echo(generate_code(config))


@cli.command("delete-exports")
@click.option("--output-dir", default=None, help="Defaults to EXPORT_DIR")
def delete_exports_command(output_dir: str | None):
    """Delete generated CSV files."""
    deleted = delete_exports(output_dir or settings.EXPORT_DIR)
    click.echo(f"Deleted {deleted} CSV file{'' if deleted == 1 else 's'}.")


if __name__ == "__main__":
    cli()
