"""Telegram message formatting (HTML parse mode)."""

from datetime import UTC, datetime
from html import escape

from ..core.types import Metric

UP = "▲"
DOWN = "▼"


def format_amount(value: float) -> str:
    """Format a decimal amount; sub-1 magnitudes keep 6 fraction digits."""
    if abs(value) >= 1:
        return f"{value:,.2f}"
    return f"{value:,.6f}"


def format_price(value: float, quote_token: str) -> str:
    return f"{format_amount(value)} {quote_token}"


def format_delta(value: float, quote_token: str) -> str:
    sign = "+" if value >= 0 else "-"
    return f"{sign}{format_amount(abs(value))} {quote_token}"


def format_percent(percent: float) -> str:
    sign = "+" if percent >= 0 else "-"
    return f"{sign}{abs(percent):.2f}%"


def direction_glyph(change: float) -> str:
    return UP if change >= 0 else DOWN


def format_alert(metric: Metric, previous: Metric, change: float) -> str:
    """Build the subscriber alert for a price move."""
    delta = metric.price_value - previous.price_value
    observed = datetime.fromtimestamp(metric.timestamp, tz=UTC)
    return "\n".join(
        [
            f"🚨 <b>{escape(metric.pair_id)}</b> price alert",
            f"Change: <b>{direction_glyph(change)} {format_percent(change)}</b>",
            f"Price: {escape(format_price(metric.price_value, metric.quote_token))}",
            f"Delta: {escape(format_delta(delta, metric.quote_token))}",
            f"Source: {escape(metric.source)}",
            f"Updated: {observed:%Y-%m-%d %H:%M:%S} UTC",
        ]
    )


def format_summary(metrics: list[Metric]) -> str:
    """Build the periodic price summary for administrators."""
    if not metrics:
        return "📊 <b>Price Summary</b>\n\nNo price data available."

    lines = ["📊 <b>Price Summary</b>", ""]
    for metric in sorted(metrics, key=lambda m: m.pair_id):
        change = metric.price_delta_percent
        lines.append(
            f"<b>{escape(metric.pair_id)}</b>: "
            f"{escape(format_price(metric.price_value, metric.quote_token))} "
            f"({direction_glyph(change)} {format_percent(change)})"
        )
    return "\n".join(lines)
