import logging

import httpx

from lpg_ledger.config import settings
from lpg_ledger.models.stock import StockSnapshot
from lpg_ledger.services.query_service import TIER_GOOD, stock_tier

logger = logging.getLogger(__name__)


def _configured_urls() -> list[str]:
    if not settings.WEBHOOK_URLS:
        return []
    return [u.strip() for u in settings.WEBHOOK_URLS.split(",") if u.strip()]


def build_stock_alerts(records: list[StockSnapshot], threshold_ratio: float | None = None) -> list[dict]:
    """Payloads for records that ended up in the low or out tier."""
    alerts = []
    for record in records:
        tier = stock_tier(record.qty_full, record.qty_reserved, threshold_ratio)
        if tier == TIER_GOOD:
            continue
        alerts.append({
            "event": "stock_alert",
            "tier": tier,
            "warehouse_id": record.warehouse_id,
            "product_id": record.product_id,
            "qty_full": record.qty_full,
            "qty_reserved": record.qty_reserved,
            "available": record.available,
        })
    return alerts


async def _post_alerts(client: httpx.AsyncClient, urls: list[str], alerts: list[dict]) -> list[dict]:
    results = []
    for url in urls:
        for alert in alerts:
            try:
                resp = await client.post(url, json=alert)
                results.append({"url": url, "status": resp.status_code, "success": resp.is_success})
            except httpx.HTTPError as e:
                logger.error("Stock alert webhook failed for %s: %s", url, e)
                results.append({"url": url, "status": 0, "success": False, "error": str(e)})
    return results


async def send_stock_alerts(records: list[StockSnapshot], client: httpx.AsyncClient | None = None) -> list[dict]:
    """Post low/out stock alerts to every configured webhook URL.

    A caller-owned ``client`` is used as is and left open.
    """
    urls = _configured_urls()
    alerts = build_stock_alerts(records)
    if not urls or not alerts:
        return []

    if client is not None:
        return await _post_alerts(client, urls, alerts)
    async with httpx.AsyncClient(timeout=10.0) as own_client:
        return await _post_alerts(own_client, urls, alerts)
