"""Loading slip rows from NocoDB or the slip webhook."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from opsconsole.clients.nocodb import NocoDBClient
from opsconsole.clients.webhooks import WebhookClient
from opsconsole.processing.slips import SLIP_FIELDS, SlipRecord, validate_webhook_records

logger = logging.getLogger(__name__)


def load_slip_records(nocodb: NocoDBClient, table_id: str) -> List[SlipRecord]:
    """Every slip row, newest first, for client-side filtering."""

    rows = nocodb.list_records(table_id, fields=SLIP_FIELDS, sort="-Id")
    return [SlipRecord.from_row(row) for row in rows]


def fetch_webhook_slips(
    webhooks: WebhookClient,
    order_ids: Sequence[str],
    dispatch_date: str = "",
    courier_partner: str = "",
    agent_name: str = "",
) -> Tuple[List[SlipRecord], Dict[str, str]]:
    """Ask the slip webhook for each order and keep the ones with tracking."""

    requested = [o.strip() for o in order_ids if o.strip()]
    if not requested:
        raise ValueError("Please enter at least one Order ID")
    records, failures = webhooks.fetch_slip_records(requested, dispatch_date, courier_partner, agent_name)
    valid, failures = validate_webhook_records(requested, records, failures)
    if failures:
        logger.warning("No slip for %d of %d orders", len(failures), len(requested))
    return valid, failures


def agent_options(records: Sequence[SlipRecord]) -> List[str]:
    return sorted({r.agent for r in records if r.agent})


def status_options(records: Sequence[SlipRecord]) -> List[str]:
    return sorted({r.status for r in records if r.status})


def shipping_options(records: Sequence[SlipRecord], extra: Optional[Sequence[str]] = None) -> List[str]:
    return sorted({r.shipping for r in records if r.shipping} | set(extra or ()))
