import json
import logging
from pathlib import Path
from typing import Any, Optional

import pandas as pd
import requests

from . import settings
from . import utils
from .schemas import SignalReport

logger = logging.getLogger(__name__)

SIGNAL_COLUMNS = ["severity", "type", "sku", "unit", "confidence", "action", "message"]


def signals_frame(report: SignalReport) -> pd.DataFrame:
    """Signals as a flat table; evidence keys become 'evidence.<key>' columns."""
    records = [signal.model_dump(mode="json") for signal in report.signals]
    if not records:
        return pd.DataFrame(columns=SIGNAL_COLUMNS)

    df = pd.json_normalize(records)
    evidence_columns = sorted(c for c in df.columns if c.startswith("evidence."))
    return df[SIGNAL_COLUMNS + evidence_columns]


def save_outputs(report: SignalReport, name: Optional[str] = None) -> dict[str, Path]:
    """Saves the signals CSV and, conditionally, the full report as JSON."""
    settings.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    date_suffix = utils.get_date_suffix_for_filename(report.as_of)
    base = name or settings.SIGNALS_FILENAME_BASE

    csv_path = settings.OUTPUT_DIR / f"{base}_{date_suffix}.csv"
    json_path = settings.OUTPUT_DIR / f"{base}_{date_suffix}.json"
    written = {}

    signals_frame(report).to_csv(csv_path, index=False)
    written["csv"] = csv_path
    logger.info(f"✅ Signals saved to: {csv_path}")

    if settings.SAVE_JSON_OUTPUT:
        with open(json_path, "w", encoding="utf-8") as f:
            json.dump(report.model_dump(mode="json"), f, indent=2)
        written["json"] = json_path
        logger.info(f"✅ JSON report saved to: {json_path}")
    else:
        logger.info("INFO: Skipping JSON file save as per configuration.")

    return written


def post_to_webhook(
    report: SignalReport, metadata: dict[str, Any], report_type: str = "signals"
) -> bool:
    """
    Posts the report and the run metadata to the webhook.
    Returns True only when the webhook accepted the payload.
    """
    if not settings.WEBHOOK_URL:
        logger.warning("⚠️ WEBHOOK_URL not set. Skipping webhook post.")
        return False

    logger.info(f"🚀 Posting {report_type} report to webhook: {settings.WEBHOOK_URL}")

    payload = {
        "reportType": report_type,
        "reportData": report.model_dump(mode="json"),
        "statusSummary": {
            key: value.isoformat() if hasattr(value, "isoformat") else value
            for key, value in metadata.items()
        },
    }

    try:
        response = requests.post(settings.WEBHOOK_URL, json=payload, timeout=15)
        response.raise_for_status()
        logger.info("✅ Report and summary successfully posted to webhook.")
        return True
    except requests.exceptions.RequestException as e:
        logger.error(f"❌ Error posting to webhook: {e}")
        return False
