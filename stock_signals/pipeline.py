import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from stock_signals import data_handler
from stock_signals.schemas import SignalReport

logger = logging.getLogger(__name__)


class DataPipeline(ABC):
    """
    Abstract base class for report pipelines.
    Follows an Extract -> Transform -> Load (ETL) pattern.
    """

    def __init__(self, report_type: str, sources: Optional[list[str]] = None, test_mode: bool = False):
        self.report_type = report_type
        self.sources = sources or []
        self.test_mode = test_mode
        # Status summary tracks the state of each upstream source
        self.status_summary: dict[str, Any] = {src: None for src in self.sources}

    def run(self) -> Optional[SignalReport]:
        """
        Orchestrates the pipeline execution.
        """
        logger.info(f"🚀 STEP: {self.report_type.upper()} REPORT")
        logger.info("-" * 30)

        # --- 1. EXTRACT ---
        raw_data = self.extract()
        if raw_data is None:
            logger.warning(f"⚠️ No data extracted for {self.report_type}. Nothing to report.")
            self.log_status_summary()
            return None

        # --- 2. TRANSFORM ---
        report = self.transform(raw_data)
        if report is None:
            logger.error(f"❌ Transformation failed for {self.report_type}.")
            return None

        # --- 3. LOAD ---
        self.load(report)

        logger.info(f"✅ {self.report_type.capitalize()} Pipeline Finished.\n")
        logger.info("=" * 60)
        return report

    @abstractmethod
    def extract(self) -> Any | None:
        """
        Responsible for reading the upstream sources.
        Should also populate self.status_summary as it processes sources.
        """
        pass

    @abstractmethod
    def transform(self, raw_data: Any) -> SignalReport | None:
        """
        Responsible for turning the extracted data into a validated report.
        """
        pass

    def log_status_summary(self):
        if not self.status_summary:
            return
        logger.info("\n--- Final Status Summary ---")
        for source, value in self.status_summary.items():
            shown = value.isoformat() if hasattr(value, "isoformat") else value
            logger.info(f"{source}: {shown if shown is not None else 'No data'}")

    def load(self, report: SignalReport):
        """
        Saves the report to disk and posts it to the webhook.
        """
        # 1. Print Status Summary
        self.log_status_summary()

        # 2. Save Outputs (CSV/JSON)
        data_handler.save_outputs(report, f"{self.report_type}_report")

        # 3. Post to Webhook
        if not self.test_mode:
            data_handler.post_to_webhook(
                report,
                metadata=self.status_summary,
                report_type=self.report_type,
            )
        else:
            logger.info("🧪 Test Mode: Skipping webhook post.")
