import logging
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)


class DataPipeline(ABC):
    """
    Abstract base class for sync pipelines.
    Follows an Extract -> Transform -> Load (ETL) pattern.
    """

    def __init__(self, report_type: str, test_mode: bool = False):
        self.report_type = report_type
        # In test mode nothing is pushed to external systems of record.
        self.test_mode = test_mode

    def run(self) -> Any:
        """
        Orchestrates the pipeline execution. Fatal errors raised by any step
        propagate to the caller.
        """
        logger.info(f"🚀 STEP: {self.report_type.upper()}")
        logger.info("-" * 30)

        # --- 1. EXTRACT ---
        raw_data = self.extract()

        # --- 2. TRANSFORM ---
        validated_data = self.transform(raw_data)

        # --- 3. LOAD ---
        result = self.load(validated_data)

        logger.info(f"✅ {self.report_type.capitalize()} Pipeline Finished.\n")
        logger.info("=" * 60)
        return result

    @abstractmethod
    def extract(self) -> Any:
        """
        Responsible for gathering the raw source data for the run.
        """
        pass

    @abstractmethod
    def transform(self, raw_data: Any) -> list[Any]:
        """
        Responsible for applying business rules and returning validated records.
        """
        pass

    @abstractmethod
    def load(self, validated_data: list[Any]) -> Any:
        """
        Responsible for pushing and persisting the validated records.
        """
        pass
