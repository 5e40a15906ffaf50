import logging
from typing import Any, Dict, List, Mapping

import great_expectations as gx
import great_expectations.expectations as gxe
import pandas as pd
from great_expectations.core.expectation_suite import ExpectationSuite
import taxi_pipeline.data_contract as dc

logger = logging.getLogger(__name__)


class ValidationReport:
    """Values of every cross-layer check plus the names of the ones that failed."""

    def __init__(self, checks: Dict[str, Any], failures: List[str]):
        self.checks = checks
        self.failures = failures

    @property
    def passed(self) -> bool:
        return not self.failures

    def metrics(self) -> Dict[str, float]:
        """Scalar checks only, for MLflow."""
        return {k: float(v) for k, v in self.checks.items() if isinstance(v, (int, float))}

    def to_dict(self) -> dict:
        per_day = self.checks["records_per_day"]
        checks = dict(self.checks)
        checks["records_per_day"] = [
            {
                "date": None if pd.isna(row["date"]) else pd.Timestamp(row["date"]).date().isoformat(),
                "records_per_day": int(row["records_per_day"]),
            }
            for _, row in per_day.iterrows()
        ]
        return {"passed": self.passed, "failures": list(self.failures), "checks": checks}


class PipelineValidator:
    """
    Read-only consistency checks across bronze, silver and gold.

    Each check is independent and returns a scalar or a small frame:
      bronze_count, silver_suspicious_count, weekly_total_rides,
      bronze_vs_weekly, invalid_trip_distance_rows, wrong_flag_rows,
      records_per_day
    """

    def __init__(
        self,
        tables: Mapping[str, pd.DataFrame],
        threshold: float = dc.SUSPICIOUS_FARE_PER_MILE,
        top_n: int = dc.TOP_N_PER_DAY,
    ):
        self.bronze = tables[dc.BRONZE_TABLE]
        self.suspicious = tables[dc.SUSPICIOUS_TABLE]
        self.weekly = tables[dc.WEEKLY_TABLE]
        self.gold = tables[dc.GOLD_TABLE]
        self.threshold = threshold
        self.top_n = top_n

    def bronze_count(self) -> int:
        return len(self.bronze)

    def silver_suspicious_count(self) -> int:
        return len(self.suspicious)

    def weekly_total_rides(self) -> int:
        return int(self.weekly["total_rides"].sum())

    def bronze_vs_weekly(self) -> Dict[str, int]:
        return {"bronze_count": self.bronze_count(), "weekly_sum": self.weekly_total_rides()}

    def invalid_trip_distance_rows(self) -> int:
        distance = self.bronze["trip_distance"]
        return int((distance.isna() | (distance <= 0)).sum())

    def wrong_flag_rows(self) -> int:
        df = self.suspicious
        distance = df["trip_distance"]
        # x / 0 is null in SQL, so it can never satisfy "<= threshold"
        ratio = (df["fare_amount"] / distance).where(distance.notna() & (distance != 0))
        wrong = df["suspicious_flag"].astype(bool) & (ratio <= self.threshold)
        return int(wrong.sum())

    def records_per_day(self) -> pd.DataFrame:
        return (
            self.gold.groupby("date", dropna=False)
            .size()
            .rename("records_per_day")
            .reset_index()
            .sort_values("date", na_position="last", kind="mergesort")
            .reset_index(drop=True)
        )

    def run(self) -> ValidationReport:
        logger.info("Running cross-layer validation checks...")

        pair = self.bronze_vs_weekly()
        per_day = self.records_per_day()
        checks = {
            "bronze_count": self.bronze_count(),
            "silver_suspicious_count": self.silver_suspicious_count(),
            "weekly_total_rides": pair["weekly_sum"],
            "bronze_vs_weekly": pair,
            "invalid_trip_distance_rows": self.invalid_trip_distance_rows(),
            "wrong_flag_rows": self.wrong_flag_rows(),
            "records_per_day": per_day,
        }

        failures = []
        if pair["bronze_count"] != pair["weekly_sum"]:
            failures.append("bronze_vs_weekly")
        if checks["invalid_trip_distance_rows"] != 0:
            failures.append("invalid_trip_distance_rows")
        if checks["wrong_flag_rows"] != 0:
            failures.append("wrong_flag_rows")
        if (per_day["records_per_day"] > self.top_n).any():
            failures.append("records_per_day")

        for name in failures:
            logger.error(f"   - Check failed: {name} | value: {checks[name]}")
        if not failures:
            logger.info("✅ All cross-layer checks passed.")

        return ValidationReport(checks, failures)


class LayerExpectations:
    """Great Expectations suites asserting each layer's declared schema."""

    def __init__(self, tables: Mapping[str, pd.DataFrame], top_n: int = dc.TOP_N_PER_DAY):
        self.tables = tables
        self.top_n = top_n
        # Ephemeral Context: In-memory configuration suitable for automated pipelines.
        self.context = gx.get_context(mode="ephemeral")
        self.datasource_name = "pandas_datasource"
        self.validation_results = {}

    def build_suites(self) -> Dict[str, ExpectationSuite]:
        bronze = ExpectationSuite(name=f"{dc.BRONZE_TABLE}_suite")
        bronze.add_expectation(gxe.ExpectTableRowCountToBeBetween(min_value=1))
        for col in dc.SOURCE_COLUMNS:
            bronze.add_expectation(gxe.ExpectColumnToExist(column=col))
        bronze.add_expectation(gxe.ExpectColumnValuesToNotBeNull(column="trip_distance"))
        bronze.add_expectation(
            gxe.ExpectColumnValuesToBeBetween(
                column="trip_distance",
                min_value=dc.TRIP_DISTANCE_MIN_EXCLUSIVE,
                strict_min=True,
            )
        )

        suspicious = ExpectationSuite(name=f"{dc.SUSPICIOUS_TABLE}_suite")
        for col in dc.SUSPICIOUS_COLUMNS:
            suspicious.add_expectation(gxe.ExpectColumnToExist(column=col))
        suspicious.add_expectation(gxe.ExpectColumnValuesToNotBeNull(column="suspicious_flag"))
        suspicious.add_expectation(
            gxe.ExpectColumnValuesToBeInSet(column="suspicious_flag", value_set=[True, False])
        )

        weekly = ExpectationSuite(name=f"{dc.WEEKLY_TABLE}_suite")
        for col in dc.WEEKLY_COLUMNS:
            weekly.add_expectation(gxe.ExpectColumnToExist(column=col))
        weekly.add_expectation(gxe.ExpectColumnValuesToBeBetween(column="total_rides", min_value=1))

        gold = ExpectationSuite(name=f"{dc.GOLD_TABLE}_suite")
        for col in dc.GOLD_COLUMNS:
            gold.add_expectation(gxe.ExpectColumnToExist(column=col))
        gold.add_expectation(
            gxe.ExpectColumnValuesToBeBetween(column="rn", min_value=1, max_value=self.top_n)
        )

        return {
            dc.BRONZE_TABLE: bronze,
            dc.SUSPICIOUS_TABLE: suspicious,
            dc.WEEKLY_TABLE: weekly,
            dc.GOLD_TABLE: gold,
        }

    def validate(self) -> bool:
        logger.info("Validating layers with Great Expectations (v1.x)...")

        # 1. Setup Datasource (Idempotent)
        try:
            ds = self.context.data_sources.get(self.datasource_name)
        except (KeyError, ValueError):
            ds = self.context.data_sources.add_pandas(self.datasource_name)

        self.validation_results = {}
        for name, suite in self.build_suites().items():
            try:
                asset = ds.get_asset(name)
            except LookupError:
                asset = ds.add_dataframe_asset(name=name)

            batch_def_name = f"{name}_whole_df"
            try:
                batch_def = asset.get_batch_definition(batch_def_name)
            except (KeyError, LookupError, ValueError):
                batch_def = asset.add_batch_definition_whole_dataframe(batch_def_name)

            batch = batch_def.get_batch(batch_parameters={"dataframe": self.tables[name]})
            self.validation_results[name] = batch.validate(suite)

        failed = [name for name, res in self.validation_results.items() if not res.success]
        if failed:
            logger.error("❌ GX VALIDATION FAILED!")
            for name in failed:
                for res in self.validation_results[name].results:
                    if not res.success:
                        col = res.expectation_config.kwargs.get("column", "Table-Level")
                        type_ = res.expectation_config.type
                        logger.error(f"   - Violation: {name}.{col} | Rule: {type_}")

            raise ValueError(f"Critical Data Validation Failed for {failed}. Check MLflow artifacts for details.")

        logger.info("✅ Great Expectations passed.")
        return True
