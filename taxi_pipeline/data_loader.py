import logging
import os

import pandas as pd
import taxi_pipeline.data_contract as dc

logger = logging.getLogger(__name__)


class SchemaViolation(ValueError):
    """Source is missing one or more required columns."""


class CastError(ValueError):
    """A non-null source value could not be cast to its canonical type."""


class BronzeLoader:
    """
    Bronze layer loader:
    - Reads the raw trip source (parquet or csv)
    - Validates required schema (fail fast)
    - Casts the six trip fields to canonical types (fail the batch on bad values)
    - Drops rows violating the trip distance constraint
    - Attaches stats on df.attrs for main.py to log
    """

    def __init__(self, path: str | None = None):
        self.path = path

    def read_source(self) -> pd.DataFrame:
        logger.info(f"Loading data from {self.path}...")

        ext = os.path.splitext(self.path or "")[1].lower()
        try:
            if ext in (".parquet", ".pq"):
                return pd.read_parquet(self.path)
            if ext == ".csv":
                return pd.read_csv(self.path)
        except Exception as e:
            logger.error(f"Failed to read source file: {e}")
            raise

        raise ValueError(f"Unsupported source format '{ext}' for {self.path}")

    def load_data(self) -> pd.DataFrame:
        return self.transform(self.read_source())

    def transform(self, raw: pd.DataFrame) -> pd.DataFrame:
        # 1) Critical schema check (fail fast)
        missing_cols = [c for c in dc.SOURCE_COLUMNS if c not in raw.columns]
        if missing_cols:
            raise SchemaViolation(f"Schema Violation: Missing columns {missing_cols}")

        raw_count = len(raw)
        logger.info(f"Initial row count: {raw_count}")

        # 2) Type enforcement
        df = self.cast(raw)

        # 3) Constraint: valid_trip_distance (drop row on violation)
        df_bronze = self.apply_constraint(df)

        bronze_rows = len(df_bronze)
        stats = {
            "initial_rows": raw_count,
            "bronze_rows": bronze_rows,
            "dropped_rows": raw_count - bronze_rows,
            "violation_distance": raw_count - bronze_rows,
        }
        logger.info(f"Bronze stats: {stats}")

        df_bronze.attrs["stats"] = stats
        return df_bronze

    @staticmethod
    def cast(raw: pd.DataFrame) -> pd.DataFrame:
        """Project the source columns and cast them to the bronze dtypes.

        Nulls stay null. Any other value that cannot be represented in the
        target type raises CastError, failing the whole batch.
        """
        df = pd.DataFrame(index=raw.index)
        for col, dtype in dc.BRONZE_DTYPES.items():
            try:
                if dtype.startswith("datetime64"):
                    df[col] = _to_timestamp(raw[col]).astype(dtype)
                else:
                    df[col] = pd.to_numeric(raw[col], errors="raise").astype(dtype)
            except (ValueError, TypeError, OverflowError) as e:
                raise CastError(f"Cast Failure: column '{col}' to {dtype}: {e}") from e
        return df

    @staticmethod
    def apply_constraint(df: pd.DataFrame) -> pd.DataFrame:
        mask_distance = df["trip_distance"].notna() & (
            df["trip_distance"] > dc.TRIP_DISTANCE_MIN_EXCLUSIVE
        )
        return df[mask_distance].reset_index(drop=True)


def _to_timestamp(series: pd.Series) -> pd.Series:
    """Naive timestamps as-is; zoned ones (tz dtype, Z/offset strings) become naive UTC."""
    if pd.api.types.is_datetime64_any_dtype(series):
        if series.dt.tz is not None:
            return series.dt.tz_convert("UTC").dt.tz_localize(None)
        return series
    # utc=True lets naive and offset strings mix; naive text is read as UTC wall time
    parsed = pd.to_datetime(series, errors="raise", format="ISO8601", utc=True)
    return parsed.dt.tz_localize(None)
