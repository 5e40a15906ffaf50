import logging

import pandas as pd
import taxi_pipeline.data_contract as dc

logger = logging.getLogger(__name__)


class SuspiciousRideAnnotator:
    def __init__(self, threshold: float = dc.SUSPICIOUS_FARE_PER_MILE):
        self.threshold = threshold

    def annotate(self, bronze: pd.DataFrame) -> pd.DataFrame:
        """Add fare_per_mile and suspicious_flag, one output row per bronze row."""

        df = bronze[dc.SOURCE_COLUMNS].copy()
        df.attrs = {}  # loader stats belong to bronze only

        # Re-guard the division: bronze may be read back without its constraint
        has_distance = df["trip_distance"].notna() & (df["trip_distance"] != 0)
        df["fare_per_mile"] = (df["fare_amount"] / df["trip_distance"]).where(has_distance)

        # NaN compares False, so an undefined ratio is never flagged
        df["suspicious_flag"] = (df["fare_per_mile"] > self.threshold).astype(bool)

        logger.info(
            f"Annotated {len(df)} rides, {int(df['suspicious_flag'].sum())} suspicious "
            f"(fare_per_mile > {self.threshold})"
        )
        return df
