import logging

import pandas as pd
import taxi_pipeline.data_contract as dc

logger = logging.getLogger(__name__)


def week_key(pickup: pd.Series) -> pd.DataFrame:
    """(year, week) for each pickup timestamp.

    year is the calendar year and week the ISO-8601 week number, the same
    pair as Spark SQL year() / weekofyear(). The two are not an ISO
    week-year: 2024-12-30 maps to (2024, 1) and 2021-01-01 to (2021, 53).
    """
    return pd.DataFrame(
        {
            "year": pickup.dt.year.astype("Int32"),
            "week": pickup.dt.isocalendar().week.astype("Int32"),
        },
        index=pickup.index,
    )


class WeeklyAggregator:
    def aggregate(self, bronze: pd.DataFrame) -> pd.DataFrame:
        df = pd.concat([week_key(bronze[dc.PICKUP_COL]), bronze], axis=1)

        # dropna=False keeps a null pickup as its own group so the
        # weekly totals stay a full partition of bronze
        weekly = (
            df.groupby(["year", "week"], dropna=False, sort=False)
            .agg(
                total_rides=("trip_distance", "size"),
                total_fare=("fare_amount", lambda s: s.sum(min_count=1)),
                avg_trip_distance=("trip_distance", "mean"),
            )
            .reset_index()
            .sort_values(["year", "week"], na_position="last", kind="mergesort")
            .reset_index(drop=True)
        )
        weekly.attrs = {}
        weekly["total_rides"] = weekly["total_rides"].astype("int64")
        weekly["total_fare"] = weekly["total_fare"].astype("float64")
        weekly["avg_trip_distance"] = weekly["avg_trip_distance"].astype("float64")

        logger.info(f"Aggregated {len(bronze)} rides into {len(weekly)} weeks")
        return weekly[dc.WEEKLY_COLUMNS]
