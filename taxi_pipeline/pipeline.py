import logging
from typing import Dict, NamedTuple, Optional

import pandas as pd
import taxi_pipeline.data_contract as dc
from taxi_pipeline.data_loader import BronzeLoader
from taxi_pipeline.suspicious_rides import SuspiciousRideAnnotator
from taxi_pipeline.top_fares import TopFaresMaterializer
from taxi_pipeline.weekly_aggregates import WeeklyAggregator

logger = logging.getLogger(__name__)


class PipelineTables(NamedTuple):
    bronze: pd.DataFrame
    suspicious: pd.DataFrame
    weekly: pd.DataFrame
    gold: pd.DataFrame

    def as_dict(self) -> Dict[str, pd.DataFrame]:
        return {
            dc.BRONZE_TABLE: self.bronze,
            dc.SUSPICIOUS_TABLE: self.suspicious,
            dc.WEEKLY_TABLE: self.weekly,
            dc.GOLD_TABLE: self.gold,
        }


def run_stages(raw: pd.DataFrame, params: Optional[dict] = None) -> PipelineTables:
    """Full recompute: raw source -> bronze -> {suspicious, weekly, gold}."""
    params = params or {}
    threshold = float(
        params.get("annotator", {}).get("fare_per_mile_threshold", dc.SUSPICIOUS_FARE_PER_MILE)
    )
    top_n = int(params.get("gold", {}).get("top_n", dc.TOP_N_PER_DAY))

    bronze = BronzeLoader().transform(raw)

    # Every downstream stage reads bronze only
    suspicious = SuspiciousRideAnnotator(threshold=threshold).annotate(bronze)
    weekly = WeeklyAggregator().aggregate(bronze)
    gold = TopFaresMaterializer(n=top_n).materialize(bronze)

    return PipelineTables(bronze=bronze, suspicious=suspicious, weekly=weekly, gold=gold)
