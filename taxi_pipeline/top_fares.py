import heapq
import logging
import math
from typing import Any, Callable, Dict, Hashable, Iterable, List

import pandas as pd
import taxi_pipeline.data_contract as dc

logger = logging.getLogger(__name__)


class TopFaresMaterializer:
    """
    Gold layer: the n highest-fare rides of each pickup date.

    Equivalent to ROW_NUMBER() OVER (PARTITION BY date ORDER BY fare_amount DESC)
    filtered to rn <= n. Null fares rank last. Equal fares keep bronze (ingestion)
    order, so the output is deterministic.
    """

    def __init__(self, n: int = dc.TOP_N_PER_DAY):
        if n < 1:
            raise ValueError(f"top_n must be >= 1, got {n}")
        self.n = n

    def materialize(self, bronze: pd.DataFrame) -> pd.DataFrame:
        df = bronze[dc.SOURCE_COLUMNS].rename(
            columns={dc.PICKUP_COL: "pickup_ts", dc.DROPOFF_COL: "dropoff_ts"}
        )
        df.attrs = {}
        df.insert(0, "date", df["pickup_ts"].dt.normalize())

        # Multi-key sort is stable, so ties stay in bronze order
        ranked = df.sort_values(
            ["date", "fare_amount"], ascending=[True, False], na_position="last"
        )
        ranked["rn"] = ranked.groupby("date", dropna=False, sort=False).cumcount() + 1

        gold = ranked[ranked["rn"] <= self.n].reset_index(drop=True)
        gold["rn"] = gold["rn"].astype("int64")

        logger.info(
            f"Materialized {len(gold)} top-{self.n} rides across "
            f"{gold['date'].nunique(dropna=False)} days"
        )
        return gold[dc.GOLD_COLUMNS]


def top_k_per_key(
    rows: Iterable[Dict[str, Any]],
    key: Callable[[Dict[str, Any]], Hashable],
    score: Callable[[Dict[str, Any]], Any],
    k: int,
) -> Dict[Hashable, List[Dict[str, Any]]]:
    """Keep the k highest-scoring rows per key with a bounded min-heap.

    Same ordering rules as TopFaresMaterializer: None/NaN scores rank last,
    ties go to the row seen first. Returned lists are best-first.
    """
    heaps: Dict[Hashable, list] = {}
    for i, row in enumerate(rows):
        s = score(row)
        if s is None or (isinstance(s, float) and math.isnan(s)):
            s = -math.inf
        # (score, -i): the min-heap evicts the lowest score, then the latest row
        entry = (s, -i, row)
        heap = heaps.setdefault(key(row), [])
        if len(heap) < k:
            heapq.heappush(heap, entry)
        elif entry[:2] > heap[0][:2]:
            heapq.heapreplace(heap, entry)

    return {
        group: [row for _, _, row in sorted(heap, key=lambda e: e[:2], reverse=True)]
        for group, heap in heaps.items()
    }
