import logging
import os
from typing import Dict

import pandas as pd
import taxi_pipeline.data_contract as dc

logger = logging.getLogger(__name__)


class TableStore:
    """Parquet files under output_dir, one per table, replaced whole on write."""

    def __init__(self, output_dir: str):
        self.output_dir = output_dir

    def path_for(self, name: str) -> str:
        return os.path.join(self.output_dir, f"{name}.parquet")

    def _stage(self, name: str, df: pd.DataFrame) -> str:
        os.makedirs(self.output_dir, exist_ok=True)
        tmp_path = f"{self.path_for(name)}.tmp"
        try:
            df.to_parquet(tmp_path, index=False)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        return tmp_path

    def _publish(self, name: str, tmp_path: str, rows: int) -> str:
        path = self.path_for(name)
        os.replace(tmp_path, path)
        logger.info(f"Materialized {name}: {rows} rows -> {path}")
        return path

    def write(self, name: str, df: pd.DataFrame) -> str:
        # Readers only ever see the previous snapshot or the complete new one
        return self._publish(name, self._stage(name, df), len(df))

    def write_all(self, tables: Dict[str, pd.DataFrame]) -> Dict[str, str]:
        """Stage every table first; nothing is replaced unless all of them were written."""
        staged = {}
        try:
            for name in dc.OUTPUT_TABLES:
                staged[name] = self._stage(name, tables[name])
        except Exception:
            for tmp_path in staged.values():
                os.remove(tmp_path)
            raise

        return {
            name: self._publish(name, tmp_path, len(tables[name]))
            for name, tmp_path in staged.items()
        }

    def read(self, name: str) -> pd.DataFrame:
        path = self.path_for(name)
        if not os.path.exists(path):
            raise FileNotFoundError(f"Table '{name}' has not been materialized at {path}")
        return pd.read_parquet(path)

    def read_all(self) -> Dict[str, pd.DataFrame]:
        return {name: self.read(name) for name in dc.OUTPUT_TABLES}
