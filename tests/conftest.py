import pytest
import pandas as pd
import numpy as np
from taxi_pipeline.data_loader import BronzeLoader
from taxi_pipeline.pipeline import run_stages

@pytest.fixture
def raw_data():
    """Provides a loosely typed DataFrame mimicking the trip source (everything as text)."""
    data = {
        'tpep_pickup_datetime': [
            '2024-01-01T08:00', '2024-01-01T09:00', '2024-01-01T10:00', '2024-01-01T11:00',
            '2024-01-01T12:00', '2024-01-01T13:00', '2024-01-01T14:00',
            '2024-01-02T07:00', '2024-01-02T08:00',
            '2023-12-31T23:30', '2024-12-30T10:00',
        ],
        'tpep_dropoff_datetime': [
            '2024-01-01T08:10', '2024-01-01T09:05', '2024-01-01T10:20', '2024-01-01T11:15',
            '2024-01-01T12:20', '2024-01-01T13:10', '2024-01-01T14:30',
            '2024-01-02T07:10', '2024-01-02T08:05',
            '2024-01-01T00:05', '2024-12-30T10:15',
        ],
        # 0, None and -1.5 violate the distance constraint
        'trip_distance': ['2.0', '0', None, '-1.5', '3.0', '1.0', '5.0', '1.0', '0.5', '4.0', '2.0'],
        'fare_amount': ['250.0', '8.0', '9.0', '10.0', '30.0', '45.0', '20.0', '12.0', '60.0', '18.0', '15.0'],
        'pickup_zip': ['10001', '10003', '10003', '10003', '10011', '10012', '10013', np.nan, '10016', '11201', '10001'],
        'dropoff_zip': ['10002', '10004', '10004', '10004', '10021', '10022', '10023', '10024', '10026', '11215', '10002'],
        'passenger_count': [1, 1, 2, 1, 3, 1, 1, 2, 1, 1, 4],  # not part of the contract
    }
    return pd.DataFrame(data)

@pytest.fixture
def bronze(raw_data):
    """Bronze layer produced by the real loader."""
    return BronzeLoader().transform(raw_data)

@pytest.fixture
def tables(raw_data):
    """All four pipeline outputs for the raw_data fixture."""
    return run_stages(raw_data)

@pytest.fixture
def bronze_factory():
    """Returns a builder for canonical bronze frames."""
    return _make_bronze

def _make_bronze(rows):
    """Build a canonical bronze frame from (pickup, distance, fare, pickup_zip) tuples."""
    pickups = pd.to_datetime([r[0] for r in rows]).astype('datetime64[ns]')
    return pd.DataFrame({
        'tpep_pickup_datetime': pickups,
        'tpep_dropoff_datetime': pickups + pd.Timedelta(minutes=10),
        'trip_distance': pd.Series([r[1] for r in rows], dtype='float64'),
        'fare_amount': pd.Series([r[2] for r in rows], dtype='float64'),
        'pickup_zip': pd.array([r[3] for r in rows], dtype='Int32'),
        'dropoff_zip': pd.array([10002] * len(rows), dtype='Int32'),
    })
