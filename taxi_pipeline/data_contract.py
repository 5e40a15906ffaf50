"""
taxi_pipeline/data_contract.py

Single Source of Truth for table names, schemas and quality rules.
"""

# Versioning allows us to track which rules were active
# for a specific pipeline run.
CONTRACT_VERSION = "2.0.0"

# -------------------------------------------------------------------
# Tables
# -------------------------------------------------------------------
BRONZE_TABLE = "bronze_trips"
SUSPICIOUS_TABLE = "silver_suspicious_rides"
WEEKLY_TABLE = "silver_weekly_aggregates"
GOLD_TABLE = "gold_top3_fares_per_day"

OUTPUT_TABLES = [BRONZE_TABLE, SUSPICIOUS_TABLE, WEEKLY_TABLE, GOLD_TABLE]


# -------------------------------------------------------------------
# Schema Definition
# -------------------------------------------------------------------
PICKUP_COL = "tpep_pickup_datetime"
DROPOFF_COL = "tpep_dropoff_datetime"

SOURCE_COLUMNS = [
    PICKUP_COL,
    DROPOFF_COL,
    "trip_distance",
    "fare_amount",
    "pickup_zip",
    "dropoff_zip",
]

# Canonical bronze types. Zips use the nullable integer dtype so a
# missing zip survives the cast as <NA> instead of forcing a float.
BRONZE_DTYPES = {
    PICKUP_COL: "datetime64[ns]",
    DROPOFF_COL: "datetime64[ns]",
    "trip_distance": "float64",
    "fare_amount": "float64",
    "pickup_zip": "Int32",
    "dropoff_zip": "Int32",
}

SUSPICIOUS_COLUMNS = SOURCE_COLUMNS + ["fare_per_mile", "suspicious_flag"]

WEEKLY_COLUMNS = ["year", "week", "total_rides", "total_fare", "avg_trip_distance"]

GOLD_COLUMNS = [
    "date",
    "pickup_ts",
    "dropoff_ts",
    "trip_distance",
    "fare_amount",
    "pickup_zip",
    "dropoff_zip",
    "rn",
]


# -------------------------------------------------------------------
# Domain Rules
# -------------------------------------------------------------------
# Trip Distance: must be present and strictly positive. Rows that
# break this are dropped at ingest, never quarantined.
TRIP_DISTANCE_MIN_EXCLUSIVE = 0.0

# Suspicious rides: fare per mile strictly above this is flagged.
SUSPICIOUS_FARE_PER_MILE = 100.0

# Gold: number of highest-fare rides kept per pickup date.
TOP_N_PER_DAY = 3
