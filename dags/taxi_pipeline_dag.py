from airflow import DAG
from airflow.operators.bash import BashOperator
from datetime import datetime

default_args = {
    "owner": "data_engineer",
    "depends_on_past": False,
    # A failed run is re-triggered as a fresh full recompute
    "retries": 0,
}

MLFLOW_ENV = {
    "MLFLOW_TRACKING_URI": "http://mlflow_server:5000",
    "LOCAL_ARTIFACT_DIR": "/tmp/taxi_pipeline_artifacts",
}

with DAG(
    dag_id="nyc_taxi_medallion",
    default_args=default_args,
    description="Recompute bronze/silver/gold taxi tables and validate them",
    start_date=datetime(2025, 1, 1),
    schedule=None,          # manual trigger
    catchup=False,
    tags=["etl", "medallion"],
) as dag:

    recompute_tables = BashOperator(
        task_id="recompute_tables",
        bash_command="cd /opt/airflow/project && python main.py --config params.yaml",
        env=MLFLOW_ENV,
    )

    validate_tables = BashOperator(
        task_id="validate_tables",
        bash_command="cd /opt/airflow/project && python main.py --config params.yaml --validate-only",
        env=MLFLOW_ENV,
    )

    recompute_tables >> validate_tables
