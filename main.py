import argparse
import json
import logging
import os

import mlflow
import yaml

from taxi_pipeline.data_loader import BronzeLoader
from taxi_pipeline.data_validation import LayerExpectations, PipelineValidator
from taxi_pipeline.pipeline import run_stages
from taxi_pipeline.storage import TableStore
import taxi_pipeline.data_contract as dc


# Logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logging.getLogger("great_expectations").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def load_params(params_path: str) -> dict:
    with open(params_path, "r") as f:
        return yaml.safe_load(f)


def serialize_gx_results(results: dict) -> dict:
    output = {"success": all(r.success for r in results.values()), "tables": {}}
    for table, res in results.items():
        output["tables"][table] = [
            {
                "success": r.success,
                "expectation": r.expectation_config.type,
                "column": r.expectation_config.kwargs.get("column"),
                "unexpected_list": r.result.get("partial_unexpected_list", []),
            }
            for r in res.results
        ]
    return output


def write_json_artifact(artifact_dir: str, filename: str, payload: dict) -> str:
    os.makedirs(artifact_dir, exist_ok=True)
    path = os.path.join(artifact_dir, filename)
    with open(path, "w") as f:
        json.dump(payload, f, indent=2, default=str)
    mlflow.log_artifact(path)
    return path


def validate_tables(tables: dict, params: dict, artifact_dir: str) -> bool:
    threshold = float(params["annotator"]["fare_per_mile_threshold"])
    top_n = int(params["gold"]["top_n"])
    fail_on_error = bool(params["validation"].get("fail_on_error", True))

    report = PipelineValidator(tables, threshold=threshold, top_n=top_n).run()
    mlflow.log_metrics({f"check_{k}": v for k, v in report.metrics().items()})
    write_json_artifact(artifact_dir, "validation_report.json", report.to_dict())
    mlflow.set_tag("validation", "passed" if report.passed else "failed")

    if not report.passed and fail_on_error:
        raise ValueError(f"Cross-layer validation failed: {report.failures}")
    return report.passed


def run_pipeline(params_path: str, validate_only: bool = False) -> None:
    params = load_params(params_path)

    # --- Read config ---
    source_path = params["data"]["source_path"]
    output_dir = params["data"]["output_dir"]
    threshold = float(params["annotator"]["fare_per_mile_threshold"])
    top_n = int(params["gold"]["top_n"])
    exp_name = params["mlflow"]["experiment_name"]

    # Write temp artifacts to a writable place in containers (Airflow)
    artifact_dir = os.environ.get("LOCAL_ARTIFACT_DIR", "/tmp/taxi_pipeline_artifacts")
    store = TableStore(output_dir)

    # --- MLflow ---
    mlflow.set_experiment(exp_name)

    with mlflow.start_run(run_name="validate" if validate_only else "full_recompute") as run:
        logger.info(f"Starting Run: {run.info.run_id}")

        mlflow.log_param("contract_version", dc.CONTRACT_VERSION)
        mlflow.log_param("data_source", source_path)
        mlflow.log_param("output_dir", output_dir)
        mlflow.log_params({"fare_per_mile_threshold": threshold, "top_n": top_n})

        if validate_only:
            try:
                passed = validate_tables(store.read_all(), params, artifact_dir)
            except Exception as e:
                mlflow.set_tag("status", "validation_failed")
                logger.exception(f"Validation failed: {e}")
                raise
            mlflow.set_tag("status", "success" if passed else "validation_failed")
            logger.info("Validation finished.")
            return

        # 1) Load raw source
        try:
            raw = BronzeLoader(source_path).read_source()
        except Exception as e:
            mlflow.set_tag("status", "load_failed")
            logger.exception(f"Loader failed: {e}")
            raise

        # 2) Bronze -> Silver -> Gold (cast failures fail the whole batch)
        try:
            tables = run_stages(raw, params)
        except Exception as e:
            mlflow.set_tag("status", "transform_failed")
            logger.exception(f"Transform failed: {e}")
            raise

        stats = tables.bronze.attrs.get("stats", {})
        for k, v in stats.items():
            mlflow.log_metric(f"loader_{k}", float(v))
        mlflow.log_metric("suspicious_rides", float(tables.suspicious["suspicious_flag"].sum()))

        # 3) Layer schemas with Great Expectations, gating anything published
        expectations = LayerExpectations(tables.as_dict(), top_n=top_n)
        try:
            expectations.validate()
            mlflow.set_tag("data_quality", "passed")
        except Exception as e:
            mlflow.set_tag("data_quality", "failed")
            mlflow.set_tag("status", "expectations_failed")
            logger.exception(f"Validation failed: {e}")
            if expectations.validation_results:
                write_json_artifact(
                    artifact_dir, "gx_report.json", serialize_gx_results(expectations.validation_results)
                )
            raise

        # 4) Materialize: each table replaced whole
        try:
            store.write_all(tables.as_dict())
        except Exception as e:
            mlflow.set_tag("status", "write_failed")
            logger.exception(f"Materialization failed: {e}")
            raise

        # 5) Cross-layer checks, read back from what was materialized
        try:
            validate_tables(store.read_all(), params, artifact_dir)
        except Exception:
            mlflow.set_tag("status", "validation_failed")
            raise

        mlflow.set_tag("status", "success")
        logger.info("Pipeline finished successfully.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--config", default="params.yaml", help="Path to config file")
    parser.add_argument(
        "--validate-only", action="store_true", help="Only run the checks over materialized tables"
    )
    args = parser.parse_args()
    run_pipeline(args.config, validate_only=args.validate_only)
