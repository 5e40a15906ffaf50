import mlflow
import pytest
import yaml

import main
import taxi_pipeline.data_contract as dc

EXPERIMENT = 'NYC_Taxi_Medallion_Tests'


@pytest.fixture
def tracking(tmp_path, monkeypatch):
    """Local file-based MLflow store so no tracking server is needed."""
    monkeypatch.setenv('MLFLOW_ALLOW_FILE_STORE', 'true')
    mlflow.set_tracking_uri((tmp_path / 'mlruns').as_uri())
    mlflow.set_experiment(EXPERIMENT)
    monkeypatch.setenv('LOCAL_ARTIFACT_DIR', str(tmp_path / 'artifacts'))
    return tmp_path


def make_params(tmp_path, fail_on_error=True):
    return {
        'data': {
            'source_path': str(tmp_path / 'trips.csv'),
            'output_dir': str(tmp_path / 'warehouse'),
        },
        'annotator': {'fare_per_mile_threshold': 100.0},
        'gold': {'top_n': 3},
        'validation': {'fail_on_error': fail_on_error},
        'mlflow': {'experiment_name': EXPERIMENT},
    }


def write_config(tmp_path, raw_data, **kwargs):
    raw_data.to_csv(tmp_path / 'trips.csv', index=False)
    path = tmp_path / 'params.yaml'
    path.write_text(yaml.safe_dump(make_params(tmp_path, **kwargs)))
    return str(path)


def runs_named(run_name):
    return mlflow.search_runs(
        experiment_names=[EXPERIMENT], filter_string=f"attributes.run_name = '{run_name}'"
    )


def test_failed_report_raises_when_gated(tracking, tables):
    t = tables.as_dict()
    t[dc.WEEKLY_TABLE] = t[dc.WEEKLY_TABLE].iloc[1:]

    with pytest.raises(ValueError, match='bronze_vs_weekly'):
        with mlflow.start_run() as run:
            main.validate_tables(t, make_params(tracking), str(tracking / 'artifacts'))

    assert mlflow.get_run(run.info.run_id).data.tags['validation'] == 'failed'


def test_failed_report_returns_false_when_not_gated(tracking, tables):
    t = tables.as_dict()
    t[dc.WEEKLY_TABLE] = t[dc.WEEKLY_TABLE].iloc[1:]

    with mlflow.start_run() as run:
        passed = main.validate_tables(t, make_params(tracking, fail_on_error=False), str(tracking / 'artifacts'))

    assert passed is False
    assert mlflow.get_run(run.info.run_id).data.tags['validation'] == 'failed'
    assert (tracking / 'artifacts' / 'validation_report.json').exists()


def test_clean_tables_pass(tracking, tables):
    with mlflow.start_run() as run:
        assert main.validate_tables(tables.as_dict(), make_params(tracking), str(tracking / 'artifacts')) is True

    data = mlflow.get_run(run.info.run_id).data
    assert data.tags['validation'] == 'passed'
    assert data.metrics['check_bronze_count'] == 8.0


def test_full_run_materializes_tables(tracking, raw_data):
    main.run_pipeline(write_config(tracking, raw_data))

    for name in dc.OUTPUT_TABLES:
        assert (tracking / 'warehouse' / f'{name}.parquet').exists()
    assert runs_named('full_recompute')['tags.status'].tolist() == ['success']


def test_expectation_failure_publishes_nothing(tracking, raw_data, monkeypatch):
    config = write_config(tracking, raw_data)
    main.run_pipeline(config)
    warehouse = tracking / 'warehouse'
    before = {p.name: p.read_bytes() for p in warehouse.iterdir()}

    def failing_validate(self):
        raise ValueError('Critical Data Validation Failed')

    monkeypatch.setattr(main.LayerExpectations, 'validate', failing_validate)
    raw_data.head(5).to_csv(tracking / 'trips.csv', index=False)
    with pytest.raises(ValueError, match='Critical Data Validation Failed'):
        main.run_pipeline(config)

    # The earlier snapshot is still the published one
    assert {p.name: p.read_bytes() for p in warehouse.iterdir()} == before
    assert 'expectations_failed' in runs_named('full_recompute')['tags.status'].tolist()


def test_validate_only_tags_status(tracking, raw_data):
    config = write_config(tracking, raw_data)
    main.run_pipeline(config)
    main.run_pipeline(config, validate_only=True)

    assert runs_named('validate')['tags.status'].tolist() == ['success']


def test_validate_only_without_tables_fails(tracking, raw_data):
    config = write_config(tracking, raw_data)

    with pytest.raises(FileNotFoundError):
        main.run_pipeline(config, validate_only=True)

    assert runs_named('validate')['tags.status'].tolist() == ['validation_failed']
