import pytest

from trainload.config import DEFAULT_BUCKETS, EngineConfig, Settings, build_engine_config, load_engine_config
from trainload.errors import InvalidConfigurationError
from trainload.models.sport import Objective, SportMode


def test_defaults():
    config = EngineConfig()
    assert config.buckets == DEFAULT_BUCKETS
    assert config.gap_threshold_seconds == 10.0
    assert config.ctl_days == 42.0
    assert config.atl_days == 7.0
    assert config.optimization_threshold == 2000
    assert config.objective_for(SportMode.CYCLING) is Objective.MAXIMIZE
    assert config.objective_for(SportMode.RUNNING) is Objective.MINIMIZE


def test_buckets_are_parsed_sorted_and_unique():
    config = build_engine_config(buckets="60, 5,1,60")
    assert config.buckets == (1, 5, 60)


def test_bucket_version_follows_bucket_set():
    a = build_engine_config(buckets=(1, 5, 60))
    b = build_engine_config(buckets=(60, 5, 1))
    c = build_engine_config(buckets=(1, 5, 60, 300))
    assert a.bucket_version == b.bucket_version
    assert a.bucket_version != c.bucket_version
    assert build_engine_config(buckets=(1, 5), bucket_label="v2").bucket_version == "v2"


@pytest.mark.parametrize("values", [
    {"ctl_days": 0},
    {"atl_days": -7},
    {"buckets": ()},
    {"buckets": (0, 5)},
    {"gap_threshold_seconds": 0},
    {"backfill_concurrency": 0},
])
def test_invalid_configuration_is_rejected(values):
    with pytest.raises(InvalidConfigurationError):
        build_engine_config(**values)


def test_load_engine_config_from_yaml(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text(
        "buckets: [1, 5, 60, 1200]\n"
        "ctl-days: 28\n"
        "gap-threshold-seconds: 5\n"
        "objectives:\n"
        "  swimming: maximize\n"
    )
    config = load_engine_config(path)
    assert config.buckets == (1, 5, 60, 1200)
    assert config.ctl_days == 28
    assert config.gap_threshold_seconds == 5
    assert config.objective_for(SportMode.SWIMMING) is Objective.MAXIMIZE


def test_load_engine_config_rejects_non_mapping(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(InvalidConfigurationError):
        load_engine_config(path)


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("TRAINLOAD_CTL_DAYS", "28")
    monkeypatch.setenv("TRAINLOAD_MONGODB_DATABASE", "analytics_test")
    settings = Settings()
    assert settings.mongodb_database == "analytics_test"
    assert settings.engine_config().ctl_days == 28


def test_settings_use_engine_config_file(monkeypatch, tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("atl-days: 10\n")
    monkeypatch.setenv("TRAINLOAD_ENGINE_CONFIG_FILE", str(path))
    assert Settings().engine_config().atl_days == 10
