"""AssignmentConfig 环境变量加载测试"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from veoflow.core.config import AssignmentConfig, get_db_path, load_assignment_config

_ENV_VARS = [
    "VEOFLOW_ASSIGNMENT_TIMEOUT_MIN",
    "VEOFLOW_SWEEP_INTERVAL_S",
    "VEOFLOW_SWEEP_MAX_DURATION_S",
    "VEOFLOW_SWEEP_BATCH_LIMIT",
    "VEOFLOW_MAX_CONCURRENT_ITEMS",
    "VEOFLOW_DRAIN_TIMEOUT_S",
    "VEOFLOW_URGENT_DEADLINE_HOURS",
    "VEOFLOW_TIMEZONE",
    "VEOFLOW_SCHEDULER_ENABLED",
    "VEOFLOW_DB_PATH",
    "VEOFLOW_DATA_DIR",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)


class TestDefaults:
    def test_defaults(self):
        config = load_assignment_config()
        assert config.assignment_timeout_min == 15
        assert config.sweep_interval_s == 60
        assert config.max_concurrent_items == 3
        assert config.timezone == "UTC"
        assert config.scheduler_enabled is True
        assert config.assignment_timeout == timedelta(minutes=15)

    def test_urgent_window_disabled_by_default(self):
        assert AssignmentConfig().urgent_window is None
        assert AssignmentConfig(urgent_deadline_hours=24).urgent_window == timedelta(hours=24)

    def test_db_path_default_under_data_dir(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("VEOFLOW_DATA_DIR", "/srv/veo")
        assert get_db_path() == "/srv/veo/sqlite/veoflow.db"

    def test_db_path_override(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("VEOFLOW_DB_PATH", "/tmp/x.db")
        assert get_db_path() == "/tmp/x.db"


class TestEnvOverrides:
    def test_int_overrides(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("VEOFLOW_ASSIGNMENT_TIMEOUT_MIN", "30")
        monkeypatch.setenv("VEOFLOW_MAX_CONCURRENT_ITEMS", "5")
        config = load_assignment_config()
        assert config.assignment_timeout_min == 30
        assert config.max_concurrent_items == 5

    def test_invalid_int_falls_back_to_default(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("VEOFLOW_ASSIGNMENT_TIMEOUT_MIN", "fifteen")
        config = load_assignment_config()
        assert config.assignment_timeout_min == 15

    def test_timezone_override(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("VEOFLOW_TIMEZONE", "Asia/Ho_Chi_Minh")
        config = load_assignment_config()
        assert config.tzinfo.key == "Asia/Ho_Chi_Minh"

    @pytest.mark.parametrize("value", ["false", "0", "off", "NO"])
    def test_scheduler_disabled(self, monkeypatch: pytest.MonkeyPatch, value: str):
        monkeypatch.setenv("VEOFLOW_SCHEDULER_ENABLED", value)
        assert load_assignment_config().scheduler_enabled is False


class TestValidation:
    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValidationError):
            AssignmentConfig(timezone="Mars/Olympus")

    def test_sweep_duration_must_be_below_interval(self):
        with pytest.raises(ValidationError):
            AssignmentConfig(sweep_interval_s=30, sweep_max_duration_s=30)

    def test_non_positive_capacity_rejected(self):
        with pytest.raises(ValidationError):
            AssignmentConfig(max_concurrent_items=0)
