import os

import pytest

from rsyncinc.config import find_set, load_config, retention_policy, selected_sets, usage_database_path
from rsyncinc.errors import ConfigError
from rsyncinc.retention import RetentionPolicy


def test_load_config_applies_defaults(config_file):
    conf = load_config(str(config_file))
    assert conf.backup.fake_super is False
    assert list(conf.usage.du_command) == ["du", "-s", "-k"]
    assert conf.report.entries == 30
    assert usage_database_path(conf) == os.path.join(conf.backup.directory, "rsyncinc_usage.db")


def test_retention_policy_per_set(config_file):
    conf = load_config(str(config_file))
    assert retention_policy(conf, find_set(conf, "app")) == RetentionPolicy(keep_count=3)
    assert retention_policy(conf, find_set(conf, "db")) == RetentionPolicy(
        keep_count=3, keep_most_recent=2, keep_month_days=(1,)
    )


def test_selected_sets(config_file):
    conf = load_config(str(config_file))
    assert [s.name for s in selected_sets(conf)] == ["app", "db"]
    with pytest.raises(ConfigError):
        selected_sets(conf, "nope")


def test_missing_config(tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "config.yml"))


def test_missing_directory(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("backup:\n  sets: []\n")
    with pytest.raises(ConfigError):
        load_config(str(path))


def test_invalid_retention(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("backup:\n  directory: /tmp\n  retention:\n    keep: 0\n")
    conf = load_config(str(path))
    with pytest.raises(ConfigError):
        retention_policy(conf)
