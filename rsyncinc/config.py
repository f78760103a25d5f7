import os

from omegaconf import OmegaConf

from rsyncinc.errors import ConfigError
from rsyncinc.retention import make_policy

DEFAULTS = {
    "backup": {
        "directory": None,
        "rsync_options": None,
        "fake_super": False,
        "pidfile": False,
        "no_tree": False,
        "retention": {"keep": None, "keep_recent": None},
        "sets": [],
    },
    "usage": {
        "database": None,
        "du_command": ["du", "-s", "-k"],
    },
    "report": {
        "entries": 30,
    },
}

USAGE_DB_NAME = "rsyncinc_usage.db"


def load_config(filename):
    if not os.path.exists(filename):
        raise ConfigError(f"Config file does not exist {filename}")
    conf = OmegaConf.merge(OmegaConf.create(DEFAULTS), OmegaConf.load(filename))
    if conf.backup.directory is None:
        raise ConfigError(f"backup.directory is not set in {filename}")
    for set_conf in conf.backup.sets:
        if "name" not in set_conf or "source" not in set_conf:
            raise ConfigError(f"Every backup set in {filename} needs a name and a source")
    return conf


def find_set(conf, name):
    for set_conf in conf.backup.sets:
        if set_conf.name == name:
            return set_conf
    raise ConfigError(f"Backup set '{name}' is not configured")


def selected_sets(conf, name=None):
    if name is not None:
        return [find_set(conf, name)]
    return list(conf.backup.sets)


def retention_policy(conf, set_conf=None):
    keep = conf.backup.retention.keep
    keep_recent = conf.backup.retention.keep_recent
    if set_conf is not None:
        keep = set_conf.get("keep", keep)
        keep_recent = set_conf.get("keep_recent", keep_recent)
    return make_policy(keep, keep_recent)


def usage_database_path(conf):
    if conf.usage.database is not None:
        return conf.usage.database
    return os.path.join(conf.backup.directory, USAGE_DB_NAME)
