import logging
import os
import shlex
import socket
import time
from contextlib import contextmanager
from datetime import datetime
from subprocess import STDOUT, Popen

from rsyncinc.errors import BackupError, ConfigError
from rsyncinc.naming import format_generation, generation_path, log_path, make_timestamp
from rsyncinc.retention import prune_generations
from rsyncinc.stats import read_tail, sync_completed

logger = logging.getLogger(__name__)

RSYNC_OPTIONS = ["-a", "-x", "-E", "-H", "--delete-excluded", "--delete", "--stats", "--out-format=%o %9l %n %L"]


def ensure_clean_exit(process):
    if process.returncode != 0:
        raise BackupError(f"{' '.join(process.args)} exited with non zero exit code {process.returncode}")


def run(cmd, stdout=None):
    logger.debug(f"EXECUTING \"{' '.join(cmd)}\"")
    process = Popen(cmd, stdout=stdout, stderr=STDOUT if stdout is not None else None)
    process.wait()
    return process


@contextmanager
def pidfile(directory, name):
    path = os.path.join(directory, f"{name}.rsync_inc.pid")
    with open(path, "w") as fh:
        fh.write(f"{os.getpid()}@{socket.gethostname()}\n")
    try:
        yield path
    finally:
        if os.path.exists(path):
            os.remove(path)


def build_rsync_command(source, work_dir, extra_options=None, fake_super=False):
    extra = shlex.split(extra_options) if extra_options else []
    if "--inplace" in extra:
        raise ConfigError("Cannot use the '--inplace' option with rsync, it would crush the incremental data")
    cmd = ["rsync"] + RSYNC_OPTIONS
    if fake_super:
        cmd.append("--fake-super")
    cmd += extra
    # the trailing slash syncs the content of source, not source itself
    source_slash = source if source.endswith("/") else f"{source}/"
    return cmd + [source_slash, work_dir]


def sync(source, directory, name, timestamp, extra_options=None, fake_super=False, runner=run):
    work_dir = os.path.join(directory, name)
    rsync_log = log_path(directory, name, timestamp)
    cmd = build_rsync_command(source, work_dir, extra_options, fake_super)
    logger.info(f"Source       : {source}")
    logger.info(f"Work area    : {work_dir}")
    logger.info(f"Log file     : {rsync_log}")
    with open(rsync_log, "w") as fh:
        process = runner(cmd, stdout=fh)
    if not sync_completed(read_tail(rsync_log, 10)):
        raise BackupError(f"rsync did not seem to complete successfully, check {rsync_log}")
    if process.returncode != 0:
        # 23 and 24 are reported for unreadable or vanished files
        logger.warning(f"rsync exited with code {process.returncode} but completed, check {rsync_log}")
    if not os.path.isdir(work_dir):
        raise BackupError(f"Destination copy {work_dir} was not created")
    return work_dir


def make_hardlink_tree(work_dir, tree, runner=run):
    logger.info(f"Making hardlink tree {tree}")
    ensure_clean_exit(runner(["cp", "-al", work_dir, tree]))


def backup_set(conf, set_conf, policy, now=None, runner=run):
    """
    Creates one new generation of a backup set: old generations are pruned,
    the source is synced into the work area, and the work area is then
    copied as a hardlink tree named after the current time.
    """
    directory = conf.backup.directory
    name = set_conf.name
    if not os.path.isdir(directory):
        raise BackupError(f"Directory does not exist {directory}")
    timestamp = make_timestamp(datetime.fromtimestamp(now if now is not None else time.time()))
    logger.info(f"Backing up {name} as {format_generation(name, timestamp)}")
    extra_options = set_conf.get("rsync_options", conf.backup.rsync_options)
    # rejects bad rsync options before anything gets pruned
    build_rsync_command(set_conf.source, directory, extra_options)

    def _backup():
        start = time.time()
        prune_generations(directory, name, policy)
        work_dir = sync(
            set_conf.source, directory, name, timestamp, extra_options, conf.backup.fake_super, runner
        )
        logger.info(f"Finished rsync backup in {int(time.time() - start)} seconds")
        if set_conf.get("no_tree", conf.backup.no_tree):
            logger.info(f"No hardlink tree required for {name}")
            return None
        tree = generation_path(directory, name, timestamp)
        make_hardlink_tree(work_dir, tree, runner)
        return tree

    if conf.backup.pidfile:
        with pidfile(directory, name):
            return _backup()
    return _backup()
