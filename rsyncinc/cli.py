#!/usr/bin/env python3

import argparse
import logging
import sys
from importlib.metadata import PackageNotFoundError, version as package_version

from rsyncinc import config as rconfig
from rsyncinc.backup import backup_set
from rsyncinc.errors import RsyncIncError
from rsyncinc.naming import scan_generations
from rsyncinc.reports import Report, ReportEntry, format_report, validate_date
from rsyncinc.retention import prune_generations
from rsyncinc.stats import gather_stats
from rsyncinc.usage import du_measure, refresh_usage
from rsyncinc.usagedb import UsageDatabase

logger = logging.getLogger("rsyncinc")

STATS_REPORTS = {
    "totf": ("= Top Usage By Total Files =======", None),
    "incf": ("= Top Usage By Incremental Files =", None),
    "tots": ("= Top Usage By Total Size ========", 1),
    "incs": ("= Top Usage By Incremental Size ==", 1),
}


def setup_logging(cron):
    logging.basicConfig(
        format="%(levelname)s: [%(asctime)s] %(message)s",
        datefmt="%H:%M:%S",
        level=logging.WARNING if cron else logging.INFO,
    )


def backup(conf, args):
    failed = []
    for set_conf in rconfig.selected_sets(conf, args.name):
        policy = rconfig.retention_policy(conf, set_conf)
        try:
            backup_set(conf, set_conf, policy)
        except RsyncIncError as err:
            logger.error(f"Backup of {set_conf.name} failed : {err}")
            failed.append(set_conf.name)
    return 1 if failed else 0


def cleanup(conf, args):
    for set_conf in rconfig.selected_sets(conf, args.name):
        policy = rconfig.retention_policy(conf, set_conf)
        prune_generations(conf.backup.directory, set_conf.name, policy, dry_run=args.dry_run)
    return 0


def list_generations(conf, args):
    groups = scan_generations(conf.backup.directory, args.name)
    for name in sorted(groups):
        print(f"{name}:")
        for timestamp in groups[name]:
            print(f"\t{name}.{timestamp}")
    return 0


def report_entries(conf, args):
    return conf.report.entries if args.entries is None else args.entries


def date_bounds(args):
    after = validate_date(args.after) if args.after else None
    before = validate_date(args.before) if args.before else None
    return after, before


def usage(conf, args):
    db_path = rconfig.usage_database_path(conf)
    db = UsageDatabase.load(db_path)
    status = 0
    if args.update:
        live = scan_generations(conf.backup.directory, args.name)
        if args.name is not None:
            live.setdefault(args.name, [])
        command = list(conf.usage.du_command)
        summary = refresh_usage(
            db,
            conf.backup.directory,
            live,
            measure=lambda paths: du_measure(paths, command),
            purge_unlisted_sets=args.purge and args.name is None,
        )
        db.save(db_path)
        status = 1 if summary.failed else 0

    after, before = date_bounds(args)
    entries = [
        ReportEntry(e.name, e.timestamp, {"size": e.size_kb})
        for e in db.records()
        if args.name is None or e.name == args.name
    ]
    report = (
        Report(tuple(entries))
        .between(after, before)
        .threshold("size", args.min_kb, args.max_kb)
        .sorted_by(args.sort)
        .top(report_entries(conf, args), args.top)
    )
    print(format_report("= Disk Usage ====================", report, "size", 1024))
    return status


def stats(conf, args):
    reports = args.reports or ["incs"]
    names = [args.name] if args.name else [s.name for s in conf.backup.sets]
    entries = []
    for name in names:
        entries += gather_stats(conf.backup.directory, name)
    after, before = date_bounds(args)
    report = Report(tuple(entries)).between(after, before)
    for key in reports:
        title, factor = STATS_REPORTS[key]
        top = report.sorted_by(key).top(report_entries(conf, args), args.top)
        print(format_report(title, top, key, factor))
    return 0


def add_report_filters(parser):
    parser.add_argument("--after", "-A", help="Only report generations on or after this date", type=str)
    parser.add_argument("--before", "-B", help="Only report generations on or before this date", type=str)
    parser.add_argument("--top", "-T", help="Only report the top entry of each backup set", action="store_true")
    parser.add_argument("--entries", "-N", help="How many entries to report", type=int)


def build_parser():
    parser = argparse.ArgumentParser(
        description="rsyncinc : incremental hardlink backups with rsync, retention and disk usage tracking"
    )
    try:
        prog_version = package_version("rsyncinc")
    except PackageNotFoundError:
        prog_version = "unknown"
    parser.add_argument("-v", "--version", action="version", version=f"rsyncinc {prog_version}")
    parser.add_argument("--cron", "-q", help="Do not log anything except errors", action="store_true")
    parser.add_argument("--conf", "-c", help="Config file name", type=str, default="config.yml")
    subparsers = parser.add_subparsers(help="sub-command help", dest="command")

    backup_parser = subparsers.add_parser("backup", help="Create a new generation of each backup set")
    backup_parser.add_argument("--name", "-n", help="Optional backup set to operate on", type=str)

    cleanup_parser = subparsers.add_parser("cleanup", help="Delete old generations according to retention")
    cleanup_parser.add_argument("--name", "-n", help="Backup set to cleanup, default all", type=str)
    cleanup_parser.add_argument("--dry-run", help="Only show what would be deleted", action="store_true")

    list_parser = subparsers.add_parser("list", help="List complete generations")
    list_parser.add_argument("--name", "-n", help="Backup set to list, default all", type=str)

    usage_parser = subparsers.add_parser("usage", help="Report disk usage of generations")
    usage_parser.add_argument("--name", "-n", help="Backup set to report, default all", type=str)
    usage_parser.add_argument("--update", "-u", help="Recompute stale usage records first", action="store_true")
    usage_parser.add_argument(
        "--purge", "-p", help="Forget usage of backup sets no longer on disk", action="store_true"
    )
    usage_parser.add_argument("--min-kb", help="Only report generations using at least this", type=int)
    usage_parser.add_argument("--max-kb", help="Only report generations using at most this", type=int)
    usage_parser.add_argument(
        "--sort", "-s", help="Sort order", choices=["size", "name", "date"], default="size"
    )
    add_report_filters(usage_parser)

    stats_parser = subparsers.add_parser("stats", help="Report transfer statistics from rsync logs")
    stats_parser.add_argument("--name", "-n", help="Backup set to report, default all", type=str)
    stats_parser.add_argument("-f", dest="reports", action="append_const", const="incf",
                              help="Number of files in incremental backups")
    stats_parser.add_argument("-s", dest="reports", action="append_const", const="incs",
                              help="Amount of data in incremental backups")
    stats_parser.add_argument("-F", dest="reports", action="append_const", const="totf",
                              help="Total number of files")
    stats_parser.add_argument("-S", dest="reports", action="append_const", const="tots",
                              help="Total amount of data")
    stats_parser.add_argument("-a", dest="reports", action="store_const", const=["totf", "incf", "tots", "incs"],
                              help="All reports")
    add_report_filters(stats_parser)
    return parser


COMMANDS = {
    "backup": backup,
    "cleanup": cleanup,
    "list": list_generations,
    "usage": usage,
    "stats": stats,
}


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.cron)
    if args.command not in COMMANDS:
        parser.print_help()
        return 2
    try:
        conf = rconfig.load_config(args.conf)
        return COMMANDS[args.command](conf, args)
    except RsyncIncError as err:
        logger.error(str(err))
        return 1


if __name__ == "__main__":
    sys.exit(main())
