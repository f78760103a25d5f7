import os

from rsyncinc import cli
from rsyncinc.usagedb import UsageDatabase

SUMMARY = """\
Number of files: 10
Number of files transferred: 2
Total file size: 4096 bytes
Total transferred file size: 2048 bytes
total size is 4096  speedup is 1.00
"""


def make_generations(directory, name, days):
    for day in days:
        identifier = f"{name}.2024-01-{day:02d}T000000"
        os.mkdir(os.path.join(directory, identifier))
        with open(os.path.join(directory, identifier + ".rsync_log"), "w") as fh:
            fh.write(SUMMARY)


def test_list(config_file, capsys):
    directory = str(config_file.parent / "backups")
    make_generations(directory, "app", [1, 2])
    assert cli.main(["-c", str(config_file), "list"]) == 0
    out = capsys.readouterr().out
    assert "app.2024-01-01T000000" in out
    assert "app.2024-01-02T000000" in out


def test_cleanup(config_file):
    directory = str(config_file.parent / "backups")
    make_generations(directory, "app", [1, 2, 3, 4, 5])
    assert cli.main(["-q", "-c", str(config_file), "cleanup", "-n", "app"]) == 0
    assert sorted(os.listdir(directory)) == [
        f"app.2024-01-0{day}T000000{suffix}" for day in (3, 4, 5) for suffix in ("", ".rsync_log")
    ]


def test_usage_update(config_file, monkeypatch, capsys):
    directory = str(config_file.parent / "backups")
    make_generations(directory, "app", [1, 2])
    calls = []

    def fake_measure(paths, command):
        calls.append(paths)
        return [1] * len(paths)

    monkeypatch.setattr(cli, "du_measure", fake_measure)
    assert cli.main(["-c", str(config_file), "usage", "--update"]) == 0
    assert len(calls) == 2
    db = UsageDatabase.load(os.path.join(directory, "rsyncinc_usage.db"))
    assert len(db) == 2
    assert "app" in capsys.readouterr().out

    assert cli.main(["-c", str(config_file), "usage", "--update"]) == 0
    assert len(calls) == 2


def test_stats(config_file, capsys):
    directory = str(config_file.parent / "backups")
    make_generations(directory, "app", [1])
    make_generations(directory, "db", [2])
    assert cli.main(["-c", str(config_file), "stats", "-a"]) == 0
    out = capsys.readouterr().out
    assert "Top Usage By Total Files" in out
    assert "4.00 Kibytes" in out


def test_config_error_exit_status(tmp_path):
    assert cli.main(["-c", str(tmp_path / "missing.yml"), "list"]) == 1


def test_no_command(config_file):
    assert cli.main(["-c", str(config_file)]) == 2


def save_usage(directory, text):
    path = os.path.join(directory, "rsyncinc_usage.db")
    with open(path, "w") as fh:
        fh.write(text)
    return path


def fake_du(monkeypatch):
    calls = []

    def fake_measure(paths, command):
        calls.append(paths)
        return [1] * len(paths)

    monkeypatch.setattr(cli, "du_measure", fake_measure)
    return calls


def test_usage_update_named_set_without_generations(config_file, monkeypatch, capsys):
    directory = str(config_file.parent / "backups")
    make_generations(directory, "db", [1])
    path = save_usage(
        directory,
        "100\tapp.2024-01-01T000000\t-\t-\n"
        "7\tdb.2024-01-01T000000\t-\t-\n",
    )
    calls = fake_du(monkeypatch)
    assert cli.main(["-c", str(config_file), "usage", "--update", "-n", "app"]) == 0
    db = UsageDatabase.load(path)
    assert db.get("app", "2024-01-01T000000") is None
    # other sets are not touched when a set is named
    assert db.get("db", "2024-01-01T000000").size_kb == 7
    assert calls == []
    assert "app" not in capsys.readouterr().out


def test_usage_update_purge(config_file, monkeypatch):
    directory = str(config_file.parent / "backups")
    make_generations(directory, "db", [1])
    path = save_usage(directory, "100\tgone.2024-01-01T000000\t-\t-\n")
    calls = fake_du(monkeypatch)
    assert cli.main(["-c", str(config_file), "usage", "--update", "--purge"]) == 0
    db = UsageDatabase.load(path)
    assert db.set_names() == ["db"]
    assert len(calls) == 1


def test_usage_update_without_purge_keeps_unlisted_sets(config_file, monkeypatch):
    directory = str(config_file.parent / "backups")
    path = save_usage(directory, "100\tgone.2024-01-01T000000\t-\t-\n")
    fake_du(monkeypatch)
    assert cli.main(["-c", str(config_file), "usage", "--update"]) == 0
    assert UsageDatabase.load(path).set_names() == ["gone"]


def test_usage_zero_entries(config_file, capsys):
    directory = str(config_file.parent / "backups")
    save_usage(directory, "100\tapp.2024-01-01T000000\t-\t-\n")
    assert cli.main(["-c", str(config_file), "usage", "-N", "0"]) == 0
    assert "app" not in capsys.readouterr().out
