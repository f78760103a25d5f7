import pytest


@pytest.fixture
def config_file(tmp_path):
    backups = tmp_path / "backups"
    backups.mkdir()
    source = tmp_path / "source"
    source.mkdir()
    (source / "hello.txt").write_text("hello")
    path = tmp_path / "config.yml"
    path.write_text(
        f"""
backup:
  directory: {backups}
  pidfile: true
  retention:
    keep: 3
  sets:
    - name: app
      source: {source}
    - name: db
      source: {source}
      keep_recent: "2,1"
"""
    )
    return path
