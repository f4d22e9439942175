from datetime import datetime

from pytest_mock import MockFixture
from typer.testing import CliRunner

from hpss_hsi.cli import app
from hpss_hsi.stat import Entry, EntryType, Medium, StorageLevel

runner = CliRunner()


def make_client(mocker: MockFixture):
    client = mocker.MagicMock()
    client.__enter__.return_value = client
    mocker.patch("hpss_hsi.cli._client", return_value=client)
    return client


def test_stat_prints_storage_levels(mocker: MockFixture):
    client = make_client(mocker)
    client.stat.return_value = Entry(
        type=EntryType.FILE, mode=0o644, nlink=1, owner="alice", group="grp",
        size=1024, mtime=datetime(2024, 1, 1, 12), name="foo.txt", cos=2,
        levels=[
            StorageLevel(0, Medium.DISK, 1024, 1024),
            StorageLevel(1, Medium.TAPE, 1024, 1024, volume="VOL001", section=3, offset=0),
        ],
    )

    result = runner.invoke(app, ["stat", "--tape", "foo.txt"])

    assert result.exit_code == 0
    client.stat.assert_called_once_with("foo.txt", use_mtime=False, tape_info=True)
    assert "-0644 alice" in result.output
    assert "2024-01-01 12:00:00  foo.txt" in result.output
    assert "level 1 tape" in result.output
    assert "VOL001 3+0" in result.output


def test_exists_exit_code(mocker: MockFixture):
    client = make_client(mocker)

    client.exists.return_value = True
    assert runner.invoke(app, ["exists", "/a"]).exit_code == 0
    client.exists.return_value = False
    result = runner.invoke(app, ["exists", "/a"])
    assert result.exit_code == 1
    assert "no" in result.output


def test_stage_passes_every_path(mocker: MockFixture):
    client = make_client(mocker)

    result = runner.invoke(app, ["stage", "/a", "/b"])

    assert result.exit_code == 0
    client.stage.assert_called_once_with(["/a", "/b"])
    assert "Staged 2 files" in result.output
