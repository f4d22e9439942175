import os

import pytest
from pytest_mock import MockFixture

from hpss_hsi.client import HsiClient, Naming, validate_chmod_mode
from hpss_hsi.errors import CommandFailure, HsiError, InvalidArgument

from .test_listing import EXTENDED_FILE, PLAIN_FILE, STORAGE_BLOCK
from .test_session import FakeHsiProcess, PRIMING, hsi_config  # noqa: F401

DATA_DIR = "drwxr-xr-x   4 alice    grp        5  100        512 Feb 14 2023 08:30:15 data"
DOT = "drwxr-xr-x   4 alice    grp        5  100        512 Feb 14 2023 08:30:15 ."
DOTDOT = "drwxr-xr-x  12 alice    grp        5  100       4096 Feb 14 2023 08:30:15 .."
EMPTY_SUB = "drwxr-xr-x   2 alice    grp        5  100        512 Feb 14 2023 08:30:15 sub"
README = "-rw-r--r--   1 alice    grp        5  100         12 Feb 14 2023 08:30:15 README"


@pytest.fixture
def make_client(mocker: MockFixture, hsi_config):  # noqa: F811
    clients = []

    def _make(responses=None):
        fake = FakeHsiProcess(responses)
        mocker.patch("hpss_hsi.session.subprocess.Popen", return_value=fake)
        client = HsiClient(hsi_config)
        clients.append(client)
        return client, fake

    yield _make
    for client in clients:
        client.close()


def sent(fake):
    return [command for command in fake.commands if command != PRIMING]


def test_stat(make_client):
    client, fake = make_client({"ls -aldD ./foo.txt": [PLAIN_FILE]})

    entry = client.stat("foo.txt")

    assert entry.name == "foo.txt"
    assert entry.size == 1024
    assert sent(fake) == ["ls -aldD ./foo.txt"]


def test_stat_with_tape_info(make_client):
    client, fake = make_client({"ls -aldD -Tm -X ./foo.txt": [EXTENDED_FILE] + STORAGE_BLOCK})

    entry = client.stat("/foo.txt", use_mtime=True, tape_info=True)

    assert entry.cos == 2
    assert len(entry.levels) == 4


def test_tape_residency(make_client):
    client, _ = make_client({"ls -aldD -X ./foo.txt": [EXTENDED_FILE] + STORAGE_BLOCK})

    assert client.is_on_disk("foo.txt")
    assert client.is_on_tape("foo.txt")
    # Level 1 holds only 1023 of 1024 bytes.
    assert not client.migration_finished("foo.txt")


def test_exists(make_client):
    client, _ = make_client({
        "ls -aldD ./foo.txt": [PLAIN_FILE],
        "ls -aldD ./gone": ["*** ls: ./gone: HPSS_ENOENT"],
        "ls -aldD ./locked": ["*** ls: ./locked: HPSS_EACCES"],
    })

    assert client.exists("foo.txt")
    assert not client.exists("gone")
    with pytest.raises(CommandFailure) as exc_info:
        client.exists("locked")
    assert exc_info.value.line == "*** ls: ./locked: HPSS_EACCES"


def test_list_entries(make_client):
    client, fake = make_client({
        "ls -aldD ./data": [DATA_DIR],
        "ls -alD ./data": [DOT, DOTDOT, PLAIN_FILE, EMPTY_SUB, README],
    })

    entries = client.list_entries("data", pattern=r".*\.txt|sub")

    assert [entry.name for entry in entries] == ["foo.txt", "sub"]
    assert all(entry.parent == "/data" for entry in entries)
    assert sent(fake) == ["ls -aldD ./data", "ls -alD ./data"]


def test_list_entries_recursive_with_relative_names(make_client):
    client, _ = make_client({
        "ls -aldD ./data": [DATA_DIR],
        "ls -alD ./data": [DOT, DOTDOT, EMPTY_SUB, README],
        "ls -aldD ./data/sub": [EMPTY_SUB],
        "ls -alD ./data/sub": [DOT, DOTDOT, PLAIN_FILE],
    })

    entries = client.list_entries("data", recursive=True, naming=Naming.RELATIVE)

    assert [entry.name for entry in entries] == ["/data/sub", "/data/sub/foo.txt", "/data/README"]


def test_list_entries_on_a_file(make_client):
    client, fake = make_client({"ls -aldD ./data/foo.txt": [PLAIN_FILE]})

    entries = client.list_entries("data/foo.txt", naming=Naming.ABSOLUTE)

    assert len(entries) == 1
    assert entries[0].name == "/home/a/alice/data/foo.txt"
    assert entries[0].parent == "/data"
    assert sent(fake) == ["ls -aldD ./data/foo.txt"]


def test_list_dir(make_client):
    client, _ = make_client({
        "ls -1 ./data": ["sub/", "foo.txt", "README"],
        "ls -1 ./data/sub": ["inner.txt"],
    })

    entries = client.list_dir("data", recursive=True)

    assert [(entry.name, entry.parent, entry.is_directory) for entry in entries] == [
        ("sub", "/data", True),
        ("inner.txt", "/data/sub", False),
        ("foo.txt", "/data", False),
        ("README", "/data", False),
    ]


def test_properties_come_from_priming(make_client):
    client, _ = make_client()

    assert client.cwd == "/home/a/alice"
    assert client.hpss_version == "H743.0.2"
    assert client.abs_path("data/foo.txt") == "/home/a/alice/data/foo.txt"
    assert client.rel_path("/home/a/alice/data/foo.txt") == "data/foo.txt"


@pytest.mark.parametrize("mode", ["u+x", "go-w", "a=rX,u+w", "+t", "g=u", "ug+rw-x"])
def test_valid_symbolic_modes(mode):
    validate_chmod_mode(mode)


@pytest.mark.parametrize("mode", ["", "+q", "777x", "u", "u+x,", "rwx"])
def test_invalid_symbolic_modes(mode):
    with pytest.raises(InvalidArgument):
        validate_chmod_mode(mode)


def test_chmod_commands(make_client):
    client, fake = make_client()

    client.chmod(0o755, "data", recursive=True, dirs_only=True)
    client.chmod("g+w", "foo.txt")

    assert sent(fake) == ["chmod -R -d 755 ./data", "chmod g+w ./foo.txt"]


def test_chmod_rejects_bad_arguments(make_client):
    client, fake = make_client()

    with pytest.raises(InvalidArgument):
        client.chmod(0o10000, "foo.txt")
    with pytest.raises(InvalidArgument):
        client.chmod("u+x", "foo.txt", files_only=True, dirs_only=True)
    assert sent(fake) == []


def test_namespace_commands(make_client):
    client, fake = make_client()

    client.mkdir("a/b", parents=True)
    client.rmdir("a/b")
    client.delete("old.txt")
    client.rename("x", "y", force=True)
    client.link("x", "z")
    client.symlink("x", "s")
    client.chcos("x", -1)
    client.chcos("x", 12)

    assert sent(fake) == [
        "mkdir -p ./a/b",
        "rmdir ./a/b",
        "delete ./old.txt",
        "mv -f ./x ./y",
        "ln -f ./x ./z",
        "ln -f -s ./x ./s",
        "chcos auto ./x",
        "chcos 12 ./x",
    ]


def test_annotations(make_client):
    client, fake = make_client({
        "ls -Ad ./foo.txt": ["foo.txt", "   Annotation: raw scan 42"],
    })

    client.annotate("foo.txt", "raw scan 42")
    assert client.get_annotation("foo.txt") == "raw scan 42"
    assert sent(fake)[0] == 'annotate -A "raw scan 42" ./foo.txt'

    with pytest.raises(InvalidArgument):
        client.annotate("foo.txt", "x" * 251)
    with pytest.raises(InvalidArgument):
        client.annotate("foo.txt", 'say "hi"')


def test_checksums(make_client):
    digest = "d41d8cd98f00b204e9800998ecf8427e"
    client, fake = make_client({
        "hashlist -h ./new.dat": ["(none)  ./new.dat"],
        "hashcreate -H md5 ./new.dat": [f"{digest} md5 ./new.dat"],
        "hashlist -h ./old.dat": [f"{digest.upper()} md5 ./old.dat"],
        "hashverify ./old.dat": ["./old.dat: (md5) OK"],
        "hashverify ./bad.dat": ["./bad.dat: (md5) FAILED"],
        "hashverify ./new.dat": ["no valid checksum found for ./new.dat"],
    })

    assert client.get_checksum("new.dat") is None
    assert client.get_checksum("new.dat", create=True) == digest
    assert client.get_checksum("old.dat") == digest
    assert client.verify_checksum("old.dat")
    assert not client.verify_checksum("bad.dat")
    assert client.verify_checksum("new.dat", create=True)
    with pytest.raises(HsiError):
        client.verify_checksum("new.dat")


def test_du(make_client):
    client, _ = make_client({"du -n -s ./data": ["", "  directory usage:", "123456\t./data"]})

    assert client.du("data") == 123456


def test_transfers(make_client, tmp_path):
    client, fake = make_client()

    client.get("data/foo.txt", str(tmp_path / "foo.txt"))
    client.get("data", str(tmp_path), recursive=True)
    client.put("/scratch/foo.txt", "data/foo.txt")
    client.put("/scratch/foo.txt", "data/foo.txt", cos=7)

    assert sent(fake) == [
        f"get -c on {tmp_path / 'foo.txt'} : ./data/foo.txt",
        f"lcd {tmp_path}",
        "get -c on -R ./data",
        "put -c on -H md5 /scratch/foo.txt : ./data/foo.txt",
        "put -c on -H md5 /scratch/foo.txt : ./data/foo.txt cos=7",
    ]


def test_stage_inline(make_client):
    client, fake = make_client()

    client.stage(["data/a", "data/b"])

    assert sent(fake) == ["stage -w /home/a/alice/data/a /home/a/alice/data/b"]


def test_stage_through_input_file(make_client, mocker: MockFixture):
    client, fake = make_client()
    written = {}
    real_run = client.run

    def capture(*args, **kwargs):
        if args[0] == "in":
            with open(args[1]) as queue_file:
                written["text"] = queue_file.read()
            written["path"] = args[1]
        return real_run(*args, **kwargs)

    mocker.patch.object(client, "run", side_effect=capture)
    paths = [f"data/file{i:03d}" for i in range(51)]

    client.stage(paths)

    lines = written["text"].splitlines()
    assert lines[0] == "stage -w <<EOF"
    assert lines[1] == "/home/a/alice/data/file000"
    assert lines[-1] == "EOF"
    assert len(lines) == 53
    assert not os.path.exists(written["path"])
    assert sent(fake) == [f"in {written['path']}"]


def test_tape_management_commands(make_client):
    client, fake = make_client()

    client.purge("data", recursive=True)
    client.migrate("data/foo.txt", force=True, purge=True)

    assert sent(fake) == ["purge -R ./data", "migrate -F -P ./data/foo.txt"]


def test_paths_resolve_under_init_dir(mocker: MockFixture, hsi_config):  # noqa: F811
    hsi_config.init_dir = "/archive/"
    fake = FakeHsiProcess()
    mocker.patch("hpss_hsi.session.subprocess.Popen", return_value=fake)

    with HsiClient(hsi_config) as client:
        assert client.endpoint.root_path == "/archive/"
        client.mkdir("2024/run1")
        assert client.abs_path("foo.txt") == "/archive/foo.txt"

    assert sent(fake) == ["mkdir /archive/2024/run1"]
