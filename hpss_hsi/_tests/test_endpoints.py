import pytest

from hpss_hsi.endpoints import HPSSEndpoint, clean_path


@pytest.mark.parametrize("path, expected", [
    ("////hello/../world/./foo//bar", "/world/foo/bar"),
    ("barf", "/barf"),
    ("/", "/"),
    ("", "/"),
    (None, "/"),
    ("../../a", "/a"),
    ("a/b/", "/a/b"),
])
def test_clean_path(path, expected):
    assert clean_path(path) == expected


def test_full_path_relative_root():
    endpoint = HPSSEndpoint()

    assert endpoint.full_path("data/foo.txt") == "./data/foo.txt"
    assert endpoint.full_path("/data/foo.txt") == "./data/foo.txt"


def test_full_path_absolute_root():
    endpoint = HPSSEndpoint("/home/a/alice/archive/")

    assert endpoint.full_path("2024//run1/") == "/home/a/alice/archive/2024/run1"


def test_abs_path():
    cwd = "/home/a/alice"

    assert HPSSEndpoint().abs_path("data/foo.txt", cwd) == "/home/a/alice/data/foo.txt"
    assert HPSSEndpoint("sub").abs_path("foo.txt", cwd) == "/home/a/alice/sub/foo.txt"
    assert HPSSEndpoint("/archive").abs_path("foo.txt", cwd) == "/archive/foo.txt"
    # Already absolute under the working directory.
    assert HPSSEndpoint().abs_path("/home/a/alice/x//y", cwd) == "/home/a/alice/x/y"


def test_rel_path():
    cwd = "/home/a/alice"
    endpoint = HPSSEndpoint("sub")

    assert endpoint.rel_path("/home/a/alice/sub/foo.txt", cwd) == "foo.txt"
    assert endpoint.rel_path("/home/a/alice/sub", cwd) == ""
    assert endpoint.rel_path("/elsewhere/foo.txt", cwd) == "elsewhere/foo.txt"
