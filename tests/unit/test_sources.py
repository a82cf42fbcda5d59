import os

import pytest

from allocviewer._sources import MAIN
from allocviewer._sources import NATIVE_CODE
from allocviewer._sources import PYTHON_INTERNALS
from allocviewer._sources import SELF_DIR
from allocviewer._sources import SELF_PACKAGE
from allocviewer._sources import STDLIB
from allocviewer._sources import UNKNOWN
from allocviewer._sources import ResolvedPath
from allocviewer._sources import SourceLocator


@pytest.mark.parametrize(
    "file, expected",
    [
        ("", ResolvedPath("", UNKNOWN, "")),
        ("???", ResolvedPath("", UNKNOWN, "???")),
        (
            "<frozen importlib._bootstrap>",
            ResolvedPath("", PYTHON_INTERNALS, "/<frozen importlib._bootstrap>"),
        ),
        ("<string>", ResolvedPath("", MAIN, "/<string>")),
        ("<ipython-input-3-abc>", ResolvedPath("", MAIN, "/<ipython-input-3-abc>")),
        (
            "Objects/listobject.c",
            ResolvedPath("Objects/listobject.c", PYTHON_INTERNALS, "/listobject.c"),
        ),
        (
            "/src/numpy/core/multiarray.c",
            ResolvedPath("/src/numpy/core/multiarray.c", NATIVE_CODE, "/multiarray.c"),
        ),
        (
            "/usr/lib/libz.so.1",
            ResolvedPath("/usr/lib/libz.so.1", NATIVE_CODE, "/libz.so.1"),
        ),
        (
            "/usr/lib/python3.11/json/encoder.py",
            ResolvedPath(
                "/usr/lib/python3.11/json/encoder.py", STDLIB, "/json/encoder.py"
            ),
        ),
        (
            "/usr/lib/python3.11/site-packages/rich/text.py",
            ResolvedPath(
                "/usr/lib/python3.11/site-packages/rich/text.py", "@rich", "/text.py"
            ),
        ),
        (
            "/usr/lib/python3.11/site-packages/six.py",
            ResolvedPath("/usr/lib/python3.11/site-packages/six.py", "@six", "/six.py"),
        ),
        (
            "/proj/mypkg/sub/mod.py",
            ResolvedPath("/proj/mypkg/sub/mod.py", "@mypkg", "/sub/mod.py"),
        ),
        (
            "/elsewhere/script.py",
            ResolvedPath("/elsewhere/script.py", UNKNOWN, "/elsewhere/script.py"),
        ),
    ],
)
def test_resolve(locator, file, expected):
    assert locator.resolve(file) == expected


def test_own_files_are_labelled_even_outside_the_search_path():
    # GIVEN
    locator = SourceLocator(search_path=[], stdlib_dir="/nonexistent")
    file = os.path.join(SELF_DIR, "reporters", "tree.py")

    # WHEN
    resolved = locator.resolve(file)

    # THEN
    assert resolved.package == SELF_PACKAGE
    assert resolved.relative_path == "/reporters/tree.py"
    assert resolved.full_path == file


def test_relative_path_starts_with_slash_for_every_package(locator):
    files = [
        "<string>",
        "Objects/obmalloc.c",
        "/usr/lib/python3.11/os.py",
        "/proj/mypkg/__init__.py",
    ]
    for file in files:
        resolved = locator.resolve(file)
        assert resolved.package
        assert resolved.relative_path.startswith("/")


def test_accessors(locator):
    file = "/proj/mypkg/core.py"

    assert locator.full_path(file) == file
    assert locator.package(file) == "@mypkg"
    assert locator.relative_path(file) == "/core.py"


def test_resolution_is_memoized_until_cleared():
    # GIVEN
    search_path = ["/proj"]
    locator = SourceLocator(search_path=search_path, stdlib_dir="/usr/lib/python3.11")
    assert locator.package("/other/pkg/mod.py") == UNKNOWN

    # WHEN
    search_path_after = ["/proj", "/other"]
    locator._search_path = search_path_after
    before_clear = locator.package("/other/pkg/mod.py")
    locator.clear()
    after_clear = locator.package("/other/pkg/mod.py")

    # THEN
    assert before_clear == UNKNOWN
    assert after_clear == "@pkg"


def test_sys_path_is_used_by_default(monkeypatch, tmp_path):
    # GIVEN
    monkeypatch.syspath_prepend(str(tmp_path))
    locator = SourceLocator(stdlib_dir="/nonexistent")

    # WHEN
    resolved = locator.resolve(str(tmp_path / "mymodule.py"))

    # THEN
    assert resolved.package == "@mymodule"
    assert resolved.relative_path == "/mymodule.py"
