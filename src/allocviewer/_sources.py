"""Resolve stack frame file names into package labels and display paths."""
import os
import re
import sys
import sysconfig
from typing import Dict
from typing import Iterable
from typing import List
from typing import NamedTuple
from typing import Optional
from typing import Tuple

UNKNOWN = ""
PYTHON_INTERNALS = "@python"
NATIVE_CODE = "@native"
STDLIB = "@stdlib"
MAIN = "@__main__"
SELF_PACKAGE = "@allocviewer"

RE_CPYTHON_PATHS = re.compile(r"(Include|Objects|Modules|Python|cpython).*\.[c|h]$")
NATIVE_SUFFIXES = (".c", ".h", ".cc", ".cpp", ".cxx", ".hpp", ".pyx", ".pxd", ".so")
SELF_DIR = os.path.dirname(os.path.abspath(__file__))


class ResolvedPath(NamedTuple):
    full_path: str
    package: str
    relative_path: str


def _is_native(file: str) -> bool:
    return file.endswith(NATIVE_SUFFIXES) or ".so." in os.path.basename(file)


def _module_label(relative: str) -> Tuple[str, str]:
    top, _, rest = relative.partition(os.sep)
    if not rest:
        # A top level module such as ``six.py``
        name = top[:-3] if top.endswith(".py") else top
        return "@" + name, "/" + top
    return "@" + top, "/" + rest.replace(os.sep, "/")


class SourceLocator:
    """Memoized resolver of frame file names.

    Every file is resolved into its absolute path, the label of the package
    that contains it and its path relative to that package. The memo is
    cleared with :py:meth:`clear` at the start of every aggregation run, which
    also picks up changes made to ``sys.path`` since the previous run.
    """

    def __init__(
        self,
        search_path: Optional[Iterable[str]] = None,
        stdlib_dir: Optional[str] = None,
    ) -> None:
        self._search_path = list(search_path) if search_path is not None else None
        self._stdlib_dir = stdlib_dir
        self._roots: Optional[List[Tuple[str, bool]]] = None
        self._cache: Dict[str, ResolvedPath] = {}

    def clear(self) -> None:
        self._cache.clear()
        self._roots = None

    def _search_roots(self) -> List[Tuple[str, bool]]:
        if self._roots is not None:
            return self._roots

        stdlib = self._stdlib_dir or sysconfig.get_paths()["stdlib"]
        entries = self._search_path if self._search_path is not None else sys.path
        roots = {os.path.normpath(stdlib): True}
        for entry in entries:
            path = os.path.normpath(os.path.abspath(entry or os.curdir))
            roots.setdefault(path, False)

        # The longest root wins: site-packages usually lives inside the
        # standard library directory.
        self._roots = sorted(roots.items(), key=lambda item: len(item[0]), reverse=True)
        return self._roots

    def _resolve(self, file: str) -> ResolvedPath:
        if not file or file == "???":
            return ResolvedPath("", UNKNOWN, file)
        if file.startswith("<frozen"):
            return ResolvedPath("", PYTHON_INTERNALS, "/" + file)
        if file.startswith("<"):
            return ResolvedPath("", MAIN, "/" + file)
        if _is_native(file):
            package = (
                PYTHON_INTERNALS
                if RE_CPYTHON_PATHS.search(file) is not None
                else NATIVE_CODE
            )
            return ResolvedPath(file, package, "/" + os.path.basename(file))

        full_path = os.path.normpath(os.path.abspath(file))
        if full_path.startswith(SELF_DIR + os.sep):
            # Editable installs do not necessarily put us on sys.path
            relative = full_path[len(SELF_DIR) :].replace(os.sep, "/")
            return ResolvedPath(full_path, SELF_PACKAGE, relative)
        for root, is_stdlib in self._search_roots():
            if not full_path.startswith(root + os.sep):
                continue
            relative = full_path[len(root) + 1 :]
            if is_stdlib:
                return ResolvedPath(
                    full_path, STDLIB, "/" + relative.replace(os.sep, "/")
                )
            package, relative_path = _module_label(relative)
            return ResolvedPath(full_path, package, relative_path)
        return ResolvedPath(full_path, UNKNOWN, file)

    def resolve(self, file: str) -> ResolvedPath:
        try:
            return self._cache[file]
        except KeyError:
            resolved = self._cache[file] = self._resolve(file)
            return resolved

    def full_path(self, file: str) -> str:
        return self.resolve(file).full_path

    def package(self, file: str) -> str:
        return self.resolve(file).package

    def relative_path(self, file: str) -> str:
        return self.resolve(file).relative_path


DEFAULT_LOCATOR = SourceLocator()
