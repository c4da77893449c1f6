import posixpath
from typing import Iterable, List, Sequence, Tuple

from bazelproj.errors import InvalidPathFilter

RECURSIVE_MARKER = "..."


def _validate(entry: str) -> None:
    if entry.startswith("/"):
        raise InvalidPathFilter(f"path filter '{entry}' must be workspace relative")
    if entry == "":
        return
    parts = entry.split("/")
    for index, part in enumerate(parts):
        if part == "":
            raise InvalidPathFilter(f"path filter '{entry}' has an empty segment")
        if part == "..":
            raise InvalidPathFilter(f"path filter '{entry}' may not leave the workspace")
        if part == RECURSIVE_MARKER and index != len(parts) - 1:
            raise InvalidPathFilter(
                f"path filter '{entry}' may only use '{RECURSIVE_MARKER}' as its last segment"
            )
        if RECURSIVE_MARKER in part and part != RECURSIVE_MARKER:
            raise InvalidPathFilter(f"path filter '{entry}' has a malformed recursive marker")


# Splits filters into directories matched exactly and directory prefixes matched
# recursively ("foo/..." -> "foo", "..." -> "").
def split_filters(filters: Iterable[str]) -> Tuple[List[str], List[str]]:
    exact: List[str] = []
    recursive: List[str] = []
    for entry in filters:
        _validate(entry)
        if entry == RECURSIVE_MARKER:
            recursive.append("")
        elif entry.endswith("/" + RECURSIVE_MARKER):
            recursive.append(entry[: -len(RECURSIVE_MARKER) - 1])
        else:
            exact.append(entry)
    return exact, recursive


def _matches(directory: str, exact: Sequence[str], recursive: Sequence[str]) -> bool:
    if directory in exact:
        return True
    for prefix in recursive:
        if not prefix or directory == prefix or directory.startswith(prefix + "/"):
            return True
    return False


def is_included(path: str, filters: Iterable[str]) -> bool:
    exact, recursive = split_filters(filters)
    return _matches(posixpath.dirname(path), exact, recursive)


class PathFilter:
    def __init__(self, filters: Iterable[str]):
        self.filters = frozenset(filters)
        exact, recursive = split_filters(sorted(self.filters))
        self._exact = frozenset(exact)
        self._recursive = tuple(recursive)

    def __call__(self, path: str) -> bool:
        return _matches(posixpath.dirname(path), self._exact, self._recursive)

    def filter(self, paths: Iterable[str]) -> List[str]:
        return [p for p in paths if self(p)]

    def __repr__(self) -> str:
        return f"PathFilter({sorted(self.filters)!r})"
