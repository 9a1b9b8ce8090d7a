"""
The list of files managed by strongbox.

Entries are plaintext paths relative to the repository root. The list is
always written sorted and without duplicates.
"""

import logging
import pathlib
import posixpath
import typing

import attr

from .utils import RegistryMissing, read_lines, write_lines

log = logging.getLogger(__name__)


@attr.s(frozen=True)
class FileRegistry:
    path: pathlib.Path = attr.ib()

    def exists(self) -> bool:
        return self.path.exists()

    def list_managed(self) -> typing.List[str]:
        if not self.path.exists():
            raise RegistryMissing(f"{self.path} not found. No files have been registered.")
        return sorted(set(read_lines(self.path)))

    def is_registered(self, name: str) -> bool:
        return self.path.exists() and name in read_lines(self.path)

    def register(self, name: str) -> bool:
        """
        Add a name to the list, returning False if it was already present.

        The file is renormalised whether or not the name was new.
        """
        names = read_lines(self.path) if self.path.exists() else []
        new = name not in names
        if new:
            log.info(f"Adding {name} to {self.path}")
        else:
            log.info(f"{name} is already registered")
        write_lines(self.path, sorted({*names, name}))
        return new


def enumerate_ancestor_directories(names: typing.Iterable[str]) -> typing.Set[str]:
    """Every directory leading up to each name, i.e. 'a', 'a/b' for 'a/b/c'."""
    directories: typing.Set[str] = set()
    for name in names:
        directory = posixpath.dirname(posixpath.normpath(name))
        while directory not in ('', '.', '/'):
            directories.add(directory)
            directory = posixpath.dirname(directory)
    return directories
