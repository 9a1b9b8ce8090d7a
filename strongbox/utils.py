import os.path
import pathlib
import typing

import click

SUFFIX = '.gpg'


class StrongboxException(click.ClickException):
    pass


class NoRepository(StrongboxException):
    pass


class RegistryMissing(StrongboxException):
    pass


class SecretKeyLeakDetected(StrongboxException):
    pass


class InvalidInput(StrongboxException):
    pass


class FileNotFound(StrongboxException):
    pass


class AlreadyRegistered(StrongboxException):
    pass


class EncryptionFailed(StrongboxException):
    pass


class DecryptionFailed(StrongboxException):
    pass


def encrypted_name(path: str) -> str:
    """Output the encrypted filename for a plaintext path."""
    return unencrypted_name(path) + SUFFIX


def unencrypted_name(path: str) -> str:
    """Output the plaintext filename, stripping the envelope suffix."""
    if path.endswith(SUFFIX):
        path = path[:-len(SUFFIX)]
    if path.startswith('./'):
        path = path[2:]
    return path


def relative_to_root(
        path: pathlib.Path,
        root: pathlib.Path) -> str:
    """
    Convert a path to the repository-relative POSIX form used in the registry.

    Raises InvalidInput for paths outside the repository.
    """
    absolute = pathlib.Path(os.path.abspath(path))
    for candidate, base in ((absolute, root), (absolute.resolve(), root.resolve())):
        try:
            return candidate.relative_to(base).as_posix()
        except ValueError:
            continue
    raise InvalidInput(f"{path} is not inside the repository {root}")


def read_lines(path: pathlib.Path) -> typing.List[str]:
    """Read non-blank, stripped lines from a text file."""
    return [line.strip() for line in path.read_text().splitlines() if line.strip()]


def write_lines(path: pathlib.Path, lines: typing.Iterable[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(''.join(f'{line}\n' for line in lines))
