import pathlib
import typing

from .gpg import GPG
from .keyring import DEFAULT_KEYRING_DIR, Keyring
from .secrets import SecretKeeper
from .vcs import Repository


def strongbox(
        directory: typing.Optional[pathlib.Path] = None,
        keyring_dir: str = DEFAULT_KEYRING_DIR,
        gpg: GPG = GPG(),
        required: bool = True) -> SecretKeeper:
    repository = Repository.detect(directory, required=required)
    return SecretKeeper(
        repository=repository,
        keyring=Keyring.in_repository(repository.root, keyring_dir),
        gpg=gpg)
