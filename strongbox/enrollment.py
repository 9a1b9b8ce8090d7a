"""
Registering a new file with strongbox.

Registration is a sequence of steps that each change the repository:
encrypting the file, adding it to the list of managed files, removing the
plaintext and committing the result. There is no rollback. If a step fails,
the steps already completed are recorded on the Enrollment so that the
remaining steps can be finished by hand.
"""

import enum
import logging
import pathlib
import typing

import attr

from .gpg import GPG
from .keyring import Keyring
from .secrets import Secret
from .utils import SUFFIX, AlreadyRegistered, FileNotFound, InvalidInput, relative_to_root
from .vcs import Repository

log = logging.getLogger(__name__)


class State(enum.Enum):
    UNREGISTERED = 'unregistered'
    KEYCHAIN_PREPARED = 'keychain prepared'
    ENCRYPTED = 'encrypted'
    LIST_UPDATED = 'list updated'
    PLAINTEXT_PURGED = 'plaintext purged'
    COMMITTED = 'committed'


@attr.s(kw_only=True)
class Enrollment:
    repository: Repository = attr.ib()
    keyring: Keyring = attr.ib()
    gpg: GPG = attr.ib()
    path: pathlib.Path = attr.ib(converter=pathlib.Path)

    completed: typing.List[State] = attr.ib(factory=lambda: [State.UNREGISTERED])
    previously_tracked: bool = attr.ib(default=False)
    echo: typing.Callable[[str], None] = attr.ib(default=log.info)

    @property
    def state(self) -> State:
        return self.completed[-1]

    @property
    def message(self) -> str:
        return f"registered in strongbox: {self.secret.name}"

    @property
    def secret(self) -> Secret:
        return Secret(root=self.repository.root, name=self.name)

    @property
    def name(self) -> str:
        return relative_to_root(self.path, self.repository.root)

    def advance(self, state: State) -> None:
        log.debug(f"Registration of {self.path} reached state '{state.value}'")
        self.completed.append(state)

    @property
    def registry_name(self) -> str:
        return relative_to_root(self.keyring.registry.path, self.repository.root)

    def check(self) -> Secret:
        self.repository.require()
        if self.path.name.endswith(SUFFIX):
            raise InvalidInput(f"{self.path} looks like an encrypted file. "
                               f"Register the plaintext file instead.")
        secret = self.secret
        try:
            relative_to_root(self.keyring.directory, self.repository.root)
        except InvalidInput as error:
            raise InvalidInput(f"The keyring {self.keyring.directory} must be "
                               f"inside the repository {self.repository.root}") from error
        if not secret.decrypted.is_file():
            raise FileNotFound(f"{secret.decrypted} not found")
        if secret.encrypted.exists():
            raise AlreadyRegistered(f"{secret.encrypted} already exists. "
                                    f"Remove it first if you want to replace it.")
        return secret

    def run(self) -> Secret:
        """Run every remaining step, stopping at the first failure."""
        secret = self.check()
        registry = self.keyring.registry

        self.echo("Importing keychain")
        imported = self.keyring.prepare(self.gpg)
        self.echo(f"Imported keys: {imported}")
        self.advance(State.KEYCHAIN_PREPARED)

        self.echo(f"Encrypting {secret.name}")
        secret.encrypt(self.gpg, self.keyring.list_recipients())
        self.advance(State.ENCRYPTED)

        if registry.register(secret.name):
            self.echo(f"Adding {secret.name} to {registry.path.name}")
        else:
            self.echo(f"{secret.name} is already in {registry.path.name}")
        self.advance(State.LIST_UPDATED)

        self.previously_tracked = self.repository.is_tracked(secret.name)

        self.echo(f"Shredding {secret.name}")
        secret.shred()
        self.advance(State.PLAINTEXT_PURGED)

        paths = [self.registry_name, secret.encrypted_name]
        self.repository.add(*paths)
        if self.previously_tracked:
            self.echo(f"{secret.name} was tracked in plaintext, removing it")
            self.repository.remove(secret.name)
            paths.append(secret.name)
        self.repository.commit(self.message, *paths)
        self.advance(State.COMMITTED)
        return secret


def register_file(
        repository: Repository,
        keyring: Keyring,
        gpg: GPG,
        path: pathlib.Path) -> Enrollment:
    enrollment = Enrollment(repository=repository, keyring=keyring, gpg=gpg, path=path)
    enrollment.run()
    return enrollment
