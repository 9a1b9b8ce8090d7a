import logging
import pathlib
import typing

import attr

from .gpg import GPG, KeyImport
from .registry import FileRegistry
from .utils import InvalidInput, RegistryMissing, SecretKeyLeakDetected, read_lines, write_lines

log = logging.getLogger(__name__)

DEFAULT_KEYRING_DIR = 'keyrings/live'
ADMINS_FILE = 'blackbox-admins.txt'
FILES_FILE = 'blackbox-files.txt'


@attr.s(frozen=True)
class Keyring:
    """
    The keyring directory distributed with the repository.

    Holds the list of administrators that every secret is encrypted for,
    the list of managed files, and the public keys of the administrators.
    The secret keyring must stay empty: only public keys are distributed.
    """
    directory: pathlib.Path = attr.ib()

    @classmethod
    def in_repository(
            cls,
            root: pathlib.Path,
            keyring_dir: str = DEFAULT_KEYRING_DIR) -> 'Keyring':
        return cls(root / keyring_dir)

    @property
    def admins_file(self) -> pathlib.Path:
        return self.directory / ADMINS_FILE

    @property
    def files_file(self) -> pathlib.Path:
        return self.directory / FILES_FILE

    @property
    def registry(self) -> FileRegistry:
        return FileRegistry(self.files_file)

    @property
    def pubring(self) -> pathlib.Path:
        kbx = self.directory / 'pubring.kbx'
        return kbx if kbx.exists() else self.directory / 'pubring.gpg'

    @property
    def secring(self) -> pathlib.Path:
        return self.directory / 'secring.gpg'

    @property
    def private_keys(self) -> pathlib.Path:
        return self.directory / 'private-keys-v1.d'

    def list_recipients(self) -> typing.List[str]:
        if not self.admins_file.exists():
            raise RegistryMissing(f"{self.admins_file} not found. "
                                  f"Add an administrator before registering files.")
        return read_lines(self.admins_file)

    def add_recipient(self, identity: str) -> bool:
        """Append an identity to the administrators, returning False if it was already listed."""
        identity = identity.strip()
        if not identity or any(c.isspace() for c in identity):
            raise InvalidInput(f"Invalid administrator identity {identity!r}")
        admins = read_lines(self.admins_file) if self.admins_file.exists() else []
        if identity in admins:
            log.info(f"{identity} is already an administrator")
            return False
        write_lines(self.admins_file, [*admins, identity])
        return True

    def remove_recipient(self, identity: str) -> None:
        admins = self.list_recipients()
        if identity not in admins:
            raise InvalidInput(f"{identity} is not an administrator")
        write_lines(self.admins_file, [admin for admin in admins if admin != identity])

    def has_private_keys(self) -> bool:
        if self.secring.exists() and self.secring.stat().st_size > 0:
            return True
        if self.private_keys.is_dir():
            return any(path.is_file() for path in self.private_keys.iterdir())
        return False

    def assert_no_private_key_leak(self) -> None:
        if self.has_private_keys():
            raise SecretKeyLeakDetected(
                f"The file {self.secring} should be empty. "
                f"Did someone accidentally add this private key to the ring?")

    def import_public_keys(self, gpg: GPG) -> KeyImport:
        result = gpg.import_keys(self.pubring)
        log.info(f"Imported keys from {self.pubring}: {result}")
        return result

    def prepare(self, gpg: GPG) -> KeyImport:
        """Check the keyring is safe to use and import its public keys."""
        self.assert_no_private_key_leak()
        return self.import_public_keys(gpg)
