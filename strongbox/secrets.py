import hashlib
import logging
import pathlib
import shutil
import subprocess
import typing

import attr

from .gpg import GPG
from .keyring import Keyring
from .utils import StrongboxException, encrypted_name, unencrypted_name
from .vcs import Repository

log = logging.getLogger(__name__)

UNMATCHABLE = 'unmatchable'


def fingerprint(path: pathlib.Path) -> str:
    """
    Hash the contents of a file to detect changes.

    This is not a security measure and must not be used for authentication.
    """
    if not path.is_file():
        return UNMATCHABLE
    digest = hashlib.md5(usedforsecurity=False)
    with path.open('rb') as f:
        for chunk in iter(lambda: f.read(65536), b''):
            digest.update(chunk)
    return digest.hexdigest()


def shred(path: pathlib.Path) -> None:
    """Overwrite and delete a file, or just delete it if shred is not installed."""
    if not path.exists():
        return
    command = shutil.which('shred')
    if command:
        log.debug(f"Shredding {path}")
        try:
            subprocess.run(
                (command, '-u', str(path)),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True)
        except subprocess.CalledProcessError as error:
            for line in error.stderr.decode('utf-8', 'replace').splitlines():
                log.error(line)
            raise StrongboxException(f"Could not shred {path}") from error
    else:
        log.debug(f"Deleting {path}, shred is not available")
        path.unlink()


@attr.s(frozen=True, kw_only=True)
class Secret:
    """A managed file: the plaintext path and the encrypted path beside it."""
    root: pathlib.Path = attr.ib()
    name: str = attr.ib(converter=unencrypted_name)

    def __str__(self):
        return self.name

    @property
    def decrypted(self) -> pathlib.Path:
        return self.root / self.name

    @property
    def encrypted(self) -> pathlib.Path:
        return self.root / encrypted_name(self.name)

    @property
    def encrypted_name(self) -> str:
        return encrypted_name(self.name)

    def encrypt(self, gpg: GPG, recipients: typing.Iterable[str]) -> pathlib.Path:
        """Encrypt the plaintext for all recipients, replacing any existing ciphertext."""
        log.debug(f"Encrypting {self.decrypted} to {self.encrypted}")
        gpg.encrypt(self.decrypted, self.encrypted, recipients)
        return self.encrypted

    def decrypt(self, gpg: GPG) -> None:
        log.debug(f"Decrypting {self.encrypted} to {self.decrypted}")
        gpg.decrypt(self.encrypted, self.decrypted)

    def decrypt_if_changed(self, gpg: GPG) -> bool:
        """
        Decrypt over the plaintext, returning True if its contents changed.

        The decryption always happens: an existing plaintext is never trusted.
        """
        old = fingerprint(self.decrypted)
        self.decrypt(gpg)
        return fingerprint(self.decrypted) != old

    def shred(self) -> None:
        shred(self.decrypted)

    def contents(self, gpg: GPG) -> bytes:
        return gpg.contents(self.encrypted)


@attr.s(frozen=True)
class BulkResult:
    """The outcome of applying an operation to every managed file."""
    succeeded: typing.List[Secret] = attr.ib(factory=list)
    updated: typing.List[Secret] = attr.ib(factory=list)
    failed: typing.Dict[Secret, Exception] = attr.ib(factory=dict)

    def __bool__(self):
        return not self.failed

    def __str__(self):
        return f"{len(self.succeeded)} succeeded, {len(self.failed)} failed"


@attr.s(frozen=True)
class SecretKeeper:
    repository: Repository = attr.ib()
    keyring: Keyring = attr.ib()
    gpg: GPG = attr.ib(factory=GPG)

    @property
    def root(self) -> pathlib.Path:
        return self.repository.root

    @property
    def secrets(self) -> typing.List[Secret]:
        return [Secret(root=self.root, name=name) for name in self.keyring.registry.list_managed()]

    def __iter__(self):
        return iter(self.secrets)

    def __getitem__(self, name: str) -> Secret:
        secret = Secret(root=self.root, name=name)
        if not self.keyring.registry.is_registered(secret.name):
            raise StrongboxException(f"{secret.name} is not registered")
        return secret

    def each(
            self,
            operation: typing.Callable[[Secret], typing.Optional[bool]]) -> BulkResult:
        """
        Apply an operation to every secret, continuing past failures.

        Operations returning True are recorded as updating the secret.
        """
        result = BulkResult()
        for secret in self:
            try:
                updated = operation(secret)
            except (StrongboxException, OSError) as error:
                log.error(f"Failed to process {secret}: {error}")
                result.failed[secret] = error
                continue
            result.succeeded.append(secret)
            if updated:
                result.updated.append(secret)
        return result

    def decrypt(self) -> BulkResult:
        """Decrypt every secret, overwriting plaintext."""
        log.info(f"Decrypting all secrets in {self.root}")
        self.keyring.assert_no_private_key_leak()
        result = self.each(lambda secret: secret.decrypt_if_changed(self.gpg))
        log.info(f"Decrypted secrets: {result}")
        return result

    def reencrypt(self, echo: typing.Callable[[str], None] = log.info) -> BulkResult:
        """
        Re-encrypt every secret for the current administrators and commit.

        Used after the list of administrators has changed. The ciphertext is
        authoritative: any plaintext on disk is replaced before encrypting.
        """
        log.info(f"Re-encrypting all secrets in {self.root}")
        self.repository.require()
        echo(f"Imported keys: {self.keyring.prepare(self.gpg)}")
        recipients = self.keyring.list_recipients()

        def reencrypt(secret: Secret) -> bool:
            secret.decrypt_if_changed(self.gpg)
            secret.encrypt(self.gpg, recipients)
            secret.shred()
            return True

        result = self.each(reencrypt)
        if result.succeeded:
            paths = [secret.encrypted_name for secret in result.succeeded]
            self.repository.add(*paths)
            self.repository.commit("Re-encrypted secrets", *paths)
        log.info(f"Re-encrypted secrets: {result}")
        return result

    def shred(self) -> BulkResult:
        """Securely erase every plaintext."""
        return self.each(lambda secret: secret.shred())
