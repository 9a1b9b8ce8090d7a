import logging
import os
import pathlib
import subprocess
import typing

import attr

from .utils import DecryptionFailed, EncryptionFailed, RegistryMissing

log = logging.getLogger(__name__)


@attr.s(frozen=True)
class KeyImport:
    """Summary of a public keyring import."""
    changed: int = attr.ib(default=0)
    unchanged: int = attr.ib(default=0)

    def __str__(self):
        return f"{self.changed} changed, {self.unchanged} unchanged"


@attr.s(frozen=True)
class GPG:
    verbose: bool = attr.ib(default=False)
    home: typing.Optional[pathlib.Path] = attr.ib(default=None)

    def command(self, arguments: typing.Sequence[str]) -> typing.Tuple[str, ...]:
        command: typing.Tuple[str, ...] = ('gpg', '--yes', '--batch')
        if self.verbose:
            command = (*command, '--verbose')
        return (*command, *arguments)

    def run(self, arguments: typing.Sequence[str]) -> subprocess.CompletedProcess:
        env = {**os.environ, 'GNUPGHOME': self.home.as_posix()} if self.home else None
        try:
            return subprocess.run(
                self.command(arguments),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
                check=True)
        except subprocess.CalledProcessError as error:
            for line in error.stderr.decode('utf-8', 'replace').splitlines():
                log.error(line)
            raise

    def encrypt(
            self,
            plaintext: pathlib.Path,
            ciphertext: pathlib.Path,
            recipients: typing.Iterable[str]) -> None:
        """Encrypt a file for every recipient, overwriting the output."""
        log.debug(f"Encrypting {plaintext} to {ciphertext}")
        args: typing.List[str] = ['--trust-model=always']
        for recipient in recipients:
            args += ['--recipient', recipient]
        if len(args) == 1:
            raise EncryptionFailed(f"No recipients to encrypt {plaintext} for")
        args += ['--output', str(ciphertext), '--encrypt', str(plaintext)]
        try:
            self.run(args)
        except subprocess.CalledProcessError as error:
            raise EncryptionFailed(f"Could not encrypt {plaintext}") from error

    def decrypt(self, ciphertext: pathlib.Path, plaintext: pathlib.Path) -> None:
        log.debug(f"Decrypting {ciphertext} to {plaintext}")
        plaintext.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.run(['--quiet', '--output', str(plaintext), '--decrypt', str(ciphertext)])
        except subprocess.CalledProcessError as error:
            raise DecryptionFailed(f"Could not decrypt {ciphertext}") from error

    def contents(self, ciphertext: pathlib.Path) -> bytes:
        log.debug(f"Reading contents of {ciphertext}")
        try:
            return self.run(['--quiet', '--decrypt', str(ciphertext)]).stdout
        except subprocess.CalledProcessError as error:
            raise DecryptionFailed(f"Could not decrypt {ciphertext}") from error

    def import_keys(self, pubring: pathlib.Path) -> KeyImport:
        """
        Import public keys into the local keychain.

        Uses the machine readable status output. IMPORT_OK with a reason of
        0 means the key was already present and not changed.
        """
        log.debug(f"Importing public keys from {pubring}")
        if not pubring.exists():
            raise RegistryMissing(f"Public keyring {pubring} not found")
        try:
            result = self.run(['--status-fd', '1', '--import', str(pubring)])
        except subprocess.CalledProcessError as error:
            raise EncryptionFailed(f"Could not import keys from {pubring}") from error

        changed = unchanged = 0
        for line in result.stdout.decode('utf-8', 'replace').splitlines():
            fields = line.split()
            if fields[:2] != ['[GNUPG:]', 'IMPORT_OK'] or len(fields) < 3:
                continue
            if fields[2] == '0':
                unchanged += 1
            else:
                changed += 1
        return KeyImport(changed=changed, unchanged=unchanged)
