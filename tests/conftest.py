import base64
import json
import pathlib
import typing

import attr
import click.testing
import git
import pytest

import strongbox.cli
from strongbox.gpg import KeyImport
from strongbox.keyring import Keyring
from strongbox.secrets import SecretKeeper
from strongbox.utils import DecryptionFailed, EncryptionFailed, RegistryMissing
from strongbox.vcs import GitVCS, Repository

RECIPIENTS = ['alice@example.invalid', 'bob@example.invalid']


@attr.s
class FakeGPG:
    """
    Stands in for gpg.

    'Encrypted' files are JSON documents listing the recipients. Decryption
    only works if the current identity is one of them.
    """
    keys: typing.Set[str] = attr.ib(factory=lambda: set(RECIPIENTS))
    identity: str = attr.ib(default=RECIPIENTS[0])
    imported: typing.Set[str] = attr.ib(factory=set)

    def encrypt(self, plaintext, ciphertext, recipients):
        recipients = list(recipients)
        if not recipients:
            raise EncryptionFailed(f"No recipients to encrypt {plaintext} for")
        unknown = set(recipients) - self.imported
        if unknown:
            raise EncryptionFailed(f"No public key for {', '.join(sorted(unknown))}")
        ciphertext.write_text(json.dumps({
            'recipients': recipients,
            'data': base64.b64encode(plaintext.read_bytes()).decode(),
        }))

    def contents(self, ciphertext) -> bytes:
        try:
            envelope = json.loads(ciphertext.read_text())
        except (OSError, ValueError) as error:
            raise DecryptionFailed(f"Could not decrypt {ciphertext}") from error
        if self.identity not in envelope['recipients']:
            raise DecryptionFailed(f"Could not decrypt {ciphertext}")
        return base64.b64decode(envelope['data'])

    def decrypt(self, ciphertext, plaintext):
        contents = self.contents(ciphertext)
        plaintext.parent.mkdir(parents=True, exist_ok=True)
        plaintext.write_bytes(contents)

    def import_keys(self, pubring) -> KeyImport:
        if not pubring.exists():
            raise RegistryMissing(f"Public keyring {pubring} not found")
        new = self.keys - self.imported
        self.imported |= new
        return KeyImport(changed=len(new), unchanged=len(self.keys) - len(new))


@pytest.fixture()
def gpg() -> FakeGPG:
    return FakeGPG()


@pytest.fixture()
def repo(tmp_path) -> git.Repo:
    repo = git.Repo.init(tmp_path / 'repo')
    with repo.config_writer() as config:
        config.set_value('user', 'name', 'Strongbox Tests')
        config.set_value('user', 'email', 'tests@example.invalid')
        config.set_value('commit', 'gpgsign', 'false')
    readme = pathlib.Path(repo.working_dir) / 'README'
    readme.write_text('example\n')
    repo.index.add(['README'])
    repo.index.commit('Initial commit')
    return repo


@pytest.fixture()
def root(repo) -> pathlib.Path:
    return pathlib.Path(repo.working_dir)


@pytest.fixture()
def repository(repo, root) -> Repository:
    return Repository(root=root, vcs=GitVCS(root, repo=repo))


@pytest.fixture()
def keyring(root) -> Keyring:
    keyring = Keyring.in_repository(root)
    keyring.directory.mkdir(parents=True)
    keyring.admins_file.write_text(''.join(f'{r}\n' for r in RECIPIENTS))
    keyring.pubring.write_bytes(b'public keys')
    return keyring


@pytest.fixture()
def sk(repository, keyring, gpg) -> SecretKeeper:
    return SecretKeeper(repository=repository, keyring=keyring, gpg=gpg)


@pytest.fixture()
def plaintext(root) -> pathlib.Path:
    path = root / 'secrets' / 'api.key'
    path.parent.mkdir()
    path.write_bytes(b'X')
    return path


@pytest.fixture()
def invoke(monkeypatch, root, gpg):
    monkeypatch.setattr(strongbox.cli, 'GPG', lambda **kwargs: gpg)

    def invoke_func(
            arguments: typing.Sequence[str],
            exit_code: int = 0,
            input=None,
            directory: typing.Optional[pathlib.Path] = None):
        assert all(isinstance(arg, str) for arg in arguments)
        runner = click.testing.CliRunner()
        result = runner.invoke(strongbox.cli.main, ['-p', str(directory or root), *arguments], input=input)
        if result.exit_code != exit_code:
            message = f"Command strongbox {' '.join(arguments)} exited with {result.exit_code}"
            raise Exception(f"{message}\n{result.output}") from result.exception
        return result.output.splitlines()

    return invoke_func

