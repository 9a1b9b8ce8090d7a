import pathlib
import shutil
import subprocess
import tempfile

import pytest

from strongbox.enrollment import register_file
from strongbox.gpg import GPG
from strongbox.utils import DecryptionFailed, EncryptionFailed, RegistryMissing

requires_gpg = pytest.mark.skipif(shutil.which('gpg') is None, reason="gpg is not installed")


def completed(stdout: bytes = b'') -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=(), returncode=0, stdout=stdout, stderr=b'')


def test_command():
    assert GPG().command(['--decrypt']) == ('gpg', '--yes', '--batch', '--decrypt')
    assert GPG(verbose=True).command(['--decrypt']) == (
        'gpg', '--yes', '--batch', '--verbose', '--decrypt')


def test_encrypt_arguments(monkeypatch, tmp_path):
    calls = []
    monkeypatch.setattr(GPG, 'run', lambda self, arguments: calls.append(arguments) or completed())
    GPG().encrypt(tmp_path / 'in', tmp_path / 'in.gpg', ['alice', 'bob'])
    assert calls == [[
        '--trust-model=always',
        '--recipient', 'alice',
        '--recipient', 'bob',
        '--output', str(tmp_path / 'in.gpg'),
        '--encrypt', str(tmp_path / 'in'),
    ]]


def test_encrypt_without_recipients(tmp_path):
    with pytest.raises(EncryptionFailed):
        GPG().encrypt(tmp_path / 'in', tmp_path / 'in.gpg', [])


def test_failures_are_wrapped(monkeypatch, tmp_path):
    def run(self, arguments):
        raise subprocess.CalledProcessError(2, 'gpg', stderr=b'gpg: failed')

    monkeypatch.setattr(GPG, 'run', run)
    with pytest.raises(EncryptionFailed):
        GPG().encrypt(tmp_path / 'in', tmp_path / 'in.gpg', ['alice'])
    with pytest.raises(DecryptionFailed):
        GPG().decrypt(tmp_path / 'in.gpg', tmp_path / 'in')
    with pytest.raises(DecryptionFailed):
        GPG().contents(tmp_path / 'in.gpg')


def test_import_keys_status(monkeypatch, tmp_path):
    pubring = tmp_path / 'pubring.gpg'
    pubring.write_bytes(b'keys')
    status = (
        b'[GNUPG:] KEY_CONSIDERED AAAA 0\n'
        b'[GNUPG:] IMPORT_OK 0 AAAA\n'
        b'[GNUPG:] IMPORT_OK 1 BBBB\n'
        b'[GNUPG:] IMPORT_OK 16 CCCC\n'
        b'[GNUPG:] IMPORT_RES 3 0 2 0 1 0 0 0 0 0 0 0 0 0\n'
    )
    monkeypatch.setattr(GPG, 'run', lambda self, arguments: completed(status))
    result = GPG().import_keys(pubring)
    assert (result.changed, result.unchanged) == (2, 1)


def test_import_keys_missing(tmp_path):
    with pytest.raises(RegistryMissing):
        GPG().import_keys(tmp_path / 'pubring.gpg')


@pytest.fixture()
def gnupghome():
    # Kept short, gpg-agent sockets have a limited path length.
    directory = pathlib.Path(tempfile.mkdtemp(prefix='sb-', dir='/tmp'))
    directory.chmod(0o700)
    yield directory
    if shutil.which('gpgconf'):
        subprocess.run(('gpgconf', '--homedir', str(directory), '--kill', 'gpg-agent'),
                       stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=False)
    shutil.rmtree(directory, ignore_errors=True)


@requires_gpg
def test_register_with_gpg(gnupghome, repository, repo, keyring, plaintext):
    gpg = GPG(home=gnupghome)
    for identity in ('alice@example.invalid', 'bob@example.invalid'):
        gpg.run(['--pinentry-mode', 'loopback', '--passphrase', '',
                 '--quick-generate-key', identity, 'default', 'default', 'never'])
    keyring.pubring.write_bytes(gpg.run(['--export']).stdout)

    register_file(repository, keyring, gpg, plaintext)

    assert not plaintext.exists()
    ciphertext = plaintext.with_name('api.key.gpg')
    assert gpg.contents(ciphertext) == b'X'
    gpg.decrypt(ciphertext, plaintext)
    assert plaintext.read_bytes() == b'X'
    assert set(repo.head.commit.stats.files) == {
        'keyrings/live/blackbox-files.txt',
        'secrets/api.key.gpg',
    }

    result = keyring.import_public_keys(gpg)
    assert (result.changed, result.unchanged) == (0, 2)
