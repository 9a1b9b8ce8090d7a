import functools
import logging
import os.path
import pathlib
import typing

import click

from . import __doc__, __version__
from .api import strongbox
from .enrollment import Enrollment, State
from .gpg import GPG
from .keyring import DEFAULT_KEYRING_DIR
from .registry import enumerate_ancestor_directories
from .secrets import BulkResult, Secret, SecretKeeper
from .utils import StrongboxException, relative_to_root

log = logging.getLogger(__name__)


@functools.lru_cache()
def rel(path: pathlib.Path) -> str:
    """
    Convert a path to a relative Path.

    Returns a string as these should only be used for presentation.
    """
    return os.path.relpath(path.as_posix(), pathlib.Path.cwd().as_posix())


def enc(secret: Secret) -> str:
    """Style a path to a encrypted file."""
    return click.style(rel(secret.encrypted), fg='green')


def dec(secret: Secret) -> str:
    """Style a path to a decrypted file."""
    return click.style(rel(secret.decrypted), fg='red')


def report(result: BulkResult, action: str) -> None:
    """Print the failures of a bulk operation and exit with an error if there were any."""
    for secret, error in result.failed.items():
        click.secho(f"Failed to {action} {secret}: {error}", fg='yellow', err=True)
    click.echo(f"{action.capitalize()}: {result}")
    if not result:
        raise StrongboxException(f"Could not {action} {len(result.failed)} file(s)")


class PathType(click.Path):
    def convert(self, value, param, ctx):
        return pathlib.Path(super().convert(value, param, ctx))


secret_argument = click.argument(
    'path',
    type=PathType(),
    required=True)


@click.group(help=__doc__)
@click.option(
    '-p', '--path',
    type=PathType(
        file_okay=False,
        dir_okay=True,
        exists=True),
    default=None,
    help="Defaults to the current repository.")
@click.option(
    '-k', '--keyring-dir', 'keyring_dir',
    metavar='DIR',
    envvar='STRONGBOX_DATA',
    default=DEFAULT_KEYRING_DIR,
    show_default=True,
    help="Keyring directory, relative to the repository root.")
@click.option(
    '--gnupghome',
    type=PathType(file_okay=False, dir_okay=True),
    envvar='STRONGBOX_GNUPGHOME',
    default=None,
    help="Forwarded to gpg as $GNUPGHOME.")
@click.option(
    '-d', '--debug', 'debug',
    default=False,
    is_flag=True,
    help="Enable debug logging.")
@click.option(
    '-v', '--verbose', 'gpg_verbose',
    default=False,
    is_flag=True,
    help="Display GPG's normal STDERR output.")
@click.pass_context
def main(
        ctx,
        debug: bool,
        path: typing.Optional[pathlib.Path],
        keyring_dir: str,
        gnupghome: typing.Optional[pathlib.Path],
        gpg_verbose: bool):
    logging.basicConfig(level=(logging.DEBUG if debug else logging.WARNING))
    ctx.obj = strongbox(
        path,
        keyring_dir=keyring_dir,
        gpg=GPG(verbose=gpg_verbose, home=gnupghome),
        required=False)


@main.command()
def version():
    """Show the application version."""
    click.echo(f"strongbox {__version__}")


@main.command()
@secret_argument
@click.pass_obj
def register(sk: SecretKeeper, path: pathlib.Path):
    """
    Encrypt a file, register it and commit the encrypted file.

    The plaintext is shredded, and removed from the repository if it had been
    committed.
    """
    enrollment = Enrollment(
        repository=sk.repository,
        keyring=sk.keyring,
        gpg=sk.gpg,
        path=path,
        echo=click.echo)
    try:
        secret = enrollment.run()
    except StrongboxException:
        if enrollment.state is not State.UNREGISTERED:
            completed = ', '.join(state.value for state in enrollment.completed[1:])
            click.secho(f"Registration of {path} stopped after: {completed}", fg='yellow', err=True)
        raise
    click.echo(f"Registered {dec(secret)} as {enc(secret)}")
    if enrollment.previously_tracked:
        click.secho(
            f"{secret.name} was previously committed in plaintext. "
            f"It is still present in the repository history.",
            fg='yellow')


@main.command()
@click.pass_obj
def ls(sk: SecretKeeper):
    """List all managed files."""
    for secret in sk:
        click.echo(secret.name)


@main.command()
@click.pass_obj
def ls_dirs(sk: SecretKeeper):
    """List the directories containing managed files."""
    for directory in sorted(enumerate_ancestor_directories(s.name for s in sk)):
        click.echo(directory)


@main.command()
@click.pass_obj
def decrypt(sk: SecretKeeper):
    """Decrypt all managed files, overwriting plaintext."""
    result = sk.decrypt()
    for secret in result.updated:
        click.echo(f"Extracted {dec(secret)}")
    report(result, 'decrypt')


@main.command()
@click.pass_obj
def reencrypt(sk: SecretKeeper):
    """Re-encrypt all managed files for the current administrators."""
    result = sk.reencrypt(echo=click.echo)
    for secret in result.succeeded:
        click.echo(f"Encrypted {enc(secret)}")
    report(result, 're-encrypt')


@main.command()
@click.pass_obj
def shred(sk: SecretKeeper):
    """Securely erase all decrypted plaintext files."""
    report(sk.shred(), 'shred')


@main.command()
@click.argument(
    'paths',
    type=PathType(),
    required=True,
    nargs=-1)
@click.pass_obj
def cat(sk: SecretKeeper, paths: typing.Sequence[pathlib.Path]):
    """Print the contents of managed files."""
    for path in paths:
        secret = sk[relative_to_root(path, sk.root)]
        click.echo(secret.contents(sk.gpg), nl=False)


@main.command()
@secret_argument
@click.pass_obj
def edit_start(sk: SecretKeeper, path: pathlib.Path):
    """Decrypt a managed file so that it can be edited."""
    secret = sk[relative_to_root(path, sk.root)]
    sk.keyring.assert_no_private_key_leak()
    if secret.decrypted.exists():
        click.confirm(f"{rel(secret.decrypted)} exists, overwrite it?", abort=True)
    secret.decrypt(sk.gpg)
    click.echo(f"Decrypted {enc(secret)} to {dec(secret)}")


@main.command()
@secret_argument
@click.pass_obj
def edit_end(sk: SecretKeeper, path: pathlib.Path):
    """Encrypt an edited file and shred the plaintext."""
    secret = sk[relative_to_root(path, sk.root)]
    if not secret.decrypted.exists():
        raise StrongboxException(f"Plaintext for {secret} does not exist")
    click.echo(f"Imported keys: {sk.keyring.prepare(sk.gpg)}")
    secret.encrypt(sk.gpg, sk.keyring.list_recipients())
    secret.shred()
    click.echo(f"Encrypted {dec(secret)} to {enc(secret)}")


@main.command()
@click.pass_obj
def admins(sk: SecretKeeper):
    """List the administrators files are encrypted for."""
    for identity in sk.keyring.list_recipients():
        click.echo(identity)


def admins_name(sk: SecretKeeper) -> str:
    """The administrators file relative to the repository, failing outside a repository."""
    sk.repository.require()
    return relative_to_root(sk.keyring.admins_file, sk.root)


def commit_admins(sk: SecretKeeper, name: str, message: str) -> None:
    sk.repository.add(name)
    sk.repository.commit(message, name)


@main.command()
@click.argument('identity')
@click.pass_obj
def add_admin(sk: SecretKeeper, identity: str):
    """
    Add an administrator.

    Their public key must be added to the keyring's pubring separately.
    Run 'strongbox reencrypt' afterwards so they can decrypt existing files.
    """
    name = admins_name(sk)
    if not sk.keyring.add_recipient(identity):
        click.echo(f"{identity} is already an administrator")
        return
    commit_admins(sk, name, f"Adding admin {identity}")
    click.echo(f"Added {identity}, run 'strongbox reencrypt' to give them access")


@main.command()
@click.argument('identity')
@click.pass_obj
def remove_admin(sk: SecretKeeper, identity: str):
    """
    Remove an administrator.

    This does not revoke access to secrets they could already read.
    """
    name = admins_name(sk)
    sk.keyring.remove_recipient(identity)
    commit_admins(sk, name, f"Removing admin {identity}")
    click.echo(f"Removed {identity}, run 'strongbox reencrypt' to stop encrypting for them")
