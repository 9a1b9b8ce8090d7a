"""
Version control backends.

Each backend implements the same four operations: checking if a path is
tracked, adding paths, removing paths and committing paths. Paths are given
relative to the repository root. The backend is selected once, when the
repository is detected, and carried around in a Repository.
"""

import logging
import pathlib
import subprocess
import typing

import attr
import git

from .utils import NoRepository, StrongboxException

log = logging.getLogger(__name__)


class VCS:
    name: str = 'none'

    def __init__(self, root: pathlib.Path):
        self.root = root

    def __repr__(self):
        return f'{self.__class__.__name__}({str(self.root)!r})'

    def is_tracked(self, path: str) -> bool:
        raise NotImplementedError

    def add(self, *paths: str) -> None:
        raise NotImplementedError

    def remove(self, *paths: str) -> None:
        """Remove paths from the repository, ignoring paths that are not tracked."""
        raise NotImplementedError

    def commit(self, message: str, *paths: str) -> None:
        raise NotImplementedError


class NoVCS(VCS):
    """Used outside of a repository. Every operation fails."""

    def fail(self, *args, **kwargs):
        raise NoRepository("This must be run in a VCS repo such as git or hg.")

    is_tracked = add = remove = commit = fail


class GitVCS(VCS):
    name = 'git'

    def __init__(self, root: pathlib.Path, repo: typing.Optional[git.Repo] = None):
        super().__init__(root)
        self.repo = repo or git.Repo(root)

    def is_tracked(self, path: str) -> bool:
        try:
            return bool(self.repo.git.ls_files('--', path).strip())
        except git.exc.GitCommandError as error:
            raise NoRepository(f"Could not check if {path} is tracked by git") from error

    def run(self, command: str, *arguments: str) -> str:
        log.debug(f"git {command} {' '.join(arguments)}")
        try:
            return getattr(self.repo.git, command)(*arguments)
        except git.exc.GitCommandError as error:
            for line in str(error.stderr).strip().splitlines():
                log.error(line)
            raise StrongboxException(f"git {command} failed") from error

    def add(self, *paths: str) -> None:
        self.run('add', '--', *paths)

    def remove(self, *paths: str) -> None:
        self.run('rm', '--ignore-unmatch', '-f', '--', *paths)

    def commit(self, message: str, *paths: str) -> None:
        self.run('commit', '-m', message, '--', *paths)

    @classmethod
    def find(cls, directory: pathlib.Path) -> typing.Optional['GitVCS']:
        try:
            repo = git.Repo(directory, search_parent_directories=True)
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError):
            return None
        if repo.bare:
            return None
        return cls(pathlib.Path(repo.working_dir), repo=repo)


class HgVCS(VCS):
    name = 'hg'

    def run(self, *arguments: str, check: bool = True) -> subprocess.CompletedProcess:
        log.debug(f"hg {' '.join(arguments)}")
        try:
            return subprocess.run(
                ('hg', *arguments),
                cwd=self.root,
                encoding='utf-8',
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=check)
        except subprocess.CalledProcessError as error:
            for line in error.stderr.splitlines():
                log.error(line)
            raise StrongboxException(f"hg {arguments[0]} failed") from error

    def is_tracked(self, path: str) -> bool:
        # 'hg locate' exits with 1 when nothing matches.
        result = self.run('locate', '--', path, check=False)
        if result.returncode not in (0, 1):
            raise NoRepository(f"Could not check if {path} is tracked by hg: "
                               f"{result.stderr.strip()}")
        return result.returncode == 0

    def add(self, *paths: str) -> None:
        self.run('add', '--', *paths)

    def remove(self, *paths: str) -> None:
        tracked = [path for path in paths if self.is_tracked(path)]
        if tracked:
            self.run('remove', '--after', '--force', '--', *tracked)

    def commit(self, message: str, *paths: str) -> None:
        self.run('commit', '-m', message, '--', *paths)

    @classmethod
    def find(cls, directory: pathlib.Path) -> typing.Optional['HgVCS']:
        try:
            result = subprocess.run(
                ('hg', 'root'),
                cwd=directory,
                encoding='utf-8',
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL)
        except FileNotFoundError:
            return None
        if result.returncode != 0:
            return None
        return cls(pathlib.Path(result.stdout.strip()))


@attr.s(frozen=True)
class Repository:
    """The repository root and the backend that manages it."""
    root: pathlib.Path = attr.ib()
    vcs: VCS = attr.ib()

    @property
    def kind(self) -> str:
        return self.vcs.name

    @classmethod
    def detect(
            cls,
            directory: typing.Optional[pathlib.Path] = None,
            required: bool = True) -> 'Repository':
        directory = directory or pathlib.Path.cwd()
        for backend in (HgVCS, GitVCS):
            vcs = backend.find(directory)
            if vcs is not None:
                log.info(f"Found {vcs.name} repository at {vcs.root}")
                return cls(root=vcs.root, vcs=vcs)

        if required:
            raise NoRepository("This must be run in a VCS repo such as git or hg.")
        log.info(f"No repository found at {directory}")
        return cls(root=directory, vcs=NoVCS(directory))

    def require(self) -> None:
        """Fail unless there is a repository to commit to."""
        if isinstance(self.vcs, NoVCS):
            self.vcs.fail()

    def is_tracked(self, path: str) -> bool:
        return self.vcs.is_tracked(path)

    def add(self, *paths: str) -> None:
        self.vcs.add(*paths)

    def remove(self, *paths: str) -> None:
        self.vcs.remove(*paths)

    def commit(self, message: str, *paths: str) -> None:
        self.vcs.commit(message, *paths)


def detect_repository(directory: typing.Optional[pathlib.Path] = None) -> Repository:
    return Repository.detect(directory, required=True)
