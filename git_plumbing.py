import asyncio
from collections import namedtuple
from dataclasses import dataclass
import logging
import re
import subprocess
from typing import Iterable, Sequence
from urllib.parse import urlparse

from refspec import Refspec, RefspecError

SYMREF_PREFIX = "ref: "
FORK_OF_PATTERN = r'^remote\..*\.forkof$'
URL_PATTERN = r'^remote\..*\.url$'
# Shell exit status for a command that could not be started.
COMMAND_NOT_RUN = 127

logger = logging.getLogger(__name__)

SymRef = namedtuple('SymRef', ['target', 'ref'])
ResolvedRef = namedtuple('ResolvedRef', ['objid', 'ref'])


@dataclass(frozen=True)
class RefListing:
    sym_refs: Sequence[SymRef] = ()
    resolved_refs: Sequence[ResolvedRef] = ()


@dataclass(frozen=True)
class ForkRemote:
    name: str
    url: str


class GitCommandError(Exception):
    def __init__(self, command: Sequence[str], return_code: int):
        super().__init__(f"{' '.join(command)} terminated with non-zero result {return_code}")
        self.command = tuple(command)
        self.return_code = return_code


def parse_refs(lines: Iterable[str]) -> RefListing:
    sym_refs: list[SymRef] = []
    resolved_refs: list[ResolvedRef] = []
    for line in map(str.rstrip, lines):
        if not line:
            continue
        left, separator, ref = line.partition('\t')
        if not separator:
            logger.warning(f"Skipping malformed ref line '{line}'")
            continue
        if left.startswith(SYMREF_PREFIX):
            sym_refs.append(SymRef(left[len(SYMREF_PREFIX):], ref))
        else:
            resolved_refs.append(ResolvedRef(left, ref))
    return RefListing(sym_refs, resolved_refs)


def decode_output(output: bytes) -> str:
    lines = []
    for raw_line in output.splitlines():
        try:
            lines.append(raw_line.decode())
        except UnicodeDecodeError:
            logger.warning(f"Skipping undecodable git output line {raw_line!r}")
    return '\n'.join(lines)


def repository_locator(url: str) -> str:
    """Scheme-less form of a repository URL, e.g. github.com/user/repo."""
    url = url.strip().rstrip("/")
    if url.endswith(".git"):
        url = url[:-4]

    scp_match = re.match(r"^(?:[^@/]+@)?([^:/]+):(?!//)(.+)$", url)
    if scp_match and "://" not in url:
        host, path = scp_match.groups()
        return f"{host}/{path.lstrip('/')}".lower()

    parsed = urlparse(url)
    if parsed.netloc:
        return f"{parsed.hostname or parsed.netloc}/{parsed.path.lstrip('/')}".rstrip("/").lower()
    return url.lower()


def is_blocked(url: str, excluded: Iterable[str]) -> bool:
    # Entries with a '/' are repository locators, the rest are host names.
    locator = repository_locator(url)
    host = locator.split("/", 1)[0]
    for entry in excluded:
        entry = entry.strip().lower()
        if not entry:
            continue
        if "/" in entry:
            if repository_locator(entry) == locator:
                return True
        elif entry == host:
            return True
    return False


class GitPlumbing:
    def __init__(self, git_path: str = "git", fork_namespace: str = "refs/forks"):
        self.git_path = git_path
        self.fork_namespace = fork_namespace

    async def _run(self, *arguments: str) -> tuple[int, str]:
        try:
            git_process = await asyncio.create_subprocess_exec(
                self.git_path,
                *arguments,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            logger.warning(f"Could not run {self.git_path} {arguments[0]}: {e}")
            return COMMAND_NOT_RUN, ''
        stdout, stderr = await git_process.communicate()
        if git_process.returncode not in (0, None) and stderr:
            logger.debug(f"git {arguments[0]} stderr: {stderr.decode(errors='replace').strip()}")
        return git_process.returncode or 0, decode_output(stdout)

    async def list_refs(self, url: str, *, symrefs: bool = False) -> RefListing:
        arguments = ['ls-remote']
        if symrefs:
            arguments.append('--symref')
        return_code, output = await self._run(*arguments, url)
        if return_code != 0:
            logger.warning(f"Listing refs of {url} failed with return code {return_code}")
            return RefListing()
        return parse_refs(output.splitlines())

    async def _config_values(self, pattern: str) -> list[tuple[str, str]]:
        return_code, output = await self._run('config', '--get-regexp', pattern)
        # 1 means no key matched
        if return_code == 1:
            return []
        if return_code != 0:
            logger.warning(f"Reading git config '{pattern}' failed with return code {return_code}")
            return []
        values = []
        for line in output.splitlines():
            key, _, value = line.partition(' ')
            values.append((key, value))
        return values

    async def list_forks(self, upstream_url: str, excluded: Iterable[str]) -> list[ForkRemote]:
        excluded = list(excluded)
        upstream = repository_locator(upstream_url)
        urls = {
            _remote_name(key, '.url'): value
            for key, value in await self._config_values(URL_PATTERN)
        }
        forks: list[ForkRemote] = []
        for key, fork_of in await self._config_values(FORK_OF_PATTERN):
            if repository_locator(fork_of) != upstream:
                continue
            name = _remote_name(key, '.forkof')
            url = urls.get(name)
            if not url:
                logger.warning(f"Fork '{name}' of {upstream_url} has no url configured")
                continue
            if is_blocked(url, excluded):
                logger.debug(f"Skipping excluded fork '{name}' at {url}")
                continue
            forks.append(ForkRemote(name, url))
        return forks

    async def describe_fork_refspecs(self, fork_name: str, upstream_url: str) -> list[Refspec]:
        return_code, output = await self._run('config', '--get-all', f'remote.{fork_name}.forkrefspec')
        if return_code == 1:
            return [Refspec('refs/heads/*', f'{self.fork_namespace}/{fork_name}/*')]
        if return_code != 0:
            logger.warning(f"Reading refspecs of fork '{fork_name}' failed with return code {return_code}")
            return []
        refspecs = []
        for line in output.splitlines():
            if not line.strip():
                continue
            try:
                refspecs.append(Refspec.parse(line))
            except RefspecError as e:
                logger.warning(f"Ignoring refspec of fork '{fork_name}' relative to {upstream_url}: {e}")
        return refspecs

    async def routed_fetch(self, url: str, refspec: Refspec, arguments: Sequence[str]) -> None:
        command = [self.git_path, 'fetch', '--no-write-fetch-head', *arguments, url, str(refspec)]
        logger.info(f"Fetching {refspec} from {url}")
        try:
            git_process = await asyncio.create_subprocess_exec(
                *command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error(f"Could not run {self.git_path} fetch: {e}")
            raise GitCommandError(command, COMMAND_NOT_RUN) from e
        return_code = await git_process.wait()
        if return_code != 0:
            raise GitCommandError(command, return_code)


def _remote_name(key: str, suffix: str) -> str:
    return key[len('remote.'):-len(suffix)]
