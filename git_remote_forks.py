#!/usr/bin/env python3
# git runs this as `git-remote-forks <remote> <url>` for forks::<upstream> and forks://<upstream>.
import asyncio
import logging
import os
import re
import sys
import typing as t

from pydantic import ValidationError
from pydantic_settings import SettingsError
import yaml

from fetch_options import OptionResult
from fetch_router import FetchRouter
from git_plumbing import GitCommandError, GitPlumbing
from ref_aggregator import RefAggregator, Session
from remote_settings import CONFIG_FILE, Settings

SCHEME_PREFIXES = ("forks://", "forks::")
CAPABILITIES = ["fetch", "option"]

logger = logging.getLogger(__name__)


class ProtocolError(Exception):
    pass


class RemoteHelper:
    def __init__(self, session: Session, aggregator: RefAggregator, router: FetchRouter, output: t.TextIO):
        self.session = session
        self.aggregator = aggregator
        self.router = router
        self.output = output
        self.last_was_fetch = False

    def emit(self, *lines: str) -> None:
        for line in lines:
            print(line, file=self.output)
        self.output.flush()

    async def handle_line(self, line: str) -> None:
        line = line.rstrip('\n')
        if not line:
            if self.last_was_fetch:
                self.emit('')
            return

        command, _, arguments = line.partition(' ')
        self.last_was_fetch = command == 'fetch'
        if command == 'capabilities':
            self.emit(*CAPABILITIES, '')
        elif command == 'list':
            refs = await self.aggregator.list_refs()
            self.emit(*(ref.to_line() for ref in refs), '')
        elif command == 'option':
            self.emit(self.set_option(arguments))
        elif command == 'fetch':
            objid, _, local_name = arguments.partition(' ')
            if not objid or not local_name:
                raise ProtocolError(f"Malformed fetch request '{line}'")
            await self.router.fetch(objid, local_name)
        else:
            raise ProtocolError(f"Unknown command '{line}'")

    def set_option(self, arguments: str) -> str:
        name, separator, value = arguments.partition(' ')
        if not name or not separator:
            logger.warning(f"Malformed option request '{arguments}'")
            return OptionResult.UNSUPPORTED.value
        result = self.session.options.set_option(name, value)
        if result is OptionResult.ERROR:
            logger.warning(f"Ignoring option {name}: invalid value '{value}'")
            return OptionResult.UNSUPPORTED.value
        return result.value

    async def serve(self, lines: t.Iterable[str]) -> None:
        for line in lines:
            await self.handle_line(line)


def upstream_from_url(url: str, default_scheme: str = "https") -> str:
    for prefix in SCHEME_PREFIXES:
        if url.startswith(prefix):
            url = url[len(prefix):]
            break
    url = url.strip()
    if not url:
        return url
    if "://" in url or url.startswith(("/", ".", "~")) or re.match(r"^[^@/]+@[^:/]+:", url):
        return url
    return f"{default_scheme}://{url}"


def create_helper(upstream_url: str, settings: Settings, output: t.TextIO) -> RemoteHelper:
    plumbing = GitPlumbing(settings.git_path, settings.fork_namespace)
    session = Session(upstream_url)
    aggregator = RefAggregator(plumbing, session, settings.excluded_hosts, settings.fork_depth)
    return RemoteHelper(session, aggregator, FetchRouter(plumbing, session), output)


def configure_logging(level: str) -> None:
    # stdout carries the protocol; diagnostics only ever go to stderr.
    root = logging.getLogger()
    if root.hasHandlers():
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("forks: %(levelname)s: %(message)s"))
    root.addHandler(handler)
    root.setLevel(level)


def load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(map(str, error['loc']))}: {error['msg']}" for error in e.errors()
        )
        logger.error(f"Invalid configuration: {problems}")
    except (yaml.YAMLError, SettingsError) as e:
        logger.error(f"Unreadable configuration file {CONFIG_FILE}: {e}".splitlines()[0])
    sys.exit(1)


def silence_stdout() -> None:
    # Keeps the interpreter from failing again while flushing stdout at exit.
    try:
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
    except OSError:
        pass


def run(argv: t.Optional[t.Sequence[str]] = None) -> None:
    argv = sys.argv if argv is None else argv
    settings = load_settings()
    configure_logging(settings.log_level)

    if len(argv) < 3:
        logger.error("usage: git-remote-forks <remote> <url>")
        sys.exit(1)
    upstream_url = upstream_from_url(argv[2], settings.default_scheme)
    if not upstream_url:
        logger.error(f"No upstream repository in '{argv[2]}'")
        sys.exit(1)

    helper = create_helper(upstream_url, settings, sys.stdout)
    try:
        asyncio.run(helper.serve(sys.stdin))
    except ProtocolError as e:
        logger.error(str(e))
        sys.exit(1)
    except GitCommandError as e:
        logger.error(str(e))
        sys.exit(e.return_code)
    except BrokenPipeError:
        silence_stdout()
        logger.error("git closed the connection before the session ended")
        sys.exit(1)


if __name__ == '__main__':
    run()
