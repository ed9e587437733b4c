import asyncio
import io
from typing import Optional

import pytest

from fetch_router import FetchRouter
from git_plumbing import ForkRemote, GitCommandError, RefListing, ResolvedRef, SymRef, is_blocked
from git_remote_forks import RemoteHelper
from ref_aggregator import RefAggregator, Session
from refspec import Refspec

UPSTREAM = "https://github.com/upstream/project"


class FakePlumbing:
    """In-memory stand-in for GitPlumbing that records what it was asked."""

    def __init__(self):
        self.refs: dict[str, RefListing] = {}
        self.forks: dict[str, list[ForkRemote]] = {}
        self.refspecs: dict[str, list[Refspec]] = {}
        self.fetches: list[tuple[str, str, list[str]]] = []
        self.ref_queries: list[str] = []
        self.fork_queries: list[tuple[str, frozenset[str]]] = []
        self.fetch_return_code: Optional[int] = None

    def add_refs(self, url: str, refs: list[tuple[str, str]], sym_refs: list[tuple[str, str]] = ()) -> None:
        self.refs[url] = RefListing(
            [SymRef(target, ref) for target, ref in sym_refs],
            [ResolvedRef(objid, ref) for objid, ref in refs],
        )

    def add_fork(self, parent_url: str, name: str, url: str, *refspecs: str) -> None:
        self.forks.setdefault(parent_url, []).append(ForkRemote(name, url))
        self.refspecs[name] = [Refspec.parse(refspec) for refspec in refspecs]

    async def list_refs(self, url: str, *, symrefs: bool = False) -> RefListing:
        self.ref_queries.append(url)
        return self.refs.get(url, RefListing())

    async def list_forks(self, upstream_url, excluded):
        excluded = frozenset(excluded)
        self.fork_queries.append((upstream_url, excluded))
        return [fork for fork in self.forks.get(upstream_url, []) if not is_blocked(fork.url, excluded)]

    async def describe_fork_refspecs(self, fork_name, upstream_url):
        return list(self.refspecs.get(fork_name, []))

    async def routed_fetch(self, url, refspec, arguments):
        self.fetches.append((url, str(refspec), list(arguments)))
        if self.fetch_return_code is not None:
            raise GitCommandError(["git", "fetch", url, str(refspec)], self.fetch_return_code)


@pytest.fixture
def plumbing() -> FakePlumbing:
    return FakePlumbing()


@pytest.fixture
def session() -> Session:
    return Session(UPSTREAM)


@pytest.fixture
def make_helper(plumbing, session):
    def factory(excluded_hosts=(), fork_depth=1) -> RemoteHelper:
        aggregator = RefAggregator(plumbing, session, excluded_hosts, fork_depth)
        return RemoteHelper(session, aggregator, FetchRouter(plumbing, session), io.StringIO())
    return factory


def converse(helper: RemoteHelper, *lines: str) -> list[str]:
    """Feed request lines to the helper and return its output lines."""
    asyncio.run(helper.serve(line + "\n" for line in lines))
    return helper.output.getvalue().split("\n")[:-1]
