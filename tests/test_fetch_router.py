import asyncio

import pytest

from conftest import UPSTREAM
from fetch_router import FetchRouter
from git_plumbing import GitCommandError
from ref_aggregator import Origin

FORK = "https://github.com/fork/project"


def fetch(plumbing, session, objid, local_name):
    asyncio.run(FetchRouter(plumbing, session).fetch(objid, local_name))


class TestFetchRouter:
    def test_routes_to_origin(self, plumbing, session):
        session.record_origin("b1", Origin(FORK, "refs/heads/feature"))
        session.listed = True
        fetch(plumbing, session, "b1", "refs/forks/F/feature")
        assert plumbing.fetches == [(FORK, "refs/heads/feature:refs/forks/F/feature", [])]

    def test_unknown_object_falls_back_to_upstream(self, plumbing, session):
        session.listed = True
        fetch(plumbing, session, "d4", "refs/heads/main")
        assert plumbing.fetches == [(UPSTREAM, "d4:refs/heads/main", [])]

    def test_fetch_before_list_falls_back_to_upstream(self, plumbing, session):
        fetch(plumbing, session, "a1", "refs/heads/main")
        assert plumbing.fetches == [(UPSTREAM, "a1:refs/heads/main", [])]

    def test_session_options_are_applied(self, plumbing, session):
        session.record_origin("a1", Origin(UPSTREAM, "refs/heads/main"))
        session.options.set_option("depth", "3")
        session.options.set_option("force", "true")
        session.options.set_option("update-shallow", "true")
        fetch(plumbing, session, "a1", "refs/heads/main")
        assert plumbing.fetches == [
            (UPSTREAM, "+refs/heads/main:refs/heads/main", ["--depth=3", "--update-shallow"]),
        ]

    def test_failure_propagates(self, plumbing, session):
        plumbing.fetch_return_code = 128
        with pytest.raises(GitCommandError) as excinfo:
            fetch(plumbing, session, "a1", "refs/heads/main")
        assert excinfo.value.return_code == 128
