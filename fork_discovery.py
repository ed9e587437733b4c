from dataclasses import dataclass
import logging
from typing import Iterable

from git_plumbing import GitPlumbing, is_blocked, repository_locator
from refspec import Refspec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Fork:
    name: str
    url: str
    refspecs: tuple[Refspec, ...]
    parent_url: str


def initial_block_list(upstream_url: str, excluded_hosts: Iterable[str]) -> frozenset[str]:
    return frozenset(excluded_hosts) | {repository_locator(upstream_url)}


async def discover_forks(
    plumbing: GitPlumbing,
    upstream_url: str,
    excluded: frozenset[str],
    max_depth: int = 1,
) -> tuple[list[Fork], frozenset[str]]:
    if max_depth <= 0:
        return [], excluded
    forks: list[Fork] = []
    for fork_remote in await plumbing.list_forks(upstream_url, excluded):
        # Visited forks join the block-list, so siblings are re-checked.
        if is_blocked(fork_remote.url, excluded):
            logger.debug(f"Skipping already visited fork '{fork_remote.name}'")
            continue
        excluded = excluded | {repository_locator(fork_remote.url)}
        refspecs = tuple(await plumbing.describe_fork_refspecs(fork_remote.name, upstream_url))
        forks.append(Fork(fork_remote.name, fork_remote.url, refspecs, upstream_url))
        nested, excluded = await discover_forks(plumbing, fork_remote.url, excluded, max_depth - 1)
        forks.extend(nested)
    logger.debug(f"Discovered {len(forks)} forks below {upstream_url}")
    return forks, excluded
