from dataclasses import dataclass, field
import logging
from typing import Iterable, Optional

from fetch_options import FetchOptions
from fork_discovery import discover_forks, initial_block_list
from git_plumbing import GitPlumbing
from refspec import map_ref

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Origin:
    url: str
    ref: str


@dataclass(frozen=True)
class AdvertisedRef:
    name: str
    objid: Optional[str] = None
    symref_target: Optional[str] = None

    def to_line(self) -> str:
        if self.symref_target is not None:
            return f'@{self.symref_target} {self.name}'
        return f'{self.objid} {self.name}'


@dataclass
class Session:
    upstream_url: str
    options: FetchOptions = field(default_factory=FetchOptions)
    provenance: dict[str, Origin] = field(default_factory=dict)
    claimed: set[str] = field(default_factory=set)
    ref_table: list[AdvertisedRef] = field(default_factory=list)
    listed: bool = False

    def record_origin(self, objid: str, origin: Origin) -> bool:
        if objid in self.provenance:
            return False
        self.provenance[objid] = origin
        return True

    def claim(self, name: str) -> bool:
        if name in self.claimed:
            return False
        self.claimed.add(name)
        return True

    def origin_of(self, objid: str) -> Optional[Origin]:
        return self.provenance.get(objid)


class RefAggregator:
    def __init__(self, plumbing: GitPlumbing, session: Session, excluded_hosts: Iterable[str] = (), fork_depth: int = 1):
        self.plumbing = plumbing
        self.session = session
        self.excluded_hosts = list(excluded_hosts)
        self.fork_depth = fork_depth

    async def list_refs(self) -> list[AdvertisedRef]:
        session = self.session
        if session.listed:
            return list(session.ref_table)

        # Upstream first, so it wins shared objects and names.
        await self._add_upstream_refs()

        excluded = initial_block_list(session.upstream_url, self.excluded_hosts)
        forks, _ = await discover_forks(self.plumbing, session.upstream_url, excluded, self.fork_depth)
        for fork in forks:
            if not fork.refspecs:
                logger.debug(f"Fork '{fork.name}' has no refspecs for this upstream")
                continue
            listing = await self.plumbing.list_refs(fork.url)
            for objid, ref in listing.resolved_refs:
                name = map_ref(fork.refspecs, ref)
                if name is None:
                    continue
                if not session.claim(name):
                    logger.debug(f"Dropping {ref} of fork '{fork.name}': {name} is already advertised")
                    continue
                session.ref_table.append(AdvertisedRef(name, objid))
                session.record_origin(objid, Origin(fork.url, ref))

        session.listed = True
        logger.info(f"Advertising {len(session.ref_table)} refs from upstream and {len(forks)} forks")
        return list(session.ref_table)

    async def _add_upstream_refs(self) -> None:
        session = self.session
        listing = await self.plumbing.list_refs(session.upstream_url, symrefs=True)
        symref_targets = {sym_ref.ref: sym_ref.target for sym_ref in listing.sym_refs}
        for objid, ref in listing.resolved_refs:
            session.record_origin(objid, Origin(session.upstream_url, ref))
            if not session.claim(ref):
                continue
            session.ref_table.append(AdvertisedRef(ref, objid, symref_targets.get(ref)))
