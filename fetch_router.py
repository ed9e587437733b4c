import logging

from git_plumbing import GitPlumbing
from ref_aggregator import Session
from refspec import Refspec

logger = logging.getLogger(__name__)


class FetchRouter:
    def __init__(self, plumbing: GitPlumbing, session: Session):
        self.plumbing = plumbing
        self.session = session

    async def fetch(self, objid: str, local_name: str) -> None:
        # Without provenance (no `list` yet, or an unadvertised object) fall back
        # to asking the upstream for the object id itself.
        session = self.session
        origin = session.origin_of(objid)
        if origin is None:
            if not session.listed:
                logger.debug(f"fetch before list, requesting {objid} from upstream")
            else:
                logger.debug(f"{objid} was not advertised, requesting it from upstream")
            url = session.upstream_url
            refspec = Refspec(objid, local_name)
        else:
            logger.debug(f"Routing {objid} to {origin.url} ({origin.ref})")
            url = origin.url
            refspec = Refspec(origin.ref, local_name)
        options = session.options
        await self.plumbing.routed_fetch(url, options.apply(refspec), options.fetch_arguments())
