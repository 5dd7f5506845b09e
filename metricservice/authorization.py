from collections.abc import Iterable
from dataclasses import dataclass
import logging
import os
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeerIdentity:
    pid: int | None = None
    uid: int | None = None
    gid: int | None = None


class PeerAuthorizer(Protocol):
    def is_authorized(self, peer: PeerIdentity) -> bool: ...


class UidAuthorizer:
    """Allows peers by uid.

    With no explicit allow-list, root and the service's own effective uid are
    trusted. Peers whose uid cannot be determined are always denied.
    """

    def __init__(self, allowed_uids: Iterable[int] = ()) -> None:
        self.allowed_uids = frozenset(allowed_uids) or frozenset({0, os.geteuid()})

    def is_authorized(self, peer: PeerIdentity) -> bool:
        if peer.uid is None:
            logger.warning('Peer uid unavailable', extra={'pid': peer.pid})
            return False
        return peer.uid in self.allowed_uids
