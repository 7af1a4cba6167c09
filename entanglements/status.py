"""
Viewer-relative entanglement status.

A stored Connection is directional (requester -> target). What a member
sees on a profile card depends on which side of that record they are on:

    stored status   viewer is requester   viewer is target
    pending         pending_outgoing      pending_incoming
    accepted        accepted              accepted
    declined        declined              declined

No record (or no viewer) always projects to `none`. Everything here is
pure: no queries, no writes.
"""

from enum import Enum
from typing import Iterable, Mapping, Optional

from .models import Connection


class ConnectionStatus(str, Enum):
    NONE = "none"
    PENDING_OUTGOING = "pending_outgoing"
    PENDING_INCOMING = "pending_incoming"
    ACCEPTED = "accepted"
    DECLINED = "declined"


def _same(a, b) -> bool:
    return a is not None and b is not None and str(a) == str(b)


def other_participant(connection, viewer_id):
    """Id of the member on the other side of `connection` from the viewer."""
    if _same(connection.requester_id, viewer_id):
        return connection.target_id
    return connection.requester_id


def index_connections(connections: Iterable, viewer_id) -> dict:
    """
    Map other-participant id -> connection for every record touching the viewer.

    Records that do not involve the viewer are skipped. When a pair has more
    than one record, the one scanned last wins.
    """
    index = {}
    if viewer_id is None:
        return index
    for connection in connections:
        if not (_same(connection.requester_id, viewer_id) or _same(connection.target_id, viewer_id)):
            continue
        index[str(other_participant(connection, viewer_id))] = connection
    return index


def project_status(connection, viewer_id) -> ConnectionStatus:
    """Classify one record from the viewer's side."""
    if viewer_id is None or connection is None:
        return ConnectionStatus.NONE

    if connection.status == Connection.Status.ACCEPTED:
        return ConnectionStatus.ACCEPTED
    if connection.status == Connection.Status.DECLINED:
        return ConnectionStatus.DECLINED

    if connection.status == Connection.Status.PENDING:
        if _same(connection.requester_id, viewer_id):
            return ConnectionStatus.PENDING_OUTGOING
        if _same(connection.target_id, viewer_id):
            return ConnectionStatus.PENDING_INCOMING

    return ConnectionStatus.NONE


def get_connection_status(index: Mapping, viewer_id, other_id: Optional[object]) -> ConnectionStatus:
    if viewer_id is None or other_id is None:
        return ConnectionStatus.NONE
    return project_status(index.get(str(other_id)), viewer_id)
