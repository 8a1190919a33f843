from __future__ import annotations
from dataclasses import dataclass

from .entities import ConnectionState, LocalRepository


@dataclass(frozen=True)
class ConnectionChangedEvent:
    """Published by the session on every login and logout."""
    state: ConnectionState


@dataclass(frozen=True)
class ActiveRepositoryChangedEvent:
    """Published when the local repository the user works in changes."""
    repository: LocalRepository | None
