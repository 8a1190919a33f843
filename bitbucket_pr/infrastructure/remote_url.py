from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlparse

# git@bitbucket.org:owner/repo.git
_SCP_LIKE = re.compile(r"^(?:[^@/\s]+@)?(?P<host>[^:/\s]+):(?P<path>[^\s]+)$")


@dataclass(frozen=True)
class RemoteUrl:
    host:  str
    owner: str | None
    name:  str | None


def parse_remote_url(url: str) -> RemoteUrl | None:
    """
    Split a clone URL into host, owner and repository name.

    Handles https://[user@]host/owner/repo.git, ssh://git@host[:port]/owner/repo.git
    and the scp form git@host:owner/repo.git. Enterprise HTTP clone URLs carry
    an extra "scm" segment (https://host/scm/PROJ/repo.git); owner and name are
    always the last two path segments. Returns None when no host can be found.
    """
    if not url:
        return None
    url = url.strip()

    if "://" in url:
        parsed = urlparse(url)
        host = parsed.hostname
        path = parsed.path
    else:
        match = _SCP_LIKE.match(url)
        if not match:
            return None
        host = match.group("host")
        path = match.group("path")

    if not host:
        return None

    segments = [s for s in path.split("/") if s]
    name = segments[-1] if segments else None
    if name and name.endswith(".git"):
        name = name[: -len(".git")]
    owner = segments[-2] if len(segments) >= 2 else None
    return RemoteUrl(host=host.lower(), owner=owner, name=name)
