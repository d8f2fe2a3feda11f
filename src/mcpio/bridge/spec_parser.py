import re
from typing import List, Sequence

from .exceptions import MalformedGroupError, NoServersError
from .models import ServerSpec

SERVER_SEPARATOR = "--"
DEFAULT_SERVER_NAME = "server"

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


def sanitize_name(name: str) -> str:
    """
    Map a server name to a safe file name fragment.

    Every run of characters outside `[A-Za-z0-9_-]` becomes a single
    underscore; an empty result becomes "server".
    """
    return _UNSAFE_NAME_CHARS.sub("_", name) or DEFAULT_SERVER_NAME


def parse_servers(args: Sequence[str]) -> List[ServerSpec]:
    """
    Split a flat argument list on "--" into server specs.

    Each group is `<name> <cmd> [args...]`. Empty groups (repeated or
    leading/trailing separators) are skipped.

    Raises:
        MalformedGroupError: If a group has fewer than two tokens.
        NoServersError: If no group was given.
    """
    servers: List[ServerSpec] = []
    group: List[str] = []

    def flush() -> None:
        if not group:
            return
        if len(group) < 2:
            raise MalformedGroupError(list(group))
        servers.append(ServerSpec(name=group[0], command=tuple(group[1:])))
        group.clear()

    for arg in args:
        if arg == SERVER_SEPARATOR:
            flush()
            continue
        group.append(arg)
    flush()

    if not servers:
        raise NoServersError()
    return servers
