"""Loading of the ``<domain>\\<user>`` list that drives the warm-up batch."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from .models import UserIdentity

logger = logging.getLogger("rulewarmer.users")

_SEPARATOR = "\\"


class UserFileError(RuntimeError):
    """Raised when the user list file cannot be read."""


class MalformedUserError(ValueError):
    """Raised when a line does not describe a ``<domain>\\<user>`` entry."""


def parse_user_line(line: str) -> UserIdentity:
    """Parse a single line into a :class:`UserIdentity`.

    The line is trimmed and split on the first backslash only, so
    ``CORP\\svc\\batch`` yields user ``svc\\batch``. Both halves must be
    non-blank.
    """

    cleaned = line.strip()
    domain, separator, user = cleaned.partition(_SEPARATOR)
    if not separator:
        raise MalformedUserError("Expected format <domain>\\<user>")
    domain = domain.strip()
    user = user.strip()
    if not domain:
        raise MalformedUserError("Empty domain.")
    if not user:
        raise MalformedUserError("Empty user.")
    return UserIdentity(domain=domain, user=user)


def _parse_or_skip(line: str, line_number: int) -> Optional[UserIdentity]:
    try:
        return parse_user_line(line)
    except MalformedUserError as exc:
        logger.warning("Skipping line %d: Malformed user '%s'. %s", line_number, line, exc)
        return None


def parse_user_lines(lines: Iterable[str]) -> List[UserIdentity]:
    """Return the valid identities from ``lines`` in their original order."""

    identities: List[UserIdentity] = []
    for index, line in enumerate(lines, start=1):
        identity = _parse_or_skip(line, index)
        if identity is not None:
            identities.append(identity)
    return identities


def load_users(path: Path) -> List[UserIdentity]:
    """Read ``path`` and return every well-formed identity it lists."""

    try:
        text = Path(path).read_text(encoding="utf-8-sig", errors="replace")
    except OSError as exc:
        raise UserFileError(f"Unable to read user specification file {path}: {exc}") from exc

    identities = parse_user_lines(text.splitlines())
    logger.info("Loaded %d user(s) from %s", len(identities), path)
    return identities


__all__ = [
    "MalformedUserError",
    "UserFileError",
    "load_users",
    "parse_user_line",
    "parse_user_lines",
]
