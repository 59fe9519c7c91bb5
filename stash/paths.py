from pathlib import Path

from stash.errors import AccessDeniedError


def resolve_within(root: Path | str, name: str) -> Path:
    """Canonical path of root/name, or AccessDeniedError if it is not inside root."""
    if not name or "\x00" in name:
        raise AccessDeniedError()

    base = Path(root).resolve()
    candidate = (base / name).resolve()
    if base not in candidate.parents:
        raise AccessDeniedError()
    return candidate
