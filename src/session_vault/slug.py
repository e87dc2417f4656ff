"""Project path helpers.

Examples::

    /home/user/my-project    -> home-user-my-project
    C:\\Users\\user\\project    -> c-users-user-project
    /home/user/My Project/   -> home-user-my-project
"""

import re

_DRIVE_RE = re.compile(r"^([A-Za-z]):")
_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]+")


def path_to_slug(project_path: str) -> str:
    """Convert a project path to a filesystem-safe directory name."""
    slug = project_path.replace("\\", "/")
    slug = _DRIVE_RE.sub(lambda m: m.group(1).lower(), slug)
    slug = slug.strip("/")
    slug = _NON_ALNUM_RE.sub("-", slug)
    return slug.strip("-").lower()


def project_name(project_path: str) -> str:
    """Return the last non-empty path segment, for display."""
    segments = [s for s in project_path.replace("\\", "/").split("/") if s]
    return segments[-1] if segments else "unknown"
