"""Path dialect helpers.

Conversions between the three path spellings a gateway has to understand:
native Windows (``C:\\Users\\me``), Git-Bash (``/c/Users/me``) and WSL mounts
(``/mnt/c/Users/me``). All functions are pure string transformations; none of
them touch the filesystem.
"""

import ntpath
import posixpath
import re

DEFAULT_MOUNT_POINT = "/mnt/"

_DRIVE_PATH = re.compile(r"^([a-zA-Z]):(?:[\\/](.*))?$")
_GITBASH_PATH = re.compile(r"^/([a-zA-Z])(?:/(.*))?$")


def is_windows_path(path: str) -> bool:
    """Return True for drive-letter (``C:\\x``, ``C:/x``) or UNC paths."""
    return bool(_DRIVE_PATH.match(path)) or path.startswith("\\\\")


def is_gitbash_drive_path(path: str) -> bool:
    """Return True for Git-Bash drive paths such as ``/c`` or ``/c/Users``."""
    return bool(_GITBASH_PATH.match(path))


def normalize_mount_point(mount_point: str | None) -> str:
    """Return the mount point with exactly one leading and trailing slash."""
    mount = (mount_point or DEFAULT_MOUNT_POINT).strip()
    mount = "/" + mount.strip("/")
    return mount if mount == "/" else mount + "/"


def normalize_windows_path(path: str) -> str:
    """Normalize a path to native Windows form.

    Git-Bash drive paths (``/c/foo``) are converted to ``C:\\foo``, forward
    slashes become backslashes, the drive letter is upper-cased and trailing
    separators are removed (except for a drive root).
    """
    candidate = path.strip()
    match = _GITBASH_PATH.match(candidate)
    if match:
        drive, rest = match.group(1), match.group(2) or ""
        candidate = f"{drive}:\\{rest}"

    candidate = candidate.replace("/", "\\")
    drive_match = _DRIVE_PATH.match(candidate)
    if drive_match:
        candidate = drive_match.group(1).upper() + candidate[1:]
        if len(candidate) == 2:
            candidate += "\\"

    normalized = ntpath.normpath(candidate)
    if len(normalized) > 3 and normalized.endswith("\\"):
        normalized = normalized.rstrip("\\")
    return normalized


def normalize_posix_path(path: str) -> str:
    """Collapse separators and dot segments of a POSIX path."""
    candidate = path.strip().replace("\\", "/")
    if not candidate:
        return candidate
    normalized = posixpath.normpath(candidate)
    # posixpath keeps a leading '//' pair; treat it as root
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    return normalized


def windows_to_wsl(path: str, mount_point: str | None = DEFAULT_MOUNT_POINT) -> str:
    """Convert ``C:\\Users\\me`` to ``/mnt/c/Users/me``.

    Non-Windows paths are returned POSIX-normalized and otherwise unchanged.
    """
    match = _DRIVE_PATH.match(path.strip())
    if not match:
        return normalize_posix_path(path)

    drive, rest = match.group(1).lower(), (match.group(2) or "")
    rest = rest.replace("\\", "/").strip("/")
    base = f"{normalize_mount_point(mount_point)}{drive}"
    return normalize_posix_path(f"{base}/{rest}" if rest else base)


def wsl_to_windows(path: str, mount_point: str | None = DEFAULT_MOUNT_POINT) -> str | None:
    """Convert ``/mnt/c/Users/me`` to ``C:\\Users\\me``.

    Returns None when the path is not under the mount point.
    """
    mount = re.escape(normalize_mount_point(mount_point))
    match = re.match(rf"^{mount}([a-zA-Z])(?:/(.*))?$", path.strip())
    if not match:
        return None

    drive, rest = match.group(1).upper(), (match.group(2) or "")
    return normalize_windows_path(f"{drive}:\\{rest.replace('/', chr(92))}")


def windows_to_gitbash(path: str) -> str:
    """Convert ``C:\\Users\\me`` to ``/c/Users/me``."""
    match = _DRIVE_PATH.match(path.strip())
    if not match:
        return normalize_posix_path(path)
    drive, rest = match.group(1).lower(), (match.group(2) or "")
    rest = rest.replace("\\", "/").strip("/")
    return normalize_posix_path(f"/{drive}/{rest}" if rest else f"/{drive}")


def is_within(path: str, root: str, *, separator: str, case_insensitive: bool) -> bool:
    """Return True when ``path`` equals ``root`` or lies beneath it.

    Both arguments must already be normalized into the same dialect.
    """
    if case_insensitive:
        path, root = path.lower(), root.lower()

    if path == root:
        return True

    prefix = root if root.endswith(separator) else root + separator
    return path.startswith(prefix)


def has_traversal_segment(path: str) -> bool:
    """Return True when any segment of ``path`` is exactly ``..``."""
    return any(segment == ".." for segment in re.split(r"[\\/]", path))
