"""
Path traversal prevention for user supplied, root-relative paths.

The containment check after normalization is the only authoritative control;
the pattern checks before it exist for logging and are never relied upon alone.
"""
import os
import re
from pathlib import Path
from urllib.parse import unquote

import structlog

from albumtracker.core.errors import ConfigurationError, SecurityError

logger = structlog.get_logger(__name__)

# Windows device names, rejected in any path segment
RESERVED_DEVICE_NAMES = frozenset(
    ["CON", "PRN", "AUX", "NUL"]
    + [f"COM{i}" for i in range(1, 10)]
    + [f"LPT{i}" for i in range(1, 10)]
)

_MALFORMED_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_SUSPICIOUS_PATTERNS = (
    re.compile(r"\.\.[/\\]"),
    re.compile(r"^[/\\]"),
)


class PathGuard:
    def __init__(self, root: str | Path, check_reserved_names: bool | None = None):
        root_str = str(root)
        if not os.path.isabs(root_str):
            raise ConfigurationError("Library root must be an absolute path", field="LIBRARY_ROOT_PATH")
        self.root = os.path.normpath(root_str)
        if check_reserved_names is None:
            check_reserved_names = os.name == "nt"
        self.check_reserved_names = check_reserved_names

    def resolve(self, user_path: str, *, decode: bool = True) -> Path:
        """
        Resolve user_path against the library root.

        Returns the root itself or a path strictly beneath it. Raises
        SecurityError for anything else. Existence is not checked here.
        Pass decode=False for paths that were stored after an earlier resolve.
        """
        decoded = self._decode(user_path) if decode else user_path

        if "\0" in decoded:
            logger.warning("path_rejected", reason="null_byte", user_path=user_path)
            raise SecurityError("Null byte in path", user_path=user_path)

        if self.check_reserved_names and self._contains_reserved_name(decoded):
            logger.warning("path_rejected", reason="reserved_device_name", user_path=user_path)
            raise SecurityError("Reserved device name in path", user_path=user_path)

        if any(pattern.search(decoded) for pattern in _SUSPICIOUS_PATTERNS):
            logger.info("path_suspicious", user_path=user_path)

        resolved = os.path.normpath(os.path.join(self.root, decoded))

        if not self.contains(resolved):
            logger.warning("path_rejected", reason="outside_root", user_path=user_path, resolved=resolved)
            raise SecurityError("Access outside library root is forbidden", user_path=user_path)

        return Path(resolved)

    def contains(self, path: str | Path) -> bool:
        return _is_within(str(path), self.root)

    def contains_real(self, path: str | Path) -> bool:
        """Containment after following symlinks, on both the path and the root."""
        return _is_within(os.path.realpath(str(path)), os.path.realpath(self.root))

    def relative_to_root(self, path: str | Path) -> str:
        relative = os.path.relpath(str(path), self.root)
        return "" if relative == os.curdir else relative

    def _decode(self, user_path: str) -> str:
        if _MALFORMED_ESCAPE.search(user_path):
            logger.warning("path_rejected", reason="malformed_encoding", user_path=user_path)
            raise SecurityError("Invalid URL encoding in path", user_path=user_path)
        try:
            return unquote(user_path, errors="strict")
        except UnicodeDecodeError as e:
            logger.warning("path_rejected", reason="undecodable", user_path=user_path)
            raise SecurityError("Invalid URL encoding in path", user_path=user_path) from e

    def _contains_reserved_name(self, path: str) -> bool:
        for part in re.split(r"[/\\]", path):
            base = part.split(".")[0].strip().upper()
            if base in RESERVED_DEVICE_NAMES:
                return True
        return False


def _is_within(candidate: str, root: str) -> bool:
    if candidate == root:
        return True
    # "/" as root would otherwise become "//"
    prefix = root if root.endswith(os.sep) else root + os.sep
    return candidate.startswith(prefix)
