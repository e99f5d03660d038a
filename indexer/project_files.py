"""Version-controlled project file enumeration."""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional

from core.errors import EnumerationFailed, NoRepositoryRoot

logger = logging.getLogger(__name__)

# Never sent to the backend, even when tracked.
EXCLUDED_FILE_NAMES = frozenset({".gitignore", ".gitmodules"})


@dataclass(frozen=True)
class ProjectFile:
    """A tracked file and its content."""
    path: str
    content: str


def find_repo_root(start: Optional[Path] = None, home: Optional[Path] = None) -> Optional[Path]:
    """
    Find the repository root by walking upward from ``start``.

    A directory qualifies when it contains a ``.git`` directory or file
    (worktrees and submodules use a file). The walk stops at the home
    directory or the filesystem root, neither of which is examined.

    Args:
        start: Directory to start from (defaults to the working directory).
        home: Directory where the walk stops (defaults to the user's home).

    Returns:
        The repository root, or None.
    """
    directory = (start or Path.cwd()).resolve()
    stop = (home or Path.home()).resolve()

    while directory != stop and directory.parent != directory:
        marker = directory / ".git"
        if marker.is_dir() or marker.is_file():
            return directory
        directory = directory.parent

    return None


def git_ls_files(root: Path) -> List[str]:
    """
    List tracked and untracked-but-not-ignored files under ``root``.

    Raises:
        EnumerationFailed: git is missing or exited non-zero.
    """
    cmd = ["git", "-C", str(root), "ls-files", "--cached", "--others", "--exclude-standard"]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except (subprocess.SubprocessError, FileNotFoundError) as e:
        raise EnumerationFailed(str(e)) from e

    if result.returncode != 0:
        raise EnumerationFailed((result.stderr or result.stdout).strip())

    return [line for line in result.stdout.splitlines() if line]


def enumerate_project_files(start: Optional[Path] = None, home: Optional[Path] = None) -> List[str]:
    """
    Enumerate project files relative to the repository root.

    Raises:
        NoRepositoryRoot: no repository above ``start``.
        EnumerationFailed: the listing command failed.
    """
    root = find_repo_root(start, home)
    if root is None:
        raise NoRepositoryRoot(start)

    return [path for path in git_ls_files(root) if Path(path).name not in EXCLUDED_FILE_NAMES]


def list_project_files(
    start: Optional[Path] = None,
    home: Optional[Path] = None,
    warn: Optional[Callable[[str], None]] = None,
) -> List[str]:
    """
    Enumerate project files, reporting failures instead of raising.

    Returns an empty list when there is no repository or git fails; the
    reason is logged and passed to ``warn``.
    """
    try:
        return enumerate_project_files(start, home)
    except (NoRepositoryRoot, EnumerationFailed) as e:
        logger.warning(str(e))
        if warn:
            warn(str(e))
        return []


def read_project_files(root: Path, files: Iterable[str]) -> Iterator[ProjectFile]:
    """Read each file under ``root``; files that cannot be opened are skipped."""
    for relative_path in files:
        full_path = root / relative_path
        try:
            content = full_path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug(f"Skipping unreadable project file {full_path}: {e}")
            continue
        yield ProjectFile(path=relative_path, content=content)
