"""Project file browser."""

from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from indexer.project_files import find_repo_root, list_project_files


def get_directory_tree(files: List[str]) -> Dict[str, List[str]]:
    """
    Group relative file paths by directory.

    Args:
        files: Relative paths as listed by git.

    Returns:
        Dict mapping directory paths ("." for the root) to sorted file names.
    """
    tree: Dict[str, List[str]] = {}
    for file in files:
        path = Path(file)
        parent = str(path.parent)
        tree.setdefault(parent, []).append(path.name)

    for names in tree.values():
        names.sort()
    return tree


def flatten_tree_for_display(tree: Dict[str, List[str]]) -> List[Tuple[str, str]]:
    """
    Flatten tree structure for display.

    Args:
        tree: Directory tree from get_directory_tree.

    Returns:
        (display line, relative path) pairs; directory headers have an empty path.
    """
    lines: List[Tuple[str, str]] = []
    for directory in sorted(tree, key=lambda d: (d != ".", d)):
        indent = ""
        if directory != ".":
            depth = len(Path(directory).parts)
            lines.append((f"{'  ' * (depth - 1)}{directory}/", ""))
            indent = "  " * depth
        for name in tree[directory]:
            relative = name if directory == "." else f"{directory}/{name}"
            lines.append((f"{indent}{name}", relative))
    return lines


def project_entries(start: Optional[Path] = None,
                    warn: Optional[Callable[[str], None]] = None) -> Tuple[Optional[Path], List[Tuple[str, str]]]:
    """Repository root and display entries for the project panel."""
    root = find_repo_root(start)
    files = list_project_files(start, warn=warn)
    return root, flatten_tree_for_display(get_directory_tree(files))
