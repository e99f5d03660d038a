"""Project file enumeration for backend context priming."""

from .project_files import ProjectFile, enumerate_project_files, find_repo_root, list_project_files, read_project_files

__all__ = ["ProjectFile", "enumerate_project_files", "find_repo_root", "list_project_files", "read_project_files"]
