"""
Common Workflow Utilities

File system helpers shared by the connector workflows.
"""

import logging
import shutil
from pathlib import Path
from typing import Union

from sf_connector.exceptions import PathValidationError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def ensure_directories(*dirs: Path) -> None:
    """
    Create multiple directories if they don't exist.

    Creates directories with parent directories as needed, similar to
    'mkdir -p'. Silently succeeds if directories already exist.

    Raises:
        OSError: If directory creation fails due to permissions or other I/O errors
    """
    for directory in dirs:
        Path(directory).mkdir(parents=True, exist_ok=True)
        logger.debug(f"Directory ensured: {directory}")


def path_exists(path: PathLike) -> bool:
    return Path(path).exists()


def delete_path(path: PathLike) -> bool:
    """
    Delete a file or folder tree.

    Failures are logged and reported through the return value only.

    Returns:
        True if nothing remains at ``path``
    """
    target = Path(path)
    if not target.exists():
        return True
    try:
        if target.is_dir():
            shutil.rmtree(target)
        else:
            target.unlink()
    except OSError as e:
        logger.debug(f"Could not delete {target}: {e}")
    return not target.exists()


def copy_file(source: PathLike, destination: PathLike) -> Path:
    """Copy one file, creating the destination folder as needed."""
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, destination)
    logger.debug(f"Copied {source} -> {destination}")
    return destination


def has_files(folder: PathLike) -> bool:
    """True if ``folder`` contains at least one file at any depth."""
    root = Path(folder)
    if not root.is_dir():
        return False
    return any(p.is_file() for p in root.rglob('*'))


def validate_file(path: PathLike, label: str = "File") -> Path:
    """
    Resolve a file argument.

    Raises:
        PathValidationError: If the path is missing or not a file
    """
    if path is None or str(path).strip() == "":
        raise PathValidationError(f"{label} path is required", path)
    resolved = Path(path).expanduser().resolve()
    if not resolved.exists():
        raise PathValidationError(f"{label} not found: {resolved}", resolved)
    if not resolved.is_file():
        raise PathValidationError(f"{label} must be a file: {resolved}", resolved)
    return resolved


def validate_folder(path: PathLike, label: str = "Folder", create: bool = False) -> Path:
    """
    Resolve a folder argument, optionally creating it.

    Raises:
        PathValidationError: If the path is missing, not a folder, or cannot be created
    """
    if path is None or str(path).strip() == "":
        raise PathValidationError(f"{label} path is required", path)
    resolved = Path(path).expanduser().resolve()
    if not resolved.exists():
        if not create:
            raise PathValidationError(f"{label} not found: {resolved}", resolved)
        try:
            resolved.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PathValidationError(f"Cannot create {label.lower()} {resolved}: {e}", resolved) from e
    if not resolved.is_dir():
        raise PathValidationError(f"{label} must be a folder: {resolved}", resolved)
    return resolved
