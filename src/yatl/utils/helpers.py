"""
Helper Functions for YATL

This module provides helper functions for JSON handling, resource lookup and
disk space queries.
"""

import json
import logging
import os
import shutil
from typing import Dict, Any, Optional
from pathlib import Path


def get_resource_base_path() -> Path:
    """Returns the base path for the packaged resource files."""
    base_path = os.path.join(os.path.dirname(__file__), "..", "resources")
    return Path(os.path.abspath(base_path))


def load_json_file(file_path: str | Path) -> Optional[Any]:
    """
    Load a JSON file.

    Args:
        file_path: Path to the JSON file

    Returns:
        JSON data or None if failed to load
    """
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except Exception as e:
        logging.getLogger("YATL").error(f"Failed to load JSON file {file_path}: {e}")
        return None


def save_json_file(file_path: str | Path, data: Dict[str, Any]) -> bool:
    """
    Save data to a JSON file.

    Args:
        file_path: Path to save the JSON file
        data: Data to save

    Returns:
        bool: True if saved successfully
    """
    try:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=4, ensure_ascii=False)

        return True

    except Exception as e:
        logging.getLogger("YATL").error(f"Failed to save JSON file {file_path}: {e}")
        return False


def get_free_space(directory: str | Path) -> int:
    """
    Get the usable space of the filesystem holding a directory.

    The nearest existing parent is queried when the directory itself has not
    been created yet.

    Returns:
        int: Free bytes, or 0 if it could not be determined
    """
    path = Path(directory)
    while not path.exists() and path != path.parent:
        path = path.parent
    try:
        return shutil.disk_usage(path).free
    except OSError as e:
        logging.getLogger("YATL").warning(f"Could not determine free space for {directory}: {e}")
        return 0
