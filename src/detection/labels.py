"""
Class-name file loading.
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional

from ops.errors import AssetError


def load_class_names(labels_path: str) -> List[str]:
    """
    Load a newline-delimited class-name file.

    Lines are stripped and blank lines skipped; the class id of a name is its
    position in the resulting list.

    Raises:
        AssetError: If the file is missing, unreadable or contains no names.
    """
    if not labels_path or not os.path.isfile(labels_path):
        raise AssetError(f"Label file not found: {labels_path!r}")
    try:
        with open(labels_path, "r", encoding="utf-8") as f:
            names = [line.strip() for line in f]
    except (OSError, UnicodeDecodeError) as e:
        raise AssetError(f"Failed to read label file {labels_path}: {e}") from e

    names = [n for n in names if n]
    if not names:
        raise AssetError(f"Label file is empty: {labels_path}")
    return names


def check_label_count(class_names: List[str], num_classes: int) -> bool:
    """Warn when the label count differs from the model's class count."""
    if len(class_names) != num_classes:
        logging.warning(
            f"Label file has {len(class_names)} classes but the model outputs {num_classes}"
        )
        return False
    return True


def lookup_class_name(class_names: List[str], class_id: int) -> Optional[str]:
    if 0 <= class_id < len(class_names):
        return class_names[class_id]
    return None
