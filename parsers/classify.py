"""
Filename-based file classification.

Lab exports arrive with the data type in the filename, e.g.
"T24-017 Soil Chemistry.csv" or "START HERE - Trial Summary.xlsx".
"""

import re

from models.column_map import FileType

PHOTO_PATTERN = re.compile(r"\.(jpg|jpeg|png|webp)$", re.IGNORECASE)

# Checked in order; first match wins
FILENAME_PATTERNS: list[tuple[tuple[str, ...], FileType]] = [
    (("start here", "trial summary"), FileType.TRIAL_SUMMARY),
    (("soil health",), FileType.SOIL_HEALTH),
    (("soil chemistry",), FileType.SOIL_CHEMISTRY),
    (("plot data",), FileType.PLOT_DATA),
    (("tissue chemistry",), FileType.TISSUE_CHEMISTRY),
    (("sample metadata", "assay data", "metadata"), FileType.SAMPLE_METADATA),
]


def classify_file(filename: str) -> FileType:
    """
    Classify an upload by its filename.

    Returns FileType.PHOTO for images and FileType.UNKNOWN when nothing matches.
    """
    lower = filename.lower()

    for needles, file_type in FILENAME_PATTERNS:
        if any(needle in lower for needle in needles):
            return file_type

    if PHOTO_PATTERN.search(lower):
        return FileType.PHOTO
    return FileType.UNKNOWN
