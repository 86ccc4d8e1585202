"""
Screenshot artifact naming.

Jobs that run concurrently share one screenshots directory, so fixed or
missing names get a timestamp and random suffix appended.
"""
import secrets
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

DEFAULT_BASENAME = "screenshot"
DEFAULT_EXTENSION = ".png"

# Names commonly copied from examples; always made unique
PLACEHOLDER_NAMES = frozenset({
    "screenshot.png",
    "example-screenshot.png",
    "test-screenshot.png",
    "test.png",
    "image.png",
    "capture.png",
})


def generate_unique_filename(original_name: Optional[str] = None, extension: str = DEFAULT_EXTENSION) -> str:
    """Return ``<base>-<YYYYMMDD-HHMMSS>-<8 hex chars><ext>``."""
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    random_str = secrets.token_hex(4)

    base_name = DEFAULT_BASENAME
    if original_name:
        stem = Path(original_name).stem
        if stem:
            base_name = stem

    ext = extension if extension.startswith(".") else f".{extension}"
    return f"{base_name}-{timestamp}-{random_str}{ext}"


def should_make_unique(filename: Optional[str]) -> bool:
    if not filename:
        return True
    return Path(filename).name.lower() in PLACEHOLDER_NAMES


def screenshot_filename(original_path: Optional[str] = None) -> str:
    """Pick the file name for a screenshot step."""
    if should_make_unique(original_path):
        if original_path:
            path = Path(original_path)
            return generate_unique_filename(path.stem, path.suffix or DEFAULT_EXTENSION)
        return generate_unique_filename()
    return Path(original_path).name


def resolve_screenshot_path(directory: Union[str, Path], original_path: Optional[str] = None) -> Path:
    """Full output path inside ``directory``. Caller-supplied directories are dropped."""
    return Path(directory) / screenshot_filename(original_path)
