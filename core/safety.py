"""
Lineboil — Safety & Resource Guards
Centralized preflight checks run before any file processing.
Prevents oversized inputs and unsupported formats from reaching the decoder.
"""

import os
from pathlib import Path

# --- Configurable Limits ---
MAX_FILE_MB = 25           # Maximum input file size
MAX_PIXELS = 4096 * 4096   # Maximum decoded image area
ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".tif", ".tiff"}
EXPORT_FORMATS = {"apng": ".png", "gif": ".gif"}


class SafetyError(Exception):
    """Raised when a preflight check fails."""
    pass


def preflight(input_path: str) -> dict:
    """Run all safety checks before loading a source image.

    Returns:
        dict with file metadata (path, size_mb, extension).

    Raises:
        SafetyError: If any check fails.
        FileNotFoundError: If input doesn't exist.
    """
    input_path = str(input_path)
    real_path = os.path.realpath(input_path)

    # 1. File exists
    if not os.path.isfile(real_path):
        raise FileNotFoundError(f"Input file not found: {input_path}")

    # 2. File size check
    size_mb = os.path.getsize(real_path) / (1024 * 1024)
    check_upload_size(size_mb)

    # 3. File extension check
    ext = Path(real_path).suffix.lower()
    check_extension(ext)

    return {
        "path": real_path,
        "size_mb": size_mb,
        "extension": ext,
    }


def check_upload_size(size_mb: float) -> None:
    if size_mb > MAX_FILE_MB:
        raise SafetyError(
            f"Input file is {size_mb:.1f}MB, exceeds {MAX_FILE_MB}MB limit. "
            f"Use a smaller image."
        )


def check_extension(ext: str) -> None:
    if ext not in ALLOWED_EXTENSIONS:
        raise SafetyError(
            f"File type '{ext}' not allowed. "
            f"Supported: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )


def output_path_for(output_path: str, export_format: str) -> Path:
    """Force the right extension for an export format.

    Raises:
        SafetyError: If the format is unknown.
    """
    if export_format not in EXPORT_FORMATS:
        raise SafetyError(
            f"Unknown export format '{export_format}'. "
            f"Supported: {', '.join(sorted(EXPORT_FORMATS))}"
        )
    path = Path(output_path)
    if path.suffix.lower() != EXPORT_FORMATS[export_format]:
        path = path.with_suffix(EXPORT_FORMATS[export_format])
    return path
