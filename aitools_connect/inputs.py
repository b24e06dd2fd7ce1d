"""Loads operator-supplied input files for scenarios that need them."""

import logging
from collections.abc import Mapping
from pathlib import Path

from aitools_connect.errors import InvalidInputError
from aitools_connect.models.scenario import InputKind, InputPayload
from aitools_connect.settings import InputSettings

log = logging.getLogger(__name__)

# extension -> (kind, content type)
EXTENSIONS: Mapping[str, tuple[InputKind, str]] = {
    ".wav": ("audio", "audio/wav"),
    ".mp3": ("audio", "audio/mpeg"),
    ".ogg": ("audio", "audio/ogg"),
    ".png": ("image", "image/png"),
    ".jpg": ("image", "image/jpeg"),
    ".jpeg": ("image", "image/jpeg"),
    ".gif": ("image", "image/gif"),
    ".bmp": ("image", "image/bmp"),
    ".pdf": ("document", "application/pdf"),
    ".tif": ("document", "image/tiff"),
    ".tiff": ("document", "image/tiff"),
    ".txt": ("text", "text/plain"),
}


def load_input(path: Path, expected_kind: InputKind | None = None) -> InputPayload:
    """Read an input file, deriving its kind from the extension.

    Raises:
        InvalidInputError: If the file is missing or unreadable, has an
            unsupported extension, or is not of `expected_kind`

    """
    suffix = path.suffix.lower()
    if suffix not in EXTENSIONS:
        raise InvalidInputError(
            f"Unsupported input file type '{suffix or path.name}'",
            hint=f"Supported extensions: {', '.join(EXTENSIONS)}",
        )

    kind, content_type = EXTENSIONS[suffix]
    if expected_kind is not None and kind != expected_kind:
        raise InvalidInputError(
            f"{path} is a {kind} file but a {expected_kind} file is required"
        )

    try:
        data = path.read_bytes()
    except FileNotFoundError as exc:
        raise InvalidInputError(f"Input file not found: {path}") from exc
    except OSError as exc:
        raise InvalidInputError(
            f"Cannot read input file {path}: {exc.strerror or exc}"
        ) from exc

    if not data:
        raise InvalidInputError(f"Input file is empty: {path}")

    log.debug("Loaded %s input %s (%d bytes)", kind, path, len(data))
    return InputPayload(
        kind=kind, data=data, content_type=content_type, file_name=path.name
    )


def text_input(text: str) -> InputPayload:
    return InputPayload(
        kind="text", data=text.encode("utf-8"), content_type="text/plain"
    )


def load_inputs(settings: InputSettings) -> Mapping[InputKind, InputPayload]:
    """Load every configured input, keyed by kind."""
    files: Mapping[InputKind, Path | None] = {
        "audio": settings.audio_file,
        "image": settings.image_file,
        "document": settings.document_file,
    }
    inputs: dict[InputKind, InputPayload] = {
        kind: load_input(path, kind)
        for kind, path in files.items()
        if path is not None
    }
    if settings.text:
        inputs["text"] = text_input(settings.text)
    return inputs
