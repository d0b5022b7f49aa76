from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

from . import FileHandler, atomic_write_bytes

logger = logging.getLogger(__name__)


class PngFileHandler(FileHandler[Image.Image]):
    """PNG image codec backed by Pillow.

    Loaded images are fully decoded and detached from their file, so the file
    can be replaced or deleted while the image stays cached.
    """

    extension = ".png"

    def load(self, path: Path) -> Optional[Image.Image]:
        try:
            with Image.open(path) as image:
                image.load()
                return image.copy()
        except FileNotFoundError:
            return None
        except (UnidentifiedImageError, OSError) as exc:
            logger.warning("Error loading image %s: %s", path.name, exc)
            return None

    def save(self, path: Path, record: Image.Image) -> None:
        buffer = io.BytesIO()
        record.save(buffer, format="PNG")
        atomic_write_bytes(path, buffer.getvalue())

    def validate(self, record: Image.Image) -> bool:
        return isinstance(record, Image.Image) and record.width > 0 and record.height > 0
