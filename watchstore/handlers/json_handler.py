from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Generic, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from . import FileHandler, atomic_write_text, read_text

logger = logging.getLogger(__name__)

M = TypeVar("M")


class JsonFileHandler(FileHandler[M], Generic[M]):
    """JSON codec using Pydantic for model records and ``json`` for raw data."""

    extension = ".json"

    def __init__(self, model: Optional[Type[BaseModel]] = None, *, indent: int = 2) -> None:
        self._model = model
        self._indent = indent

    def load(self, path: Path) -> Optional[M]:
        try:
            text = read_text(path)
        except UnicodeDecodeError as exc:
            logger.warning("Error loading file %s: not valid UTF-8 (%s)", path.name, exc)
            return None
        if text is None:
            return None

        if self._model is not None:
            try:
                return self._model.model_validate_json(text)  # type: ignore[return-value]
            except ValidationError as exc:
                logger.warning(
                    "Error loading file %s: does not match %s (%d errors)",
                    path.name,
                    self._model.__name__,
                    exc.error_count(),
                )
                return None
        try:
            return json.loads(text)  # type: ignore[no-any-return]
        except json.JSONDecodeError as exc:
            logger.warning("Error loading file %s: %s", path.name, exc)
            return None

    def save(self, path: Path, record: M) -> None:
        if isinstance(record, BaseModel):
            text = record.model_dump_json(indent=self._indent)
        else:
            text = json.dumps(record, indent=self._indent, ensure_ascii=False)
        atomic_write_text(path, text + "\n")

    def validate(self, record: M) -> bool:
        if self._model is None:
            return record is not None
        return isinstance(record, self._model)
