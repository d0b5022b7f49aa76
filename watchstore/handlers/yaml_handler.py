from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Generic, Optional, Type, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from . import FileHandler, atomic_write_text, read_text

logger = logging.getLogger(__name__)

M = TypeVar("M")


class YamlFileHandler(FileHandler[M], Generic[M]):
    """YAML codec backed by PyYAML.

    - With ``model`` set to a Pydantic model class, documents are validated
      through ``model_validate`` and written from ``model_dump(mode="json")``.
    - Without a model, the raw mapping/sequence data is returned as-is.
    - Output uses block style and preserves field order.
    """

    extension = ".yml"

    def __init__(self, model: Optional[Type[BaseModel]] = None, *, extension: str = ".yml") -> None:
        self._model = model
        self.extension = extension

    @property
    def model(self) -> Optional[Type[BaseModel]]:
        return self._model

    def load(self, path: Path) -> Optional[M]:
        try:
            text = read_text(path)
        except UnicodeDecodeError as exc:
            logger.warning("Error loading file %s: not valid UTF-8 (%s)", path.name, exc)
            return None
        if text is None:
            return None

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            logger.warning("Error loading file %s: %s", path.name, exc)
            return None
        if data is None:
            return None

        if self._model is None:
            return data  # type: ignore[no-any-return]
        try:
            return self._model.model_validate(data)  # type: ignore[return-value]
        except ValidationError as exc:
            logger.warning(
                "Error loading file %s: does not match %s (%d errors)",
                path.name,
                self._model.__name__,
                exc.error_count(),
            )
            return None

    def save(self, path: Path, record: M) -> None:
        atomic_write_text(path, self.dumps(record))

    def dumps(self, record: M) -> str:
        data: Any = record
        if isinstance(record, BaseModel):
            data = record.model_dump(mode="json")
        return yaml.safe_dump(
            data,
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
        )

    def validate(self, record: M) -> bool:
        if self._model is None:
            return record is not None
        return isinstance(record, self._model)
