"""On-device model catalog and readiness checks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelInfo:
    """A model that can run locally.

    Attributes:
        id: Identifier stored on conversations and used as the model's
            directory name.
        display_name: Human-readable name.
        repo: Upstream repository the weights come from.
        required_files: Files that must all be present for the model to load.
    """

    id: str
    display_name: str
    repo: str
    required_files: tuple[str, ...]


MODELS: dict[str, ModelInfo] = {
    "llama-3.2-1b": ModelInfo(
        id="llama-3.2-1b",
        display_name="Llama 3.2 1B",
        repo="mlx-community/Llama-3.2-1B-Instruct-4bit",
        required_files=(
            "config.json",
            "model.safetensors",
            "tokenizer.json",
            "tokenizer_config.json",
        ),
    ),
    "openelm-1.1b": ModelInfo(
        id="openelm-1.1b",
        display_name="OpenELM 1.1B",
        repo="mlx-community/OpenELM-1_1B-Instruct-4bit",
        required_files=(
            "config.json",
            "model.safetensors",
            "tokenizer.json",
            "tokenizer.model",
            "tokenizer_config.json",
        ),
    ),
}


def display_name(model_id: str) -> str:
    """Return the display name for a model ID, or the ID itself."""
    info = MODELS.get(model_id)
    return info.display_name if info else model_id


class ModelCatalog:
    """Checks the models directory for complete model downloads.

    Downloading and verifying weights happens elsewhere; this only looks.
    """

    def __init__(self, models_dir: Path) -> None:
        self._models_dir = models_dir

    def model_path(self, model_id: str) -> Path | None:
        """Directory of *model_id*'s files, or None for an unknown model."""
        if model_id not in MODELS:
            return None
        return self._models_dir / model_id

    def is_model_ready(self, model_id: str) -> bool:
        path = self.model_path(model_id)
        if path is None:
            logger.warning("Unknown model: %s", model_id)
            return False
        missing = [f for f in MODELS[model_id].required_files if not (path / f).is_file()]
        if missing:
            logger.info("Model %s is missing files: %s", model_id, ", ".join(missing))
            return False
        return True
