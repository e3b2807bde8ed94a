"""Class-name table aligned with the model's output indices."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path
from typing import overload

from mobiclassify.errors import AssetLoadError

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "Unknown"


class LabelTable(Sequence[str]):
    """Ordered class names; position ``i`` names output index ``i``."""

    def __init__(self, labels: Iterable[str]) -> None:
        self._labels: tuple[str, ...] = tuple(labels)

    @classmethod
    def from_text(cls, text: str) -> LabelTable:
        """Parse one class name per line. A trailing newline adds no class."""
        return cls(text.splitlines())

    @classmethod
    def from_file(cls, path: str | Path) -> LabelTable:
        """Read a UTF-8 label file.

        Raises:
            AssetLoadError: If the file is missing, not valid UTF-8, or empty.
        """
        label_path = Path(path)
        try:
            text = label_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise AssetLoadError(f"Cannot read label asset {label_path}: {exc}") from exc

        table = cls.from_text(text)
        if not table:
            raise AssetLoadError(f"Label asset {label_path} is empty")
        logger.info("Loaded %d labels from %s", len(table), label_path)
        return table

    def name_for(self, index: int) -> str:
        """Return the class name for an output index, or ``"Unknown"`` past the end."""
        if 0 <= index < len(self._labels):
            return self._labels[index]
        return UNKNOWN_LABEL

    @overload
    def __getitem__(self, index: int) -> str: ...

    @overload
    def __getitem__(self, index: slice) -> Sequence[str]: ...

    def __getitem__(self, index: int | slice) -> str | Sequence[str]:
        return self._labels[index]

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self) -> Iterator[str]:
        return iter(self._labels)

    def __repr__(self) -> str:
        return f"LabelTable({len(self._labels)} labels)"
