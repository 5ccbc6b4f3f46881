"""Class label table."""

import logging
from pathlib import Path
from typing import Iterable, List, Set

from ..core.io import read_labels

logger = logging.getLogger(__name__)


class LabelTable:
    """Ordered class names indexed by class id.

    Spaces in names are replaced with underscores so names can be used as
    identifiers (``"dining table"`` becomes ``"dining_table"``).
    """

    def __init__(self, names: Iterable[str]):
        self.names: List[str] = [name.strip().replace(" ", "_") for name in names]
        self._index = {name: i for i, name in enumerate(self.names)}

    @classmethod
    def from_file(cls, path: str | Path) -> "LabelTable":
        """Load a newline-delimited label file."""
        table = cls(read_labels(path))
        logger.debug("Loaded %d class labels from %s", len(table), path)
        return table

    def name(self, class_id: int) -> str:
        """Class name for an id, or ``class_<id>`` when the table is too short."""
        if 0 <= class_id < len(self.names):
            return self.names[class_id]
        return f"class_{class_id}"

    def class_id(self, name: str) -> int:
        """Class id for a name.

        Raises:
            KeyError: If the name is not in the table.
        """
        return self._index[name.strip().replace(" ", "_")]

    def resolve(self, names: Iterable[str]) -> Set[int]:
        """Resolve class names into ids, dropping unknown names with a warning."""
        ids = set()
        for name in names:
            try:
                ids.add(self.class_id(name))
            except KeyError:
                logger.warning("Unknown class name %r in allow-list, ignoring", name)
        return ids

    def __len__(self) -> int:
        return len(self.names)

    def __contains__(self, name: str) -> bool:
        return name.strip().replace(" ", "_") in self._index
