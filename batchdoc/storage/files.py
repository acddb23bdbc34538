"""Resolution of stored attachment names to readable file paths."""

from pathlib import Path


class FileStorage:
    """Maps an attachment's stored file name to a path under the upload root.

    Args:
        root: Directory uploaded batch files are stored in.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def path_for(self, stored_name: str) -> Path:
        """Return the path of a stored file. Absolute names are used as-is."""
        return self.root / stored_name
