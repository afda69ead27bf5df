# markers.py
# Filesystem completion markers.
#
# A marker's existence is the only state the toolkit keeps between runs.
# Content is a human-readable timestamp line for the operator; nothing
# parses it beyond existence.

from datetime import datetime
from pathlib import Path

MASTER_MARKER = ".master_setup_complete"


def _timestamp() -> str:
    return datetime.now().strftime("%a %b %d %H:%M:%S %Y")


class MarkerStore:
    """
    Marker files under a single log directory.

    Markers are only created after a step's verification passes and only
    deleted as a reset request. There is no update operation.
    """

    def __init__(self, log_dir: Path) -> None:
        self._log_dir = Path(log_dir)
        self._log_dir.mkdir(parents=True, exist_ok=True)

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def path(self, name: str) -> Path:
        return self._log_dir / name

    def exists(self, name: str) -> bool:
        return self.path(name).is_file()

    def create(self, name: str, text: str, extra: list[str] | None = None) -> Path:
        """Write `<text> on <timestamp>` followed by any extra lines."""
        lines = [f"{text} on {_timestamp()}", *(extra or [])]
        marker = self.path(name)
        marker.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return marker

    def read(self, name: str) -> str | None:
        if not self.exists(name):
            return None
        return self.path(name).read_text(encoding="utf-8")

    def reset(self, name: str) -> bool:
        """Delete a marker. Returns False if it was not there."""
        marker = self.path(name)
        if not marker.exists():
            return False
        marker.unlink()
        return True

    def completed(self, names: list[str]) -> set[str]:
        return {name for name in names if self.exists(name)}
