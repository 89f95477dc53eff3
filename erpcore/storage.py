"""Persistent error log and configuration using JSON files."""

import json
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
from .config import Settings, load_settings
from .models import ErrorLogEntry, Severity

# Handle platform-specific locking
if sys.platform == "win32":
    import msvcrt
else:
    import fcntl


class Storage:
    """File-based storage for error log entries with locking."""

    def __init__(self, data_dir: str = ".erpcore"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.errors_file = self.data_dir / "errors.json"
        self.config_file = self.data_dir / "config.json"
        self.lock_file = self.data_dir / "errors.lock"

        if not self.errors_file.exists():
            self._write_json(self.errors_file, [])
        if not self.config_file.exists():
            self._write_json(self.config_file, {})

    def _write_json(self, file_path: Path, data: Any) -> None:
        """Write data to JSON file with atomic write."""
        temp_file = file_path.with_suffix(".tmp")
        with open(temp_file, "w") as f:
            json.dump(data, f, indent=2, default=str)
        temp_file.replace(file_path)

    def _read_json(self, file_path: Path) -> Any:
        """Read JSON file safely."""
        if not file_path.exists():
            return [] if file_path == self.errors_file else {}
        with open(file_path, "r") as f:
            return json.load(f)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold an exclusive lock on the error log for read-modify-write."""
        fd = os.open(str(self.lock_file), os.O_CREAT | os.O_WRONLY, 0o644)
        try:
            if sys.platform == "win32":
                msvcrt.locking(fd, msvcrt.LK_LOCK, 1)
            else:
                fcntl.flock(fd, fcntl.LOCK_EX)
            yield
        finally:
            try:
                if sys.platform == "win32":
                    msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
                else:
                    fcntl.flock(fd, fcntl.LOCK_UN)
            finally:
                os.close(fd)

    def add_error(self, entry: ErrorLogEntry) -> None:
        """Append an entry to the error log."""
        with self._locked():
            errors = self._read_json(self.errors_file)
            errors.append(entry.model_dump(mode="json"))
            self._write_json(self.errors_file, errors)

    def get_errors(self, severity: Optional[Severity] = None) -> List[ErrorLogEntry]:
        """Get logged errors, newest last, optionally filtered by severity."""
        errors = self._read_json(self.errors_file)
        result = []
        for data in errors:
            if severity is None or data["severity"] == severity.value:
                result.append(ErrorLogEntry(**data))
        return result

    def clear_errors(self) -> int:
        """Remove every logged error. Returns how many were removed."""
        with self._locked():
            count = len(self._read_json(self.errors_file))
            self._write_json(self.errors_file, [])
        return count

    def get_config(self) -> Settings:
        """Get current configuration; saved values override the environment."""
        return load_settings(self.data_dir)

    def update_config(self, **values: Any) -> Settings:
        """Save the given settings. Only keys ever set here are persisted,
        so everything else keeps following the environment.
        """
        overrides = self._read_json(self.config_file)
        overrides.update(values)
        config = Settings(**overrides)
        self._write_json(self.config_file, overrides)
        return config

    def get_stats(self) -> Dict[str, int]:
        """Get error counts by severity."""
        errors = self._read_json(self.errors_file)

        stats = {severity.value: 0 for severity in Severity}
        stats["total"] = len(errors)

        for entry in errors:
            severity = entry.get("severity", Severity.MEDIUM.value)
            if severity in stats:
                stats[severity] += 1

        return stats
