"""State manager for loading, saving and locking per-resource state files."""

import fcntl
import json
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from rds_bluegreen.utils.logging import get_logger

from .models import ResourceState

logger = get_logger(__name__)

DEFAULT_STATE_DIR = ".bluegreen/state"


class StateError(Exception):
    """Base exception for state management errors."""

    pass


class StateLockError(StateError):
    """Exception raised when state file cannot be locked."""

    pass


class StateNotFoundError(StateError):
    """Exception raised when state file does not exist."""

    pass


class StateManager:
    """Manages one JSON state file per resource.

    Each resource has its own file and lock, so resources applied in
    parallel never contend with each other.
    """

    def __init__(self, state_dir: str = DEFAULT_STATE_DIR):
        """
        Initialize StateManager.

        Args:
            state_dir: Directory holding the state files
        """
        self.state_dir = Path(state_dir)
        self._lock_files: Dict[str, int] = {}

    def state_path(self, name: str) -> Path:
        return self.state_dir / f"{name}.json"

    def exists(self, name: str) -> bool:
        """Check if a state file exists for the resource."""
        return self.state_path(name).exists()

    def load(self, name: str) -> ResourceState:
        """
        Load a resource's state from file.

        Returns:
            ResourceState object

        Raises:
            StateNotFoundError: If state file does not exist
            StateError: If state file is corrupted or invalid
        """
        path = self.state_path(name)
        if not path.exists():
            raise StateNotFoundError(f"State file not found: {path}")

        try:
            with open(path, "r") as f:
                data = json.load(f)
            return ResourceState.from_dict(data)
        except json.JSONDecodeError as e:
            raise StateError(f"Failed to parse state file {path}: {e}")
        except ValueError as e:
            raise StateError(f"Invalid state file {path}: {e}")

    def get(self, name: str) -> Optional[ResourceState]:
        """Load a resource's state, or None when there is none."""
        try:
            return self.load(name)
        except StateNotFoundError:
            return None

    def save(self, state: ResourceState) -> None:
        """
        Save a resource's state to file.

        Args:
            state: ResourceState object to save

        Raises:
            StateError: If state cannot be saved
        """
        path = self.state_path(state.name)
        path.parent.mkdir(parents=True, exist_ok=True)

        try:
            # Write to temporary file first
            temp_path = path.with_suffix(".tmp")
            with open(temp_path, "w") as f:
                json.dump(state.to_dict(), f, indent=2)

            # Atomic rename
            temp_path.replace(path)
            logger.debug(f"Saved state for {state.name}")
        except OSError as e:
            raise StateError(f"Failed to save state file {path}: {e}")

    def remove(self, name: str) -> bool:
        """Delete a resource's state file.

        Returns:
            True if a file was removed
        """
        path = self.state_path(name)
        if not path.exists():
            return False

        path.unlink()
        logger.debug(f"Removed state for {name}")
        return True

    def list_resources(self) -> List[str]:
        """Names of every resource with a state file."""
        if not self.state_dir.exists():
            return []
        return sorted(path.stem for path in self.state_dir.glob("*.json"))

    def lock(self, name: str, timeout: float = 30) -> None:
        """
        Acquire exclusive lock on a resource's state file.

        Args:
            name: Resource name
            timeout: Lock timeout in seconds

        Raises:
            StateLockError: If lock cannot be acquired
        """
        lock_path = self.state_path(name).with_suffix(".lock")
        lock_path.parent.mkdir(parents=True, exist_ok=True)

        fd = os.open(str(lock_path), os.O_CREAT | os.O_RDWR)
        start_time = time.time()
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.time() - start_time > timeout:
                    os.close(fd)
                    raise StateLockError(
                        f"Failed to acquire lock on state for {name} after {timeout}s"
                    )
                time.sleep(0.1)

        self._lock_files[name] = fd

    def unlock(self, name: str) -> None:
        """Release lock on a resource's state file."""
        fd = self._lock_files.pop(name, None)
        if fd is not None:
            try:
                fcntl.flock(fd, fcntl.LOCK_UN)
            finally:
                os.close(fd)

    @contextmanager
    def locked(self, name: str, timeout: float = 30) -> Iterator[Optional[ResourceState]]:
        """Hold the resource's lock and yield its current state, if any."""
        self.lock(name, timeout)
        try:
            yield self.get(name)
        finally:
            self.unlock(name)
