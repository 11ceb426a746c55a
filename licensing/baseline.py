"""
Artifact baseline monitor.

Records a content digest for each critical component the first time it runs
and compares against that snapshot on every later check. The first snapshot
is trusted as-is, so modifications made before the first run go unnoticed.
"""

import hashlib
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Protocol

from licensing.storage import KeyValueStore

logger = logging.getLogger(__name__)

BASELINE_KEY = "perf_baseline"


class ComponentSource(Protocol):
    def read(self, component_id: str) -> Optional[bytes]:
        """Return component content, or None when the component is absent."""
        ...


class FileComponentSource:
    """Resolves component ids as paths relative to a root directory."""

    def __init__(self, root: str) -> None:
        self.root = Path(root)

    def read(self, component_id: str) -> Optional[bytes]:
        path = self.root / component_id
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Unable to read component", extra={"component": component_id, "error": str(e)})
            return None


class CallableComponentSource:
    """Adapts a plain callable (e.g. a dict lookup) to ComponentSource."""

    def __init__(self, reader: Callable[[str], Optional[bytes]]) -> None:
        self._reader = reader

    def read(self, component_id: str) -> Optional[bytes]:
        return self._reader(component_id)


class BaselineMonitor:
    def __init__(
        self,
        store: KeyValueStore,
        source: ComponentSource,
        components: Iterable[str],
    ) -> None:
        self.store = store
        self.source = source
        self.components = tuple(components)

    def current_digests(self) -> Dict[str, str]:
        digests: Dict[str, str] = {}
        for component_id in self.components:
            content = self.source.read(component_id)
            if content is None:
                continue
            digests[component_id] = hashlib.sha256(content).hexdigest()
        return digests

    def snapshot(self) -> Dict[str, str]:
        stored = self.store.get(BASELINE_KEY)
        return dict(stored) if isinstance(stored, dict) else {}

    def check_integrity(self) -> bool:
        """True when no baselined component has changed. First run records the baseline."""
        current = self.current_digests()
        baseline = self.snapshot()

        if not baseline:
            self.store.set(BASELINE_KEY, current)
            logger.info("Component baseline recorded", extra={"components": sorted(current)})
            return True

        modified = [
            component_id
            for component_id, digest in baseline.items()
            if component_id in current and current[component_id] != digest
        ]
        if modified:
            logger.warning("Component baseline mismatch", extra={"components": modified})
            return False
        return True

    def reset(self) -> None:
        self.store.delete(BASELINE_KEY)
