"""Runtime-editable CORS origin allowlist.

Seeded from CORS_ORIGINS (falling back to FORM_BASE_URL) and editable through
the admin API. With CORS_PERSIST enabled the list is mirrored to a JSON file
and reloaded from it on startup, so admin edits survive restarts.
"""

import json
import threading
from pathlib import Path
from typing import Iterable, List, Optional

from app.config import get_settings
from app.logging_config import get_logger

logger = get_logger(__name__)


class CorsAllowlist:
    """Thread-safe set of allowed browser origins.

    An empty allowlist admits every origin.

    Usage:
        allowlist = get_cors_allowlist()
        allowlist.add("https://forms.example.com")
        allowlist.is_allowed("https://forms.example.com")  # True
    """

    def __init__(
        self,
        initial: Iterable[str] = (),
        persist_path: Optional[str] = None,
    ):
        self._initial = [o for o in (self._normalize(i) for i in initial) if o]
        self._origins = list(self._initial)
        self._persist_path = Path(persist_path) if persist_path else None
        self._lock = threading.Lock()

        if self._persist_path is not None:
            persisted = self._load()
            if persisted:
                self._origins = persisted
                logger.info(f"Loaded persisted CORS allowlist ({len(persisted)} entries)")
            else:
                self._save()

    @staticmethod
    def _normalize(origin: Optional[str]) -> Optional[str]:
        if origin is None:
            return None
        return str(origin).strip() or None

    def _load(self) -> Optional[List[str]]:
        try:
            if not self._persist_path.exists():
                return None
            parsed = json.loads(self._persist_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load persisted CORS allowlist: {e}")
            return None
        if not isinstance(parsed, list):
            return None
        return [o for o in (self._normalize(i) for i in parsed) if o]

    def _save(self) -> None:
        if self._persist_path is None:
            return
        try:
            self._persist_path.parent.mkdir(parents=True, exist_ok=True)
            self._persist_path.write_text(json.dumps(self._origins, indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to persist CORS allowlist: {e}")

    def list(self) -> List[str]:
        with self._lock:
            return list(self._origins)

    def is_allowed(self, origin: str) -> bool:
        with self._lock:
            return not self._origins or origin in self._origins

    def add(self, origin: Optional[str]) -> bool:
        """Add an origin; False when it is blank."""
        normalized = self._normalize(origin)
        if not normalized:
            return False
        with self._lock:
            if normalized not in self._origins:
                self._origins.append(normalized)
                self._save()
        logger.info(f"CORS allowlist add: {normalized}")
        return True

    def remove(self, origin: Optional[str]) -> bool:
        """Remove an origin; False when it was not present."""
        normalized = self._normalize(origin)
        with self._lock:
            if not normalized or normalized not in self._origins:
                return False
            self._origins.remove(normalized)
            self._save()
        logger.info(f"CORS allowlist removed: {normalized}")
        return True

    def reset(self) -> List[str]:
        """Restore the configured initial origins."""
        with self._lock:
            self._origins = list(self._initial)
            self._save()
            origins = list(self._origins)
        logger.info("CORS allowlist reset to initial values")
        return origins


# Global singleton instance
_allowlist_instance: Optional[CorsAllowlist] = None


def get_cors_allowlist() -> CorsAllowlist:
    """Get global CorsAllowlist instance (FastAPI dependency)."""
    global _allowlist_instance
    if _allowlist_instance is None:
        settings = get_settings()
        _allowlist_instance = CorsAllowlist(
            settings.get_cors_origins_list(),
            persist_path=settings.cors_persist_path if settings.cors_persist else None,
        )
    return _allowlist_instance
