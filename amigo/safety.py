import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

RULES_DIR = Path(__file__).resolve().parent / "rules"

# kept in code so a missing rules file never disables the scan
BASE_MARKERS: Dict[str, List[str]] = {
    "en": ["trusted adult", "talk to an adult", "talk to a parent", "school counselor", "helpline"],
}


class SafetyScanner:
    """Flags AI replies that escalate to a "talk to a trusted adult" response."""

    def __init__(self, markers_path: Optional[Path] = None, default_language: str = "en"):
        self.default_language = default_language
        self.markers: Dict[str, List[str]] = {k: list(v) for k, v in BASE_MARKERS.items()}

        path = Path(markers_path) if markers_path else RULES_DIR / "safety_markers.json"
        if not path.exists():
            logger.warning("safety marker file %s missing, using built-in markers", path)
            return
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            languages = data["languages"]
            for lang, phrases in languages.items():
                self.add_markers(lang, phrases)
        except (OSError, ValueError, TypeError, KeyError, AttributeError) as exc:
            logger.warning("safety marker file %s unreadable (%s), using built-in markers", path, exc)

    def add_markers(self, language: str, phrases: Iterable[str]) -> None:
        known = self.markers.setdefault(language, [])
        for p in phrases:
            p = p.casefold().strip()
            if p and p not in known:
                known.append(p)

    def scan(self, text: str, language: Optional[str] = None) -> Optional[str]:
        """Return the first marker found in ``text`` or ``None``."""
        if not text:
            return None
        folded = text.casefold()
        for lang in dict.fromkeys((language or self.default_language, self.default_language)):
            for marker in self.markers.get(lang, []):
                if marker in folded:
                    return marker
        return None
