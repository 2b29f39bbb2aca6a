"""
Assessment string lookup with English fallback
"""
import json
import logging
from pathlib import Path
from typing import Dict, Optional

from assessment.utils.event_bus import I18N_MISSING_KEY, EventBus

logger = logging.getLogger(__name__)

LOCALES_DIR = Path(__file__).resolve().parent.parent / "locales"
FALLBACK_LOCALE = "en"


def load_catalogs(directory: Path = LOCALES_DIR) -> Dict[str, Dict[str, str]]:
    """Load every ``<locale>.json`` file in ``directory``"""
    catalogs = {}
    for path in sorted(directory.glob("*.json")):
        with open(path, "r", encoding="utf-8") as f:
            catalogs[path.stem] = json.load(f)
    logger.debug(f"Loaded locales: {sorted(catalogs)}")
    return catalogs


class Translator:
    """
    Resolves keys: requested locale -> English -> the key itself.

    Only the last step emits ``i18n.missing_key``. No interpolation is
    done here; callers format the returned template.
    """

    def __init__(
        self,
        event_bus: EventBus,
        catalogs: Optional[Dict[str, Dict[str, str]]] = None,
        locale: str = FALLBACK_LOCALE
    ):
        self.event_bus = event_bus
        self.catalogs = catalogs if catalogs is not None else load_catalogs()
        self.locale = FALLBACK_LOCALE
        self.set_locale(locale)

    def set_locale(self, locale: str) -> str:
        """Switch the active locale; unknown locales fall back to English"""
        self.locale = locale if locale in self.catalogs else FALLBACK_LOCALE
        return self.locale

    def t(self, key: str, locale: Optional[str] = None) -> str:
        key = str(key)
        locale = locale if isinstance(locale, str) and locale else self.locale

        value = self.catalogs.get(locale, {}).get(key)
        if value:
            return value

        value = self.catalogs.get(FALLBACK_LOCALE, {}).get(key)
        if value:
            return value

        logger.warning(f"Missing i18n key '{key}' (locale: {locale})")
        self.event_bus.publish(I18N_MISSING_KEY, {"key": key, "locale": locale})
        return key
