# /shopbot/services/string_service.py

import json
import logging
from pathlib import Path
from typing import Dict, Optional
from shopbot.config import strings as default_strings
from shopbot.utils.errors import MessagesError

logger = logging.getLogger(__name__)

MISSING_MESSAGE = "[Missing message: {key}]"


class StringService:
    def __init__(self, strings: Optional[Dict[str, str]] = None):
        self._strings_cache: Dict[str, str] = dict(strings) if strings else {}
        logger.info("StringService initialized.")

    def load_strings(self, path: Optional[str] = None):
        """
        Loads the default strings, then overlays a JSON file of key -> message if given.
        An unreadable or malformed file is a startup error.
        """
        self._load_defaults()
        if not path:
            logger.info(f"Loaded {len(self._strings_cache)} default strings into cache.")
            return

        logger.info(f"Loading strings from {path} into cache...")
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load strings from {path}: {e}", exc_info=True)
            raise MessagesError(f"Failed to load messages from {path}") from e

        if not isinstance(data, dict) or not all(isinstance(v, str) for v in data.values()):
            raise MessagesError(f"Messages file {path} must be a JSON object of strings")

        self._strings_cache.update(data)
        logger.info(f"Successfully loaded {len(data)} strings from {path}.")

    def get_string(self, key: str, default: Optional[str] = None) -> str:
        """Gets a string from the cache. Unknown keys render a visible placeholder."""
        value = self._strings_cache.get(key)
        if value is not None:
            return value
        if default is not None:
            return default
        logger.warning(f"Message key not found: {key}")
        return MISSING_MESSAGE.format(key=key)

    def render(self, key: str, **values) -> str:
        """Gets a string and substitutes ``{name}`` placeholders without failing on stray braces."""
        text = self.get_string(key)
        for name, value in values.items():
            text = text.replace("{" + name + "}", str(value))
        return text


    def _load_defaults(self):
        for key in dir(default_strings):
            if key.isupper():
                self._strings_cache[key.lower()] = getattr(default_strings, key)

# Globally accessible instance
string_service = StringService()
