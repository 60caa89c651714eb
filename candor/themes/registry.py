"""
Theme Catalog — what each interaction type asks about.

Loads one YAML file per interaction type. A conversation explores a few
themes in order; the orchestrator asks about the theme at its current
theme index.
"""

import logging
import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_THEMES_DIR = Path(__file__).parent / "defaults"

# self_reflection conversations cover more ground in fewer turns
THEMES_PER_CONVERSATION = {"self_reflection": 3}
DEFAULT_THEMES_PER_CONVERSATION = 2


@dataclass
class Theme:
    """A single question theme."""

    theme_id: str
    intent: str                         # What we want to learn
    data_goal: str                      # What a useful answer contains
    example_phrasings: list[str] = field(default_factory=list)
    verbatim: bool = False              # Ask the first phrasing as-is, no LLM


class ThemeCatalog:
    """
    Manages themes per interaction type. Loads `<interaction_type>.yaml`
    files from a directory.
    """

    def __init__(self):
        self._themes: dict[str, list[Theme]] = {}

    def register(self, interaction_type: str, themes: list[Theme]) -> None:
        self._themes[_key(interaction_type)] = list(themes)

    def load_from_directory(self, themes_dir: Path) -> None:
        """
        Scan a directory for theme files. Each *.yaml file is loaded as the
        theme list for the interaction type named in it (or its file stem).
        """
        themes_dir = Path(themes_dir)
        if not themes_dir.exists():
            logger.warning(f"Themes directory not found: {themes_dir}")
            return

        for yaml_file in sorted(themes_dir.glob("*.yaml")):
            with open(yaml_file) as f:
                config = yaml.safe_load(f) or {}

            interaction_type = config.get("interaction_type", yaml_file.stem)
            verbatim = bool(config.get("verbatim", False))
            themes = [
                Theme(
                    theme_id=entry["id"],
                    intent=entry["intent"],
                    data_goal=entry.get("data_goal", ""),
                    example_phrasings=entry.get("example_phrasings", []),
                    verbatim=bool(entry.get("verbatim", verbatim)),
                )
                for entry in config.get("themes", [])
            ]
            self.register(_key(interaction_type), themes)
            logger.debug(f"Loaded {len(themes)} themes for {interaction_type}")

    def themes_for(self, interaction_type: str) -> list[Theme]:
        """Themes selected for one conversation of this type, in order."""
        limit = THEMES_PER_CONVERSATION.get(
            _key(interaction_type), DEFAULT_THEMES_PER_CONVERSATION
        )
        return self._themes.get(_key(interaction_type), [])[:limit]

    def theme_at(self, interaction_type: str, index: int) -> Optional[Theme]:
        themes = self.themes_for(interaction_type)
        if 0 <= index < len(themes):
            return themes[index]
        return None

    def interaction_types(self) -> list[str]:
        return list(self._themes.keys())


def default_catalog() -> ThemeCatalog:
    catalog = ThemeCatalog()
    catalog.load_from_directory(DEFAULT_THEMES_DIR)
    return catalog


def _key(interaction_type) -> str:
    return getattr(interaction_type, "value", interaction_type)
