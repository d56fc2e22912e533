from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from .models import LANGUAGE_NAMES, Profile

PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"


class PromptBuilder:
    def __init__(self, prompts_dir: Optional[Path] = None):
        self.root = Path(prompts_dir) if prompts_dir else PROMPTS_DIR
        self._templates: Dict[str, str] = {}

    def template(self, name: str) -> str:
        if name not in self._templates:
            self._templates[name] = (self.root / f"{name}.txt").read_text(encoding="utf-8").strip()
        return self._templates[name]

    def render(self, name: str, profile: Profile, language: str, **fields) -> str:
        return self.template(name).format(**self._persona(profile, language), **fields)

    # ---- per-feature prompts
    def roleplay(self, scenario_prompt: str, profile: Profile, language: str) -> Tuple[str, str]:
        """(system instruction, opening message) for a practice session."""
        system = self.render("roleplay_system", profile, language, scenario=scenario_prompt)
        opening = self.render("roleplay_opening", profile, language)
        return system, opening

    def decoder(self, profile: Profile, language: str) -> str:
        return self.render("decoder_system", profile, language)

    def mission(self, profile: Profile, language: str, theme: str) -> str:
        return self.render("mission", profile, language, theme=theme)

    def calm_thought(self, profile: Profile, language: str) -> str:
        return self.render("calm_thought", profile, language)

    def buddy_support(self, profile: Profile, language: str, moods: Iterable[str], note: str) -> str:
        return self.render("buddy_support", profile, language, moods=", ".join(moods), note=note or "-")

    # ---- helpers
    def _persona(self, profile: Profile, language: str) -> Dict[str, str]:
        age = profile.age
        return {
            "user_name": profile.user_name or "friend",
            "age_phrase": f"{age} years old" if age is not None else "a young person",
            "age_group": profile.age_group or "10-12",
            "language_name": LANGUAGE_NAMES.get(language, "English"),
        }
