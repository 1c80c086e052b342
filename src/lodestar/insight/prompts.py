"""Prompt loading for insight requests."""

import json
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from lodestar.contracts.insight import InsightKind

PROMPTS_DIR = Path(__file__).parent / "prompts"


def _pretty(value: Any) -> str:
    return json.dumps(value, indent=2, default=str, sort_keys=True)


class PromptLoader:
    """Loads and renders insight prompts with Jinja2 templating."""

    def __init__(self, prompts_dir: Path | None = None):
        self.prompts_dir = prompts_dir or PROMPTS_DIR
        self._env: Environment | None = None

    @property
    def env(self) -> Environment:
        """Get or create the Jinja2 environment."""
        if self._env is None:
            self._env = Environment(
                loader=FileSystemLoader(str(self.prompts_dir)),
                autoescape=select_autoescape(enabled_extensions=()),
                trim_blocks=True,
                lstrip_blocks=True,
            )
            self._env.filters["pretty"] = _pretty
        return self._env

    def system_prompt(self) -> str:
        return (self.prompts_dir / "system.md").read_text().strip()

    def render(self, kind: InsightKind, context: dict[str, Any]) -> str:
        """Render the user prompt for an insight kind.

        Args:
            kind: Which analysis is requested
            context: Template variables (see prompts/<kind>.md)

        Returns:
            The rendered prompt string
        """
        template = self.env.get_template(f"{kind.value}.md")
        return template.render(**context).strip()
