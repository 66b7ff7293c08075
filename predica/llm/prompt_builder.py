from __future__ import annotations

"""Prompt construction helpers for the Predica sermon coach.

All LLM-facing messages should be assembled via this module so we maintain
one single source of truth for evaluation and rewrite prompts.

Per-section prompts come from the calibration store and use a plain
``[transcripción]`` placeholder (editable by end users). The fixed prompts
live in ``predica/prompts/`` and use Jinja2 for simple variable substitution.
"""

from pathlib import Path
from typing import Dict, List, Mapping

import jinja2

from predica.memory.models import SECTIONS

# ---------------------------------------------------------------------------
# Paths & Jinja environment
# ---------------------------------------------------------------------------

BASE_DIR = Path(__file__).resolve().parent.parent  # predica/
PROMPTS_DIR = BASE_DIR / "prompts"

PLACEHOLDER = "[transcripción]"

SECTION_LABELS: Dict[str, str] = {
    "titulo": "Título",
    "introduccion": "Introducción",
    "costura": "Costura",
    "problematica": "Problemática",
    "conector": "Conector",
    "desarrollo": "Desarrollo",
    "conclusion": "Conclusión",
    "ministracion": "Ministración",
}

# Lazy-initialised Jinja environment so we only pay the cost once.
_ENV: jinja2.Environment | None = None


def _get_env() -> jinja2.Environment:
    global _ENV
    if _ENV is None:
        _ENV = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(PROMPTS_DIR)),
            autoescape=False,  # we do not render HTML
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=False,
        )
    return _ENV


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_section_prompt(template: str, text: str) -> str:
    """Insert ``text`` into a calibration ``template``.

    The first ``[transcripción]`` token is replaced; templates without the
    token get the text appended under a "Texto a evaluar" heading.
    """
    template = template or ""
    if PLACEHOLDER in template:
        return template.replace(PLACEHOLDER, text, 1)
    return f"{template}\n\nTexto a evaluar:\n{text}"


def build_aggregate_prompt(sections: Mapping[str, str]) -> str:
    """Whole-sermon coherence prompt with the eight labelled sections."""
    labelled = [(SECTION_LABELS[s], sections.get(s, "")) for s in SECTIONS]
    return _get_env().get_template("aggregate_prompt.jinja").render(sections=labelled)


def build_suggestions_prompt(
    section: str,
    initial_prompt: str,
    transcripcion: str,
    evaluacion: str,
) -> str:
    """Prompt asking the model to rewrite a section following an evaluation."""
    return _get_env().get_template("suggestions_prompt.jinja").render(
        section=section,
        initial_prompt=initial_prompt,
        transcripcion=transcripcion,
        evaluacion=evaluacion,
    )


def build_messages(prompt: str) -> List[Dict[str, str]]:
    """Return a ChatCompletion-style message list carrying ``prompt``."""
    return [{"role": "system", "content": prompt}]
