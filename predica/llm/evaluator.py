"""Calls to the external model provider: evaluation, rewrite, STT and TTS.

Two failure policies live here:

* Evaluation text is optional for the user, so ``evaluate_section`` and
  ``evaluate_aggregate`` never raise. They return an ``EvaluationResult``
  whose ``ok`` flag tells the caller whether ``text`` is the model's answer
  or the fallback message.
* Transcription, rewrites and speech synthesis are required results and raise
  ``TranscriptionError`` / ``ProviderError`` for the HTTP layer to map.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from config import (
    OPENAI_COMPLETION_MODEL,
    OPENAI_TRANSCRIPTION_MODEL,
    TRANSCRIPTION_BACKOFF_SECONDS,
    TRANSCRIPTION_MAX_ATTEMPTS,
)
from predica.llm.prompt_builder import (
    build_aggregate_prompt,
    build_messages,
    build_section_prompt,
    build_suggestions_prompt,
)
from utils.error_handler import ProviderError, TranscriptionError, retry
from utils.logging import get_logger

logger = get_logger(__name__)

SECTION_EVALUATION_FALLBACK = "Error en la evaluación de la transcripción."
AGGREGATE_EVALUATION_FALLBACK = "Error en la evaluación de la prédica completa."


@dataclass
class EvaluationResult:
    text: str
    ok: bool = True
    error: Optional[str] = None


async def _complete(client: Any, prompt: str, model: Optional[str] = None) -> str:
    response = await client.chat.completions.create(
        model=model or OPENAI_COMPLETION_MODEL,
        messages=build_messages(prompt),
    )
    return response.choices[0].message.content or ""


# ---------------------------------------------------------------------------
# Evaluation (soft failure)
# ---------------------------------------------------------------------------

async def evaluate_section(client: Any, section: Optional[str], text: str, template: str) -> EvaluationResult:
    """Evaluate one section's text with its calibration ``template``."""
    try:
        prompt = build_section_prompt(template, text)
        logger.debug(f"Section prompt for {section}: {prompt}")
        answer = await _complete(client, prompt)
    except Exception as e:
        logger.error(f"Evaluation of section {section} failed: {e}")
        return EvaluationResult(text=SECTION_EVALUATION_FALLBACK, ok=False, error=str(e))
    return EvaluationResult(text=answer)


async def evaluate_aggregate(client: Any, sections: Mapping[str, str]) -> EvaluationResult:
    """Evaluate the coherence of the whole sermon."""
    try:
        prompt = build_aggregate_prompt(sections)
        answer = await _complete(client, prompt)
    except Exception as e:
        logger.error(f"Whole-sermon evaluation failed: {e}")
        return EvaluationResult(text=AGGREGATE_EVALUATION_FALLBACK, ok=False, error=str(e))
    return EvaluationResult(text=answer)


# ---------------------------------------------------------------------------
# Required results (hard failure)
# ---------------------------------------------------------------------------

async def apply_suggestions(
    client: Any,
    section: str,
    initial_prompt: str,
    transcripcion: str,
    evaluacion: str,
) -> str:
    """Ask the model for a rewrite of ``transcripcion`` that follows ``evaluacion``."""
    try:
        prompt = build_suggestions_prompt(section, initial_prompt, transcripcion, evaluacion)
        return await _complete(client, prompt)
    except Exception as e:
        raise ProviderError(f"Could not apply suggestions for {section}: {e}") from e


async def transcribe_with_retry(
    client: Any,
    audio_path: Path,
    max_attempts: int = TRANSCRIPTION_MAX_ATTEMPTS,
    backoff: float = TRANSCRIPTION_BACKOFF_SECONDS,
    model: Optional[str] = None,
) -> str:
    """Speech-to-text for ``audio_path``.

    A failed call is retried after ``attempt * backoff`` seconds, up to
    ``max_attempts`` calls in total; then ``TranscriptionError`` is raised.
    """
    audio_path = Path(audio_path)

    @retry(max_attempts=max_attempts, delay=backoff, linear=True)
    async def _transcribe_once() -> Any:
        with audio_path.open("rb") as audio_file:
            return await client.audio.transcriptions.create(
                file=audio_file,
                model=model or OPENAI_TRANSCRIPTION_MODEL,
            )

    try:
        response = await _transcribe_once()
    except Exception as e:
        raise TranscriptionError(f"Transcription failed after {max_attempts} attempts: {e}") from e
    return getattr(response, "text", "") or ""


async def synthesize_speech(client: Any, model: str, voice: str, text: str) -> bytes:
    """Text-to-speech; returns MP3 bytes."""
    try:
        response = await client.audio.speech.create(model=model, voice=voice, input=text)
    except Exception as e:
        raise ProviderError(f"Speech synthesis failed: {e}") from e
    return response.content
