"""ffmpeg wrapper turning browser recordings into 16 kHz mono WAV for STT."""

import asyncio
from pathlib import Path

from config import FFMPEG_BINARY, MIN_CONVERTED_AUDIO_BYTES
from utils.error_handler import AudioConversionError, handle_exceptions
from utils.logging import get_logger, log_function_call

logger = get_logger(__name__)


def ffmpeg_command(input_path: Path, output_path: Path) -> list:
    return [
        FFMPEG_BINARY,
        "-y",
        "-i", str(input_path),
        "-ar", "16000",
        "-ac", "1",
        "-b:a", "16k",
        str(output_path),
    ]


@log_function_call()
async def convert_to_wav(input_path: Path, output_path: Path) -> Path:
    """Run ffmpeg as a subprocess; raise ``AudioConversionError`` on failure."""
    try:
        process = await asyncio.create_subprocess_exec(
            *ffmpeg_command(input_path, output_path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise AudioConversionError(f"{FFMPEG_BINARY} not found on PATH") from e

    _, stderr = await process.communicate()
    if process.returncode != 0:
        tail = stderr.decode("utf-8", errors="replace")[-500:]
        raise AudioConversionError(f"ffmpeg exited with {process.returncode}: {tail}")
    return Path(output_path)


def validate_converted(path: Path, min_bytes: int = MIN_CONVERTED_AUDIO_BYTES) -> int:
    """Check the WAV exists and is big enough to hold audio; return its size."""
    path = Path(path)
    if not path.exists():
        raise AudioConversionError("El archivo convertido no existe.")
    size = path.stat().st_size
    logger.info(f"WAV generated ({size} bytes): {path.name}")
    if size < min_bytes:
        raise AudioConversionError(
            "El archivo convertido es demasiado pequeño, es posible que la conversión fallara."
        )
    return size


@handle_exceptions(OSError, default_value=False)
def _remove(path: Path) -> bool:
    if path.exists():
        path.unlink()
    return True


def cleanup_files(*paths: Path) -> None:
    """Best-effort removal of temporary uploads; failures are only logged."""
    for path in paths:
        if path is not None:
            _remove(Path(path))
