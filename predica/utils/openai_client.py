"""OpenAI client factory for the backend and local scripts.

Run ``python -m predica.utils.openai_client`` to check that the configured
key can reach the chat completion API.
"""

import asyncio
import os
from typing import Optional

import openai
from dotenv import load_dotenv

from utils.logging import get_logger

# Load environment variables from .env file (for local development)
load_dotenv()

logger = get_logger(__name__)


def get_openai_client(api_key: Optional[str] = None) -> openai.AsyncOpenAI:
    """Initialize and return an async OpenAI client.

    Returns:
        openai.AsyncOpenAI: Configured client

    Raises:
        ValueError: If no API key is passed or found in OPENAI_API_KEY
    """
    api_key = api_key or os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise ValueError(
            "OpenAI API key not found. Set the OPENAI_API_KEY environment variable "
            "(or add it to .env)."
        )
    return openai.AsyncOpenAI(api_key=api_key)


async def check_connection(model: str = "gpt-4-turbo") -> str:
    """Send a one-line chat request and return the model's reply."""
    client = get_openai_client()
    response = await client.chat.completions.create(
        model=model,
        messages=[{"role": "user", "content": "Hola, esto es una prueba de conexión"}],
    )
    return response.choices[0].message.content


def main() -> None:
    try:
        reply = asyncio.run(check_connection())
    except (ValueError, openai.OpenAIError) as e:
        logger.error(f"Could not reach OpenAI: {e}")
        raise SystemExit(1)
    logger.info(f"Connection OK. Reply: {reply}")


if __name__ == "__main__":
    main()
