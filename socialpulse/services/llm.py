from typing import Any
import json
from openai import OpenAI
from socialpulse.config import settings

class LLMUnavailableError(RuntimeError):
    pass

class LLMResponseError(RuntimeError):
    pass

def get_client():
    if not settings.openai_api_key:
        raise LLMUnavailableError("OPENAI_API_KEY is missing. Please set it in your environment or .env file.")
    return OpenAI(api_key=settings.openai_api_key)

def complete_json(
    system: str,
    prompt: str,
    model: str | None = None,
    temperature: float = 0.2,
    max_tokens: int = 1000,
) -> dict[str, Any]:
    """Runs one chat completion in JSON mode and returns the decoded object."""
    client = get_client()

    response = client.chat.completions.create(
        model=model or settings.openai_default_model,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": prompt}
        ],
        temperature=temperature,
        max_tokens=max_tokens,
        response_format={"type": "json_object"}
    )

    content = response.choices[0].message.content if response.choices else None
    if not content:
        raise LLMResponseError("Empty response from OpenAI")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise LLMResponseError(f"OpenAI returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise LLMResponseError("OpenAI returned a non-object JSON payload")
    return data
