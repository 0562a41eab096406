"""
Generation providers using LLMs.

Each provider takes a prompt, an optional system instruction and an optional
image, and returns the model's text. Errors from the underlying API propagate;
callers decide whether a failure is surfaced or logged and abandoned.
"""

import os

from .base import ImageBlob, get_registry


class GeminiGeneration:
    """
    Generation provider using Google's Gemini API.

    Images are sent as inline bytes parts.
    Default model is gemini-2.5-flash.
    """

    def __init__(
        self,
        model: str = "gemini-2.5-flash",
        api_key: str | None = None,
    ):
        from .gemini_client import create_gemini_client

        self.model = model
        self._client = create_gemini_client(api_key)

    def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        image: ImageBlob | None = None,
    ) -> str | None:
        """Generate text using Google Gemini."""
        from google.genai import types

        contents: list = []
        if image is not None:
            contents.append(types.Part.from_bytes(data=image.data, mime_type=image.mime_type))
        contents.append(prompt)

        config = types.GenerateContentConfig(system_instruction=system) if system else None
        response = self._client.models.generate_content(
            model=self.model,
            contents=contents,
            config=config,
        )
        return response.text


class OpenAIGeneration:
    """
    Generation provider using OpenAI's chat API.

    Requires: REFLECTIONS_OPENAI_API_KEY or OPENAI_API_KEY environment variable.
    Images are sent as base64 data URLs.
    """

    def __init__(
        self,
        model: str = "gpt-4.1-mini",
        api_key: str | None = None,
        max_tokens: int = 2048,
    ):
        try:
            from openai import OpenAI
        except ImportError:
            raise RuntimeError("OpenAIGeneration requires 'openai' library")

        self.model = model
        self.max_tokens = max_tokens

        key = api_key or os.environ.get("REFLECTIONS_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY")
        if not key:
            raise ValueError(
                "OpenAI API key required. Set REFLECTIONS_OPENAI_API_KEY or OPENAI_API_KEY"
            )

        self._client = OpenAI(api_key=key)

        # GPT-5+ and reasoning models take max_completion_tokens and no temperature
        self._new_api = self.model.startswith(("gpt-5", "o3", "o4"))

    def _completion_kwargs(self) -> dict:
        """Return model-appropriate kwargs for token limit and temperature."""
        if self._new_api:
            return {"max_completion_tokens": self.max_tokens}
        return {"max_tokens": self.max_tokens, "temperature": 0.4}

    def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        image: ImageBlob | None = None,
    ) -> str | None:
        """Generate text using OpenAI."""
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        if image is not None:
            data_url = f"data:{image.mime_type};base64,{image.to_base64()}"
            messages.append({
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": data_url}},
                ],
            })
        else:
            messages.append({"role": "user", "content": prompt})

        response = self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            **self._completion_kwargs(),
        )
        content = response.choices[0].message.content
        return content.strip() if content else None


class AnthropicGeneration:
    """
    Generation provider using Anthropic's Claude API.

    Requires: ANTHROPIC_API_KEY environment variable (or api_key parameter).
    Images are sent as base64 source blocks.
    """

    def __init__(
        self,
        model: str = "claude-haiku-4-5-20251001",
        api_key: str | None = None,
        max_tokens: int = 2048,
    ):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise RuntimeError("AnthropicGeneration requires 'anthropic' library")

        self.model = model
        self.max_tokens = max_tokens

        key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not key:
            raise ValueError("Anthropic API key required. Set ANTHROPIC_API_KEY")

        self.client = Anthropic(api_key=key)

    def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        image: ImageBlob | None = None,
    ) -> str | None:
        """Generate text using Anthropic Claude."""
        if image is not None:
            content = [
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": image.mime_type,
                        "data": image.to_base64(),
                    },
                },
                {"type": "text", "text": prompt},
            ]
        else:
            content = prompt

        kwargs = {"system": system} if system else {}
        # The SDK retries rate limits itself; anything else propagates
        response = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": content}],
            **kwargs,
        )
        if response.content:
            return response.content[0].text
        return None


class OllamaGeneration:
    """
    Generation provider using Ollama's local API.

    Respects OLLAMA_HOST env var (default: http://localhost:11434).
    Use a multimodal model (llava, llama3.2-vision) for image enrichment.
    """

    def __init__(
        self,
        model: str = "llava",
        base_url: str | None = None,
    ):
        self.model = model
        host = base_url or os.environ.get("OLLAMA_HOST") or "http://localhost:11434"
        if not host.startswith(("http://", "https://")):
            host = f"http://{host}"
        self.base_url = host.rstrip("/")

    def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        image: ImageBlob | None = None,
    ) -> str | None:
        """Generate text using Ollama."""
        import requests

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        user_message = {"role": "user", "content": prompt}
        if image is not None:
            user_message["images"] = [image.to_base64()]
        messages.append(user_message)

        response = requests.post(
            f"{self.base_url}/api/chat",
            json={
                "model": self.model,
                "messages": messages,
                "stream": False,
            },
            timeout=(10, 300),  # (connect, read); generation can be slow
        )
        if not response.ok:
            detail = response.text[:200] if response.text else ""
            raise RuntimeError(
                f"Ollama generate failed (model={self.model}): "
                f"HTTP {response.status_code} from {self.base_url}. {detail}"
            )
        return response.json()["message"]["content"].strip()


class PassthroughGeneration:
    """
    Generation provider with no model behind it.

    Always returns None, so enrichment and synthesis never succeed.
    Useful for offline use and tests.
    """

    def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        image: ImageBlob | None = None,
    ) -> str | None:
        return None


# Register providers
_registry = get_registry()
_registry.register_generation("gemini", GeminiGeneration)
_registry.register_generation("openai", OpenAIGeneration)
_registry.register_generation("anthropic", AnthropicGeneration)
_registry.register_generation("ollama", OllamaGeneration)
_registry.register_generation("passthrough", PassthroughGeneration)
