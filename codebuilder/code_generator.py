"""
Code Generator

Forwards prompts to the text-generation provider. Falls back to a
deterministic per-language stub when the provider is not configured.
"""

import logging
from typing import Any, Callable, List, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

CONTEXT_PREVIEW_CHARS = 120


class GenerationError(RuntimeError):
    """The provider call failed."""


class UnexpectedPayloadError(GenerationError):
    """The provider answered with a body none of the known shapes match."""


# --- Provider response shapes ---

def _completion_text(data: Any) -> Optional[str]:
    """{"choices": [{"text": ...}]}"""
    if isinstance(data, dict):
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            text = choices[0].get("text")
            if isinstance(text, str) and text:
                return text
    return None


def _chat_content(data: Any) -> Optional[str]:
    """{"choices": [{"message": {"content": ...}}]}"""
    if isinstance(data, dict):
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message")
            if isinstance(message, dict):
                content = message.get("content")
                if isinstance(content, str) and content:
                    return content
    return None


def _direct_code(data: Any) -> Optional[str]:
    """{"code": ...}"""
    if isinstance(data, dict):
        code = data.get("code")
        if isinstance(code, str) and code:
            return code
    return None


def _plain_text(data: Any) -> Optional[str]:
    if isinstance(data, str):
        return data
    return None


RESPONSE_SHAPES: List[Tuple[str, Callable[[Any], Optional[str]]]] = [
    ("completion", _completion_text),
    ("chat", _chat_content),
    ("direct", _direct_code),
    ("plain", _plain_text),
]


def decode_generation(data: Any) -> str:
    """
    Map a provider response body to generated code.

    Raises:
        UnexpectedPayloadError: If no known shape matches
    """
    for shape, extract in RESPONSE_SHAPES:
        code = extract(data)
        if code is not None:
            logger.debug(f"Provider response matched '{shape}' shape")
            return code
    raise UnexpectedPayloadError("Provider returned unexpected payload.")


def stub_code(prompt: str, language: str, context: Optional[str] = None) -> str:
    """Placeholder program returned when no provider is configured."""
    header = f"// Generated stub for: {prompt}\n"
    preview = (context or "")[:CONTEXT_PREVIEW_CHARS]

    if language == "javascript":
        return (
            header
            + "function main() {\n  console.log('Hello from stub generator');\n}\n\n"
            + f"// Context (truncated):\n/* {preview} */\n\nmain();\n"
        )
    if language == "python":
        return (
            header
            + "def main():\n    print('Hello from stub generator')\n\n"
            + f"# Context (truncated):\n# {preview}\n\n"
            + "if __name__ == '__main__':\n    main()\n"
        )
    if language == "java":
        return (
            header
            + "public class Main {\n  public static void main(String[] args) {\n"
            + '    System.out.println("Hello from stub generator");\n  }\n}\n'
            + f"// Context: {preview}\n"
        )
    return header + (f"/* Context: {preview} */\n" if context else "") + "// TODO: implement\n"


class CodeGenerator:
    """
    Client for the text-generation provider.

    Requires both an API key and a base URL; with either missing every call
    returns stub code.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or None
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self.client = (
            httpx.AsyncClient(timeout=timeout, transport=transport)
            if self.configured else None
        )

        if self.configured:
            logger.info(f"Code generator using provider: {self.base_url}")
        else:
            logger.warning("Code generator in STUB mode (GLM_API_KEY / GLM_API_BASE not set)")

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.base_url)

    async def generate(self, prompt: str, language: str, context: Optional[str] = None) -> str:
        """
        Generate code for a prompt.

        Args:
            prompt: What to build
            language: Target language, e.g. 'python'
            context: Optional surrounding code or notes

        Returns:
            Generated source text

        Raises:
            GenerationError: If the provider request fails
            UnexpectedPayloadError: If the provider response has an unknown shape
        """
        if not self.configured:
            return stub_code(prompt, language, context)

        payload = {
            "prompt": f"Generate {language} code for: {prompt}\n\nContext: {context or ''}",
            "max_tokens": 1000,
            "temperature": 0.7,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = await self.client.post(
                f"{self.base_url}/generate",
                json=payload,
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            message = self._provider_error(e.response) or str(e)
            logger.error(f"Provider returned {e.response.status_code}: {message}")
            raise GenerationError(f"Error generating code: {message}") from e
        except httpx.HTTPError as e:
            logger.error(f"Provider request failed: {e}")
            raise GenerationError(f"Error generating code: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = response.text

        return decode_generation(data)

    @staticmethod
    def _provider_error(response: httpx.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return None

    async def close(self):
        """Close the HTTP client."""
        if self.client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
