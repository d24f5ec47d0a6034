"""Translation backend abstractions."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

import httpx

from .errors import (
    TranslationProviderConfigurationError,
    TranslationProviderError,
)
from .fallback import FallbackSynthesizer
from .languages import LanguageResolver, language_name
from .policy import RetryPolicy
from .structures import LanguageSpec

logger = logging.getLogger(__name__)

SEGMENT_SEPARATOR = "<<<SEG>>>"

GTX_URL = "https://translate.googleapis.com/translate_a/single"
GTX_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    ),
    "Accept": "*/*",
    "Referer": "https://translate.google.com/",
}
GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"

# Timeouts, resets and DNS failures; HTTP status errors are not retried.
NETWORK_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)

ANTI_COPY_LANGUAGES = (
    "English",
    "Czech",
    "French",
    "German",
    "Spanish",
    "Russian",
    "Chinese",
    "Japanese",
    "Korean",
    "Portuguese",
    "Italian",
    "Turkish",
)

DIALECT_GUIDANCE = (
    (
        ("Standard",),
        "- DIALECT: Use MODERN STANDARD ARABIC (Fusha).\n"
        "- REGISTER: Formal, precise vocabulary with careful attention to "
        "I'rab (إعراب) and classical syntax.",
    ),
    (
        ("Egyptian", "Colloquial"),
        "- DIALECT: Use EGYPTIAN COLLOQUIAL ARABIC (اللغة العامية المصرية).\n"
        "- REGISTER: Phrase it the way a native Egyptian professional would "
        "say it while keeping the core meaning.",
    ),
)


def fit_length(items: Sequence[str], expected: int) -> List[str]:
    """Pad with empty strings or truncate so ``len(result) == expected``."""

    fitted = list(items[:expected])
    fitted.extend([""] * (expected - len(fitted)))
    return fitted


def dialect_guidance(display_name: str) -> str:
    for keywords, guidance in DIALECT_GUIDANCE:
        if any(keyword in display_name for keyword in keywords):
            return guidance
    return ""


def build_strict_prompt(
    segments: Sequence[str],
    target: LanguageSpec,
    resolver: LanguageResolver,
) -> str:
    """Prompt asking for a joint translation of all segments, one per separator."""

    name = target.display_name
    forbidden = "\n".join(
        f"- FORBIDDEN: If the original text is in {language}, never return "
        f"{language} text. Always translate into {name}."
        for language in ANTI_COPY_LANGUAGES
    )
    guidance = dialect_guidance(name)
    source = language_name(resolver.detect_script(" ".join(segments)))
    return (
        "You are an expert academic and professional translator focused on "
        "contextual meaning and cultural adaptation.\n\n"
        f"TARGET LANGUAGE: {name}\n"
        f"TARGET LANGUAGE CODE: {target.code}\n"
        f"SOURCE LANGUAGE DETECTION: {source}\n"
        + (f"\n{guidance}\n" if guidance else "")
        + "\nRULES:\n"
        f"- Translate ALL text into {name}. Leave nothing in the source language.\n"
        "- Translate meaning, not word for word, with natural native phrasing.\n"
        "- Keep a professional tone and consistent terminology.\n"
        "- Repair broken source phrasing so the translation reads coherently.\n"
        "- Segments may be parts of a larger text; keep them coherent.\n"
        "- Do NOT merge or split segments. Keep the exact order and count.\n"
        "- No commentary and no explanations.\n"
        "- Never copy the original text unchanged.\n"
        f"{forbidden}\n"
        f"- Transliterate untranslatable technical terms into {name} script or "
        "use the closest equivalent.\n\n"
        f"INPUT:\n{SEGMENT_SEPARATOR.join(segments)}\n\n"
        f"OUTPUT:\n(Exactly {len(segments)} segments in {name}, separated by "
        f"{SEGMENT_SEPARATOR})\n"
    )


class TranslationBackend(ABC):
    """Abstract adapter for translation providers."""

    name = "backend"

    @property
    def available(self) -> bool:
        return True

    @abstractmethod
    async def translate_batch(
        self,
        segments: Sequence[str],
        target: LanguageSpec,
    ) -> Optional[List[str]]:
        """Translate ``segments``; ``None`` signals a total provider failure."""

    async def aclose(self) -> None:
        """Release network resources held by the backend."""


class EchoBackend(TranslationBackend):
    """A backend that returns the original text (useful for testing)."""

    name = "echo"

    async def translate_batch(
        self,
        segments: Sequence[str],
        target: LanguageSpec,
    ) -> Optional[List[str]]:
        return list(segments)


class PrimaryLLMBackend(TranslationBackend):
    """Strict-prompt batch translation through an OpenAI-compatible chat model."""

    name = "primary"

    def __init__(
        self,
        client: Any,
        *,
        model: str,
        policy: Optional[RetryPolicy] = None,
        resolver: Optional[LanguageResolver] = None,
        debug: bool = False,
    ) -> None:
        self._client = client
        self.model = model
        self.policy = policy or RetryPolicy()
        self.resolver = resolver or LanguageResolver()
        self.debug = debug

    @property
    def available(self) -> bool:
        return self._client is not None

    async def translate_batch(
        self,
        segments: Sequence[str],
        target: LanguageSpec,
    ) -> Optional[List[str]]:
        if not segments:
            return []
        if not self.available:
            return None

        prompt = build_strict_prompt(segments, target, self.resolver)
        self._log_debug("provider.request.prompt", prompt)
        try:
            content = await self.complete(prompt)
        except (TranslationProviderError, asyncio.TimeoutError) as exc:
            logger.warning("Primary backend failed: %s", str(exc) or type(exc).__name__)
            return None

        parts = [part.strip() for part in content.split(SEGMENT_SEPARATOR)]
        if len(parts) != len(segments):
            logger.info(
                "Primary backend returned %d segments for %d; correcting.",
                len(parts),
                len(segments),
            )
        return fit_length(parts, len(segments))

    async def complete(self, prompt: str) -> str:
        """Send a single prompt and return the model's text response."""

        if not self.available:
            raise TranslationProviderConfigurationError(
                "Primary backend has no configured client."
            )
        return await self.policy.call(
            lambda timeout: self._invoke_model(prompt, timeout=timeout),
            label="primary backend request",
        )

    async def _invoke_model(self, prompt: str, *, timeout: float) -> str:
        """Call the Chat Completions API and return the response text."""

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
            )
        except Exception as exc:  # pragma: no cover - network call
            raise TranslationProviderError(
                f"Translation service temporarily unavailable: {exc}"
            ) from exc
        self._log_debug("provider.response.raw", self._safe_dump_response(response))

        content = self._extract_content(response)
        if content is None:
            raise TranslationProviderError(
                "Translation provider response empty or unrecognised."
            )
        return self._strip_code_fence(content)

    def _extract_content(self, response: Any) -> Optional[str]:
        choices = getattr(response, "choices", None) or []
        for choice in choices:
            message = getattr(choice, "message", None)
            if message is None:
                continue
            message_content = getattr(message, "content", None)
            if isinstance(message_content, list):
                parts: list[str] = []
                for part in message_content:
                    text_value = getattr(part, "text", None)
                    if text_value is None and isinstance(part, dict):
                        text_value = part.get("text")
                    if text_value:
                        parts.append(str(text_value))
                if parts:
                    return "\n".join(parts)
            elif message_content:
                return str(message_content)
        return None

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit full request/response payloads when provider debugging is on."""

        if not self.debug:
            return
        if isinstance(payload, (dict, list)):
            message = json.dumps(payload, ensure_ascii=False, indent=2, default=str)
        else:
            message = str(payload)
        logger.debug("%s:\n%s", label, message)

    def _safe_dump_response(self, response: Any) -> Any:
        """Best-effort conversion of SDK response objects into plain data."""

        dump = getattr(response, "model_dump", None)
        if callable(dump):
            return dump()
        return str(response)

    def _strip_code_fence(self, text: str) -> str:
        """Remove leading/trailing markdown code fences if present."""

        stripped = text.strip()
        if not stripped.startswith("```"):
            return stripped

        first_newline = stripped.find("\n")
        if first_newline == -1:
            return stripped
        body = stripped[first_newline + 1 :]
        closing_index = body.rfind("```")
        if closing_index != -1:
            body = body[:closing_index]
        return body.strip()

    async def aclose(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await close()


def parse_gtx_translation(data: Any) -> str:
    """Join the translated sentence pieces of a ``translate_a/single`` reply."""

    if isinstance(data, dict):
        sentences = data.get("sentences") or []
        return "".join(
            str(sentence.get("trans") or "")
            for sentence in sentences
            if isinstance(sentence, dict)
        )
    if isinstance(data, list) and data and isinstance(data[0], list):
        return "".join(
            part[0]
            for part in data[0]
            if isinstance(part, list) and part and isinstance(part[0], str)
        )
    return ""


def _is_echo(original: str, translated: str) -> bool:
    return not translated or translated.strip() == original.strip()


class SecondaryGTXBackend(TranslationBackend):
    """Per-segment translation through the public translate endpoint.

    Never returns ``None``: a segment that cannot be translated comes back as
    a fallback placeholder.
    """

    name = "secondary"

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = GTX_URL,
        policy: Optional[RetryPolicy] = None,
        synthesizer: Optional[FallbackSynthesizer] = None,
    ) -> None:
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(headers=GTX_HEADERS)
        self.base_url = base_url
        self.policy = policy or RetryPolicy()
        self.synthesizer = synthesizer or FallbackSynthesizer()

    async def translate_batch(
        self,
        segments: Sequence[str],
        target: LanguageSpec,
    ) -> Optional[List[str]]:
        results: List[str] = []
        for segment in segments:
            results.append(await self.translate_segment(segment, target))
        return results

    async def translate_segment(self, segment: str, target: LanguageSpec) -> str:
        try:
            translated = await self.policy.call(
                lambda timeout: self._request(
                    segment, source="auto", target=target.code, timeout=timeout
                ),
                retry_on=NETWORK_ERRORS,
                label="secondary backend request",
            )
        except (httpx.HTTPError, ValueError, asyncio.TimeoutError) as exc:
            logger.warning(
                "Secondary backend failed for segment %.50r: %s",
                segment,
                str(exc) or type(exc).__name__,
            )
            return self.synthesizer.synthesize(segment, target)

        if _is_echo(segment, translated):
            logger.info("Secondary backend echoed the source, retrying with detection.")
            translated = await self._retry_with_detected_source(segment, target.code)

        if _is_echo(segment, translated):
            logger.info("Secondary backend could not translate %.50r", segment)
            return self.synthesizer.synthesize(segment, target)
        return translated

    async def _retry_with_detected_source(self, segment: str, target_code: str) -> str:
        try:
            detected = await self.policy.call(
                lambda timeout: self._detect_source(
                    segment, target=target_code, timeout=timeout
                ),
                label="secondary source detection",
            )
            if not detected or detected == target_code:
                return ""
            return await self.policy.call(
                lambda timeout: self._request(
                    segment, source=detected, target=target_code, timeout=timeout
                ),
                label="secondary backend request",
            )
        except (httpx.HTTPError, ValueError, asyncio.TimeoutError) as exc:
            logger.warning("Source detection retry failed: %s", str(exc) or type(exc).__name__)
            return ""

    def _params(self, segment: str, *, source: str, target: str) -> dict[str, str]:
        return {"client": "gtx", "sl": source, "tl": target, "dt": "t", "q": segment}

    async def _request(
        self,
        segment: str,
        *,
        source: str,
        target: str,
        timeout: float,
    ) -> str:
        response = await self.client.get(
            self.base_url,
            params=self._params(segment, source=source, target=target),
            timeout=timeout,
        )
        response.raise_for_status()
        return parse_gtx_translation(response.json())

    async def _detect_source(
        self,
        segment: str,
        *,
        target: str,
        timeout: float,
    ) -> Optional[str]:
        params = self._params(segment, source="auto", target=target)
        params["dj"] = "1"
        response = await self.client.get(self.base_url, params=params, timeout=timeout)
        response.raise_for_status()
        data = response.json()
        if isinstance(data, dict) and isinstance(data.get("src"), str):
            return data["src"]
        return None

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


PLACEHOLDER_KEYS = frozenset({"", "YOUR_KEY_HERE"})


def _credential(value: Optional[str]) -> bool:
    return bool(value) and value.strip() not in PLACEHOLDER_KEYS


def has_primary_credential(settings: Any) -> bool:
    """Whether settings carry a usable credential for the selected provider."""

    provider = getattr(settings, "LLM_PROVIDER", "gemini")
    if provider == "azure_openai":
        return all(
            _credential(getattr(settings, name, None))
            for name in (
                "AZURE_OPENAI_API_KEY",
                "AZURE_OPENAI_ENDPOINT",
                "AZURE_OPENAI_API_VERSION",
                "AZURE_OPENAI_DEPLOYMENT_NAME",
            )
        )
    if provider == "openai":
        return _credential(getattr(settings, "OPENAI_API_KEY", None))
    return _credential(getattr(settings, "GEMINI_API_KEY", None))


def _import_openai():
    try:
        import openai  # type: ignore
    except ImportError as exc:  # pragma: no cover - import guard
        raise TranslationProviderConfigurationError(
            "OpenAI Python SDK not installed. Install with `pip install openai`."
        ) from exc
    return openai


def build_primary_backend(
    settings: Any,
    *,
    policy: Optional[RetryPolicy] = None,
    debug: bool = False,
) -> Optional[PrimaryLLMBackend]:
    """Create the primary backend from settings, or ``None`` without a credential."""

    if not has_primary_credential(settings):
        return None

    openai = _import_openai()
    provider = settings.LLM_PROVIDER
    timeout = policy.timeout_seconds if policy else RetryPolicy().timeout_seconds

    if provider == "azure_openai":
        client = openai.AsyncAzureOpenAI(
            api_key=settings.AZURE_OPENAI_API_KEY,
            api_version=settings.AZURE_OPENAI_API_VERSION,
            azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
            timeout=timeout,
        )
        model = settings.INTERLINEAR_MODEL or settings.AZURE_OPENAI_DEPLOYMENT_NAME
    elif provider == "openai":
        client = openai.AsyncOpenAI(api_key=settings.OPENAI_API_KEY, timeout=timeout)
        model = settings.INTERLINEAR_MODEL or "gpt-5-mini"
    else:
        client = openai.AsyncOpenAI(
            api_key=settings.GEMINI_API_KEY,
            base_url=settings.GEMINI_BASE_URL or GEMINI_OPENAI_BASE_URL,
            timeout=timeout,
        )
        model = settings.INTERLINEAR_MODEL or "gemini-2.0-flash"

    return PrimaryLLMBackend(client, model=model, policy=policy, debug=debug)
