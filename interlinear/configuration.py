"""Prepper-backed configuration loader for Interlinear.

Layers are merged in order: discovered YAML files, the ``.env`` file in the
app directory, then the process environment. A missing primary credential is
valid and leaves the pipeline on the secondary backend.
"""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Iterator, Literal, Mapping, Optional, Sequence, Tuple

import httpx
from dotenv import dotenv_values
from prepper import (
    Field,
    IoError,
    SchemaError,
    SchemaModel,
    ValidationError,
    model_validator,
)
from prepper.config import ConfigInstance
from prepper.loaders import _parse_file, _path_to_source, discover_file_paths
from prepper.merge import merge_layer
from prepper.provenance import ProvenanceRecorder

from .errors import TranslationProviderConfigurationError
from .fallback import FallbackSynthesizer
from .languages import LanguageResolver
from .policy import RetryPolicy
from .providers import (
    GTX_URL,
    SecondaryGTXBackend,
    build_primary_backend,
    has_primary_credential,
)
from .translator import PipelineConfig, TranslationRunner

APP_NAME = "Interlinear"

PROVIDERS = ("gemini", "openai", "azure_openai")
PROVIDER_SYNONYMS = {
    "azure_open_ai": "azure_openai",
    "azureopenai": "azure_openai",
    "azure": "azure_openai",
    "google": "gemini",
    "google_gemini": "gemini",
}
AZURE_KEYS = (
    "AZURE_OPENAI_API_KEY",
    "AZURE_OPENAI_ENDPOINT",
    "AZURE_OPENAI_API_VERSION",
    "AZURE_OPENAI_DEPLOYMENT_NAME",
)
POSITIVE_KEYS = ("INTERLINEAR_REQUEST_TIMEOUT", "INTERLINEAR_RETRY_TIMEOUT")
NON_NEGATIVE_KEYS = (
    "INTERLINEAR_BACKOFF_SECONDS",
    "INTERLINEAR_SEGMENT_RETRY_DELAY",
    "INTERLINEAR_BATCH_DELAY",
)

Layer = Tuple[Mapping[str, Any], str, str]


class InterlinearConfig(SchemaModel):
    """Every setting the pipeline reads, with its default."""

    LLM_PROVIDER: Literal["gemini", "openai", "azure_openai"] = Field(
        default="gemini",
        description="Large language model behind the primary backend.",
    )
    GEMINI_API_KEY: str | None = Field(default=None, secret=True)
    GEMINI_BASE_URL: str | None = Field(default=None)
    OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    AZURE_OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    AZURE_OPENAI_ENDPOINT: str | None = Field(default=None)
    AZURE_OPENAI_API_VERSION: str | None = Field(default=None)
    AZURE_OPENAI_DEPLOYMENT_NAME: str | None = Field(default=None)
    INTERLINEAR_MODEL: str | None = Field(
        default=None,
        description="Overrides the provider's default model or deployment.",
    )
    INTERLINEAR_PROVIDER_DEBUG: bool = Field(default=False)
    INTERLINEAR_REQUEST_TIMEOUT: float = Field(default=10.0)
    INTERLINEAR_RETRY_TIMEOUT: float = Field(default=15.0)
    INTERLINEAR_BACKOFF_SECONDS: float = Field(default=2.0)
    INTERLINEAR_SEGMENT_RETRY_DELAY: float = Field(default=0.5)
    INTERLINEAR_BATCH_DELAY: float = Field(default=0.3)
    INTERLINEAR_GTX_URL: str = Field(default=GTX_URL)

    @model_validator(mode="before")
    def _normalise_provider(data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        raw_value = data.get("LLM_PROVIDER")
        if isinstance(raw_value, str):
            key = raw_value.strip().lower().replace("-", "_")
            key = PROVIDER_SYNONYMS.get(key, key)
            data["LLM_PROVIDER"] = key if key in PROVIDERS else "gemini"
        return data


def _yaml_layers(app_dir: Path) -> Iterator[Layer]:
    for path, label in discover_file_paths(
        APP_NAME, "yaml", app_dir=app_dir, extra_paths=None
    ):
        parsed = _parse_file(path, "yaml")
        if not isinstance(parsed, Mapping):
            raise IoError(f"{path}: expected a mapping at the root.")
        yield parsed, _path_to_source(label, "yaml", path), "file"


def _env_layers(app_dir: Path, allowed: Iterable[str]) -> Iterator[Layer]:
    """One single-key layer per known setting, ``.env`` before the process."""

    known = set(allowed)
    sources = []
    dotenv_path = app_dir / ".env"
    if dotenv_path.exists():
        sources.append((".env", dotenv_values(dotenv_path)))
    sources.append(("process", dict(os.environ)))

    for prefix, values in sources:
        for key in sorted(known.intersection(values)):
            value = values[key]
            if isinstance(value, str):
                yield {key: value}, f"env:{prefix}:{key}", "env"


def _collect(app_dir: Path, provenance: ProvenanceRecorder) -> dict[str, Any]:
    combined: dict[str, Any] = {}
    allowed = InterlinearConfig.__field_infos__.keys()
    for values, source, layer in (*_yaml_layers(app_dir), *_env_layers(app_dir, allowed)):
        merge_layer(combined, values, provenance=provenance, source=source, layer=layer)
    return combined


def _bullets(heading: str, lines: Sequence[str]) -> str:
    return heading + "\n" + "\n".join(f"- {line}" for line in lines)


def _validation_issues(entries: Sequence[dict[str, Any]]) -> list[str]:
    issues: list[str] = []
    for entry in entries:
        path = entry.get("path") or []
        if isinstance(path, (list, tuple)):
            location = ".".join(str(part) for part in path if part not in {None, ""})
        else:
            location = str(path)
        message = str(entry.get("message") or entry.get("msg") or "Invalid value")
        if location:
            message = f"{location}: {message}"
        if entry.get("source"):
            message = f"{message} (source: {entry['source']})"
        issues.append(message)
    return issues


def _check_settings(settings: InterlinearConfig) -> list[str]:
    """Rule violations that the schema types cannot express."""

    issues: list[str] = []
    if settings.LLM_PROVIDER == "azure_openai":
        missing = [name for name in AZURE_KEYS if not getattr(settings, name)]
        # No Azure key at all only disables the primary backend.
        if missing and len(missing) < len(AZURE_KEYS):
            issues.append(
                "Azure OpenAI is partially configured; also set "
                f"{', '.join(missing)}."
            )
    issues.extend(
        f"{name} must be greater than zero."
        for name in POSITIVE_KEYS
        if getattr(settings, name) <= 0
    )
    issues.extend(
        f"{name} must not be negative."
        for name in NON_NEGATIVE_KEYS
        if getattr(settings, name) < 0
    )
    return issues


@lru_cache(maxsize=1)
def _load_config_instance(app_dir: Path | None = None) -> ConfigInstance:
    """Load configuration layers once and cache the immutable instance."""

    provenance = ProvenanceRecorder()
    try:
        combined = _collect(app_dir or Path.cwd(), provenance)
        model = InterlinearConfig.validate(combined, provenance=provenance)
    except IoError as exc:
        raise TranslationProviderConfigurationError(
            f"Configuration files could not be read: {exc}"
        ) from exc
    except SchemaError as exc:
        raise TranslationProviderConfigurationError(
            f"Configuration schema error: {exc}"
        ) from exc
    except ValidationError as exc:
        raise TranslationProviderConfigurationError(
            _bullets("Configuration validation errors detected:", _validation_issues(exc.to_dict()))
        ) from exc

    issues = _check_settings(model)
    if issues:
        raise TranslationProviderConfigurationError(
            _bullets("Configuration validation errors detected:", issues)
        )

    return ConfigInstance(
        model=model,
        provenance=provenance,
        env_prefix=None,
        schema_cls=InterlinearConfig,
    )


def get_config(app_dir: Path | None = None) -> ConfigInstance:
    return _load_config_instance(app_dir=app_dir)


def get_settings(app_dir: Path | None = None) -> InterlinearConfig:
    """Typed settings for the given app directory (defaults to the cwd)."""

    return get_config(app_dir=app_dir).model()


def build_retry_policy(settings: Any) -> RetryPolicy:
    """Retry policy from the timeout and delay settings."""

    return RetryPolicy(
        timeout_seconds=float(settings.INTERLINEAR_REQUEST_TIMEOUT),
        retry_timeout_seconds=float(settings.INTERLINEAR_RETRY_TIMEOUT),
        backoff_seconds=float(settings.INTERLINEAR_BACKOFF_SECONDS),
        segment_retry_delay=float(settings.INTERLINEAR_SEGMENT_RETRY_DELAY),
        batch_delay=float(settings.INTERLINEAR_BATCH_DELAY),
    )


def build_runner(
    settings: Any,
    config: Optional[PipelineConfig] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
) -> TranslationRunner:
    """Runner with both backends built from settings; it closes them itself.

    ``config.has_primary_credential`` is taken from the settings.
    """

    policy = build_retry_policy(settings)
    resolver = LanguageResolver()
    synthesizer = FallbackSynthesizer(resolver)
    primary = build_primary_backend(
        settings,
        policy=policy,
        debug=bool(settings.INTERLINEAR_PROVIDER_DEBUG),
    )
    secondary = SecondaryGTXBackend(
        client=http_client,
        base_url=settings.INTERLINEAR_GTX_URL or GTX_URL,
        policy=policy,
        synthesizer=synthesizer,
    )
    config = dataclasses.replace(
        config or PipelineConfig(),
        has_primary_credential=has_primary_credential(settings),
    )
    return TranslationRunner(
        config,
        primary=primary,
        secondary=secondary,
        synthesizer=synthesizer,
        resolver=resolver,
        policy=policy,
        owns_backends=True,
    )


__all__ = [
    "InterlinearConfig",
    "build_retry_policy",
    "build_runner",
    "get_config",
    "get_settings",
    "has_primary_credential",
]
