"""
adcraft.core.config - Configuration Management
================================================

This module provides the configuration system for AdCraft. Configuration
can be loaded from multiple sources with the following priority (highest first):

    1. Explicit constructor arguments
    2. Environment variables (prefixed with ADCRAFT_)
    3. YAML configuration file (adcraft.yaml)
    4. Default values defined in the models below

Architecture Context:
    The top-level AdCraftConfig is created once and handed to the AdCraft
    facade, which passes each section to the component that owns it:

        AdCraftConfig
            ├── ResilienceConfig  → CircuitBreakerRegistry, ErrorHandler
            ├── BudgetConfig      → BudgetGuard
            ├── PipelineConfig    → SessionManager, HandoffValidator
            └── GenerationConfig  → generation provider factory

Usage:
    # Load from environment variables:
    config = AdCraftConfig()

    # Load from YAML file:
    config = load_config("adcraft.yaml")

    # Explicit overrides:
    config = AdCraftConfig(budget=BudgetConfig(total_budget=50.0))

Environment Variables:
    ADCRAFT_LOG_LEVEL=DEBUG
    ADCRAFT_ENVIRONMENT=prod
    ADCRAFT_RESILIENCE__FAILURE_THRESHOLD=3
    ADCRAFT_BUDGET__TOTAL_BUDGET=150
    ADCRAFT_PIPELINE__MAX_CONCURRENT_GENERATIONS=2
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from adcraft.core.exceptions import ConfigurationError


# =============================================================================
# Resilience Configuration
# =============================================================================
# Controls the circuit breakers and the retry loop of the ErrorHandler.
# Defaults match the production behaviour: 5 failures open a breaker for 60s,
# retries run 3 times with a 1s delay.
# =============================================================================
class ResilienceConfig(BaseModel):
    """Configuration for circuit breakers, retries and error history.

    Attributes:
        failure_threshold: Consecutive failures that open a closed breaker.
        recovery_timeout: Seconds an open breaker blocks calls before the
            next check lets a single trial call through.
        max_retries: Retry attempts for a RETRY resolution.
        retry_delay: Base delay in seconds between retry attempts.
        backoff_multiplier: 1.0 keeps delays fixed, >1.0 grows them
            exponentially per attempt.
        history_limit: Size of the in-process error history ring buffer.
        recent_errors: How many records the health snapshot reports.
        services: Service names that get a breaker at startup.
    """

    failure_threshold: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Consecutive failures before a breaker opens",
    )
    recovery_timeout: float = Field(
        default=60.0,
        ge=0.0,
        description="Seconds an open breaker rejects calls",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retry attempts for retryable failures",
    )
    retry_delay: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Base delay between retries in seconds",
    )
    backoff_multiplier: float = Field(
        default=1.0,
        ge=1.0,
        le=10.0,
        description="Delay multiplier per attempt (1.0 = fixed delay)",
    )
    history_limit: int = Field(
        default=1000,
        ge=10,
        description="Maximum ErrorRecords kept in memory",
    )
    recent_errors: int = Field(
        default=10,
        ge=1,
        le=100,
        description="ErrorRecords included in health snapshots",
    )
    services: list[str] = Field(
        default=["imagen", "storage", "firestore", "gemini", "vertex-ai", "veo"],
        description="Services with a breaker created at startup",
    )


# =============================================================================
# Budget Configuration
# =============================================================================
class BudgetConfig(BaseModel):
    """Configuration for the per-session cost budget.

    Attributes:
        total_budget: Hard ceiling on cumulative spend per session (USD).
        per_operation_cap: Hard ceiling on any single paid operation (USD).
        warning_threshold: Fraction of the budget that raises a warning alert.
        critical_threshold: Fraction of the budget that raises a critical alert.
    """

    total_budget: float = Field(
        default=300.0,
        gt=0,
        description="Total budget per session in USD",
    )
    per_operation_cap: float = Field(
        default=5.0,
        gt=0,
        description="Maximum cost of a single paid operation in USD",
    )
    warning_threshold: float = Field(
        default=0.75,
        gt=0,
        le=1.0,
        description="Budget fraction that triggers a warning alert",
    )
    critical_threshold: float = Field(
        default=0.90,
        gt=0,
        le=1.0,
        description="Budget fraction that triggers a critical alert",
    )


# =============================================================================
# Pipeline Configuration
# =============================================================================
class PipelineConfig(BaseModel):
    """Configuration for the session state machine and handoffs.

    Attributes:
        max_concurrent_generations: Active generations allowed per session.
            Requests over the cap are rejected, never queued.
        confidence_threshold: Upstream confidence below this value adds a
            handoff warning.
        max_assets_per_session: Upper bound on generated assets per session.
        default_locale: Locale used when a request does not name one.
    """

    max_concurrent_generations: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Concurrent generation operations per session",
    )
    confidence_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum confidence before a handoff warning is added",
    )
    max_assets_per_session: int = Field(
        default=50,
        ge=1,
        description="Maximum generated assets per session",
    )
    default_locale: Literal["en", "ja"] = Field(
        default="en",
        description="Default user-facing locale",
    )


# =============================================================================
# Generation Configuration
# =============================================================================
class GenerationConfig(BaseModel):
    """Configuration for the external generation capability.

    Supported Providers:
        - "mock": in-process provider for development and tests

    Attributes:
        provider: Which generation provider implementation to build.
        image_model: Default image model. Fallbacks step down from here.
        default_quality: Default image quality tier.
        video_duration: Default video length in seconds.
        api_key: Credentials for real providers (unused by mock).
    """

    provider: str = Field(
        default="mock",
        description="Generation provider name",
    )
    image_model: str = Field(
        default="imagen-4",
        description="Default image generation model",
    )
    default_quality: Literal["draft", "standard", "high", "premium"] = Field(
        default="standard",
        description="Default image quality tier",
    )
    video_duration: int = Field(
        default=15,
        ge=5,
        le=60,
        description="Default video duration in seconds",
    )
    api_key: Optional[str] = Field(
        default=None,
        description="API key for real providers (None for mock)",
    )


# =============================================================================
# Main Configuration
# =============================================================================
# Environment Variable Mapping:
#   ADCRAFT_LOG_LEVEL                      → config.log_level
#   ADCRAFT_RESILIENCE__FAILURE_THRESHOLD  → config.resilience.failure_threshold
#   ADCRAFT_BUDGET__TOTAL_BUDGET           → config.budget.total_budget
# =============================================================================
class AdCraftConfig(BaseSettings):
    """Top-level configuration for AdCraft.

    Attributes:
        environment: Deployment environment.
        log_level: Logging level for structlog output.
        json_logs: Render logs as JSON lines instead of the console renderer.
        resilience: Breaker/retry configuration (see ResilienceConfig).
        budget: Cost budget configuration (see BudgetConfig).
        pipeline: Session/handoff configuration (see PipelineConfig).
        generation: Generation provider configuration (see GenerationConfig).

    Example:
        >>> config = AdCraftConfig(
        ...     environment="dev",
        ...     resilience=ResilienceConfig(retry_delay=0.0),
        ... )
    """

    # -------------------------------------------------------------------------
    # General Settings
    # -------------------------------------------------------------------------
    environment: Literal["dev", "staging", "prod"] = Field(
        default="dev",
        description="Deployment environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    json_logs: bool = Field(
        default=False,
        description="Emit JSON log lines (True) or console output (False)",
    )

    # -------------------------------------------------------------------------
    # Nested Configurations
    # -------------------------------------------------------------------------
    resilience: ResilienceConfig = Field(
        default_factory=ResilienceConfig,
        description="Circuit breaker and retry configuration",
    )
    budget: BudgetConfig = Field(
        default_factory=BudgetConfig,
        description="Per-session budget configuration",
    )
    pipeline: PipelineConfig = Field(
        default_factory=PipelineConfig,
        description="Session state machine configuration",
    )
    generation: GenerationConfig = Field(
        default_factory=GenerationConfig,
        description="Generation provider configuration",
    )

    model_config = {
        "env_prefix": "ADCRAFT_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }


# =============================================================================
# Configuration Loader
# =============================================================================
def load_config(path: Optional[str] = None) -> AdCraftConfig:
    """Load AdCraft configuration from a YAML file and/or environment variables.

    Args:
        path: Path to a YAML configuration file. If None, looks for
            'adcraft.yaml' in the current directory, and falls back to
            defaults plus environment variables when it is absent.

    Returns:
        A fully validated AdCraftConfig instance.

    Raises:
        FileNotFoundError: If an explicit path is provided but doesn't exist.
        ConfigurationError: If the YAML file cannot be parsed.

    Example:
        >>> config = load_config("adcraft.yaml")
    """
    if path is None:
        default_path = Path("adcraft.yaml")
        if default_path.exists():
            path = str(default_path)

    yaml_data: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(config_path) as f:
            try:
                raw_data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigurationError(
                    message=f"Invalid YAML in {path}",
                    details={"path": path, "error": str(exc)},
                ) from exc
            if isinstance(raw_data, dict):
                yaml_data = raw_data

    return AdCraftConfig(**yaml_data)


def get_default_config() -> AdCraftConfig:
    """Create an AdCraftConfig with all defaults (plus any set env vars)."""
    return AdCraftConfig()
