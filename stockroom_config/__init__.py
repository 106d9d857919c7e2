"""
stockroom_config -- single public entrypoint for access and runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a ``CompiledAccessPolicy`` -- the
    access matrix plus settings.  YAML loading is internal tooling and
    never exposed to callers.

Architecture position:
    Configuration -- sits above ``stockroom_kernel`` and below
    ``stockroom_services`` / ``stockroom_modules``.  The kernel MUST NEVER
    import from ``stockroom_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested configuration set does not exist.
    - ``ValueError`` -- validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``STOCKROOM_CONFIG_TRACE`` log entry containing the config_id, version,
    checksum and table sizes.
"""

from __future__ import annotations

from pathlib import Path

from stockroom_config.compiler import CompiledAccessPolicy, compile_access_policy
from stockroom_config.loader import load_configuration_set
from stockroom_config.validator import validate_configuration
from stockroom_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_SET = "default"

__all__ = ["CompiledAccessPolicy", "get_active_config"]


def get_active_config(
    set_name: str = DEFAULT_SET,
    config_dir: Path | None = None,
) -> CompiledAccessPolicy:
    """The ONLY public configuration entrypoint.

    Args:
        set_name: Name of the configuration set subdirectory.
        config_dir: Override path to configuration sets directory.
            Defaults to stockroom_config/sets/.

    Raises:
        FileNotFoundError: If the configuration set is missing.
        ValueError: If configuration validation fails.
    """
    sets_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    set_dir = sets_dir / set_name
    if not (set_dir / "root.yaml").exists():
        raise FileNotFoundError(f"Configuration set not found: {set_dir}")

    config_set = load_configuration_set(set_dir)

    validation = validate_configuration(config_set)
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"detail": warning})
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )

    policy = compile_access_policy(config_set)

    _logger.info(
        "STOCKROOM_CONFIG_TRACE",
        extra={
            "trace_type": "STOCKROOM_CONFIG_TRACE",
            "config_set_id": policy.config_id,
            "config_set_version": policy.config_version,
            "checksum": policy.checksum,
            "component_count": len(policy.actions) + len(policy.fields),
            "editing_point_count": sum(len(p) for p in policy.editing_points.values()),
            "warning_count": len(validation.warnings),
        },
    )

    return policy
