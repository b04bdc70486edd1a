"""Configuration loading, validation and profile resolution."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from belfiore_sync.common.constants import TYPE_ALIASES, WILDCARD_PROFILE
from belfiore_sync.common.errors import ConfigError
from belfiore_sync.common.fs import read_yaml
from belfiore_sync.common.models import (
    DEFAULT_REQUIRED_COLUMNS,
    DelimitedOptions,
    Discriminator,
    FieldSpec,
    MappingProfile,
    SourceProfile,
    SyncSettings,
    UpsertConfig,
)
from belfiore_sync.common.schema import validate_sources_config, validate_sync_config


@dataclass(frozen=True)
class ConfigBundle:
    sources: dict[str, dict[str, SourceProfile]]
    settings: SyncSettings
    base_dir: Path


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    if not isinstance(overlay, dict):
        raise ConfigError(f"Overlay config must be a mapping: {overlay_path}")
    return _deep_merge(base, overlay)


def _build_options(raw: dict) -> DelimitedOptions:
    defaults = DelimitedOptions()
    return DelimitedOptions(
        delimiter=raw.get("delimiter", defaults.delimiter),
        enclosure=raw.get("enclosure", defaults.enclosure),
        escape=raw.get("escape", defaults.escape),
        header_row=bool(raw.get("header_row", defaults.header_row)),
        encoding=raw.get("encoding", defaults.encoding),
    )


def _build_mapping(cfg: dict) -> MappingProfile:
    fields = {
        name: FieldSpec(
            column=spec.get("column"),
            fallback_columns=tuple(spec.get("fallback_columns") or ()),
            default=spec.get("default"),
            transform=spec.get("transform"),
        )
        for name, spec in cfg["mapping"].items()
    }

    discriminator = None
    raw_discriminator = cfg.get("discriminator")
    if raw_discriminator and raw_discriminator.get("column") and raw_discriminator.get("values"):
        discriminator = Discriminator(
            column=raw_discriminator["column"],
            values={str(code): item_type for code, item_type in raw_discriminator["values"].items()},
        )

    required = cfg.get("required_columns")
    required_columns = (
        tuple(tuple(group) for group in required) if required is not None else DEFAULT_REQUIRED_COLUMNS
    )
    return MappingProfile(
        fields=fields,
        defaults=dict(cfg.get("defaults") or {}),
        discriminator=discriminator,
        required_columns=required_columns,
    )


def _build_profile(name: str, cfg: dict) -> SourceProfile:
    return SourceProfile(
        name=name,
        driver=cfg["driver"],
        source_type=cfg["source_type"],
        source=cfg["source"],
        options=_build_options(cfg.get("options") or {}),
        mapping=_build_mapping(cfg),
    )


def _build_settings(cfg: dict) -> SyncSettings:
    defaults = SyncSettings()
    return SyncSettings(
        table=cfg["table"],
        chunk_size=cfg["chunk_size"],
        truncate_before_sync=bool(cfg["truncate_before_sync"]),
        http_timeout=float(cfg["http_timeout"]),
        http_retry_attempts=cfg.get("http_retry_attempts", defaults.http_retry_attempts),
        database_url=cfg.get("database_url") or defaults.database_url,
        upsert=UpsertConfig(
            unique_by=tuple(cfg["upsert"]["unique_by"]),
            update=tuple(cfg["upsert"]["update"]),
        ),
        item_types=dict(cfg.get("item_types") or {}),
    )


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    def overlay_for(name: str) -> Path | None:
        return (overlay_config_dir / name) if overlay_config_dir is not None else None

    sources_cfg = validate_sources_config(
        _load_yaml_with_overlay(config_dir / "sources.yml", overlay_for("sources.yml")),
        allow_unknown=allow_unknown,
    )
    sync_cfg = validate_sync_config(
        _load_yaml_with_overlay(config_dir / "sync.yml", overlay_for("sync.yml")),
        allow_unknown=allow_unknown,
    )

    sources = {
        group: {name: _build_profile(name, profile) for name, profile in profiles.items()}
        for group, profiles in sources_cfg["data_sources"].items()
    }
    return ConfigBundle(sources=sources, settings=_build_settings(sync_cfg), base_dir=config_dir)


def resolve_types(target: str) -> list[str]:
    types = TYPE_ALIASES.get(target.strip().lower())
    if types is None:
        raise ConfigError(f"Invalid type: {target}. Allowed: comune, stato, *")
    return list(types)


def resolve_profile(
    bundle: ConfigBundle,
    source_group: str,
    requested_type: str,
    resolved_type: str,
    override: str | None = None,
) -> SourceProfile:
    profiles = bundle.sources.get(source_group)
    if profiles is None:
        raise ConfigError(f"Unknown source group: {source_group}")

    if override and override.strip():
        profile_name = override.strip()
    elif len(TYPE_ALIASES.get(requested_type.strip().lower(), ())) > 1:
        profile_name = WILDCARD_PROFILE
    else:
        profile_name = resolved_type

    for candidate in (profile_name, resolved_type, WILDCARD_PROFILE):
        if candidate in profiles:
            return profiles[candidate]
    raise ConfigError(
        f"Missing config for data_sources.{source_group}.{profile_name} (or {resolved_type} or {WILDCARD_PROFILE})"
    )
