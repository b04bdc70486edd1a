"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from belfiore_sync.common.constants import DRIVERS, ITEM_TYPES, SOURCE_TYPES, TRANSFORMS
from belfiore_sync.common.errors import ConfigError
from belfiore_sync.common.models import GEO_RECORD_FIELDS

PROFILE_REQUIRED = {"driver", "source_type", "source", "mapping"}
PROFILE_KNOWN = PROFILE_REQUIRED | {"options", "defaults", "discriminator", "required_columns"}
OPTION_KEYS = {"delimiter", "enclosure", "escape", "header_row", "encoding"}
FIELD_SPEC_KEYS = {"column", "fallback_columns", "default", "transform"}
SYNC_REQUIRED = {"table", "chunk_size", "truncate_before_sync", "http_timeout", "upsert"}
SYNC_KNOWN = SYNC_REQUIRED | {"http_retry_attempts", "database_url", "item_types"}


def _assert_mapping(obj, ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(str(key) for key in unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _validate_field_spec(spec, ctx: str, allow_unknown: bool) -> None:
    _assert_mapping(spec, ctx)
    _assert_no_unknown_keys(spec, FIELD_SPEC_KEYS, ctx, allow_unknown)
    if not spec.get("column") and not spec.get("fallback_columns") and spec.get("default") is None:
        raise ConfigError(f"{ctx} needs a column, fallback_columns or default")
    fallback = spec.get("fallback_columns", [])
    if not isinstance(fallback, list):
        raise ConfigError(f"{ctx}.fallback_columns must be a list")
    transform = spec.get("transform")
    if transform is not None and transform not in TRANSFORMS:
        raise ConfigError(f"Unsupported transform in {ctx}: {transform}")


def validate_source_profile(cfg, ctx: str, *, allow_unknown: bool = False) -> dict:
    _assert_mapping(cfg, ctx)
    _assert_required_keys(cfg, PROFILE_REQUIRED, ctx)
    _assert_no_unknown_keys(cfg, PROFILE_KNOWN, ctx, allow_unknown)

    if cfg["driver"] not in DRIVERS:
        raise ConfigError(f"Unsupported driver in {ctx}: {cfg['driver']}")
    if cfg["source_type"] not in SOURCE_TYPES:
        raise ConfigError(f"Unsupported source_type in {ctx}: {cfg['source_type']}")
    if not isinstance(cfg["source"], str) or not cfg["source"].strip():
        raise ConfigError(f"{ctx}.source must be a non-empty string")

    options = cfg.get("options") or {}
    _assert_mapping(options, f"{ctx}.options")
    _assert_no_unknown_keys(options, OPTION_KEYS, f"{ctx}.options", allow_unknown)

    mapping = cfg["mapping"]
    _assert_mapping(mapping, f"{ctx}.mapping")
    if not mapping:
        raise ConfigError(f"{ctx}.mapping must be a non-empty mapping")
    for field_name, spec in mapping.items():
        if field_name not in GEO_RECORD_FIELDS:
            raise ConfigError(f"Unknown target field in {ctx}.mapping: {field_name}")
        _validate_field_spec(spec, f"{ctx}.mapping.{field_name}", allow_unknown)

    defaults = cfg.get("defaults") or {}
    _assert_mapping(defaults, f"{ctx}.defaults")
    unknown_defaults = set(defaults) - set(GEO_RECORD_FIELDS)
    if unknown_defaults:
        raise ConfigError(f"Unknown target fields in {ctx}.defaults: {', '.join(sorted(unknown_defaults))}")

    discriminator = cfg.get("discriminator")
    if discriminator is not None:
        _assert_mapping(discriminator, f"{ctx}.discriminator")
        _assert_required_keys(discriminator, {"column", "values"}, f"{ctx}.discriminator")
        _assert_mapping(discriminator["values"], f"{ctx}.discriminator.values")

    required_columns = cfg.get("required_columns")
    if required_columns is not None:
        if not isinstance(required_columns, list) or not all(
            isinstance(group, list) and group for group in required_columns
        ):
            raise ConfigError(f"{ctx}.required_columns must be a list of non-empty lists")

    return cfg


def validate_sources_config(cfg, *, allow_unknown: bool = False) -> dict:
    _assert_mapping(cfg, "sources config")
    _assert_required_keys(cfg, {"data_sources"}, "sources config")
    _assert_no_unknown_keys(cfg, {"data_sources"}, "sources config", allow_unknown)

    groups = cfg["data_sources"]
    _assert_mapping(groups, "data_sources")
    if not groups:
        raise ConfigError("data_sources must be a non-empty mapping")
    for group_name, profiles in groups.items():
        _assert_mapping(profiles, f"data_sources.{group_name}")
        for profile_name, profile in profiles.items():
            validate_source_profile(
                profile,
                f"data_sources.{group_name}.{profile_name}",
                allow_unknown=allow_unknown,
            )
    return cfg


def validate_sync_config(cfg, *, allow_unknown: bool = False) -> dict:
    _assert_mapping(cfg, "sync config")
    _assert_required_keys(cfg, SYNC_REQUIRED, "sync config")
    _assert_no_unknown_keys(cfg, SYNC_KNOWN, "sync config", allow_unknown)

    chunk_size = cfg["chunk_size"]
    if not isinstance(chunk_size, int) or isinstance(chunk_size, bool) or chunk_size <= 0:
        raise ConfigError("sync.chunk_size must be a positive integer")
    attempts = cfg.get("http_retry_attempts", 1)
    if not isinstance(attempts, int) or isinstance(attempts, bool) or attempts < 1:
        raise ConfigError("sync.http_retry_attempts must be an integer >= 1")

    upsert = cfg["upsert"]
    _assert_mapping(upsert, "upsert")
    _assert_required_keys(upsert, {"unique_by", "update"}, "upsert")
    for key in ("unique_by", "update"):
        if not isinstance(upsert[key], list):
            raise ConfigError(f"upsert.{key} must be a list")
    if not upsert["unique_by"]:
        raise ConfigError("upsert.unique_by must not be empty")
    unknown_cols = (set(upsert["unique_by"]) | set(upsert["update"])) - set(GEO_RECORD_FIELDS)
    if unknown_cols:
        raise ConfigError(f"Unknown upsert columns: {', '.join(sorted(unknown_cols))}")

    item_types = cfg.get("item_types") or {}
    _assert_mapping(item_types, "item_types")
    unknown_types = set(item_types) - set(ITEM_TYPES)
    if unknown_types:
        raise ConfigError(f"Unknown item_types: {', '.join(sorted(unknown_types))}")
    return cfg
