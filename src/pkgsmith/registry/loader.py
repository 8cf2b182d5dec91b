"""Load recipe and pin declarations from YAML files into an ``InMemoryRegistry``."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Final, TypeAlias, cast

import yaml

from pkgsmith.constants import DEFAULT_BUILD_EXCLUDES, DEFAULT_BUILD_FILES
from pkgsmith.domain.models import Recipe, RecipeKind
from pkgsmith.registry.accessor import InMemoryRegistry

PathLike: TypeAlias = str | os.PathLike[str]

_ALLOWED_RECIPE_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "name",
        "type",
        "repo",
        "url",
        "branch",
        "pin",
        "freeze",
        "ignore",
        "files",
        "excludes",
        "depends",
        "pre_build",
    }
)
_ALLOWED_ROOT_FIELDS: Final[frozenset[str]] = frozenset({"packages", "pins", "profile"})


class RegistryLoadError(ValueError):
    """Raised when a recipe or pin file is unreadable or malformed."""


def load_registry(
    registry_path: PathLike,
    *,
    pins_path: PathLike | None = None,
) -> InMemoryRegistry:
    """Load ``packages.yaml`` (and optionally a separate pin lockfile)."""

    path = Path(registry_path).expanduser()
    if not path.exists():
        raise RegistryLoadError(f"recipe file not found: {path}")

    root = _as_mapping(_load_yaml(path), path.name)
    unknown = sorted(set(root) - _ALLOWED_ROOT_FIELDS)
    if unknown:
        raise RegistryLoadError(f"{path.name}: unexpected top-level fields: {unknown}")

    raw_packages = root.get("packages") or []
    if not isinstance(raw_packages, list):
        raise RegistryLoadError(f"{path.name}.packages: expected a sequence")

    recipes = [
        _parse_recipe(item, location=f"{path.name}.packages[{index}]")
        for index, item in enumerate(raw_packages)
    ]

    pins = _parse_pins(root.get("pins") or {}, location=f"{path.name}.pins")
    if pins_path is not None:
        lock = Path(pins_path).expanduser()
        if lock.exists():
            pins.update(_parse_pins(_load_yaml(lock) or {}, location=lock.name))

    profile_raw = root.get("profile")
    profile: list[str] | None = None
    if profile_raw is not None:
        profile = _coerce_str_list(profile_raw, f"{path.name}.profile")

    try:
        return InMemoryRegistry(recipes, pins=pins, profile=profile)
    except ValueError as exc:
        raise RegistryLoadError(f"{path.name}: {exc}") from exc


def _load_yaml(path: Path) -> object:
    try:
        with path.open("r", encoding="utf-8") as handle:
            return cast("object", yaml.safe_load(handle))
    except yaml.YAMLError as exc:
        raise RegistryLoadError(f"{path}: invalid YAML ({exc})") from exc
    except OSError as exc:
        raise RegistryLoadError(f"unable to read {path}: {exc}") from exc


def _parse_recipe(value: object, *, location: str) -> Recipe:
    if isinstance(value, str):
        value = {"name": value}
    parsed = _as_mapping(value, location)

    unknown = sorted(set(parsed) - _ALLOWED_RECIPE_FIELDS)
    if unknown:
        raise RegistryLoadError(f"{location}: unexpected fields: {unknown}")
    if "name" not in parsed:
        raise RegistryLoadError(f"{location}: missing required field 'name'")

    name = _coerce_str(parsed["name"], f"{location}.name")
    raw_kind = parsed.get("type", RecipeKind.VCS.value)
    try:
        kind = RecipeKind(_coerce_str(raw_kind, f"{location}.type"))
    except ValueError as exc:
        allowed = [item.value for item in RecipeKind]
        raise RegistryLoadError(f"{location}.type: must be one of {allowed}") from exc

    repo = _optional_str(parsed.get("repo"), f"{location}.repo")
    if repo is None and kind is RecipeKind.VCS:
        repo = name

    pre_build_raw = parsed.get("pre_build") or []
    if not isinstance(pre_build_raw, list):
        raise RegistryLoadError(f"{location}.pre_build: expected a sequence of commands")
    pre_build = tuple(
        tuple(_coerce_str_list(command, f"{location}.pre_build[{index}]"))
        for index, command in enumerate(pre_build_raw)
    )

    try:
        return Recipe(
            name=name,
            kind=kind,
            repo=repo,
            pinned_commit=_optional_str(parsed.get("pin"), f"{location}.pin"),
            freeze=_coerce_bool(parsed.get("freeze", False), f"{location}.freeze"),
            ignore=_coerce_bool(parsed.get("ignore", False), f"{location}.ignore"),
            url=_optional_str(parsed.get("url"), f"{location}.url"),
            branch=_optional_str(parsed.get("branch"), f"{location}.branch"),
            files=tuple(
                _coerce_str_list(parsed.get("files", list(DEFAULT_BUILD_FILES)), f"{location}.files")
            ),
            excludes=tuple(
                _coerce_str_list(
                    parsed.get("excludes", list(DEFAULT_BUILD_EXCLUDES)), f"{location}.excludes"
                )
            ),
            depends=tuple(_coerce_str_list(parsed.get("depends", []), f"{location}.depends")),
            pre_build=pre_build,
        )
    except ValueError as exc:
        raise RegistryLoadError(f"{location}: {exc}") from exc


def _parse_pins(value: object, *, location: str) -> dict[str, str]:
    mapping = _as_mapping(value, location)
    pins: dict[str, str] = {}
    for repo in sorted(mapping):
        pins[repo] = _coerce_str(mapping[repo], f"{location}.{repo}")
    return pins


def _as_mapping(value: object, location: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise RegistryLoadError(f"{location}: expected a mapping, got {type(value).__name__}")
    output: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise RegistryLoadError(f"{location}: keys must be strings")
        output[key] = item
    return output


def _coerce_str(value: object, location: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise RegistryLoadError(f"{location}: expected a non-empty string")
    return value.strip()


def _optional_str(value: object, location: str) -> str | None:
    if value is None:
        return None
    return _coerce_str(value, location)


def _coerce_bool(value: object, location: str) -> bool:
    if not isinstance(value, bool):
        raise RegistryLoadError(f"{location}: expected a boolean")
    return value


def _coerce_str_list(value: object, location: str) -> list[str]:
    if not isinstance(value, list):
        raise RegistryLoadError(f"{location}: expected a sequence of strings")
    return [_coerce_str(item, f"{location}[{index}]") for index, item in enumerate(value)]


__all__ = ["RegistryLoadError", "load_registry"]
