"""Configuration loading for affected."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from affected.errors import ConfigError
from affected.graph import DEPENDENCY_KINDS

CONFIG_FILENAMES = (".affected.toml", "affected.toml")
PYPROJECT_FILENAME = "pyproject.toml"
PYPROJECT_TOOL_KEYS = ("affected",)

PostRule = Literal["skip", "skip-rules", "fallthrough"]
MatchPolicy = Literal["first-match", "union"]
ActionKind = Literal["ignore", "packages", "workspace"]

POST_RULES = ("skip", "skip-rules", "fallthrough")
MATCH_POLICIES = ("first-match", "union")
MARK_ALL = "all"


@dataclass(frozen=True, slots=True)
class MarkChanged:
    """Action attached to a rule: ignore, mark named packages, or mark the workspace."""

    kind: ActionKind
    packages: tuple[str, ...] = ()

    @classmethod
    def ignore(cls) -> MarkChanged:
        return cls(kind="ignore")

    @classmethod
    def workspace(cls) -> MarkChanged:
        return cls(kind="workspace")

    @classmethod
    def of(cls, names: list[str] | tuple[str, ...]) -> MarkChanged:
        if not names:
            return cls.ignore()
        return cls(kind="packages", packages=tuple(_dedupe(list(names))))

    def to_config(self) -> str | list[str]:
        if self.kind == "workspace":
            return MARK_ALL
        return list(self.packages)


@dataclass(frozen=True, slots=True)
class PathRule:
    """Path-based rule as declared in a rules document."""

    globs: tuple[str, ...]
    mark_changed: MarkChanged
    post_rule: PostRule = "skip"
    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "globs": list(self.globs),
            "mark-changed": self.mark_changed.to_config(),
            "post-rule": self.post_rule,
        }


@dataclass(frozen=True, slots=True)
class PackageRule:
    """Marks extra packages changed whenever any ``on_affected`` package is affected."""

    on_affected: tuple[str, ...]
    mark_changed: MarkChanged
    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "on-affected": list(self.on_affected),
            "mark-changed": self.mark_changed.to_config(),
        }


@dataclass(slots=True)
class AppConfig:
    """Runtime configuration values resolved from project files."""

    format: str = "human"
    use_default_rules: bool = True
    match_policy: MatchPolicy = "first-match"
    dependency_kinds: list[str] = field(default_factory=lambda: list(DEPENDENCY_KINDS))
    workers: int | None = None
    path_rules: list[PathRule] = field(default_factory=list)
    package_rules: list[PackageRule] = field(default_factory=list)
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": self.format,
            "use_default_rules": self.use_default_rules,
            "match_policy": self.match_policy,
            "dependency_kinds": list(self.dependency_kinds),
            "workers": self.workers,
            "path_rules": [rule.to_dict() for rule in self.path_rules],
            "package_rules": [rule.to_dict() for rule in self.package_rules],
            "source": self.source,
        }


def load_app_config(repo: Path, config_path: Path | None = None) -> AppConfig:
    """Load config from explicit path or repository-local files with precedence."""
    repo = repo.resolve()
    if config_path is not None:
        resolved = config_path if config_path.is_absolute() else (repo / config_path)
        if not resolved.exists():
            raise ConfigError(f"Config file does not exist: {resolved}")
        mapping = _extract_config_mapping(_load_toml(resolved), source_path=resolved)
        return _from_mapping(mapping, source=str(resolved))

    for filename in CONFIG_FILENAMES:
        resolved = repo / filename
        if resolved.exists():
            mapping = _extract_config_mapping(_load_toml(resolved), source_path=resolved)
            return _from_mapping(mapping, source=str(resolved))

    pyproject_path = repo / PYPROJECT_FILENAME
    if pyproject_path.exists():
        mapping = _extract_config_mapping(_load_toml(pyproject_path), source_path=pyproject_path)
        if mapping:
            return _from_mapping(mapping, source=str(pyproject_path))

    return AppConfig()


def parse_rules_text(text: str, *, source: str) -> tuple[list[PathRule], list[PackageRule]]:
    """Parse a TOML rules document held in memory."""
    try:
        loaded = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {source}: {exc}") from exc
    return parse_rules_document(loaded)


def parse_rules_document(mapping: dict[str, Any]) -> tuple[list[PathRule], list[PackageRule]]:
    """Parse ``[[path-rule]]`` and ``[[package-rule]]`` tables from a document mapping."""
    path_rules = [
        _parse_path_rule(item, f"path-rule[{index}]")
        for index, item in enumerate(_as_table_list(mapping.get("path-rule"), "path-rule"))
    ]
    package_rules = [
        _parse_package_rule(item, f"package-rule[{index}]")
        for index, item in enumerate(_as_table_list(mapping.get("package-rule"), "package-rule"))
    ]
    return (path_rules, package_rules)


def default_config_template() -> str:
    """Return a starter config template users can customize."""
    return "\n".join(
        [
            'format = "human"',
            "use-default-rules = true",
            'match-policy = "first-match"',
            'dependency-kinds = ["normal", "build", "dev"]',
            "# workers = 8",
            "",
            "# Path rules are evaluated in order; the first match wins unless",
            '# post-rule is "skip-rules" or "fallthrough".',
            "[[path-rule]]",
            'name = "codegen"',
            'globs = ["scripts/gen.sh", "codegen/**"]',
            'mark-changed = ["core"]',
            'post-rule = "skip"',
            "",
            "[[path-rule]]",
            'name = "ci"',
            'globs = [".github/**"]',
            'mark-changed = "all"',
            "",
            "[[path-rule]]",
            'name = "scratch"',
            'globs = ["scratch/**", "**/*.ipynb"]',
            "mark-changed = []",
            "",
            "# Package rules run after dependency propagation.",
            "[[package-rule]]",
            'on-affected = ["core"]',
            'mark-changed = ["integration-tests"]',
            "",
        ]
    )


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as file_obj:
            loaded = tomllib.load(file_obj)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
    if not isinstance(loaded, dict):
        return {}
    return loaded


def _extract_config_mapping(loaded: dict[str, Any], *, source_path: Path) -> dict[str, Any]:
    if source_path.name == PYPROJECT_FILENAME:
        section = _find_pyproject_tool_section(loaded)
        return section if section is not None else {}

    tool_section = _find_pyproject_tool_section(loaded)
    if tool_section is not None:
        return tool_section
    return loaded


def _find_pyproject_tool_section(loaded: dict[str, Any]) -> dict[str, Any] | None:
    tool = loaded.get("tool")
    if not isinstance(tool, dict):
        return None
    for key in PYPROJECT_TOOL_KEYS:
        section = tool.get(key)
        if isinstance(section, dict):
            return section
    return None


def _from_mapping(mapping: dict[str, Any], *, source: str) -> AppConfig:
    raw_format = mapping.get("format", "human")
    format_value = str(raw_format).lower()
    if format_value not in {"human", "json"}:
        format_value = "human"

    raw_workers = mapping.get("workers")
    if raw_workers is None:
        workers: int | None = None
    else:
        workers = _as_int(raw_workers, "workers")
        if workers <= 0:
            raise ConfigError("workers must be > 0")

    if "dependency-kinds" in mapping:
        dependency_kinds = _dedupe(
            _as_str_list(mapping.get("dependency-kinds"), "dependency-kinds")
        )
    else:
        dependency_kinds = list(DEPENDENCY_KINDS)
    unknown_kinds = sorted(set(dependency_kinds) - set(DEPENDENCY_KINDS))
    if unknown_kinds:
        raise ConfigError(f"dependency-kinds has unknown kinds: {', '.join(unknown_kinds)}")

    path_rules, package_rules = parse_rules_document(mapping)
    return AppConfig(
        format=format_value,
        use_default_rules=_as_bool(mapping.get("use-default-rules", True), "use-default-rules"),
        match_policy=_as_choice(  # type: ignore[arg-type]
            mapping.get("match-policy", "first-match"), set(MATCH_POLICIES), "match-policy"
        ),
        dependency_kinds=dependency_kinds,
        workers=workers,
        path_rules=path_rules,
        package_rules=package_rules,
        source=source,
    )


def _parse_path_rule(item: dict[str, Any], field_name: str) -> PathRule:
    globs = _as_str_list(item.get("globs"), f"{field_name}.globs")
    if not globs:
        raise ConfigError(f"{field_name}.globs must contain at least one glob")
    _reject_unknown_keys(item, {"name", "globs", "mark-changed", "post-rule"}, field_name)
    return PathRule(
        globs=tuple(globs),
        mark_changed=_parse_mark_changed(item.get("mark-changed"), f"{field_name}.mark-changed"),
        post_rule=_as_choice(  # type: ignore[arg-type]
            item.get("post-rule", "skip"), set(POST_RULES), f"{field_name}.post-rule"
        ),
        name=_as_optional_str(item.get("name"), f"{field_name}.name"),
    )


def _parse_package_rule(item: dict[str, Any], field_name: str) -> PackageRule:
    on_affected = _as_str_list(item.get("on-affected"), f"{field_name}.on-affected")
    if not on_affected:
        raise ConfigError(f"{field_name}.on-affected must name at least one package")
    _reject_unknown_keys(item, {"name", "on-affected", "mark-changed"}, field_name)
    return PackageRule(
        on_affected=tuple(_dedupe(on_affected)),
        mark_changed=_parse_mark_changed(item.get("mark-changed"), f"{field_name}.mark-changed"),
        name=_as_optional_str(item.get("name"), f"{field_name}.name"),
    )


def _parse_mark_changed(value: Any, field_name: str) -> MarkChanged:
    if value is None:
        raise ConfigError(f"{field_name} is required")
    if isinstance(value, str):
        if value.lower() != MARK_ALL:
            raise ConfigError(f'{field_name} must be "all" or a list of package names')
        return MarkChanged.workspace()
    return MarkChanged.of(_as_str_list(value, field_name))


def _reject_unknown_keys(item: dict[str, Any], allowed: set[str], field_name: str) -> None:
    unknown = sorted(key for key in item if key not in allowed)
    if unknown:
        raise ConfigError(f"{field_name} has unknown keys: {', '.join(unknown)}")


def _as_table_list(value: Any, field_name: str) -> list[dict[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"{field_name} must be a list of tables")
    output: list[dict[str, Any]] = []
    for item in value:
        if not isinstance(item, dict):
            raise ConfigError(f"{field_name} must be a list of tables")
        output.append(item)
    return output


def _as_str_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"{field_name} must be a list of strings")
    items: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ConfigError(f"{field_name} must be a list of strings")
        items.append(item)
    return items


def _as_optional_str(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{field_name} must be a string")
    return value


def _as_choice(raw: Any, allowed: set[str], field_name: str) -> str:
    value = str(raw).lower()
    if value not in allowed:
        choices = ", ".join(sorted(allowed))
        raise ConfigError(f"{field_name} must be one of: {choices}")
    return value


def _as_int(raw: Any, field_name: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ConfigError(f"{field_name} must be an integer")
    return raw


def _as_bool(raw: Any, field_name: str) -> bool:
    if not isinstance(raw, bool):
        raise ConfigError(f"{field_name} must be a boolean")
    return raw


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    output: list[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        output.append(item)
    return output
