from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml


class ConfigurationError(ValueError):
    """Raised when a simulation configuration is missing or inconsistent."""


SUPPORTED_FORMATS: tuple[str, ...] = ("phylip", "fasta")
SUPPORTED_SEQUENCE_TYPES: tuple[str, ...] = ("DNA", "BIN", "AA")


@dataclass(frozen=True)
class TreeSettings:
    path: Path | None = None
    newick: str | None = None

    def read_newick(self) -> str:
        if self.newick is not None:
            return self.newick
        if self.path is None or not self.path.exists():
            raise ConfigurationError(f"Tree file not found: {self.path}")
        return self.path.read_text(encoding="utf-8")


@dataclass(frozen=True)
class AncestralSettings:
    path: Path
    name: str | None = None


@dataclass(frozen=True)
class SequenceSettings:
    length: int
    model: str
    sequence_type: str | None = None
    length_ratio: float | str = 1.0
    ancestral: AncestralSettings | None = None


@dataclass(frozen=True)
class FunDiSettings:
    taxa: tuple[str, ...]
    sites: tuple[int, ...] | None = None
    proportion: float | None = None


@dataclass(frozen=True)
class DatasetSettings:
    count: int = 1
    output_name: str = "alignment"
    output_directory: Path = Path("alignments")
    output_format: str = "phylip"
    compress: bool = False

    def ensure_output_directory(self) -> Path:
        self.output_directory.mkdir(parents=True, exist_ok=True)
        return self.output_directory

    def output_path(self, index: int) -> Path:
        suffix = ".phy" if self.output_format == "phylip" else ".fa"
        if self.compress:
            suffix += ".gz"
        return self.output_directory / f"{self.output_name}_{index}{suffix}"


@dataclass(frozen=True)
class GenerationConfig:
    tree: TreeSettings
    sequence: SequenceSettings
    dataset: DatasetSettings = field(default_factory=DatasetSettings)
    fundi: FunDiSettings | None = None
    seed: int | None = None
    parallel_cores: int = 1

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any], *, base_path: Path | str | None = None) -> "GenerationConfig":
        if not isinstance(payload, Mapping):
            raise ConfigurationError("Configuration root must be a mapping")
        base = Path(base_path) if base_path is not None else Path.cwd()

        seed = payload.get("seed")
        if seed is not None and not isinstance(seed, int):
            raise ConfigurationError("'seed' must be an integer")

        parallel_cores = payload.get("parallel_cores", 1)
        if not isinstance(parallel_cores, int) or parallel_cores < 1:
            raise ConfigurationError("'parallel_cores' must be a positive integer")

        return cls(
            tree=_parse_tree(_section(payload, "tree"), base),
            sequence=_parse_sequence(_section(payload, "sequence"), base),
            dataset=_parse_dataset(payload.get("dataset") or {}, base),
            fundi=_parse_fundi(payload.get("fundi")),
            seed=seed,
            parallel_cores=parallel_cores,
        )

    def with_seed(self, seed: int) -> "GenerationConfig":
        return replace(self, seed=seed)


def load_generation_config(config_path: Path | str) -> GenerationConfig:
    """Read a YAML or JSON configuration file into a :class:`GenerationConfig`."""
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid JSON in {path}: {exc}") from exc
    else:
        try:
            payload = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    return GenerationConfig.from_mapping(payload or {}, base_path=path.parent)


def _section(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    section = payload.get(key)
    if not isinstance(section, Mapping):
        raise ConfigurationError(f"'{key}' section is required and must be a mapping")
    return section


def _resolve(base: Path, value: Any, key: str) -> Path:
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"'{key}' must be a non-empty string")
    path = Path(value).expanduser()
    return path if path.is_absolute() else base / path


def _parse_tree(section: Mapping[str, Any], base: Path) -> TreeSettings:
    has_path = "path" in section
    has_newick = "newick" in section
    if has_path == has_newick:
        raise ConfigurationError("'tree' requires exactly one of 'path' or 'newick'")
    if has_newick:
        newick = section["newick"]
        if not isinstance(newick, str) or not newick.strip():
            raise ConfigurationError("'tree.newick' must be a non-empty string")
        return TreeSettings(newick=newick)
    return TreeSettings(path=_resolve(base, section["path"], "tree.path"))


def _parse_sequence(section: Mapping[str, Any], base: Path) -> SequenceSettings:
    length = section.get("length")
    ancestral = _parse_ancestral(section.get("ancestral"), base)
    if length is None and ancestral is None:
        raise ConfigurationError("'sequence.length' is required unless an ancestral sequence is given")
    if length is not None and (not isinstance(length, int) or isinstance(length, bool) or length <= 0):
        raise ConfigurationError("'sequence.length' must be a positive integer")

    model = section.get("model")
    if not isinstance(model, str) or not model.strip():
        raise ConfigurationError("'sequence.model' must be a non-empty string")

    sequence_type = section.get("type")
    if sequence_type is not None:
        sequence_type = str(sequence_type).upper()
        if sequence_type not in SUPPORTED_SEQUENCE_TYPES:
            raise ConfigurationError(
                f"Unsupported 'sequence.type' {sequence_type!r}; expected one of {', '.join(SUPPORTED_SEQUENCE_TYPES)}"
            )

    length_ratio = section.get("length_ratio", 1.0)
    if isinstance(length_ratio, str):
        if length_ratio != "auto":
            raise ConfigurationError("'sequence.length_ratio' must be a number >= 1 or 'auto'")
    elif not isinstance(length_ratio, (int, float)) or isinstance(length_ratio, bool) or length_ratio < 1:
        raise ConfigurationError("'sequence.length_ratio' must be a number >= 1 or 'auto'")

    if ancestral is not None and length_ratio != 1 and length_ratio != 1.0:
        raise ConfigurationError("'sequence.ancestral' cannot be combined with 'sequence.length_ratio'")

    return SequenceSettings(
        length=length or 0,
        model=model.strip(),
        sequence_type=sequence_type,
        length_ratio=length_ratio if isinstance(length_ratio, str) else float(length_ratio),
        ancestral=ancestral,
    )


def _parse_ancestral(section: Any, base: Path) -> AncestralSettings | None:
    if section is None:
        return None
    if isinstance(section, str):
        return AncestralSettings(path=_resolve(base, section, "sequence.ancestral"))
    if not isinstance(section, Mapping):
        raise ConfigurationError("'sequence.ancestral' must be a path or a mapping with 'path' and 'name'")
    name = section.get("name")
    if name is not None and not isinstance(name, str):
        raise ConfigurationError("'sequence.ancestral.name' must be a string")
    return AncestralSettings(path=_resolve(base, section.get("path"), "sequence.ancestral.path"), name=name)


def _parse_fundi(section: Any) -> FunDiSettings | None:
    if section is None:
        return None
    if not isinstance(section, Mapping):
        raise ConfigurationError("'fundi' must be a mapping")

    taxa = section.get("taxa")
    if not isinstance(taxa, Sequence) or isinstance(taxa, str) or len(taxa) < 2:
        raise ConfigurationError("'fundi.taxa' must list at least two taxa")
    taxa_labels = tuple(str(label) for label in taxa)
    if len(set(taxa_labels)) != len(taxa_labels):
        raise ConfigurationError("Duplicate taxa in 'fundi.taxa'")

    has_sites = "sites" in section
    has_proportion = "proportion" in section
    if has_sites == has_proportion:
        raise ConfigurationError("'fundi' requires exactly one of 'sites' or 'proportion'")

    if has_sites:
        sites = section["sites"]
        if not isinstance(sites, Sequence) or isinstance(sites, str) or not sites:
            raise ConfigurationError("'fundi.sites' must be a non-empty list of site indices")
        if any(not isinstance(site, int) or site < 0 for site in sites):
            raise ConfigurationError("'fundi.sites' entries must be non-negative integers")
        return FunDiSettings(taxa=taxa_labels, sites=tuple(sorted(set(sites))))

    proportion = section["proportion"]
    if not isinstance(proportion, (int, float)) or not 0 < proportion <= 1:
        raise ConfigurationError("'fundi.proportion' must be in (0, 1]")
    return FunDiSettings(taxa=taxa_labels, proportion=float(proportion))


def _parse_dataset(section: Any, base: Path) -> DatasetSettings:
    if not isinstance(section, Mapping):
        raise ConfigurationError("'dataset' must be a mapping")

    count = section.get("count", 1)
    if not isinstance(count, int) or isinstance(count, bool) or count <= 0:
        raise ConfigurationError("'dataset.count' must be a positive integer")

    output_name = section.get("output_name", "alignment")
    if not isinstance(output_name, str) or not output_name.strip():
        raise ConfigurationError("'dataset.output_name' must be a non-empty string")

    directory = section.get("output_directory", "alignments")
    output_directory = _resolve(base, directory, "dataset.output_directory")

    output_format = str(section.get("format", "phylip")).lower()
    if output_format not in SUPPORTED_FORMATS:
        raise ConfigurationError(
            f"Unsupported 'dataset.format' {output_format!r}; expected one of {', '.join(SUPPORTED_FORMATS)}"
        )

    compress = section.get("compress", False)
    if not isinstance(compress, bool):
        raise ConfigurationError("'dataset.compress' must be a boolean")

    return DatasetSettings(
        count=count,
        output_name=output_name.strip(),
        output_directory=output_directory,
        output_format=output_format,
        compress=compress,
    )


__all__ = [
    "AncestralSettings",
    "ConfigurationError",
    "DatasetSettings",
    "FunDiSettings",
    "GenerationConfig",
    "SequenceSettings",
    "TreeSettings",
    "load_generation_config",
]
