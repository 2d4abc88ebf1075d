from __future__ import annotations

import copy
import gzip
import json
import sys
from pathlib import Path

import pytest
import yaml
from Bio import AlignIO

from alisim.data_generation import AlignmentSimulator, verify_from_config
from alisim.data_generation.__main__ import main as generate_main
from alisim.data_generation.config import ConfigurationError, GenerationConfig, load_generation_config
from alisim.data_generation.verify import main as verify_main
from alisim.data_generation.writer import SimulationError


def _config(payload: dict[str, object], tmp_path: Path) -> GenerationConfig:
    return GenerationConfig.from_mapping(payload, base_path=tmp_path)


def _read_phylip(path: Path) -> dict[str, str]:
    alignment = AlignIO.read(str(path), "phylip-relaxed")
    return {record.id: str(record.seq) for record in alignment}


def test_write_alignments_creates_one_file_per_dataset(base_payload: dict[str, object], tmp_path: Path) -> None:
    simulator = AlignmentSimulator(_config(base_payload, tmp_path))
    paths = simulator.write_alignments()

    assert paths == [tmp_path / "out" / "generated_0.phy", tmp_path / "out" / "generated_1.phy"]
    for path in paths:
        lines = path.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "3 20"
        sequences = _read_phylip(path)
        assert list(sequences) == ["A", "B", "C"]
        assert all(len(sequence) == 20 for sequence in sequences.values())


def test_same_seed_gives_identical_files(base_payload: dict[str, object], tmp_path: Path) -> None:
    first_payload = copy.deepcopy(base_payload)
    first_payload["dataset"]["output_directory"] = str(tmp_path / "first")
    second_payload = copy.deepcopy(base_payload)
    second_payload["dataset"]["output_directory"] = str(tmp_path / "second")

    first = AlignmentSimulator(_config(first_payload, tmp_path)).write_alignments()
    second = AlignmentSimulator(_config(second_payload, tmp_path)).write_alignments()
    assert [path.read_bytes() for path in first] == [path.read_bytes() for path in second]


def test_datasets_use_distinct_seeds(base_payload: dict[str, object], tmp_path: Path) -> None:
    results = AlignmentSimulator(_config(base_payload, tmp_path)).generate_datasets()
    assert [result.index for result in results] == [0, 1]
    assert results[0].seed != results[1].seed
    assert all(result.trim is None for result in results)


def test_parallel_generation_matches_sequential(base_payload: dict[str, object], tmp_path: Path) -> None:
    sequential = AlignmentSimulator(_config(base_payload, tmp_path)).write_alignments()
    expected = [path.read_bytes() for path in sequential]

    parallel_payload = copy.deepcopy(base_payload)
    parallel_payload["parallel_cores"] = 2
    parallel_payload["dataset"]["output_directory"] = str(tmp_path / "parallel")
    parallel = AlignmentSimulator(_config(parallel_payload, tmp_path)).write_alignments()
    assert [path.read_bytes() for path in parallel] == expected


def test_gzipped_fasta_output(base_payload: dict[str, object], tmp_path: Path) -> None:
    base_payload["dataset"].update({"format": "fasta", "compress": True, "count": 1})
    simulator = AlignmentSimulator(_config(base_payload, tmp_path))
    (path,) = simulator.write_alignments()

    assert path.name == "generated_0.fa.gz"
    with gzip.open(path, "rt", encoding="utf-8") as handle:
        alignment = AlignIO.read(handle, "fasta")
    assert [record.id for record in alignment] == ["A", "B", "C"]
    assert all(len(record.seq) == 20 for record in alignment)


def test_length_ratio_trims_to_requested_length(base_payload: dict[str, object], tmp_path: Path) -> None:
    base_payload["sequence"] = {"length": 30, "model": "JC+I{0.5}", "length_ratio": "auto"}
    base_payload["dataset"]["count"] = 1
    simulator = AlignmentSimulator(_config(base_payload, tmp_path))
    assert simulator.sequence_length == 60

    (result,) = simulator.generate_datasets()
    assert result.trim is not None
    assert result.trim.final_length == 30
    assert result.trim.removed_constant == 30
    assert result.trim.truncated == 0
    assert result.output_path.read_text(encoding="utf-8").splitlines()[0] == "3 30"


def test_numeric_length_ratio(base_payload: dict[str, object], tmp_path: Path) -> None:
    base_payload["sequence"] = {"length": 10, "model": "JC+G4{0.5}", "length_ratio": 1.5}
    simulator = AlignmentSimulator(_config(base_payload, tmp_path))
    assert simulator.requested_length == 10
    assert simulator.sequence_length == 15


def test_ancestral_sequence_is_used_as_root(base_payload: dict[str, object], tmp_path: Path) -> None:
    (tmp_path / "root.fa").write_text(">root\nACGTACGT\n>other\nTTGGCCAA\n", encoding="utf-8")
    base_payload["tree"] = {"newick": "(A:0,B:0);"}
    base_payload["sequence"] = {"model": "JC", "ancestral": {"path": "root.fa", "name": "other"}}
    base_payload["dataset"]["count"] = 1
    simulator = AlignmentSimulator(_config(base_payload, tmp_path))
    assert simulator.requested_length == 8

    (path,) = simulator.write_alignments()
    assert path.read_text(encoding="utf-8") == "2 8\nA TTGGCCAA\nB TTGGCCAA\n"


def test_ancestral_sequence_errors(base_payload: dict[str, object], tmp_path: Path) -> None:
    (tmp_path / "root.fa").write_text(">root\nACGNACGT\n", encoding="utf-8")
    base_payload["sequence"] = {"model": "JC", "ancestral": "root.fa"}
    with pytest.raises(ConfigurationError, match="root"):
        AlignmentSimulator(_config(base_payload, tmp_path))

    base_payload["sequence"] = {"model": "JC", "ancestral": "missing.fa"}
    with pytest.raises(ConfigurationError, match="not found"):
        AlignmentSimulator(_config(base_payload, tmp_path))

    base_payload["sequence"] = {"model": "JC", "ancestral": "root.fa", "length_ratio": 2}
    with pytest.raises(ConfigurationError):
        _config(base_payload, tmp_path)


def test_fundi_taxa_must_exist(base_payload: dict[str, object], tmp_path: Path) -> None:
    base_payload["fundi"] = {"taxa": ["A", "Z"], "proportion": 0.2}
    simulator = AlignmentSimulator(_config(base_payload, tmp_path))
    with pytest.raises(ConfigurationError, match="Z"):
        simulator.generate_dataset(0, 1)


def test_fundi_rejects_inflated_length(base_payload: dict[str, object], tmp_path: Path) -> None:
    base_payload["fundi"] = {"taxa": ["A", "B"], "proportion": 0.2}
    base_payload["sequence"] = {"length": 20, "model": "JC+I{0.5}", "length_ratio": "auto"}
    with pytest.raises(ConfigurationError, match="length ratio"):
        AlignmentSimulator(_config(base_payload, tmp_path))

    base_payload["sequence"]["length_ratio"] = 1
    assert AlignmentSimulator(_config(base_payload, tmp_path)).sequence_length == 20


def test_fundi_dataset_is_written(base_payload: dict[str, object], tmp_path: Path) -> None:
    base_payload["fundi"] = {"taxa": ["A", "B"], "sites": [0, 3, 5]}
    base_payload["dataset"]["count"] = 1
    (result,) = AlignmentSimulator(_config(base_payload, tmp_path)).generate_datasets()
    assert result.simulation.leaf_names == ["A", "B", "C"]
    assert list(_read_phylip(result.output_path)) == ["A", "B", "C"]


def test_branch_specific_model_in_tree_file(base_payload: dict[str, object], tmp_path: Path) -> None:
    (tmp_path / "tree.nwk").write_text("(A:0.1[&model=HKY{2.0}+F{0.1,0.2,0.3,0.4}],B:0.2,C:0.3);\n", encoding="utf-8")
    base_payload["tree"] = {"path": "tree.nwk"}
    (path, _) = AlignmentSimulator(_config(base_payload, tmp_path)).write_alignments()
    assert list(_read_phylip(path)) == ["A", "B", "C"]


def test_invalid_branch_length_aborts(base_payload: dict[str, object], tmp_path: Path) -> None:
    base_payload["tree"] = {"newick": "(A:0.1,B,C:0.3);"}
    simulator = AlignmentSimulator(_config(base_payload, tmp_path))
    with pytest.raises(SimulationError):
        simulator.generate_dataset(0, 1)


def test_taxon_with_whitespace_rejected_before_simulation(base_payload: dict[str, object], tmp_path: Path) -> None:
    base_payload["tree"] = {"newick": "('Homo sapiens':0.1,B:0.2,C:0.3);"}
    base_payload["sequence"] = {"length": 20, "model": "JC+I{0.5}", "length_ratio": "auto"}
    with pytest.raises(ConfigurationError, match="Homo sapiens"):
        AlignmentSimulator(_config(base_payload, tmp_path))
    assert not (tmp_path / "out").exists()


def test_tree_without_leaves_rejected(base_payload: dict[str, object], tmp_path: Path) -> None:
    base_payload["tree"] = {"newick": "A;"}
    with pytest.raises(ConfigurationError):
        AlignmentSimulator(_config(base_payload, tmp_path))


def test_load_generation_config_yaml_and_json(base_payload: dict[str, object], tmp_path: Path) -> None:
    base_payload["dataset"]["output_directory"] = "relative_out"
    yaml_path = tmp_path / "config.yaml"
    yaml_path.write_text(yaml.safe_dump(base_payload), encoding="utf-8")
    json_path = tmp_path / "config.json"
    json_path.write_text(json.dumps(base_payload), encoding="utf-8")

    from_yaml = load_generation_config(yaml_path)
    from_json = load_generation_config(json_path)
    assert from_yaml == from_json
    assert from_yaml.dataset.output_directory == tmp_path / "relative_out"
    assert from_yaml.sequence.length == 20
    assert from_yaml.with_seed(3).seed == 3


def test_config_defaults(tmp_path: Path) -> None:
    config = _config({"tree": {"newick": "(A:1,B:1);"}, "sequence": {"length": 5, "model": "JC"}}, tmp_path)
    assert config.seed is None
    assert config.parallel_cores == 1
    assert config.fundi is None
    assert config.dataset.count == 1
    assert config.dataset.output_format == "phylip"
    assert config.dataset.output_path(3) == tmp_path / "alignments" / "alignment_3.phy"


@pytest.mark.parametrize(
    "section,value",
    [
        ("dataset", {"count": 0}),
        ("dataset", {"format": "nexus"}),
        ("dataset", {"compress": "yes"}),
        ("tree", {"newick": "(A:1,B:1);", "path": "tree.nwk"}),
        ("tree", {}),
        ("sequence", {"length": 10}),
        ("sequence", {"model": "JC"}),
        ("sequence", {"length": -5, "model": "JC"}),
        ("sequence", {"length": 10, "model": "JC", "type": "RNA"}),
        ("sequence", {"length": 10, "model": "JC", "length_ratio": 0.5}),
        ("sequence", {"length": 10, "model": "JC", "length_ratio": "twice"}),
        ("fundi", {"taxa": ["A"], "sites": [0]}),
        ("fundi", {"taxa": ["A", "B"]}),
        ("fundi", {"taxa": ["A", "B"], "sites": [0], "proportion": 0.1}),
        ("fundi", {"taxa": ["A", "B"], "proportion": 1.5}),
        ("parallel_cores", 0),
        ("seed", "abc"),
    ],
)
def test_invalid_configuration(base_payload: dict[str, object], tmp_path: Path, section: str, value: object) -> None:
    base_payload[section] = value
    with pytest.raises(ConfigurationError):
        _config(base_payload, tmp_path)


def test_missing_config_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_generation_config(tmp_path / "nope.yaml")


def test_verify_from_config(base_payload: dict[str, object], tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump(base_payload), encoding="utf-8")
    AlignmentSimulator.from_config_file(config_path).write_alignments()

    summaries = verify_from_config(config_path)
    assert [summary.path.name for summary in summaries] == ["generated_0.phy", "generated_1.phy"]
    assert all((summary.num_sequences, summary.length) == (3, 20) for summary in summaries)
    assert all(0 <= summary.constant_columns <= 20 for summary in summaries)


def test_command_line_entry_points(
    base_payload: dict[str, object],
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump(base_payload), encoding="utf-8")

    monkeypatch.setattr(sys, "argv", ["alisim", "--config", str(config_path), "--seed", "9", "--log-level", "WARNING"])
    generate_main()
    output = capsys.readouterr().out
    assert "Simulated 2 alignment(s) with model JC" in output
    assert "generated_1.phy" in output

    monkeypatch.setattr(sys, "argv", ["verify", "--alignment", str(tmp_path / "out" / "generated_0.phy")])
    verify_main()
    assert "3 sequences x 20 sites" in capsys.readouterr().out
