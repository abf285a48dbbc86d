import json
from pathlib import Path

import pytest

from gradlens.core.network import FeedForwardNetwork
from gradlens.data import load_points
from gradlens.training import pipelines


def test_pipeline_produces_artifacts(tmp_path):
    config = pipelines.load_preset("blobs-explain")
    config["train"]["run_dir"] = str(tmp_path / "run")
    config["train"]["steps"] = 40

    result = pipelines.run_pipeline(config)
    run_dir = Path(config["train"]["run_dir"])

    assert result.steps == 40
    manifest = json.loads(Path(result.manifest_path).read_text())
    assert manifest["config"]["train"]["seed"] == 123
    assert manifest["data"]["rows"] == 40
    assert manifest["network"]["layer_dims"] == [2, 3, 1]

    metrics = [json.loads(line) for line in Path(result.metrics_path).read_text().splitlines() if line]
    assert len(metrics) == 40
    assert metrics[0]["split"] == "train"
    assert all("loss" in entry and "sha" in entry for entry in metrics)
    assert (run_dir / "metrics.csv").exists()
    assert (run_dir / "metrics.jsonl").read_text() == Path(result.metrics_path).read_text()

    val = [json.loads(line) for line in (run_dir / "metrics_val.jsonl").read_text().splitlines() if line]
    assert val and {"accuracy", "auc", "gap"} <= set(val[-1])

    report = json.loads(Path(result.explain_path).read_text())
    assert set(report) >= {
        "saliency",
        "integrated_gradients",
        "surrogate",
        "attack",
        "counterfactual",
        "hidden_units",
        "roc_auc",
    }
    assert len(report["integrated_gradients"]["attributions"]) == 2
    assert report["attack"]["kind"] == "pgd"
    assert len(report["attack"]["path"]) == report["attack"]["steps_taken"] + 1


def test_unknown_preset_lists_available():
    with pytest.raises(KeyError) as info:
        pipelines.load_preset("missing")
    assert "blobs-tanh-sgd" in str(info.value)


def test_missing_sections_rejected(tmp_path):
    with pytest.raises(KeyError):
        pipelines.run_pipeline({"data": {}, "model": {}})


def test_file_presets_override(tmp_path, monkeypatch):
    preset_dir = tmp_path / "presets"
    preset_dir.mkdir()
    (preset_dir / "tiny.yaml").write_text(
        "data: {}\nmodel: {hidden: [2]}\ntrain: {steps: 3, run_dir: %s}\n" % (tmp_path / "tiny")
    )
    monkeypatch.setattr(pipelines, "_PRESET_DIR", preset_dir)
    monkeypatch.setattr(pipelines, "_FILE_PRESETS_CACHE", None)

    assert "tiny" in pipelines.presets()
    result = pipelines.run_pipeline(pipelines.load_preset("tiny"))
    assert result.steps == 3

    (preset_dir / "broken.json").write_text('{"data": {}}')
    monkeypatch.setattr(pipelines, "_FILE_PRESETS_CACHE", None)
    with pytest.raises(KeyError):
        pipelines.presets()


def test_packaged_yaml_preset_is_listed():
    assert "blobs-momentum-l2" in pipelines.presets()


def test_explain_point_accepts_uppercase_attack_settings():
    points = load_points()
    net = FeedForwardNetwork([2, 3, 1], seed=0)
    cfg = {"point": [-0.8, -0.6], "label": 0, "attack": "PGD", "norm": "L2", "eps": 5.0, "steps": 7}
    report = pipelines.explain_point(net, points, cfg)
    assert report["attack"]["kind"] == "pgd"
    assert report["attack"]["norm"] == "l2"
    assert report["attack"]["steps_taken"] == 7
