"""
Tests for the command-line interface in offline mode
"""

import json
import math
import sys

import pytest
from shapely.geometry import box

import cli


SIDE = math.sqrt(5000.0)


def run_cli(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["cli.py", *argv])
    return cli.main()


@pytest.fixture
def workspace(tmp_path, monkeypatch, geo, site_feature):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ARCGIS_TOKEN", raising=False)

    site_path = tmp_path / "site.geojson"
    site_path.write_text(json.dumps(site_feature), encoding="utf-8")

    layers_path = tmp_path / "layers.json"
    layers = {"flood": geo.collection(geo.feature(box(0, 0, SIDE / 2, SIDE)))}
    layers_path.write_text(json.dumps(layers), encoding="utf-8")
    return tmp_path


class TestDevelop:
    def test_writes_feature_collection(self, monkeypatch, workspace):
        output = workspace / "out" / "developable.geojson"
        code = run_cli(monkeypatch, "develop", "-i", "site.geojson", "-l", "layers.json", "-o", str(output))

        assert code == 0
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["type"] == "FeatureCollection"
        assert len(data["features"]) == 1
        assert data["features"][0]["properties"]["name"] == "Developable Area - Auto 1"

    def test_missing_input(self, monkeypatch, workspace):
        assert run_cli(monkeypatch, "develop", "-i", "missing.geojson", "-l", "layers.json") == 1


class TestScore:
    def test_report_and_summary(self, monkeypatch, workspace, capsys):
        output = workspace / "report.json"
        code = run_cli(
            monkeypatch, "score", "-i", "site.geojson", "-l", "layers.json",
            "-o", str(output), "--report-id", "SS-CLI-1", "--summary",
        )

        assert code == 0
        report = json.loads(output.read_text(encoding="utf-8"))
        assert report["report_id"] == "SS-CLI-1"
        assert len(report["scores"]["criteria"]) == 16

        summary = json.loads(capsys.readouterr().out)
        assert summary["report_id"] == "SS-CLI-1"
        assert summary["max"] == 48
        assert summary["criteria"]["flood"] < 3


class TestBatch:
    def test_reports_per_site(self, monkeypatch, workspace, geo):
        sites = workspace / "sites"
        sites.mkdir()
        for name in ("Lot One", "lot_two"):
            (sites / f"{name}.geojson").write_text(json.dumps(geo.feature(box(0, 0, 50, 50))), encoding="utf-8")

        code = run_cli(monkeypatch, "batch", "-i", str(sites), "-o", "reports", "-l", "layers.json", "--delay", "0")

        assert code == 0
        assert sorted(p.name for p in (workspace / "reports").iterdir()) == [
            "lot_one_report.json",
            "lot_two_report.json",
        ]

    def test_empty_directory(self, monkeypatch, workspace):
        (workspace / "empty").mkdir()
        assert run_cli(monkeypatch, "batch", "-i", "empty", "-l", "layers.json") == 1


def test_no_command(monkeypatch):
    assert run_cli(monkeypatch) == 1
