"""
Tests for the command line entry point.
"""

import json

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from panograph.__main__ import load_records, main
from conftest import line_records


def run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["panograph", *argv])
    return main()


class TestLoadRecords:
    """Each accepted file shape yields the same records."""

    def test_shapes(self, tmp_path):
        records = line_records(2)
        for name, body in [
            ("list.json", records),
            ("points.json", {"points": records}),
            ("api.json", {"value": {"items": records}}),
        ]:
            path = tmp_path / name
            path.write_text(json.dumps(body))
            assert load_records(str(path)) == records


class TestMain:
    """Tests for the CLI."""

    def test_writes_geojson(self, tmp_path, monkeypatch, capsys):
        points = tmp_path / "points.json"
        points.write_text(json.dumps(line_records(4)))
        out = tmp_path / "lines.geojson"
        code = run(monkeypatch, str(points), "--geojson", str(out),
                   "--sequence", "seq", "--links", "p1", "--pick", "p1", "--yaw", "90")
        assert code == 0
        data = json.loads(out.read_text())
        assert data["features"][0]["properties"]["points"] == 4
        text = capsys.readouterr().out
        assert "4 panoramas in 1 sequences" in text
        assert "forward: p2" in text

    def test_missing_file(self, tmp_path, monkeypatch):
        assert run(monkeypatch, str(tmp_path / "nope.json")) == 1

    def test_unknown_point(self, tmp_path, monkeypatch):
        points = tmp_path / "points.json"
        points.write_text(json.dumps(line_records(2)))
        assert run(monkeypatch, str(points), "--links", "ghost") == 1


class TestSimulator:
    """The interactive walker driven by scripted input."""

    def test_walks_forward(self, tmp_path, monkeypatch, capsys):
        from panograph_sim import PanoramaSimulator

        points = tmp_path / "points.json"
        points.write_text(json.dumps(line_records(3)))
        commands = iter(["f", "f", "f", "j Panos/p_0.jpg", "q"])
        monkeypatch.setattr("builtins.input", lambda prompt="": next(commands))

        sim = PanoramaSimulator()
        assert sim.load(str(points))
        sim.run_interactive()
        out = capsys.readouterr().out
        assert "NavigateNext: p0 -> p1" in out
        assert "Dead end" in out
        assert "Steps taken: 2" in out
        assert sim.session.current_id == "p0"
