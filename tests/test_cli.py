import json

import pytest

import run
from poi_miner import config


@pytest.fixture(autouse=True)
def isolate(monkeypatch, tmp_path):
    monkeypatch.setattr(run, "load_env", lambda *a, **k: None)
    monkeypatch.setattr(config, "load_search_config", lambda path=None: False)
    monkeypatch.setattr(config, "SEARCH_POLYGON", [])
    monkeypatch.setattr(config, "SELECTED_CATEGORIES", [])


def test_preflight_pass(monkeypatch, capsys):
    monkeypatch.setenv("AMAP_API_KEY", "dummy")
    code = run.main(["--preflight", "--polygon", "[[0,0],[0,1],[1,1],[1,0]]", "--categories", "05,06"])
    out = capsys.readouterr().out
    assert code == 0
    assert "Grid: 50 x 50 = 2500 cells" in out
    assert "Preflight: PASS" in out


def test_preflight_fails_on_short_polygon_and_missing_key(monkeypatch, capsys):
    monkeypatch.delenv("AMAP_API_KEY", raising=False)
    code = run.main(["--preflight", "--polygon", "[[0,0],[1,1]]", "--categories", "05"])
    out = capsys.readouterr().out
    assert code == 1
    assert "API key: MISSING" in out
    assert "Polygon: FAIL" in out


def test_list_categories(capsys):
    assert run.main(["--list-categories"]) == 0
    assert "05  餐饮服务 (Dining)" in capsys.readouterr().out


def test_load_polygon_from_geojson_file(tmp_path):
    path = tmp_path / "area.geojson"
    ring = [[0, 0], [1, 0], [1, 1], [0, 0]]
    path.write_text(json.dumps({"type": "Feature", "geometry": {"type": "Polygon", "coordinates": [ring]}}))
    assert run.load_polygon(str(path)) == ring


def test_run_without_categories_exits_with_error(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("AMAP_API_KEY", "dummy")
    code = run.main(["--polygon", "[[0,0],[0,1],[1,1]]", "--out", str(tmp_path)])
    assert code == 1
    assert "Select at least one POI category" in capsys.readouterr().err


def _capture_run(monkeypatch):
    calls = []

    def fake_run(**kwargs):
        calls.append(kwargs)
        raise RuntimeError("stop")

    monkeypatch.setattr(run, "run", fake_run)
    return calls


def test_max_requests_comes_from_loaded_config(monkeypatch, tmp_path):
    monkeypatch.setenv("AMAP_API_KEY", "dummy")
    monkeypatch.setattr(config, "MAX_SEARCH_REQUESTS_PER_RUN", config.MAX_SEARCH_REQUESTS_PER_RUN)

    def load_search_config(path=None):
        config.MAX_SEARCH_REQUESTS_PER_RUN = 5
        return True

    monkeypatch.setattr(config, "load_search_config", load_search_config)
    calls = _capture_run(monkeypatch)

    run.main(
        ["--config", "search_config.json", "--polygon", "[[0,0],[0,1],[1,1]]", "--categories", "05", "--out", str(tmp_path)]
    )

    assert calls[0]["max_requests"] == 5


def test_max_requests_flag_overrides_config(monkeypatch, tmp_path):
    monkeypatch.setenv("AMAP_API_KEY", "dummy")
    monkeypatch.setattr(config, "MAX_SEARCH_REQUESTS_PER_RUN", 5)
    calls = _capture_run(monkeypatch)

    run.main(
        ["--max-requests", "7", "--polygon", "[[0,0],[0,1],[1,1]]", "--categories", "05", "--out", str(tmp_path)]
    )

    assert calls[0]["max_requests"] == 7


def test_format_xlsx_is_accepted(monkeypatch, tmp_path):
    monkeypatch.setenv("AMAP_API_KEY", "dummy")
    calls = _capture_run(monkeypatch)

    run.main(
        ["--format", "xlsx", "--polygon", "[[0,0],[0,1],[1,1]]", "--categories", "05", "--out", str(tmp_path)]
    )

    assert calls[0]["formats"] == ("xlsx",)
