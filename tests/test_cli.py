import pytest

from sidequests.cli import main


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SIDEQUESTS_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("SIDEQUESTS_LOCAL_TZ", "UTC")
    monkeypatch.setattr("sidequests.cli.setup_logging", lambda settings, debug=False: None)


def test_packs_lists_favorites_first(capsys):
    assert main(["packs"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert "Favorites" in lines[0]
    # First launch activates the first bundled pack
    assert lines[1].startswith("[*] City")


def test_next_prints_and_publishes(capsys):
    assert main(["next"]) == 0
    out = capsys.readouterr().out
    # Without a home only prompts valid anywhere qualify
    assert "Find a street you have never walked down" in out

    assert main(["latest"]) == 0
    assert "Find a street you have never walked down" in capsys.readouterr().out


def test_favorites_mode_without_favorites(capsys):
    assert main(["toggle-pack", "favorites"]) == 0
    assert main(["next"]) == 0
    assert "No favorites yet" in capsys.readouterr().out


def test_unknown_pack(capsys):
    assert main(["toggle-pack", "6f1c2a9e-3b4d-4c8a-9f21-0a7e5d3b1c99"]) == 1
    assert "Unknown pack" in capsys.readouterr().out


def test_favorite_round_trip(capsys):
    prompt_id = "a1b7c3d2-1e4f-4a5b-8c6d-000000000303"
    assert main(["favorite", prompt_id]) == 0
    assert main(["favorite", prompt_id]) == 0
    out = capsys.readouterr().out
    assert "Added to favorites." in out
    assert "Removed from favorites." in out


def test_home_set_and_clear(capsys):
    assert main(["home", "set", "--lat", "49.2827", "--lon", "-123.1207"]) == 0
    assert "Home: 49.28270, -123.12070" in capsys.readouterr().out

    assert main(["--at", "49.2827,-123.1207", "home", "status"]) == 0
    assert "Currently at home" in capsys.readouterr().out

    assert main(["home", "clear"]) == 0
    assert "No home location set." in capsys.readouterr().out


def test_home_capture_from_current_position(capsys):
    assert main(["--at", "49.2827,-123.1207", "home", "set"]) == 0
    assert "Home location set." in capsys.readouterr().out
    assert main(["home", "status"]) == 0
    assert "Home: 49.28270" in capsys.readouterr().out


def test_phase_without_home(capsys):
    assert main(["phase"]) == 0
    assert "Day phase: day" in capsys.readouterr().out


def test_bad_coordinate_rejected():
    with pytest.raises(SystemExit):
        main(["--at", "north", "packs"])


@pytest.mark.parametrize("argv", [
    ["toggle-pack", "not-a-uuid"],
    ["favorite", "1234"],
    ["home", "set", "--lat", "200", "--lon", "0"],
    ["home", "set", "--lat", "45", "--lon", "east"],
    ["--at", "95,0", "packs"],
])
def test_invalid_arguments_are_usage_errors(argv, capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    assert exc_info.value.code == 2
    assert "error:" in capsys.readouterr().err
