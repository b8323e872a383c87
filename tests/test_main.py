import json
import logging
from unittest.mock import patch

import pytest

import main
from core.hashing import ContentAddresser
from network.sync_session import AuthenticationRejected
from tilesync.config import Config


@pytest.fixture
def config_path(tmp_path, tile_dir):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    path = config_dir / "config.json"
    path.write_text(json.dumps({
        "log": {"info": False, "debug": False},
        "map": {"rawroot": str(tile_dir.parent), "id": tile_dir.name},
        "websocket": {"uplink": "ws://localhost:8080"},
    }))
    return str(path)


def test_status(config_path, tmp_path, capsys):
    lock = str(tmp_path / "fullSync.lock")
    main.main(["--config", config_path, "--lock-file", lock, "status"])
    out = capsys.readouterr().out
    assert ContentAddresser.map_id("map") in out
    assert "Tiles:      2" in out
    assert "Full sync:  pending" in out


def test_bad_config_exits(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main.main(["--config", str(tmp_path / "missing.json"), "status"])
    assert exc.value.code == 1


def test_auth_rejection_exits_non_zero(config_path):
    with patch.object(main.asyncio, "run", side_effect=AuthenticationRejected("map")) as run:
        with pytest.raises(SystemExit) as exc:
            main.main(["--config", config_path, "run"])
    assert exc.value.code == 1
    run.call_args[0][0].close()


def test_sample_command_runs_sample_mode(config_path):
    with patch.object(main, "run_agent") as run_agent:
        main.main(["--config", config_path, "sample"])
    assert run_agent.call_args.kwargs == {"sample_only": True}


def test_missing_map_folder_exits(config_path, caplog):
    with pytest.raises(SystemExit) as exc:
        main.main(["--config", config_path, "--map-id", "no-such-map", "run"])
    assert exc.value.code == 1
    assert "does not exist" in caplog.text


def test_app_title_names_the_agent_in_logs(tmp_path, tile_dir, caplog):
    config = Config()
    config.app.title = "risingmap-uplink"
    config.map.rawroot = str(tmp_path)
    config.map.id = "no-such-map"
    with caplog.at_level(logging.INFO, logger="tilesync"):
        with pytest.raises(SystemExit):
            main.run_agent(config)
    assert "Starting risingmap-uplink" in caplog.text
