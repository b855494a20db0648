import pytest

from fecom.config.load import load_config, resolve_path, snapshot_config_toml
from fecom.config.schemas import Config, RunCfg, TopologyCfg

TOML = """
[run]
diagnostics_level = 0

[io]
output_path = "${FECOM_RESOURCES_DIR}/output_test/commissioning_event.h5"

[sim]
source = "random"
n_events = 3
seed = 5

[topology]
geiger_rack_id = 6
"""


def test_load_config(tmp_path):
    p = tmp_path / "cfg.toml"
    p.write_text(TOML)
    cfg = load_config(p)
    assert isinstance(cfg, Config)
    assert cfg.run.diagnostics_level == 0
    assert cfg.sim.source == "random" and cfg.sim.n_events == 3
    assert cfg.topology.geiger_rack_id == 6
    assert cfg.topology.calo_rack_id == TopologyCfg().calo_rack_id
    assert cfg.io.compression == "gzip"
    assert snapshot_config_toml(p) == TOML


def test_diagnostics_level_is_validated():
    with pytest.raises(ValueError):
        RunCfg(diagnostics_level=3)


def test_sim_counts_are_validated():
    with pytest.raises(ValueError):
        Config(io={"output_path": "x.h5"}, sim={"n_events": -1})


def test_resolve_path_expands_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("FECOM_RESOURCES_DIR", str(tmp_path))
    assert resolve_path("${FECOM_RESOURCES_DIR}/output_test/a.h5") == tmp_path / "output_test" / "a.h5"
    assert resolve_path("$FECOM_RESOURCES_DIR/b.h5") == tmp_path / "b.h5"


def test_resolve_path_rejects_unset_variables(monkeypatch):
    monkeypatch.delenv("FECOM_UNSET_VARIABLE", raising=False)
    with pytest.raises(ValueError):
        resolve_path("${FECOM_UNSET_VARIABLE}/x.h5")


def test_assignment_is_validated():
    run = RunCfg()
    with pytest.raises(ValueError):
        run.diagnostics_level = 7
    assert run.diagnostics_level == 1
