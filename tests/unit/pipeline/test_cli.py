import importlib.util
import os

import pytest

from methylflow.pipeline.config_utils import ConfigurationError

SCRIPT = os.path.join(os.path.dirname(__file__), os.pardir, os.pardir, os.pardir,
                      "scripts", "methylflow_nextgen.py")


@pytest.fixture
def cli():
    spec = importlib.util.spec_from_file_location("methylflow_nextgen", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_parse_overrides(cli):
    kwargs = cli.parse_cl_args(["run.yaml", "-n", "4", "--max-concurrent", "2", "--no-trim",
                                "--demultiplex", "--outdir", "final"])
    assert kwargs == {"config_file": "run.yaml", "workdir": None, "outdir": "final", "num_cores": 4,
                      "max_concurrent": 2, "demultiplex": True, "trim": False, "indexed": None}


def test_rejects_non_positive_cores(cli):
    with pytest.raises(SystemExit):
        cli.parse_cl_args(["run.yaml", "-n", "0"])


def test_requires_config(cli):
    with pytest.raises(SystemExit):
        cli.parse_cl_args([])


def test_exit_status(cli, mocker):
    mocker.patch.object(cli, "run_main", return_value=mocker.Mock(success=False))
    assert cli.main(config_file="run.yaml") == 1
    cli.run_main.return_value = mocker.Mock(success=True)
    assert cli.main(config_file="run.yaml") == 0
    cli.run_main.side_effect = ConfigurationError("no reference")
    assert cli.main(config_file="run.yaml") == 1
