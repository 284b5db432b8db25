import subprocess
import sys


def test_app_help_runs():
    proc = subprocess.run(
        [sys.executable, "-m", "iot_comm.app", "-h"],
        capture_output=True,
        text=True,
        check=False,
    )
    assert proc.returncode == 0
    out = proc.stdout + proc.stderr
    assert "main entrypoint" in out
    assert "run" in out
    assert "broker" in out
    assert "clients" in out


def test_run_help_runs():
    proc = subprocess.run(
        [sys.executable, "-m", "iot_comm.app", "run", "-h"],
        capture_output=True,
        text=True,
        check=False,
    )
    assert proc.returncode == 0
    out = proc.stdout + proc.stderr
    assert "num-clients" in out
    assert "--workers" in out
    assert "--interval" in out


def test_broker_help_runs():
    proc = subprocess.run(
        [sys.executable, "-m", "iot_comm.broker", "-h"],
        capture_output=True,
        text=True,
        check=False,
    )
    assert proc.returncode == 0
    assert "--bind" in proc.stdout
