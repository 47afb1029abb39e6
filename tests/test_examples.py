import os
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SCRIPTS = sorted((ROOT / "examples").glob("[0-9][0-9]_*.py"))

# Objective names each script must report in its fit summaries.
EXPECTED_OBJECTIVES = {
    "01_binned_least_squares.py": ["least_squares"],
    "02_binned_likelihood.py": ["least_squares", "poisson"],
    "03_unbinned_likelihood.py": ["unbinned"],
}


def _run(script: Path) -> subprocess.CompletedProcess:
    env = dict(os.environ, MPLBACKEND="Agg")
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT / "src"), env.get("PYTHONPATH")]))
    return subprocess.run(
        [sys.executable, str(script)],
        cwd=str(ROOT),
        env=env,
        capture_output=True,
        text=True,
        check=False,
    )


def test_every_script_has_expectations() -> None:
    assert sorted(p.name for p in SCRIPTS) == sorted(EXPECTED_OBJECTIVES)


@pytest.mark.examples
@pytest.mark.parametrize("script", SCRIPTS, ids=lambda p: p.name)
def test_example_fits_converge(script: Path) -> None:
    if "matplotlib" in script.read_text(encoding="utf-8"):
        pytest.importorskip("matplotlib")

    proc = _run(script)

    assert proc.returncode == 0, f"{script.name} failed:\n{proc.stdout}\n{proc.stderr}"
    for name in EXPECTED_OBJECTIVES[script.name]:
        assert f"objective={name!r}" in proc.stdout
    assert "valid: True" in proc.stdout
