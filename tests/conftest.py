from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

_SRC = (Path(__file__).resolve().parents[1] / "src").as_posix()
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)


@pytest.fixture(autouse=True)
def _isolated_alert_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # Runs must not pick up AOI / tile directories from the developer's shell.
    for name in list(os.environ):
        if name.startswith("INTEGRATED_ALERT_"):
            monkeypatch.delenv(name, raising=False)
