"""The client package must import without a valid server configuration."""

import os
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]


def test_client_imports_with_invalid_server_settings():
    # Domain budget above the client budget makes Settings() fail
    env = {**os.environ, "RATE_LIMIT_DOMAIN_MAX": "50", "RATE_LIMIT_CLIENT_MAX": "30"}
    code = (
        "import sys\n"
        "import relay.client\n"
        "assert 'relay.app.core.config' not in sys.modules\n"
    )

    result = subprocess.run(
        [sys.executable, "-c", code],
        cwd=ROOT,
        env=env,
        capture_output=True,
        text=True,
    )

    assert result.returncode == 0, result.stderr
