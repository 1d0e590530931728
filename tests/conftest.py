from pathlib import Path
import os
import sys
import tempfile

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# keep log files out of the working tree
os.environ.setdefault("COACHCOO_LOG_DIR", tempfile.mkdtemp(prefix="coachcoo-logs-"))

import pytest  # noqa: E402

from engine.core.models import Routine  # noqa: E402
from tests.helpers import make_routine  # noqa: E402


@pytest.fixture
def simple_routine() -> Routine:
    """Three steps without listening; every step advances sequentially."""
    return make_routine(
        [
            {"id": "s1", "prompt": {"tts": "Step one"}},
            {"id": "s2", "prompt": {"tts": "Step two"}},
            {"id": "s3", "prompt": {"tts": "Step three"}},
        ]
    )
