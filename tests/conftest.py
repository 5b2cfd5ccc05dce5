import os
import sys
import tempfile
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Keep tests deterministic: no background ticker threads.
os.environ.setdefault("DAILY_RHYTHM_DISABLE_WATCHERS", "1")
# Never write runtime data or logs into the project tree.
_RUNTIME = tempfile.mkdtemp(prefix="daily_rhythm_tests_")
os.environ.setdefault("DAILY_RHYTHM_DATA_DIR", os.path.join(_RUNTIME, "data"))
os.environ.setdefault("DAILY_RHYTHM_LOG_DIR", os.path.join(_RUNTIME, "logs"))
