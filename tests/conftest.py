import sys
from pathlib import Path


# The packages live at the repository root; make them importable without an install.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
