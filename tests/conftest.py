import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def pytest_collection_modifyitems(config, items):
    """Tag each test with the layer its module lives in (unit/domain, ...)."""
    unit_root = ROOT / "tests" / "helpdesk" / "unit"
    for item in items:
        path = Path(str(item.fspath)).resolve()
        if unit_root in path.parents:
            layer = path.relative_to(unit_root).parts[0]
            item.add_marker(getattr(pytest.mark, layer))
