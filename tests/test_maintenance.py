from __future__ import annotations

import pytest

from scripts import qr_maintenance


def test_cleanup_and_missing_on_empty_database():
    assert qr_maintenance.main(["cleanup", "--days", "30"]) == 0
    assert qr_maintenance.main(["missing"]) == 0


def test_unknown_command_is_rejected():
    with pytest.raises(SystemExit):
        qr_maintenance.main(["rebuild"])
