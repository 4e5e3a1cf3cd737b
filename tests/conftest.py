import os
import stat
import sys
from dataclasses import replace

import pytest

# Ensure project root is importable (so `import cli` works without installing)
_project_root = os.path.dirname(os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from lcr import db  # noqa: E402
from lcr.identity import RootIdentity, _cert_pem, _key_pem, create_ca, create_leaf  # noqa: E402


@pytest.fixture(autouse=True)
def event_journal(tmp_path, monkeypatch):
    """Keep the sqlite event journal inside the test's tmp dir."""
    monkeypatch.setattr(db, "settings", replace(db.settings, db_path=str(tmp_path / "journal" / "events.db")))


def _script(path, body: str) -> str:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def setup_binary(tmp_path):
    """Fake service binary whose `setup` writes a small config.yaml and logs its args."""
    return _script(
        tmp_path / "fake-storj",
        'for a in "$@"; do case "$a" in --config-dir=*) d="${a#--config-dir=}";; esac; done\n'
        'echo "$@" > "$d/setup.args"\n'
        "printf 'addr: 1.2.3.4\\n# already commented\\n\\n  log.level: info\\n' > \"$d/config.yaml\"\n",
    )


@pytest.fixture
def failing_binary(tmp_path):
    return _script(tmp_path / "broken-storj", 'echo "cannot set up: disk full"\nexit 3\n')


@pytest.fixture(scope="session")
def root_identity():
    ca, ca_key = create_ca("root")
    leaf, leaf_key = create_leaf("root", ca, ca_key)
    return RootIdentity(
        ca_cert=_cert_pem(ca),
        ca_key=_key_pem(ca_key),
        identity_cert=_cert_pem(leaf) + _cert_pem(ca),
        identity_key=_key_pem(leaf_key),
    )
