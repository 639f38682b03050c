from __future__ import annotations

from pathlib import Path

import pytest

from app.clients.credential_store import StoreUnavailableError
from app.clients.email_log import SQLiteEmailLog


def test_records_are_listed_newest_first(tmp_path: Path) -> None:
    log = SQLiteEmailLog(str(tmp_path / "log.sqlite3"))

    log.record(
        user_id="u",
        company_name="Acme",
        company_email="hr@acme.test",
        status="sent",
        message_id="m-1",
    )
    log.record(
        user_id="u",
        company_name="Globex",
        company_email="jobs@globex.test",
        status="failed",
        error_message="Gmail API error 400",
    )
    log.record(user_id="other", company_name="X", company_email="x@x.test", status="sent")

    items = log.list_for_user("u")

    assert [item["company_name"] for item in items] == ["Globex", "Acme"]
    assert items[0]["sent_at"] is None
    assert items[1]["sent_at"] is not None
    assert log.list_for_user("u", limit=1)[0]["company_name"] == "Globex"


def test_unusable_database_path_surfaces_as_store_unavailable(tmp_path: Path) -> None:
    # A directory cannot be opened as a database file.
    with pytest.raises(StoreUnavailableError):
        SQLiteEmailLog(str(tmp_path))
