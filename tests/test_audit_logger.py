import json

from app.infrastructure.audit.std_logger import StdAuditLogger
from app.utils import hash_phone_number


def test_audit_line_hashes_phone(caplog):
    audit = StdAuditLogger()
    with caplog.at_level("INFO", logger="app.audit"):
        audit.log("OTP_ISSUED", "01712345678", user_id="u1", details={"dispatched": True})

    assert "01712345678" not in caplog.text
    entry = json.loads(caplog.records[-1].getMessage().split("AUDIT: ", 1)[1])
    assert entry["action"] == "OTP_ISSUED"
    assert entry["phone_hash"] == hash_phone_number("01712345678")
    assert entry["details"] == {"dispatched": True}


def test_failed_events_log_as_warning(caplog):
    with caplog.at_level("INFO", logger="app.audit"):
        StdAuditLogger().log("OTP_VERIFY_FAILED", "01712345678", success=False)
    assert caplog.records[-1].levelname == "WARNING"
