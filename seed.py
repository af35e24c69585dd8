"""
Seed script: populates demo data for the Jamie Rivera account.

- Safe to run on a server where the accounts already exist.
- Clears any existing vitals/reports for jamie, then inserts 60 days of
  blood pressure, heart rate and glucose readings plus one lab report.
- Shares the lab report with a second demo account ("drlee") as viewer.
- Does NOT touch other user accounts.

Usage:
    python3 seed.py
"""

import random
from datetime import timedelta

from config import DB_PATH, UPLOAD_DIR, _utcnow
from db import Database
from errors import Conflict
from reports import upload_report
from sharing import create_share
from storage import FileStore
from users import login_user, register_user
from vitals import record_vital

USERNAME = "jamie"
PASSWORD = "demo1234"
PHYSICIAN = "drlee"
NOW = _utcnow()

# Minimal single-page PDF, enough for the content sniffing to accept it.
DEMO_PDF = (
    b"%PDF-1.4\n1 0 obj<</Type/Catalog/Pages 2 0 R>>endobj\n"
    b"2 0 obj<</Type/Pages/Kids[3 0 R]/Count 1>>endobj\n"
    b"3 0 obj<</Type/Page/Parent 2 0 R/MediaBox[0 0 612 792]>>endobj\n"
    b"trailer<</Root 1 0 R>>\n%%EOF\n"
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def ts(offset_days: int, hour: int = 8, minute: int = 0) -> str:
    d = (NOW - timedelta(days=offset_days)).replace(hour=hour, minute=minute, second=0)
    return d.strftime("%Y-%m-%dT%H:%M:%SZ")


def ensure_user(conn, username: str, email: str, full_name: str, dob: str) -> int:
    try:
        _, user = register_user(conn, username, email, PASSWORD, full_name, dob)
        print(f"Created account: {username} (id={user['id']})")
    except Conflict:
        _, user = login_user(conn, username, PASSWORD)
        print(f"Found existing account: {username} (id={user['id']})")
    return user["id"]


# ---------------------------------------------------------------------------
# Connect and ensure schema
# ---------------------------------------------------------------------------

db = Database(DB_PATH).open()
store = FileStore(UPLOAD_DIR).open()

with db.connect() as conn:
    uid = ensure_user(conn, USERNAME, "jamie@example.com", "Jamie Rivera", "1968-03-14")
    ensure_user(conn, PHYSICIAN, "drlee@example.com", "Dr. Morgan Lee", "1975-09-02")

    # Clear existing demo data for this user
    for ref in [r["file_path"] for r in conn.execute("SELECT file_path FROM reports WHERE user_id=?", (uid,))]:
        store.delete(ref)
    for tbl in ["reports", "vitals"]:
        conn.execute(f"DELETE FROM {tbl} WHERE user_id=?", (uid,))
    conn.commit()
    print("Cleared existing data for jamie.")

    # -----------------------------------------------------------------------
    # Vitals (60 days, morning readings)
    # -----------------------------------------------------------------------

    rng = random.Random(42)  # fixed seed for reproducibility

    inserted = 0
    for offset in range(59, -1, -1):
        record_vital(conn, uid, "blood_pressure", rng.randint(128, 146), "mmHg systolic",
                     measured_at=ts(offset, 7, rng.randint(0, 30)))
        record_vital(conn, uid, "heart_rate", rng.randint(62, 84), "bpm",
                     measured_at=ts(offset, 7, rng.randint(31, 59)))
        inserted += 2
        if offset % 3 == 0:
            record_vital(conn, uid, "blood_glucose", round(rng.uniform(5.4, 8.9), 1), "mmol/L",
                         measured_at=ts(offset, 12), notes="after lunch")
            inserted += 1
    print(f"Inserted {inserted} vital readings.")

    # -----------------------------------------------------------------------
    # Lab report, shared with the physician account
    # -----------------------------------------------------------------------

    report = upload_report(
        conn, store, uid,
        data=DEMO_PDF,
        file_name="hba1c-panel.pdf",
        file_type="application/pdf",
        report_type="lab_report",
        report_date=(NOW - timedelta(days=14)).date().isoformat(),
        description="HbA1c and lipid panel",
    )
    print(f"Uploaded report {report['id']} ({report['file_name']}).")

    expiry = ts(-30)
    share = create_share(conn, uid, report["id"], PHYSICIAN, "viewer", expires_at=expiry)
    print(f"Shared report {report['id']} with {PHYSICIAN} until {share['expires_at']}.")

db.close()
print(f"Done. Log in as {USERNAME} / {PASSWORD} (seeded {NOW:%Y-%m-%d}).")
