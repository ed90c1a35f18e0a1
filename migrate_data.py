import re

import database as db

LEGACY_SHEET = "bonus_settings_monthly"
LEGACY_ID = re.compile(r"^(?P<clinic_id>.+)_(?P<month>\d{4}-\d{2})$")


def collapse_legacy_settings(records):
    """
    Reduce legacy per-(clinic, month) bonus settings to one per clinic.
    Rows are keyed '<clinic_id>_<YYYY-MM>' in the id column; the latest month wins.
    Returns {clinic_id: settings}.
    """
    latest = {}
    for record in records:
        match = LEGACY_ID.match(str(record.get("id", "")))
        if not match:
            print(f"[Migration] Skipping unrecognized id: {record.get('id')!r}")
            continue
        clinic_id, month = match.group("clinic_id"), match.group("month")
        if clinic_id in latest and latest[clinic_id][0] >= month:
            continue
        latest[clinic_id] = (month, {
            "pool_rate": record.get("pool_rate"),
            "self_pay_rate": record.get("self_pay_rate"),
            "retail_rate": record.get("retail_rate"),
        })
    return {clinic_id: settings for clinic_id, (_, settings) in latest.items()}


def migrate(overwrite=False):
    print("Starting migration...")

    # 1. Initialize Google Sheets
    print("Initializing Google Sheets...")
    try:
        db.init_db()
    except Exception as e:
        print(f"Error initializing DB (Check secrets.toml or credentials): {e}")
        return

    # 2. Read legacy monthly settings
    print(f"Reading legacy worksheet '{LEGACY_SHEET}'...")
    legacy_records = db.get_worksheet(LEGACY_SHEET).get_all_records()
    if not legacy_records:
        print("No legacy bonus settings found.")
        return

    # 3. Write clinic-level settings
    existing = {str(r["clinic_id"]) for r in db.get_worksheet("bonus_settings").get_all_records()}
    migrated = 0
    for clinic_id, settings in collapse_legacy_settings(legacy_records).items():
        if clinic_id in existing and not overwrite:
            print(f"Clinic {clinic_id} already has clinic-level settings, skipped.")
            continue
        defaults = db.get_bonus_settings(clinic_id)
        merged = {k: (v if v not in (None, "") else defaults[k]) for k, v in settings.items()}
        db.save_bonus_settings(clinic_id, merged)
        migrated += 1

    print(f"Migration completed! {migrated} clinic settings written.")


if __name__ == "__main__":
    migrate()
