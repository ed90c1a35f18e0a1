import json
import os
import uuid
from datetime import datetime

import gspread
import streamlit as st
import toml

import revenue
import utils

# Constants
SHEET_URL_KEY = "spreadsheet"
SECRETS_PATH = ".streamlit/secrets.toml"
SCOPES = ['https://www.googleapis.com/auth/spreadsheets', 'https://www.googleapis.com/auth/drive']

# Worksheet name -> header row. Nested fields are stored as JSON text.
SHEETS = {
    "daily_accounting": ["clinic_id", "date", "rows", "is_locked", "audit_log", "updated_at"],
    "technician_records": ["id", "clinic_id", "lab_name", "date", "type", "amount", "linked_row_id",
                           "patient_name", "doctor_id", "doctor_name", "treatment_content", "category", "note",
                           "updated_at"],
    "nhi_records": ["id", "clinic_id", "month", "doctor_id", "doctor_name", "amount", "note", "updated_at"],
    "salary_adjustments": ["id", "clinic_id", "doctor_id", "month", "date", "category", "amount", "note",
                           "updated_at"],
    "bonus_settings": ["clinic_id", "pool_rate", "self_pay_rate", "retail_rate", "updated_at"],
    "staff": ["id", "name", "clinic_id", "role", "is_active", "base_salary", "allowance", "monthly_insurance_cost"],
    "doctors": ["id", "name", "clinic_id", "commission_rates", "is_deleted"],
    "staff_schedules": ["clinic_id", "date", "staff_configuration", "updated_at"],
    "monthly_closings": ["clinic_id", "month", "is_locked", "locked_at", "locked_by", "unlocked_at"],
    "clinics": ["id", "name"],
}

JSON_FIELDS = ["rows", "audit_log", "commission_rates", "staff_configuration"]

# Identifiers stay text even when they look like numbers ("101", "007").
ID_FIELDS = ["id", "clinic_id", "doctor_id", "linked_row_id"]

# Google Sheets rejects cells longer than this.
CELL_CHAR_LIMIT = 50000

STAFF_PAY_FIELDS = ["base_salary", "allowance", "monthly_insurance_cost"]


class MonthLockedError(ValueError):
    """Raised when writing into a month that has been closed."""


def get_config():
    """
    Retrieve configuration from Streamlit secrets or local Config file.
    Returns (sheet_url, creds_dict)
    """
    # 1. Streamlit secrets (cloud and `streamlit run`)
    try:
        if "connections" in st.secrets and "gsheets" in st.secrets["connections"]:
            sheet_url = st.secrets["connections"]["gsheets"][SHEET_URL_KEY]
            creds_dict = dict(st.secrets["gcp_service_account"])
            return sheet_url, creds_dict
    except FileNotFoundError:
        pass  # Not running in streamlit or no secrets found yet
    except KeyError:
        pass

    # 2. .streamlit/secrets.toml read directly (standalone scripts)
    if os.path.exists(SECRETS_PATH):
        try:
            secrets = toml.load(SECRETS_PATH)
            sheet_url = secrets["connections"]["gsheets"][SHEET_URL_KEY]
            creds_dict = secrets["gcp_service_account"]
            return sheet_url, creds_dict
        except (KeyError, toml.TomlDecodeError) as e:
            print(f"Error loading secrets.toml: {e}")

    return None, None


def get_client():
    """Authenticate and return gspread client."""
    _, creds_dict = get_config()
    if not creds_dict:
        raise ValueError("Credentials not found. Please configure .streamlit/secrets.toml")
    return gspread.service_account_from_dict(dict(creds_dict), scopes=SCOPES)


def get_spreadsheet():
    """Open and return the spreadsheet object."""
    client = get_client()
    sheet_url, _ = get_config()
    if not sheet_url:
        raise ValueError("Sheet URL not found. Please configure .streamlit/secrets.toml")
    return client.open_by_url(sheet_url)


def get_worksheet(name):
    """Get a specific worksheet, create it with its header row if missing."""
    sh = get_spreadsheet()
    try:
        ws = sh.worksheet(name)
    except gspread.WorksheetNotFound:
        ws = sh.add_worksheet(title=name, rows=1000, cols=len(SHEETS.get(name, [])) or 20)
        if name in SHEETS:
            ws.append_row(SHEETS[name])
    return ws


def init_db():
    """
    Initialize the Google Sheet with required worksheets and headers.
    """
    for name, headers in SHEETS.items():
        ws = get_worksheet(name)
        if not ws.row_values(1):
            ws.append_row(headers)


# --- Row helpers ---

def _now():
    return datetime.now().strftime('%Y-%m-%d %H:%M:%S')


def _to_bool(value):
    if isinstance(value, str):
        return value.strip().upper() in ("TRUE", "1", "Y", "YES")
    return bool(value)


def _decode(record):
    record = dict(record)
    for field in JSON_FIELDS:
        if field in record:
            raw = record[field]
            if isinstance(raw, str):
                try:
                    record[field] = json.loads(raw) if raw.strip() else None
                except json.JSONDecodeError:
                    print(f"[Database] Unreadable {field} value, ignored: {raw[:40]!r}")
                    record[field] = None
    for field in ID_FIELDS:
        if field in record and record[field] is not None:
            record[field] = str(record[field])
    return record


def _encode(name, record):
    row = []
    for field in SHEETS[name]:
        value = record.get(field)
        if field in JSON_FIELDS:
            value = json.dumps(value if value is not None else [], ensure_ascii=False)
            if len(value) > CELL_CHAR_LIMIT:
                raise ValueError(
                    f"{name}.{field} 資料過大 ({len(value)} 字元)，超過 Google Sheets 單格上限 {CELL_CHAR_LIMIT} 字元"
                )
        elif isinstance(value, bool):
            value = "TRUE" if value else "FALSE"
        elif value is None:
            value = ""
        row.append(value)
    return row


def _get_records(name):
    ws = get_worksheet(name)
    id_columns = [i + 1 for i, field in enumerate(SHEETS.get(name, [])) if field in ID_FIELDS]
    return ws, [_decode(r) for r in ws.get_all_records(numericise_ignore=id_columns)]


def _find_row(records, **match):
    """Return (sheet_row_number, record) of the first match; header is row 1."""
    for i, record in enumerate(records):
        if all(str(record.get(k, "")) == str(v) for k, v in match.items()):
            return i + 2, record
    return None, None


def _upsert(name, record, **match):
    ws, records = _get_records(name)
    row_num, _ = _find_row(records, **match)
    values = _encode(name, record)
    if row_num:
        last_cell = gspread.utils.rowcol_to_a1(row_num, len(values))
        ws.update(range_name=f"A{row_num}:{last_cell}", values=[values])
    else:
        ws.append_row(values)


def _delete_unlocked(name, record_id, month_field):
    """Delete a record by id unless its month is closed."""
    ws, records = _get_records(name)
    row_num, record = _find_row(records, id=record_id)
    if row_num is None:
        print(f"[Database] {name} {record_id} not found, nothing deleted.")
        return
    ensure_month_unlocked(record["clinic_id"], record[month_field])
    ws.delete_rows(row_num)


# --- Monthly closing (lock) ---

def get_monthly_closing_status(clinic_id, year_month):
    _, records = _get_records("monthly_closings")
    _, record = _find_row(records, clinic_id=clinic_id, month=year_month)
    if record is None:
        return None
    record["is_locked"] = _to_bool(record.get("is_locked"))
    return record


def is_month_locked(clinic_id, year_month):
    status = get_monthly_closing_status(clinic_id, year_month)
    return bool(status and status["is_locked"])


def ensure_month_unlocked(clinic_id, date_or_month):
    year_month = utils.month_of(date_or_month)
    if is_month_locked(clinic_id, year_month):
        raise MonthLockedError(f"{year_month} 已月結鎖定，無法修改 (clinic {clinic_id})")


def lock_month(clinic_id, year_month, user_name):
    """Lock a month; every daily record of the month must already be closed."""
    unlocked = sorted(
        date for date, record in load_month_accounting_records(clinic_id, year_month).items()
        if not record.get("is_locked")
    )
    if unlocked:
        raise ValueError("無法鎖定，以下日期尚未結帳：" + ", ".join(unlocked))

    status = get_monthly_closing_status(clinic_id, year_month) or {}
    status.update({
        "clinic_id": clinic_id,
        "month": year_month,
        "is_locked": True,
        "locked_at": _now(),
        "locked_by": user_name,
    })
    _upsert("monthly_closings", status, clinic_id=clinic_id, month=year_month)


def unlock_month(clinic_id, year_month):
    status = get_monthly_closing_status(clinic_id, year_month)
    if status is None:
        return
    status["is_locked"] = False
    status["unlocked_at"] = _now()
    _upsert("monthly_closings", status, clinic_id=clinic_id, month=year_month)


# --- Daily accounting ---

def _daily_record(record):
    record["is_locked"] = _to_bool(record.get("is_locked"))
    record["rows"] = record.get("rows") or []
    record["audit_log"] = record.get("audit_log") or []
    return record


def load_daily_accounting(clinic_id, date):
    """Return the record for one clinic day, or None when nothing was saved."""
    _, records = _get_records("daily_accounting")
    _, record = _find_row(records, clinic_id=clinic_id, date=date)
    return _daily_record(record) if record else None


def load_month_accounting_records(clinic_id, year_month):
    """All daily records of a month keyed by date (one sheet read)."""
    _, records = _get_records("daily_accounting")
    prefix = f"{year_month}-"
    return {
        str(r["date"]): _daily_record(r)
        for r in records
        if str(r.get("clinic_id")) == str(clinic_id) and str(r.get("date", "")).startswith(prefix)
    }


def load_month_accounting(clinic_id, year_month):
    """Flattened rows of the month, each tagged with its original_date."""
    records = load_month_accounting_records(clinic_id, year_month)
    if not records:
        print(f"[Database] No accounting records for clinic {clinic_id} in {year_month}.")
    return revenue.flatten_month(records, year_month)


def save_daily_accounting(record, audit_entry=None):
    """Upsert one clinic day. Rows are sanitized before they are written."""
    clinic_id, date = record["clinic_id"], record["date"]
    ensure_month_unlocked(clinic_id, date)

    existing = load_daily_accounting(clinic_id, date)
    audit_log = list(existing["audit_log"]) if existing else []
    if audit_entry:
        audit_log.append(audit_entry)

    payload = {
        "clinic_id": clinic_id,
        "date": date,
        "rows": [revenue.hydrate_row(r) for r in record.get("rows", [])],
        "is_locked": record.get("is_locked", existing["is_locked"] if existing else False),
        "audit_log": audit_log,
        "updated_at": _now(),
    }
    _upsert("daily_accounting", payload, clinic_id=clinic_id, date=date)


def _set_daily_lock(clinic_id, date, locked, user_name):
    existing = load_daily_accounting(clinic_id, date)
    if existing is None:
        raise ValueError(f"{date} 無帳務資料")
    existing["is_locked"] = locked
    existing["audit_log"].append({
        "timestamp": _now(),
        "user_name": user_name,
        "action": "LOCK" if locked else "UNLOCK",
    })
    existing["updated_at"] = _now()
    _upsert("daily_accounting", existing, clinic_id=clinic_id, date=date)


def lock_daily_report(clinic_id, date, user_name):
    _set_daily_lock(clinic_id, date, True, user_name)


def unlock_daily_report(clinic_id, date, user_name):
    ensure_month_unlocked(clinic_id, date)
    _set_daily_lock(clinic_id, date, False, user_name)


# --- Technician (lab) records ---

def get_technician_records(clinic_id, lab_name, year_month):
    _, records = _get_records("technician_records")
    results = [
        r for r in records
        if str(r.get("clinic_id")) == str(clinic_id) and utils.month_of(r.get("date", "")) == year_month
    ]
    if lab_name:
        results = [r for r in results if r.get("lab_name") == lab_name]
    for r in results:
        r["amount"] = utils.to_number(r.get("amount"))
    return results


def save_technician_record(record):
    ensure_month_unlocked(record["clinic_id"], record["date"])
    record = dict(record)
    record["id"] = record.get("id") or uuid.uuid4().hex
    record["type"] = record.get("type") or "manual"
    record["updated_at"] = _now()
    _upsert("technician_records", record, id=record["id"])
    return record["id"]


def delete_technician_record(record_id):
    _delete_unlocked("technician_records", record_id, "date")


# --- NHI records ---

def get_nhi_records(clinic_id, year_month):
    _, records = _get_records("nhi_records")
    results = [r for r in records if str(r.get("clinic_id")) == str(clinic_id) and r.get("month") == year_month]
    for r in results:
        r["amount"] = utils.to_number(r.get("amount"))
    return results


def save_nhi_records(records):
    """Batch upsert; one record per clinic / month / doctor."""
    for record in records:
        ensure_month_unlocked(record["clinic_id"], record["month"])
    for record in records:
        record = dict(record)
        record["id"] = f"{record['clinic_id']}_{record['month']}_{record['doctor_id']}"
        record["amount"] = utils.to_number(record.get("amount"))
        record["updated_at"] = _now()
        _upsert("nhi_records", record, id=record["id"])


# --- Salary adjustments ---

def get_clinic_salary_adjustments(clinic_id, year_month):
    _, records = _get_records("salary_adjustments")
    results = [r for r in records if str(r.get("clinic_id")) == str(clinic_id) and r.get("month") == year_month]
    for r in results:
        r["amount"] = utils.to_number(r.get("amount"))
    return results


def add_salary_adjustment(adjustment):
    ensure_month_unlocked(adjustment["clinic_id"], adjustment["month"])
    adjustment = dict(adjustment)
    adjustment["id"] = adjustment.get("id") or uuid.uuid4().hex
    adjustment["updated_at"] = _now()
    get_worksheet("salary_adjustments").append_row(_encode("salary_adjustments", adjustment))
    return adjustment["id"]


def delete_salary_adjustment(adjustment_id):
    _delete_unlocked("salary_adjustments", adjustment_id, "month")


# --- Staff schedules (off / leave / Sunday overtime) ---

def _empty_staff_configuration():
    return {"off": [], "leave": [], "overtime": []}


def get_staff_schedules(clinic_id, year_month):
    _, records = _get_records("staff_schedules")
    prefix = f"{year_month}-"
    schedules = []
    for r in records:
        if str(r.get("clinic_id")) != str(clinic_id) or not str(r.get("date", "")).startswith(prefix):
            continue
        r["date"] = str(r["date"])
        r["staff_configuration"] = dict(_empty_staff_configuration(), **(r.get("staff_configuration") or {}))
        schedules.append(r)
    return sorted(schedules, key=lambda s: s["date"])


def save_staff_schedule(clinic_id, date, staff_configuration):
    ensure_month_unlocked(clinic_id, date)
    payload = {
        "clinic_id": clinic_id,
        "date": date,
        "staff_configuration": dict(_empty_staff_configuration(), **(staff_configuration or {})),
        "updated_at": _now(),
    }
    _upsert("staff_schedules", payload, clinic_id=clinic_id, date=date)


def set_staff_attendance(clinic_id, date, staff_id, status, entry_type=""):
    """
    Record one staff member's status on a day: 'off', 'leave', 'overtime'
    or 'work' (clears any entry). Replaces the member's previous entry.
    """
    if status not in ("off", "leave", "overtime", "work"):
        raise ValueError(f"Unknown attendance status: {status}")
    staff_id = str(staff_id)
    existing = next((s for s in get_staff_schedules(clinic_id, utils.month_of(date)) if s["date"] == date), None)
    config = existing["staff_configuration"] if existing else _empty_staff_configuration()

    config["off"] = [s for s in config["off"] if str(s) != staff_id]
    config["leave"] = [e for e in config["leave"] if str(e.get("id")) != staff_id]
    config["overtime"] = [e for e in config["overtime"] if str(e.get("id")) != staff_id]
    if status == "off":
        config["off"].append(staff_id)
    elif status in ("leave", "overtime"):
        config[status].append({"id": staff_id, "type": entry_type})

    save_staff_schedule(clinic_id, date, config)


# --- Settings ---

def get_bonus_settings(clinic_id):
    """Stored bonus rates of a clinic; any missing value uses the default."""
    _, records = _get_records("bonus_settings")
    _, record = _find_row(records, clinic_id=clinic_id)
    settings = dict(utils.DEFAULT_BONUS_SETTINGS)
    if record:
        for key in settings:
            value = record.get(key)
            if value is not None and value != "":
                settings[key] = utils.to_number(value)
    return settings


def save_bonus_settings(clinic_id, settings):
    payload = {
        "clinic_id": clinic_id,
        "pool_rate": utils.to_number(settings.get("pool_rate")),
        "self_pay_rate": utils.to_number(settings.get("self_pay_rate")),
        "retail_rate": utils.to_number(settings.get("retail_rate")),
        "updated_at": _now(),
    }
    _upsert("bonus_settings", payload, clinic_id=clinic_id)


# --- Staff & doctors ---

def get_staff_list(clinic_id):
    _, records = _get_records("staff")
    staff = []
    for r in records:
        if str(r.get("clinic_id")) != str(clinic_id):
            continue
        if r.get("is_active") not in (None, "") and not _to_bool(r.get("is_active")):
            continue
        r["id"] = str(r["id"])
        r["role"] = r.get("role") or utils.POOL_ROLE
        for field in STAFF_PAY_FIELDS:
            r[field] = utils.to_number(r.get(field))
        staff.append(r)
    return staff


def save_staff_pay(staff_id, pay):
    """Update base salary, allowance and monthly insurance cost of one staff member."""
    _, records = _get_records("staff")
    _, member = _find_row(records, id=staff_id)
    if member is None:
        raise ValueError(f"Staff not found: {staff_id}")
    for field in STAFF_PAY_FIELDS:
        if field in pay:
            member[field] = utils.to_number(pay[field])
    _upsert("staff", member, id=staff_id)


def get_doctors(clinic_id):
    _, records = _get_records("doctors")
    doctors = []
    for r in records:
        if str(r.get("clinic_id")) != str(clinic_id):
            continue
        r["id"] = str(r["id"])
        r["commission_rates"] = r.get("commission_rates") or {}
        r["is_deleted"] = _to_bool(r.get("is_deleted"))
        doctors.append(r)
    return doctors


def save_commission_rates(doctor_id, rates):
    _, records = _get_records("doctors")
    _, doctor = _find_row(records, id=doctor_id)
    if doctor is None:
        raise ValueError(f"Doctor not found: {doctor_id}")
    doctor["commission_rates"] = {
        info["rate_key"]: utils.to_number(rates.get(info["rate_key"])) for info in utils.CATEGORY_MAP.values()
    }
    _upsert("doctors", doctor, id=doctor_id)


def get_clinics():
    _, records = _get_records("clinics")
    return [{"id": str(r["id"]), "name": r.get("name") or str(r["id"])} for r in records]
