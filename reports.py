"""
Fetch-then-calculate entry points used by the UI.

Every read a calculation needs is independent of the others, so they are
issued together on a thread pool and joined before any arithmetic runs. A
failing read fails the whole calculation; nothing partial is returned.
"""
from concurrent.futures import ThreadPoolExecutor

import bonus
import database as db
import payroll
import revenue
import salary

MAX_WORKERS = 8


class CalculationError(Exception):
    """A read needed by a calculation failed."""


def _fan_out(tasks):
    """
    Run {name: (func, args)} concurrently and return {name: result}.
    The first failure (in task order) is raised as CalculationError.
    """
    with ThreadPoolExecutor(max_workers=MAX_WORKERS) as pool:
        futures = {name: pool.submit(func, *args) for name, (func, args) in tasks.items()}
        results = {}
        for name, future in futures.items():
            try:
                results[name] = future.result()
            except Exception as e:
                raise CalculationError(f"讀取 {name} 失敗: {e}") from e
    return results


def fetch_bonus_inputs(clinic_id, year_month):
    return _fan_out({
        "rows": (db.load_month_accounting, (clinic_id, year_month)),
        "staff": (db.get_staff_list, (clinic_id,)),
        "settings": (db.get_bonus_settings, (clinic_id,)),
        "nhi_records": (db.get_nhi_records, (clinic_id, year_month)),
        "closing": (db.get_monthly_closing_status, (clinic_id, year_month)),
    })


def fetch_salary_inputs(clinic_id, year_month):
    return _fan_out({
        "rows": (db.load_month_accounting, (clinic_id, year_month)),
        "technician_records": (db.get_technician_records, (clinic_id, None, year_month)),
        "nhi_records": (db.get_nhi_records, (clinic_id, year_month)),
        "adjustments": (db.get_clinic_salary_adjustments, (clinic_id, year_month)),
        "doctors": (db.get_doctors, (clinic_id,)),
        "closing": (db.get_monthly_closing_status, (clinic_id, year_month)),
    })


def _is_locked(closing):
    return bool(closing and closing.get("is_locked"))


def run_bonus_report(clinic_id, year_month, settings=None):
    """
    Assistant bonus for a clinic month. settings overrides the stored rates
    (used to preview unsaved rates).
    """
    data = fetch_bonus_inputs(clinic_id, year_month)
    if not data["rows"]:
        print(f"[AssistantBonus] No accounting rows for clinic {clinic_id} in {year_month}.")
    effective = settings if settings is not None else data["settings"]
    results = bonus.calculate_assistant_bonus(data["rows"], data["staff"], effective)
    return {
        "clinic_id": clinic_id,
        "month": year_month,
        "settings": effective,
        "staff": data["staff"],
        "rows": data["rows"],
        "results": results,
        "totals": bonus.bonus_totals(results),
        "snapshot": revenue.summarize_month(data["rows"], data["nhi_records"]),
        "is_locked": _is_locked(data["closing"]),
    }


def run_doctor_statement(clinic_id, year_month, doctor_id):
    data = fetch_salary_inputs(clinic_id, year_month)
    doctor = next((d for d in data["doctors"] if d["id"] == str(doctor_id)), None)
    if doctor is None:
        raise ValueError(f"Doctor not found in clinic {clinic_id}: {doctor_id}")
    if not data["rows"]:
        print(f"[Salary] No accounting rows for clinic {clinic_id} in {year_month}, NHI and lab fees only.")
    statement = salary.calculate_doctor_income(
        doctor, data["rows"], data["technician_records"], data["nhi_records"], data["adjustments"], year_month
    )
    statement["is_locked"] = _is_locked(data["closing"])
    return statement


def run_clinic_summary(clinic_id, year_month):
    data = fetch_salary_inputs(clinic_id, year_month)
    summary = salary.calculate_clinic_summary(
        data["doctors"], data["rows"], data["technician_records"], data["nhi_records"], data["adjustments"],
        year_month,
    )
    return {
        "clinic_id": clinic_id,
        "month": year_month,
        "doctors": summary,
        "is_locked": _is_locked(data["closing"]),
    }


def fetch_payroll_inputs(clinic_id, year_month):
    return _fan_out({
        "rows": (db.load_month_accounting, (clinic_id, year_month)),
        "staff": (db.get_staff_list, (clinic_id,)),
        "bonus_settings": (db.get_bonus_settings, (clinic_id,)),
        "schedules": (db.get_staff_schedules, (clinic_id, year_month)),
        "closing": (db.get_monthly_closing_status, (clinic_id, year_month)),
    })


def run_payroll_report(clinic_id, year_month, inputs=None, settings=None):
    """
    Staff payroll for a clinic month. inputs maps staff id to the month's
    manual figures; settings overrides the attendance bonus and OT rate.
    """
    data = fetch_payroll_inputs(clinic_id, year_month)
    if not data["schedules"]:
        print(f"[Payroll] No staff schedules for clinic {clinic_id} in {year_month}, no leave or Sunday overtime.")
    lines = payroll.calculate_payroll(
        data["staff"], data["schedules"], data["rows"], data["bonus_settings"], inputs, settings
    )
    return {
        "clinic_id": clinic_id,
        "month": year_month,
        "lines": lines,
        "totals": payroll.payroll_totals(lines),
        "is_locked": _is_locked(data["closing"]),
    }
