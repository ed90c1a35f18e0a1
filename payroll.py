"""
Monthly staff payroll.

Net pay = base salary + allowance - leave deduction + full attendance bonus
+ Sunday overtime + regular overtime + performance bonus - insurance
+ adjustment. The performance bonus is the final bonus of the assistant bonus
calculation for the same month.
"""
import re
from datetime import datetime

import bonus
import utils

LEAVE_SUFFIX = re.compile(r"\(.*\)")


def day_fraction(entry_type):
    """'(半)' marks a half day."""
    return 0.5 if utils.HALF_DAY_MARK in str(entry_type or "") else 1.0


def leave_kind(leave_type):
    name = LEAVE_SUFFIX.sub("", str(leave_type or "")).strip()
    if name == utils.SICK_LEAVE:
        return "sick"
    if name in utils.SPECIAL_LEAVES:
        return "special"
    # unknown types count as personal leave
    return "personal"


def _is_sunday(date_str):
    return datetime.strptime(str(date_str), "%Y-%m-%d").weekday() == 6


def _find_entry(entries, staff_id):
    return next((e for e in entries or [] if str(e.get("id")) == staff_id), None)


def attendance_stats(staff_id, schedules):
    """
    Leave days by kind and Sunday overtime days of one staff member.
    A Sunday without explicit overtime still counts as a full overtime day
    when the member is neither off nor on leave.
    """
    staff_id = str(staff_id)
    stats = {"personal_days": 0, "sick_days": 0, "special_days": 0, "sunday_ot_days": 0}
    for schedule in schedules:
        config = schedule.get("staff_configuration")
        if not config:
            continue

        leave = _find_entry(config.get("leave"), staff_id)
        if leave:
            stats[f"{leave_kind(leave.get('type'))}_days"] += day_fraction(leave.get("type"))

        if _is_sunday(schedule["date"]):
            overtime = _find_entry(config.get("overtime"), staff_id)
            if overtime:
                stats["sunday_ot_days"] += day_fraction(overtime.get("type"))
            elif not leave and staff_id not in [str(s) for s in config.get("off") or []]:
                stats["sunday_ot_days"] += 1
    return stats


def leave_details(stats):
    parts = []
    for key, label in [("personal_days", "事"), ("sick_days", "病"), ("special_days", "特")]:
        if stats[key] > 0:
            parts.append(f"{label}:{utils.to_number(stats[key])}")
    return " / ".join(parts) if parts else "全勤"


def net_pay(line):
    return (
        line["total_base"]
        - line["leave_deduction"]
        + line["full_attendance_bonus"]
        + line["sunday_ot_pay"]
        + line["regular_ot_pay"]
        + line["performance_bonus"]
        - line["insurance"]
        + line["adjustment"]
    )


def calculate_staff_salary(staff, schedules, performance_bonus=0, inputs=None, settings=None):
    """
    One payroll line. inputs holds the month's manual figures:
    regular_ot_minutes, insurance (defaults to the profile's
    monthly_insurance_cost) and adjustment (signed).
    """
    settings = dict(utils.DEFAULT_PAYROLL_SETTINGS, **(settings or {}))
    inputs = inputs or {}

    base_salary = utils.to_number(staff.get("base_salary"))
    allowance = utils.to_number(staff.get("allowance"))
    total_base = base_salary + allowance
    daily_rate = utils.round_half_up(total_base / utils.DAILY_RATE_DIVISOR)

    stats = attendance_stats(staff["id"], schedules)
    leave_deduction = utils.round_half_up(
        stats["personal_days"] * daily_rate + stats["sick_days"] * daily_rate * 0.5
    )
    has_leave = stats["personal_days"] + stats["sick_days"] > 0
    full_attendance_bonus = 0 if has_leave else utils.to_number(settings["attendance_bonus"])

    regular_ot_minutes = utils.to_number(inputs.get("regular_ot_minutes"))
    if inputs.get("insurance") is None:
        insurance = utils.to_number(staff.get("monthly_insurance_cost"))
    else:
        insurance = utils.to_number(inputs["insurance"])

    line = {
        "id": staff["id"],
        "name": staff.get("name", ""),
        "role": staff.get("role", ""),
        "base_salary": base_salary,
        "allowance": allowance,
        "total_base": total_base,
        "daily_rate": daily_rate,
        "personal_days": stats["personal_days"],
        "sick_days": stats["sick_days"],
        "special_days": stats["special_days"],
        "leave_details": leave_details(stats),
        "leave_deduction": leave_deduction,
        "full_attendance_bonus": full_attendance_bonus,
        "sunday_ot_days": stats["sunday_ot_days"],
        "sunday_ot_pay": utils.round_half_up(daily_rate * stats["sunday_ot_days"]),
        "regular_ot_minutes": regular_ot_minutes,
        "regular_ot_pay": utils.round_half_up(regular_ot_minutes * utils.to_number(settings["ot_rate"])),
        "performance_bonus": utils.to_number(performance_bonus),
        "insurance": insurance,
        "adjustment": utils.to_number(inputs.get("adjustment")),
    }
    line["net_pay"] = net_pay(line)
    return line


def calculate_payroll(staff_list, schedules, rows, bonus_settings=None, inputs=None, settings=None):
    """
    Payroll of every monthly-salaried staff member of a clinic month.
    inputs maps staff id -> manual figures (see calculate_staff_salary).
    """
    inputs = inputs or {}
    bonuses = {
        r["id"]: r["final_bonus"] for r in bonus.calculate_assistant_bonus(rows, staff_list, bonus_settings)
    }
    lines = []
    for staff in staff_list:
        if (staff.get("role") or utils.POOL_ROLE) in utils.PAYROLL_EXCLUDED_ROLES:
            continue
        lines.append(calculate_staff_salary(
            staff, schedules, bonuses.get(staff["id"], 0), inputs.get(staff["id"]), settings
        ))
    return lines


def payroll_totals(lines):
    return {
        "headcount": len(lines),
        "total_net_pay": sum(line["net_pay"] for line in lines),
        "total_performance_bonus": sum(line["performance_bonus"] for line in lines),
    }
