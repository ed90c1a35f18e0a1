import utils


def hydrate_row(row):
    """
    Fill in missing sections of a stored accounting row and sanitize amounts.
    Legacy rows may lack payment_breakdown or retail entirely; any amount that
    is absent or not a number becomes 0.
    """
    row = dict(row or {})

    treatments = dict(row.get("treatments") or {})
    for key in utils.TREATMENT_KEYS:
        treatments[key] = utils.to_number(treatments.get(key))
    treatments["consultant"] = str(treatments.get("consultant") or "")

    retail = dict(row.get("retail") or {})
    for key in utils.RETAIL_KEYS:
        retail[key] = utils.to_number(retail.get(key))
    retail["product_note"] = str(retail.get("product_note") or "")
    retail["staff"] = str(retail.get("staff") or "")

    breakdown = dict(row.get("payment_breakdown") or {})
    for key in utils.PAYMENT_KEYS:
        breakdown[key] = utils.to_number(breakdown.get(key))

    breakdown_total = sum(breakdown[key] for key in utils.PAYMENT_KEYS)
    if breakdown_total:
        actual_collected = breakdown_total
    else:
        actual_collected = utils.to_number(row.get("actual_collected"))

    row.update({
        "id": str(row.get("id") or ""),
        "patient_name": str(row.get("patient_name") or ""),
        "doctor_id": str(row.get("doctor_id") or ""),
        "doctor_name": str(row.get("doctor_name") or ""),
        "treatment_content": str(row.get("treatment_content") or ""),
        "treatments": treatments,
        "retail": retail,
        "payment_breakdown": breakdown,
        "actual_collected": actual_collected,
        "payment_method": row.get("payment_method") or "cash",
        "is_manual": bool(row.get("is_manual", False)),
        "is_arrived": bool(row.get("is_arrived", True)),
    })
    return row


def flatten_month(records_by_date, year_month):
    """
    Flatten one month of daily accounting records into a single row list.

    records_by_date maps 'YYYY-MM-DD' to a DailyAccountingRecord dict (or None).
    Days are visited 1..days_in_month; a day with no record contributes nothing.
    Each returned row is hydrated and carries its 'original_date'.
    """
    all_rows = []
    for date_str in utils.month_dates(year_month):
        record = records_by_date.get(date_str)
        if not record:
            continue
        for raw in record.get("rows") or []:
            row = hydrate_row(raw)
            row["original_date"] = record.get("date") or date_str
            all_rows.append(row)
    return all_rows


def self_pay_total(row):
    treatments = row.get("treatments") or {}
    return sum(utils.to_number(treatments.get(key)) for key in utils.SELF_PAY_KEYS)


def retail_total(row):
    retail = row.get("retail") or {}
    return sum(utils.to_number(retail.get(key)) for key in utils.RETAIL_KEYS)


def build_staff_index(staff_list):
    """
    Map every staff reference string (ID or display name, trimmed) to the
    staff's canonical ID. IDs are indexed last so they win over a name that
    happens to equal someone else's ID.
    """
    index = {}
    for staff in staff_list:
        name = str(staff.get("name") or "").strip()
        if name:
            index[name] = staff["id"]
    for staff in staff_list:
        staff_id = str(staff.get("id") or "").strip()
        if staff_id:
            index[staff_id] = staff["id"]
    return index


def resolve_staff_ref(ref, staff_index):
    """Return the canonical staff ID for a stored reference, or None."""
    ref = str(ref or "").strip()
    if not ref:
        return None
    return staff_index.get(ref)


def canonicalize_rows(rows, staff_list):
    """
    Resolve each row's consultant / retail staff reference to a canonical ID.

    Historical rows stored names, newer rows store IDs; after this pass the
    calculators only compare 'consultant_id' and 'retail_staff_id'. Retail
    sales with no explicit staff fall back to the treatment consultant.
    """
    staff_index = build_staff_index(staff_list)
    resolved = []
    for row in rows:
        treatments = row.get("treatments") or {}
        retail = row.get("retail") or {}
        retail_ref = retail.get("staff") or treatments.get("consultant")
        new_row = dict(row)
        new_row["consultant_id"] = resolve_staff_ref(treatments.get("consultant"), staff_index)
        new_row["retail_staff_id"] = resolve_staff_ref(retail_ref, staff_index)
        resolved.append(new_row)
    return resolved


def summarize_month(rows, nhi_records=None):
    """Clinic-wide totals for one month (visits, revenue incl. NHI, self-pay, retail)."""
    nhi_total = sum(utils.to_number(r.get("amount")) for r in (nhi_records or []))
    return {
        "visits": sum(1 for row in rows if row.get("is_arrived", True)),
        "collected": sum(utils.to_number(row.get("actual_collected")) for row in rows),
        "nhi": nhi_total,
        "revenue": sum(utils.to_number(row.get("actual_collected")) for row in rows) + nhi_total,
        "self_pay": sum(self_pay_total(row) for row in rows),
        "retail": sum(retail_total(row) for row in rows),
    }
