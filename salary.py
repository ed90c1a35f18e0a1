"""
Doctor salary statement.

Revenue per treatment category comes from the month's accounting rows, NHI
revenue from the doctor's monthly NHI record. Lab (technician) fees are costs
of the category they are booked to. Lines are built first and linked lab fees
merged into their visit afterwards, so every line's income is simply
(revenue - lab fee) * rate / 100.
"""
import utils

NHI = "nhi"


def commission_rate(doctor, category):
    rates = doctor.get("commission_rates") or {}
    return utils.to_number(rates.get(utils.CATEGORY_MAP[category]["rate_key"]))


def _line(kind, date, patient, content, revenue=0, lab_fee=0, row_id=None):
    return {
        "type": kind,
        "date": date,
        "patient": patient,
        "content": content,
        "revenue": revenue,
        "lab_fee": lab_fee,
        "row_id": row_id,
    }


def _belongs_to(record, doctor):
    record_doctor_id = str(record.get("doctor_id") or "").strip()
    if record_doctor_id:
        return record_doctor_id == str(doctor["id"])
    return str(record.get("doctor_name") or "").strip() == str(doctor.get("name") or "").strip()


def build_lines(doctor, rows, technician_records, nhi_records, year_month):
    """
    First pass: raw revenue lines and cost lines per category.
    Returns ({category: [line]}, [(category, technician_record)]).
    """
    lines = {key: [] for key in utils.CATEGORY_MAP}

    for row in rows:
        if str(row.get("doctor_id")) != str(doctor["id"]):
            continue
        treatments = row.get("treatments") or {}
        for category in utils.CATEGORY_MAP:
            if category == NHI:
                continue
            amount = utils.to_number(treatments.get(category))
            if amount != 0:
                lines[category].append(_line(
                    "revenue",
                    row.get("original_date", ""),
                    row.get("patient_name", ""),
                    row.get("treatment_content") or utils.CATEGORY_MAP[category]["label"],
                    revenue=amount,
                    row_id=row.get("id"),
                ))

    nhi = next((r for r in nhi_records if str(r.get("doctor_id")) == str(doctor["id"])), None)
    if nhi and utils.to_number(nhi.get("amount")) > 0:
        lines[NHI].append(_line("revenue", year_month, "健保局", "健保申報總額", revenue=utils.to_number(nhi["amount"])))

    costs = []
    for record in technician_records:
        category = record.get("category") or ""
        if category in utils.NON_COMMISSION_LAB_CATEGORIES or category not in lines:
            continue
        if not _belongs_to(record, doctor):
            continue
        costs.append((category, record))

    return lines, costs


def _find_linked_line(category_lines, record):
    linked_row_id = record.get("linked_row_id")
    for line in category_lines:
        if line["type"] == "cost":
            continue
        if linked_row_id:
            if str(line["row_id"]) == str(linked_row_id):
                return line
        elif line["date"] == record.get("date") and line["patient"] == record.get("patient_name"):
            return line
    return None


def merge_costs(lines, costs):
    """
    Second pass: merge linked lab fees into their visit line; everything else
    becomes a separate cost line. Returns new line lists, inputs are untouched.
    """
    merged = {key: [dict(line) for line in category_lines] for key, category_lines in lines.items()}

    for category, record in costs:
        cost = utils.to_number(record.get("amount"))
        lab_name = record.get("lab_name") or ""
        target = None
        if record.get("type") == "linked":
            target = _find_linked_line(merged[category], record)

        if target is not None:
            target["type"] = "merged"
            target["lab_fee"] += cost
            lab_label = f"[{lab_name}]" if lab_name else "[Lab]"
            if lab_label not in target["content"]:
                target["content"] = f"{target['content']} {lab_label}"
            continue

        source = "系統" if record.get("type") == "linked" else "手動"
        lab_info = f"[{lab_name}]" if lab_name else ""
        detail = record.get("treatment_content") or record.get("note") or ""
        merged[category].append(_line(
            "cost",
            record.get("date", ""),
            record.get("patient_name") or "未指定",
            f"(技工-{source}) {lab_info} {detail}".strip(),
            lab_fee=cost,
        ))

    return merged


def _category_result(category, category_lines, rate, detailed):
    items = []
    total_revenue = total_lab_fee = total_net = total_income = 0
    for line in category_lines:
        net_profit = line["revenue"] - line["lab_fee"]
        income = net_profit * rate / 100
        total_revenue += line["revenue"]
        total_lab_fee += line["lab_fee"]
        total_net += net_profit
        total_income += income
        if detailed:
            item = dict(line)
            item["net_profit"] = net_profit
            item["income"] = income
            items.append(item)
    items.sort(key=lambda item: item["date"])
    return {
        "label": utils.CATEGORY_MAP[category]["label"],
        "rate": rate,
        "items": items,
        "total_revenue": total_revenue,
        "total_lab_fee": total_lab_fee,
        "total_net_profit": total_net,
        "total_income": total_income,
    }


def calculate_doctor_income(doctor, rows, technician_records, nhi_records, adjustments, year_month, detailed=True):
    """
    Income statement of one doctor for one month.

    detailed=False keeps only category totals (used when every doctor of a
    clinic is computed at once).
    """
    lines, costs = build_lines(doctor, rows, technician_records, nhi_records, year_month)
    lines = merge_costs(lines, costs)

    categories = {}
    total_income = 0
    for category in utils.CATEGORY_MAP:
        result = _category_result(category, lines[category], commission_rate(doctor, category), detailed)
        categories[category] = result
        total_income += result["total_income"]

    my_adjustments = [a for a in adjustments if str(a.get("doctor_id")) == str(doctor["id"])]
    total_adjustments = sum(utils.to_number(a.get("amount")) for a in my_adjustments)

    return {
        "doctor_id": doctor["id"],
        "doctor_name": doctor.get("name", ""),
        "month": year_month,
        "categories": categories,
        "adjustments": my_adjustments if detailed else [],
        "total_adjustments": total_adjustments,
        "total_income": total_income + total_adjustments,
    }


def calculate_clinic_summary(doctors, rows, technician_records, nhi_records, adjustments, year_month):
    """Summary matrix: category incomes, adjustments and payout per active doctor."""
    summary = []
    for doctor in doctors:
        if doctor.get("is_deleted"):
            continue
        result = calculate_doctor_income(
            doctor, rows, technician_records, nhi_records, adjustments, year_month, detailed=False
        )
        summary.append({
            "doctor_id": result["doctor_id"],
            "doctor_name": result["doctor_name"],
            "categories": {key: cat["total_income"] for key, cat in result["categories"].items()},
            "total_adjustments": result["total_adjustments"],
            "total_payout": result["total_income"],
        })
    return summary
