import revenue
import utils


def _rates(settings):
    settings = settings or {}
    merged = {}
    for key, default in utils.DEFAULT_BONUS_SETTINGS.items():
        value = settings.get(key)
        merged[key] = default if value is None or value == "" else utils.to_number(value)
    return merged


def eligible_staff(staff_list):
    """Staff who take part in the bonus (part-time and managers do not)."""
    return [s for s in staff_list if (s.get("role") or utils.POOL_ROLE) in utils.BONUS_ELIGIBLE_ROLES]


def calculate_assistant_bonus(rows, staff_list, settings=None):
    """
    Compute the monthly bonus of every eligible staff member.

    rows: flattened month rows (see revenue.flatten_month).
    settings: pool_rate / self_pay_rate / retail_rate in percent; missing keys use defaults.
    Returns a list of dicts in staff order.
    """
    rates = _rates(settings)
    staff_members = eligible_staff(staff_list)
    resolved = revenue.canonicalize_rows(rows, staff_list)

    self_pay_by_staff = {}
    retail_by_staff = {}
    for row in resolved:
        sp = revenue.self_pay_total(row)
        if sp > 0 and row["consultant_id"] is not None:
            self_pay_by_staff[row["consultant_id"]] = self_pay_by_staff.get(row["consultant_id"], 0) + sp
        ret = revenue.retail_total(row)
        if ret > 0 and row["retail_staff_id"] is not None:
            retail_by_staff[row["retail_staff_id"]] = retail_by_staff.get(row["retail_staff_id"], 0) + ret

    results = []
    total_pool = 0
    eligible_count = 0
    for staff in staff_members:
        role = staff.get("role") or utils.POOL_ROLE
        self_pay = self_pay_by_staff.get(staff["id"], 0)
        retail = retail_by_staff.get(staff["id"], 0)
        base_bonus = utils.round_half_up(
            self_pay * rates["self_pay_rate"] / 100 + retail * rates["retail_rate"] / 100
        )

        is_consultant = role == utils.POOL_ROLE
        personal_rate = 100
        contribution = 0
        if is_consultant:
            personal_rate = 100 - rates["pool_rate"]
            if base_bonus > 0:
                contribution = utils.round_half_up(base_bonus * rates["pool_rate"] / 100)
            eligible_count += 1
        total_pool += contribution

        results.append({
            "id": staff["id"],
            "name": staff.get("name", ""),
            "role": role,
            "self_pay_revenue": self_pay,
            "retail_revenue": retail,
            "base_bonus": base_bonus,
            "personal_rate": personal_rate,
            "personal_keep": base_bonus - contribution,
            "pool_contribution": contribution,
            "pool_share": 0,
            "final_bonus": 0,
            "is_eligible_for_pool": is_consultant,
        })

    share_per_person = utils.round_half_up(total_pool / eligible_count) if eligible_count > 0 else 0
    for result in results:
        share = share_per_person if result["is_eligible_for_pool"] else 0
        result["pool_share"] = share
        result["final_bonus"] = result["personal_keep"] + share

    return results


def bonus_totals(results):
    pool_share = next((r["pool_share"] for r in results if r["is_eligible_for_pool"]), 0)
    return {
        "total_payout": sum(r["final_bonus"] for r in results),
        "pool_total": sum(r["pool_contribution"] for r in results),
        "pool_share": pool_share,
    }


def staff_bonus_detail(rows, staff_member, staff_list, settings=None):
    """
    Rows attributed to one staff member, split into self-pay and retail,
    sorted by doctor then date, with the bonus each bucket earns.
    """
    rates = _rates(settings)
    resolved = revenue.canonicalize_rows(rows, staff_list)

    self_pay_rows = [r for r in resolved if r["consultant_id"] == staff_member["id"] and revenue.self_pay_total(r) > 0]
    retail_rows = [r for r in resolved if r["retail_staff_id"] == staff_member["id"] and revenue.retail_total(r) > 0]

    def sort_key(r):
        return (r.get("doctor_name") or "", r.get("original_date") or "")

    self_pay_rows.sort(key=sort_key)
    retail_rows.sort(key=sort_key)

    self_pay_revenue = sum(revenue.self_pay_total(r) for r in self_pay_rows)
    retail_revenue = sum(revenue.retail_total(r) for r in retail_rows)
    self_pay_bonus = utils.round_half_up(self_pay_revenue * rates["self_pay_rate"] / 100)
    retail_bonus = utils.round_half_up(retail_revenue * rates["retail_rate"] / 100)

    return {
        "self_pay_rows": self_pay_rows,
        "retail_rows": retail_rows,
        "self_pay_revenue": self_pay_revenue,
        "retail_revenue": retail_revenue,
        "self_pay_bonus": self_pay_bonus,
        "retail_bonus": retail_bonus,
        "total_bonus": self_pay_bonus + retail_bonus,
    }
