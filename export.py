import io

import pandas as pd

import utils

SUMMARY_HEADER = ["項目", "總實收", "總技工費", "淨利", "抽成比 (%)", "醫師所得"]
DETAIL_HEADER = ["日期", "病患", "療程內容", "實收", "技工費", "淨利", "醫師所得"]
BONUS_COLUMNS = {
    "name": "姓名",
    "role": "職稱",
    "self_pay_revenue": "自費業績",
    "retail_revenue": "零售業績",
    "base_bonus": "基本獎金",
    "personal_rate": "個人保留 (%)",
    "pool_contribution": "提撥獎金池",
    "pool_share": "獎金池分配",
    "final_bonus": "實領獎金",
}


def statement_summary_rows(statement):
    """Every category total, then one row per adjustment, then the grand total."""
    rows = [SUMMARY_HEADER]
    for key in utils.CATEGORY_MAP:
        data = statement["categories"][key]
        rows.append([
            data["label"],
            data["total_revenue"],
            data["total_lab_fee"],
            data["total_net_profit"],
            f"{data['rate']}%",
            data["total_income"],
        ])
    for adj in statement["adjustments"]:
        rows.append([f"其他: {adj.get('category', '')} ({adj.get('note', '')})", "-", "-", "-", "-", adj["amount"]])
    rows.append(["總計", "", "", "", "", statement["total_income"]])
    return rows


def statement_detail_rows(statement):
    rows = []
    for key in utils.CATEGORY_MAP:
        data = statement["categories"][key]
        if not data["items"]:
            continue
        rows.append([f"--- {data['label']} ---"])
        rows.append(DETAIL_HEADER)
        for item in data["items"]:
            rows.append([
                item["date"], item["patient"], item["content"],
                item["revenue"], item["lab_fee"], item["net_profit"], item["income"],
            ])
        rows.append(["小計", "", "", data["total_revenue"], data["total_lab_fee"],
                     data["total_net_profit"], data["total_income"]])
        rows.append([])
    return rows


def statement_rows(statement, clinic_name=""):
    rows = [
        [f"{clinic_name} 醫師薪資表".strip()],
        [f"醫師: {statement['doctor_name']}", f"月份: {statement['month']}"],
        [],
        ["【薪資匯總 Summary】"],
    ]
    rows += statement_summary_rows(statement)
    rows += [[], [], ["【療程明細 Details】"]]
    rows += statement_detail_rows(statement)
    return rows


def summary_matrix_rows(summary, clinic_name=""):
    """Categories down, doctors across; adjustments and payout at the bottom."""
    doctors = summary["doctors"]
    rows = [
        [f"{clinic_name} 全院醫師薪資總表".strip()],
        [f"月份: {summary['month']}"],
        [],
        ["項目"] + [d["doctor_name"] for d in doctors],
    ]
    for key, info in utils.CATEGORY_MAP.items():
        rows.append([info["label"]] + [d["categories"].get(key, 0) for d in doctors])
    rows.append(["其他調整"] + [d["total_adjustments"] for d in doctors])
    rows.append(["總計"] + [d["total_payout"] for d in doctors])
    return rows


def bonus_dataframe(results):
    df = pd.DataFrame(results, columns=list(BONUS_COLUMNS.keys()))
    df["role"] = df["role"].map(utils.role_label)
    return df.rename(columns=BONUS_COLUMNS)


PAYROLL_COLUMNS = {
    "name": "姓名",
    "role": "職稱",
    "base_salary": "本薪",
    "allowance": "職務加給",
    "daily_rate": "日薪",
    "leave_details": "請假",
    "leave_deduction": "請假扣款",
    "full_attendance_bonus": "全勤獎金",
    "sunday_ot_days": "週日加班 (天)",
    "sunday_ot_pay": "週日加班費",
    "regular_ot_minutes": "平日加班 (分)",
    "regular_ot_pay": "平日加班費",
    "performance_bonus": "績效獎金",
    "insurance": "勞健保自付",
    "adjustment": "其他調整",
    "net_pay": "實發薪資",
}


def payroll_dataframe(lines):
    df = pd.DataFrame(lines, columns=list(PAYROLL_COLUMNS.keys()))
    df["role"] = df["role"].map(utils.role_label)
    return df.rename(columns=PAYROLL_COLUMNS)


def to_xlsx_bytes(sheets):
    """
    Write {sheet_name: rows or DataFrame} to an in-memory xlsx file.
    """
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for sheet_name, data in sheets.items():
            if isinstance(data, pd.DataFrame):
                data.to_excel(writer, sheet_name=sheet_name, index=False)
            else:
                pd.DataFrame(data).to_excel(writer, sheet_name=sheet_name, index=False, header=False)
    return buffer.getvalue()
