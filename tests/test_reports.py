import pytest

import database as db
import reports


@pytest.fixture
def clinic(sheets, make_row):
    db.init_db()
    db.get_worksheet("staff").append_rows([
        ["s1", "Amy", "c1", "consultant", "TRUE"],
        ["s2", "Betty", "c1", "consultant", "TRUE"],
        ["s3", "Cindy", "c1", "assistant", "TRUE"],
    ])
    db.get_worksheet("doctors").append_rows([
        ["d1", "王醫師", "c1", '{"implant": 40, "nhi": 20}', "FALSE"],
        ["d2", "李醫師", "c1", '{"ortho": 30}', "FALSE"],
    ])
    db.save_daily_accounting({"clinic_id": "c1", "date": "2024-04-01", "rows": [
        make_row(row_id="v1", consultant="Amy", patient_name="陳小明", implant=100000),
        make_row(doctor_id="d2", doctor_name="李醫師", consultant="Cindy", ortho=50000),
    ]})
    db.save_technician_record({"clinic_id": "c1", "lab_name": "大成", "date": "2024-04-01", "type": "linked",
                               "amount": 20000, "linked_row_id": "v1", "doctor_id": "d1", "category": "implant"})
    db.save_nhi_records([{"clinic_id": "c1", "month": "2024-04", "doctor_id": "d1", "amount": 100000}])
    db.add_salary_adjustment({"clinic_id": "c1", "doctor_id": "d1", "month": "2024-04", "amount": -1000})
    return sheets


def test_bonus_report(clinic):
    report = reports.run_bonus_report("c1", "2024-04")
    results = {r["id"]: r for r in report["results"]}

    assert report["settings"] == {"pool_rate": 30, "self_pay_rate": 1, "retail_rate": 10}
    assert results["s1"]["final_bonus"] == 850
    assert results["s2"]["final_bonus"] == 150
    assert results["s3"]["final_bonus"] == 500
    assert report["totals"]["total_payout"] == 1500
    assert report["is_locked"] is False


def test_bonus_report_preview_rates(clinic):
    report = reports.run_bonus_report("c1", "2024-04", settings={"pool_rate": 0, "self_pay_rate": 2,
                                                                  "retail_rate": 10})
    results = {r["id"]: r for r in report["results"]}
    assert results["s1"]["final_bonus"] == 2000
    assert results["s2"]["final_bonus"] == 0


def test_doctor_statement(clinic):
    statement = reports.run_doctor_statement("c1", "2024-04", "d1")
    assert statement["categories"]["implant"]["total_income"] == 32000
    assert statement["categories"]["nhi"]["total_income"] == 20000
    assert statement["total_income"] == 51000


def test_unknown_doctor(clinic):
    with pytest.raises(ValueError):
        reports.run_doctor_statement("c1", "2024-04", "d9")


def test_clinic_summary(clinic):
    summary = reports.run_clinic_summary("c1", "2024-04")
    payouts = {d["doctor_id"]: d["total_payout"] for d in summary["doctors"]}
    assert payouts == {"d1": 51000, "d2": 15000}


def test_failed_read_fails_the_calculation(clinic, monkeypatch):
    def broken(clinic_id, year_month):
        raise ConnectionError("quota exceeded")

    monkeypatch.setattr(db, "get_nhi_records", broken)
    with pytest.raises(reports.CalculationError, match="nhi_records"):
        reports.run_clinic_summary("c1", "2024-04")


def test_locked_month_is_reported(clinic):
    db.lock_daily_report("c1", "2024-04-01", "Amy")
    db.lock_month("c1", "2024-04", "Amy")
    assert reports.run_bonus_report("c1", "2024-04")["is_locked"] is True
    assert reports.run_clinic_summary("c1", "2024-04")["is_locked"] is True


def test_bonus_report_month_snapshot(clinic):
    snapshot = reports.run_bonus_report("c1", "2024-04")["snapshot"]
    assert snapshot["visits"] == 2
    assert snapshot["nhi"] == 100000
    assert snapshot["self_pay"] == 150000
    assert snapshot["retail"] == 0


def test_statement_with_numeric_looking_ids(sheets, make_row):
    db.get_worksheet("doctors").append_row(["101", "王醫師", "1", '{"implant": 40, "nhi": 20}', "FALSE"])
    db.save_daily_accounting({"clinic_id": "1", "date": "2024-04-01", "rows": [
        make_row(row_id="5001", doctor_id="101", implant=10000),
    ]})
    db.save_technician_record({"clinic_id": "1", "date": "2024-04-01", "type": "linked", "amount": 2000,
                               "linked_row_id": "5001", "doctor_id": "101", "category": "implant"})
    db.save_nhi_records([{"clinic_id": "1", "month": "2024-04", "doctor_id": "101", "amount": 100000}])
    db.add_salary_adjustment({"clinic_id": "1", "doctor_id": "101", "month": "2024-04", "amount": -1000})

    statement = reports.run_doctor_statement("1", "2024-04", "101")

    assert statement["categories"]["nhi"]["total_revenue"] == 100000
    assert statement["categories"]["implant"]["items"][0]["type"] == "merged"
    assert statement["categories"]["implant"]["total_income"] == 3200
    assert statement["total_adjustments"] == -1000
    assert statement["total_income"] == 22200


def test_payroll_report(clinic):
    db.set_staff_attendance("c1", "2024-04-02", "s3", "leave", "事假")

    report = reports.run_payroll_report("c1", "2024-04", inputs={"s1": {"adjustment": 150}})
    lines = {line["id"]: line for line in report["lines"]}

    assert lines["s1"]["performance_bonus"] == 850
    assert lines["s1"]["net_pay"] == 3000 + 850 + 150
    assert lines["s3"]["full_attendance_bonus"] == 0
    assert lines["s3"]["net_pay"] == 500
    assert report["totals"]["headcount"] == 3
    assert report["is_locked"] is False
