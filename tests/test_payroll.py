import pytest

import payroll

STAFF = {"id": "s3", "name": "Cindy", "role": "assistant", "base_salary": 30000, "allowance": 3000,
         "monthly_insurance_cost": 800}


def schedule(date, off=(), leave=(), overtime=()):
    return {
        "clinic_id": "c1",
        "date": date,
        "staff_configuration": {
            "off": list(off),
            "leave": [{"id": staff_id, "type": kind} for staff_id, kind in leave],
            "overtime": [{"id": staff_id, "type": kind} for staff_id, kind in overtime],
        },
    }


# April 2024: the 7th, 14th, 21st and 28th are Sundays
APRIL = [
    schedule("2024-04-02", leave=[("s3", "事假")]),
    schedule("2024-04-03", leave=[("s3", "病假(半)")]),
    schedule("2024-04-05", leave=[("s3", "特休")]),
    schedule("2024-04-07", off=["s1"]),
    schedule("2024-04-14", overtime=[("s3", "加班(半)")]),
    schedule("2024-04-21", off=["s3"]),
    schedule("2024-04-28", leave=[("s3", "事假(半)")]),
]


class TestAttendance:
    def test_leave_and_sunday_counts(self):
        stats = payroll.attendance_stats("s3", APRIL)
        assert stats == {"personal_days": 1.5, "sick_days": 0.5, "special_days": 1, "sunday_ot_days": 1.5}

    def test_other_staff_unaffected(self):
        # s1 is off on the 7th; every other Sunday counts as worked
        stats = payroll.attendance_stats("s1", APRIL)
        assert stats == {"personal_days": 0, "sick_days": 0, "special_days": 0, "sunday_ot_days": 3}

    @pytest.mark.parametrize("leave_type, kind", [
        ("事假", "personal"),
        ("病假(半)", "sick"),
        ("婚假", "special"),
        ("補休", "personal"),
        ("", "personal"),
    ])
    def test_leave_kind(self, leave_type, kind):
        assert payroll.leave_kind(leave_type) == kind

    def test_day_without_configuration_is_skipped(self):
        assert payroll.attendance_stats("s3", [{"date": "2024-04-07", "staff_configuration": None}])["sunday_ot_days"] == 0

    def test_leave_details(self):
        assert payroll.leave_details(payroll.attendance_stats("s3", APRIL)) == "事:1.5 / 病:0.5 / 特:1"
        assert payroll.leave_details(payroll.attendance_stats("s9", [])) == "全勤"


class TestStaffSalary:
    def test_full_month(self):
        line = payroll.calculate_staff_salary(STAFF, APRIL, performance_bonus=500,
                                              inputs={"regular_ot_minutes": 120, "adjustment": -200})
        assert line["total_base"] == 33000
        assert line["daily_rate"] == 1100
        assert line["leave_deduction"] == 1925
        assert line["full_attendance_bonus"] == 0
        assert line["sunday_ot_pay"] == 1650
        assert line["regular_ot_pay"] == 420
        assert line["insurance"] == 800
        assert line["net_pay"] == 32645

    def test_special_leave_keeps_attendance_bonus(self):
        line = payroll.calculate_staff_salary(STAFF, [schedule("2024-04-05", leave=[("s3", "特休")])])
        assert line["full_attendance_bonus"] == 3000
        assert line["leave_deduction"] == 0
        assert line["net_pay"] == 33000 + 3000 - 800

    def test_insurance_override_and_settings(self):
        line = payroll.calculate_staff_salary(STAFF, [], inputs={"insurance": 0}, settings={"attendance_bonus": 2000})
        assert line["insurance"] == 0
        assert line["full_attendance_bonus"] == 2000
        assert line["net_pay"] == 35000

    def test_daily_rate_rounds_half_up(self):
        staff = dict(STAFF, base_salary=31000, allowance=0)
        assert payroll.calculate_staff_salary(staff, [])["daily_rate"] == 1033
        staff = dict(STAFF, base_salary=30015, allowance=0)
        assert payroll.calculate_staff_salary(staff, [])["daily_rate"] == 1001

    def test_missing_profile_figures_are_zero(self):
        line = payroll.calculate_staff_salary({"id": "x", "name": "X"}, [])
        assert line["total_base"] == 0
        assert line["net_pay"] == 3000

    def test_net_pay_recomputes_edited_line(self):
        line = payroll.calculate_staff_salary(STAFF, [])
        line["adjustment"] = 1000
        assert payroll.net_pay(line) == line["net_pay"] + 1000


def test_payroll_uses_final_bonus(make_row, staff_list):
    rows = [make_row(consultant="Amy", implant=100000), make_row(consultant="Cindy", ortho=50000)]
    lines = payroll.calculate_payroll(staff_list, [], rows, {"pool_rate": 30, "self_pay_rate": 1, "retail_rate": 10})

    by_id = {line["id"]: line for line in lines}
    assert list(by_id) == ["s1", "s2", "s3"]
    assert by_id["s1"]["performance_bonus"] == 850
    assert by_id["s2"]["performance_bonus"] == 150
    assert by_id["s3"]["performance_bonus"] == 500
    assert by_id["s1"]["net_pay"] == 3850

    totals = payroll.payroll_totals(lines)
    assert totals == {"headcount": 3, "total_net_pay": 9000 + 1500, "total_performance_bonus": 1500}


def test_payroll_inputs_by_staff_id(staff_list):
    lines = payroll.calculate_payroll(staff_list, [], [], None, inputs={"s2": {"adjustment": 500}})
    by_id = {line["id"]: line for line in lines}
    assert by_id["s2"]["net_pay"] == 3500
    assert by_id["s1"]["net_pay"] == 3000
