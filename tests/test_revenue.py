import revenue
import utils


class TestHydrateRow:
    def test_malformed_amounts_become_zero(self):
        row = revenue.hydrate_row({
            "id": "r1",
            "treatments": {"implant": "abc", "ortho": None, "prostho": "1,200", "consultant": "Amy"},
            "retail": {"products": float("nan")},
        })
        assert row["treatments"]["implant"] == 0
        assert row["treatments"]["ortho"] == 0
        assert row["treatments"]["prostho"] == 1200
        assert row["treatments"]["whitening"] == 0
        assert row["retail"]["products"] == 0
        assert row["retail"]["diy_whitening"] == 0
        assert row["treatments"]["consultant"] == "Amy"

    def test_missing_sections_are_filled(self):
        row = revenue.hydrate_row({"id": "r1"})
        assert set(utils.SELF_PAY_KEYS) <= set(row["treatments"])
        assert row["retail"]["staff"] == ""
        assert row["payment_breakdown"] == {"cash": 0, "card": 0, "transfer": 0}
        assert row["payment_method"] == "cash"
        assert row["is_arrived"] is True

    def test_actual_collected_follows_breakdown(self):
        row = revenue.hydrate_row({
            "actual_collected": 999,
            "payment_breakdown": {"cash": 1000, "card": 500, "transfer": "200"},
        })
        assert row["actual_collected"] == 1700

    def test_actual_collected_single_method(self):
        row = revenue.hydrate_row({"actual_collected": "800", "payment_method": "card"})
        assert row["actual_collected"] == 800
        assert row["payment_method"] == "card"


class TestFlattenMonth:
    def test_missing_days_are_skipped(self, make_row):
        # April 2024 has 30 days; 5 of them have no record
        missing = {"2024-04-03", "2024-04-07", "2024-04-11", "2024-04-20", "2024-04-30"}
        records = {}
        for date_str in utils.month_dates("2024-04"):
            if date_str in missing:
                continue
            records[date_str] = {"clinic_id": "c1", "date": date_str, "rows": [make_row()]}

        rows = revenue.flatten_month(records, "2024-04")

        assert len(rows) == 25
        dates = [r["original_date"] for r in rows]
        assert dates == sorted(dates)
        assert not missing & set(dates)

    def test_none_record_and_empty_rows(self, make_row):
        records = {
            "2024-02-01": None,
            "2024-02-02": {"date": "2024-02-02", "rows": []},
            "2024-02-29": {"date": "2024-02-29", "rows": [make_row(), make_row()]},
        }
        rows = revenue.flatten_month(records, "2024-02")
        assert [r["original_date"] for r in rows] == ["2024-02-29", "2024-02-29"]

    def test_empty_month(self):
        assert revenue.flatten_month({}, "2024-05") == []


class TestTotals:
    def test_self_pay_and_retail_totals(self, make_row):
        row = make_row(prostho=1, implant=2, ortho=3, sov=4, inv=5, whitening=6, perio=7, other_self_pay=8,
                       reg_fee=50, copayment=100, products=300, diy_whitening=200)
        assert revenue.self_pay_total(row) == 36
        assert revenue.retail_total(row) == 500


class TestStaffAttribution:
    def test_id_and_trimmed_name_both_resolve(self, staff_list):
        index = revenue.build_staff_index(staff_list)
        assert revenue.resolve_staff_ref("s1", index) == "s1"
        assert revenue.resolve_staff_ref("  Amy ", index) == "s1"
        assert revenue.resolve_staff_ref("Nobody", index) is None
        assert revenue.resolve_staff_ref("", index) is None
        assert revenue.resolve_staff_ref(None, index) is None

    def test_id_wins_over_name(self):
        staff = [{"id": "Amy", "name": "Zoe"}, {"id": "s9", "name": "Amy"}]
        index = revenue.build_staff_index(staff)
        assert revenue.resolve_staff_ref("Amy", index) == "Amy"

    def test_retail_falls_back_to_consultant(self, make_row, staff_list):
        rows = [
            make_row(consultant="Amy", products=100),
            make_row(consultant="Amy", retail_staff="s3", products=100),
            make_row(consultant="ghost", products=100),
        ]
        resolved = revenue.canonicalize_rows(rows, staff_list)
        assert [r["retail_staff_id"] for r in resolved] == ["s1", "s3", None]
        assert [r["consultant_id"] for r in resolved] == ["s1", "s1", None]

    def test_canonicalize_does_not_mutate_input(self, make_row, staff_list):
        rows = [make_row(consultant="Amy")]
        revenue.canonicalize_rows(rows, staff_list)
        assert "consultant_id" not in rows[0]

    def test_each_amount_attributed_exactly_once(self, make_row, staff_list):
        rows = [make_row(consultant=ref, implant=1000) for ref in ["s1", "Amy", " Amy", "s2", "Betty", "x"]]
        resolved = revenue.canonicalize_rows(rows, staff_list)

        per_staff = {}
        for row in resolved:
            if row["consultant_id"]:
                per_staff[row["consultant_id"]] = per_staff.get(row["consultant_id"], 0) + revenue.self_pay_total(row)

        assert per_staff == {"s1": 3000, "s2": 2000}


def test_summarize_month(make_row):
    rows = [revenue.hydrate_row(make_row(implant=1000, products=200)), revenue.hydrate_row(make_row())]
    rows[0]["actual_collected"] = 1200
    rows[1]["is_arrived"] = False
    summary = revenue.summarize_month(rows, [{"amount": 5000}, {"amount": "x"}])
    assert summary == {
        "visits": 1,
        "collected": 1200,
        "nhi": 5000,
        "revenue": 6200,
        "self_pay": 1000,
        "retail": 200,
    }
