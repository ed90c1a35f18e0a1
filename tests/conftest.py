import re

from gspread.utils import numericise_all
import pytest

import database as db


def _cell_text(value):
    return "" if value is None else str(value)


class FakeWorksheet:
    """
    In-memory stand-in for a gspread worksheet (header in row 1).
    Cells are kept as text and numericised on read, as gspread does.
    """

    def __init__(self, headers):
        self.rows = [list(headers)] if headers else []

    def row_values(self, row):
        if row <= len(self.rows):
            return list(self.rows[row - 1])
        return []

    def get_all_records(self, numericise_ignore=None):
        if not self.rows:
            return []
        ignore = numericise_ignore or []
        headers = self.rows[0]
        records = []
        for values in self.rows[1:]:
            padded = list(values) + [""] * (len(headers) - len(values))
            if "all" not in ignore:
                padded = numericise_all(padded, ignore=ignore)
            records.append(dict(zip(headers, padded)))
        return records

    def append_row(self, values):
        self.rows.append([_cell_text(v) for v in values])

    def append_rows(self, rows):
        for values in rows:
            self.append_row(values)

    def update(self, range_name, values):
        row = int(re.match(r"[A-Z]+(\d+)", range_name).group(1))
        self.rows[row - 1] = [_cell_text(v) for v in values[0]]

    def delete_rows(self, row):
        del self.rows[row - 1]

    def clear(self):
        self.rows = []


@pytest.fixture
def sheets(monkeypatch):
    """Replace the Google Sheets backend with in-memory worksheets."""
    store = {}

    def get_worksheet(name):
        if name not in store:
            store[name] = FakeWorksheet(db.SHEETS.get(name, []))
        return store[name]

    monkeypatch.setattr(db, "get_worksheet", get_worksheet)
    return store


@pytest.fixture
def make_row():
    """Factory for AccountingRow dicts; amounts default to 0."""
    counter = {"n": 0}

    def _make(doctor_id="d1", doctor_name="王醫師", patient_name="病患", consultant="", retail_staff="",
              original_date="2024-04-01", row_id=None, **amounts):
        counter["n"] += 1
        treatments = {key: 0 for key in ["reg_fee", "copayment", "prostho", "implant", "ortho", "sov", "inv",
                                         "whitening", "perio", "other_self_pay"]}
        retail = {"products": 0, "diy_whitening": 0, "product_note": "", "staff": retail_staff}
        for key, value in amounts.items():
            if key in retail:
                retail[key] = value
            else:
                treatments[key] = value
        treatments["consultant"] = consultant
        return {
            "id": row_id or f"r{counter['n']}",
            "patient_name": patient_name,
            "doctor_id": doctor_id,
            "doctor_name": doctor_name,
            "treatment_content": "",
            "treatments": treatments,
            "retail": retail,
            "payment_breakdown": {"cash": 0, "card": 0, "transfer": 0},
            "actual_collected": 0,
            "payment_method": "cash",
            "is_manual": True,
            "is_arrived": True,
            "original_date": original_date,
        }

    return _make


@pytest.fixture
def staff_list():
    return [
        {"id": "s1", "name": "Amy", "clinic_id": "c1", "role": "consultant"},
        {"id": "s2", "name": "Betty", "clinic_id": "c1", "role": "consultant"},
        {"id": "s3", "name": "Cindy", "clinic_id": "c1", "role": "assistant"},
        {"id": "s4", "name": "Dora", "clinic_id": "c1", "role": "part_time"},
    ]
