import database as db
import migrate_data


def test_latest_month_wins_per_clinic():
    records = [
        {"id": "c1_2024-03", "pool_rate": 20, "self_pay_rate": 1, "retail_rate": 10},
        {"id": "c1_2024-05", "pool_rate": 35, "self_pay_rate": 2, "retail_rate": 8},
        {"id": "c1_2024-04", "pool_rate": 25, "self_pay_rate": 1, "retail_rate": 10},
        {"id": "clinic_b_2023-12", "pool_rate": 30, "self_pay_rate": 1, "retail_rate": 5},
        {"id": "broken", "pool_rate": 99},
    ]
    settings = migrate_data.collapse_legacy_settings(records)
    assert settings == {
        "c1": {"pool_rate": 35, "self_pay_rate": 2, "retail_rate": 8},
        "clinic_b": {"pool_rate": 30, "self_pay_rate": 1, "retail_rate": 5},
    }


def test_migrate_writes_clinic_settings(sheets):
    legacy = db.get_worksheet(migrate_data.LEGACY_SHEET)
    legacy.append_rows([
        ["id", "pool_rate", "self_pay_rate", "retail_rate"],
        ["c1_2024-04", 40, "", 5],
        ["c2_2024-04", 10, 1, 10],
    ])
    db.save_bonus_settings("c2", {"pool_rate": 50, "self_pay_rate": 1, "retail_rate": 10})

    migrate_data.migrate()

    assert db.get_bonus_settings("c1") == {"pool_rate": 40, "self_pay_rate": 1, "retail_rate": 5}
    assert db.get_bonus_settings("c2")["pool_rate"] == 50

    migrate_data.migrate(overwrite=True)
    assert db.get_bonus_settings("c2")["pool_rate"] == 10
