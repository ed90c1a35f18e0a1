import streamlit as st
import pandas as pd
from datetime import datetime
import altair as alt

import database as db
import bonus
import export
import reports
import utils


st.set_page_config(page_title="診所薪資獎金管理", layout="wide")
st.title("診所薪資獎金管理")


def month_picker(key):
    """Year / month selectors, defaulting to the previous month."""
    today = datetime.now()
    last_month_date = today.replace(day=1) - pd.Timedelta(days=1)
    c_year, c_month = st.columns(2)
    with c_year:
        year_options = list(range(today.year - 3, today.year + 2))
        year = st.selectbox("年份", year_options, index=year_options.index(last_month_date.year), key=f"{key}_year")
    with c_month:
        month = st.selectbox("月份", list(range(1, 13)), index=last_month_date.month - 1, key=f"{key}_month")
    return f"{year}-{month:02d}"


def lock_banner(is_locked, month_str):
    if is_locked:
        st.info(f"🔒 {month_str} 已月結鎖定，資料僅供檢視。")


# Sidebar Navigation
with st.sidebar:
    try:
        clinics = db.get_clinics()
    except Exception as e:
        st.error(f"無法連線資料庫: {e}")
        st.stop()

    if not clinics:
        st.warning("尚未建立診所資料 (clinics 工作表)")
        st.stop()

    clinic_names = {c["id"]: c["name"] for c in clinics}
    clinic_id = st.selectbox("診所", list(clinic_names.keys()), format_func=lambda cid: clinic_names[cid])

    st.divider()

    options = [
        "助理獎金 (Assistant Bonus)",
        "員工薪資 (Staff Payroll)",
        "醫師薪資 (Doctor Salary)",
        "健保申報 (NHI Claims)",
        "技工費 (Lab Fees)",
        "抽成設定 (Commission Rates)",
        "月結鎖定 (Month Lock)",
    ]
    page = st.selectbox("功能選單", options)

clinic_name = clinic_names[clinic_id]


if page == "助理獎金 (Assistant Bonus)":
    st.header("助理獎金計算")

    selected_month = month_picker("ab")

    # Rates (clinic-level settings)
    stored = db.get_bonus_settings(clinic_id)
    r1, r2, r3, r4 = st.columns([1, 1, 1, 1])
    with r1:
        self_pay_rate = st.number_input("自費獎金 (%)", min_value=0.0, value=float(stored["self_pay_rate"]), step=0.5)
    with r2:
        retail_rate = st.number_input("零售獎金 (%)", min_value=0.0, value=float(stored["retail_rate"]), step=0.5)
    with r3:
        pool_rate = st.number_input("獎金池提撥 (%)", min_value=0.0, max_value=100.0, value=float(stored["pool_rate"]), step=5.0)
    with r4:
        st.write("")
        if st.button("儲存設定"):
            try:
                db.save_bonus_settings(clinic_id, {
                    "pool_rate": pool_rate,
                    "self_pay_rate": self_pay_rate,
                    "retail_rate": retail_rate,
                })
                st.success("設定已儲存")
            except Exception as e:
                st.error(f"儲存失敗: {e}")

    settings = {"pool_rate": pool_rate, "self_pay_rate": self_pay_rate, "retail_rate": retail_rate}

    if st.button("計算獎金", type="primary"):
        try:
            st.session_state["bonus_report"] = reports.run_bonus_report(clinic_id, selected_month, settings)
        except reports.CalculationError as e:
            st.error(f"計算失敗: {e}")

    report = st.session_state.get("bonus_report")
    if report and report["clinic_id"] == clinic_id and report["month"] == selected_month:
        lock_banner(report["is_locked"], selected_month)

        # Clinic month snapshot
        snapshot = report["snapshot"]
        s1, s2, s3, s4, s5 = st.columns(5)
        s1.metric("來診人次", f"{snapshot['visits']:,}")
        s2.metric("實收", f"${snapshot['collected']:,.0f}")
        s3.metric("健保申報", f"${snapshot['nhi']:,.0f}")
        s4.metric("自費業績", f"${snapshot['self_pay']:,.0f}")
        s5.metric("零售業績", f"${snapshot['retail']:,.0f}")
        st.divider()

        results = report["results"]

        if not results:
            st.warning("本月無可計算獎金的人員")
        else:
            totals = report["totals"]
            m1, m2, m3 = st.columns(3)
            m1.metric("獎金總額", f"${totals['total_payout']:,.0f}")
            m2.metric("獎金池總額", f"${totals['pool_total']:,.0f}")
            m3.metric("每人分配", f"${totals['pool_share']:,.0f}")

            df_bonus = export.bonus_dataframe(results)
            st.dataframe(df_bonus, hide_index=True, use_container_width=True)

            chart = alt.Chart(pd.DataFrame(results)).mark_bar().encode(
                x=alt.X('name', title='姓名', sort='-y'),
                y=alt.Y('final_bonus', title='實領獎金'),
                color=alt.Color('role', title='職稱'),
                tooltip=['name', 'base_bonus', 'pool_contribution', 'pool_share', 'final_bonus']
            )
            st.altair_chart(chart, use_container_width=True)

            st.download_button(
                "下載獎金表 (xlsx)",
                data=export.to_xlsx_bytes({"Bonus": df_bonus}),
                file_name=f"{clinic_name}_{selected_month}_助理獎金.xlsx",
            )

            # Per-staff drill-down
            st.divider()
            st.subheader("個人獎金明細")
            staff_by_id = {s["id"]: s for s in report["staff"]}
            detail_id = st.selectbox("人員", [r["id"] for r in results], format_func=lambda sid: staff_by_id[sid]["name"])
            detail = bonus.staff_bonus_detail(report["rows"], staff_by_id[detail_id], report["staff"], report["settings"])

            d1, d2, d3 = st.columns(3)
            d1.metric("自費業績", f"${detail['self_pay_revenue']:,.0f}", f"獎金 {detail['self_pay_bonus']:,}")
            d2.metric("零售業績", f"${detail['retail_revenue']:,.0f}", f"獎金 {detail['retail_bonus']:,}")
            d3.metric("合計", f"${detail['total_bonus']:,}")

            if detail["self_pay_rows"]:
                st.caption("自費療程 (Self-Pay)")
                st.dataframe(pd.DataFrame([{
                    "日期": r["original_date"],
                    "醫師": r["doctor_name"],
                    "病患": r["patient_name"],
                    "療程": r["treatment_content"],
                    "金額": sum(r["treatments"][k] for k in utils.SELF_PAY_KEYS),
                } for r in detail["self_pay_rows"]]), hide_index=True, use_container_width=True)
            if detail["retail_rows"]:
                st.caption("零售 (Retail)")
                st.dataframe(pd.DataFrame([{
                    "日期": r["original_date"],
                    "醫師": r["doctor_name"],
                    "病患": r["patient_name"],
                    "品項": r["retail"]["product_note"],
                    "金額": sum(r["retail"][k] for k in utils.RETAIL_KEYS),
                } for r in detail["retail_rows"]]), hide_index=True, use_container_width=True)

elif page == "員工薪資 (Staff Payroll)":
    st.header("員工薪資計算")

    selected_month = month_picker("pr")
    staff_members = [s for s in db.get_staff_list(clinic_id) if s["role"] not in utils.PAYROLL_EXCLUDED_ROLES]
    if not staff_members:
        st.warning("此診所尚無月薪人員")
        st.stop()
    locked = db.is_month_locked(clinic_id, selected_month)
    lock_banner(locked, selected_month)

    g1, g2 = st.columns(2)
    with g1:
        attendance_bonus = st.number_input("全勤獎金", min_value=0, step=100,
                                           value=utils.DEFAULT_PAYROLL_SETTINGS["attendance_bonus"])
    with g2:
        ot_rate = st.number_input("平日加班費 (每分鐘)", min_value=0.0, step=0.5,
                                  value=float(utils.DEFAULT_PAYROLL_SETTINGS["ot_rate"]))

    tab_pay, tab_attendance, tab_profile = st.tabs(["💰 薪資計算", "📅 請假 / 加班登錄", "👤 薪資資料"])

    with tab_pay:
        st.caption("本月手動輸入項目 (保險費留空則使用人員預設值)")
        df_inputs = pd.DataFrame([{
            "staff_id": s["id"],
            "姓名": s["name"],
            "平日加班 (分)": 0,
            "勞健保自付": float("nan"),
            "其他調整": 0,
        } for s in staff_members])
        edited_inputs = st.data_editor(
            df_inputs,
            column_config={
                "staff_id": None,
                "姓名": st.column_config.TextColumn("姓名", disabled=True),
                "平日加班 (分)": st.column_config.NumberColumn("平日加班 (分)", min_value=0, step=1),
                "勞健保自付": st.column_config.NumberColumn("勞健保自付", min_value=0, step=1),
                "其他調整": st.column_config.NumberColumn("其他調整", step=100),
            },
            hide_index=True,
            use_container_width=True,
            key="payroll_inputs"
        )

        if st.button("計算薪資", type="primary", key="calc_payroll"):
            inputs = {}
            for _, row in edited_inputs.iterrows():
                insurance = row["勞健保自付"]
                inputs[row["staff_id"]] = {
                    "regular_ot_minutes": row["平日加班 (分)"],
                    "insurance": None if pd.isna(insurance) else insurance,
                    "adjustment": row["其他調整"],
                }
            try:
                st.session_state["payroll_report"] = reports.run_payroll_report(
                    clinic_id, selected_month, inputs, {"attendance_bonus": attendance_bonus, "ot_rate": ot_rate}
                )
            except reports.CalculationError as e:
                st.error(f"計算失敗: {e}")

        payroll_report = st.session_state.get("payroll_report")
        if payroll_report and payroll_report["clinic_id"] == clinic_id and payroll_report["month"] == selected_month:
            totals = payroll_report["totals"]
            p1, p2, p3 = st.columns(3)
            p1.metric("人數", totals["headcount"])
            p2.metric("實發總額", f"${totals['total_net_pay']:,.0f}")
            p3.metric("績效獎金總額", f"${totals['total_performance_bonus']:,.0f}")

            df_payroll = export.payroll_dataframe(payroll_report["lines"])
            st.dataframe(df_payroll, hide_index=True, use_container_width=True)
            st.download_button(
                "下載薪資表 (xlsx)",
                data=export.to_xlsx_bytes({"Payroll": df_payroll}),
                file_name=f"{clinic_name}_{selected_month}_員工薪資.xlsx",
            )

    with tab_attendance:
        schedules = db.get_staff_schedules(clinic_id, selected_month)
        names = {s["id"]: s["name"] for s in staff_members}
        entries = []
        for schedule in schedules:
            config = schedule["staff_configuration"]
            entries += [{"日期": schedule["date"], "姓名": names.get(str(sid), sid), "狀態": "休假"}
                        for sid in config["off"]]
            entries += [{"日期": schedule["date"], "姓名": names.get(str(e["id"]), e["id"]), "狀態": e["type"]}
                        for e in config["leave"]]
            entries += [{"日期": schedule["date"], "姓名": names.get(str(e["id"]), e["id"]), "狀態": f"加班 {e['type']}"}
                        for e in config["overtime"]]
        if entries:
            st.dataframe(pd.DataFrame(entries), hide_index=True, use_container_width=True)
        else:
            st.info("本月尚無請假 / 加班紀錄")

        if not locked:
            with st.form("attendance_form", clear_on_submit=True):
                a1, a2, a3 = st.columns(3)
                with a1:
                    att_date = st.date_input("日期", datetime.now())
                    att_staff = st.selectbox("人員", list(names.keys()), format_func=lambda sid: names[sid])
                with a2:
                    att_status = st.selectbox(
                        "狀態", ["leave", "off", "overtime", "work"],
                        format_func=lambda s: {"leave": "請假", "off": "休假", "overtime": "週日加班", "work": "正常上班"}[s]
                    )
                    att_leave_type = st.selectbox("假別", utils.LEAVE_TYPES)
                with a3:
                    att_half = st.checkbox("半天")
                if st.form_submit_button("登錄"):
                    if att_date.strftime('%Y-%m') != selected_month:
                        st.error("日期不在所選月份內")
                    else:
                        entry_type = att_leave_type if att_status == "leave" else "加班"
                        if att_half:
                            entry_type += utils.HALF_DAY_MARK
                        try:
                            db.set_staff_attendance(clinic_id, att_date.strftime('%Y-%m-%d'), att_staff,
                                                    att_status, entry_type)
                            st.success("已登錄")
                            st.rerun()
                        except db.MonthLockedError as e:
                            st.error(str(e))

    with tab_profile:
        df_pay = pd.DataFrame([{
            "staff_id": s["id"],
            "姓名": s["name"],
            "base_salary": s["base_salary"],
            "allowance": s["allowance"],
            "monthly_insurance_cost": s["monthly_insurance_cost"],
        } for s in staff_members])
        edited_pay = st.data_editor(
            df_pay,
            column_config={
                "staff_id": None,
                "姓名": st.column_config.TextColumn("姓名", disabled=True),
                "base_salary": st.column_config.NumberColumn("本薪", min_value=0, step=100),
                "allowance": st.column_config.NumberColumn("職務加給", min_value=0, step=100),
                "monthly_insurance_cost": st.column_config.NumberColumn("勞健保自付 (預設)", min_value=0, step=1),
            },
            hide_index=True,
            use_container_width=True,
            key="staff_pay_editor"
        )
        if st.button("儲存薪資資料", type="primary"):
            for _, row in edited_pay.iterrows():
                db.save_staff_pay(row["staff_id"], {field: row[field] for field in db.STAFF_PAY_FIELDS})
            st.success("薪資資料已儲存")

elif page == "醫師薪資 (Doctor Salary)":
    st.header("醫師薪資表")

    selected_month = month_picker("ds")
    doctors = [d for d in db.get_doctors(clinic_id) if not d["is_deleted"]]
    if not doctors:
        st.warning("此診所尚無醫師資料")
        st.stop()

    tab1, tab2 = st.tabs(["👤 個人薪資 (Individual)", "📊 全院總表 (Summary)"])

    with tab1:
        doctor_names = {d["id"]: d["name"] for d in doctors}
        doctor_id = st.selectbox("醫師", list(doctor_names.keys()), format_func=lambda did: doctor_names[did])

        if st.button("計算薪資", type="primary", key="calc_individual"):
            try:
                st.session_state["statement"] = reports.run_doctor_statement(clinic_id, selected_month, doctor_id)
            except (reports.CalculationError, ValueError) as e:
                st.error(f"計算失敗: {e}")

        statement = st.session_state.get("statement")
        if statement and statement["doctor_id"] == doctor_id and statement["month"] == selected_month:
            lock_banner(statement["is_locked"], selected_month)
            st.metric("本月應發總額", f"${statement['total_income']:,.0f}")

            summary_rows = export.statement_summary_rows(statement)
            st.dataframe(pd.DataFrame(summary_rows[1:], columns=summary_rows[0]), hide_index=True, use_container_width=True)

            for key, data in statement["categories"].items():
                if not data["items"]:
                    continue
                with st.expander(f"{data['label']} - 所得 ${data['total_income']:,.0f}"):
                    df_items = pd.DataFrame(data["items"])[["date", "patient", "content", "revenue", "lab_fee", "net_profit", "income"]]
                    df_items.columns = export.DETAIL_HEADER
                    st.dataframe(df_items, hide_index=True, use_container_width=True)

            st.download_button(
                "下載薪資表 (xlsx)",
                data=export.to_xlsx_bytes({"Salary Statement": export.statement_rows(statement, clinic_name)}),
                file_name=f"{statement['doctor_name']}_{selected_month}_薪資表.xlsx",
            )

            # Adjustments
            st.divider()
            st.subheader("薪資調整")
            for adj in statement["adjustments"]:
                c1, c2 = st.columns([0.85, 0.15])
                c1.text(f"{adj.get('date', '')} {adj['category']} ${adj['amount']:,} {adj.get('note', '')}")
                if not statement["is_locked"] and c2.button("刪除", key=f"del_adj_{adj['id']}"):
                    db.delete_salary_adjustment(adj["id"])
                    st.session_state.pop("statement", None)
                    st.rerun()

            if not statement["is_locked"]:
                with st.form("adjustment_form", clear_on_submit=True):
                    a1, a2, a3 = st.columns(3)
                    with a1:
                        adj_date = st.date_input("日期", datetime.now())
                        adj_type = st.radio("類型", ["加項", "扣項"], horizontal=True)
                    with a2:
                        adj_category = st.selectbox("項目", utils.ADJUSTMENT_CATEGORIES)
                        adj_amount = st.number_input("金額", min_value=0, step=100)
                    with a3:
                        adj_note = st.text_input("備註")
                    if st.form_submit_button("新增調整"):
                        try:
                            db.add_salary_adjustment({
                                "clinic_id": clinic_id,
                                "doctor_id": doctor_id,
                                "month": selected_month,
                                "date": adj_date.strftime('%Y-%m-%d'),
                                "category": adj_category,
                                "amount": adj_amount if adj_type == "加項" else -adj_amount,
                                "note": adj_note,
                            })
                            st.session_state.pop("statement", None)
                            st.success("已新增，請重新計算")
                        except db.MonthLockedError as e:
                            st.error(str(e))

    with tab2:
        if st.button("計算全院總表", type="primary", key="calc_summary"):
            try:
                st.session_state["salary_summary"] = reports.run_clinic_summary(clinic_id, selected_month)
            except reports.CalculationError as e:
                st.error(f"計算失敗: {e}")

        summary = st.session_state.get("salary_summary")
        if summary and summary["clinic_id"] == clinic_id and summary["month"] == selected_month:
            lock_banner(summary["is_locked"], selected_month)
            matrix = export.summary_matrix_rows(summary, clinic_name)
            st.dataframe(pd.DataFrame(matrix[4:], columns=matrix[3]), hide_index=True, use_container_width=True)

            df_payout = pd.DataFrame(summary["doctors"])
            if not df_payout.empty:
                chart = alt.Chart(df_payout).mark_bar().encode(
                    x=alt.X('doctor_name', title='醫師'),
                    y=alt.Y('total_payout', title='應發總額'),
                    tooltip=['doctor_name', alt.Tooltip('total_payout', format=',.0f')]
                )
                st.altair_chart(chart, use_container_width=True)

            st.download_button(
                "下載總表 (xlsx)",
                data=export.to_xlsx_bytes({"Summary": matrix}),
                file_name=f"{clinic_name}_{selected_month}_醫師薪資總表.xlsx",
            )

elif page == "健保申報 (NHI Claims)":
    st.header("健保申報金額登錄")
    st.caption("每位醫師每月一筆申報總額")

    selected_month = month_picker("nhi")
    doctors = [d for d in db.get_doctors(clinic_id) if not d["is_deleted"]]
    existing = {r["doctor_id"]: r for r in db.get_nhi_records(clinic_id, selected_month)}
    locked = db.is_month_locked(clinic_id, selected_month)
    lock_banner(locked, selected_month)

    df_nhi = pd.DataFrame([{
        "doctor_id": d["id"],
        "醫師": d["name"],
        "申報金額": existing.get(d["id"], {}).get("amount", 0),
        "備註": existing.get(d["id"], {}).get("note", ""),
    } for d in doctors])

    if df_nhi.empty:
        st.warning("此診所尚無醫師資料")
    else:
        edited = st.data_editor(
            df_nhi,
            column_config={
                "doctor_id": None,
                "醫師": st.column_config.TextColumn("醫師", disabled=True),
                "申報金額": st.column_config.NumberColumn("申報金額", min_value=0, step=1),
            },
            hide_index=True,
            use_container_width=True,
            disabled=locked,
            key="nhi_editor"
        )
        if st.button("儲存申報資料", type="primary", disabled=locked):
            try:
                db.save_nhi_records([{
                    "clinic_id": clinic_id,
                    "month": selected_month,
                    "doctor_id": row["doctor_id"],
                    "doctor_name": row["醫師"],
                    "amount": row["申報金額"],
                    "note": row["備註"],
                } for _, row in edited.iterrows()])
                st.success("健保申報資料已儲存")
            except db.MonthLockedError as e:
                st.error(str(e))

elif page == "技工費 (Lab Fees)":
    st.header("技工費紀錄")

    selected_month = month_picker("lab")
    locked = db.is_month_locked(clinic_id, selected_month)
    lock_banner(locked, selected_month)

    records = db.get_technician_records(clinic_id, None, selected_month)
    if records:
        df_lab = pd.DataFrame(records)[["id", "date", "lab_name", "type", "doctor_name", "patient_name", "category", "amount", "note"]]
        df_lab['刪除'] = False
        edited = st.data_editor(
            df_lab,
            column_config={
                "id": None,
                "date": st.column_config.TextColumn("日期", disabled=True),
                "lab_name": st.column_config.TextColumn("技工所", disabled=True),
                "type": st.column_config.TextColumn("類型", disabled=True),
                "doctor_name": st.column_config.TextColumn("醫師", disabled=True),
                "patient_name": st.column_config.TextColumn("病患", disabled=True),
                "category": st.column_config.TextColumn("類別", disabled=True),
                "amount": st.column_config.NumberColumn("金額", disabled=True),
                "note": st.column_config.TextColumn("備註", disabled=True),
                "刪除": st.column_config.CheckboxColumn("刪除", default=False),
            },
            hide_index=True,
            use_container_width=True,
            disabled=locked,
            key="lab_editor"
        )
        if not locked and st.button("刪除所選紀錄", type="secondary"):
            to_delete = edited[edited['刪除'] == True]
            for _, row in to_delete.iterrows():
                db.delete_technician_record(row['id'])
            if not to_delete.empty:
                st.success(f"成功刪除 {len(to_delete)} 筆紀錄")
                st.rerun()
    else:
        st.info("本月尚無技工費紀錄")

    if not locked:
        st.divider()
        st.subheader("新增手動技工費")
        doctors = [d for d in db.get_doctors(clinic_id) if not d["is_deleted"]]
        category_keys = [k for k in utils.CATEGORY_MAP if k != "nhi"] + ["vault"]
        with st.form("lab_form", clear_on_submit=True):
            l1, l2, l3 = st.columns(3)
            with l1:
                lab_date = st.date_input("日期", datetime.now())
                lab_name = st.text_input("技工所")
            with l2:
                lab_doctor = st.selectbox("醫師", [d["name"] for d in doctors])
                lab_category = st.selectbox(
                    "類別", category_keys,
                    format_func=lambda k: utils.CATEGORY_MAP[k]["label"] if k in utils.CATEGORY_MAP else "小金庫 (Vault)"
                )
            with l3:
                lab_patient = st.text_input("病患")
                lab_amount = st.number_input("金額", min_value=0, step=100)
            lab_note = st.text_input("備註")
            if st.form_submit_button("新增"):
                if lab_date.strftime('%Y-%m') != selected_month:
                    st.error("日期不在所選月份內")
                else:
                    try:
                        db.save_technician_record({
                            "clinic_id": clinic_id,
                            "lab_name": lab_name,
                            "date": lab_date.strftime('%Y-%m-%d'),
                            "type": "manual",
                            "amount": lab_amount,
                            "patient_name": lab_patient,
                            "doctor_name": lab_doctor,
                            "category": lab_category,
                            "note": lab_note,
                        })
                        st.success("紀錄已新增")
                        st.rerun()
                    except db.MonthLockedError as e:
                        st.error(str(e))

elif page == "抽成設定 (Commission Rates)":
    st.header("醫師抽成比率")

    doctors = [d for d in db.get_doctors(clinic_id) if not d["is_deleted"]]
    if not doctors:
        st.warning("此診所尚無醫師資料")
    else:
        rate_keys = [info["rate_key"] for info in utils.CATEGORY_MAP.values()]
        df_rates = pd.DataFrame([
            dict({"doctor_id": d["id"], "醫師": d["name"]},
                 **{k: utils.to_number(d["commission_rates"].get(k)) for k in rate_keys})
            for d in doctors
        ])
        column_config = {"doctor_id": None, "醫師": st.column_config.TextColumn("醫師", disabled=True)}
        for info in utils.CATEGORY_MAP.values():
            column_config[info["rate_key"]] = st.column_config.NumberColumn(
                info["label"], min_value=0, max_value=100, step=1, format="%d%%"
            )
        edited = st.data_editor(df_rates, column_config=column_config, hide_index=True, use_container_width=True,
                                key="rates_editor")

        if st.button("儲存抽成設定", type="primary"):
            for _, row in edited.iterrows():
                db.save_commission_rates(row["doctor_id"], {k: row[k] for k in rate_keys})
            st.success("抽成比率已儲存")

elif page == "月結鎖定 (Month Lock)":
    st.header("月結鎖定")

    selected_month = month_picker("lock")
    status = db.get_monthly_closing_status(clinic_id, selected_month)

    if status and status["is_locked"]:
        st.success(f"✅ {selected_month} 已於 {status['locked_at']} 由 {status['locked_by']} 鎖定。")
        if st.button("解除鎖定", type="secondary"):
            db.unlock_month(clinic_id, selected_month)
            st.rerun()
    else:
        if status and status.get("unlocked_at"):
            st.caption(f"上次解鎖時間: {status['unlocked_at']}")
        records = db.load_month_accounting_records(clinic_id, selected_month)
        open_days = sorted(d for d, r in records.items() if not r["is_locked"])
        st.metric("已登錄日數", len(records))
        user_name = st.text_input("鎖定人員")

        if open_days:
            st.warning("以下日期尚未結帳: " + ", ".join(open_days))
            with st.expander("逐日結帳"):
                for day in open_days:
                    c1, c2 = st.columns([0.8, 0.2])
                    c1.text(day)
                    if c2.button("結帳", key=f"close_{day}", disabled=not user_name):
                        db.lock_daily_report(clinic_id, day, user_name)
                        st.rerun()

        if st.button("鎖定本月", type="primary"):
            if not user_name:
                st.error("請輸入鎖定人員")
            else:
                try:
                    db.lock_month(clinic_id, selected_month, user_name)
                    st.success("已鎖定")
                    st.rerun()
                except ValueError as e:
                    st.error(str(e))
