# 定義療程類別、獎金設定預設值與共用計算工具
import calendar
import math

# 薪資表療程類別 (固定順序: 健保 -> 植牙 -> 矯正 -> 假牙 -> SOV -> 隱適美 -> 美白 -> 牙周 -> 其他)
CATEGORY_MAP = {
    "nhi": {"label": "健保申報 (NHI)", "rate_key": "nhi"},
    "implant": {"label": "植牙 (Implant)", "rate_key": "implant"},
    "ortho": {"label": "矯正 (Ortho)", "rate_key": "ortho"},
    "prostho": {"label": "假牙 (Prostho)", "rate_key": "prostho"},
    "sov": {"label": "SOV", "rate_key": "sov"},
    "inv": {"label": "隱適美 (INV)", "rate_key": "inv"},
    "whitening": {"label": "美白 (Whitening)", "rate_key": "whitening"},
    "perio": {"label": "牙周 (Perio)", "rate_key": "perio"},
    "other_self_pay": {"label": "其他自費 (Other)", "rate_key": "other_self_pay"},
}

# 自費療程 (獎金計算用)
SELF_PAY_KEYS = [
    "prostho",
    "implant",
    "ortho",
    "sov",
    "inv",
    "whitening",
    "perio",
    "other_self_pay",
]

# 小金庫 / 零售商品
RETAIL_KEYS = ["products", "diy_whitening"]

TREATMENT_KEYS = ["reg_fee", "copayment"] + SELF_PAY_KEYS

PAYMENT_KEYS = ["cash", "card", "transfer"]

# 技工費不列入醫師抽成的類別
NON_COMMISSION_LAB_CATEGORIES = ["vault", ""]

# 人員職稱
STAFF_ROLES = {
    "consultant": "諮詢師",
    "trainee": "培訓生",
    "assistant": "助理",
    "part_time": "兼職",
    "manager": "主管",
}

BONUS_ELIGIBLE_ROLES = ["consultant", "trainee", "assistant"]
POOL_ROLE = "consultant"

# 獎金比率預設值 (%)
DEFAULT_BONUS_SETTINGS = {
    "pool_rate": 30,
    "self_pay_rate": 1,
    "retail_rate": 10,
}

# 薪資調整常用項目
ADJUSTMENT_CATEGORIES = ["行政費", "餐費", "代墊款", "獎金", "其他"]

# 員工月薪 (兼職另計)
PAYROLL_EXCLUDED_ROLES = ["part_time"]
PERSONAL_LEAVE = "事假"
SICK_LEAVE = "病假"
SPECIAL_LEAVES = ["特休", "公假", "婚假", "喪假", "產假"]
LEAVE_TYPES = [PERSONAL_LEAVE, SICK_LEAVE] + SPECIAL_LEAVES
HALF_DAY_MARK = "(半)"
DAILY_RATE_DIVISOR = 30

DEFAULT_PAYROLL_SETTINGS = {
    "attendance_bonus": 3000,   # 全勤獎金
    "ot_rate": 3.5,             # 平日加班 (每分鐘)
}


def to_number(value):
    """
    將欄位值轉為數字，空值或格式錯誤一律視為 0。
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            return 0
        return value
    try:
        text = str(value).replace(",", "").strip()
        if not text:
            return 0
        number = float(text)
    except ValueError:
        return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    return int(number) if number.is_integer() else number


def round_half_up(value):
    """四捨五入至整數 (.5 一律往正方向進位)。"""
    return int(math.floor(value + 0.5))


def parse_month(year_month):
    """'YYYY-MM' -> (year, month)"""
    try:
        year_str, month_str = str(year_month).split("-")
        year, month = int(year_str), int(month_str)
    except ValueError:
        raise ValueError(f"Invalid month: {year_month!r}, expected YYYY-MM")
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {year_month!r}, expected YYYY-MM")
    return year, month


def days_in_month(year_month):
    year, month = parse_month(year_month)
    return calendar.monthrange(year, month)[1]


def month_dates(year_month):
    """Return every YYYY-MM-DD date string of the month, in order."""
    year, month = parse_month(year_month)
    return [f"{year}-{month:02d}-{day:02d}" for day in range(1, days_in_month(year_month) + 1)]


def month_of(date_str):
    return str(date_str)[:7]


def role_label(role):
    return STAFF_ROLES.get(role, role)
