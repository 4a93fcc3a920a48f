# =============================================================================
# 模块: core/student_id.py
# 功能: 学号解析（学制、入学学年、系所名称）
# 架构角色: 纯函数，无 I/O。学生爬虫用它填充记录，StudentSchema 用它校验
#   year / department 与学号一致。
#
# 学号格式:
#   - 第 1 位：学制（3 进修学士 / 4 学士 / 7 硕士 / 8 博士）
#   - 8 位学号：第 2-3 位为学年，第 4-5 位为系代码
#   - 9 位学号：第 2-4 位为学年，第 5-6 位为系代码
#   - 学士班法律（71）与社会（74）系需再取下一位作为组别
# =============================================================================
"""Student id decoding."""

from __future__ import annotations

from typing import Dict

UNKNOWN = "未知"

# 学士班：简称 -> 系代码
DEPARTMENT_CODES: Dict[str, str] = {
    "法律": "71",
    "法學": "712",
    "司法": "714",
    "財法": "716",
    "公行": "72",
    "經濟": "73",
    "社學": "742",
    "社工": "744",
    "財政": "75",
    "不動": "76",
    "會計": "77",
    "統計": "78",
    "企管": "79",
    "金融": "80",
    "中文": "81",
    "應外": "82",
    "歷史": "83",
    "休運": "84",
    "資工": "85",
    "通訊": "86",
    "電機": "87",
}

# 学士班：系代码 -> 简称
DEPARTMENT_NAMES: Dict[str, str] = {code: name for name, code in DEPARTMENT_CODES.items()}

# 学士班全名
FULL_DEPARTMENT_NAMES: Dict[str, str] = {
    "71": "法律學系",
    "712": "法學組",
    "714": "司法組",
    "716": "財經法組",
    "72": "公共行政暨政策學系",
    "73": "經濟學系",
    "742": "社會學系",
    "744": "社會工作學系",
    "75": "財政學系",
    "76": "不動產與城鄉環境學系",
    "77": "會計學系",
    "78": "統計學系",
    "79": "企業管理學系",
    "80": "金融與合作經營學系",
    "81": "中國文學系",
    "82": "應用外語學系",
    "83": "歷史學系",
    "84": "休閒運動管理學系",
    "85": "資訊工程學系",
    "86": "通訊工程學系",
    "87": "電機工程學系",
}

MASTER_DEPARTMENT_NAMES: Dict[str, str] = {
    "31": "企業管理學系碩士班",
    "32": "會計學系碩士班",
    "33": "統計學系碩士班",
    "34": "金融與合作經營學系碩士班",
    "35": "國際企業研究所碩士班",
    "36": "資訊管理研究所",
    "37": "財務金融英語碩士學位學程",
    "41": "民俗藝術與文化資產研究所",
    "42": "古典文獻學研究所",
    "43": "中國文學系碩士班",
    "44": "歷史學系碩士班",
    "51": "法律學系碩士班一般生組",
    "52": "法律學系碩士班法律專業組",
    "61": "經濟學系碩士班",
    "62": "社會學系碩士班",
    "63": "社會工作學系碩士班",
    "64": "犯罪學研究所",
    "71": "公共行政暨政策學系碩士班",
    "72": "財政學系碩士班",
    "73": "不動產與城鄉環境學系碩士班",
    "74": "都市計劃研究所碩士班",
    "75": "自然資源與環境管理研究所碩士班",
    "76": "城市治理英語碩士學位學程",
    "77": "會計學系碩士在職專班",
    "78": "統計學系碩士在職專班",
    "79": "企業管理學系碩士在職專班",
    "81": "通訊工程學系碩士班",
    "82": "電機工程學系碩士班",
    "83": "資訊工程學系碩士班",
    "91": "智慧醫療管理英語碩士學位學程",
}

PHD_DEPARTMENT_NAMES: Dict[str, str] = {
    "31": "企業管理學系博士班",
    "32": "會計學系博士班",
    "51": "法律學系博士班",
    "61": "經濟學系博士班",
    "71": "公共行政暨政策學系博士班",
    "73": "不動產與城鄉環境學系博士班",
    "74": "都市計劃研究所博士班",
    "75": "自然資源與環境管理研究所博士班",
    "76": "電機資訊學院博士班",
}

DEGREE_KINDS: Dict[str, str] = {
    "3": "進修學士",
    "4": "學士",
    "7": "碩士",
    "8": "博士",
}

def extract_year(student_id: str) -> int:
    """Return the enrolment year encoded in ``student_id`` (0 if too short).

    >>> extract_year("410712345")
    107
    >>> extract_year("41012345")
    10
    """
    if len(student_id) < 5:
        return 0
    digits = student_id[1:4] if len(student_id) == 9 else student_id[1:3]
    try:
        return int(digits)
    except ValueError:
        return 0


def derive_department(student_id: str) -> str:
    """Derive the department label from the digit positions of ``student_id``."""
    if len(student_id) < 7:
        return UNKNOWN

    is_over_99 = len(student_id) == 9
    code = student_id[4:6] if is_over_99 else student_id[3:5]

    if student_id[0] == "7":
        return MASTER_DEPARTMENT_NAMES.get(code, "未知碩士班")
    if student_id[0] == "8":
        return PHD_DEPARTMENT_NAMES.get(code, "未知博士班")

    # 社會系需第三位区分社學 / 社工
    if code == "74":
        code += student_id[6] if is_over_99 else student_id[5]

    name = DEPARTMENT_NAMES.get(code)
    if name:
        return name + "系"
    return "未知系所"


def degree_kind(student_id: str) -> str:
    """Return the degree kind named by the first digit."""
    if not student_id:
        return UNKNOWN
    return DEGREE_KINDS.get(student_id[0], UNKNOWN)
