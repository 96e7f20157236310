import re
from enum import Enum

MIN_MEANINGFUL_CHARS = 2


class Intent(str, Enum):
    HUMAN_HANDOFF_REQUEST = "human_handoff_request"  # 使用者要求真人客服
    HUMAN_HANDOFF_RESUME = "human_handoff_resume"  # 使用者要求恢復自動回覆
    GREETING = "greeting"
    LOW_INFORMATION = "low_information"  # 內容太少，無法判斷
    ORDER_QUERY = "order_query"  # 訂單、物流查詢
    VENDOR_TASK = "vendor_task"  # 交給外部廠商系統處理
    FALLBACK_AI = "fallback_ai"


HANDOFF_INTENTS = {Intent.HUMAN_HANDOFF_REQUEST, Intent.HUMAN_HANDOFF_RESUME}
FORWARD_INTENTS = {Intent.ORDER_QUERY, Intent.VENDOR_TASK}

# Resume phrases such as "結束人工客服" also contain request words; a resume
# match always disqualifies a request match so the two stay exclusive.
HANDOFF_REQUEST_PATTERNS = (
    re.compile(r"(轉|找|要|接)(真人|人工|專人|客服)"),
    re.compile(r"(真人|人工|專人)(客服|服務|回覆|協助)"),
    re.compile(r"(請|讓)?(真人|客服人員|專員)(來)?(回答|處理|跟我說|聯絡我)"),
    re.compile(r"\b(talk|speak|chat)\s+(to|with)\s+(a\s+)?(human|person|agent|real person|someone)\b"),
    re.compile(r"\b(human|live)\s+(agent|support)\b"),
)

HANDOFF_RESUME_PATTERNS = (
    re.compile(r"恢復(自動|機器人|ai)"),
    re.compile(r"(結束|取消|停止)(真人|人工|轉接)"),
    re.compile(r"(回到|切回|換回)(自動|機器人|ai)"),
    re.compile(r"\b(resume|restart)\s+(the\s+)?(bot|auto(mated)?\s*repl(y|ies))\b"),
    re.compile(r"\bbot\s+on\b"),
)

GREETING_PATTERN = re.compile(
    r"^(hi+|hello|hey|hiya|yo|good\s+(morning|afternoon|evening)|"
    r"你好|您好|哈囉|哈摟|嗨嗨|嗨你好|安安|早安|午安|晚安|大家好)"
    r"\s*[!！.。~～?？,，]*$"
)

ORDER_KEYWORD_PATTERN = re.compile(
    r"(訂單|查單|單號|出貨|寄出|物流|貨運|運送|配送|宅配|到貨|包裹|追蹤碼|退貨|退款|換貨|"
    r"\border\b|\bshipping\b|\bshipment\b|\btracking\b|\bdelivery\b|\brefund\b)"
)

# Bare order ids: letter-prefixed ("A123456", "TW-2024001"), hash-prefixed
# ("#123456") or long digit runs.
ORDER_ID_PATTERN = re.compile(
    r"(?<![a-z0-9])[a-z]{1,3}-?\d{5,12}(?![a-z0-9])|#\d{5,}|(?<!\d)\d{10,16}(?!\d)"
)

VENDOR_KEYWORD_PATTERN = re.compile(
    r"(報價|估價|預約|訂購|下單|購買|庫存|現貨|價格|價錢|多少錢|規格|尺寸|型號|保固|維修|"
    r"\bquote\b|\bprice\b|\bbooking\b|\breserv(e|ation)\b|\bstock\b|\bbuy\b|\bpurchase\b)"
)

MEANINGFUL_CHAR_PATTERN = re.compile(r"[^\W_]")


def normalize_for_matching(text: str) -> str:
    """Casefold, trim and collapse whitespace."""
    if not text:
        return ""
    normalized = text.strip().casefold()
    return re.sub(r"\s+", " ", normalized)


def meaningful_length(text: str) -> int:
    """Count letters, digits and CJK ideographs, ignoring whitespace and punctuation."""
    if not text:
        return 0
    return len(MEANINGFUL_CHAR_PATTERN.findall(text))


def is_handoff_request(text: str) -> bool:
    normalized = normalize_for_matching(text)
    if not normalized or is_handoff_resume(normalized):
        return False
    return any(p.search(normalized) for p in HANDOFF_REQUEST_PATTERNS)


def is_handoff_resume(text: str) -> bool:
    normalized = normalize_for_matching(text)
    return bool(normalized) and any(p.search(normalized) for p in HANDOFF_RESUME_PATTERNS)


def is_greeting_message(text: str) -> bool:
    return bool(GREETING_PATTERN.match(normalize_for_matching(text)))


def is_low_information(text: str) -> bool:
    return meaningful_length(text) < MIN_MEANINGFUL_CHARS


def is_order_query(text: str) -> bool:
    normalized = normalize_for_matching(text)
    if not normalized:
        return False
    return bool(ORDER_KEYWORD_PATTERN.search(normalized) or ORDER_ID_PATTERN.search(normalized))


def is_vendor_task(text: str) -> bool:
    normalized = normalize_for_matching(text)
    if not normalized:
        return False
    return bool(VENDOR_KEYWORD_PATTERN.search(normalized)) and not is_order_query(normalized)


def classify(text: str) -> Intent:
    """Classify a text message. First matching rule wins.

    The snooze gate sits between the handoff rules and the rest; the caller
    applies it, since every intent except the two handoff ones is gated.
    """
    if not text or not text.strip():
        return Intent.LOW_INFORMATION

    if is_handoff_request(text):
        return Intent.HUMAN_HANDOFF_REQUEST
    if is_handoff_resume(text):
        return Intent.HUMAN_HANDOFF_RESUME

    if is_greeting_message(text):
        return Intent.GREETING
    if is_low_information(text):
        return Intent.LOW_INFORMATION
    if is_order_query(text):
        return Intent.ORDER_QUERY
    if is_vendor_task(text):
        return Intent.VENDOR_TASK
    return Intent.FALLBACK_AI


def is_gated(intent: Intent) -> bool:
    """Whether an active snooze suppresses this intent."""
    return intent not in HANDOFF_INTENTS
