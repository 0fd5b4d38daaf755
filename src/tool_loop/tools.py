# tools.py
# Built-in tool implementations and the default registry.
# The loop looks tools up through the registry and never calls these directly.
#
# Every tool reports business failures as ToolResult(success=False) and only
# raises for genuinely unexpected conditions.

import math
import re
from datetime import date, datetime, timezone
from typing import Any

from tool_loop.models import ToolContext, ToolParameter, ToolResult
from tool_loop.registry import ToolDescriptor, ToolRegistry


def _fail(summary: str) -> ToolResult:
    return ToolResult(success=False, data=None, summary=summary)


# ---------------------------------------------------------------------------
# calculate
# ---------------------------------------------------------------------------

_EXPRESSION_CHARS = re.compile(r"^[0-9+\-*/.()%]+$")
_TOKEN = re.compile(r"\d+(?:\.\d*)?|\.\d+|[+\-*/()%]")


class _Calculator:
    """
    Recursive-descent evaluator. No eval().

        expr   = term (('+' | '-') term)*
        term   = factor (('*' | '/') factor)*
        factor = number ['%'] | '(' expr ')' | '-' factor
    """

    def __init__(self, expression: str) -> None:
        self._tokens = _TOKEN.findall(expression)
        if "".join(self._tokens) != expression:
            raise ValueError("Malformed number in expression")
        self._pos = 0

    def _peek(self) -> str | None:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _take(self) -> str:
        token = self._tokens[self._pos]
        self._pos += 1
        return token

    def evaluate(self) -> float:
        value = self._expr()
        if self._peek() is not None:
            raise ValueError(f"Unexpected token: {self._peek()}")
        return value

    def _expr(self) -> float:
        left = self._term()
        while self._peek() in ("+", "-"):
            op = self._take()
            right = self._term()
            left = left + right if op == "+" else left - right
        return left

    def _term(self) -> float:
        left = self._factor()
        while self._peek() in ("*", "/"):
            op = self._take()
            right = self._factor()
            if op == "/":
                if right == 0:
                    raise ValueError("Division by zero")
                left = left / right
            else:
                left = left * right
        return left

    def _factor(self) -> float:
        token = self._peek()
        if token == "(":
            self._take()
            value = self._expr()
            if self._peek() != ")":
                raise ValueError("Missing closing parenthesis")
            self._take()
            return value
        if token == "-":
            self._take()
            return -self._factor()
        if token is not None and (token[0].isdigit() or token[0] == "."):
            number = float(self._take())
            if self._peek() == "%":
                self._take()
                return number / 100
            return number
        raise ValueError(f"Unexpected token: {token}")


def evaluate_expression(expression: str) -> float:
    cleaned = re.sub(r"\s+", "", expression)
    if not cleaned or not _EXPRESSION_CHARS.match(cleaned):
        raise ValueError("Invalid characters in expression")
    return _Calculator(cleaned).evaluate()


def _date_diff(values: dict[str, Any]) -> ToolResult:
    start, end = values.get("start"), values.get("end")
    if not start or not end:
        return _fail("date_diff requires start and end dates")
    try:
        days = (date.fromisoformat(str(end)[:10]) - date.fromisoformat(str(start)[:10])).days
    except ValueError:
        return _fail(f"Invalid dates: {start!r}, {end!r}")
    return ToolResult(
        success=True,
        data={"days": days, "start": start, "end": end},
        summary=f"{days} days between {start} and {end}",
    )


def _weighted_score(values: dict[str, Any]) -> ToolResult:
    scores = values.get("scores") or {}
    weights = values.get("weights") or {}
    if not isinstance(scores, dict) or not isinstance(weights, dict):
        return _fail("weighted_score requires scores and weights objects")

    breakdown = []
    weighted_sum = 0.0
    total_weight = 0.0
    for dimension, score in scores.items():
        try:
            weight = float(weights.get(dimension, 0) or 0)
            weighted = float(score) * weight
        except (TypeError, ValueError):
            return _fail(f"Non-numeric score or weight for {dimension!r}")
        weighted_sum += weighted
        total_weight += weight
        breakdown.append(
            {
                "dimension": dimension,
                "score": score,
                "weight": weight,
                "weighted": round(weighted, 2),
            }
        )

    composite = round(weighted_sum, 2)
    parts = ", ".join(f"{b['dimension']}: {b['score']}×{b['weight']}={b['weighted']}" for b in breakdown)
    return ToolResult(
        success=True,
        data={"composite_score": composite, "total_weight": total_weight, "breakdown": breakdown},
        summary=f"Weighted composite score: {composite}/100 ({parts})",
    )


def _tool_calculate(params: dict[str, Any], context: ToolContext) -> ToolResult:
    operation = params.get("operation")
    values = params.get("values") or {}
    if operation == "date_diff":
        return _date_diff(values)
    if operation == "weighted_score":
        return _weighted_score(values)

    expression = params.get("expression")
    if not isinstance(expression, str) or not expression.strip():
        return _fail("Error: no expression provided.")
    try:
        result = evaluate_expression(expression)
    except ValueError as exc:
        return _fail(f"Calculation error: {exc}")
    if not math.isfinite(result):
        return _fail("Expression did not produce a valid number")

    rounded = round(result, 4)
    shown = int(rounded) if rounded.is_integer() else rounded
    return ToolResult(
        success=True,
        data={"expression": expression, "result": rounded},
        summary=f"{expression} = {shown}",
    )


# ---------------------------------------------------------------------------
# data_validation
# ---------------------------------------------------------------------------

CTR_THRESHOLDS: dict[str, tuple[float, str]] = {
    "US": (10000, "USD"),
    "EU": (15000, "EUR"),
    "IN": (1000000, "INR"),
    "AE": (55000, "AED"),
    "UK": (10000, "GBP"),
}

TYPE_THRESHOLDS: dict[str, float] = {
    "wire_transfer": 10000,
    "international_transfer": 5000,
    "p2p_transfer": 8000,
    "card_payment": 15000,
    "cash_withdrawal": 10000,
    "cash_deposit": 10000,
}


def luhn_check(card_number: str) -> bool:
    digits = re.sub(r"\D", "", card_number)
    if not 13 <= len(digits) <= 19:
        return False
    total = 0
    for i, ch in enumerate(reversed(digits)):
        n = int(ch)
        if i % 2 == 1:
            n *= 2
            if n > 9:
                n -= 9
        total += n
    return total % 10 == 0


def card_network(card_number: str) -> str:
    digits = re.sub(r"\D", "", card_number)
    if digits.startswith("4"):
        return "Visa"
    if re.match(r"^(5[1-5]|2[2-7])", digits):
        return "Mastercard"
    if re.match(r"^3[47]", digits):
        return "American Express"
    if re.match(r"^6(011|5)", digits):
        return "Discover"
    if digits.startswith("35"):
        return "JCB"
    if re.match(r"^3(0[0-5]|[68])", digits):
        return "Diners Club"
    return "Unknown"


def _validate_card(value: str) -> ToolResult:
    digits = re.sub(r"\D", "", value)
    valid = luhn_check(digits)
    network = card_network(digits)
    masked = f"**** {digits[-4:]}" if len(digits) >= 4 else "****"
    return ToolResult(
        success=True,
        data={"valid": valid, "network": network, "masked": masked},
        summary=f"Card {masked}: {'Valid' if valid else 'Invalid'} {network}",
    )


def _validate_amount(value: str, rules: dict[str, Any]) -> ToolResult:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return _fail(f"Invalid amount: {value}")

    jurisdiction = rules.get("jurisdiction") or "US"
    tx_type = rules.get("transaction_type") or "wire_transfer"
    ctr_threshold, default_currency = CTR_THRESHOLDS.get(jurisdiction, CTR_THRESHOLDS["US"])
    currency = rules.get("currency") or default_currency
    type_threshold = TYPE_THRESHOLDS.get(tx_type, 10000)

    flags: list[str] = []
    risk = 0
    if amount > ctr_threshold:
        flags.append("exceeds_ctr_threshold")
        risk += 40
    if amount > type_threshold:
        flags.append("exceeds_type_threshold")
        risk += 30
    if amount > 50000:
        flags.append("high_value")
        risk += 20
    if amount > 5000 and amount % 1000 == 0:
        flags.append("round_amount")
        risk += 10
    if ctr_threshold * 0.9 <= amount < ctr_threshold:
        flags.append("near_ctr_threshold")
        risk += 35
    if amount < 1:
        flags.append("micro_transaction")
    risk = min(risk, 100)

    return ToolResult(
        success=True,
        data={
            "amount": amount,
            "currency": currency,
            "transaction_type": tx_type,
            "jurisdiction": jurisdiction,
            "ctr_threshold": ctr_threshold,
            "type_threshold": type_threshold,
            "exceeds_ctr": amount > ctr_threshold,
            "flags": flags,
            "risk_score": risk,
        },
        summary=(
            f"Amount {amount:,.2f} {currency}: {len(flags)} flag(s)"
            f"{' (' + ', '.join(flags) + ')' if flags else ''}, risk score {risk}/100"
        ),
    )


def _parse_date(value: Any) -> date:
    return datetime.fromisoformat(str(value)).date()


def _validate_date(value: str, rules: dict[str, Any]) -> ToolResult:
    try:
        when = _parse_date(value)
        start = _parse_date(rules["start"]) if rules.get("start") else None
        end = _parse_date(rules["end"]) if rules.get("end") else None
    except ValueError:
        return _fail(f"Invalid date: {value}")

    in_range = (start is None or when >= start) and (end is None or when <= end)
    days_ago = (datetime.now(timezone.utc).date() - when).days
    window = rules.get("window_days")
    return ToolResult(
        success=True,
        data={
            "date": value,
            "in_range": in_range,
            "days_ago": days_ago,
            "within_window": days_ago <= window if isinstance(window, (int, float)) else None,
        },
        summary=f"Date {value}: {days_ago} days ago, {'within' if in_range else 'outside'} range",
    )


def _tool_data_validation(params: dict[str, Any], context: ToolContext) -> ToolResult:
    kind = params.get("validation_type")
    value = params.get("value")
    rules = params.get("rules") or {}
    if value is None or value == "":
        return _fail("Error: no value provided.")
    value = str(value)

    if kind == "card_number":
        return _validate_card(value)
    if kind == "amount_threshold":
        return _validate_amount(value, rules)
    if kind == "date_range":
        return _validate_date(value, rules)
    return _fail(f"Unknown validation_type: {kind}")


# ---------------------------------------------------------------------------
# document_analysis
# ---------------------------------------------------------------------------

MAX_DOCUMENT_MATCHES = 10
DOCUMENT_PREVIEW_CHARS = 500


def _tool_document_analysis(params: dict[str, Any], context: ToolContext) -> ToolResult:
    if not context.document_context:
        return _fail("No documents uploaded for this execution")

    action = params.get("action") or "search"
    query = str(params.get("query") or "")
    text = context.document_context
    lines = text.split("\n")

    if action == "search":
        if not query.strip():
            return _fail("Error: no query provided.")
        needle = query.lower()
        matches = [line for line in lines if needle in line.lower()]
        return ToolResult(
            success=True,
            data={
                "query": query,
                "matches_found": len(matches),
                "matches": matches[:MAX_DOCUMENT_MATCHES],
            },
            summary=f'Found {len(matches)} matches for "{query}" in documents',
        )

    if action == "extract_fields":
        terms = [t.strip() for t in query.lower().split(",") if t.strip()]
        fields: dict[str, str] = {}
        for line in lines:
            lowered = line.lower()
            for term in terms:
                if term in lowered:
                    match = re.search(r"[:=]\s*(.+)", line)
                    fields[term] = (match.group(1) if match else line).strip()
        return ToolResult(
            success=True,
            data={"fields": fields},
            summary=f"Extracted {len(fields)} fields: {', '.join(fields) or 'none'}",
        )

    if action == "summarize":
        word_count = len(text.split())
        return ToolResult(
            success=True,
            data={
                "word_count": word_count,
                "line_count": len(lines),
                "preview": text[:DOCUMENT_PREVIEW_CHARS],
            },
            summary=f"Document: {word_count} words, {len(lines)} lines",
        )

    return _fail(f"Unknown action: {action}")


# ---------------------------------------------------------------------------
# regulatory_lookup
# ---------------------------------------------------------------------------

# (jurisdiction, keywords, reference)
REGULATIONS: list[tuple[str, tuple[str, ...], dict[str, str]]] = [
    (
        "US",
        ("ctr", "currency transaction", "threshold", "reporting"),
        {
            "regulation": "Bank Secrecy Act (BSA), 31 CFR 1010.311",
            "threshold": "$10,000 for cash transactions",
            "filing_deadline": "15 days after the transaction",
        },
    ),
    (
        "US",
        ("sar", "suspicious", "filing"),
        {
            "regulation": "BSA, 31 CFR 1020.320",
            "threshold": "$5,000 for banks; $2,000 for money services businesses",
            "filing_deadline": "30 days after initial detection",
        },
    ),
    (
        "US",
        ("structuring", "smurfing"),
        {
            "regulation": "31 USC 5324, structuring transactions to evade reporting",
            "penalties": "Up to $250,000 fine and/or 5 years imprisonment per offense",
        },
    ),
    (
        "US",
        ("chargeback", "dispute", "reg e", "reg z"),
        {
            "regulation": "Regulation Z (credit) / Regulation E (debit)",
            "time_limit": "60 days from statement date for billing error notice",
        },
    ),
    (
        "EU",
        ("aml", "amld", "threshold", "cash"),
        {
            "regulation": "6th Anti-Money Laundering Directive (EU) 2018/1673",
            "threshold": "EUR 10,000 for cash payments by traders; EUR 15,000 occasional transactions",
        },
    ),
    (
        "EU",
        ("psd2", "sca", "strong customer authentication"),
        {
            "regulation": "PSD2 (EU) 2015/2366, RTS on SCA",
            "requirement": "Two independent authentication factors for electronic payments",
        },
    ),
    (
        "IN",
        ("ctr", "cash", "pmla", "threshold", "reporting"),
        {
            "regulation": "Prevention of Money Laundering Act 2002, PML Rules 2005",
            "threshold": "INR 10 lakh for cash transactions",
            "filing_deadline": "15th of the following month",
        },
    ),
]


def _tool_regulatory_lookup(params: dict[str, Any], context: ToolContext) -> ToolResult:
    jurisdiction = str(params.get("jurisdiction") or "").upper()
    topic = str(params.get("topic") or "").strip()
    if not jurisdiction or not topic:
        return _fail("Error: jurisdiction and topic are required.")

    needle = topic.lower()
    found = {
        f"{code}_{i}": reference
        for i, (code, keywords, reference) in enumerate(REGULATIONS)
        if jurisdiction in (code, "ALL") and any(k in needle for k in keywords)
    }
    return ToolResult(
        success=True,
        data={"jurisdiction": jurisdiction, "topic": topic, "regulatory_framework": found},
        summary=f"Found {len(found)} regulatory references for {jurisdiction}: {topic}",
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

CALCULATE = ToolDescriptor(
    name="calculate",
    description=(
        "Perform arithmetic, percentage computations, date differences and weighted "
        "scoring. Use this for precise numerical analysis instead of mental math."
    ),
    category="calculation",
    execute=_tool_calculate,
    parameters={
        "expression": ToolParameter(
            type="string",
            description='Expression to evaluate, e.g. "2499 * 0.15", "(120 - 90) / 120 * 100"',
            required=True,
        ),
        "operation": ToolParameter(
            type="string", description='Optional named operation: "date_diff", "weighted_score"'
        ),
        "values": ToolParameter(
            type="object",
            description=(
                "Values for named operations, e.g. {scores: {...}, weights: {...}} "
                'or {start: "2026-01-01", end: "2026-02-28"}'
            ),
        ),
    },
)

DATA_VALIDATION = ToolDescriptor(
    name="data_validation",
    description=(
        "Validate transaction data: card numbers (Luhn), amount thresholds and date ranges."
    ),
    category="validation",
    execute=_tool_data_validation,
    parameters={
        "validation_type": ToolParameter(
            type="string",
            description='"card_number", "amount_threshold" or "date_range"',
            required=True,
        ),
        "value": ToolParameter(
            type="string", description="Value to validate (card number, amount, ISO date)", required=True
        ),
        "rules": ToolParameter(
            type="object",
            description="Context: {jurisdiction, currency, transaction_type, start, end, window_days}",
        ),
    },
)

DOCUMENT_ANALYSIS = ToolDescriptor(
    name="document_analysis",
    description=(
        "Search, extract fields from, or summarize documents already attached to this request."
    ),
    category="documents",
    execute=_tool_document_analysis,
    parameters={
        "action": ToolParameter(
            type="string", description='"search", "extract_fields" or "summarize"', required=True
        ),
        "query": ToolParameter(
            type="string",
            description="Text to search for, or comma-separated field names to extract",
            required=True,
        ),
    },
)

REGULATORY_LOOKUP = ToolDescriptor(
    name="regulatory_lookup",
    description=(
        "Look up regulations and compliance requirements by jurisdiction (US, EU, IN or ALL)."
    ),
    category="regulatory",
    execute=_tool_regulatory_lookup,
    parameters={
        "jurisdiction": ToolParameter(
            type="string", description='"US", "EU", "IN" or "ALL"', required=True
        ),
        "topic": ToolParameter(
            type="string", description="Topic, e.g. 'CTR thresholds', 'PSD2 SCA'", required=True
        ),
    },
)

BUILTIN_TOOLS: list[ToolDescriptor] = [
    CALCULATE,
    DATA_VALIDATION,
    DOCUMENT_ANALYSIS,
    REGULATORY_LOOKUP,
]


def default_registry() -> ToolRegistry:
    return ToolRegistry(BUILTIN_TOOLS)
