"""
Prompt builders for the financial use cases.

Each builder returns the full message list (system + user). Structured
payloads are embedded as pretty-printed JSON, capped at _MAX_PAYLOAD_CHARS
so a large ledger cannot blow the context window.
"""

import json
from typing import Any, List, Optional, Sequence

from inference import Message

from .models import Account
from .use_cases import UseCase, get_use_case

# ── Budget Constants ──────────────────────────────────────────────────────────
_MAX_PAYLOAD_CHARS: int = 12000   # ≈3k tokens of embedded JSON
_MAX_OCR_TEXT_CHARS: int = 16000

_TRUNCATED = "\n... [truncated]"


def dump_payload(data: Any, limit: int = _MAX_PAYLOAD_CHARS) -> str:
    """JSON-encode ``data`` for a prompt, truncated to ``limit`` characters."""
    text = json.dumps(data, indent=2, default=str)
    if len(text) > limit:
        return text[:limit] + _TRUNCATED
    return text


def _bounded(text: Optional[str], limit: int) -> str:
    text = text or ""
    return text if len(text) <= limit else text[:limit] + _TRUNCATED


def transaction_analysis_messages(transaction: Any) -> List[Message]:
    profile = get_use_case(UseCase.TRANSACTION_ANALYSIS)
    system = f"""You are a financial analyst specializing in transaction analysis. {profile.system_prompt}

Analyze the transaction for:
- Completeness and accuracy
- Compliance with double-entry accounting principles
- Potential errors or inconsistencies
- Missing information

Respond with a JSON object containing:
- analysis: Detailed analysis text
- confidence: Confidence score (0-1)
- suggestions: Array of improvement suggestions
- warnings: Array of potential issues"""
    return [
        Message("system", system),
        Message("user", f"Transaction to analyze:\n{dump_payload(transaction)}"),
    ]


def expense_categorization_messages(
    description: str,
    amount: float,
    merchant: Optional[str] = None,
    existing_categories: Optional[Sequence[str]] = None,
) -> List[Message]:
    profile = get_use_case(UseCase.EXPENSE_CATEGORIZATION)
    if existing_categories:
        categories = f"Available categories: {', '.join(existing_categories)}"
    else:
        categories = "Use standard accounting expense categories"

    system = f"""You are an expert accountant specializing in expense categorization. {profile.system_prompt}

{categories}

Analyze the expense and provide:
- Primary category (e.g., "Office Supplies", "Travel", "Marketing")
- Optional subcategory for more specific classification
- Confidence level (0-1)

Respond with JSON: {{"category": "...", "subcategory": "...", "confidence": 0.95}}"""

    details = [f"Description: {description}", f"Amount: {amount}"]
    if merchant:
        details.append(f"Merchant: {merchant}")
    return [
        Message("system", system),
        Message("user", "Expense Details:\n" + "\n".join(details)),
    ]


def insights_messages(
    data: Any, timeframe: Optional[str] = None, context: Optional[str] = None
) -> List[Message]:
    profile = get_use_case(UseCase.FINANCIAL_INSIGHTS)
    system = f"""You are a senior financial advisor with expertise in business financial analysis. {profile.system_prompt}

Provide insights on:
- Spending patterns and trends
- Cash flow analysis
- Cost optimization opportunities
- Financial health indicators
- Actionable recommendations

Format as JSON with analysis, confidence, suggestions, and warnings arrays."""

    header = ["Financial Data Analysis Request:"]
    if context:
        header.append(f"Context: {context}")
    if timeframe:
        header.append(f"Timeframe: {timeframe}")
    return [
        Message("system", system),
        Message("user", "\n".join(header) + f"\n\nData:\n{dump_payload(data)}"),
    ]


def compliance_messages(data: Any, regulations: Optional[Sequence[str]] = None) -> List[Message]:
    profile = get_use_case(UseCase.COMPLIANCE_CHECK)
    if regulations:
        focus = f"Focus on these regulations: {', '.join(regulations)}"
    else:
        focus = "Check against standard financial regulations and accounting principles"

    system = f"""You are a compliance officer with expertise in financial regulations. {profile.system_prompt}

{focus}

Check for:
- Regulatory compliance issues
- Accounting standard violations
- Missing required documentation
- Potential audit flags
- Risk indicators

Respond with JSON containing analysis, confidence, suggestions and warnings."""
    return [
        Message("system", system),
        Message("user", f"Compliance Check Request:\n{dump_payload(data)}"),
    ]


def report_summary_messages(report_data: Any, report_type: str) -> List[Message]:
    profile = get_use_case(UseCase.REPORT_GENERATION)
    system = f"""You are a financial analyst creating executive summaries. {profile.system_prompt}

Create a clear, concise summary for a {report_type} that highlights:
- Key financial metrics and their implications
- Notable changes or trends
- Areas of concern or opportunity
- Executive-level insights

Write in professional, business-appropriate language."""
    return [
        Message("system", system),
        Message("user", f"Generate summary for {report_type}:\n{dump_payload(report_data)}"),
    ]


def document_extraction_messages(
    text: str, confidence: Optional[float], document_type: Optional[str] = None
) -> List[Message]:
    profile = get_use_case(UseCase.OCR_PROCESSING)
    system = f"""You are an expert at extracting structured financial data from documents. {profile.system_prompt}

For receipts/invoices, extract:
- vendor/merchant name
- date
- total amount
- line items with descriptions and amounts
- tax information
- payment method

For bank statements, extract:
- account information
- transactions with dates, descriptions, amounts
- running balance
- fee information

Return clean, structured JSON that can be used to create accounting entries."""
    user = (
        f"Document Type: {document_type or 'unknown'}\n"
        f"OCR Confidence: {confidence}\n"
        f"Text Content:\n{_bounded(text, _MAX_OCR_TEXT_CHARS)}"
    )
    return [Message("system", system), Message("user", user)]


def document_classification_messages(text: str, confidence: Optional[float]) -> List[Message]:
    profile = get_use_case(UseCase.DOCUMENT_CLASSIFICATION)
    system = f"""You are an expert at classifying financial documents. {profile.system_prompt}

Analyze the OCR text and classify the document type. Return JSON with:
- type: 'receipt', 'invoice', 'bank_statement', 'tax_document', or 'other'
- confidence: confidence level (0-1)
- subtype: more specific classification if applicable
- extracted_fields: key fields that indicate the document type"""
    user = f"OCR Text (confidence: {confidence}):\n{_bounded(text, _MAX_OCR_TEXT_CHARS)}"
    return [Message("system", system), Message("user", user)]


def transaction_drafting_messages(
    description: str, amount: float, accounts: Sequence[Account]
) -> List[Message]:
    profile = get_use_case(UseCase.TRANSACTION_DRAFTING)
    chart = "\n".join(f"{a.code}: {a.name} ({a.type}) id={a.id}" for a in accounts)
    system = f"""You are an expert accountant who creates double-entry transaction entries. {profile.system_prompt}

Available Accounts:
{chart}

Rules:
- Debits must equal credits
- Use appropriate accounts based on the transaction type
- Follow standard accounting principles
- Return JSON array of entries with account_id, description, debit_amount, credit_amount

Format: [{{"account_id": "...", "description": "...", "debit_amount": 100, "credit_amount": 0}}]"""
    user = f"Transaction Description: {description}\nAmount: {amount}\n\nGenerate the appropriate journal entries."
    return [Message("system", system), Message("user", user)]
