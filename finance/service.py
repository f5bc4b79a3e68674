"""
Financial-semantics adapter.

Turns bookkeeping questions into prompts, runs them through the invocation
orchestrator and parses the model's JSON answer. When the answer is not
valid JSON, every operation degrades to a documented fallback value
instead of failing; provider failures still propagate.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Protocol, Sequence

from pydantic import ValidationError as ModelValidationError

from inference import GenerationOptions, GenerationResult, HealthStatus, Message, ValidationError

from . import prompts
from .models import (
    Account,
    DocumentClassification,
    ExpenseCategorization,
    FinancialAnalysis,
    JournalEntryDraft,
    ReportType,
)
from .use_cases import UseCase, get_use_case

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
_DOCUMENT_TYPES = ("receipt", "invoice", "bank_statement", "tax_document", "other")

FALLBACK_CATEGORY = "General Expense"


class TextGenerator(Protocol):
    async def generate_text(
        self, messages: Sequence[Message], options: Optional[GenerationOptions] = None
    ) -> GenerationResult:
        ...

    async def get_providers_health(self) -> Dict[str, HealthStatus]:
        ...


def parse_json_response(content: str) -> Any:
    """Parse model output as JSON, tolerating a fenced block. None when unparseable."""
    candidates = [content.strip()]
    match = _FENCE.search(content)
    if match:
        candidates.insert(0, match.group(1))
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except (json.JSONDecodeError, TypeError):
            continue
    return None


def _confidence(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number <= 0:
        return default
    return min(1.0, number)


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


class FinancialAIService:
    """
    Bookkeeping operations on top of an orchestrator (or AIService).

    Usage:
        service = FinancialAIService(orchestrator)
        result = await service.categorize_expense("Printer paper", 42.0)
    """

    def __init__(self, generator: TextGenerator):
        self.generator = generator

    async def _ask(self, messages: List[Message], use_case: UseCase) -> str:
        result = await self.generator.generate_text(messages, get_use_case(use_case).options())
        return result.content

    def _analysis(self, content: str, parsed_default: float, fallback: float) -> FinancialAnalysis:
        parsed = parse_json_response(content)
        if not isinstance(parsed, dict):
            logger.debug("Analysis response was not JSON; using raw text")
            return FinancialAnalysis(analysis=content, confidence=fallback)
        return FinancialAnalysis(
            analysis=str(parsed.get("analysis") or content),
            confidence=_confidence(parsed.get("confidence"), parsed_default),
            suggestions=_string_list(parsed.get("suggestions")),
            warnings=_string_list(parsed.get("warnings")),
        )

    async def analyze_transaction(self, transaction: Any) -> FinancialAnalysis:
        """Review one transaction for accuracy and double-entry compliance."""
        payload = transaction.model_dump() if hasattr(transaction, "model_dump") else transaction
        content = await self._ask(prompts.transaction_analysis_messages(payload), UseCase.TRANSACTION_ANALYSIS)
        return self._analysis(content, parsed_default=0.8, fallback=0.7)

    async def categorize_expense(
        self,
        description: str,
        amount: float,
        merchant: Optional[str] = None,
        existing_categories: Optional[Sequence[str]] = None,
    ) -> ExpenseCategorization:
        if not description or not description.strip():
            raise ValidationError("Expense description is required", constraint="description")
        content = await self._ask(
            prompts.expense_categorization_messages(description, amount, merchant, existing_categories),
            UseCase.EXPENSE_CATEGORIZATION,
        )
        parsed = parse_json_response(content)
        if not isinstance(parsed, dict) or not parsed.get("category"):
            logger.debug("Categorization response unusable; falling back")
            return ExpenseCategorization(category=FALLBACK_CATEGORY, confidence=0.5)
        subcategory = parsed.get("subcategory")
        return ExpenseCategorization(
            category=str(parsed["category"]),
            subcategory=str(subcategory) if subcategory else None,
            confidence=_confidence(parsed.get("confidence"), 0.8),
        )

    async def generate_insights(
        self, data: Any, timeframe: Optional[str] = None, context: Optional[str] = None
    ) -> FinancialAnalysis:
        content = await self._ask(prompts.insights_messages(data, timeframe, context), UseCase.FINANCIAL_INSIGHTS)
        return self._analysis(content, parsed_default=0.8, fallback=0.7)

    async def check_compliance(self, data: Any, regulations: Optional[Sequence[str]] = None) -> FinancialAnalysis:
        content = await self._ask(prompts.compliance_messages(data, regulations), UseCase.COMPLIANCE_CHECK)
        return self._analysis(content, parsed_default=0.9, fallback=0.8)

    async def generate_report_summary(self, report_data: Any, report_type: ReportType) -> str:
        """Executive summary for a financial report; plain text."""
        return await self._ask(prompts.report_summary_messages(report_data, report_type), UseCase.REPORT_GENERATION)

    async def extract_document_data(self, ocr_result: Any, document_type: Optional[str] = None) -> Dict[str, Any]:
        """
        Structured fields from OCR text.

        Returns the parsed JSON object, or ``{"raw_analysis", "confidence"}``
        when the model did not answer with an object.
        """
        text = getattr(ocr_result, "text", None)
        if not text:
            raise ValidationError("OCR result has no text to analyze", constraint="ocr_result.text")
        confidence = getattr(ocr_result, "confidence", None)
        content = await self._ask(
            prompts.document_extraction_messages(text, confidence, document_type), UseCase.OCR_PROCESSING
        )
        parsed = parse_json_response(content)
        if isinstance(parsed, dict):
            return parsed
        return {"raw_analysis": content, "confidence": confidence}

    async def classify_document(self, ocr_result: Any) -> DocumentClassification:
        text = getattr(ocr_result, "text", None)
        if not text:
            raise ValidationError("OCR result has no text to classify", constraint="ocr_result.text")
        content = await self._ask(
            prompts.document_classification_messages(text, getattr(ocr_result, "confidence", None)),
            UseCase.DOCUMENT_CLASSIFICATION,
        )
        parsed = parse_json_response(content)
        if not isinstance(parsed, dict):
            return DocumentClassification(type="other", confidence=0.3)

        doc_type = parsed.get("type")
        fields = _first(parsed, "extracted_fields", "extractedFields")
        subtype = parsed.get("subtype")
        return DocumentClassification(
            type=doc_type if doc_type in _DOCUMENT_TYPES else "other",
            confidence=_confidence(parsed.get("confidence"), 0.5),
            subtype=str(subtype) if subtype else None,
            extracted_fields=fields if isinstance(fields, dict) else {},
        )

    async def generate_transaction_entries(
        self, description: str, amount: float, available_accounts: Sequence[Account]
    ) -> List[JournalEntryDraft]:
        """Draft journal lines; entries that do not parse are dropped."""
        content = await self._ask(
            prompts.transaction_drafting_messages(description, amount, available_accounts),
            UseCase.TRANSACTION_DRAFTING,
        )
        parsed = parse_json_response(content)
        if not isinstance(parsed, list):
            return []

        entries = []
        for item in parsed:
            if not isinstance(item, dict):
                continue
            account_id = _first(item, "account_id", "accountId")
            if account_id is None:
                continue
            try:
                entries.append(
                    JournalEntryDraft(
                        account_id=str(account_id),
                        description=str(item.get("description") or ""),
                        debit_amount=_first(item, "debit_amount", "debitAmount") or 0.0,
                        credit_amount=_first(item, "credit_amount", "creditAmount") or 0.0,
                    )
                )
            except ModelValidationError:
                logger.debug(f"Skipping malformed journal entry for account {account_id}")
        return entries

    async def get_health_status(self) -> Dict[str, HealthStatus]:
        return await self.generator.get_providers_health()
