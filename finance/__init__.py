"""Financial-semantics layer on top of the AI invocation core."""

from .models import (
    Account,
    DocumentClassification,
    ExpenseCategorization,
    FinancialAnalysis,
    JournalEntryDraft,
    Transaction,
)
from .service import FALLBACK_CATEGORY, FinancialAIService, parse_json_response
from .use_cases import AI_USE_CASES, AIUseCase, UseCase, get_use_case

__all__ = [
    "Account",
    "DocumentClassification",
    "ExpenseCategorization",
    "FinancialAnalysis",
    "JournalEntryDraft",
    "Transaction",
    "FALLBACK_CATEGORY",
    "FinancialAIService",
    "parse_json_response",
    "AI_USE_CASES",
    "AIUseCase",
    "UseCase",
    "get_use_case",
]
