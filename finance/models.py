"""
Domain records passed to, and parsed back from, the financial prompts.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

DocumentType = Literal["receipt", "invoice", "bank_statement", "tax_document", "other"]
ReportType = Literal["balance_sheet", "income_statement", "cash_flow", "trial_balance"]


class Transaction(BaseModel):
    id: str
    amount: float
    description: str
    category: Optional[str] = None
    date: str
    account_id: str


class Account(BaseModel):
    id: str
    name: str
    type: str
    balance: float = 0.0
    code: str


class FinancialAnalysis(BaseModel):
    analysis: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    suggestions: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ExpenseCategorization(BaseModel):
    category: str
    subcategory: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)


class DocumentClassification(BaseModel):
    type: DocumentType = "other"
    confidence: float = Field(..., ge=0.0, le=1.0)
    subtype: Optional[str] = None
    extracted_fields: Dict[str, Any] = Field(default_factory=dict)


class JournalEntryDraft(BaseModel):
    """One line of a proposed double-entry transaction."""

    account_id: str
    description: str = ""
    debit_amount: float = 0.0
    credit_amount: float = 0.0
