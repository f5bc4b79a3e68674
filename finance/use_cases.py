"""
Generation profiles per financial use case.

Low temperatures for accuracy-sensitive work (transaction analysis,
compliance), higher for open-ended insight generation.
"""

from dataclasses import dataclass
from enum import Enum

from inference import GenerationOptions


class UseCase(str, Enum):
    TRANSACTION_ANALYSIS = "transaction_analysis"
    EXPENSE_CATEGORIZATION = "expense_categorization"
    FINANCIAL_INSIGHTS = "financial_insights"
    REPORT_GENERATION = "report_generation"
    COMPLIANCE_CHECK = "compliance_check"
    FRAUD_DETECTION = "fraud_detection"
    DOCUMENT_ANALYSIS = "document_analysis"
    DOCUMENT_CLASSIFICATION = "document_classification"
    OCR_PROCESSING = "ocr_processing"
    TRANSACTION_DRAFTING = "transaction_drafting"


@dataclass(frozen=True)
class AIUseCase:
    system_prompt: str
    max_tokens: int
    temperature: float

    def options(self) -> GenerationOptions:
        return GenerationOptions(max_tokens=self.max_tokens, temperature=self.temperature)


AI_USE_CASES = {
    UseCase.TRANSACTION_ANALYSIS: AIUseCase(
        "Analyze this financial transaction for accuracy and compliance:", 2048, 0.05
    ),
    UseCase.EXPENSE_CATEGORIZATION: AIUseCase(
        "Categorize this expense according to standard accounting principles:", 1024, 0.1
    ),
    UseCase.FINANCIAL_INSIGHTS: AIUseCase(
        "Provide financial insights and recommendations based on this data:", 4096, 0.3
    ),
    UseCase.REPORT_GENERATION: AIUseCase("Generate a financial report summary:", 3072, 0.2),
    UseCase.COMPLIANCE_CHECK: AIUseCase(
        "Check this financial data for compliance and potential issues:", 2048, 0.05
    ),
    UseCase.FRAUD_DETECTION: AIUseCase(
        "Analyze this financial data for potential fraud indicators:", 2048, 0.1
    ),
    UseCase.DOCUMENT_ANALYSIS: AIUseCase(
        "Analyze this financial document and extract relevant information:", 3072, 0.2
    ),
    UseCase.DOCUMENT_CLASSIFICATION: AIUseCase(
        "Classify financial documents based on content and structure:", 1024, 0.1
    ),
    UseCase.OCR_PROCESSING: AIUseCase(
        "Extract structured data from OCR text of financial documents:", 3072, 0.1
    ),
    UseCase.TRANSACTION_DRAFTING: AIUseCase(
        "Generate double-entry accounting transactions from descriptions:", 2048, 0.1
    ),
}


def get_use_case(use_case: UseCase) -> AIUseCase:
    return AI_USE_CASES[use_case]
