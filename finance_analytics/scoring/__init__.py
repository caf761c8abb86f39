"""Analysis engines: credit scoring, fraud detection, insights, forecasting and loan readiness."""
from finance_analytics.scoring.credit import (
    DEFAULT_CREDIT_CONFIG,
    CreditModelConfig,
    CreditScoreCalculator,
    CreditScoreResult,
    calculate_credit_score,
)
from finance_analytics.scoring.forecast import (
    DEFAULT_FORECAST_CONFIG,
    ForecastConfig,
    ForecastResult,
    generate_forecast,
)
from finance_analytics.scoring.fraud import (
    DEFAULT_FRAUD_CONFIG,
    FraudAnalysisResult,
    FraudAnalyzer,
    FraudDetectionConfig,
    analyze_fraud_patterns,
)
from finance_analytics.scoring.insights import (
    DEFAULT_INSIGHT_CONFIG,
    InsightConfig,
    InsightResult,
    MonthlySnapshot,
    generate_spending_insights,
    summarize_current_month,
)
from finance_analytics.scoring.loan_readiness import (
    DEFAULT_LOAN_READINESS_CONFIG,
    LoanReadinessAnalyzer,
    LoanReadinessConfig,
    LoanReadinessResult,
    analyze_loan_readiness,
)
from finance_analytics.scoring.records import (
    BankAccount,
    Transaction,
    UserFinancialProfile,
    normalize_accounts,
    normalize_profile,
    normalize_transactions,
)

__all__ = [
    "DEFAULT_CREDIT_CONFIG",
    "DEFAULT_FORECAST_CONFIG",
    "DEFAULT_FRAUD_CONFIG",
    "DEFAULT_INSIGHT_CONFIG",
    "DEFAULT_LOAN_READINESS_CONFIG",
    "BankAccount",
    "CreditModelConfig",
    "CreditScoreCalculator",
    "CreditScoreResult",
    "ForecastConfig",
    "ForecastResult",
    "FraudAnalysisResult",
    "FraudAnalyzer",
    "FraudDetectionConfig",
    "InsightConfig",
    "InsightResult",
    "LoanReadinessAnalyzer",
    "LoanReadinessConfig",
    "LoanReadinessResult",
    "MonthlySnapshot",
    "Transaction",
    "UserFinancialProfile",
    "analyze_fraud_patterns",
    "analyze_loan_readiness",
    "calculate_credit_score",
    "generate_forecast",
    "generate_spending_insights",
    "normalize_accounts",
    "normalize_profile",
    "normalize_transactions",
    "summarize_current_month",
]
