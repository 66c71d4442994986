"""
Onboarding ticket orchestration.

Modules:
    config_resolver: Capability matrix resolution and maintenance
    ledger: Onboarding run ledger (idempotency and audit trail)
    orchestrator: Parent/child ticket creation and linking

Flow:
    cache check -> resolve matrix -> [dry run preview] -> find-or-create parent
    -> find-or-create one child per ticket group -> link children -> record result

Usage:
    from onboarding.orchestrator import OnboardingOrchestrator
    from onboarding.config_resolver import OnboardingConfigRepository
    from onboarding.ledger import OnboardingRunLedger
"""

__all__ = [
    "OnboardingConfigRepository",
    "OnboardingRunLedger",
    "OnboardingOrchestrator",
    "OnboardingConfig",
]
