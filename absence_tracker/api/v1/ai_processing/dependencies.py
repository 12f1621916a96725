from functools import lru_cache

from fastapi import Depends, HTTPException, status

from absence_tracker.core.config import ExtractionConfig, extraction_config_from_settings, settings
from absence_tracker.core.exceptions import ConfigurationError

from .gate import DecisionGate
from .orchestrator import ExtractionOrchestrator
from .providers import build_providers


@lru_cache
def get_extraction_config() -> ExtractionConfig:
    return extraction_config_from_settings(settings)


def get_orchestrator(config: ExtractionConfig = Depends(get_extraction_config)) -> ExtractionOrchestrator:
    """Provider chain for one request. Missing credentials surface as a 500, never as a silent fallback."""
    try:
        return ExtractionOrchestrator(build_providers(config), config)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)


def get_decision_gate(config: ExtractionConfig = Depends(get_extraction_config)) -> DecisionGate:
    return DecisionGate(confidence_threshold=config.confidence_threshold)
