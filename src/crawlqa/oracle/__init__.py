"""
Decision oracles: proposals of interaction scenarios for a captured page.
"""

from .base import DecisionOracle, OracleObservation, parse_scenarios, parse_step
from .json_extract import extract_json
from .openai_oracle import OpenAIOracle
from .systematic import SystematicOracle

__all__ = [
    'DecisionOracle', 'OracleObservation', 'parse_scenarios', 'parse_step',
    'extract_json', 'OpenAIOracle', 'SystematicOracle',
]
