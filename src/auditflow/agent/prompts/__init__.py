"""
Prompt Templates Module

Exports:
    From analysis_prompts:
        - ANALYSIS_OUTPUT_FORMAT: JSON response contract shared by all agents
        - GAS_OUTPUT_EXTENSION / QUALITY_OUTPUT_EXTENSION: extra response fields
        - CONTRACT_CONTEXT: contract summary + source block
        - QUICK_MODE_GUIDANCE: appended in quick analysis mode
"""

from .analysis_prompts import (
    ANALYSIS_OUTPUT_FORMAT,
    GAS_OUTPUT_EXTENSION,
    QUALITY_OUTPUT_EXTENSION,
    CONTRACT_CONTEXT,
    QUICK_MODE_GUIDANCE,
    render_output_format,
)

__all__ = [
    "ANALYSIS_OUTPUT_FORMAT",
    "GAS_OUTPUT_EXTENSION",
    "QUALITY_OUTPUT_EXTENSION",
    "CONTRACT_CONTEXT",
    "QUICK_MODE_GUIDANCE",
    "render_output_format",
]
