"""
Analysis Prompt Templates

Shared building blocks for agent prompts. Each Analyzer subclass supplies
its own system prompt; the JSON output contract and the contract context
block are common to all of them.
"""

ANALYSIS_OUTPUT_FORMAT = """
IMPORTANT: Respond ONLY with valid JSON in the exact format specified below.

Required JSON Response Format:
{
  "vulnerabilities": [
    {
      "name": "Vulnerability Name",
      "description": "Detailed description",
      "severity": "Low|Medium|High|Critical",
      "category": "%(categories)s",
      "affectedLines": [1, 2, 3],
      "recommendation": "How to fix this vulnerability",
      "impact": "Potential impact description",
      "confidence": "Low|Medium|High"
    }
  ],
  "overallScore": 85,
  "riskLevel": "Low|Medium|High|Critical",
  "summary": "Brief overall assessment",
  "recommendations": ["General recommendation 1", "General recommendation 2"]%(extra)s
}
"""

GAS_OUTPUT_EXTENSION = """,
  "gasOptimizations": [
    {
      "description": "Gas optimization suggestion",
      "affectedLines": [1, 2],
      "potentialSavings": "Estimated gas savings",
      "implementation": "How to implement this optimization"
    }
  ]"""

QUALITY_OUTPUT_EXTENSION = GAS_OUTPUT_EXTENSION + """,
  "codeQuality": {
    "score": 80,
    "issues": ["Code quality issue 1"],
    "strengths": ["Code strength 1"]
  }"""

CONTRACT_CONTEXT = """
Contract Information:
- Contract Name: %(name)s
- Chain: %(chain)s
- Functions Count: %(functions)d
- Modifiers Count: %(modifiers)d
- Events Count: %(events)d
- Code Complexity: %(complexity)s (cyclomatic estimate %(cyclomatic)d)
- Characteristics: %(characteristics)s
- Analysis Mode: %(mode)s

Solidity Code to Analyze:
```solidity
%(source)s
```"""

QUICK_MODE_GUIDANCE = """
Quick mode: report only Medium severity and above, and keep the summary to one sentence.
"""


def render_output_format(categories: str, extension: str = "") -> str:
    return ANALYSIS_OUTPUT_FORMAT % {"categories": categories, "extra": extension}
