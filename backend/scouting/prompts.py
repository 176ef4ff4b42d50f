"""
Prompt builders for the AI-backed stages.

Kept apart from ai_service so prompt wording can change without touching the
call / validate / fallback logic.
"""

import json
from typing import Any, Dict, List

from scouting.schemas import AnalysisContext, ReportContext

PROMPT_VERSION = "v1"

_INTERPRETATION_SAMPLE = 5


def _dump(obj: Any) -> str:
    return json.dumps(obj, indent=2, default=str)


def column_interpretation_prompt(headers: List[str], sample_rows: List[dict], context: AnalysisContext) -> str:
    return f"""You are a sports data scientist analyzing performance data. Understand each column and identify what analytics are possible.

## RAW DATA
Headers: {json.dumps(headers)}

Sample Rows (first {_INTERPRETATION_SAMPLE}):
{_dump(sample_rows[:_INTERPRETATION_SAMPLE])}

Context:
- Category: {context.data_category}
- Sport: {context.sport or "auto-detect from data"}
- Subject: {context.subject_name or "unknown"}

## ANALYZE AND RETURN:

{{
  "detected_sport": "baseball|softball|tennis|golf|basketball|soccer|hockey|volleyball|football|track|swimming|other",
  "confidence": 0.0-1.0,
  "column_interpretations": {{
    "original_column_name": {{
      "interpreted_as": "standardized metric name",
      "data_type": "date|number|text|boolean",
      "description": "what this measures and why it matters",
      "is_key_metric": true|false,
      "sample_values": ["val1", "val2"]
    }}
  }},
  "recommended_metrics": [
    {{
      "name": "Derived metric name",
      "description": "What insight this provides",
      "columns_used": ["col1", "col2"],
      "formula": "how to calculate (e.g., hits/at_bats)"
    }}
  ],
  "data_quality_notes": ["Any data issues, missing fields, or anomalies"],
  "suggested_report_sections": ["Section names a report on this data should have"]
}}

## HANDLING MESSY DATA
- Column names may be abbreviated, misspelled, or non-standard; interpret based on values
- Look at the ACTUAL VALUES to understand what a column represents, not just the header
- If values look like codes (1/2/3 or Y/N), decode the meaning from context
- Dates may be in various formats; identify the format being used
- Every original header must appear exactly once in column_interpretations

Return valid JSON only."""


def insights_prompt(payload: Dict[str, Any], interpretations: Dict[str, Any], context: AnalysisContext) -> str:
    subject = context.subject_name or "Unknown"
    benchmark_text = payload.get("benchmark_context") or ""
    comparisons = payload.get("league_comparisons") or []
    statistics = {k: v for k, v in payload.items() if k not in ("benchmark_context", "league_comparisons")}

    if context.is_own_team:
        focus = """**OWN PLAYER ANALYSIS - Focus on development:**
1. IDENTIFY PATTERNS: What situations produce best/worst performance?
2. FIND THE EDGE: What is this player's clearest advantage? Be specific with numbers.
3. EXPOSE WEAKNESSES: What is the biggest hole? Coaches need the truth.
4. TREND ANALYSIS: Is performance improving, declining, or inconsistent?
5. PRACTICE PRESCRIPTION: Which specific drill or adjustment would move the needle most?"""
    else:
        focus = """**OPPONENT SCOUTING - Focus on exploitation:**
1. TENDENCIES: What does this opponent do 60%+ of the time in specific situations?
2. TELLS: Any patterns that predict what is coming next?
3. WEAKNESSES TO ATTACK: Where do they struggle? Be specific.
4. DANGER ZONES: When are they most dangerous? What to avoid?
5. GAME PLAN: Give 2-3 specific tactical adjustments to beat this opponent."""

    return f"""You are an elite sports performance data scientist presenting to a coaching staff that needs specific, actionable intelligence.

## DATA CONTEXT
- Subject: {"Player" if context.is_own_team else "Opponent"}: {subject}
- Data Type: {"Own Team Performance Data" if context.is_own_team else "Opponent Scouting Data"}
- Sample Size: {context.row_count} observations

{benchmark_text}

## LEAGUE COMPARISONS (pre-calculated)
{_dump(comparisons)}

## RAW STATISTICS
{_dump(statistics)}

## COLUMN MEANINGS
{_dump(interpretations)}

## YOUR ANALYSIS REQUIREMENTS
{focus}

## OUTPUT FORMAT
Return 5-8 insights. Each must be specific (exact numbers), actionable and evidence-based.

{{
  "insights": [
    {{
      "type": "strength|weakness|trend|recommendation|tendency|alert",
      "title": "Short headline with a number",
      "description": "2-3 sentences with specific data points and context.",
      "confidence": 0.0-1.0,
      "supporting_data": {{"metric_name": "value", "comparison": "context"}},
      "action_items": ["Specific drill or in-game adjustment"]
    }}
  ]
}}

## VERIFICATION
- State the exact values used for any number or percentage
- If the data does not support a claim, do not make it
- If data has gaps, note the sample size actually used
- Round percentages to 1 decimal place, averages to 3 decimals

Return valid JSON only."""


_REPORT_SHAPE = """{
  "executive_summary": "2-3 paragraph overview",
  "dynamic_sections": [
    {
      "section_title": "title chosen from the data",
      "section_type": "strength|weakness|trend|analysis|recommendation",
      "content": "detailed prose analysis",
      "key_points": [
        {"point": "specific finding", "supporting_data": {}, "importance": "high|medium|low"}
      ]
    }
  ],
  "key_metrics_table": {
    "detected_metrics": [
      {"metric_name": "as it appears in data", "value": "current value", "context": "vs baseline / trend / percentile", "visualization_type": "number|chart|comparison"}
    ]
  },
  "strengths": [
    {"title": "", "description": "", "impact": "high|medium|low", "supporting_stats": {}}
  ],
  "areas_for_development": [
    {"title": "", "description": "", "priority": "high|medium|low", "supporting_stats": {}, "recommended_actions": []}
  ],
  "action_plan": [
    {"category": "", "specific_actions": [], "success_metrics": [], "timeline": ""}
  ],
  "additional_observations": "",
  "suggested_visualizations": [
    {"chart_type": "line|bar|radar|scatter|heatmap", "title": "", "metrics_to_plot": [], "insights": ""}
  ]
}"""


def own_team_report_prompt(
    aggregates: Dict[str, Any], interpretations: Dict[str, Any], insights: List[dict], context: ReportContext
) -> str:
    return f"""You are an expert coach analyzing player performance data.

Player: {context.player_name or "Unknown"}
Report Type: {context.report_type}
Time Period: {context.date_range or "All available data"}
Focus Areas: {", ".join(context.focus_areas) or "General"}

Performance Data Summary:
{_dump(aggregates)}

AI Column Interpretations:
{_dump(interpretations)}

Insights Previously Generated:
{_dump(insights)}

Create a comprehensive performance report for this player: strengths, areas for
development and a concrete action plan. The data determines what is important;
work with whatever columns were detected and do not assume standard metrics.

Return JSON in this structure:

{_REPORT_SHAPE}

Let the data dictate the sections. If the data is about tennis serves, do not write about batting."""


def opponent_report_prompt(
    aggregates: Dict[str, Any], interpretations: Dict[str, Any], insights: List[dict], context: ReportContext
) -> str:
    return f"""You are creating a scouting report on an opposing team or player.

Opponent: {context.opponent_name or "Unknown"}
Report Type: {context.report_type}
Game Date: {context.date_range or "Not specified"}
Focus Areas: {", ".join(context.focus_areas) or "General"}

Opponent Performance Data:
{_dump(aggregates)}

AI Column Interpretations:
{_dump(interpretations)}

Existing Insights:
{_dump(insights)}

Focus: tendencies, patterns, weaknesses to exploit and strengths to prepare for.

Return JSON in this structure, with the fields framed for scouting:
- executive_summary: overview of the opponent's tendencies
- dynamic_sections: include tendency_analysis, exploitable_weaknesses and dangerous_strengths
- strengths: opponent strengths to prepare for
- areas_for_development: opponent weaknesses we can exploit
- action_plan: the strategic game plan
- suggested_visualizations: charts showing opponent patterns

{_REPORT_SHAPE}"""


def enhance_prose_prompt(report: Dict[str, Any]) -> str:
    return f"""You are a professional sports analyst. Take this structured report and enhance the writing.

Structured Analysis:
{_dump(report)}

Rewrite each section to be:
- Clear and actionable
- Professional but conversational
- Specific with data references
- Free of unnecessary jargon

Maintain the exact JSON structure (same keys, same list lengths, same numbers) but improve all text content.
Return the complete JSON with enhanced text and nothing else."""
