import json

import pytest

from scouting.ai_service import AIService
from scouting.errors import AIResponseError, AIUnavailableError, AIValidationError
from scouting.schemas import AnalysisContext, Report, ReportContext

OWN = AnalysisContext(data_category="own_team", subject_name="Ann Lee", row_count=2)
OPP = AnalysisContext(data_category="opponent", subject_name="Rivals", row_count=2)

INTERPRETATION = {
    "detected_sport": "Baseball",
    "confidence": 1.4,
    "column_interpretations": {
        "H": {"interpreted_as": "hits", "data_type": "Number", "is_key_metric": True, "sample_values": [2, 3]},
        "Dt": {"interpreted_as": "game date", "data_type": "date"},
        "Notes": {"interpreted_as": "notes", "data_type": "freeform"},
    },
    "recommended_metrics": [{"name": "Hit rate", "columns_used": ["H"], "formula": "H/AB"}],
}


def test_interpret_columns_validates_and_normalises(llm_factory):
    llm = llm_factory("```json\n" + json.dumps(INTERPRETATION) + "\n```")
    service = AIService(llm)
    rows = [{"H": i, "Dt": "2024-05-01", "Notes": None} for i in range(20)]

    result = service.interpret_columns(["H", "Dt", "Notes"], rows, OWN)

    assert result.detected_sport == "baseball"
    assert result.confidence == 1.0
    assert result.column_interpretations["H"].data_type == "number"
    assert result.column_interpretations["H"].sample_values == ["2", "3"]
    assert result.column_interpretations["Notes"].data_type == "text"
    assert result.date_columns() == ["Dt"]
    assert result.recommended_metrics[0].name == "Hit rate"

    prompt, _ = llm.prompts[0]
    assert "Sample Rows (first 5)" in prompt
    # only five sample rows are shown to the model
    assert prompt.count('"Dt": "2024-05-01"') == 5


def test_interpret_columns_rejects_wrong_shape(llm_factory):
    service = AIService(llm_factory('{"detected_sport": "baseball"}'))
    with pytest.raises(AIValidationError) as exc:
        service.interpret_columns(["H"], [{"H": 1}], OWN)
    assert exc.value.code == "invalid_shape"


def test_interpret_columns_propagates_transport_errors(llm_factory):
    service = AIService(llm_factory(AIUnavailableError("connection refused")))
    with pytest.raises(AIUnavailableError):
        service.interpret_columns(["H"], [{"H": 1}], OWN)


def test_generate_insights_drops_malformed_items(llm_factory):
    payload = {
        "insights": [
            {"type": "Strength", "title": "x" * 150, "description": "ok", "confidence": 2},
            {"type": "opinion", "title": "not a valid type"},
            {"description": "missing title and type"},
            {"type": "alert", "title": "Fatigue", "confidence": "-1", "action_items": ["rest", ""]},
        ]
    }
    llm = llm_factory(json.dumps(payload))
    service = AIService(llm)

    insights = service.generate_insights({"raw_aggregates": {}}, {}, OWN)

    assert [i.type for i in insights] == ["strength", "alert"]
    assert len(insights[0].title) == 100
    assert insights[0].confidence == 1.0
    assert insights[1].confidence == 0.0
    assert insights[1].action_items == ["rest"]
    assert "OWN PLAYER ANALYSIS" in llm.prompts[0][0]


def test_generate_insights_uses_opponent_framing(llm_factory):
    llm = llm_factory('{"insights": []}')
    AIService(llm).generate_insights({}, {}, OPP)
    assert "OPPONENT SCOUTING" in llm.prompts[0][0]


def test_generate_insights_without_list_is_invalid(llm_factory):
    service = AIService(llm_factory('{"insight": "one"}'))
    with pytest.raises(AIValidationError):
        service.generate_insights({}, {}, OWN)


def test_generate_report_branches_on_category(llm_factory, sample_report):
    llm = llm_factory(json.dumps(sample_report), json.dumps(sample_report))
    service = AIService(llm)

    own = service.generate_report({}, {}, [], ReportContext(report_type="season", report_category="own_team", player_name="Ann"))
    service.generate_report({}, {}, [], ReportContext(report_type="pregame", report_category="opponent", opponent_name="Rivals"))

    own_prompt, own_kwargs = llm.prompts[0]
    opp_prompt, _ = llm.prompts[1]
    assert "Player: Ann" in own_prompt
    assert "Opponent: Rivals" in opp_prompt
    assert "exploitable_weaknesses" in opp_prompt
    assert own_kwargs["model"] == "strong"
    # key points ranked high before low
    assert [kp.importance for kp in own.dynamic_sections[0].key_points] == ["high", "low"]


def test_generate_report_requires_executive_summary(llm_factory):
    service = AIService(llm_factory('{"dynamic_sections": []}'))
    with pytest.raises(AIValidationError):
        service.generate_report({}, {}, [], ReportContext(report_type="season", report_category="own_team"))


def test_enhance_prose_parses_fenced_output(llm_factory, sample_report):
    enhanced = dict(sample_report, executive_summary="A polished summary.")
    llm = llm_factory("Sure!\n```json\n" + json.dumps(enhanced) + "\n```")

    result = AIService(llm).enhance_prose(Report.model_validate(sample_report))

    assert result.executive_summary == "A polished summary."
    assert llm.prompts[0][1]["model"] == "prose"


def test_enhance_prose_truncated_output_is_malformed(llm_factory, sample_report):
    llm = llm_factory('{"executive_summary": "cut off mid')
    with pytest.raises(AIResponseError):
        AIService(llm).enhance_prose(Report.model_validate(sample_report))
