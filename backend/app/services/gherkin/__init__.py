from .feature_parser import (
    ParsedScenario, ScenarioMarker, ParserState,
    parse_feature, find_markers, resolve_placeholders, decode_feature,
)
from .step_parser import ParsedStep, parse_step_file, format_step_id, decode_step_file
from .inference import infer_method, infer_test_type, generated_tags

__all__ = [
    "ParsedScenario", "ScenarioMarker", "ParserState",
    "parse_feature", "find_markers", "resolve_placeholders", "decode_feature",
    "ParsedStep", "parse_step_file", "format_step_id", "decode_step_file",
    "infer_method", "infer_test_type", "generated_tags",
]
