"""
featureファイル解析モジュール

Gherkinテキストを1行ずつ読み、状態遷移（seeking-tag → in-tag-block → seeking-scenario → in-steps）
によってシナリオ・タグ・マーカータグ（@TC-{SECTION}-{ENTITY}-Number / -{数字}）を抽出します。
"""

import re
from enum import Enum
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from app.exceptions import GherkinParseException
from app.logging_config import logger

MARKER_RE = re.compile(r"^@TC-([^-\s,]+)-([^-\s,]+)-(Number|\d+)$")
TAG_SPLIT_RE = re.compile(r"[,\s]+")
SCENARIO_KEYWORDS = ("Scenario Outline:", "Scenario Template:", "Scenario:")
OUTLINE_KEYWORDS = ("Scenario Outline:", "Scenario Template:")
HEADER_KEYWORDS = ("Feature:", "Background:", "Rule:")
PLACEHOLDER = "Number"


class ParserState(str, Enum):
    SEEKING_TAG = "seeking-tag"
    IN_TAG_BLOCK = "in-tag-block"
    SEEKING_SCENARIO = "seeking-scenario"
    IN_STEPS = "in-steps"


class ScenarioMarker(BaseModel):
    """シナリオに付与されたテストケースIDタグ"""
    section: str
    entity: str
    number: Optional[int] = None
    line_index: int
    raw: str

    @property
    def is_placeholder(self) -> bool:
        return self.number is None

    @property
    def test_case_id(self) -> Optional[str]:
        if self.number is None:
            return None
        return f"TC-{self.section.upper()}-{self.entity.upper()}-{self.number}"

    def matches(self, section: Optional[str] = None, entity: Optional[str] = None) -> bool:
        """セクション・エンティティを大文字小文字を区別せずに比較する"""
        if section and self.section.upper() != section.upper():
            return False
        if entity and self.entity.upper() != entity.upper():
            return False
        return True


class ParsedScenario(BaseModel):
    """featureファイルから抽出した1シナリオ"""
    line_index: int
    scenario_line: int
    scenario_name: str
    tags: List[str] = Field(default_factory=list)
    steps_text: str = ""
    is_outline: bool = False
    marker: Optional[ScenarioMarker] = None

    @property
    def all_tags(self) -> List[str]:
        """マーカーを含むランナーから見たタグ一覧"""
        if self.marker:
            return self.tags + [self.marker.raw]
        return list(self.tags)


def is_scenario_line(stripped: str) -> bool:
    return stripped.startswith(SCENARIO_KEYWORDS)


def scenario_title(stripped: str) -> str:
    for keyword in SCENARIO_KEYWORDS:
        if stripped.startswith(keyword):
            return stripped[len(keyword):].strip()
    return stripped


def split_tags(stripped: str) -> List[str]:
    return [token for token in TAG_SPLIT_RE.split(stripped) if token.startswith("@")]


def parse_marker(token: str, line_index: int) -> Optional[ScenarioMarker]:
    match = MARKER_RE.match(token)
    if not match:
        return None
    section, entity, number = match.groups()
    return ScenarioMarker(
        section=section,
        entity=entity,
        number=None if number == PLACEHOLDER else int(number),
        line_index=line_index,
        raw=token,
    )


class FeatureTokenizer:
    """
    featureファイルの行を状態機械で走査するトークナイザ

    タグブロック内のタグは、マーカー行の上下どちらにあってもシナリオのタグとして収集する。
    空行の直後にタグ行が来た場合、またはシナリオ行が来た場合にステップの収集を終える。
    """

    def __init__(self, lines: Iterable[str]):
        self._lines = lines
        self.state = ParserState.SEEKING_TAG
        self.scenarios: List[ParsedScenario] = []
        self.orphan_markers: List[ScenarioMarker] = []
        self._reset_block()
        self._current: Optional[ParsedScenario] = None
        self._steps: List[str] = []
        self._previous_blank = False

    def _reset_block(self) -> None:
        self._tags: List[str] = []
        self._marker: Optional[ScenarioMarker] = None

    def _transition(self, state: ParserState) -> None:
        self.state = state

    def _absorb_tag_line(self, stripped: str, index: int) -> None:
        for token in split_tags(stripped):
            marker = parse_marker(token, index)
            if marker:
                if self._marker is None:
                    self._marker = marker
                else:
                    logger.warning(f"Multiple test case markers in one tag block at line {index + 1}; keeping {self._marker.raw}")
                continue
            if token.startswith("@TC-"):
                continue
            if token not in self._tags:
                self._tags.append(token)

    def _start_scenario(self, stripped: str, index: int) -> None:
        line_index = self._marker.line_index if self._marker else index
        self._current = ParsedScenario(
            line_index=line_index,
            scenario_line=index,
            scenario_name=scenario_title(stripped),
            tags=list(self._tags),
            is_outline=stripped.startswith(OUTLINE_KEYWORDS),
            marker=self._marker,
        )
        self._steps = []
        self._reset_block()
        self._transition(ParserState.IN_STEPS)

    def _finish_scenario(self) -> None:
        if self._current is not None:
            self._current.steps_text = "\n".join(self._steps)
            self.scenarios.append(self._current)
        self._current = None
        self._steps = []

    def _drop_orphan_marker(self) -> None:
        if self._marker is not None:
            logger.warning(f"Marker {self._marker.raw} at line {self._marker.line_index + 1} has no scenario; skipping")
            self.orphan_markers.append(self._marker)
        self._reset_block()

    def run(self) -> List[ParsedScenario]:
        for index, line in enumerate(self._lines):
            stripped = line.strip()
            if stripped.startswith("#"):
                continue
            handler = getattr(self, f"_on_{self.state.name.lower()}")
            handler(stripped, index)
            self._previous_blank = not stripped
        self._finish_scenario()
        self._drop_orphan_marker()
        return self.scenarios

    def _on_seeking_tag(self, stripped: str, index: int) -> None:
        if stripped.startswith("@"):
            self._absorb_tag_line(stripped, index)
            self._transition(ParserState.IN_TAG_BLOCK)
        elif is_scenario_line(stripped):
            self._start_scenario(stripped, index)

    def _on_in_tag_block(self, stripped: str, index: int) -> None:
        if stripped.startswith("@"):
            self._absorb_tag_line(stripped, index)
        elif is_scenario_line(stripped):
            self._start_scenario(stripped, index)
        elif stripped.startswith(HEADER_KEYWORDS):
            # Feature/Background 行をまたいだタグも引き継ぐ
            return
        elif self._marker is not None:
            self._transition(ParserState.SEEKING_SCENARIO)
        else:
            self._reset_block()
            self._transition(ParserState.SEEKING_TAG)

    def _on_seeking_scenario(self, stripped: str, index: int) -> None:
        if is_scenario_line(stripped):
            self._start_scenario(stripped, index)
        elif stripped.startswith("@"):
            if any(parse_marker(token, index) for token in split_tags(stripped)):
                self._drop_orphan_marker()
            self._absorb_tag_line(stripped, index)
            self._transition(ParserState.IN_TAG_BLOCK)

    def _on_in_steps(self, stripped: str, index: int) -> None:
        if not stripped:
            return
        if is_scenario_line(stripped):
            self._finish_scenario()
            self._start_scenario(stripped, index)
        elif stripped.startswith("@"):
            if self._previous_blank:
                self._finish_scenario()
                self._absorb_tag_line(stripped, index)
                self._transition(ParserState.IN_TAG_BLOCK)
            else:
                # Examples 等に付いたタグはステップに含めない
                self._absorb_tag_line(stripped, index)
        elif stripped.startswith(HEADER_KEYWORDS):
            self._finish_scenario()
            self._transition(ParserState.SEEKING_TAG)
        else:
            self._reset_block()
            self._steps.append(stripped)


def parse_feature(content: str) -> List[ParsedScenario]:
    """
    featureファイルの内容からシナリオ一覧を抽出する

    Args:
        content: featureファイルの全文

    Returns:
        出現順のシナリオ一覧（マーカーの有無を問わない）
    """
    return FeatureTokenizer(content.split("\n")).run()


def find_markers(
    content: str,
    section: Optional[str] = None,
    entity: Optional[str] = None,
    placeholders: Optional[bool] = None,
) -> List[ParsedScenario]:
    """
    マーカータグを持つシナリオを抽出する

    Args:
        content: featureファイルの全文
        section: 対象セクション（大文字小文字は区別しない）
        entity: 対象エンティティ（大文字小文字は区別しない）
        placeholders: True なら未解決（Number）のみ、False なら解決済みのみ、None なら両方

    Returns:
        マーカー付きシナリオ一覧
    """
    result = []
    for scenario in parse_feature(content):
        marker = scenario.marker
        if marker is None or not marker.matches(section, entity):
            continue
        if placeholders is not None and marker.is_placeholder != placeholders:
            continue
        result.append(scenario)
    return result


def resolve_placeholders(content: str, assignments: List[tuple]) -> str:
    """
    未解決マーカーの Number を割り当て済みの番号で置換する（行内の部分文字列置換のみ）

    Args:
        content: featureファイルの全文
        assignments: (ScenarioMarker, 番号) のリスト

    Returns:
        書き換え後の内容
    """
    lines = content.split("\n")
    for marker, number in assignments:
        resolved = f"{marker.raw[:-len(PLACEHOLDER)]}{number}"
        lines[marker.line_index] = lines[marker.line_index].replace(marker.raw, resolved, 1)
    return "\n".join(lines)


def decode_feature(raw: bytes, source: str = "<memory>") -> str:
    """featureファイルのバイト列をUTF-8として解釈する"""
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise GherkinParseException(
            f"Feature file {source} is not valid UTF-8",
            details={"source": source, "position": e.start}
        )
