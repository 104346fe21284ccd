"""
ステップ定義ファイル解析モジュール

Given/When/Then/And/But の呼び出しを見出しとして検出し、波括弧の対応を数えて
実装ブロック全体を取り出します。
"""

import re
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from app.exceptions import StepParseException
from app.logging_config import logger

STEP_HEADER_RE = re.compile(r"""^(Given|When|Then|And|But)\s*\(\s*['"`]([^'"`]+)['"`]""")
PARAM_RE = re.compile(r"\{([^}]+)\}")
BLOCK_END = "});"
EMPTY_IMPLEMENTATION = "function () { }"


class ParsedStep(BaseModel):
    """ステップ定義ファイル内の1ステップ"""
    sequence: int
    keyword: str
    pattern: str
    implementation: str
    parameters: List[Dict[str, Any]] = Field(default_factory=list)
    line_index: int
    closed: bool = True

    def step_id(self, section: str, entity: str) -> str:
        return format_step_id(section, entity, self.sequence)


def format_step_id(section: str, entity: str, sequence: int) -> str:
    return f"ST-{section.upper()}-{entity.upper()}-{sequence:02d}"


def extract_parameters(pattern: str) -> List[Dict[str, Any]]:
    """ステップ文言の {param} プレースホルダーをパラメータ一覧に変換する"""
    return [
        {"name": name.strip(), "type": "string", "required": True, "default_value": None}
        for name in PARAM_RE.findall(pattern)
    ]


def _capture_block(lines: List[str], start: int) -> tuple:
    depth = 0
    block: List[str] = []
    for line in lines[start:]:
        block.append(line)
        depth += line.count("{") - line.count("}")
        if BLOCK_END in line and depth <= 0:
            return "\n".join(block), True
    return EMPTY_IMPLEMENTATION, False


def parse_step_file(content: str) -> List[ParsedStep]:
    """
    ステップ定義ファイルの内容からステップ一覧を抽出する

    Args:
        content: ステップ定義ファイルの全文

    Returns:
        出現順のステップ一覧（sequence は 1 始まり）
    """
    lines = content.split("\n")
    steps: List[ParsedStep] = []
    for index, line in enumerate(lines):
        match = STEP_HEADER_RE.match(line.strip())
        if not match:
            continue
        keyword, pattern = match.groups()
        implementation, closed = _capture_block(lines, index)
        if not closed:
            logger.warning(f"Step '{pattern}' at line {index + 1} has no closing '{BLOCK_END}'; storing empty implementation")
        steps.append(ParsedStep(
            sequence=len(steps) + 1,
            keyword=keyword,
            pattern=pattern,
            implementation=implementation,
            parameters=extract_parameters(pattern),
            line_index=index,
            closed=closed,
        ))
    return steps


def decode_step_file(raw: bytes, source: str = "<memory>") -> str:
    """ステップ定義ファイルのバイト列をUTF-8として解釈する"""
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise StepParseException(
            f"Step file {source} is not valid UTF-8",
            details={"source": source, "position": e.start}
        )
