"""
識別子の採番モジュール

既存の識別子を接頭辞で走査し、末尾の数値の最大値 + 1 を次の番号とする。
TC-{SECTION}-{ENTITY}-{N} / SUITE-{SECTION}-{ENTITY}-{nnn} / PLAN-{SECTION}-{nnn} / BUG-{IDENT}-{nnn}
"""

import re
from typing import Iterable, Optional

from sqlmodel import Session, select, col

from app.models import TestCase, TestSuite, Bug


def _max_suffix(identifiers: Iterable[str], prefix: str) -> int:
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    numbers = [int(m.group(1)) for m in (pattern.match(i or "") for i in identifiers) if m]
    return max(numbers, default=0)


def test_case_prefix(section: str, entity: str) -> str:
    return f"TC-{section.upper()}-{entity.upper()}-"


def format_test_case_id(section: str, entity: str, number: int) -> str:
    return f"{test_case_prefix(section, entity)}{number}"


def next_test_case_number(session: Session, project_id: int, section: str, entity: str) -> int:
    """
    (section, entity) の次のテストケース番号を返す

    廃止（deprecated）済みの行も走査対象に含めるため、番号が再利用されることはない。

    Args:
        session: データベースセッション
        project_id: プロジェクトの内部ID
        section: セクション
        entity: エンティティ

    Returns:
        既存の最大番号 + 1（既存がなければ 1）
    """
    prefix = test_case_prefix(section, entity)
    existing = session.exec(
        select(TestCase.test_case_id).where(
            TestCase.project_id == project_id,
            col(TestCase.test_case_id).startswith(prefix, autoescape=True),
        )
    ).all()
    return _max_suffix(existing, prefix) + 1


class TestCaseNumberAllocator:
    """1回のファイル処理の中で連番を払い出す（マーカーごとにDBを再検索しない）"""
    __test__ = False

    def __init__(self, section: str, entity: str, start: int):
        self.section = section
        self.entity = entity
        self._next = start

    @classmethod
    def for_entity(cls, session: Session, project_id: int, section: str, entity: str) -> "TestCaseNumberAllocator":
        return cls(section, entity, next_test_case_number(session, project_id, section, entity))

    def allocate(self) -> int:
        number = self._next
        self._next += 1
        return number

    def peek(self) -> int:
        return self._next


def next_suite_id(session: Session, project_id: int, section: str, entity: str) -> str:
    """テストセットのID SUITE-{SECTION}-{ENTITY}-{nnn} を採番する"""
    prefix = f"SUITE-{section.upper()}-{entity.upper()}-"
    return _next_padded(session, project_id, prefix)


def next_plan_id(session: Session, project_id: int, section: str) -> str:
    """テストプランのID PLAN-{SECTION}-{nnn} を採番する"""
    prefix = f"PLAN-{section.upper()}-"
    return _next_padded(session, project_id, prefix)


def _next_padded(session: Session, project_id: int, prefix: str) -> str:
    existing = session.exec(
        select(TestSuite.suite_id).where(
            TestSuite.project_id == project_id,
            col(TestSuite.suite_id).startswith(prefix, autoescape=True),
        )
    ).all()
    return f"{prefix}{_max_suffix(existing, prefix) + 1:03d}"


def bug_identifier(section: Optional[str], entity: Optional[str]) -> str:
    """セクションとエンティティが同じ場合は1つにまとめる"""
    normalized_section = (section or "").upper() or "GENERAL"
    normalized_entity = (entity or "").upper() or "GENERAL"
    if normalized_section == normalized_entity:
        return normalized_section
    return f"{normalized_section}-{normalized_entity}"


def next_bug_id(session: Session, project_id: int, section: Optional[str], entity: Optional[str]) -> str:
    """バグID BUG-{IDENT}-{nnn} を採番する"""
    prefix = f"BUG-{bug_identifier(section, entity)}-"
    existing = session.exec(
        select(Bug.bug_id).where(
            Bug.project_id == project_id,
            col(Bug.bug_id).startswith(prefix, autoescape=True),
        )
    ).all()
    return f"{prefix}{_max_suffix(existing, prefix) + 1:03d}"
