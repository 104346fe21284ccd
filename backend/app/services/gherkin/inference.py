"""シナリオ名からHTTPメソッド・テスト種別・生成タグを推定する"""

from typing import List, Optional, Sequence, Tuple

from app.models import TestType

# 上から順に評価する（最初に一致したものを採用）
METHOD_KEYWORDS: List[Tuple[Tuple[str, ...], str]] = [
    (("create", "post"), "POST"),
    (("get", "read"), "GET"),
    (("update", "patch"), "PATCH"),
    (("replace", "put"), "PUT"),
    (("delete", "remove"), "DELETE"),
]

NEGATIVE_KEYWORDS = ("invalid", "missing", "error")

CRUD_TAGS = {
    "POST": "@create",
    "GET": "@read",
    "PATCH": "@update",
    "PUT": "@update",
    "DELETE": "@delete",
}


def infer_method(scenario_name: str, declared_methods: Optional[Sequence[str]] = None) -> str:
    """
    シナリオ名からHTTPメソッドを推定する

    Args:
        scenario_name: シナリオ名
        declared_methods: エンティティに宣言されたメソッド（フォールバック用）

    Returns:
        HTTPメソッド。該当なしの場合は宣言済みの先頭メソッド、それもなければ GET
    """
    lowered = scenario_name.lower()
    for keywords, method in METHOD_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return method
    if declared_methods:
        return declared_methods[0].upper()
    return "GET"


def infer_test_type(scenario_name: str) -> str:
    """invalid/missing/error を含めば negative、それ以外（regression を含む）は positive"""
    lowered = scenario_name.lower()
    if any(keyword in lowered for keyword in NEGATIVE_KEYWORDS):
        return TestType.NEGATIVE.value
    return TestType.POSITIVE.value


def generated_tags(method: str) -> List[str]:
    """自動登録時に付与するタグ"""
    tags = ["@smoke"]
    crud = CRUD_TAGS.get(method.upper())
    if crud:
        tags.append(crud)
    return tags
