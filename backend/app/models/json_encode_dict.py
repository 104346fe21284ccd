from sqlalchemy.types import TypeDecorator, TEXT
import json

class JSONEncodedDict(TypeDecorator):
    """辞書をJSON文字列としてTEXT列に保存する"""
    impl = TEXT
    cache_ok = True

    def empty(self):
        return {}

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return json.dumps(value, ensure_ascii=False, default=str)

    def process_result_value(self, value, dialect):
        if value is None:
            return self.empty()
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return self.empty()

class JSONEncodedList(JSONEncodedDict):
    """リストをJSON文字列としてTEXT列に保存する"""
    cache_ok = True

    def empty(self):
        return []
