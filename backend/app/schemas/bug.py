from typing import Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

class BugBase(BaseModel):
    title: str
    description: str = ""
    type: str = "test_failure"
    severity: str = "medium"
    priority: Optional[str] = None
    scenario_name: Optional[str] = None
    error_message: Optional[str] = None
    error_type: Optional[str] = None
    error_stack: Optional[str] = None
    error_code: Optional[str] = None
    section: Optional[str] = None
    entity: Optional[str] = None
    method: Optional[str] = None
    endpoint: Optional[str] = None
    request_data: Optional[Dict[str, Any]] = None
    response_data: Optional[Dict[str, Any]] = None
    execution_time: Optional[float] = None
    execution_date: Optional[datetime] = None
    execution_logs: Optional[str] = None
    console_logs: Optional[str] = None
    environment: Optional[str] = None

class BugCreate(BugBase):
    test_case_id: Optional[str] = None
    test_case_name: Optional[str] = None
    test_suite_id: Optional[str] = None
    execution_id: Optional[str] = None

class BugUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    severity: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    error_message: Optional[str] = None
    error_type: Optional[str] = None
    error_stack: Optional[str] = None
    error_code: Optional[str] = None
    request_data: Optional[Dict[str, Any]] = None
    response_data: Optional[Dict[str, Any]] = None
    execution_logs: Optional[str] = None
    console_logs: Optional[str] = None
    environment: Optional[str] = None

class BugFilters(BaseModel):
    """バグ一覧の絞り込み条件"""
    type: Optional[str] = None
    severity: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    section: Optional[str] = None
    entity: Optional[str] = None
    test_case_id: Optional[str] = None
    test_suite_id: Optional[str] = None
    execution_id: Optional[str] = None
    environment: Optional[str] = None
    search: Optional[str] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)

class BugFromExecution(BaseModel):
    execution_id: str
    test_case_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    severity: Optional[str] = None
    priority: Optional[str] = None
    error_message: Optional[str] = None
    environment: Optional[str] = None

class Bug(BugBase):
    bug_id: str
    test_case_id: Optional[str] = None
    test_case_name: Optional[str] = None
    test_suite_id: Optional[str] = None
    execution_id: Optional[str] = None
    priority: str
    status: str
    environment: str
    reported_at: datetime
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
