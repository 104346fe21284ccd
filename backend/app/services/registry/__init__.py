from .test_cases import TestCaseRegistry, SyncReport, scenario_fields
from .steps import StepRegistry, StepSyncReport

__all__ = ["TestCaseRegistry", "SyncReport", "scenario_fields", "StepRegistry", "StepSyncReport"]
