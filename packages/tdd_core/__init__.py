from .assertions import (
    ASSERTIONS_MANUAL_URL,
    ASSERTIONS_TEMPLATE_URL,
    AssertionRegistry,
    RegistryEntry,
    load_assertions,
    load_registry,
)
from .case import Case, CaseFailed, CaseSkipped, new_root, run_case
from .recorder import Record, fatal, report, report_group, report_record, skip
from .report import ReportRow, ReportWriter, compile_report, result_to_row, summarize, write_csv_report
from .results import HarnessError, Outcome, OutcomeRecord, ResultStore
from .td import get_id, merge_patch, mocked_td, serialized_equal, strip_fields
from .utils import canonical_json, gen_tag, gen_urn_uuid, pretty_json

__all__ = [
    'ASSERTIONS_TEMPLATE_URL','ASSERTIONS_MANUAL_URL','AssertionRegistry','RegistryEntry','load_assertions','load_registry',
    'Case','CaseFailed','CaseSkipped','new_root','run_case',
    'Record','report','report_group','report_record','fatal','skip',
    'ReportRow','ReportWriter','compile_report','result_to_row','summarize','write_csv_report',
    'HarnessError','Outcome','OutcomeRecord','ResultStore',
    'mocked_td','strip_fields','serialized_equal','merge_patch','get_id',
    'canonical_json','pretty_json','gen_urn_uuid','gen_tag',
]
