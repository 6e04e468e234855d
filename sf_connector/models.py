"""
Connector Result Models

Typed results returned by connector operations.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


@dataclass
class RetrievedFile:
    """One file reported by a retrieve job."""
    full_name: str
    type: str
    state: str = ""
    file_path: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RetrieveResult:
    """Outcome of a retrieve job."""
    job_id: Optional[str] = None
    status: str = ""
    done: bool = False
    success: bool = False
    files: List[RetrievedFile] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, result: Any) -> "RetrieveResult":
        data = result if isinstance(result, dict) else {}
        files = [
            RetrievedFile(
                full_name=f.get('fullName', ''),
                type=f.get('type', ''),
                state=f.get('state', ''),
                file_path=f.get('filePath'),
                error=f.get('error'),
            )
            for f in _as_list(data.get('files') or data.get('fileProperties'))
            if isinstance(f, dict)
        ]
        status = data.get('status', '')
        return cls(
            job_id=data.get('id'),
            status=status,
            done=bool(data.get('done', False)),
            success=bool(data.get('success', status == 'Succeeded')),
            files=files,
            raw=data,
        )


@dataclass
class DeployError:
    """One component failure reported by a deploy job."""
    full_name: str
    type: str
    problem: str
    file_path: Optional[str] = None
    line: Optional[int] = None


@dataclass
class DeployResult:
    """Outcome (or current status) of a deploy job."""
    job_id: Optional[str] = None
    status: str = ""
    done: bool = False
    success: bool = False
    check_only: bool = False
    number_components_total: int = 0
    number_components_deployed: int = 0
    number_component_errors: int = 0
    number_tests_total: int = 0
    number_tests_completed: int = 0
    number_test_errors: int = 0
    errors: List[DeployError] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, result: Any) -> "DeployResult":
        data = result if isinstance(result, dict) else {}
        details = data.get('details') or {}
        failures = _as_list(details.get('componentFailures')) if isinstance(details, dict) else []
        errors = [
            DeployError(
                full_name=f.get('fullName', ''),
                type=f.get('componentType', ''),
                problem=f.get('problem', ''),
                file_path=f.get('fileName'),
                line=int(f['lineNumber']) if f.get('lineNumber') else None,
            )
            for f in failures
            if isinstance(f, dict)
        ]
        status = data.get('status', '')
        return cls(
            job_id=data.get('id'),
            status=status,
            done=bool(data.get('done', False)),
            success=bool(data.get('success', status == 'Succeeded')),
            check_only=bool(data.get('checkOnly', False)),
            number_components_total=int(data.get('numberComponentsTotal', 0) or 0),
            number_components_deployed=int(data.get('numberComponentsDeployed', 0) or 0),
            number_component_errors=int(data.get('numberComponentErrors', 0) or 0),
            number_tests_total=int(data.get('numberTestsTotal', 0) or 0),
            number_tests_completed=int(data.get('numberTestsCompleted', 0) or 0),
            number_test_errors=int(data.get('numberTestErrors', 0) or 0),
            errors=errors,
            raw=data,
        )


@dataclass
class SObjectField:
    """One field of an SObject describe."""
    name: str
    label: str = ""
    type: str = ""
    length: int = 0
    custom: bool = False
    nillable: bool = True
    reference_to: List[str] = field(default_factory=list)
    picklist_values: List[str] = field(default_factory=list)


@dataclass
class SObject:
    """Relevant parts of an SObject describe."""
    name: str
    label: str = ""
    label_plural: str = ""
    key_prefix: Optional[str] = None
    custom: bool = False
    queryable: bool = False
    fields: Dict[str, SObjectField] = field(default_factory=dict)
    record_types: List[str] = field(default_factory=list)

    @classmethod
    def from_describe(cls, data: Dict[str, Any]) -> "SObject":
        fields = {}
        for f in data.get('fields', []):
            fields[f['name']] = SObjectField(
                name=f['name'],
                label=f.get('label', ''),
                type=f.get('type', ''),
                length=int(f.get('length', 0) or 0),
                custom=bool(f.get('custom', False)),
                nillable=bool(f.get('nillable', True)),
                reference_to=list(f.get('referenceTo') or []),
                picklist_values=[
                    p['value'] for p in f.get('picklistValues') or [] if p.get('active', True)
                ],
            )
        return cls(
            name=data['name'],
            label=data.get('label', ''),
            label_plural=data.get('labelPlural', ''),
            key_prefix=data.get('keyPrefix'),
            custom=bool(data.get('custom', False)),
            queryable=bool(data.get('queryable', False)),
            fields=fields,
            record_types=[
                rt.get('developerName') or rt.get('name')
                for rt in data.get('recordTypeInfos', [])
                if not rt.get('master', False)
            ],
        )
