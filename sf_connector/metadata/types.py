"""
Metadata Type Definitions

Static knowledge about metadata types: per-type details, folder-bearing
types, the special types registry and the source-format path rules used
when copying retrieved files back into a project.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class MetadataDetail:
    """Description of one metadata type for a given API version."""
    xml_name: str
    directory_name: str
    suffix: Optional[str] = None
    in_folder: bool = False
    meta_file: bool = False
    child_xml_names: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def has_childs(self) -> bool:
        return bool(self.child_xml_names)

    @classmethod
    def from_describe(cls, record: Dict) -> "MetadataDetail":
        """Build a detail from one entry of a metadata describe response."""
        child_names = record.get('childXmlNames') or []
        if isinstance(child_names, str):
            child_names = [child_names]
        return cls(
            xml_name=record['xmlName'],
            directory_name=record.get('directoryName') or '',
            suffix=record.get('suffix'),
            in_folder=bool(record.get('inFolder', False)),
            meta_file=bool(record.get('metaFile', False)),
            child_xml_names=tuple(child_names),
        )


# Folder-bearing types and the type used to list their folders
FOLDER_TYPES: Dict[str, str] = {
    'Report': 'ReportFolder',
    'Dashboard': 'DashboardFolder',
    'Document': 'DocumentFolder',
    'EmailTemplate': 'EmailFolder',
}

DEFAULT_DETAILS: Dict[str, MetadataDetail] = {
    detail.xml_name: detail for detail in (
        MetadataDetail('ApexClass', 'classes', 'cls', meta_file=True),
        MetadataDetail('ApexPage', 'pages', 'page', meta_file=True),
        MetadataDetail('BusinessProcess', 'businessProcesses', 'businessProcess'),
        MetadataDetail('CompactLayout', 'compactLayouts', 'compactLayout'),
        MetadataDetail('CustomApplication', 'applications', 'app'),
        MetadataDetail('CustomField', 'fields', 'field'),
        MetadataDetail('CustomLabel', 'labels', 'label'),
        MetadataDetail('CustomMetadata', 'customMetadata', 'md'),
        MetadataDetail(
            'CustomObject', 'objects', 'object',
            child_xml_names=(
                'CustomField', 'BusinessProcess', 'CompactLayout', 'FieldSet',
                'ListView', 'RecordType', 'SharingReason', 'ValidationRule', 'WebLink',
            ),
        ),
        MetadataDetail('CustomObjectTranslation', 'objectTranslations', 'objectTranslation'),
        MetadataDetail('CustomPermission', 'customPermissions', 'customPermission'),
        MetadataDetail('CustomTab', 'tabs', 'tab'),
        MetadataDetail('Dashboard', 'dashboards', 'dashboard', in_folder=True),
        MetadataDetail('DataCategoryGroup', 'datacategorygroups', 'datacategorygroup'),
        MetadataDetail('Document', 'documents', None, in_folder=True, meta_file=True),
        MetadataDetail('EmailTemplate', 'email', 'email', in_folder=True, meta_file=True),
        MetadataDetail('ExternalDataSource', 'dataSources', 'dataSource'),
        MetadataDetail('FieldSet', 'fieldSets', 'fieldSet'),
        MetadataDetail('Flow', 'flows', 'flow'),
        MetadataDetail('Layout', 'layouts', 'layout'),
        MetadataDetail('ListView', 'listViews', 'listView'),
        MetadataDetail('PermissionSet', 'permissionsets', 'permissionset'),
        MetadataDetail('Profile', 'profiles', 'profile'),
        MetadataDetail('QuickAction', 'quickActions', 'quickAction'),
        MetadataDetail('RecordType', 'recordTypes', 'recordType'),
        MetadataDetail('Report', 'reports', 'report', in_folder=True),
        MetadataDetail('ReportType', 'reportTypes', 'reportType'),
        MetadataDetail('SharingReason', 'sharingReasons', 'sharingReason'),
        MetadataDetail('Translations', 'translations', 'translation'),
        MetadataDetail('ValidationRule', 'validationRules', 'validationRule'),
        MetadataDetail('WebLink', 'webLinks', 'webLink'),
    )
}

# Parent types whose retrieval needs their dependent types in the same manifest
SPECIAL_METADATA: Dict[str, List[str]] = {
    'CustomObjectTranslation': [
        'CustomObject', 'CustomField', 'FieldSet', 'Layout', 'QuickAction',
        'RecordType', 'SharingReason', 'ValidationRule', 'WebLink',
    ],
    'PermissionSet': [
        'ApexClass', 'ApexPage', 'CustomApplication', 'CustomMetadata', 'CustomObject',
        'CustomField', 'CustomPermission', 'CustomTab', 'DataCategoryGroup',
        'ExternalDataSource', 'Flow', 'RecordType',
    ],
    'Profile': [
        'ApexClass', 'ApexPage', 'CustomApplication', 'CustomMetadata', 'CustomObject',
        'CustomField', 'CustomPermission', 'CustomTab', 'DataCategoryGroup',
        'ExternalDataSource', 'Flow', 'Layout', 'RecordType',
    ],
    'RecordType': [
        'CustomObject', 'BusinessProcess', 'CompactLayout',
    ],
    'Translations': [
        'CustomApplication', 'CustomLabel', 'CustomTab', 'Flow', 'QuickAction',
        'ReportType', 'CustomPermission',
    ],
}

# Types whose components are stored as a folder named after the component
BUNDLE_TYPES = frozenset({'CustomObject', 'CustomObjectTranslation'})

# Types stored under their parent object: objects/<Object>/<subfolder>/<item>
OBJECT_CHILD_TYPES: Dict[str, str] = {
    'BusinessProcess': 'businessProcesses',
    'CompactLayout': 'compactLayouts',
    'CustomField': 'fields',
    'FieldSet': 'fieldSets',
    'ListView': 'listViews',
    'RecordType': 'recordTypes',
    'SharingReason': 'sharingReasons',
    'ValidationRule': 'validationRules',
    'WebLink': 'webLinks',
}


def expand_special_types(keys: Optional[Iterable[str]] = None) -> List[str]:
    """
    Expand special parent types into the ordered list of types to retrieve.

    Each parent is followed by its registered children. Duplicates are
    dropped, keeping the first occurrence. Unknown keys are kept as-is.

    Args:
        keys: Parent type names (None means every registered parent)

    Returns:
        De-duplicated work set
    """
    if keys is None:
        keys = sorted(SPECIAL_METADATA)

    work_set: List[str] = []
    seen = set()
    for key in keys:
        for type_name in [key] + SPECIAL_METADATA.get(key, []):
            if type_name not in seen:
                seen.add(type_name)
                work_set.append(type_name)
    return work_set


def is_special_type(type_name: str) -> bool:
    return type_name in SPECIAL_METADATA


def get_detail(type_name: str, details: Optional[Dict[str, MetadataDetail]] = None) -> MetadataDetail:
    """Look up a detail, falling back to a lower-camel directory guess."""
    if details and type_name in details:
        return details[type_name]
    if type_name in DEFAULT_DETAILS:
        return DEFAULT_DETAILS[type_name]
    directory = type_name[0].lower() + type_name[1:] + 's'
    return MetadataDetail(type_name, directory, type_name[0].lower() + type_name[1:])


def source_file_path(
    detail: MetadataDetail,
    object_name: str,
    item_name: Optional[str] = None,
) -> str:
    """
    Relative source-format path of one component inside a package directory.

    Args:
        detail: Metadata detail of the component's type
        object_name: Object (or folder, for folder types) name
        item_name: Item name for folder types and object child types

    Returns:
        POSIX relative path, e.g. ``reports/Sales/Pipeline.report-meta.xml``
    """
    suffix = detail.suffix or detail.directory_name
    type_name = detail.xml_name

    if type_name in OBJECT_CHILD_TYPES:
        subfolder = OBJECT_CHILD_TYPES[type_name]
        return f"objects/{object_name}/{subfolder}/{item_name}.{suffix}-meta.xml"

    if detail.in_folder:
        if item_name:
            return f"{detail.directory_name}/{object_name}/{item_name}.{suffix}-meta.xml"
        return f"{detail.directory_name}/{object_name}.{suffix}Folder-meta.xml"

    if type_name in BUNDLE_TYPES:
        return f"{detail.directory_name}/{object_name}/{object_name}.{suffix}-meta.xml"

    return f"{detail.directory_name}/{object_name}.{suffix}-meta.xml"
