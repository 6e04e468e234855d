"""Unit tests for workflows/special_types.py: special types retrieval phases."""

from pathlib import Path

import pytest

from sf_connector.exceptions import FormatError, ProcessError, RetrieveTimeoutError
from sf_connector.metadata.merge import MergeMode
from sf_connector.progress.core.events import CallbackSink, EventType
from sf_connector.workflows.special_types import RetrievalOrchestrator, RetrievalPhase

ADMIN_OLD = "<Profile><custom>false</custom></Profile>"
ADMIN_NEW = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<Profile xmlns="http://soap.sforce.com/2006/04/metadata">'
    '<userPermissions><enabled>true</enabled><name>ApiEnabled</name></userPermissions>'
    '<custom>false</custom></Profile>'
)
STANDARD_NEW = '<Profile xmlns="http://soap.sforce.com/2006/04/metadata"><custom>false</custom></Profile>'

ADMIN_PATH = "profiles/Admin.profile-meta.xml"
STANDARD_PATH = "profiles/Standard.profile-meta.xml"


def _selection(*profiles: str) -> dict:
    return {
        "Profile": {
            "name": "Profile",
            "checked": False,
            "childs": {name: {"name": name, "checked": True, "childs": {}} for name in profiles},
        }
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def local_admin(connector) -> Path:
    """Project holding an outdated Admin profile."""
    path = connector.package_path / ADMIN_PATH
    path.parent.mkdir(parents=True)
    path.write_text(ADMIN_OLD, encoding="utf-8")
    return path


@pytest.fixture
def retrieved(runner) -> None:
    runner.retrieve_files = {ADMIN_PATH: ADMIN_NEW, STANDARD_PATH: STANDARD_NEW}


def _orchestrator(connector, **kwargs) -> RetrievalOrchestrator:
    kwargs.setdefault("poll_interval", 0.01)
    kwargs.setdefault("timeout", 1.0)
    return RetrievalOrchestrator(connector, **kwargs)


def _of(sink, *types: EventType):
    return [t for t in sink.types() if t in types]


# ---------------------------------------------------------------------------
# Full runs
# ---------------------------------------------------------------------------


class TestLocalMode:
    def test_copies_selected_profile_back_into_project(
        self, connector, runner, sink, local_admin, retrieved, tmp_path
    ) -> None:
        orchestrator = _orchestrator(connector)
        context = connector.tracker.start_operation("retrieve_local_special_types")
        original = (connector.project_folder, connector.package_folder)

        result = orchestrator.run(
            context, MergeMode.LOCAL, types=["Profile"],
            selection=_selection("Admin"), tmp_folder=tmp_path / "scratch",
        )

        assert result.status == "Succeeded"
        assert local_admin.read_text(encoding="utf-8") == ADMIN_NEW
        assert not (connector.package_path / STANDARD_PATH).exists()
        assert (connector.project_folder, connector.package_folder) == original
        assert connector.tracker.in_progress is False
        assert orchestrator.phases_run == [
            RetrievalPhase.PREPARE, RetrievalPhase.LOAD, RetrievalPhase.SCAFFOLD,
            RetrievalPhase.RETRIEVE, RetrievalPhase.MERGE_BACK, RetrievalPhase.RESTORE,
        ]
        assert orchestrator.phase == RetrievalPhase.RESTORE

    def test_events_follow_phase_order(self, connector, sink, local_admin, retrieved, tmp_path) -> None:
        context = connector.tracker.start_operation("retrieve_local_special_types")

        _orchestrator(connector).run(
            context, MergeMode.LOCAL, types=["Profile"],
            selection=_selection("Admin"), tmp_folder=tmp_path / "scratch",
        )

        assert _of(
            sink, EventType.PREPARE, EventType.LOADING_LOCAL, EventType.LOADING_ORG,
            EventType.CREATE_PROJECT, EventType.RETRIEVE, EventType.COPY_DATA, EventType.COPY_FILE,
        ) == [
            EventType.PREPARE, EventType.LOADING_LOCAL, EventType.CREATE_PROJECT,
            EventType.RETRIEVE, EventType.COPY_DATA, EventType.COPY_FILE,
        ]
        copy_event = sink.of_type(EventType.COPY_FILE)[0]
        assert copy_event.entity_type == "Profile"
        assert copy_event.entity_name == "Admin"
        assert copy_event.percentage == 0.0

    def test_scratch_project_gets_manifest_and_target_org(
        self, connector, runner, local_admin, retrieved, tmp_path
    ) -> None:
        scratch = tmp_path / "scratch"
        (scratch / "leftover").mkdir(parents=True)
        context = connector.tracker.start_operation("retrieve_local_special_types")

        _orchestrator(connector).run(context, MergeMode.LOCAL, types=["Profile"], tmp_folder=scratch)

        scratch_project = scratch / "TempProject"
        manifest = (scratch_project / "manifest" / "package.xml").read_text(encoding="utf-8")
        assert "<members>Admin</members>" in manifest
        assert "<name>Profile</name>" in manifest
        assert not (scratch / "leftover").exists()
        assert not (scratch_project / ".forceignore").exists()
        assert runner.commands() == [
            "project generate --name",
            "config set target-org=admin@example.com",
            "project retrieve start",
        ]
        assert runner.calls[1][1] == scratch_project
        assert runner.calls[2][1] == scratch_project

    def test_without_selection_nothing_is_copied(self, connector, sink, local_admin, retrieved, tmp_path) -> None:
        orchestrator = _orchestrator(connector)
        context = connector.tracker.start_operation("retrieve_local_special_types")

        orchestrator.run(context, MergeMode.LOCAL, types=["Profile"], tmp_folder=tmp_path / "scratch")

        assert RetrievalPhase.MERGE_BACK not in orchestrator.phases_run
        assert EventType.COPY_DATA not in sink.types()
        assert local_admin.read_text(encoding="utf-8") == ADMIN_OLD

    def test_compress_rewrites_copied_xml(self, connector, sink, local_admin, retrieved, tmp_path) -> None:
        context = connector.tracker.start_operation("retrieve_local_special_types")

        _orchestrator(connector).run(
            context, MergeMode.LOCAL, types=["Profile"], selection=_selection("Admin"),
            compress=True, tmp_folder=tmp_path / "scratch",
        )

        content = local_admin.read_text(encoding="utf-8")
        assert content != ADMIN_NEW
        assert content.startswith("<?xml")
        assert "<custom>false</custom>" in content
        assert content.index("<custom>") < content.index("<userPermissions>")
        assert [e.entity_name for e in sink.of_type(EventType.COMPRESS_FILE)] == ["Admin"]

    def test_owned_scratch_folder_is_removed(self, connector, sink, local_admin, retrieved) -> None:
        connector.retrieve_local_special_types(types=["Profile"], selection=_selection("Admin"))

        scratch_root = Path(sink.of_type(EventType.CREATE_PROJECT)[0].payload)
        assert not scratch_root.exists()
        assert connector.tracker.in_progress is False


class TestOrgModes:
    def test_mixed_mode_adds_org_components(self, connector, org_client, sink, local_admin, retrieved) -> None:
        org_client.add_components("Profile", "Admin", "Standard")

        connector.retrieve_mixed_special_types(types=["Profile"], selection=_selection("Standard"))

        assert (connector.package_path / STANDARD_PATH).read_text(encoding="utf-8") == STANDARD_NEW
        assert local_admin.read_text(encoding="utf-8") == ADMIN_OLD
        assert _of(sink, EventType.LOADING_LOCAL, EventType.LOADING_ORG) == [
            EventType.LOADING_LOCAL, EventType.LOADING_ORG,
        ]
        described = [e.entity_type for e in sink.of_type(EventType.AFTER_DOWNLOAD_TYPE)]
        assert described[0] == "Profile"
        assert "Layout" in described

    def test_org_mode_ignores_local_files(self, connector, org_client, sink, runner, tmp_path) -> None:
        org_client.add_components("PermissionSet", "Sales")
        runner.retrieve_files = {"permissionsets/Sales.permissionset-meta.xml": "<PermissionSet/>"}
        scratch = tmp_path / "scratch"

        result = connector.retrieve_org_special_types(types=["PermissionSet"], tmp_folder=scratch)

        manifest = (scratch / "TempProject" / "manifest" / "package.xml").read_text(encoding="utf-8")
        assert "<members>Sales</members>" in manifest
        assert EventType.LOADING_LOCAL not in sink.types()
        assert EventType.COPY_DATA not in sink.types()
        assert len(result.files) == 1


# ---------------------------------------------------------------------------
# Merge-back paths
# ---------------------------------------------------------------------------


def _node(name: str, checked: bool, **childs: dict) -> dict:
    return {"name": name, "checked": checked, "childs": childs}


def _write(package: Path, relative: str, content: str) -> Path:
    path = package / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


class TestMergeBack:
    def test_dependent_types_are_not_written_back(self, connector, org_client, runner, tmp_path) -> None:
        org_client.add_components("Profile", "Admin")
        org_client.add_components("CustomObject", "Account")
        local_object = _write(connector.package_path, "objects/Account/Account.object-meta.xml", "LOCAL-OBJ")
        local_field = _write(connector.package_path, "objects/Account/fields/Local__c.field-meta.xml", "LOCAL")
        runner.retrieve_files = {
            ADMIN_PATH: ADMIN_NEW,
            "objects/Account/Account.object-meta.xml": "ORG-OBJ",
            "objects/Account/fields/Local__c.field-meta.xml": "ORG-FIELD",
        }
        selection = {
            "Profile": _node("Profile", True),
            "CustomObject": _node("CustomObject", False, Account=_node("Account", True)),
        }

        connector.retrieve_org_special_types(types=["Profile"], selection=selection, tmp_folder=tmp_path / "scratch")

        assert (connector.package_path / ADMIN_PATH).read_text(encoding="utf-8") == ADMIN_NEW
        assert local_object.read_text(encoding="utf-8") == "LOCAL-OBJ"
        assert local_field.read_text(encoding="utf-8") == "LOCAL"

    def test_bundle_copies_only_the_component_file(self, connector, org_client, runner, tmp_path) -> None:
        org_client.add_components("CustomObjectTranslation", "Account-es")
        bundle = "objectTranslations/Account-es"
        local_field = _write(connector.package_path, f"{bundle}/Name__c.fieldTranslation-meta.xml", "LOCAL")
        runner.retrieve_files = {
            f"{bundle}/Account-es.objectTranslation-meta.xml": "<CustomObjectTranslation/>",
            f"{bundle}/Name__c.fieldTranslation-meta.xml": "ORG-FIELD",
        }
        selection = {
            "CustomObjectTranslation": _node(
                "CustomObjectTranslation", False, **{"Account-es": _node("Account-es", True)}
            ),
        }

        connector.retrieve_org_special_types(
            types=["CustomObjectTranslation"], selection=selection, tmp_folder=tmp_path / "scratch"
        )

        copied = connector.package_path / bundle / "Account-es.objectTranslation-meta.xml"
        assert copied.read_text(encoding="utf-8") == "<CustomObjectTranslation/>"
        assert local_field.read_text(encoding="utf-8") == "LOCAL"

    def test_record_type_items_nest_under_their_object(self, connector, org_client, runner, sink, tmp_path) -> None:
        org_client.add_components("RecordType", "Account.Business", "Account.Person")
        runner.retrieve_files = {
            "objects/Account/recordTypes/Business.recordType-meta.xml": "<RecordType>Business</RecordType>",
            "objects/Account/recordTypes/Person.recordType-meta.xml": "<RecordType>Person</RecordType>",
        }
        selection = {
            "RecordType": _node(
                "RecordType", False,
                Account=_node("Account", False, Business=_node("Business", True), Person=_node("Person", False)),
            ),
        }

        connector.retrieve_org_special_types(types=["RecordType"], selection=selection, tmp_folder=tmp_path / "scratch")

        record_types = connector.package_path / "objects" / "Account" / "recordTypes"
        assert (record_types / "Business.recordType-meta.xml").read_text(encoding="utf-8") == (
            "<RecordType>Business</RecordType>"
        )
        assert not (record_types / "Person.recordType-meta.xml").exists()
        copies = sink.of_type(EventType.COPY_FILE)
        assert [(e.entity_type, e.entity_name, e.entity_item) for e in copies] == [
            ("RecordType", "Account", "Business"),
        ]


# ---------------------------------------------------------------------------
# Failures, timeouts and abort
# ---------------------------------------------------------------------------


class TestFailures:
    def test_malformed_filter_fails_before_any_command(self, connector, runner, sink) -> None:
        original = (connector.project_folder, connector.package_folder)

        with pytest.raises(FormatError):
            connector.retrieve_local_special_types(selection='{"Profile": ')

        assert runner.calls == []
        assert EventType.PREPARE not in sink.types()
        assert (connector.project_folder, connector.package_folder) == original
        assert connector.tracker.in_progress is False

    def test_retrieve_failure_restores_pointers(self, connector, runner, sink, local_admin) -> None:
        runner.failures[("project", "retrieve", "start")] = "Retrieve failed"
        original = (connector.project_folder, connector.package_folder)
        orchestrator = _orchestrator(connector)
        context = connector.tracker.start_operation("retrieve_local_special_types")

        with pytest.raises(ProcessError):
            orchestrator.run(context, MergeMode.LOCAL, types=["Profile"], selection=_selection("Admin"))

        assert (connector.project_folder, connector.package_folder) == original
        assert connector.tracker.in_progress is False
        assert orchestrator.phases_run[-2:] == [RetrievalPhase.RETRIEVE, RetrievalPhase.RESTORE]
        scratch_root = Path(sink.of_type(EventType.CREATE_PROJECT)[0].payload)
        assert not scratch_root.exists()
        assert local_admin.read_text(encoding="utf-8") == ADMIN_OLD

    def test_missing_files_time_out(self, connector, runner, local_admin) -> None:
        runner.results[("project", "retrieve", "start")] = {
            "status": "Succeeded",
            "files": [{"fullName": "Admin", "type": "Profile", "filePath": ADMIN_PATH}],
        }
        orchestrator = _orchestrator(connector, timeout=0.05, sleep=lambda seconds: None)
        context = connector.tracker.start_operation("retrieve_local_special_types")

        with pytest.raises(RetrieveTimeoutError):
            orchestrator.run(context, MergeMode.LOCAL, types=["Profile"], selection=_selection("Admin"))

        assert connector.tracker.in_progress is False
        assert RetrievalPhase.MERGE_BACK not in orchestrator.phases_run

    def test_zero_reported_files_skip_the_wait(self, connector, runner, sink, local_admin) -> None:
        runner.results[("project", "retrieve", "start")] = {"status": "Succeeded", "files": []}
        orchestrator = _orchestrator(connector, timeout=0.0)
        context = connector.tracker.start_operation("retrieve_local_special_types")

        result = orchestrator.run(context, MergeMode.LOCAL, types=["Profile"], selection=_selection("Admin"))

        assert result.files == []
        assert sink.of_type(EventType.COPY_DATA)[0].payload == 1
        assert EventType.COPY_FILE not in sink.types()
        assert local_admin.read_text(encoding="utf-8") == ADMIN_OLD

    def test_abort_while_waiting_skips_copy(self, connector, runner, sink, local_admin) -> None:
        runner.results[("project", "retrieve", "start")] = {
            "status": "Succeeded",
            "files": [{"fullName": "Admin", "type": "Profile", "filePath": ADMIN_PATH}],
        }
        orchestrator = _orchestrator(connector, sleep=lambda seconds: connector.abort_connection())
        context = connector.tracker.start_operation("retrieve_local_special_types")

        result = orchestrator.run(context, MergeMode.LOCAL, types=["Profile"], selection=_selection("Admin"))

        assert result.status == "Succeeded"
        assert len(sink.of_type(EventType.ABORT)) == 1
        assert EventType.COPY_DATA not in sink.types()
        assert connector.tracker.in_progress is False
        assert local_admin.read_text(encoding="utf-8") == ADMIN_OLD

    def test_abort_during_org_load_stops_before_scaffold(self, connector, org_client, runner, sink) -> None:
        org_client.add_components("Profile", "Admin")
        org_client.add_components("Flow", "Onboarding")

        def abort_on_first_type(event) -> None:
            if event.type == EventType.AFTER_DOWNLOAD_TYPE:
                connector.abort_connection()

        connector.add_sink(CallbackSink().on(EventType.AFTER_DOWNLOAD_TYPE, abort_on_first_type))

        result = connector.retrieve_org_special_types(types=["Profile"])

        assert result.status == "Aborted"
        assert len(sink.of_type(EventType.AFTER_DOWNLOAD_TYPE)) == 1
        assert runner.calls == []
        assert connector.tracker.in_progress is False
