from __future__ import annotations

import json
from pathlib import Path

import pytest
from PyQt6.QtGui import QColor

from layer_controller.edit_state import NO_OVERRIDE
from layer_controller.selection import ClickKind
from layer_controller import session as session_module
from layer_controller.session import LayerSession, start_session
from layer_core.memory_target import MemoryTarget
from layer_core.model import ExternalId, OverrideSet
from layer_core.settings import StoreSettings
from layer_core.target import HostEntity, OverrideRecord, ProjectInfo

ENTITIES = [
    HostEntity(1, "Floor Plan", (HostEntity(11, "0"), HostEntity(12, "Doors"))),
    HostEntity(2, "Site Plan", (HostEntity(21, "0"), HostEntity(22, "Grid"))),
]


class DummyNotify:
    def __init__(self) -> None:
        self.messages = []

    def __call__(self, title: str, message: str) -> None:
        self.messages.append((title, message))

    @property
    def titles(self):
        return [title for title, _ in self.messages]


def _build(tmp_path: Path, project=None, template=False):
    target = MemoryTarget(patterns={7: "Dashed", 8: "Center"}, project=project or ProjectInfo(title="Tower"))
    governing = target.add_view("Plan Template", entities=ENTITIES) if template else None
    view = target.add_view("Level 1", entities=ENTITIES, template=governing)
    notify = DummyNotify()
    session = LayerSession(target, view, settings=StoreSettings(fallback_root=tmp_path / "appdata"), notify=notify)
    session.refresh()
    return session, target, view, notify


def _container(session, name):
    return next(container for container in session.canonical_containers() if container.name == name)


def test_parent_index_is_built_with_hierarchy(tmp_path):
    target = MemoryTarget()
    session = LayerSession(target, target.add_view("Level 1", entities=ENTITIES), notify=DummyNotify())
    with pytest.raises(RuntimeError):
        session.parent_of(object())

    session.refresh()
    floor = _container(session, "Floor Plan")
    assert session.parent_of(floor.subitems[0]) is floor


def test_visibility_applies_to_selection_when_clicked_entity_is_selected(tmp_path):
    session, target, view, _ = _build(tmp_path)
    floor = _container(session, "Floor Plan")
    site = _container(session, "Site Plan")
    session.click(floor.subitems[1])
    session.click(site.subitems[1], ClickKind.TOGGLE)

    session.set_visibility(floor.subitems[1], False)

    assert view.hidden == {ExternalId(12), ExternalId(22)}
    assert floor.subitems[1].visible is False and site.subitems[1].visible is False
    assert floor.subitems[0].visible is True


def test_visibility_applies_only_to_unselected_clicked_entity(tmp_path):
    session, target, view, _ = _build(tmp_path)
    floor = _container(session, "Floor Plan")
    session.click(floor.subitems[1])

    session.set_visibility(_container(session, "Site Plan"), False)

    assert view.hidden == {ExternalId(2)}


def test_visibility_failure_restores_model_and_reports_once(tmp_path):
    session, target, view, notify = _build(tmp_path)
    site = _container(session, "Site Plan")
    target.failing.add(site.external_id)

    assert session.set_visibility(site, False) is None

    assert site.visible is True
    assert view.hidden == set()
    assert notify.titles == ["Error"]


def test_halftone_follows_container_selection(tmp_path):
    session, target, view, _ = _build(tmp_path)
    floor = _container(session, "Floor Plan")
    site = _container(session, "Site Plan")
    session.click(floor)
    session.click(site, ClickKind.TOGGLE)

    session.set_halftone(site, True)
    assert view.overrides[ExternalId(1)].halftone and view.overrides[ExternalId(2)].halftone

    session.click(floor)
    session.set_halftone(site, False)
    assert floor.halftone is True
    assert site.halftone is False
    assert view.overrides[ExternalId(2)].halftone is False


def test_skipped_entities_keep_host_visibility_and_halftone(tmp_path):
    session, target, view, notify = _build(tmp_path)
    floor = _container(session, "Floor Plan")
    site = _container(session, "Site Plan")
    target.locked.add(floor.external_id)
    session.click(floor)
    session.click(site, ClickKind.TOGGLE)

    result = session.set_visibility(floor, False)
    assert result.skipped == [floor]
    assert floor.visible is True and ExternalId(1) not in view.hidden
    assert site.visible is False and ExternalId(2) in view.hidden

    result = session.set_halftone(floor, True)
    assert result.skipped == [floor]
    assert floor.halftone is False
    assert site.halftone is True and view.overrides[ExternalId(2)].halftone is True
    assert notify.messages == []


def test_save_after_skipped_write_keeps_host_state(tmp_path):
    session, target, view, _ = _build(tmp_path)
    doors = _container(session, "Floor Plan").subitems[1]
    target.locked.add(doors.external_id)

    session.set_visibility(doors, False)
    folder = session.save()

    saved = json.loads((folder / "Floor Plan.json").read_text(encoding="utf-8"))
    assert saved["subitems"]["Doors"]["visible"] is True


def test_halftone_rejects_subitems(tmp_path):
    session, *_ = _build(tmp_path)
    with pytest.raises(TypeError):
        session.set_halftone(_container(session, "Site Plan").subitems[0], True)


def test_override_edit_summarises_batch_and_clears_only_weight(tmp_path):
    session, target, view, _ = _build(tmp_path)
    floor = _container(session, "Floor Plan")
    doors = floor.subitems[1]
    view.overrides[ExternalId(12)] = OverrideRecord(line_pattern_id=7, line_weight=5)

    state = session.begin_override_edit(doors)
    assert state.batch == [doors]
    assert state.summary.line_weight.value == 5
    state.choose_weight(NO_OVERRIDE)
    result = session.commit_override_edit(state)

    record = view.overrides[ExternalId(12)]
    assert result.applied == [doors]
    assert record.line_weight <= 0
    assert record.line_pattern_id == 7
    assert doors.overrides == OverrideSet(line_pattern="Dashed")


def test_override_edit_over_selection_and_template(tmp_path):
    session, target, view, _ = _build(tmp_path, template=True)
    template = view.template
    floor = _container(session, "Floor Plan")
    site = _container(session, "Site Plan")
    template.overrides[ExternalId(1)] = OverrideRecord(line_color=QColor(255, 0, 0))
    template.overrides[ExternalId(2)] = OverrideRecord(line_color=QColor(0, 255, 0))
    session.click(floor)
    session.click(site, ClickKind.TOGGLE)

    state = session.begin_override_edit(site)
    assert state.color_varies
    state.choose_pattern("center")
    session.commit_override_edit(state)

    assert view.overrides == {}
    assert template.overrides[ExternalId(1)].line_pattern_id == 8
    assert template.overrides[ExternalId(2)].line_color.green() == 255
    assert floor.overrides == OverrideSet(color="#FF0000", line_pattern="Center")


def test_clear_all_resets_overrides_and_halftone(tmp_path):
    session, target, view, _ = _build(tmp_path)
    site = _container(session, "Site Plan")
    session.set_halftone(site, True)
    transaction = target.begin_transaction("Seed")
    target.set_overrides(view, ExternalId(2), OverrideRecord(line_color=QColor(9, 9, 9), line_weight=3, halftone=True))
    transaction.commit()

    state = session.begin_override_edit(site)
    state.request_clear()
    session.commit_override_edit(state)

    record = view.overrides[ExternalId(2)]
    assert not record.line_color.isValid() and record.line_weight <= 0 and record.halftone is False
    assert site.overrides == OverrideSet()
    assert site.halftone is False


def test_untouched_edit_is_a_noop(tmp_path):
    session, target, *_ = _build(tmp_path)
    state = session.begin_override_edit(_container(session, "Site Plan"))

    assert session.commit_override_edit(state) is None
    assert target.committed == []


def test_save_then_load_restores_tree_and_host(tmp_path):
    project_file = tmp_path / "Tower.rvt"
    project_file.write_text("", encoding="utf-8")
    session, target, view, notify = _build(tmp_path, project=ProjectInfo(title="Tower", path=project_file))
    site = _container(session, "Site Plan")
    session.set_visibility(site.subitems[1], False)
    session.set_halftone(site, True)

    folder = session.save()
    assert folder == tmp_path / "LayerToggles"
    saved = json.loads((folder / "Site Plan.json").read_text(encoding="utf-8"))
    assert saved["halftone"] is True
    assert saved["subitems"]["Grid"]["visible"] is False

    session.set_visibility(site.subitems[1], True)
    session.set_halftone(site, False)
    assert session.load() is True

    site = _container(session, "Site Plan")
    assert site.halftone is True and site.subitems[1].visible is False
    assert ExternalId(22) in view.hidden
    assert view.overrides[ExternalId(2)].halftone is True
    assert notify.titles[-1] == "Success"


def test_load_without_template_reports(tmp_path):
    session, target, view, notify = _build(tmp_path)

    assert session.load() is False
    assert notify.messages[-1] == ("Info", "No matching template found.")


def test_load_from_file_requires_matching_folder(tmp_path):
    session, target, view, notify = _build(tmp_path)
    other = tmp_path / "elsewhere"
    other.mkdir()
    (other / "Unrelated.json").write_text("{}", encoding="utf-8")
    assert session.load_from_file(other / "Unrelated.json") is False

    (other / "Floor Plan.json").write_text(json.dumps({"visible": False, "subitems": {"Doors": False}}), encoding="utf-8")
    assert session.load_from_file(other / "Unrelated.json") is True
    assert ExternalId(1) in view.hidden and ExternalId(12) in view.hidden


def test_failed_load_apply_restores_previous_tree(tmp_path):
    session, target, view, notify = _build(tmp_path)
    folder = tmp_path / "saved"
    folder.mkdir()
    (folder / "Site Plan.json").write_text(json.dumps({"visible": False}), encoding="utf-8")
    target.failing.add(ExternalId(1))

    assert session.load_from_folder(folder) is False
    assert _container(session, "Site Plan").visible is True
    assert view.hidden == set()
    assert notify.titles == ["Error"]


def test_family_documents_disable_file_operations(tmp_path):
    session, target, view, notify = _build(tmp_path, project=ProjectInfo(title="Door", is_family=True))

    assert session.file_operations_enabled is False
    assert session.save() is None
    assert session.load() is False
    assert notify.titles == ["Info", "Info"]


def test_apply_to_views_reports(tmp_path):
    session, target, view, notify = _build(tmp_path)
    session.set_visibility(_container(session, "Floor Plan"), False)
    level2 = target.add_view("Level 2", entities=ENTITIES[:1])

    report = session.apply_to_views([level2])

    assert ExternalId(1) in level2.hidden
    assert report.entries[0].not_found == ["Site Plan"]
    assert notify.messages[-1][0] == "Apply to Views"
    assert session.apply_to_views([]) is None


def test_expand_all_and_search_rerender(tmp_path):
    session, *_ = _build(tmp_path)
    renders = []
    session._on_change = lambda: renders.append(True)
    for container in session.canonical_containers():
        container.expanded = False

    session.expand_all()
    session.set_search("doors")

    assert all(container.expanded for container in session.canonical_containers())
    assert [container.name for container in session.visible_containers()] == ["Floor Plan"]
    assert len(renders) == 2


def test_start_session_configures_logging_and_loads(tmp_path, monkeypatch):
    monkeypatch.setenv("CAD_LAYER_MANAGER_DEV_MODE", "0")
    calls = []
    monkeypatch.setattr(session_module, "configure_logger", lambda *args, **kwargs: calls.append(True))
    target = MemoryTarget()
    view = target.add_view("Level 1", entities=ENTITIES)

    session = start_session(target, view, settings=StoreSettings(fallback_root=tmp_path), notify=DummyNotify())

    assert [container.name for container in session.canonical_containers()] == ["Floor Plan", "Site Plan"]
    assert calls == [True]
