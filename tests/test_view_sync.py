from __future__ import annotations

import pytest
from PyQt6.QtGui import QColor

from layer_core.memory_target import MemoryTarget
from layer_core.model import ExternalId
from layer_core.target import ApplyError, HostEntity, OverrideRecord
from layer_core.view_sync import ViewSettingsCopier

SITE = HostEntity(1, "Site Plan", (HostEntity(11, "0"), HostEntity(12, "Grid")))
FLOOR = HostEntity(2, "Floor Plan", (HostEntity(21, "Doors"),))


def _document():
    target = MemoryTarget(patterns={7: "Dashed"})
    source = target.add_view("Level 1", entities=[SITE, FLOOR])
    source.hidden.add(ExternalId(12))
    source.overrides[ExternalId(1)] = OverrideRecord(line_color=QColor(255, 0, 0), line_weight=3, halftone=True)
    source.overrides[ExternalId(11)] = OverrideRecord(line_pattern_id=7)
    return target, source


def test_copies_graphics_to_views_that_contain_the_dwg():
    target, source = _document()
    level2 = target.add_view("Level 2", entities=[SITE])

    report = ViewSettingsCopier(target).apply_to_views(source, [level2])

    assert ExternalId(12) in level2.hidden
    site_record = level2.overrides[ExternalId(1)]
    assert site_record.line_weight == 3
    assert site_record.halftone is True
    assert level2.overrides[ExternalId(11)].line_pattern_id == 7
    assert ExternalId(2) not in level2.overrides
    assert report.entries[0].applied == ["Site Plan"]
    assert report.entries[0].not_found == ["Floor Plan"]
    assert "Not found in view: Floor Plan" in report.format()
    assert target.committed == ["Apply DWG Settings to Views"]


def test_target_template_receives_the_writes():
    target, source = _document()
    template = target.add_view("Plan Template", entities=[SITE, FLOOR])
    level2 = target.add_view("Level 2", entities=[SITE, FLOOR], template=template)

    report = ViewSettingsCopier(target).apply_to_views(source, [level2])

    assert level2.overrides == {}
    assert ExternalId(12) in template.hidden
    assert report.applied_count == 2


def test_locked_layer_is_skipped():
    target, source = _document()
    level2 = target.add_view("Level 2", entities=[SITE])
    target.locked.add(ExternalId(12))

    ViewSettingsCopier(target).apply_to_views(source, [level2])

    assert ExternalId(12) not in level2.hidden
    assert ExternalId(1) in level2.overrides


def test_failure_rolls_back_every_view():
    target, source = _document()
    level2 = target.add_view("Level 2", entities=[SITE])
    level3 = target.add_view("Level 3", entities=[FLOOR])
    target.failing.add(ExternalId(21))

    with pytest.raises(ApplyError):
        ViewSettingsCopier(target).apply_to_views(source, [level2, level3])

    assert level2.overrides == {}
    assert level2.hidden == set()
    assert target.rolled_back == ["Apply DWG Settings to Views"]
