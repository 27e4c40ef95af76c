"""
tests/test_pipelines/test_derivation_sweep.py — Periodic re-evaluation of
age-dependent classifications, checkpointing and error isolation.
"""

from __future__ import annotations

import threading
import time
from datetime import date

import pytest

from rbi_shared.derivation.engine import DerivationEngine
from rbi_shared.derivation.rules import RESIDENT_RULES, Rule
from rbi_shared.stores.registry import RegistryStore
from rbi_pipeline.pipelines.derivation_sweep import JOB_NAME, run, sweep
from rbi_pipeline.utils.checkpoint import load_checkpoint, save_checkpoint

BARANGAY = "0128010001"


def _resident(**overrides):
    payload = {
        "first_name": "Rosa",
        "last_name": "Agcaoili",
        "birth_date": date(1966, 10, 19),
        "sex": "female",
        "barangay_code": BARANGAY,
    }
    payload.update(overrides)
    return payload


class TestSweep:
    def test_sixtieth_birthday_flips_senior_flag(self, registry: RegistryStore):
        resident = registry.create_resident(_resident())
        assert resident.is_senior_citizen is False

        report = sweep(registry, date(2026, 10, 19))

        assert report.scanned == 1
        assert report.changed == 1
        assert report.rule_changes == {"is_senior_citizen": 1}
        stored = registry.get_resident(resident.id)
        assert stored.is_senior_citizen is True
        assert stored.derived_as_of == date(2026, 10, 19)

    def test_nothing_changes_before_the_birthday(self, registry: RegistryStore):
        registry.create_resident(_resident())
        report = sweep(registry, date(2026, 10, 18))
        assert report.changed == 0
        assert report.rule_changes == {}

    def test_second_sweep_is_a_no_op(self, registry: RegistryStore):
        registry.create_resident(_resident())
        sweep(registry, date(2026, 10, 19))
        report = sweep(registry, date(2026, 10, 19))
        assert report.changed == 0

    def test_aging_out_of_out_of_school_child(self, registry: RegistryStore):
        resident = registry.create_resident(
            _resident(first_name="Paolo", birth_date=date(2010, 10, 20), education_status="not_studying")
        )
        assert resident.is_out_of_school_child is True

        report = sweep(registry, date(2026, 10, 20))

        stored = registry.get_resident(resident.id)
        assert stored.is_out_of_school_child is False
        assert stored.is_out_of_school_youth is True
        assert report.rule_changes == {"is_out_of_school_child": 1}

    def test_batches_and_checkpoint_cleared(self, registry: RegistryStore):
        for i in range(5):
            registry.create_resident(_resident(first_name=f"R{i}"))

        report = sweep(registry, date(2026, 10, 19), batch_size=2)

        assert report.batches == 3
        assert report.changed == 5
        assert load_checkpoint(JOB_NAME) is None


class TestInterleavedWrites:
    def test_update_during_batch_is_not_overwritten(self, registry: RegistryStore, monkeypatch):
        resident = registry.create_resident(_resident())
        original_batch = registry.resident_batch
        writer_started = threading.Event()

        def correct_birth_date():
            writer_started.set()
            registry.update_resident(
                resident.id, {"birth_date": date(1996, 10, 19)}, as_of=date(2026, 10, 19)
            )

        writer = threading.Thread(target=correct_birth_date)

        def batch_then_write(after_id, limit):
            rows = original_batch(after_id, limit)
            if after_id is None:
                writer.start()
                writer_started.wait(timeout=5)
                time.sleep(0.05)
            return rows

        monkeypatch.setattr(registry, "resident_batch", batch_then_write)
        sweep(registry, date(2026, 10, 19), resume=False)
        writer.join(timeout=5)

        stored = registry.get_resident(resident.id)
        assert stored.birth_date == date(1996, 10, 19)
        assert stored.is_senior_citizen is False


class TestResume:
    def test_resumes_after_checkpointed_id(self, registry: RegistryStore):
        ids = sorted(registry.create_resident(_resident(first_name=f"R{i}")).id for i in range(3))
        save_checkpoint(JOB_NAME, {"as_of": "2026-10-19", "last_id": ids[0]})

        report = sweep(registry, date(2026, 10, 19))

        assert report.resumed_from == ids[0]
        assert report.scanned == 2
        assert registry.get_resident(ids[0]).is_senior_citizen is False
        assert registry.get_resident(ids[2]).is_senior_citizen is True

    def test_checkpoint_for_another_instant_is_ignored(self, registry: RegistryStore):
        ids = sorted(registry.create_resident(_resident(first_name=f"R{i}")).id for i in range(3))
        save_checkpoint(JOB_NAME, {"as_of": "2026-10-01", "last_id": ids[0]})

        report = sweep(registry, date(2026, 10, 19))

        assert report.resumed_from is None
        assert report.scanned == 3

    def test_resume_disabled(self, registry: RegistryStore):
        ids = sorted(registry.create_resident(_resident(first_name=f"R{i}")).id for i in range(2))
        save_checkpoint(JOB_NAME, {"as_of": "2026-10-19", "last_id": ids[0]})

        report = sweep(registry, date(2026, 10, 19), resume=False)

        assert report.scanned == 2


class TestErrorIsolation:
    def test_failing_resident_is_reported_and_others_processed(self, registry: RegistryStore, db):
        bad = registry.create_resident(_resident(first_name="Broken"))
        good = registry.create_resident(_resident(first_name="Fine"))

        def _explode(row, ctx):
            if row["first_name"] == "Broken":
                raise ValueError("corrupt row")
            return ctx.age(row) >= ctx.senior_citizen_age

        rules = [
            Rule("is_senior_citizen", frozenset({"birth_date"}), _explode, time_dependent=True),
            *(r for r in RESIDENT_RULES if r.name != "is_senior_citizen"),
        ]
        flaky = RegistryStore(db, registry.geography, DerivationEngine(rules))

        report = sweep(flaky, date(2026, 10, 19))

        assert report.errors == [{"id": bad.id, "error": "corrupt row"}]
        assert report.scanned == 2
        assert registry.get_resident(good.id).is_senior_citizen is True
        assert registry.get_resident(bad.id).is_senior_citizen is False


class TestRunEntryPoint:
    @pytest.mark.asyncio
    async def test_run_accepts_iso_string(self, registry: RegistryStore):
        registry.create_resident(_resident())
        report = await run("2026-10-19", store=registry)
        assert report.as_of == date(2026, 10, 19)
        assert report.to_dict()["changed"] == 1
