import asyncio
from datetime import datetime, timezone

from dumpadmin.core.identifiers import DumpIdentifier
from dumpadmin.services.dumps import DumpRepository
from tests.dump_fixtures import crash_result, write_dump


def test_reads_bundle_dump_and_result(tmp_path):
    write_dump(tmp_path, "b1", "d1", result=crash_result(["f1"]), sha256="abc")
    repo = DumpRepository(tmp_path)

    bundle = asyncio.run(repo.get_bundle("b1"))
    dump = asyncio.run(repo.get_dump(DumpIdentifier("b1", "d1")))
    result = asyncio.run(repo.get_result(DumpIdentifier("b1", "d1")))

    assert bundle.bundle_id == "b1"
    assert bundle.original_filename == "b1.zip"
    assert dump.id == DumpIdentifier("b1", "d1")
    assert dump.sha256 == "abc"
    assert result.crashing_thread().frames == ["f1"]


def test_missing_entries_return_none(tmp_path):
    write_dump(tmp_path, "b1", "d1")
    repo = DumpRepository(tmp_path)

    assert asyncio.run(repo.get_bundle("nope")) is None
    assert asyncio.run(repo.get_dump(DumpIdentifier("b1", "nope"))) is None
    assert asyncio.run(repo.get_result(DumpIdentifier("b1", "d1"))) is None


def test_list_dumps_sorted_by_creation_and_skips_invalid(tmp_path):
    write_dump(tmp_path, "b1", "late", created=datetime(2026, 3, 1, tzinfo=timezone.utc))
    write_dump(tmp_path, "b2", "early", created=datetime(2026, 1, 1, tzinfo=timezone.utc))
    broken = tmp_path / "b2" / "broken"
    broken.mkdir()
    (broken / "dumpinfo.json").write_text("{not json", encoding="utf-8")
    repo = DumpRepository(tmp_path)

    dumps = asyncio.run(repo.list_dumps())
    bundles = asyncio.run(repo.list_bundles())

    assert [d.dump_id for d in dumps] == ["early", "late"]
    assert [b.bundle_id for b in bundles] == ["b2", "b1"]


def test_naive_timestamps_are_treated_as_utc(tmp_path):
    write_dump(tmp_path, "b1", "d1")
    info = tmp_path / "b1" / "d1" / "dumpinfo.json"
    info.write_text(
        '{"bundle_id": "b1", "dump_id": "d1", "created": "2026-01-02T03:04:05"}',
        encoding="utf-8",
    )

    dump = asyncio.run(DumpRepository(tmp_path).get_dump(DumpIdentifier("b1", "d1")))

    assert dump.created == datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def test_missing_storage_dir_lists_nothing(tmp_path):
    repo = DumpRepository(tmp_path / "does-not-exist")
    assert asyncio.run(repo.list_dumps()) == []
    assert asyncio.run(repo.list_bundles()) == []
