import struct
import threading
from dataclasses import replace
from unittest.mock import patch

import pytest

from dio import engine
from dio.batch import iter_files, process_batch


def test_identical_files_share_one_artifact(settings, make_image):
    a = make_image(settings.input_dir / "a.bmp")
    make_image(settings.input_dir / "sub" / "b.bmp")
    src_size = a.stat().st_size

    results, summary = process_batch(settings)

    artifacts = list(settings.output_dir.iterdir())
    assert len(artifacts) == 1
    artifact_size = artifacts[0].stat().st_size

    assert summary.total_files == 2
    assert summary.converted == 1
    assert summary.existing == 1
    assert summary.total_src_bytes == 2 * src_size
    assert summary.total_out_bytes == 2 * artifact_size
    assert {r.digest for r in results} == {artifacts[0].stem}


def test_many_identical_files_are_encoded_once(settings, make_image):
    for i in range(20):
        make_image(settings.input_dir / f"copy{i}.bmp")

    with patch("dio.engine._encode_webp", wraps=engine._encode_webp) as enc:
        _, summary = process_batch(replace(settings, workers=8))

    assert enc.call_count == 1
    assert summary.converted == 1
    assert summary.existing == 19
    assert len(list(settings.output_dir.iterdir())) == 1


def test_rerun_is_idempotent(settings, make_image):
    make_image(settings.input_dir / "red.bmp", color="red")
    make_image(settings.input_dir / "blue.bmp", color="blue")
    make_image(settings.input_dir / "nested" / "red_again.bmp", color="red")
    (settings.input_dir / "notes.txt").write_text("not an image")

    _, first = process_batch(settings)
    artifacts_before = sorted(p.name for p in settings.output_dir.iterdir())

    with patch("dio.engine._encode_webp") as enc:
        results, second = process_batch(settings)

    enc.assert_not_called()
    assert sorted(p.name for p in settings.output_dir.iterdir()) == artifacts_before
    assert second.total_src_bytes == first.total_src_bytes
    assert second.total_out_bytes == first.total_out_bytes
    assert second.existing == 3
    assert second.failed == 1
    assert {r.status for r in results} == {"existing", "failed"}


def test_declined_files_count_source_size(settings, make_image):
    src = make_image(settings.input_dir / "a.bmp")
    make_image(settings.input_dir / "b.bmp")
    src_size = src.stat().st_size

    with patch("dio.engine._encode_webp", return_value=b"x" * (src_size * 2)):
        _, summary = process_batch(settings)

    artifacts = list(settings.output_dir.iterdir())
    assert len(artifacts) == 1
    assert artifacts[0].stat().st_size == 0
    assert summary.declined == 1
    assert summary.existing == 1
    assert summary.total_out_bytes == summary.total_src_bytes == 2 * src_size
    assert summary.saved_bytes == 0
    assert summary.saved_percent == 0.0


def test_bad_files_do_not_abort_the_run(settings, make_image):
    make_image(settings.input_dir / "good.bmp")
    bad = settings.input_dir / "broken.jpg"
    bad.write_bytes(b"\xff\xd8\xff\xe0 definitely not a jpeg")

    results, summary = process_batch(settings)

    assert summary.total_files == 2
    assert summary.converted == 1
    assert summary.failed == 1
    failed = [r for r in results if r.status == "failed"]
    assert failed[0].src_path == bad
    assert 0 <= summary.saved_percent <= 100


def test_output_dir_inside_input_is_not_rescanned(settings, make_image):
    make_image(settings.input_dir / "a.bmp")
    nested = replace(settings, output_dir=settings.input_dir / "out")

    _, first = process_batch(nested)
    _, second = process_batch(nested)

    assert first.total_files == second.total_files == 1
    assert second.existing == 1


def test_iter_files_is_recursive_and_sorted(tmp_path):
    (tmp_path / "b").mkdir()
    (tmp_path / "b" / "z.txt").write_text("z")
    (tmp_path / "a.txt").write_text("a")
    (tmp_path / "empty").mkdir()

    assert list(iter_files(tmp_path)) == [tmp_path / "a.txt", tmp_path / "b" / "z.txt"]


def test_progress_callback_sees_every_file(settings, make_image):
    for i in range(5):
        make_image(settings.input_dir / f"{i}.bmp", color=(i, 0, 0))

    calls = []
    process_batch(settings, progress_callback=lambda done, total, r: calls.append((done, total, r.status)))

    assert [c[0] for c in calls] == [1, 2, 3, 4, 5]
    assert {c[1] for c in calls} == {5}
    assert {c[2] for c in calls} == {"converted"}


def test_cancel_event_stops_pending_work(settings, make_image):
    for i in range(20):
        make_image(settings.input_dir / f"{i}.bmp", color=(i, i, 0))

    cancel = threading.Event()
    cancel.set()
    results, summary = process_batch(replace(settings, workers=1), cancel_event=cancel)

    assert summary.total_files < 20
    assert summary.total_files == len(results)
    assert summary.total_src_bytes == sum(r.src_bytes for r in results)


def test_empty_input_dir(settings):
    results, summary = process_batch(settings)

    assert results == []
    assert summary.total_files == 0
    assert summary.saved_percent == 0.0
    assert settings.output_dir.is_dir()


def test_invalid_settings_raise(settings):
    with pytest.raises(ValueError):
        process_batch(replace(settings, quality=-1))
    with pytest.raises(ValueError):
        process_batch(replace(settings, workers=0))


def test_uncreatable_output_dir_raises(settings, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")

    with pytest.raises(OSError):
        process_batch(replace(settings, output_dir=blocker))


def _dds_with_unknown_pixel_format() -> bytes:
    header = struct.pack("<7I", 124, 0x1007, 4, 4, 0, 0, 0) + b"\0" * 44
    pixel_format = struct.pack("<8I", 32, 0, 0, 0, 0, 0, 0, 0)
    caps = struct.pack("<5I", 0x1000, 0, 0, 0, 0)
    return b"DDS " + header + pixel_format + caps + b"\x7f" * 353


def test_exotic_corrupt_image_does_not_abort_the_run(settings, make_image):
    make_image(settings.input_dir / "good.bmp")
    bad = settings.input_dir / "broken.dds"
    bad.write_bytes(_dds_with_unknown_pixel_format())

    results, summary = process_batch(settings)

    assert summary.total_files == 2
    assert summary.converted == 1
    assert summary.failed == 1
    failed = [r for r in results if r.status == "failed"]
    assert failed[0].src_path == bad
    assert failed[0].error.startswith("decode:")
    assert summary.total_src_bytes == sum(r.src_bytes for r in results)


def test_decoder_crash_on_one_file_keeps_the_rest(settings, make_image):
    make_image(settings.input_dir / "a.bmp", color="red")
    make_image(settings.input_dir / "b.bmp", color="blue")
    real_decode = engine._decode
    blue_bytes = (settings.input_dir / "b.bmp").read_bytes()

    def flaky_decode(data):
        if data == blue_bytes:
            raise ZeroDivisionError("bad header math")
        return real_decode(data)

    with patch("dio.engine._decode", side_effect=flaky_decode):
        _, summary = process_batch(settings)

    assert summary.converted == 1
    assert summary.failed == 1
