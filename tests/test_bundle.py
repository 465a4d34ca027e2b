import os
import shutil
import tempfile
import zipfile

from storelift.services.bundle import REPORT_FILENAME, ManualBundlePackager

PREFIX = "shop_example_com_20240101_120000"


def _store_folder(tmp_path):
    store = tmp_path / "output" / "shop_example_com"
    (store / "design" / "assets").mkdir(parents=True)
    (store / "design" / "assets" / "image-001-abc.png").write_bytes(b"png")
    (store / REPORT_FILENAME).write_text("# Manual Migration Report\n", encoding="utf-8")
    (store / f"{PREFIX}_products.csv").write_text("id,name\n1,Tee\n", encoding="utf-8")
    (store / f"{PREFIX}_store_configuration.json").write_text("{}", encoding="utf-8")
    (store / "other_run_products.csv").write_text("id\n", encoding="utf-8")
    (store / "images").mkdir()
    (store / "images" / "tee.jpg").write_bytes(b"jpg")
    return store


def test_deliverables_are_prefix_files_report_and_design(tmp_path):
    store = _store_folder(tmp_path)
    names = sorted(p.name for p in ManualBundlePackager(store, PREFIX).collect_deliverables())

    assert names == sorted([
        REPORT_FILENAME,
        "design",
        f"{PREFIX}_products.csv",
        f"{PREFIX}_store_configuration.json",
    ])


def test_archive_is_written_next_to_store_folder(tmp_path):
    store = _store_folder(tmp_path)
    archive = ManualBundlePackager(store, PREFIX).package()

    assert archive == store.parent / f"{PREFIX}_manual_bundle.zip"
    with zipfile.ZipFile(archive) as zf:
        names = set(zf.namelist())
    assert REPORT_FILENAME in names
    assert f"{PREFIX}_products.csv" in names
    assert "design/assets/image-001-abc.png" in names
    assert not any(n.startswith("images/") for n in names)


def test_repackaging_keeps_contents_and_removes_staging(tmp_path, monkeypatch):
    store = _store_folder(tmp_path)
    packager = ManualBundlePackager(store, PREFIX)
    staging_dirs = []
    real_mkdtemp = tempfile.mkdtemp

    def tracking_mkdtemp(*args, **kwargs):
        path = real_mkdtemp(*args, **kwargs)
        staging_dirs.append(path)
        return path

    monkeypatch.setattr(tempfile, "mkdtemp", tracking_mkdtemp)

    archive = packager.package()
    with zipfile.ZipFile(archive) as zf:
        first_names = sorted(zf.namelist())
    assert packager.package() == archive
    with zipfile.ZipFile(archive) as zf:
        second_names = sorted(zf.namelist())

    assert first_names == second_names
    assert len(staging_dirs) == 2
    assert not any(os.path.exists(p) for p in staging_dirs)
    assert not packager.annotate_report(archive)

    lines = (store / REPORT_FILENAME).read_text(encoding="utf-8").splitlines()
    assert lines.count(f"Archive: {archive}") == 1


def test_staging_folder_is_removed_on_failure(tmp_path, monkeypatch):
    store = _store_folder(tmp_path)
    staging_dirs = []
    real_mkdtemp = tempfile.mkdtemp

    def tracking_mkdtemp(*args, **kwargs):
        path = real_mkdtemp(*args, **kwargs)
        staging_dirs.append(path)
        return path

    def failing_archive(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(tempfile, "mkdtemp", tracking_mkdtemp)
    monkeypatch.setattr(shutil, "make_archive", failing_archive)

    assert ManualBundlePackager(store, PREFIX).package() is None
    assert staging_dirs
    assert not any(os.path.exists(p) for p in staging_dirs)


def test_nothing_to_bundle(tmp_path):
    empty = tmp_path / "output" / "empty"
    empty.mkdir(parents=True)
    assert ManualBundlePackager(empty, PREFIX).package() is None
