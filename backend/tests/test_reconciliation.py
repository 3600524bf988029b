"""Tests for reconciliation passes."""

import shutil
import threading

import pytest

from albumtracker.core.errors import (
    ConcurrentOperationError,
    ConfigurationError,
    NotFoundError,
    SecurityError,
)
from albumtracker.domain.models import OwnershipStatus
from albumtracker.services.reconciliation import ArtistPassGuard, ReconciliationEngine
from albumtracker.services.scanner import DirectoryScanner
from conftest import make_folders


def album_states(repository, artist_id):
    return [
        (a.id, a.ownership_status, a.matched_folder_path, a.confidence, a.manual_override)
        for a in repository.get_albums_for_artist(artist_id)
    ]


def by_title(repository, artist_id, title):
    return next(a for a in repository.get_albums_for_artist(artist_id) if a.title == title)


class TestReconcile:
    def test_owned_missing_and_summary(self, engine, repository, library, beatles):
        artist, _ = beatles
        make_folders(library, "Beatles, The/[1969] Abbey Road", "Beatles, The/Artwork")

        summary = engine.reconcile(artist.id)

        assert summary.artist_folder == str(library / "Beatles, The")
        assert summary.scanned_folders == 1
        assert summary.matched == 1
        abbey = by_title(repository, artist.id, "Abbey Road")
        assert abbey.ownership_status == OwnershipStatus.OWNED
        assert abbey.matched_folder_path == str(library / "Beatles, The" / "[1969] Abbey Road")
        assert abbey.confidence >= 0.99
        revolver = by_title(repository, artist.id, "Revolver")
        assert revolver.ownership_status == OwnershipStatus.MISSING
        assert revolver.matched_folder_path is None
        assert revolver.confidence == 0

    def test_ambiguous_counted(self, engine, repository, library):
        artist = repository.add_artist("Radiohead", "a74b1b7f-71a5-4011-9441-d0b5e4122711")
        repository.add_albums(artist.id, [{"external_id": "rg-ir", "title": "In Rainbows", "release_year": 2007}])
        make_folders(library, "Radiohead/[2007] Rainbows")

        summary = engine.reconcile(artist.id)

        album = by_title(repository, artist.id, "In Rainbows")
        assert album.ownership_status == OwnershipStatus.AMBIGUOUS
        assert 0 < album.confidence < 0.80
        assert album.matched_folder_path == str(library / "Radiohead" / "[2007] Rainbows")
        assert summary.matched == 0
        assert summary.ambiguous == 1

    def test_year_gate_scenario(self, engine, repository, library, beatles):
        artist, _ = beatles
        make_folders(library, "The Beatles/[2020] Abbey Road")

        engine.reconcile(artist.id)

        abbey = by_title(repository, artist.id, "Abbey Road")
        assert abbey.ownership_status == OwnershipStatus.MISSING
        assert abbey.confidence == 0
        assert abbey.matched_folder_path is None

    def test_no_artist_folder_marks_all_missing(self, engine, repository, library, beatles):
        artist, albums = beatles
        make_folders(library, "Radiohead/[1969] Abbey Road")
        repository.update_album_match(albums[0].id, OwnershipStatus.OWNED, "/somewhere", 0.9)

        summary = engine.reconcile(artist.id)

        assert summary.artist_folder is None
        assert summary.scanned_folders == 0
        assert all(a.ownership_status == OwnershipStatus.MISSING for a in repository.get_albums_for_artist(artist.id))

    def test_removed_folder_reverts_to_missing(self, engine, repository, library, beatles):
        artist, _ = beatles
        make_folders(library, "The Beatles/[1969] Abbey Road")
        engine.reconcile(artist.id)
        assert by_title(repository, artist.id, "Abbey Road").ownership_status == OwnershipStatus.OWNED

        shutil.rmtree(library / "The Beatles" / "[1969] Abbey Road")
        engine.reconcile(artist.id)

        abbey = by_title(repository, artist.id, "Abbey Road")
        assert abbey.ownership_status == OwnershipStatus.MISSING
        assert abbey.matched_folder_path is None

    def test_idempotent(self, engine, repository, library, beatles):
        artist, _ = beatles
        make_folders(
            library,
            "= B =/Beatles, The/[1969] Abbey Road",
            "= B =/Beatles, The/[1966] Revolver (Mono)",
            "= B =/Beatles, The/[1971] Let It Be Naked",
        )
        engine.reconcile(artist.id)
        first = album_states(repository, artist.id)
        engine.reconcile(artist.id)
        assert album_states(repository, artist.id) == first

    def test_supplied_snapshot_is_used(self, engine, repository, library, beatles):
        artist, _ = beatles
        make_folders(library, "The Beatles/[1969] Abbey Road")
        snapshot = DirectoryScanner(library).scan()
        shutil.rmtree(library / "The Beatles")

        summary = engine.reconcile(artist.id, snapshot=snapshot)

        assert summary.matched == 1

    def test_permission_denied_reported(self, engine, repository, library, beatles, monkeypatch):
        artist, _ = beatles
        make_folders(library, "Locked", "The Beatles/[1969] Abbey Road")
        locked = str(library / "Locked")
        original = DirectoryScanner._list_subdirectories

        def fake_list(self, directory):
            if directory == locked:
                raise PermissionError(13, "Permission denied", directory)
            return original(self, directory)

        monkeypatch.setattr(DirectoryScanner, "_list_subdirectories", fake_list)
        summary = engine.reconcile(artist.id)

        assert summary.permission_denied == 1
        assert summary.matched == 1


class TestManualOverrides:
    def test_overrides_never_touched(self, engine, repository, library, beatles):
        artist, albums = beatles
        make_folders(library, "The Beatles/[1969] Abbey Road", "The Beatles/[1966] Revolver")
        abbey_id, revolver_id = albums[0].id, albums[1].id
        repository.set_manual_match(abbey_id, OwnershipStatus.MISSING, None)
        linked = str(library / "The Beatles" / "[1966] Revolver")
        repository.set_manual_match(revolver_id, OwnershipStatus.OWNED, linked)
        before = {a.id: a for a in repository.get_albums_for_artist(artist.id) if a.manual_override}

        summary = engine.reconcile(artist.id)
        shutil.rmtree(library / "The Beatles")
        engine.reconcile(artist.id)

        for album_id, album in before.items():
            after = repository.get_album(album_id)
            assert after.ownership_status == album.ownership_status
            assert after.matched_folder_path == album.matched_folder_path
            assert after.confidence == album.confidence
        assert summary.skipped_overrides == 2
        assert summary.matched == 0

    def test_clearing_override_allows_matching_again(self, engine, repository, library, beatles):
        artist, albums = beatles
        make_folders(library, "The Beatles/[1969] Abbey Road")
        repository.set_manual_match(albums[0].id, OwnershipStatus.MISSING, None)
        engine.reconcile(artist.id)
        assert repository.get_album(albums[0].id).ownership_status == OwnershipStatus.MISSING

        repository.clear_manual_override(albums[0].id)
        engine.reconcile(artist.id)

        assert repository.get_album(albums[0].id).ownership_status == OwnershipStatus.OWNED


class TestArtistFolderLink:
    def test_link_takes_precedence(self, engine, repository, library, beatles):
        artist, _ = beatles
        make_folders(library, "The Beatles/[1969] Abbey Road", "Fab Four/[1966] Revolver")
        repository.set_artist_folder_link(artist.id, str(library / "Fab Four"))

        summary = engine.reconcile(artist.id)

        assert summary.artist_folder == str(library / "Fab Four")
        assert by_title(repository, artist.id, "Revolver").ownership_status == OwnershipStatus.OWNED
        assert by_title(repository, artist.id, "Abbey Road").ownership_status == OwnershipStatus.MISSING

    def test_link_outside_root_rejected(self, engine, repository, library, beatles, tmp_path):
        artist, _ = beatles
        repository.set_artist_folder_link(artist.id, str(tmp_path / "elsewhere"))
        with pytest.raises(SecurityError):
            engine.reconcile(artist.id)

    def test_missing_linked_folder_marks_missing(self, engine, repository, library, beatles):
        artist, _ = beatles
        repository.set_artist_folder_link(artist.id, str(library / "Gone"))
        summary = engine.reconcile(artist.id)
        assert summary.scanned_folders == 0
        assert all(a.ownership_status == OwnershipStatus.MISSING for a in repository.get_albums_for_artist(artist.id))


class TestFailures:
    def test_no_library_root(self, repository, beatles):
        artist, _ = beatles
        engine = ReconciliationEngine(repository, None)
        with pytest.raises(ConfigurationError):
            engine.reconcile(artist.id)

    def test_library_root_must_exist(self, repository, beatles, tmp_path):
        artist, _ = beatles
        engine = ReconciliationEngine(repository, tmp_path / "nope")
        with pytest.raises(ConfigurationError):
            engine.reconcile(artist.id)

    def test_configuration_checked_before_scanning(self, repository, beatles):
        artist, _ = beatles
        calls = []
        engine = ReconciliationEngine(repository, None, scanner_factory=lambda root: calls.append(root))
        with pytest.raises(ConfigurationError):
            engine.reconcile(artist.id)
        assert calls == []

    def test_unknown_artist(self, engine):
        with pytest.raises(NotFoundError):
            engine.reconcile(999)


class TestConcurrency:
    def test_guard_rejects_second_hold(self):
        guard = ArtistPassGuard()
        with guard.hold(1):
            assert guard.is_running(1)
            with pytest.raises(ConcurrentOperationError):
                with guard.hold(1):
                    pass
            with guard.hold(2):
                assert guard.is_running(2)
        assert not guard.is_running(1)

    def test_guard_released_after_error(self):
        guard = ArtistPassGuard()
        with pytest.raises(RuntimeError):
            with guard.hold(1):
                raise RuntimeError("boom")
        assert not guard.is_running(1)

    def test_second_pass_for_same_artist_rejected(self, repository, library, beatles):
        artist, _ = beatles
        make_folders(library, "The Beatles/[1969] Abbey Road")
        started = threading.Event()
        release = threading.Event()

        class SlowScanner(DirectoryScanner):
            def scan(self):
                started.set()
                release.wait(timeout=5)
                return super().scan()

        engine = ReconciliationEngine(repository, library, scanner_factory=SlowScanner)
        results = []
        worker = threading.Thread(target=lambda: results.append(engine.reconcile(artist.id)))
        worker.start()
        try:
            assert started.wait(timeout=5)
            with pytest.raises(ConcurrentOperationError):
                engine.reconcile(artist.id)
        finally:
            release.set()
            worker.join(timeout=5)

        assert results[0].matched == 1
        # Guard is released once the first pass finishes
        assert engine.reconcile(artist.id).matched == 1

    def test_different_artists_run_concurrently(self, repository, library, beatles):
        artist, _ = beatles
        other = repository.add_artist("Radiohead", "a74b1b7f-71a5-4011-9441-d0b5e4122711")
        started = threading.Event()
        release = threading.Event()

        class SlowScanner(DirectoryScanner):
            def scan(self):
                if not started.is_set():
                    started.set()
                    release.wait(timeout=5)
                return super().scan()

        engine = ReconciliationEngine(repository, library, scanner_factory=SlowScanner)
        worker = threading.Thread(target=engine.reconcile, args=(artist.id,))
        worker.start()
        try:
            assert started.wait(timeout=5)
            summary = engine.reconcile(other.id)
            assert summary.artist_id == other.id
        finally:
            release.set()
            worker.join(timeout=5)
