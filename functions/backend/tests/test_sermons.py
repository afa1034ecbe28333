import unittest
from unittest.mock import patch

from backend.db import InMemorySermonStore
from backend.errors import (
    FileTypeError,
    MissingFieldError,
    RemoteStoreError,
    UploadInProgressError,
)
from backend.notifications import InMemoryNotifier
from backend.sermons import SermonArchive
from backend.storage import InMemoryBlobStore
from backend.uploads import SelectedFile, UploadWorkflow
from shared.types import UNTITLED_SERMON, NotificationLevel


class LoadSermonsTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemorySermonStore()
        self.notifier = InMemoryNotifier()
        self.archive = SermonArchive(self.store, self.notifier)

    def test_sorted_newest_first(self):
        self.store.children = {
            "k1": {"title": "Lent 1", "date": "2026-02-22T09:00:00.000Z", "audioUrl": "u1"},
            "k2": {"title": "Advent", "date": "2026-11-29T09:00:00.000Z", "audioUrl": "u2"},
            "k3": {"title": "Pentecost", "date": "2026-05-24T09:00:00.000Z", "audioUrl": "u3"},
        }

        sermons = self.archive.load_sermons()

        self.assertEqual([s.title for s in sermons], ["Advent", "Pentecost", "Lent 1"])
        self.assertEqual([s.id for s in sermons], ["k2", "k3", "k1"])
        self.assertFalse(self.archive.loading)

    def test_missing_fields_get_defaults(self):
        self.store.children = {"k1": {"date": "2026-03-01T10:00:00.000Z"}}

        sermon = self.archive.load_sermons()[0]

        self.assertEqual(sermon.title, UNTITLED_SERMON)
        self.assertEqual(sermon.audio_url, "")
        self.assertEqual(sermon.description, "")
        self.assertEqual(sermon.download_filename, "Untitled Sermon.mp3")

    def test_missing_date_defaults_to_now(self):
        self.store.children = {
            "old": {"title": "Old", "date": "2020-01-01T00:00:00.000Z"},
            "undated": {"title": "Undated"},
        }
        sermons = self.archive.load_sermons()
        self.assertEqual(sermons[0].title, "Undated")

    def test_fetch_failure_leaves_empty_archive(self):
        with patch.object(self.store, "list_sermons", side_effect=ConnectionError()):
            sermons = self.archive.load_sermons()

        self.assertEqual(sermons, [])
        notifications = self.notifier.drain()
        self.assertEqual(len(notifications), 1)
        self.assertEqual(notifications[0].level, NotificationLevel.ERROR)
        self.assertEqual(notifications[0].message, "Failed to load sermons")


class AddSermonTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemorySermonStore()
        self.notifier = InMemoryNotifier()
        self.archive = SermonArchive(self.store, self.notifier)
        self.store.children = {
            f"k{i}": {
                "title": f"Week {i}",
                "date": f"2026-0{i}-01T09:00:00.000Z",
                "audioUrl": f"https://example.test/{i}.mp3",
            }
            for i in range(1, 4)
        }
        self.archive.load_sermons()
        self.notifier.drain()

    def test_new_sermon_is_prepended(self):
        sermon = self.archive.add_sermon(
            "https://example.test/easter.mp3", "Easter Sermon", "He is risen"
        )

        self.assertEqual(len(self.archive.sermons), 4)
        self.assertIs(self.archive.sermons[0], sermon)
        self.assertEqual(self.archive.sermons[0].title, "Easter Sermon")
        self.assertIn(sermon.id, self.store.children)
        self.assertEqual(
            self.store.children[sermon.id],
            {
                "title": "Easter Sermon",
                "date": sermon.date,
                "audioUrl": "https://example.test/easter.mp3",
                "description": "He is risen",
            },
        )
        self.assertTrue(sermon.date.endswith("Z"))
        self.assertEqual(
            self.notifier.drain()[-1].message, "Sermon uploaded successfully!"
        )

    def test_store_failure_leaves_archive_unchanged(self):
        before = list(self.archive.sermons)

        with patch.object(self.store, "push_sermon", side_effect=PermissionError()):
            with self.assertRaises(RemoteStoreError):
                self.archive.add_sermon("https://example.test/x.mp3", "X")

        self.assertEqual(self.archive.sermons, before)
        self.assertEqual(
            [n.message for n in self.notifier.drain()], ["Failed to save sermon"]
        )

    def test_requires_title_and_audio_url(self):
        with self.assertRaises(MissingFieldError):
            self.archive.add_sermon("https://example.test/x.mp3", "")
        with self.assertRaises(MissingFieldError):
            self.archive.add_sermon("", "Title")
        self.assertEqual(len(self.store.children), 3)


class SermonSubmissionTests(unittest.TestCase):
    def setUp(self):
        self.notifier = InMemoryNotifier()
        self.blob_store = InMemoryBlobStore()
        self.uploads = UploadWorkflow(self.blob_store, self.notifier, chunk_size=4)
        self.store = InMemorySermonStore()
        self.archive = SermonArchive(self.store, self.notifier)
        self.archive.load_sermons()

    def test_submit_blocked_while_upload_in_flight(self):
        task = self.uploads.upload_audio(
            SelectedFile("week.mp3", "audio/mpeg", b"0123456789")
        )
        stream = iter(task)
        next(stream)

        with self.assertRaises(UploadInProgressError):
            self.archive.submit(self.uploads, "https://example.test/a.mp3", "Week")
        self.assertEqual(self.store.children, {})
        self.assertEqual(
            self.notifier.drain()[-1].message,
            "Please wait for the upload to finish before submitting",
        )

        list(stream)
        sermon = self.archive.submit(self.uploads, task.url, "Week")
        self.assertEqual(sermon.audio_url, task.url)

    def test_upload_and_add_records_uploaded_url(self):
        sermon = self.archive.upload_and_add(
            self.uploads,
            SelectedFile("easter.mp3", "audio/mpeg", b"abcdefghij"),
            "Easter Sermon",
        )

        self.assertEqual(len(self.blob_store.stored_objects), 1)
        path = next(iter(self.blob_store.stored_objects))
        self.assertTrue(path.startswith("sermons/"))
        self.assertEqual(sermon.audio_url, self.blob_store.download_url(path))
        self.assertEqual(self.archive.sermons[0].title, "Easter Sermon")

    def test_upload_and_add_rejects_non_audio_before_transfer(self):
        with self.assertRaises(FileTypeError):
            self.archive.upload_and_add(
                self.uploads, SelectedFile("notes.pdf", "application/pdf", b"x"), "T"
            )
        self.assertEqual(self.blob_store.stored_objects, {})
        self.assertEqual(self.store.children, {})


if __name__ == "__main__":
    unittest.main()
