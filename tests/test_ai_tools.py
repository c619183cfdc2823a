import unittest
from unittest.mock import MagicMock
import io
import os
import shutil
import sys
import tempfile
import zipfile
from bson import ObjectId
from flask import Flask
from werkzeug.datastructures import FileStorage

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from learnsy.shared.exceptions import AppException
from learnsy.ai_tools.summarizer import (
    SummarizerError, split_sentences, extract_keywords, summarize_text
)
from learnsy.ai_tools.extractors import ExtractionError, extract_pptx_text
from learnsy.ai_tools.models import placeholder_summary, render_summary_text, topic_from_file_name
from learnsy.ai_tools.services import AIToolsService

SLIDE_XML = (
    '<p:sld xmlns:p="http://schemas.openxmlformats.org/presentationml/2006/main" '
    'xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main">'
    '<p:cSld><p:spTree><p:sp><p:txBody><a:p><a:r><a:t>{text}</a:t></a:r></a:p>'
    '</p:txBody></p:sp></p:spTree></p:cSld></p:sld>'
)

def build_pptx(path, slides):
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("[Content_Types].xml", "<Types/>")
        for number, text in slides.items():
            archive.writestr(f"ppt/slides/slide{number}.xml", SLIDE_XML.format(text=text))
        archive.writestr("ppt/slides/_rels/slide1.xml.rels", "<Relationships/>")

def mock_db():
    db = MagicMock()
    db.__getitem__.side_effect = lambda name: getattr(db, name)
    return db

class TestSummarizer(unittest.TestCase):
    """Resumen extractivo"""

    def test_sentences_split_before_capital(self):
        self.assertEqual(split_sentences("First one. second part. Third! 4th? done"),
                         ["First one. second part.", "Third!", "4th? done"])

    def test_keywords_ties_keep_first_appearance(self):
        text = "Python loops. Python functions. Loops matter. Slides slides slides."
        self.assertEqual(extract_keywords(text), ["python", "loops", "functions", "matter"])

    def test_summary_limits_sentences(self):
        text = " ".join(f"Sentence number {i} explains things." for i in range(10))
        result = summarize_text(text)
        self.assertEqual(len(split_sentences(result["summary"])), 6)
        self.assertEqual(len(result["highlights"]), 8)
        self.assertEqual(result["word_count"], 50)

    def test_keywords_fallback_to_summary_words(self):
        result = summarize_text("The cat sat. It ran.")
        self.assertEqual(result["keywords"], ["the", "cat", "sat", "it"])

    def test_blank_text_rejected(self):
        with self.assertRaises(SummarizerError) as ctx:
            summarize_text("   \n\t ")
        self.assertEqual(str(ctx.exception), "Unable to extract readable text from this file.")


class TestPptxExtraction(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_slides_in_numeric_order(self):
        path = os.path.join(self.tmpdir, "deck.pptx")
        build_pptx(path, {10: "Tenth", 2: "Second", 1: "First"})
        result = extract_pptx_text(path)
        self.assertEqual(result["text"], "First Second Tenth")
        self.assertEqual(result["slide_count"], 3)

    def test_presentation_without_slides(self):
        path = os.path.join(self.tmpdir, "empty.pptx")
        build_pptx(path, {})
        with self.assertRaises(ExtractionError) as ctx:
            extract_pptx_text(path)
        self.assertEqual(str(ctx.exception), "No slides were found in this presentation.")

    def test_slides_without_text(self):
        path = os.path.join(self.tmpdir, "blank.pptx")
        build_pptx(path, {1: "   "})
        with self.assertRaises(ExtractionError) as ctx:
            extract_pptx_text(path)
        self.assertEqual(str(ctx.exception), "We could not extract readable text from this PPT.")

    def test_not_a_zip(self):
        path = os.path.join(self.tmpdir, "broken.pptx")
        with open(path, "wb") as f:
            f.write(b"not a presentation")
        with self.assertRaises(ExtractionError):
            extract_pptx_text(path)


class TestPlaceholders(unittest.TestCase):

    def test_topic_from_file_name(self):
        self.assertEqual(topic_from_file_name("uploads/Intro_to-Python.mp4"), "intro to python")

    def test_video_placeholder(self):
        result = placeholder_summary("video", "Data_Science.mp4")
        self.assertIn("fundamentals of data science", result["summary"])
        self.assertEqual(len(result["key_points"]), 5)
        self.assertEqual(result["tags"], ["tutorial", "beginner", "practical"])

    def test_render_summary_text(self):
        text = render_summary_text({"original_file_name": "notes.pdf", "summary": "Short.",
                                    "key_points": ["One"], "tags": ["alpha", "beta"]})
        self.assertTrue(text.startswith("Summary of notes.pdf\n"))
        self.assertIn("- One", text)
        self.assertIn("Keywords: alpha, beta", text)


class TestAIToolsService(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.app = Flask(__name__)
        self.app.config['UPLOAD_FOLDER'] = self.tmpdir
        self.db = mock_db()
        self.db.ai_summaries.insert_one.return_value = MagicMock(inserted_id=ObjectId())
        self.service = AIToolsService(db=self.db)
        self.user_id = str(ObjectId())

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def _pptx_upload(self, slides):
        path = os.path.join(self.tmpdir, "source.pptx")
        build_pptx(path, slides)
        with open(path, "rb") as f:
            return FileStorage(stream=io.BytesIO(f.read()), filename="Course Intro.pptx")

    def test_upload_pptx_completes(self):
        upload = self._pptx_upload({1: "Welcome to algebra basics.", 2: "Variables represent numbers."})
        with self.app.app_context():
            summary = self.service.upload_and_process(self.user_id, upload, "ppt")

        self.assertEqual(summary["processing_status"], "completed")
        self.assertEqual(summary["slide_count"], 2)
        self.assertIn("algebra", summary["tags"])
        self.assertNotIn("file_path", summary)

    def test_upload_extraction_failure_marks_failed(self):
        upload = self._pptx_upload({1: " "})
        with self.app.app_context():
            summary = self.service.upload_and_process(self.user_id, upload, "ppt")

        self.assertEqual(summary["processing_status"], "failed")
        self.assertEqual(summary["processing_error"], "We could not extract readable text from this PPT.")

    def test_video_gets_placeholder(self):
        upload = FileStorage(stream=io.BytesIO(b"\x00" * 32), filename="lecture_one.mp4")
        with self.app.app_context():
            summary = self.service.upload_and_process(self.user_id, upload, "video")
        self.assertEqual(summary["processing_status"], "completed")
        self.assertIn("lecture one", summary["summary"])

    def test_upload_validation(self):
        with self.assertRaises(AppException) as ctx:
            self.service.upload_and_process(self.user_id, None, "pdf")
        self.assertEqual(ctx.exception.message, "No file uploaded")

        upload = FileStorage(stream=io.BytesIO(b"x"), filename="a.pdf")
        with self.assertRaises(AppException) as ctx:
            self.service.upload_and_process(self.user_id, upload, None)
        self.assertEqual(ctx.exception.message, "File type is required")

        with self.assertRaises(AppException):
            self.service.upload_and_process(self.user_id, upload, "audio")

    def test_download_requires_completed(self):
        self.db.ai_summaries.find_one.return_value = {"_id": ObjectId(), "processing_status": "failed"}
        with self.assertRaises(AppException) as ctx:
            self.service.download(str(ObjectId()), self.user_id)
        self.assertEqual(ctx.exception.code, 409)

    def test_download_counts_and_names_file(self):
        self.db.ai_summaries.find_one.return_value = {
            "_id": ObjectId(), "processing_status": "completed",
            "original_file_name": "My Notes.pdf", "summary": "Text."
        }
        file_name, text = self.service.download(str(ObjectId()), self.user_id)
        self.assertEqual(file_name, "My_Notes-summary.txt")
        self.assertIn("Text.", text)
        update = self.db.ai_summaries.update_one.call_args[0][1]
        self.assertEqual(update, {"$inc": {"download_count": 1}})

    def test_stats_completion_rate(self):
        self.db.ai_summaries.aggregate.return_value = [
            {"_id": "pdf", "count": 2, "total_size": 100, "completed": 2},
            {"_id": "video", "count": 1, "total_size": 50, "completed": 0}
        ]
        stats = self.service.stats(self.user_id)
        self.assertEqual(stats["total_summaries"], 3)
        self.assertEqual(stats["completion_rate"], 66.7)
        self.assertEqual(stats["by_type"][0]["file_type"], "pdf")


if __name__ == '__main__':
    unittest.main()
