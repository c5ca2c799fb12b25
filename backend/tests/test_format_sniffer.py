"""
Unit tests for the format sniffer.
"""

import pytest

from app.services.format_sniffer import (
    SUPPORTED_EXTENSIONS,
    Strategy,
    StrategyKind,
    classify,
    get_extension,
    is_supported,
)


class TestIgnoreList:
    @pytest.mark.parametrize("name", [
        ".DS_Store",
        ".hidden.pdf",
        "~$budget.xlsx",
        "scratch.tmp",
        "Thumbs.db",
        "THUMBS.DB",
        "desktop.ini",
    ])
    def test_system_and_temp_files_are_skipped(self, name):
        assert classify(name).kind == StrategyKind.SKIP

    def test_ignore_applies_to_basename_of_a_path(self):
        assert classify("folder/.DS_Store").kind == StrategyKind.SKIP
        assert classify("folder\\~$lock.docx").kind == StrategyKind.SKIP


class TestUnsupported:
    @pytest.mark.parametrize("name", ["archive.zip", "setup.exe", "notes.md", "README", "trailing."])
    def test_unsupported_or_missing_extension_is_skipped(self, name):
        assert classify(name).kind == StrategyKind.SKIP

    def test_declared_mime_used_when_name_has_no_extension(self):
        strategy = classify("scan", mime_type="application/pdf")
        assert strategy == Strategy(StrategyKind.BINARY_PASSTHROUGH, "application/pdf")

    def test_declared_mime_ignored_when_extension_present(self):
        assert classify("archive.zip", mime_type="application/pdf").kind == StrategyKind.SKIP


class TestStrategies:
    @pytest.mark.parametrize("name,mime", [
        ("lease.pdf", "application/pdf"),
        ("receipt.jpg", "image/jpeg"),
        ("receipt.jpeg", "image/jpeg"),
        ("photo.png", "image/png"),
    ])
    def test_binary_passthrough_with_fixed_mime(self, name, mime):
        assert classify(name) == Strategy(StrategyKind.BINARY_PASSTHROUGH, mime)

    @pytest.mark.parametrize("name", ["ledger.xlsx", "old.xls", "bank.csv"])
    def test_tabular(self, name):
        assert classify(name).kind == StrategyKind.TABULAR_EXTRACT

    @pytest.mark.parametrize("name", ["letter.docx", "legacy.doc"])
    def test_document_text(self, name):
        assert classify(name).kind == StrategyKind.TEXT_EXTRACT_DOCUMENT

    def test_msg_is_container(self):
        assert classify("Email.msg").kind == StrategyKind.CONTAINER_UNPACK

    def test_txt_falls_back_to_plain_text(self):
        assert classify("notes.txt").kind == StrategyKind.TEXT_EXTRACT_PLAIN


class TestCaseInsensitivity:
    @pytest.mark.parametrize("ext", sorted(SUPPORTED_EXTENSIONS))
    def test_upper_and_lower_case_extensions_match(self, ext):
        assert classify(f"file.{ext}") == classify(f"file.{ext.upper()}")
        assert classify(f"file.{ext}").kind != StrategyKind.SKIP

    def test_mixed_case(self):
        assert classify("Scan.PdF") == classify("scan.pdf")


class TestHelpers:
    def test_get_extension(self):
        assert get_extension("a/b/Report.Final.XLSX") == "xlsx"
        assert get_extension("noext") == ""
        assert get_extension(".bashrc") == ""

    def test_is_supported(self):
        assert is_supported("lease.pdf")
        assert not is_supported(".DS_Store")
        assert not is_supported("archive.zip")
