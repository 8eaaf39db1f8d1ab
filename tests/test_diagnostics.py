"""Tests for tocbuild.diagnostics: Diagnostic and the shared ErrorSink."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from tocbuild.diagnostics import Diagnostic, ErrorSink, sort_key


def _diag(code: str = "c", severity: str = "warning", field: str | None = "f") -> Diagnostic:
    return Diagnostic(code=code, severity=severity, field=field, message=f"{code} message")


class TestDiagnostic:
    def test_for_file_returns_copy(self) -> None:
        original = _diag()
        attached = original.for_file("docs/toc.yml")
        assert attached.file == "docs/toc.yml"
        assert original.file is None

    def test_is_error(self) -> None:
        assert _diag(severity="error").is_error
        assert not _diag(severity="warning").is_error
        assert not _diag(severity="suggestion").is_error

    def test_to_dict(self) -> None:
        assert _diag("x", "error", None).for_file("a").to_dict() == {
            "file": "a",
            "code": "x",
            "severity": "error",
            "field": None,
            "message": "x message",
        }

    def test_sort_key_orders_by_severity(self) -> None:
        items = [_diag(severity="suggestion"), _diag(severity="error"), _diag()]
        assert [d.severity for d in sorted(items, key=sort_key)] == [
            "error",
            "warning",
            "suggestion",
        ]


class TestErrorSink:
    def test_add_and_get(self) -> None:
        sink = ErrorSink()
        sink.add("a", _diag("one"))
        sink.add("a", _diag("two"))
        assert [d.code for d in sink.get("a")] == ["one", "two"]
        assert all(d.file == "a" for d in sink.get("a"))

    def test_get_unknown_file(self) -> None:
        assert ErrorSink().get("missing") == ()

    def test_extend_empty_creates_no_bucket(self) -> None:
        sink = ErrorSink()
        sink.extend("a", [])
        assert sink.files() == []

    def test_file_has_error_is_per_file(self) -> None:
        sink = ErrorSink()
        sink.add("a", _diag(severity="error"))
        sink.add("b", _diag(severity="warning"))
        assert sink.file_has_error("a")
        assert not sink.file_has_error("b")
        assert not sink.file_has_error("c")
        assert sink.has_errors()

    def test_warnings_only_is_not_error(self) -> None:
        sink = ErrorSink()
        sink.extend("a", [_diag(severity="warning"), _diag(severity="suggestion")])
        assert not sink.has_errors()

    def test_all_is_sorted(self) -> None:
        sink = ErrorSink()
        sink.add("b", _diag("z"))
        sink.add("a", _diag("y", severity="suggestion"))
        sink.add("a", _diag("x", severity="error"))
        assert [(d.file, d.code) for d in sink.all()] == [("a", "x"), ("a", "y"), ("b", "z")]

    def test_counts(self) -> None:
        sink = ErrorSink()
        sink.extend("a", [_diag(severity="error"), _diag(severity="error")])
        sink.add("b", _diag(severity="suggestion"))
        assert sink.counts() == {"error": 2, "suggestion": 1, "warning": 0}

    def test_concurrent_appends(self) -> None:
        sink = ErrorSink()
        files = [f"dir{i % 5}/toc.yml" for i in range(200)]

        def report(index: int) -> None:
            sink.add(files[index], _diag(f"code{index}"))

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(report, range(len(files))))

        assert len(sink.files()) == 5
        assert sum(len(sink.get(f)) for f in sink.files()) == 200
        for file in sink.files():
            assert all(d.file == file for d in sink.get(file))
